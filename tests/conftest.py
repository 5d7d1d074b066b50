#!/usr/bin/env python3
"""
Pytest configuration and in-memory fakes for the store and event source
"""

import asyncio
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest
import pytest_asyncio

from auction_mirror.database import Auction, AuctionStatus, Nft, User
from auction_mirror.errors import PersistenceError, ProviderConnectionError
from auction_mirror.indexer.event_source import NetworkStatus
from auction_mirror.indexer.events import EventKind
from auction_mirror.indexer.reconciler import AuctionReconciler

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

NFT_ADDRESS = "0x" + "11" * 20
FACTORY_ADDRESS = "0x" + "22" * 20
AUCTION_ADDRESS = "0x" + "a1" * 20
CREATOR = "0x" + "c1" * 20
BIDDER = "0x" + "b1" * 20
OTHER_BIDDER = "0x" + "b2" * 20

ETH = 10 ** 18


class InMemoryStore:
    """AuctionStore stand-in. Yields once per call so handlers interleave like real I/O."""

    def __init__(self):
        self.auctions: Dict[str, Auction] = {}
        self.nfts: Dict[str, Nft] = {}
        self.users: Dict[str, User] = {}
        self.writes = 0
        self.failures: Counter = Counter()

    def fail(self, method: str, times: int = 1) -> None:
        self.failures[method] += times

    async def _enter(self, method: str, entity: str) -> None:
        await asyncio.sleep(0)
        if self.failures[method] > 0:
            self.failures[method] -= 1
            raise PersistenceError(method, entity, RuntimeError("database unavailable"))

    def add_auction(self, **fields) -> Auction:
        fields.setdefault("status", AuctionStatus.CREATED)
        fields.setdefault("token_id", "1")
        fields.setdefault("creator", CREATOR)
        fields.setdefault("highest_bid", Decimal("0"))
        fields.setdefault("min_bid_increment", Decimal("0.01"))
        fields.setdefault("duration", 259200)
        fields.setdefault("created_at", NOW)
        auction = Auction(**fields)
        self.auctions[auction.address] = auction
        return auction

    async def find_auctions_by_status(self, statuses: Iterable[AuctionStatus]) -> List[Auction]:
        await self._enter("find_auctions_by_status", "auctions")
        wanted = set(statuses)
        return [a for a in self.auctions.values() if a.status in wanted]

    async def find_all_auctions(self) -> List[Auction]:
        await self._enter("find_all_auctions", "Auctions")
        return sorted(self.auctions.values(), key=lambda a: a.created_at, reverse=True)

    async def find_all_nfts(self) -> List[Nft]:
        await self._enter("find_all_nfts", "NFTs")
        return list(self.nfts.values())

    async def insert_auction(self, fields: Dict[str, Any]) -> bool:
        await self._enter("insert_auction", f"auction {fields.get('address')}")
        if fields["address"] in self.auctions:
            return False
        self.writes += 1
        self.add_auction(**fields)
        return True

    async def update_auction_by_address(
        self,
        address: str,
        fields: Dict[str, Any],
        from_statuses: Optional[Iterable[AuctionStatus]] = None,
    ) -> int:
        await self._enter("update_auction_by_address", f"auction {address}")
        auction = self.auctions.get(address)
        if auction is None:
            return 0
        if from_statuses is not None and auction.status not in set(from_statuses):
            return 0
        for key, value in fields.items():
            setattr(auction, key, value)
        self.writes += 1
        return 1

    async def find_nft_by_token_id(self, token_id: str) -> Optional[Nft]:
        await self._enter("find_nft_by_token_id", f"NFT {token_id}")
        return self.nfts.get(token_id)

    async def insert_nft(self, fields: Dict[str, Any]) -> None:
        await self._enter("insert_nft", f"NFT {fields.get('token_id')}")
        self.writes += 1
        existing = self.nfts.get(fields["token_id"])
        if existing is not None:
            existing.owner = fields["owner"]
            return
        self.nfts[fields["token_id"]] = Nft(id=len(self.nfts) + 1, **fields)

    async def update_nft_by_token_id(self, token_id: str, fields: Dict[str, Any]) -> int:
        await self._enter("update_nft_by_token_id", f"NFT {token_id}")
        nft = self.nfts.get(token_id)
        if nft is None:
            return 0
        for key, value in fields.items():
            setattr(nft, key, value)
        self.writes += 1
        return 1

    async def upsert_user_by_address(self, address: str) -> None:
        await self._enter("upsert_user_by_address", f"user {address}")
        if address not in self.users:
            self.writes += 1
            self.users[address] = User(id=len(self.users) + 1, wallet_address=address)


class FakeEventSource:
    """Records subscriptions and lets tests deliver decoded events to them"""

    def __init__(self, chain_id: int = 31337, block_number: int = 100):
        self.chain_id = chain_id
        self.block_number = block_number
        self.reachable = True
        self.failing_addresses = set()
        self.subscriptions: List[Tuple[str, EventKind, Any]] = []

    async def get_network_status(self) -> NetworkStatus:
        if not self.reachable:
            raise ProviderConnectionError(ConnectionRefusedError("connection refused"))
        return NetworkStatus(chain_id=self.chain_id, block_number=self.block_number)

    async def subscribe(self, contract_address, abi, event, handler) -> str:
        await asyncio.sleep(0)
        if contract_address.lower() in self.failing_addresses:
            raise ConnectionResetError("subscription rejected")
        self.subscriptions.append((contract_address, event, handler))
        return f"0x{len(self.subscriptions):x}"

    def subscribed(self, address: str) -> List[EventKind]:
        return [event for addr, event, _ in self.subscriptions if addr.lower() == address.lower()]

    async def emit(self, address: str, event: EventKind, args: Dict[str, Any]) -> list:
        """Deliver one event to every matching handler and return their outcomes"""
        handlers = [h for addr, ev, h in self.subscriptions if addr.lower() == address.lower() and ev == event]
        return [await handler(dict(args)) for handler in handlers]


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def source():
    return FakeEventSource()


@pytest.fixture
def reported_errors():
    """Errors delivered to the reconciler's error sink"""
    return []


@pytest_asyncio.fixture
async def reconciler(store, source, reported_errors):
    return AuctionReconciler(
        store,
        source,
        nft_contract=NFT_ADDRESS,
        auction_factory=FACTORY_ADDRESS,
        attach_delay=0,
        clock=lambda: NOW,
        error_sink=reported_errors.append,
    )


def auction_created_args(**overrides) -> Dict[str, Any]:
    args = {
        "auctionAddress": AUCTION_ADDRESS,
        "creator": CREATOR,
        "nft": NFT_ADDRESS,
        "tokenId": 7,
        "duration": 3600,
        "minBidIncrement": ETH // 100,
    }
    args.update(overrides)
    return args
