#!/usr/bin/env python3
"""
Auction lifecycle reconciler.

Mirrors NFT transfers and auction lifecycle events into the record store:
- startup: connectivity check, prune stale active auctions, reattach
  sub-listeners to open auctions, then listen for global events
- live: every event is decoded, validated, and applied as single-row writes
- writes for one auction run one at a time, in delivery order
"""

import asyncio
import logging
import weakref
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Tuple

from ..abi import load_abi
from ..database import OPEN_STATUSES, AuctionStatus, AuctionStore, as_utc
from ..errors import AuctionListenerError, AuctionMirrorError, PersistenceError, ProviderConnectionError
from . import validators
from .event_source import EventSource, Handler
from .events import (
    AUCTION_INSTANCE_EVENTS, AuctionCreatedPayload, BidPayload, EventArgs, EventKind,
    ExtendedPayload, TransferPayload, short_address,
)

logger = logging.getLogger(__name__)

# Statuses whose auctions still receive sub-listeners after a restart
REATTACH_STATUSES = OPEN_STATUSES

LISTENERS_STARTED = "Event listeners started using WebSocket provider"


class EventOutcome(str, Enum):
    APPLIED = "applied"
    DROPPED = "dropped"   # failed validation
    SKIPPED = "skipped"   # record missing or already past this status
    FAILED = "failed"


@dataclass(frozen=True)
class SubscriptionHandle:
    address: str
    subscription_ids: Tuple[str, ...]


ErrorSink = Callable[[AuctionMirrorError], None]
AuctionHandler = Callable[[str, EventArgs], Awaitable[EventOutcome]]


def log_error_sink(error: AuctionMirrorError) -> None:
    logger.error(f"❌ {error}")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuctionReconciler:
    """Applies contract events to the store and owns every sub-listener"""

    def __init__(
        self,
        store: AuctionStore,
        source: EventSource,
        nft_contract: str,
        auction_factory: str,
        attach_delay: float = 1.0,
        clock: Callable[[], datetime] = _utc_now,
        error_sink: ErrorSink = log_error_sink,
    ):
        self.store = store
        self.source = source
        self.nft_contract = nft_contract
        self.auction_factory = auction_factory
        self.attach_delay = attach_delay
        self.clock = clock
        self.error_sink = error_sink
        self.stats: Counter = Counter()
        self._handles: Dict[str, SubscriptionHandle] = {}
        # entries vanish once no writer holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def reattach_and_listen(self) -> None:
        """Bootstrap entry point. Raises ProviderConnectionError when the chain is unreachable."""
        try:
            network = await self.source.get_network_status()
        except ProviderConnectionError:
            raise
        except Exception as e:
            raise ProviderConnectionError(e) from e
        logger.info(f"Connected to network: chainId {network.chain_id} at block {network.block_number}")

        try:
            await self.prune_outdated_auctions()
        except PersistenceError as e:
            self.error_sink(e)

        existing = await self.store.find_auctions_by_status(REATTACH_STATUSES)
        if existing:
            logger.info(f"Reattaching to {len(existing)} auctions...")
        for auction in existing:
            await asyncio.sleep(self.attach_delay)
            try:
                await self.attach(auction.address)
            except AuctionListenerError as e:
                self.error_sink(e)

        await self.listen_to_nft_events()
        await self.listen_to_factory_events()
        logger.info(LISTENERS_STARTED)

    async def prune_outdated_auctions(self) -> int:
        """Close ACTIVE auctions whose started_at + duration has passed, back-dating ended_at to that deadline"""
        active = await self.store.find_auctions_by_status([AuctionStatus.ACTIVE])
        now = int(self.clock().timestamp())
        count = 0

        for auction in active:
            started_at = as_utc(auction.started_at)
            if started_at is None:
                logger.warning(f"Active auction {short_address(auction.address)} has no start time; not pruned")
                continue

            deadline = int(started_at.timestamp()) + int(auction.duration)
            if deadline >= now:
                continue

            try:
                async with self._lock_for(auction.address):
                    updated = await self.store.update_auction_by_address(
                        auction.address,
                        {
                            "status": AuctionStatus.ENDED,
                            "ended_at": datetime.fromtimestamp(deadline, tz=timezone.utc),
                        },
                        from_statuses=[AuctionStatus.ACTIVE],
                    )
            except PersistenceError as e:
                self.error_sink(e)
                continue

            if updated:
                count += 1

        if count > 0:
            logger.info(f"Pruned {count} outdated auctions")
        return count

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def is_attached(self, address: str) -> bool:
        return address.lower() in self._handles

    async def attach(self, address: str) -> SubscriptionHandle:
        """Subscribe the per-auction handlers once per address"""
        key = address.lower()
        if key in self._handles:
            logger.debug(f"Auction {short_address(address)} already attached")
            return self._handles[key]

        handlers: Dict[EventKind, AuctionHandler] = {
            EventKind.BID_PLACED: self.handle_bid_placed,
            EventKind.AUCTION_ENDED: self.handle_auction_ended,
            EventKind.AUCTION_STARTED: self.handle_auction_started,
            EventKind.AUCTION_CANCELLED: self.handle_auction_cancelled,
            EventKind.AUCTION_EXTENDED: self.handle_auction_extended,
        }
        abi = load_abi('auction')
        subscription_ids: List[str] = []
        try:
            for kind in AUCTION_INSTANCE_EVENTS:
                sub_id = await self.source.subscribe(address, abi, kind, self._bind(address, handlers[kind]))
                subscription_ids.append(sub_id)
        except Exception as e:
            raise AuctionListenerError(address, e) from e

        handle = SubscriptionHandle(address=address, subscription_ids=tuple(subscription_ids))
        self._handles[key] = handle
        logger.info(f"👂 Listening to auction {short_address(address)}")
        return handle

    async def listen_to_nft_events(self) -> None:
        await self.source.subscribe(
            self.nft_contract, load_abi('nft'), EventKind.TRANSFER,
            self._bind(self.nft_contract, self.handle_transfer),
        )

    async def listen_to_factory_events(self) -> None:
        await self.source.subscribe(
            self.auction_factory, load_abi('factory'), EventKind.AUCTION_CREATED,
            self._bind(self.auction_factory, self.handle_auction_created),
        )

    def _bind(self, address: str, handler: AuctionHandler) -> Handler:
        async def dispatch(args: EventArgs) -> EventOutcome:
            return await self._run_handler(address, handler, args)
        return dispatch

    async def _run_handler(self, address: str, handler: AuctionHandler, args: EventArgs) -> EventOutcome:
        """Run one handler, turning any exception into a reported FAILED outcome"""
        try:
            outcome = await handler(address, args)
        except PersistenceError as e:
            self.error_sink(e)
            outcome = EventOutcome.FAILED
        except AuctionListenerError as e:
            self.error_sink(e)
            outcome = EventOutcome.FAILED
        except Exception as e:
            self.error_sink(AuctionListenerError(address, e))
            outcome = EventOutcome.FAILED
        self.stats[outcome] += 1
        return outcome

    def _lock_for(self, key: str) -> asyncio.Lock:
        key = key.lower()
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Global events
    # ------------------------------------------------------------------

    async def handle_transfer(self, contract_address: str, args: EventArgs) -> EventOutcome:
        payload = TransferPayload.from_args(args)
        if not validators.validate_transfer_payload(payload.to, payload.token_id):
            return EventOutcome.DROPPED

        logger.info(f"NFT Transfer | Token {payload.token_id} ➝ {payload.to}")
        if payload.is_mint:
            logger.info(f"NFT Minted | Token {payload.token_id} by {payload.to}")

        async with self._lock_for(f"nft:{payload.token_id}"):
            await self._persist_or_update_nft(payload.token_id, payload.to)
        await self.store.upsert_user_by_address(payload.to)
        return EventOutcome.APPLIED

    async def handle_auction_created(self, factory_address: str, args: EventArgs) -> EventOutcome:
        payload = AuctionCreatedPayload.from_args(args)
        if not validators.validate_auction_created_payload(
            payload.auction_address, payload.creator, payload.token_id, payload.duration, payload.min_increment,
        ):
            return EventOutcome.DROPPED

        logger.info(f"AuctionCreated | Token {payload.token_id} at {payload.auction_address}")

        async with self._lock_for(payload.auction_address):
            created = await self.store.insert_auction({
                "address": payload.auction_address,
                "token_id": payload.token_id,
                "creator": payload.creator,
                "status": AuctionStatus.CREATED,
                "min_bid_increment": Decimal(payload.min_increment),
                "duration": int(payload.duration),
                "created_at": self.clock(),
            })
        if not created:
            logger.info(f"Auction {short_address(payload.auction_address)} already recorded")

        await self.store.upsert_user_by_address(payload.creator)
        await asyncio.sleep(self.attach_delay)
        await self.attach(payload.auction_address)
        return EventOutcome.APPLIED

    async def _persist_or_update_nft(self, token_id: str, owner: str) -> None:
        existing = await self.store.find_nft_by_token_id(token_id)
        if existing:
            await self.store.update_nft_by_token_id(token_id, {"owner": owner})
            logger.info(f"Updated NFT {token_id} owner to {owner}")
        else:
            await self.store.insert_nft({"token_id": token_id, "owner": owner, "minted_at": self.clock()})
            logger.info(f"Created NFT record for tokenId {token_id}")

    # ------------------------------------------------------------------
    # Per-auction events
    # ------------------------------------------------------------------

    async def _transition(
        self,
        auction_address: str,
        event: EventKind,
        fields: Dict[str, Any],
        from_statuses: Iterable[AuctionStatus],
    ) -> EventOutcome:
        async with self._lock_for(auction_address):
            updated = await self.store.update_auction_by_address(auction_address, fields, from_statuses=from_statuses)
        if not updated:
            logger.warning(f"{event.value} ignored for {short_address(auction_address)}: auction unknown or already past this state")
            return EventOutcome.SKIPPED
        return EventOutcome.APPLIED

    async def handle_bid_placed(self, auction_address: str, args: EventArgs) -> EventOutcome:
        payload = BidPayload.from_bid_args(args)
        if not validators.validate_bid_placed_payload(payload.account, payload.amount):
            return EventOutcome.DROPPED

        logger.info(f"BidPlaced | {payload.account} bid {payload.amount} ETH on {short_address(auction_address)}")
        outcome = await self._transition(
            auction_address,
            EventKind.BID_PLACED,
            {"highest_bid": Decimal(payload.amount), "highest_bidder": payload.account},
            OPEN_STATUSES,
        )
        await self.store.upsert_user_by_address(payload.account)
        return outcome

    async def handle_auction_ended(self, auction_address: str, args: EventArgs) -> EventOutcome:
        payload = BidPayload.from_ended_args(args)
        if not validators.validate_auction_ended_payload(payload.account, payload.amount):
            return EventOutcome.DROPPED

        logger.info(f"AuctionEnded | {payload.account} won with {payload.amount} ETH")
        outcome = await self._transition(
            auction_address,
            EventKind.AUCTION_ENDED,
            {
                "status": AuctionStatus.ENDED,
                "ended_at": self.clock(),
                "highest_bid": Decimal(payload.amount),
                "highest_bidder": payload.account,
            },
            OPEN_STATUSES,
        )
        await self.store.upsert_user_by_address(payload.account)
        return outcome

    async def handle_auction_started(self, auction_address: str, args: EventArgs) -> EventOutcome:
        logger.info(f"AuctionStarted | {auction_address}")
        return await self._transition(
            auction_address,
            EventKind.AUCTION_STARTED,
            {"status": AuctionStatus.ACTIVE, "started_at": self.clock()},
            [AuctionStatus.CREATED],
        )

    async def handle_auction_cancelled(self, auction_address: str, args: EventArgs) -> EventOutcome:
        logger.info(f"AuctionCancelled | {auction_address}")
        return await self._transition(
            auction_address,
            EventKind.AUCTION_CANCELLED,
            {"status": AuctionStatus.CANCELLED, "cancelled_at": self.clock()},
            OPEN_STATUSES,
        )

    async def handle_auction_extended(self, auction_address: str, args: EventArgs) -> EventOutcome:
        payload = ExtendedPayload.from_args(args)
        if not validators.validate_auction_extended_payload(payload.new_end_time):
            return EventOutcome.DROPPED

        new_end = datetime.fromtimestamp(payload.new_end_time, tz=timezone.utc)
        logger.info(f"AuctionExtended | {auction_address} now ends {new_end.isoformat()}")
        return await self._transition(
            auction_address,
            EventKind.AUCTION_EXTENDED,
            {"status": AuctionStatus.EXTENDED, "ended_at": new_end},
            [AuctionStatus.ACTIVE, AuctionStatus.EXTENDED],
        )
