#!/usr/bin/env python3
"""
Closed set of contract events the listener understands, with typed payloads
decoded from web3 event args.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class EventKind(str, Enum):
    TRANSFER = "Transfer"
    AUCTION_CREATED = "AuctionCreated"
    BID_PLACED = "BidPlaced"
    AUCTION_ENDED = "AuctionEnded"
    AUCTION_STARTED = "AuctionStarted"
    AUCTION_CANCELLED = "AuctionCancelled"
    AUCTION_EXTENDED = "AuctionExtended"


# Events emitted by each auction instance (one sub-listener per auction)
AUCTION_INSTANCE_EVENTS = (
    EventKind.BID_PLACED,
    EventKind.AUCTION_ENDED,
    EventKind.AUCTION_STARTED,
    EventKind.AUCTION_CANCELLED,
    EventKind.AUCTION_EXTENDED,
)


def short_address(address: Any) -> str:
    text = str(address)
    if len(text) < 12:
        return text
    return f"{text[:6]}..{text[-4:]}"


def to_ether(value: Any) -> str:
    """Convert a wei amount to an ether decimal string. Non-integers pass through for validation."""
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return str(Web3.from_wei(value, 'ether'))
    return str(value)


def to_int_or_raw(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return int(value)
    return value


def event_topic(abi: List[dict], event_name: str) -> str:
    """topic0 (keccak of the canonical signature) for an event in an ABI"""
    for entry in abi:
        if entry.get('type') == 'event' and entry.get('name') == event_name:
            types = ",".join(i['type'] for i in entry.get('inputs', []))
            return Web3.to_hex(Web3.keccak(text=f"{event_name}({types})"))
    raise ValueError(f"Event {event_name} not found in ABI")


@dataclass(frozen=True)
class TransferPayload:
    from_address: str
    to: str
    token_id: str

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "TransferPayload":
        return cls(from_address=args['from'], to=args['to'], token_id=str(args['tokenId']))

    @property
    def is_mint(self) -> bool:
        return str(self.from_address).lower() == ZERO_ADDRESS


@dataclass(frozen=True)
class AuctionCreatedPayload:
    auction_address: str
    creator: str
    nft: str
    token_id: str
    duration: Any
    min_increment: str

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "AuctionCreatedPayload":
        return cls(
            auction_address=args['auctionAddress'],
            creator=args['creator'],
            nft=args.get('nft', ZERO_ADDRESS),
            token_id=str(args['tokenId']),
            duration=to_int_or_raw(args['duration']),
            min_increment=to_ether(args['minBidIncrement']),
        )


@dataclass(frozen=True)
class BidPayload:
    """BidPlaced and AuctionEnded share the (address, amount) shape"""
    account: str
    amount: str

    @classmethod
    def from_bid_args(cls, args: Mapping[str, Any]) -> "BidPayload":
        return cls(account=args['bidder'], amount=to_ether(args['amount']))

    @classmethod
    def from_ended_args(cls, args: Mapping[str, Any]) -> "BidPayload":
        return cls(account=args['winner'], amount=to_ether(args['amount']))


@dataclass(frozen=True)
class ExtendedPayload:
    new_end_time: Any

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "ExtendedPayload":
        return cls(new_end_time=to_int_or_raw(args['newEndTime']))


EventArgs = Dict[str, Any]
