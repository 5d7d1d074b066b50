#!/usr/bin/env python3
"""
Tests for the console status table
"""

from datetime import timedelta
from decimal import Decimal

from auction_mirror.database import Auction, AuctionStatus
from auction_mirror.indexer.status import _format_remaining, create_status_table

from .conftest import AUCTION_ADDRESS, BIDDER, CREATOR, NOW


def make_auction(**fields):
    fields.setdefault("address", AUCTION_ADDRESS)
    fields.setdefault("token_id", "7")
    fields.setdefault("creator", CREATOR)
    fields.setdefault("highest_bid", Decimal("0"))
    fields.setdefault("duration", 3600)
    return Auction(**fields)


def test_table_has_one_row_per_auction():
    auctions = [
        make_auction(status=AuctionStatus.ACTIVE, started_at=NOW, highest_bidder=BIDDER, highest_bid=Decimal("1.5")),
        make_auction(address="0x" + "02" * 20, status=AuctionStatus.ENDED),
    ]

    table = create_status_table(auctions, now=NOW)

    assert table.row_count == 2


def test_remaining_time():
    active = make_auction(status=AuctionStatus.ACTIVE, started_at=NOW - timedelta(minutes=30), duration=3600)
    overdue = make_auction(status=AuctionStatus.ACTIVE, started_at=NOW - timedelta(hours=2), duration=3600)
    extended = make_auction(status=AuctionStatus.EXTENDED, ended_at=NOW + timedelta(hours=2, minutes=5))
    created = make_auction(status=AuctionStatus.CREATED)

    assert _format_remaining(active, NOW) == "30m 0s"
    assert _format_remaining(overdue, NOW) == "overdue"
    assert _format_remaining(extended, NOW) == "2h 5m"
    assert _format_remaining(created, NOW) == "-"
