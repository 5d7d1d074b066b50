#!/usr/bin/env python3
"""
Console summary of mirrored auctions.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from rich.console import Console
from rich.table import Table

from ..database import Auction, AuctionStatus, as_utc

STATUS_LABELS = {
    AuctionStatus.CREATED: "⚪ CREATED",
    AuctionStatus.ACTIVE: "🟢 ACTIVE",
    AuctionStatus.EXTENDED: "🟡 EXTENDED",
    AuctionStatus.ENDED: "🔴 ENDED",
    AuctionStatus.CANCELLED: "⚫ CANCELLED",
}


def _format_remaining(auction: Auction, now: datetime) -> str:
    if auction.status == AuctionStatus.EXTENDED and auction.ended_at is not None:
        end = as_utc(auction.ended_at)
    elif auction.status == AuctionStatus.ACTIVE and auction.started_at is not None:
        end = datetime.fromtimestamp(as_utc(auction.started_at).timestamp() + int(auction.duration), tz=timezone.utc)
    else:
        return "-"

    remaining = int((end - now).total_seconds())
    if remaining <= 0:
        return "overdue"
    if remaining > 3600:
        return f"{remaining // 3600}h {(remaining % 3600) // 60}m"
    if remaining > 60:
        return f"{remaining // 60}m {remaining % 60}s"
    return f"{remaining}s"


def create_status_table(auctions: Iterable[Auction], now: Optional[datetime] = None) -> Table:
    now = now or datetime.now(timezone.utc)
    table = Table(title="🔍 Mirrored Auctions", title_style="bold cyan")

    table.add_column("Auction", style="dim")
    table.add_column("Token", style="cyan")
    table.add_column("Highest Bid", style="green")
    table.add_column("Bidder", style="yellow")
    table.add_column("Time Left", style="magenta")
    table.add_column("Status", style="bold")

    for auction in auctions:
        bidder = auction.highest_bidder
        table.add_row(
            auction.address[:10] + "...",
            str(auction.token_id),
            f"{auction.highest_bid or 0} ETH",
            bidder[:10] + "..." if bidder else "-",
            _format_remaining(auction, now),
            STATUS_LABELS.get(AuctionStatus(auction.status), str(auction.status)),
        )

    return table


def print_status(auctions: Iterable[Auction], console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print(create_status_table(auctions))
