#!/usr/bin/env python3
"""
Payload checks run before a decoded contract event may touch the store.
Every function returns a bool and logs the failing field; none of them raise.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from web3 import Web3

logger = logging.getLogger(__name__)


def is_valid_address(address: Any) -> bool:
    """42-char 0x hex; mixed case must carry a valid EIP-55 checksum"""
    if not isinstance(address, str) or len(address) != 42:
        return False
    try:
        return Web3.is_address(address)
    except (TypeError, ValueError):
        return False


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def is_valid_token_id(token_id: Any) -> bool:
    if token_id is None or str(token_id).strip() == '':
        return False
    return _to_decimal(token_id) is not None


def is_valid_duration(duration: Any) -> bool:
    number = _to_decimal(duration)
    return number is not None and number > 0


def is_valid_amount(amount: Any) -> bool:
    number = _to_decimal(amount)
    return number is not None and number >= 0


def validate_transfer_payload(to: Any, token_id: Any) -> bool:
    if not is_valid_address(to):
        logger.error(f"Invalid recipient address: {to}")
        return False

    if not is_valid_token_id(token_id):
        logger.error(f"Invalid tokenId: {token_id}")
        return False

    return True


def validate_auction_created_payload(
    auction_address: Any,
    creator: Any,
    token_id: Any,
    duration: Any,
    min_increment: Any,
) -> bool:
    if not is_valid_address(auction_address):
        logger.error(f"Invalid auction address: {auction_address}")
        return False

    if not is_valid_address(creator):
        logger.error(f"Invalid creator address: {creator}")
        return False

    if not is_valid_token_id(token_id):
        logger.error(f"Invalid tokenId: {token_id}")
        return False

    if not is_valid_duration(duration):
        logger.error(f"Invalid duration: {duration}")
        return False

    if not is_valid_amount(min_increment):
        logger.error(f"Invalid minBidIncrement: {min_increment}")
        return False

    return True


def validate_bid_placed_payload(bidder: Any, amount: Any) -> bool:
    if not is_valid_address(bidder):
        logger.error(f"Invalid bidder address: {bidder}")
        return False

    if not is_valid_amount(amount):
        logger.error(f"Invalid bid amount: {amount}")
        return False

    return True


def validate_auction_ended_payload(winner: Any, amount: Any) -> bool:
    if not is_valid_address(winner):
        logger.error(f"Invalid winner address: {winner}")
        return False

    if not is_valid_amount(amount):
        logger.error(f"Invalid ending bid amount: {amount}")
        return False

    return True


def validate_auction_extended_payload(new_end_time: Any) -> bool:
    if isinstance(new_end_time, bool) or not isinstance(new_end_time, int) or new_end_time <= 0:
        logger.error(f"Invalid timestamp: {new_end_time}")
        return False

    try:
        datetime.fromtimestamp(new_end_time, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.error(f"Invalid date conversion for timestamp: {new_end_time}")
        return False

    return True
