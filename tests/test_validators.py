#!/usr/bin/env python3
"""
Unit tests for event payload validators
"""

import pytest

from auction_mirror.indexer import validators

from .conftest import AUCTION_ADDRESS, BIDDER, CREATOR

CHECKSUMMED = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


class TestAddresses:

    @pytest.mark.parametrize("address", [CREATOR, CHECKSUMMED, CHECKSUMMED.lower()])
    def test_valid_addresses(self, address):
        assert validators.is_valid_address(address)

    @pytest.mark.parametrize("address", [
        None,
        "",
        "not-an-address",
        "0x123",
        "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeD",  # bad checksum
        "0x" + "zz" * 20,
        12345,
    ])
    def test_invalid_addresses(self, address):
        assert not validators.is_valid_address(address)


class TestAuctionCreated:

    def test_valid_payload(self):
        assert validators.validate_auction_created_payload(AUCTION_ADDRESS, CREATOR, "7", 3600, "0.01")

    def test_non_address_creator(self):
        assert not validators.validate_auction_created_payload(AUCTION_ADDRESS, "bob", "7", 3600, "0.01")

    def test_negative_min_increment(self):
        assert not validators.validate_auction_created_payload(AUCTION_ADDRESS, CREATOR, "7", 3600, "-1")

    @pytest.mark.parametrize("duration", [0, -5, "abc", None])
    def test_non_positive_duration(self, duration):
        assert not validators.validate_auction_created_payload(AUCTION_ADDRESS, CREATOR, "7", duration, "0.01")

    @pytest.mark.parametrize("token_id", ["", "   ", None, "seven"])
    def test_bad_token_id(self, token_id):
        assert not validators.validate_auction_created_payload(AUCTION_ADDRESS, CREATOR, token_id, 3600, "0.01")

    def test_zero_min_increment_allowed(self):
        assert validators.validate_auction_created_payload(AUCTION_ADDRESS, CREATOR, "7", 3600, "0")


class TestBids:

    def test_valid_bid(self):
        assert validators.validate_bid_placed_payload(BIDDER, "1.5")

    @pytest.mark.parametrize("amount", ["-0.1", "NaN", "Infinity", "", None, True])
    def test_bad_bid_amount(self, amount):
        assert not validators.validate_bid_placed_payload(BIDDER, amount)

    def test_bad_winner(self):
        assert not validators.validate_auction_ended_payload("0x0", "1")

    def test_valid_end(self):
        assert validators.validate_auction_ended_payload(BIDDER, "0")


class TestExtended:

    def test_valid_timestamp(self):
        assert validators.validate_auction_extended_payload(1748779200)

    @pytest.mark.parametrize("value", [0, -1, "1748779200", 1.5, True, None])
    def test_rejects_non_positive_or_non_integer(self, value):
        assert not validators.validate_auction_extended_payload(value)

    def test_rejects_unrepresentable_date(self):
        assert not validators.validate_auction_extended_payload(10 ** 20)


class TestTransfer:

    def test_valid_transfer(self):
        assert validators.validate_transfer_payload(BIDDER, "1")

    def test_bad_recipient(self):
        assert not validators.validate_transfer_payload("nobody", "1")
