#!/usr/bin/env python3
"""
Tests for the admin write path with mocked contract calls
"""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import Web3

from auction_mirror.api.services import contract_service as cs
from auction_mirror.api.services.contract_service import ContractService, parse_price
from auction_mirror.errors import (
    ContractOperationError, ForbiddenOperationError, InvalidInputError, PersistenceError, ProviderConnectionError,
)

from .conftest import BIDDER, CREATOR, NFT_ADDRESS, NOW

ADMIN = "0x" + "ad" * 20
TX_HASH = b"\x12" * 32


class FakeEth:
    def __init__(self, chain_id=31337):
        self._chain_id = chain_id

    @property
    def chain_id(self):
        async def value():
            return self._chain_id
        return value()


def call_returning(value):
    """contract.functions.X(...) whose .call() resolves to value"""
    return MagicMock(return_value=MagicMock(call=AsyncMock(return_value=value)))


@pytest.fixture
def contract():
    contract = MagicMock()
    contract.address = Web3.to_checksum_address(NFT_ADDRESS)
    contract.functions.hasRole = call_returning(True)
    contract.functions.whitelist = call_returning(False)
    return contract


@pytest.fixture
def connect():
    return AsyncMock(return_value=SimpleNamespace(eth=FakeEth()))


@pytest.fixture
def service(store, connect, contract):
    service = ContractService(store, connect, NFT_ADDRESS, private_key="0x" + "01" * 32, retry_delay=0)
    service._get_contract = AsyncMock(return_value=contract)
    service._send_transaction = AsyncMock(
        return_value={"transactionHash": TX_HASH, "blockNumber": 42, "status": 1}
    )
    return service


class TestPriceParsing:

    def test_converts_ether_to_wei(self):
        assert parse_price("0.5") == 5 * 10 ** 17
        assert parse_price(" 2 ") == 2 * 10 ** 18

    @pytest.mark.parametrize("price", ["abc", "", None, "NaN"])
    def test_invalid_format(self, price):
        with pytest.raises(InvalidInputError, match=cs.MSG_INVALID_PRICE):
            parse_price(price)

    def test_negative(self):
        with pytest.raises(InvalidInputError, match=cs.MSG_NEGATIVE_PRICE):
            parse_price("-1")


class TestRemoveShortCircuit:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("address", ["", None, "0x123", "not-an-address"])
    async def test_no_address_returns_without_side_effects(self, service, store, connect, contract, address):
        result = await service.remove_from_whitelist(ADMIN, address)

        assert result == {"success": True, "message": "No addresses provided", "removed": [], "notInWhitelist": []}
        connect.assert_not_awaited()
        service._get_contract.assert_not_awaited()
        service._send_transaction.assert_not_awaited()
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_invalid_caller_still_rejected(self, service):
        with pytest.raises(InvalidInputError, match=cs.MSG_INVALID_ETH_ADDRESS):
            await service.remove_from_whitelist("admin", "")


class TestRetry:

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, service):
        operation = AsyncMock(side_effect=[ConnectionError("timeout"), ConnectionError("timeout"), "ok"])

        assert await service.execute_with_retry(operation, "Ping") == "ok"
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, service):
        operation = AsyncMock(side_effect=ConnectionError("nonce too low"))

        with pytest.raises(ContractOperationError) as excinfo:
            await service.execute_with_retry(operation, "Ping", NFT_ADDRESS)

        assert operation.await_count == 3
        assert excinfo.value.operation == "Ping"
        assert "nonce too low" in str(excinfo.value)


class TestPrices:

    @pytest.mark.asyncio
    async def test_update_both_prices(self, service, contract):
        result = await service.update_nft_prices(ADMIN, "0.1", "0.2")

        contract.functions.setPrices.assert_called_with(10 ** 17, 2 * 10 ** 17)
        service._send_transaction.assert_awaited_once()
        assert result == {"success": True, "transactionHash": Web3.to_hex(TX_HASH), "blockNumber": 42}

    @pytest.mark.asyncio
    async def test_update_public_price(self, service, contract):
        await service.update_nft_public_price(ADMIN, "1")
        contract.functions.setPublicSalePrice.assert_called_with(10 ** 18)

    @pytest.mark.asyncio
    async def test_update_private_price(self, service, contract):
        await service.update_nft_private_price(ADMIN, "0")
        contract.functions.setPrivateSalePrice.assert_called_with(0)

    @pytest.mark.asyncio
    async def test_bad_price_rejected_before_chain(self, service, connect):
        with pytest.raises(InvalidInputError):
            await service.update_nft_prices(ADMIN, "-1", "0.2")
        connect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_transaction_raises_after_retries(self, service):
        service._send_transaction.side_effect = RuntimeError("reverted")

        with pytest.raises(ContractOperationError):
            await service.update_nft_public_price(ADMIN, "1")
        assert service._send_transaction.await_count == 3

    @pytest.mark.asyncio
    async def test_unreachable_network(self, service, connect):
        connect.side_effect = OSError("connection refused")

        with pytest.raises(ProviderConnectionError):
            await service.update_nft_public_price(ADMIN, "1")


class TestWhitelist:

    @pytest.mark.asyncio
    async def test_add_new_address(self, service, contract):
        result = await service.add_to_whitelist(ADMIN, BIDDER)

        assert result == {"success": True, "message": cs.MSG_ADDED_TO_WHITELIST}
        contract.functions.addAddressToWhitelist.assert_called_with(Web3.to_checksum_address(BIDDER))
        contract.functions.hasRole.assert_called_with(cs.WHITELIST_ROLE_ID, Web3.to_checksum_address(ADMIN))

    @pytest.mark.asyncio
    async def test_add_already_whitelisted(self, service, contract):
        contract.functions.whitelist = call_returning(True)

        result = await service.add_to_whitelist(ADMIN, BIDDER)

        assert result == {"success": False, "message": cs.MSG_ALREADY_WHITELISTED}
        service._send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_caller_without_role_is_forbidden(self, service, contract):
        contract.functions.hasRole = call_returning(False)

        with pytest.raises(ForbiddenOperationError, match=cs.MSG_NO_WHITELIST_ROLE):
            await service.add_to_whitelist(ADMIN, BIDDER)
        service._send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_role_check_failure_is_contract_error(self, service, contract):
        contract.functions.hasRole = MagicMock(return_value=MagicMock(call=AsyncMock(side_effect=ValueError("execution reverted"))))

        with pytest.raises(ContractOperationError) as excinfo:
            await service.add_to_whitelist(ADMIN, BIDDER)
        assert excinfo.value.operation == cs.OPERATION_CHECK_ROLE

    @pytest.mark.asyncio
    async def test_add_invalid_address(self, service):
        with pytest.raises(InvalidInputError):
            await service.add_to_whitelist(ADMIN, "0x1234")

    @pytest.mark.asyncio
    async def test_remove_whitelisted_address(self, service, contract):
        contract.functions.whitelist = call_returning(True)

        result = await service.remove_from_whitelist(ADMIN, BIDDER)

        assert result == {"success": True, "message": cs.MSG_REMOVED, "removed": [BIDDER], "notInWhitelist": []}
        contract.functions.removeAddressFromWhitelist.assert_called_with(Web3.to_checksum_address(BIDDER))

    @pytest.mark.asyncio
    async def test_remove_address_not_in_whitelist(self, service):
        result = await service.remove_from_whitelist(ADMIN, BIDDER)

        assert result == {"success": True, "message": cs.MSG_NOT_WHITELISTED, "removed": [], "notInWhitelist": [BIDDER]}
        service._send_transaction.assert_not_awaited()


class TestReads:

    @pytest.mark.asyncio
    async def test_fetch_nfts(self, service, store):
        await store.insert_nft({"token_id": "7", "owner": CREATOR, "minted_at": NOW})

        nfts = await service.fetch_available_nfts()

        assert nfts == [{"id": 1, "tokenId": "7", "owner": CREATOR, "mintedAt": NOW}]

    @pytest.mark.asyncio
    async def test_fetch_auctions_newest_first(self, service, store):
        store.add_auction(address="0x" + "01" * 20, created_at=NOW - timedelta(days=1))
        store.add_auction(address="0x" + "02" * 20, created_at=NOW)

        auctions = await service.fetch_ongoing_auctions()

        assert [a["address"] for a in auctions] == ["0x" + "02" * 20, "0x" + "01" * 20]
        assert auctions[0]["status"] == "created"

    @pytest.mark.asyncio
    async def test_network_failure_becomes_persistence_error(self, service, connect):
        connect.side_effect = OSError("connection refused")

        with pytest.raises(PersistenceError, match="Failed to fetch NFTs"):
            await service.fetch_available_nfts()

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, service, store):
        store.fail("find_all_auctions")

        with pytest.raises(PersistenceError):
            await service.fetch_ongoing_auctions()
