#!/usr/bin/env python3
"""
Admin write path against the NFT contract: sale prices and the whitelist,
plus the read endpoints backed by the record store.
"""

import asyncio
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from web3 import AsyncWeb3, Web3

from ...abi import load_abi
from ...database import AuctionStore
from ...errors import (
    AuctionMirrorError, ContractOperationError, ForbiddenOperationError, InvalidInputError,
    MissingConfigurationError, PersistenceError, ProviderConnectionError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
WHITELIST_ROLE_ID = Web3.keccak(text="WHITELIST_ROLE")

OPERATION_ADD_WHITELIST = "Add to whitelist"
OPERATION_REMOVE_WHITELIST = "Remove from whitelist"
OPERATION_CHECK_WHITELIST = "Check whitelist status"
OPERATION_UPDATE_PRIVATE_PRICE = "Update private price"
OPERATION_UPDATE_PUBLIC_PRICE = "Update public price"
OPERATION_UPDATE_BOTH_PRICES = "Update NFT prices"
OPERATION_CHECK_ROLE = "Check whitelister role"

MSG_ALREADY_WHITELISTED = "Address is already whitelisted"
MSG_NOT_WHITELISTED = "Address was not in the whitelist"
MSG_REMOVED = "Successfully removed address from whitelist"
MSG_ADDED_TO_WHITELIST = "Address added to whitelist"
MSG_NO_ADDRESSES = "No addresses provided"
MSG_INVALID_ETH_ADDRESS = "Invalid Ethereum address format"
MSG_INVALID_PRICE = "Invalid price format"
MSG_NEGATIVE_PRICE = "Price cannot be negative"
MSG_NETWORK_ERROR = "Failed to connect to the blockchain network"
MSG_NO_WHITELIST_ROLE = "Caller does not have WHITELIST_ROLE"

Connector = Callable[[], Awaitable[AsyncWeb3]]


def validate_ethereum_address(address: Any) -> None:
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address):
        raise InvalidInputError(MSG_INVALID_ETH_ADDRESS)


def parse_price(price: Any) -> int:
    """Validate an ether-denominated price string and return it in wei"""
    try:
        value = Decimal(str(price).strip()) if price is not None and str(price).strip() else None
    except (InvalidOperation, ValueError):
        value = None
    if value is None or not value.is_finite():
        raise InvalidInputError(MSG_INVALID_PRICE)
    if value < 0:
        raise InvalidInputError(MSG_NEGATIVE_PRICE)
    try:
        return Web3.to_wei(value, "ether")
    except ValueError as e:
        raise InvalidInputError(MSG_INVALID_PRICE, e) from e


def _receipt_summary(receipt: Any) -> Dict[str, Any]:
    tx_hash = receipt.get("transactionHash")
    return {
        "success": True,
        "transactionHash": Web3.to_hex(tx_hash) if isinstance(tx_hash, (bytes, bytearray)) else tx_hash,
        "blockNumber": receipt.get("blockNumber"),
    }


class ContractService:
    """Reads from the store and signs admin transactions for the NFT contract"""

    def __init__(
        self,
        store: AuctionStore,
        connect: Connector,
        nft_address: Optional[str],
        private_key: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.store = store
        self._connect = connect
        self.nft_address = nft_address
        self.private_key = private_key
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    # ------------------------------------------------------------------
    # Chain plumbing
    # ------------------------------------------------------------------

    async def validate_network_connection(self) -> AsyncWeb3:
        try:
            w3 = await self._connect()
            await w3.eth.chain_id
        except ProviderConnectionError:
            raise
        except Exception as e:
            logger.error(f"{MSG_NETWORK_ERROR}: {e}")
            raise ProviderConnectionError(e) from e
        return w3

    async def _get_contract(self):
        if not self.nft_address:
            raise MissingConfigurationError("NFT_CONTRACT not set")
        w3 = await self._connect()
        return w3.eth.contract(address=Web3.to_checksum_address(self.nft_address), abi=load_abi('nft'))

    async def _send_transaction(self, fn_call) -> Any:
        """Sign, send and wait for one contract call; a reverted receipt raises"""
        if not self.private_key:
            raise MissingConfigurationError("PRIVATE_KEY not set")
        w3 = await self._connect()
        account = w3.eth.account.from_key(self.private_key)
        tx = await fn_call.build_transaction({
            "from": account.address,
            "nonce": await w3.eth.get_transaction_count(account.address),
        })
        signed = account.sign_transaction(tx)
        tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = await w3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt.get("status") != 1:
            raise RuntimeError(f"Transaction {Web3.to_hex(tx_hash)} reverted")
        logger.info(f"✅ Transaction {Web3.to_hex(tx_hash)} mined in block {receipt.get('blockNumber')}")
        return receipt

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
        contract_address: Optional[str] = None,
    ) -> T:
        """Run operation up to max_retries times, sleeping retry_delay * attempt between tries"""
        contract_address = contract_address or self.nft_address or "unknown"
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = e
                logger.warning(f"{operation_name} attempt {attempt} failed: {e}")
                if attempt == self.max_retries:
                    break
                await asyncio.sleep(self.retry_delay * attempt)

        raise ContractOperationError(operation_name, contract_address, last_error)

    async def assert_whitelister_role(self, caller_address: str) -> None:
        validate_ethereum_address(caller_address)
        try:
            contract = await self._get_contract()
            has_role = await contract.functions.hasRole(
                WHITELIST_ROLE_ID, Web3.to_checksum_address(caller_address)
            ).call()
        except AuctionMirrorError:
            raise
        except Exception as e:
            logger.error(f"Error checking WHITELIST_ROLE for {caller_address}: {e}")
            raise ContractOperationError(OPERATION_CHECK_ROLE, self.nft_address, e) from e

        if not has_role:
            raise ForbiddenOperationError(MSG_NO_WHITELIST_ROLE)

    async def _is_whitelisted(self, address: str) -> bool:
        contract = await self._get_contract()
        checksummed = Web3.to_checksum_address(address)
        return await self.execute_with_retry(
            lambda: contract.functions.whitelist(checksummed).call(),
            OPERATION_CHECK_WHITELIST,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_available_nfts(self) -> List[Dict[str, Any]]:
        try:
            await self.validate_network_connection()
            nfts = await self.store.find_all_nfts()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError("fetch", "NFTs", e) from e
        return [nft.to_dict() for nft in nfts]

    async def fetch_ongoing_auctions(self) -> List[Dict[str, Any]]:
        """All auctions, newest first"""
        try:
            await self.validate_network_connection()
            auctions = await self.store.find_all_auctions()
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError("fetch", "Auctions", e) from e
        return [auction.to_dict() for auction in auctions]

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    async def _update_price(self, operation_name: str, build_call: Callable[[Any], Any]) -> Dict[str, Any]:
        await self.validate_network_connection()
        contract = await self._get_contract()
        logger.info(f"{operation_name} for nft contract at {contract.address}")

        receipt = await self.execute_with_retry(
            lambda: self._send_transaction(build_call(contract)),
            operation_name,
            contract.address,
        )
        return _receipt_summary(receipt)

    async def update_nft_prices(self, caller_address: str, price_private: str, price_public: str) -> Dict[str, Any]:
        validate_ethereum_address(caller_address)
        private_wei = parse_price(price_private)
        public_wei = parse_price(price_public)
        return await self._update_price(
            OPERATION_UPDATE_BOTH_PRICES,
            lambda contract: contract.functions.setPrices(private_wei, public_wei),
        )

    async def update_nft_public_price(self, caller_address: str, price_public: str) -> Dict[str, Any]:
        validate_ethereum_address(caller_address)
        public_wei = parse_price(price_public)
        return await self._update_price(
            OPERATION_UPDATE_PUBLIC_PRICE,
            lambda contract: contract.functions.setPublicSalePrice(public_wei),
        )

    async def update_nft_private_price(self, caller_address: str, price_private: str) -> Dict[str, Any]:
        validate_ethereum_address(caller_address)
        private_wei = parse_price(price_private)
        return await self._update_price(
            OPERATION_UPDATE_PRIVATE_PRICE,
            lambda contract: contract.functions.setPrivateSalePrice(private_wei),
        )

    # ------------------------------------------------------------------
    # Whitelist
    # ------------------------------------------------------------------

    async def add_to_whitelist(self, caller_address: str, address: str) -> Dict[str, Any]:
        validate_ethereum_address(caller_address)
        validate_ethereum_address(address)

        await self.validate_network_connection()
        await self.assert_whitelister_role(caller_address)

        contract = await self._get_contract()
        logger.info(f"Add {address} to whitelist of nft contract at {contract.address}")

        if await self._is_whitelisted(address):
            return {"success": False, "message": MSG_ALREADY_WHITELISTED}

        try:
            await self.execute_with_retry(
                lambda: self._send_transaction(
                    contract.functions.addAddressToWhitelist(Web3.to_checksum_address(address))
                ),
                OPERATION_ADD_WHITELIST,
                contract.address,
            )
        except ContractOperationError as e:
            if MSG_ALREADY_WHITELISTED in str(e):
                return {"success": False, "message": MSG_ALREADY_WHITELISTED}
            logger.error(f"Error adding address to whitelist: {e}")
            raise

        return {"success": True, "message": MSG_ADDED_TO_WHITELIST}

    async def remove_from_whitelist(self, caller_address: str, address: Optional[str]) -> Dict[str, Any]:
        validate_ethereum_address(caller_address)
        if not address or not ADDRESS_PATTERN.match(address):
            return {"success": True, "message": MSG_NO_ADDRESSES, "removed": [], "notInWhitelist": []}

        await self.validate_network_connection()
        await self.assert_whitelister_role(caller_address)

        contract = await self._get_contract()
        if not await self._is_whitelisted(address):
            return {"success": True, "message": MSG_NOT_WHITELISTED, "removed": [], "notInWhitelist": [address]}

        await self.execute_with_retry(
            lambda: self._send_transaction(
                contract.functions.removeAddressFromWhitelist(Web3.to_checksum_address(address))
            ),
            OPERATION_REMOVE_WHITELIST,
            contract.address,
        )
        logger.info(f"Removed {address} from whitelist")
        return {"success": True, "message": MSG_REMOVED, "removed": [address], "notInWhitelist": []}
