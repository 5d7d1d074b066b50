#!/usr/bin/env python3
"""
Error types shared by the listener core and the admin write path.
"""

from typing import Optional


def _reason(cause: Optional[BaseException]) -> str:
    if cause is None:
        return "unknown"
    return str(cause) or type(cause).__name__


class AuctionMirrorError(Exception):
    """Base class for all service errors"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class MissingConfigurationError(AuctionMirrorError):
    def __init__(self, detail: str):
        super().__init__(f"Missing configuration | Reason: {detail}")


class ProviderConnectionError(AuctionMirrorError):
    """Event source / RPC endpoint is unreachable"""

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to connect to provider | Reason: {_reason(cause)}", cause)


class PersistenceError(AuctionMirrorError):
    """A store read or write failed. Carries the operation and entity for diagnosis."""

    def __init__(self, operation: str, entity: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to {operation} {entity} | Reason: {_reason(cause)}", cause)
        self.operation = operation
        self.entity = entity


class AuctionListenerError(AuctionMirrorError):
    """Unexpected exception raised inside a contract event handler"""

    def __init__(self, contract_address: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Failed to handle event from contract {contract_address} | Reason: {_reason(cause)}",
            cause,
        )
        self.contract_address = contract_address


class ContractOperationError(AuctionMirrorError):
    def __init__(self, operation: str, contract_address: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Failed to {operation} on contract {contract_address} | Reason: {_reason(cause)}",
            cause,
        )
        self.operation = operation
        self.contract_address = contract_address


class InvalidInputError(AuctionMirrorError):
    """Rejected request input (address or price format)"""


class ForbiddenOperationError(AuctionMirrorError):
    """Caller lacks the on-chain role required for an admin operation"""
