from .contract_service import ContractService

__all__ = ["ContractService"]
