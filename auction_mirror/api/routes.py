#!/usr/bin/env python3
"""
Contract endpoints: mirrored NFT/auction reads and admin sale operations.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from .models import (
    AuctionResponse, NftResponse, PricesRequest, PrivatePriceRequest, PublicPriceRequest,
    TransactionResponse, WhitelistAddResponse, WhitelistRemoveResponse, WhitelistRequest,
)
from .services.contract_service import ContractService

router = APIRouter()
logger = logging.getLogger(__name__)

MSG_MISSING_FIELD = "Missing required fields"


def get_contract_service(request: Request) -> ContractService:
    return request.app.state.context.contract_service


def require_fields(*values: Optional[str]) -> None:
    """Reject the request when any value is missing or blank"""
    if any(value is None or not str(value).strip() for value in values):
        raise HTTPException(status_code=400, detail=MSG_MISSING_FIELD)


@router.get("/nfts", response_model=List[NftResponse])
async def get_available_nfts(service: ContractService = Depends(get_contract_service)):
    return await service.fetch_available_nfts()


@router.get("/auctions", response_model=List[AuctionResponse])
async def get_ongoing_auctions(service: ContractService = Depends(get_contract_service)):
    """All mirrored auctions, newest first"""
    return await service.fetch_ongoing_auctions()


@router.post("/admin/sales/prices", response_model=TransactionResponse)
async def update_nft_prices(
    body: Optional[PricesRequest] = None,
    service: ContractService = Depends(get_contract_service),
):
    body = body or PricesRequest()
    require_fields(body.caller_address, body.price_private, body.price_public)
    return await service.update_nft_prices(body.caller_address, body.price_private, body.price_public)


@router.patch("/admin/sales/price/public", response_model=TransactionResponse)
async def update_nft_public_price(
    body: Optional[PublicPriceRequest] = None,
    service: ContractService = Depends(get_contract_service),
):
    body = body or PublicPriceRequest()
    require_fields(body.caller_address, body.price_public)
    return await service.update_nft_public_price(body.caller_address, body.price_public)


@router.patch("/admin/sales/price/private", response_model=TransactionResponse)
async def update_nft_private_price(
    body: Optional[PrivatePriceRequest] = None,
    service: ContractService = Depends(get_contract_service),
):
    body = body or PrivatePriceRequest()
    require_fields(body.caller_address, body.price_private)
    return await service.update_nft_private_price(body.caller_address, body.price_private)


@router.post("/admin/sales/whitelist", response_model=WhitelistAddResponse)
async def add_to_whitelist(
    body: Optional[WhitelistRequest] = None,
    service: ContractService = Depends(get_contract_service),
) -> Dict[str, Any]:
    body = body or WhitelistRequest()
    require_fields(body.caller_address, body.address)
    return await service.add_to_whitelist(body.caller_address, body.address)


@router.delete("/admin/sales/whitelist", response_model=WhitelistRemoveResponse)
async def remove_from_whitelist(
    body: Optional[WhitelistRequest] = None,
    service: ContractService = Depends(get_contract_service),
) -> Dict[str, Any]:
    body = body or WhitelistRequest()
    require_fields(body.caller_address, body.address)
    return await service.remove_from_whitelist(body.caller_address, body.address)
