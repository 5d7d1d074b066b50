#!/usr/bin/env python3
"""
Pydantic models for the contract admin endpoints.
Request fields are optional so blank or missing values reach the route's own
"Missing required fields" check instead of a 422.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PricesRequest(CamelModel):
    caller_address: Optional[str] = Field(None, alias="callerAddress")
    price_private: Optional[str] = Field(None, alias="pricePrivate", description="Private sale price in ETH")
    price_public: Optional[str] = Field(None, alias="pricePublic", description="Public sale price in ETH")


class PublicPriceRequest(CamelModel):
    caller_address: Optional[str] = Field(None, alias="callerAddress")
    price_public: Optional[str] = Field(None, alias="pricePublic")


class PrivatePriceRequest(CamelModel):
    caller_address: Optional[str] = Field(None, alias="callerAddress")
    price_private: Optional[str] = Field(None, alias="pricePrivate")


class WhitelistRequest(CamelModel):
    caller_address: Optional[str] = Field(None, alias="callerAddress")
    address: Optional[str] = Field(None, description="Address to add or remove")


class NftResponse(BaseModel):
    id: int
    tokenId: str
    owner: str
    mintedAt: Optional[datetime] = None


class AuctionResponse(BaseModel):
    id: int
    address: str
    tokenId: str
    creator: str
    status: str
    highestBid: str
    highestBidder: Optional[str] = None
    minBidIncrement: Optional[str] = None
    duration: int
    startedAt: Optional[datetime] = None
    endedAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None


class TransactionResponse(BaseModel):
    success: bool
    transactionHash: Optional[str] = None
    blockNumber: Optional[int] = None


class WhitelistAddResponse(BaseModel):
    success: bool
    message: str


class WhitelistRemoveResponse(BaseModel):
    success: bool
    message: str
    removed: List[str] = []
    notInWhitelist: List[str] = []


class ErrorResponse(BaseModel):
    statusCode: int
    message: str
    timestamp: datetime
