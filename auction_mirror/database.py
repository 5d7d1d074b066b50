#!/usr/bin/env python3
"""
Database models, connection and the persisted record store used by the listener.
Every store operation is a single-row statement in its own transaction.
"""

import enum
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    BigInteger, Column, DateTime, Enum, Integer, Numeric, String, func, select, text, update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .errors import PersistenceError

logger = logging.getLogger(__name__)

# SQLAlchemy base
Base = declarative_base()


class AuctionStatus(str, enum.Enum):
    CREATED = "created"
    ACTIVE = "active"
    EXTENDED = "extended"
    ENDED = "ended"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (AuctionStatus.ENDED, AuctionStatus.CANCELLED)
OPEN_STATUSES = (AuctionStatus.CREATED, AuctionStatus.ACTIVE, AuctionStatus.EXTENDED)


def utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Columns are TIMESTAMP WITHOUT TIME ZONE holding UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Nft(Base):
    __tablename__ = "nft"

    id = Column(Integer, primary_key=True)
    token_id = Column("tokenId", String(64), key="token_id", unique=True, nullable=False)
    owner = Column(String(42), nullable=False)
    minted_at = Column("mintedAt", DateTime, key="minted_at", nullable=False, server_default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tokenId": self.token_id,
            "owner": self.owner,
            "mintedAt": as_utc(self.minted_at),
        }


class Auction(Base):
    __tablename__ = "auctions"

    id = Column(Integer, primary_key=True)
    address = Column(String(42), unique=True, nullable=False)
    token_id = Column("tokenId", String(64), key="token_id", nullable=False)
    creator = Column(String(42), nullable=False)
    status = Column(
        Enum(AuctionStatus, name="auctions_status_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AuctionStatus.CREATED,
    )
    highest_bid = Column("highestBid", Numeric(18, 8), key="highest_bid", nullable=False, default=0)
    highest_bidder = Column("highestBidder", String(42), key="highest_bidder", nullable=True)
    min_bid_increment = Column("minBidIncrement", Numeric(18, 8), key="min_bid_increment", nullable=False, default=0.01)
    duration = Column(BigInteger, nullable=False, default=259200)  # 3 days in seconds
    started_at = Column("startedAt", DateTime, key="started_at", nullable=True)
    ended_at = Column("endedAt", DateTime, key="ended_at", nullable=True)
    cancelled_at = Column("cancelledAt", DateTime, key="cancelled_at", nullable=True)
    created_at = Column("createdAt", DateTime, key="created_at", nullable=False, server_default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "tokenId": self.token_id,
            "creator": self.creator,
            "status": AuctionStatus(self.status).value,
            "highestBid": str(self.highest_bid) if self.highest_bid is not None else "0",
            "highestBidder": self.highest_bidder,
            "minBidIncrement": str(self.min_bid_increment) if self.min_bid_increment is not None else None,
            "duration": self.duration,
            "startedAt": as_utc(self.started_at),
            "endedAt": as_utc(self.ended_at),
            "cancelledAt": as_utc(self.cancelled_at),
            "createdAt": as_utc(self.created_at),
        }


class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True)
    wallet_address = Column("walletAddress", String(42), key="wallet_address", unique=True, nullable=False)
    created_at = Column("createdAt", DateTime, key="created_at", nullable=False, server_default=func.now())


def _db_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: utc_naive(value) if isinstance(value, datetime) else value for key, value in fields.items()}


class Database:
    """Async engine and session factory, created once at startup"""

    def __init__(self, url: str, echo: bool = False):
        self.engine = create_async_engine(
            url,
            echo=echo,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def check_connection(self) -> bool:
        try:
            async with self.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("✅ Schema created (nft, auctions, user)")

    async def dispose(self) -> None:
        await self.engine.dispose()


class AuctionStore:
    """Narrow upsert/find/update operations over NFT, Auction and User records"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def find_auctions_by_status(self, statuses: Iterable[AuctionStatus]) -> List[Auction]:
        wanted = list(statuses)
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Auction).where(Auction.status.in_(wanted)))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("fetch", "auctions", e) from e

    async def find_all_auctions(self) -> List[Auction]:
        """All auctions, newest first"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Auction).order_by(Auction.created_at.desc()))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("fetch", "Auctions", e) from e

    async def find_all_nfts(self) -> List[Nft]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Nft).order_by(Nft.id))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("fetch", "NFTs", e) from e

    async def insert_auction(self, fields: Dict[str, Any]) -> bool:
        """Insert an auction; a duplicate address is a no-op. Returns True when a row was created."""
        stmt = pg_insert(Auction).values(**_db_fields(fields)).on_conflict_do_nothing(index_elements=["address"])
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise PersistenceError("persist", f"auction {fields.get('address')}", e) from e

    async def update_auction_by_address(
        self,
        address: str,
        fields: Dict[str, Any],
        from_statuses: Optional[Iterable[AuctionStatus]] = None,
    ) -> int:
        """Update one auction. When from_statuses is given the row must currently be in one of them."""
        stmt = update(Auction).where(Auction.address == address)
        if from_statuses is not None:
            stmt = stmt.where(Auction.status.in_(list(from_statuses)))
        stmt = stmt.values(**_db_fields(fields)).execution_options(synchronize_session=False)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as e:
            raise PersistenceError("update", f"auction {address}", e) from e

    async def find_nft_by_token_id(self, token_id: str) -> Optional[Nft]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Nft).where(Nft.token_id == token_id))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError("fetch", f"NFT {token_id}", e) from e

    async def insert_nft(self, fields: Dict[str, Any]) -> None:
        """Insert an NFT; a concurrent insert of the same token only moves the owner"""
        stmt = pg_insert(Nft).values(**_db_fields(fields))
        stmt = stmt.on_conflict_do_update(index_elements=["tokenId"], set_={"owner": stmt.excluded.owner})
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError("persist", f"NFT {fields.get('token_id')}", e) from e

    async def update_nft_by_token_id(self, token_id: str, fields: Dict[str, Any]) -> int:
        stmt = (
            update(Nft)
            .where(Nft.token_id == token_id)
            .values(**_db_fields(fields))
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as e:
            raise PersistenceError("update", f"NFT {token_id}", e) from e

    async def upsert_user_by_address(self, address: str) -> None:
        stmt = pg_insert(User).values(wallet_address=address).on_conflict_do_nothing(index_elements=["walletAddress"])
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError("persist", f"user {address}", e) from e
