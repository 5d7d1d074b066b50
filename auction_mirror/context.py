#!/usr/bin/env python3
"""
Wires settings, database, event source, reconciler and contract service
together. Built once per process by the CLI and by the API lifespan.
"""

import logging
from dataclasses import dataclass

from .api.services.contract_service import ContractService
from .config import Settings
from .database import AuctionStore, Database
from .indexer.event_source import Web3EventSource
from .indexer.reconciler import AuctionReconciler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    settings: Settings
    database: Database
    store: AuctionStore
    event_source: Web3EventSource
    reconciler: AuctionReconciler
    contract_service: ContractService

    async def run_listener(self) -> None:
        """Bootstrap the reconciler, then stream events until closed"""
        self.settings.require_listener_config()
        await self.reconciler.reattach_and_listen()
        await self.event_source.run_forever()

    async def close(self) -> None:
        await self.event_source.close()
        await self.database.dispose()
        logger.info("🛑 Service context closed")


def build_context(settings: Settings) -> ServiceContext:
    database = Database(settings.async_database_url, echo=settings.sql_debug)
    store = AuctionStore(database.session_factory)
    event_source = Web3EventSource(
        settings.ws_url,
        reconnect_base_delay=settings.reconnect_base_delay,
        reconnect_max_delay=settings.reconnect_max_delay,
    )
    reconciler = AuctionReconciler(
        store,
        event_source,
        nft_contract=settings.nft_contract,
        auction_factory=settings.auction_factory,
        attach_delay=settings.attach_delay,
    )
    contract_service = ContractService(
        store,
        event_source.connect,
        nft_address=settings.nft_contract,
        private_key=settings.private_key,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay,
    )
    return ServiceContext(
        settings=settings,
        database=database,
        store=store,
        event_source=event_source,
        reconciler=reconciler,
        contract_service=contract_service,
    )
