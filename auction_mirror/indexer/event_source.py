#!/usr/bin/env python3
"""
Streaming contract event source over a WebSocket JSON-RPC connection.
Each subscription is an eth_subscribe("logs") filter on one contract address
and one event topic; delivered logs are decoded and handed to the registered
handler as a separate task.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set

from web3 import AsyncWeb3, WebSocketProvider
from web3.exceptions import Web3Exception
from websockets.exceptions import ConnectionClosed

from ..errors import ProviderConnectionError
from .events import EventArgs, EventKind, event_topic, short_address

logger = logging.getLogger(__name__)

Handler = Callable[[EventArgs], Awaitable[Any]]


@dataclass(frozen=True)
class NetworkStatus:
    chain_id: int
    block_number: int


class EventSource(Protocol):
    """Capability the reconciler needs from the chain"""

    async def get_network_status(self) -> NetworkStatus:
        ...

    async def subscribe(self, contract_address: str, abi: List[dict], event: EventKind, handler: Handler) -> str:
        ...


@dataclass
class _Registration:
    address: str
    event: EventKind
    topic: str
    decoder: Any
    handler: Handler
    subscription_id: Optional[str] = None
    connection: Any = None


class Web3EventSource:
    """EventSource backed by web3's persistent WebSocket provider"""

    def __init__(
        self,
        ws_url: str,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 60.0,
    ):
        self.ws_url = ws_url
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.w3: Optional[AsyncWeb3] = None
        self._registrations: List[_Registration] = []
        self._by_subscription: Dict[str, _Registration] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._needs_resubscribe = False
        self._closing = False
        self._connect_lock: Optional[asyncio.Lock] = None

    async def connect(self) -> AsyncWeb3:
        if self.w3 is not None:
            return self.w3
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        async with self._connect_lock:
            if self.w3 is not None:
                return self.w3
            try:
                self.w3 = await AsyncWeb3(WebSocketProvider(self.ws_url))
            except Exception as e:
                raise ProviderConnectionError(e) from e
            logger.info(f"WebSocket connection established to {self.ws_url}")
            return self.w3

    async def get_network_status(self) -> NetworkStatus:
        w3 = await self.connect()
        try:
            chain_id = await w3.eth.chain_id
            block_number = await w3.eth.block_number
        except Exception as e:
            raise ProviderConnectionError(e) from e
        return NetworkStatus(chain_id=chain_id, block_number=block_number)

    async def subscribe(self, contract_address: str, abi: List[dict], event: EventKind, handler: Handler) -> str:
        w3 = await self.connect()
        address = AsyncWeb3.to_checksum_address(contract_address)
        contract = w3.eth.contract(address=address, abi=abi)
        registration = _Registration(
            address=address,
            event=event,
            topic=event_topic(abi, event.value),
            decoder=getattr(contract.events, event.value)(),
            handler=handler,
        )
        await self._activate(registration)
        self._registrations.append(registration)
        return registration.subscription_id

    async def _activate(self, registration: _Registration) -> None:
        w3 = self.w3
        sub_id = await w3.eth.subscribe("logs", {"address": registration.address, "topics": [registration.topic]})
        registration.subscription_id = sub_id
        registration.connection = w3
        self._by_subscription[sub_id] = registration
        logger.debug(f"Subscribed {registration.event.value} on {short_address(registration.address)} ({sub_id})")

    async def _resubscribe(self) -> None:
        # registrations made during back-off are already live on this socket
        stale = [r for r in self._registrations if r.connection is not self.w3]
        self._by_subscription = {
            r.subscription_id: r for r in self._registrations if r.connection is self.w3
        }
        for registration in stale:
            await self._activate(registration)
        logger.info(f"🔄 Restored {len(stale)} subscriptions after reconnect")

    def _dispatch(self, payload: Dict[str, Any]) -> None:
        registration = self._by_subscription.get(payload.get("subscription"))
        if registration is None:
            logger.debug(f"Ignoring message for unknown subscription {payload.get('subscription')}")
            return

        try:
            decoded = registration.decoder.process_log(payload["result"])
        except Exception as e:
            logger.error(f"Failed to decode {registration.event.value} log from {short_address(registration.address)}: {e}")
            return

        task = asyncio.create_task(registration.handler(dict(decoded["args"])))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Unhandled error in event handler: {error}")

    async def _drop_connection(self) -> None:
        w3, self.w3 = self.w3, None
        if w3 is None:
            return
        self._needs_resubscribe = True
        try:
            await w3.provider.disconnect()
        except Exception as e:
            logger.debug(f"Ignoring error while closing socket: {e}")

    async def run_forever(self) -> None:
        """Read the subscription stream until close(), reconnecting with back-off"""
        attempt = 0
        while not self._closing:
            try:
                w3 = await self.connect()
                if self._needs_resubscribe:
                    await self._resubscribe()
                    self._needs_resubscribe = False
                attempt = 0
                async for payload in w3.socket.process_subscriptions():
                    self._dispatch(payload)
                if not self._closing:
                    raise ProviderConnectionError(RuntimeError("subscription stream ended"))
            except asyncio.CancelledError:
                raise
            except (ProviderConnectionError, ConnectionClosed, OSError, Web3Exception) as e:
                if self._closing:
                    break
                attempt += 1
                delay = min(
                    self.reconnect_base_delay * (2 ** attempt) + random.uniform(0, 1),
                    self.reconnect_max_delay,
                )
                logger.warning(f"⚠️  Event stream interrupted: {e}. Reconnect attempt {attempt} in {delay:.1f}s")
                await self._drop_connection()
                await asyncio.sleep(delay)

    async def close(self) -> None:
        self._closing = True
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._drop_connection()
