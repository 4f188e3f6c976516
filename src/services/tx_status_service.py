"""Live status of a broadcast transaction.

``TxStatusTracker`` follows one transaction id at a time through
``idle -> subscribing -> waiting -> resolved``. A push update with a
non-pending status resolves it exactly once and releases the subscription.
Tracking another id releases the previous subscription first, late updates
for the old id are ignored.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from core import constants
from core.constants import TxStatusState
from schemas.transaction import TxResult
from services.socket_manager import (
    StacksWebSocketClient,
    TxSubscription,
    connect_websocket_client,
)
from services.stacks_api_service import TransactionsApi
from services.transaction_service import TransactionFetcher
from utils.tx_utils import tx_url

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], Awaitable[StacksWebSocketClient]]


class TxStatusTracker:
    def __init__(
        self,
        fetcher: Optional[TransactionFetcher] = None,
        client_factory: ClientFactory = connect_websocket_client,
        logger: logging.Logger = logger,
    ):
        self.fetcher = fetcher or TransactionsApi()
        self.client_factory = client_factory
        self.logger = logger

        self.state = TxStatusState.IDLE
        self.tx_id: Optional[str] = None
        self.explorer_url: Optional[str] = None
        self.tx_status: Optional[str] = None
        self.result: Optional[TxResult] = None

        self._generation = 0
        self._terminal_generation: Optional[int] = None
        self._client: Optional[StacksWebSocketClient] = None
        self._subscription: Optional[TxSubscription] = None
        self._resolved = asyncio.Event()

    @property
    def loading(self) -> bool:
        return self.state in (TxStatusState.SUBSCRIBING, TxStatusState.WAITING)

    async def track(self, tx_id: Optional[str]) -> None:
        await self.release()
        self._generation += 1
        generation = self._generation

        self.tx_id = tx_id
        self.tx_status = None
        self.result = None
        self._resolved = asyncio.Event()
        if not tx_id:
            self.state = TxStatusState.IDLE
            self.explorer_url = None
            return

        self.state = TxStatusState.SUBSCRIBING
        self.explorer_url = tx_url(tx_id)
        self.logger.info("Tracking status of %s", tx_id)

        client = None
        try:
            client = await self.client_factory()
            subscription = await client.subscribe_tx_updates(
                tx_id, lambda event: self.on_update(generation, event)
            )
        except Exception:
            # no retry, the tracker keeps showing the loading state
            self.logger.exception("Failed to subscribe to updates for %s", tx_id)
            await self._teardown(client, None)
            if generation == self._generation:
                self.state = TxStatusState.WAITING
            return

        if generation != self._generation:
            await self._teardown(client, subscription)
            return

        self._client = client
        self._subscription = subscription
        if self._terminal_generation == generation:
            # resolved by an update that raced the subscribe ack
            await self.release()
        elif self.state == TxStatusState.SUBSCRIBING:
            self.state = TxStatusState.WAITING

    async def on_update(self, generation: int, event: Optional[Dict[str, Any]]) -> None:
        if generation != self._generation or self._terminal_generation == generation:
            return
        tx_status = (event or {}).get("tx_status")
        self.logger.debug("tx %s update: %s", self.tx_id, tx_status)
        if not constants.is_terminal_status(tx_status):
            return

        self._terminal_generation = generation
        result = None
        if tx_status == constants.TX_STATUS_SUCCESS:
            try:
                api_data = await self.fetcher.get_transaction_by_id(self.tx_id)
                result = api_data.tx_result
            except Exception:
                self.logger.exception("Failed to fetch result of %s", self.tx_id)
        elif not constants.is_abort_status(tx_status):
            self.logger.warning("tx %s ended with status %s", self.tx_id, tx_status)

        if generation != self._generation:
            return
        self.tx_status = tx_status
        self.result = result
        self.state = TxStatusState.RESOLVED
        self._resolved.set()
        await self.release()

    async def release(self) -> None:
        client, subscription = self._client, self._subscription
        self._client = None
        self._subscription = None
        await self._teardown(client, subscription)

    async def _teardown(
        self,
        client: Optional[StacksWebSocketClient],
        subscription: Optional[TxSubscription],
    ) -> None:
        if subscription is not None:
            try:
                await subscription.unsubscribe()
            except Exception:
                self.logger.exception("Failed to unsubscribe from %s", subscription.subscription)
        if client is not None:
            try:
                await client.close()
            except Exception:
                self.logger.exception("Failed to close websocket client")

    async def wait_resolved(self, timeout: Optional[float] = None) -> Optional[TxResult]:
        await asyncio.wait_for(self._resolved.wait(), timeout)
        return self.result

    async def __aenter__(self) -> "TxStatusTracker":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.release()
