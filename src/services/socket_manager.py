import asyncio
import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import websockets

from core import constants
from core.config import settings
from utils.tx_utils import prefixed_tx_id

logger = logging.getLogger(__name__)

Subscription = Dict[str, Any]
WsMsg = Dict[str, Any]


class ActiveSubscription(NamedTuple):
    callback: Callable[[Any], Any]
    subscription_id: int


class WebSocketRequestError(Exception):
    pass


def subscription_to_identifier(subscription: Subscription) -> str:
    if subscription["event"] == constants.WS_EVENT_TX_UPDATE:
        return f'{constants.WS_EVENT_TX_UPDATE}:{subscription["tx_id"].lower()}'
    return subscription["event"]


def ws_msg_to_identifier(ws_msg: WsMsg) -> Optional[str]:
    method = ws_msg.get("method")
    if method == constants.WS_EVENT_TX_UPDATE:
        tx_id = (ws_msg.get("params") or {}).get("tx_id")
        if not tx_id:
            return None
        return f"{constants.WS_EVENT_TX_UPDATE}:{tx_id.lower()}"
    return method


class TxSubscription:
    """Handle for one ``tx_update`` subscription.

    Released at most once, either explicitly or when leaving ``async with``.
    """

    def __init__(self, client: "StacksWebSocketClient", subscription: Subscription, subscription_id: int):
        self.client = client
        self.subscription = subscription
        self.subscription_id = subscription_id
        self.active = True

    async def unsubscribe(self) -> bool:
        if not self.active:
            return False
        self.active = False
        return await self.client.unsubscribe(self.subscription, self.subscription_id)

    async def __aenter__(self) -> "TxSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.unsubscribe()


class StacksWebSocketClient:
    def __init__(self, ws_url: Optional[str] = None, logger: logging.Logger = logger):
        self.ws_url = ws_url or settings.STACKS_API_WS_URL
        self.logger = logger
        self.ws_ready = False
        self.websocket = None
        self.listen_task: Optional[asyncio.Task] = None
        self.request_id_counter = 0
        self.subscription_id_counter = 0
        self.pending_requests: Dict[int, asyncio.Future] = {}
        self.active_subscriptions: Dict[str, List[ActiveSubscription]] = defaultdict(list)
        self.callback_tasks: set = set()

    async def connect(self):
        self.websocket = await websockets.connect(self.ws_url)
        self.ws_ready = True
        self.logger.debug("WebSocket connection opened to %s", self.ws_url)
        self.listen_task = asyncio.create_task(self.listen())

    async def close(self):
        self.ws_ready = False
        if self.listen_task is not None:
            self.listen_task.cancel()
        if self.websocket is not None:
            await self.websocket.close()
        for future in self.pending_requests.values():
            if not future.done():
                future.cancel()
        self.pending_requests.clear()

    async def listen(self):
        async for message in self.websocket:
            await self.on_message(message)

    async def on_message(self, message: str):
        self.logger.debug("on_message received: %s", message)
        try:
            ws_msg: WsMsg = json.loads(message)
        except ValueError:
            self.logger.warning("WebSocket received non JSON message: %s", message)
            return

        request_id = ws_msg.get("id")
        if request_id is not None and request_id in self.pending_requests:
            future = self.pending_requests.pop(request_id)
            if future.done():
                return
            if ws_msg.get("error"):
                future.set_exception(WebSocketRequestError(json.dumps(ws_msg["error"])))
            else:
                future.set_result(ws_msg.get("result"))
            return

        identifier = ws_msg_to_identifier(ws_msg)
        if not identifier:
            self.logger.debug("WebSocket not handling message without identifier")
            return

        active_subscriptions = self.active_subscriptions.get(identifier, [])
        if not active_subscriptions:
            self.logger.warning(
                "Unexpected WebSocket message from subscription: %s - %s",
                identifier,
                message,
            )
            return

        for active_subscription in list(active_subscriptions):
            result = active_subscription.callback(ws_msg.get("params"))
            if inspect.isawaitable(result):
                # run async callbacks outside the read loop so they can talk to the socket
                task = asyncio.ensure_future(result)
                self.callback_tasks.add(task)
                task.add_done_callback(self.callback_tasks.discard)

    async def request(self, method: str, params: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        if not self.ws_ready:
            raise WebSocketRequestError("WebSocket connection is not ready")
        self.request_id_counter += 1
        request_id = self.request_id_counter
        future = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = future
        await self.websocket.send(
            json.dumps({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        )
        return await asyncio.wait_for(future, timeout or settings.REQUEST_TIMEOUT)

    async def subscribe(self, subscription: Subscription, callback: Callable[[Any], Any]) -> int:
        self.subscription_id_counter += 1
        subscription_id = self.subscription_id_counter
        identifier = subscription_to_identifier(subscription)
        self.logger.debug("Subscribing to %s", subscription)
        self.active_subscriptions[identifier].append(ActiveSubscription(callback, subscription_id))
        try:
            await self.request(constants.WS_METHOD_SUBSCRIBE, subscription)
        except Exception:
            self.active_subscriptions[identifier] = [
                x for x in self.active_subscriptions[identifier] if x.subscription_id != subscription_id
            ]
            raise
        return subscription_id

    async def unsubscribe(self, subscription: Subscription, subscription_id: int) -> bool:
        identifier = subscription_to_identifier(subscription)
        active_subscriptions = self.active_subscriptions.get(identifier, [])
        new_active_subscriptions = [
            x for x in active_subscriptions if x.subscription_id != subscription_id
        ]
        self.active_subscriptions[identifier] = new_active_subscriptions

        if not new_active_subscriptions and self.ws_ready:
            # no ack awaited, the read loop may be busy delivering this very event
            self.request_id_counter += 1
            await self.websocket.send(
                json.dumps(
                    {
                        "jsonrpc": "2.0",
                        "id": self.request_id_counter,
                        "method": constants.WS_METHOD_UNSUBSCRIBE,
                        "params": subscription,
                    }
                )
            )
        return len(active_subscriptions) != len(new_active_subscriptions)

    async def subscribe_tx_updates(self, tx_id: str, callback: Callable[[Any], Any]) -> TxSubscription:
        subscription = {
            "event": constants.WS_EVENT_TX_UPDATE,
            "tx_id": prefixed_tx_id(tx_id),
        }
        subscription_id = await self.subscribe(subscription, callback)
        return TxSubscription(self, subscription, subscription_id)


async def connect_websocket_client(ws_url: Optional[str] = None) -> StacksWebSocketClient:
    client = StacksWebSocketClient(ws_url)
    await client.connect()
    return client
