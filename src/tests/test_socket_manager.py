import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from services.socket_manager import (
    StacksWebSocketClient,
    WebSocketRequestError,
    subscription_to_identifier,
    ws_msg_to_identifier,
)

TX_ID = "ef" * 32


def ready_client() -> StacksWebSocketClient:
    client = StacksWebSocketClient("ws://localhost:3999/extended/v1/ws")
    client.websocket = AsyncMock()
    client.ws_ready = True
    return client


def sent(client) -> list:
    return [json.loads(c.args[0]) for c in client.websocket.send.await_args_list]


def update(status: str) -> str:
    return json.dumps(
        {"jsonrpc": "2.0", "method": "tx_update", "params": {"tx_id": f"0x{TX_ID.upper()}", "tx_status": status}}
    )


async def subscribed(client, callback):
    task = asyncio.create_task(client.subscribe_tx_updates(TX_ID, callback))
    await asyncio.sleep(0)
    await client.on_message(json.dumps({"jsonrpc": "2.0", "id": 1, "result": {}}))
    return await task


def test_identifiers_match_case_insensitively():
    subscription = {"event": "tx_update", "tx_id": f"0x{TX_ID}"}
    msg = {"method": "tx_update", "params": {"tx_id": f"0x{TX_ID.upper()}"}}
    assert subscription_to_identifier(subscription) == ws_msg_to_identifier(msg)
    assert ws_msg_to_identifier({"method": "tx_update", "params": {}}) is None


@pytest.mark.asyncio
async def test_subscribe_waits_for_ack_and_dispatches_updates():
    client = ready_client()
    callback = Mock()

    subscription = await subscribed(client, callback)
    await client.on_message(update("pending"))

    assert sent(client)[0] == {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "subscribe",
        "params": {"event": "tx_update", "tx_id": f"0x{TX_ID}"},
    }
    callback.assert_called_once()
    assert callback.call_args.args[0]["tx_status"] == "pending"
    assert subscription.active


@pytest.mark.asyncio
async def test_async_callbacks_run_outside_read_loop():
    client = ready_client()
    seen = []

    async def callback(event):
        seen.append(event["tx_status"])

    await subscribed(client, callback)
    await client.on_message(update("success"))
    await asyncio.sleep(0)

    assert seen == ["success"]


@pytest.mark.asyncio
async def test_subscribe_error_is_raised_and_not_registered():
    client = ready_client()
    task = asyncio.create_task(client.subscribe_tx_updates(TX_ID, Mock()))
    await asyncio.sleep(0)
    await client.on_message(json.dumps({"jsonrpc": "2.0", "id": 1, "error": {"code": -32602}}))

    with pytest.raises(WebSocketRequestError):
        await task
    assert not any(client.active_subscriptions.values())


@pytest.mark.asyncio
async def test_unsubscribe_is_sent_once():
    client = ready_client()
    callback = Mock()
    subscription = await subscribed(client, callback)

    assert await subscription.unsubscribe() is True
    assert await subscription.unsubscribe() is False
    await client.on_message(update("success"))

    methods = [msg["method"] for msg in sent(client)]
    assert methods == ["subscribe", "unsubscribe"]
    callback.assert_not_called()


@pytest.mark.asyncio
async def test_subscription_as_context_manager_releases():
    client = ready_client()
    subscription = await subscribed(client, Mock())

    async with subscription:
        pass

    assert not subscription.active
    assert sent(client)[-1]["method"] == "unsubscribe"


@pytest.mark.asyncio
async def test_request_requires_connection():
    client = StacksWebSocketClient("ws://localhost:3999/extended/v1/ws")
    with pytest.raises(WebSocketRequestError):
        await client.subscribe_tx_updates(TX_ID, Mock())
