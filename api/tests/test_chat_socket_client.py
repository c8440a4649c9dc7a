"""Tests for the ChatSocketClient receive loop."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from portal_messaging.clients import websocket as ws_module
from portal_messaging.clients.websocket import ChatSocketClient

URL = "ws://employment.test/ws/messages?userId=64b7f0c2a1b2c3d4e5f60001"


@pytest.mark.asyncio
async def test_listen_forever_dispatches_events() -> None:
    client = ChatSocketClient(url=URL)
    callback = AsyncMock()
    client.on_event(callback)

    ws = MagicMock()
    ws.recv = AsyncMock(return_value=json.dumps({"type": "new_message", "id": "m1"}))
    client._connected = True
    client._ws = ws

    async def stop_after_first(raw: str) -> None:
        await ChatSocketClient._handle_message(client, raw)
        client._listening = False

    client._handle_message = AsyncMock(side_effect=stop_after_first)

    await client.listen_forever()

    callback.assert_called_once_with({"type": "new_message", "id": "m1"})


@pytest.mark.asyncio
async def test_listen_forever_reconnects_after_close(monkeypatch) -> None:
    class FakeConnectionClosed(Exception):
        pass

    monkeypatch.setattr(ws_module, "ConnectionClosed", FakeConnectionClosed)
    sleep = AsyncMock(return_value=None)
    monkeypatch.setattr(ws_module.asyncio, "sleep", sleep)

    client = ChatSocketClient(url=URL, initial_delay=1.0, max_delay=30.0)
    callback = AsyncMock(side_effect=lambda event: setattr(client, "_listening", False))
    client.on_event(callback)

    ws1 = MagicMock()
    ws1.recv = AsyncMock(side_effect=FakeConnectionClosed("closed"))
    client._connected = True
    client._ws = ws1

    ws2 = MagicMock()
    ws2.recv = AsyncMock(return_value=json.dumps({"type": "new_message"}))
    connect = AsyncMock(return_value=ws2)
    monkeypatch.setattr(ws_module, "websockets_connect", connect)

    await client.listen_forever()

    sleep.assert_awaited_once_with(1.0)
    connect.assert_awaited_once_with(URL)
    callback.assert_called_once()
    assert client.retry_delay == 1.0


@pytest.mark.asyncio
async def test_backoff_doubles_up_to_cap(monkeypatch) -> None:
    client = ChatSocketClient(url=URL, initial_delay=1.0, max_delay=4.0)
    delays = []

    def record(delay: float) -> None:
        delays.append(delay)
        if len(delays) == 5:
            client._listening = False

    monkeypatch.setattr(ws_module.asyncio, "sleep", AsyncMock(side_effect=record))
    monkeypatch.setattr(
        ws_module, "websockets_connect", AsyncMock(side_effect=OSError("refused"))
    )

    await client.listen_forever()

    assert delays == [1.0, 2.0, 4.0, 4.0, 4.0]
    assert client.is_connected is False


@pytest.mark.asyncio
async def test_malformed_frames_are_ignored() -> None:
    client = ChatSocketClient(url=URL)
    callback = AsyncMock()
    client.on_event(callback)

    await client._handle_message("not json {")
    await client._handle_message(json.dumps(["a", "list"]))
    await client._handle_message(None)

    callback.assert_not_called()


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_dispatch() -> None:
    client = ChatSocketClient(url=URL)
    failing = AsyncMock(side_effect=RuntimeError("boom"))
    healthy = AsyncMock()
    client.on_event(failing)
    client.on_event(healthy)

    await client._handle_message(json.dumps({"type": "new_message"}))

    failing.assert_called_once()
    healthy.assert_called_once()


@pytest.mark.asyncio
async def test_stop_listening_closes_socket() -> None:
    client = ChatSocketClient(url=URL)
    ws = MagicMock()
    ws.close = AsyncMock()
    client._ws = ws
    client._connected = True
    client._listening = True

    await client.stop_listening()

    ws.close.assert_awaited_once()
    assert client.is_connected is False
    assert client._listening is False
