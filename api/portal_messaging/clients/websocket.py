"""Push channel client for new-message notifications.

The employment service pushes a JSON frame to ``/ws/messages?userId=<id>``
whenever a message is delivered to that participant. Frames are only used as
refresh triggers; their payload is never applied to local state.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Coroutine, Dict, List

from websockets.asyncio.client import connect as _ws_connect
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


async def websockets_connect(url: str, **kwargs: Any) -> Any:
    """Connect wrapper for testability."""
    return await _ws_connect(url, **kwargs)


EventCallback = Callable[[Dict[str, Any]], Coroutine[Any, Any, None]]


class ChatSocketClient:
    """Async WebSocket client delivering message events to callbacks.

    Reconnects with exponential back-off: the delay starts at
    ``initial_delay``, doubles after each failed attempt up to ``max_delay``,
    and resets once a connection succeeds.

    Example:
        client = ChatSocketClient(url="ws://localhost:8089/ws/messages?userId=...")
        client.on_event(my_handler)
        task = asyncio.create_task(client.listen_forever())
    """

    def __init__(
        self,
        url: str,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
    ):
        self.url = url
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._ws: Any = None
        self._connected = False
        self._listening = False
        self._event_callbacks: List[EventCallback] = []
        self._retry_delay = initial_delay

    @property
    def is_connected(self) -> bool:
        """Whether the client is currently connected."""
        return self._connected

    @property
    def retry_delay(self) -> float:
        """Delay before the next reconnect attempt."""
        return self._retry_delay

    async def connect(self) -> None:
        """Establish WebSocket connection."""
        try:
            self._ws = await websockets_connect(self.url)
            self._connected = True
            self._retry_delay = self.initial_delay
            logger.info("Connected to message push channel at %s", self.url)
        except Exception:
            self._connected = False
            logger.warning("Failed to connect to message push channel at %s", self.url)
            raise

    async def close(self) -> None:
        """Close the WebSocket connection."""
        self._listening = False
        if self._ws:
            try:
                await self._ws.close()
            except Exception:
                logger.debug("Error closing WebSocket", exc_info=True)
            finally:
                self._ws = None
        self._connected = False
        logger.info("Message push channel closed")

    def on_event(self, callback: EventCallback) -> None:
        """Register an async callback receiving parsed event dicts."""
        self._event_callbacks.append(callback)

    async def _dispatch_event(self, event: Dict[str, Any]) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event)
            except Exception:
                logger.exception("Error in message event callback")

    async def _handle_message(self, raw: Any) -> None:
        """Parse an incoming frame; malformed frames are dropped."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed push frame")
            return
        if not isinstance(data, dict):
            logger.debug("Ignoring non-object push frame")
            return
        await self._dispatch_event(data)

    async def _backoff(self) -> None:
        delay = self._retry_delay
        self._retry_delay = min(self._retry_delay * 2, self.max_delay)
        await asyncio.sleep(delay)

    async def listen_forever(self) -> None:
        """Run the receive loop, reconnecting until ``stop_listening()``."""
        self._listening = True

        while self._listening:
            try:
                if not self._connected or self._ws is None:
                    await self.connect()

                raw = await self._ws.recv()
                await self._handle_message(raw)

            except asyncio.CancelledError:
                self._listening = False
                raise
            except ConnectionClosed:
                if not self._listening:
                    break
                logger.warning(
                    "Message push channel closed, reconnecting in %.1fs",
                    self._retry_delay,
                )
                self._connected = False
                self._ws = None
                await self._backoff()
            except Exception:
                if not self._listening:
                    break
                logger.warning(
                    "Message push channel error, reconnecting in %.1fs",
                    self._retry_delay,
                    exc_info=True,
                )
                self._connected = False
                self._ws = None
                await self._backoff()

    async def stop_listening(self) -> None:
        """Stop the receive loop and close the socket."""
        self._listening = False
        await self.close()
