"""Websocket transport exposing socket-style hooks on top of ``websockets``."""

import asyncio
import logging
from enum import IntEnum
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)


class ReadyState(IntEnum):
    """Socket ready states, numbered like the browser WebSocket API."""
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


class WebSocketTransport:
    """
    One websocket connection driven by a background task.

    The owner installs ``on_open``, ``on_close``, ``on_error`` and
    ``on_message`` after construction; the connection attempt starts on the
    next loop iteration, so hooks set right away never miss an event.

    A failed connection attempt fires ``on_error`` followed by ``on_close``.
    A close initiated by either side fires ``on_close`` only.

    Must be constructed while an asyncio event loop is running.
    """

    def __init__(
        self,
        url: str,
        ping_interval: Optional[float] = 20,
        ping_timeout: Optional[float] = 20,
        open_timeout: Optional[float] = 10,
    ):
        self.url = url
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.open_timeout = open_timeout

        self.ready_state = ReadyState.CONNECTING
        self.on_open: Optional[Callable[[], Any]] = None
        self.on_close: Optional[Callable[[], Any]] = None
        self.on_error: Optional[Callable[[BaseException], Any]] = None
        self.on_message: Optional[Callable[[Any], Any]] = None

        self._outgoing: asyncio.Queue = asyncio.Queue()
        self._started = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send(self, data: str):
        """Queue a text frame; frames go out in the order they were sent."""
        if self.ready_state != ReadyState.OPEN:
            raise RuntimeError(f"Cannot send on a transport in state {self.ready_state.name}")
        self._outgoing.put_nowait(data)

    def close(self):
        """Close the connection; ``on_close`` fires if still installed."""
        if self.ready_state >= ReadyState.CLOSING:
            return
        self._task.cancel()

        if not self._started:
            # The coroutine never runs, so its cleanup has to happen here
            self.ready_state = ReadyState.CLOSED
            logger.info(f"Connection to {self.url} closed before it started")
            if self.on_close:
                self.on_close()
            return

        self.ready_state = ReadyState.CLOSING

    async def _run(self):
        self._started = True
        error: Optional[BaseException] = None

        try:
            logger.info(f"Connecting to {self.url}")
            async with websockets.connect(
                self.url,
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
                open_timeout=self.open_timeout,
                close_timeout=10,
                max_size=2**22,
            ) as websocket:
                writer = asyncio.create_task(self._write_loop(websocket))
                try:
                    if self.ready_state == ReadyState.CONNECTING:
                        self.ready_state = ReadyState.OPEN
                        logger.info(f"Connected to {self.url}")
                        if self.on_open:
                            self.on_open()

                    async for raw_message in websocket:
                        self._dispatch(raw_message)
                finally:
                    writer.cancel()

        except ConnectionClosed as e:
            logger.warning(f"Connection closed by server: {e}")
        except asyncio.CancelledError:
            # Only a close() request ends quietly; loop shutdown propagates
            if self.ready_state != ReadyState.CLOSING:
                raise
            logger.info(f"Connection to {self.url} closed by client")
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            error = e
            logger.error(f"Transport failure on {self.url}: {e}")
        finally:
            self.ready_state = ReadyState.CLOSED

        if error is not None and self.on_error:
            self.on_error(error)
        if self.on_close:
            self.on_close()

    def _dispatch(self, raw_message: Any):
        if not self.on_message:
            return
        try:
            self.on_message(raw_message)
        except Exception as e:
            logger.error(f"Message handler error: {e}", exc_info=True)

    async def _write_loop(self, websocket):
        while True:
            data = await self._outgoing.get()
            try:
                await websocket.send(data)
            except ConnectionClosed as e:
                logger.warning(f"Dropped outgoing frame, connection closed: {e}")
                return
