"""
WebSocket connection manager.

One manager owns exactly one socket for its whole lifetime:
connect, read loop, ordered writer, close. Notifications are delivered
synchronously from the reader task, so handlers never overlap.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from rabbithole.errors import ConnectionError

logger = logging.getLogger(__name__)

DEVICE_ID_PARAM = "deviceId"
DRAIN_TIMEOUT = 2.0

ConnectFactory = Callable[..., Awaitable[Any]]


def build_url(base_url: str, device_id: Optional[str] = None) -> str:
    """Append the device id as a query parameter, keeping any existing query."""
    if not device_id:
        return base_url
    parts = urlsplit(base_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append((DEVICE_ID_PARAM, device_id))
    return urlunsplit(parts._replace(query=urlencode(query)))


class WebSocketManager:
    def __init__(
        self,
        url: str,
        device_id: Optional[str] = None,
        *,
        on_open: Callable[[], None],
        on_message: Callable[[str], None],
        on_close: Callable[[], None],
        on_error: Callable[[BaseException], None],
        connect_factory: Optional[ConnectFactory] = None,
        open_timeout: float = 10.0,
    ):
        self._url = build_url(url, device_id)
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error
        self._connect = connect_factory or connect
        self._open_timeout = open_timeout
        self._ws: Any = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._task: Optional[asyncio.Task[None]] = None
        self._settled = asyncio.Event()
        self._closing = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closing

    @property
    def closing(self) -> bool:
        """True once close() was requested by the owner."""
        return self._closing

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def wait_settled(self) -> None:
        """Wait until the socket has opened or failed to open."""
        await self._settled.wait()

    def send(self, text: str) -> None:
        """Queue a text frame. Frames go out in call order."""
        if not self.connected:
            raise ConnectionError("WebSocket not connected")
        self._outbox.put_nowait(text)

    async def close(self) -> None:
        """Flush queued frames, close the socket and wait for the close notification to run."""
        ws = self._ws
        if ws is not None and not self._closing:
            try:
                await asyncio.wait_for(self._outbox.join(), timeout=DRAIN_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Closing with unsent frames")
        self._closing = True
        if ws is not None:
            try:
                await ws.close()
            except ConnectionClosed:
                pass
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        try:
            ws = await self._connect(self._url, open_timeout=self._open_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Connection to {self._url} failed: {e}")
            self._settled.set()
            self._on_error(e)
            self._on_close()
            return

        self._ws = ws
        writer = asyncio.get_running_loop().create_task(self._write_loop(ws))
        self._settled.set()
        try:
            if self._closing:
                await ws.close()
                return
            self._on_open()
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                self._on_message(message)
        except ConnectionClosedError as e:
            if not self._closing:
                self._on_error(e)
        finally:
            writer.cancel()
            self._ws = None
            self._on_close()

    async def _write_loop(self, ws: Any) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await ws.send(text)
            except ConnectionClosed:
                logger.warning("Dropping outbound frame: connection closed")
                return
            except Exception as e:
                logger.error(f"Send failed: {e}")
                return
            finally:
                self._outbox.task_done()
