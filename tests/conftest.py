"""Shared fakes: an in-memory connection for Session tests and an
in-memory websocket + connect factory for client tests."""

import asyncio
import json
from typing import Any, Optional

import pytest

from rabbithole.errors import ConnectionError
from rabbithole.session import Session


class FakeConnection:
    def __init__(self) -> None:
        self.connected = True
        self.frames: list[str] = []

    def send(self, text: str) -> None:
        if not self.connected:
            raise ConnectionError("WebSocket not connected")
        self.frames.append(text)

    def sent(self) -> list[Any]:
        return [json.loads(f) for f in self.frames]


class FakeWebSocket:
    def __init__(self) -> None:
        self.frames: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        self.frames.append(text)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)

    def feed(self, message: Any) -> None:
        if not isinstance(message, (str, bytes, BaseException)):
            message = json.dumps(message)
        self._inbox.put_nowait(message)

    def drop(self) -> None:
        """Server-side close."""
        self.closed = True
        self._inbox.put_nowait(None)

    def sent(self) -> list[Any]:
        return [json.loads(f) for f in self.frames]

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Any:
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeServer:
    """connect_factory handing out FakeWebSockets."""

    def __init__(self) -> None:
        self.sockets: list[FakeWebSocket] = []
        self.urls: list[str] = []
        self.fail: Optional[BaseException] = None

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.urls.append(url)
        if self.fail is not None:
            raise self.fail
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def ws(self) -> FakeWebSocket:
        return self.sockets[-1]


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def settle():
    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)
    return _settle


@pytest.fixture
def make_session():
    def _make(account_key: Optional[str] = "K1", imei: Optional[str] = "D1", opened: bool = True, **kwargs: Any):
        session = Session(account_key=account_key, imei=imei, **kwargs)
        connection = FakeConnection()
        session.attach(connection)
        if opened:
            session.handle_open()
        return session, connection
    return _make
