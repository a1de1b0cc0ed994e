"""
AsyncRabbitholeClient — main client.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from rabbithole.dispatcher import AudioSink, RegisterCallback
from rabbithole.errors import AuthError
from rabbithole.models.session import AuthState
from rabbithole.models.transcript import TranscriptEntry
from rabbithole.reconnect import NoReconnect, ReconnectPolicy
from rabbithole.session import Session
from rabbithole.transport.websocket import ConnectFactory, WebSocketManager

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class AsyncRabbitholeClient:
    """Async client for one device connection.

    Changing the url or device id tears down the current socket before a
    new one is opened; transcript and log survive across connections.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        imei: Optional[str] = None,
        account_key: Optional[str] = None,
        *,
        audio_sink: Optional[AudioSink] = None,
        on_register: Optional[RegisterCallback] = None,
        reconnect: Optional[ReconnectPolicy] = None,
        open_timeout: float = 10.0,
        connect_factory: Optional[ConnectFactory] = None,
    ):
        self._url = url
        self._reconnect_policy = reconnect or NoReconnect()
        self._open_timeout = open_timeout
        self._connect_factory = connect_factory
        self.session = Session(
            account_key=account_key,
            imei=imei,
            audio_sink=audio_sink,
            on_register=on_register,
        )
        self._manager: Optional[WebSocketManager] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._attempt = 0
        self._started = False

    async def __aenter__(self) -> "AsyncRabbitholeClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def imei(self) -> Optional[str]:
        return self.session.imei

    @property
    def account_key(self) -> Optional[str]:
        return self.session.account_key

    @property
    def connected(self) -> bool:
        return self._manager is not None and self._manager.connected

    @property
    def authenticated(self) -> bool:
        return self.session.state.authenticated

    @property
    def eligible(self) -> bool:
        return self.session.state.eligible

    @property
    def state(self) -> AuthState:
        return self.session.auth_state

    @property
    def transcript(self) -> list[TranscriptEntry]:
        """Newest first."""
        return self.session.transcript.entries

    @property
    def logs(self) -> list[str]:
        return self.session.log.lines

    def on_transcript(self, listener: Callable[[TranscriptEntry], None]) -> Callable[[], None]:
        return self.session.transcript.add_listener(listener)

    def on_log(self, listener: Callable[[str], None]) -> Callable[[], None]:
        return self.session.log.add_listener(listener)

    # Connection lifecycle

    async def connect(self) -> bool:
        """Open the connection for the configured target. Idle when no url is set."""
        await self._teardown()
        self._started = True
        self._attempt = 0
        if not self._url:
            logger.debug("No url configured, staying idle")
            return False
        await self._open()
        return self.connected

    async def configure(
        self,
        *,
        url: Optional[str] = _UNSET,
        imei: Optional[str] = _UNSET,
        account_key: Optional[str] = _UNSET,
    ) -> None:
        """Update the target or credentials.

        A new url or imei reconnects (when started); a new account key alone
        re-arms the automatic logon on the current connection.
        """
        target_changed = False
        if url is not _UNSET and url != self._url:
            self._url = url
            target_changed = True
        if imei is not _UNSET and imei != self.session.imei:
            self.session.imei = imei
            target_changed = True
        key_changed = account_key is not _UNSET and account_key != self.session.account_key
        if key_changed:
            self.session.account_key = account_key

        if target_changed and self._started:
            await self.connect()
        elif key_changed:
            self.session.auth.rearm()

    async def disconnect(self) -> None:
        self._started = False
        await self._teardown()

    async def wait_authenticated(self, timeout: float = 15.0) -> None:
        if self.authenticated:
            return
        event = asyncio.Event()

        def listener(state: AuthState) -> None:
            if state is AuthState.AUTHENTICATED:
                event.set()

        remove = self.session.add_state_listener(listener)
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            raise AuthError(f"Timed out waiting for logon acknowledgment after {timeout}s")
        finally:
            remove()

    async def _open(self) -> None:
        manager: Optional[WebSocketManager] = None

        def guarded(fn: Callable[..., None]) -> Callable[..., None]:
            # drop notifications from a socket that has been replaced
            def wrapper(*args: Any) -> None:
                if manager is not None and manager is self._manager:
                    fn(*args)
            return wrapper

        manager = WebSocketManager(
            self._url or "",
            self.session.imei,
            on_open=guarded(self._handle_open),
            on_message=guarded(self.session.handle_message),
            on_close=guarded(self._handle_close),
            on_error=guarded(self.session.handle_error),
            connect_factory=self._connect_factory,
            open_timeout=self._open_timeout,
        )
        logger.debug(f"Building new websocket for {manager.url}")
        self._manager = manager
        self.session.attach(manager)
        manager.start()
        await manager.wait_settled()

    async def _teardown(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        manager = self._manager
        if manager is None:
            return
        await manager.close()
        self._manager = None
        self.session.detach()

    def _handle_open(self) -> None:
        self._attempt = 0
        self.session.handle_open()

    def _handle_close(self) -> None:
        self.session.handle_close()
        manager = self._manager
        if manager is None or manager.closing or not self._started:
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        self._attempt += 1
        delay = self._reconnect_policy.next_delay(self._attempt)
        if delay is None:
            if self._attempt > 1:
                self.session.log.append(f"Giving up reconnecting after {self._attempt - 1} attempts")
            return
        self.session.log.append(f"Reconnecting in {delay:.1f}s (attempt {self._attempt})")
        await asyncio.sleep(delay)
        if not self._started:
            return
        await self._open()

    # Outbound commands

    def logon(self) -> bool:
        return self.session.commands.logon()

    def send_message(self, message: str) -> bool:
        return self.session.commands.send_message(message)

    def send_ptt(self, active: bool, image: Optional[str] = None) -> bool:
        return self.session.commands.send_ptt(active, image)

    async def send_audio(self, audio: bytes, mime_type: Optional[str] = "audio/wav") -> bool:
        return await self.session.commands.send_audio(audio, mime_type)

    def register(self, code: str) -> bool:
        return self.session.commands.register(code)

    def send_raw(self, data: str) -> bool:
        return self.session.commands.send_raw(data)

    def stop_meeting(self) -> bool:
        return self.session.commands.stop_meeting()
