"""
Session — the single owner of connection state, transcript and log.

Transport notifications arrive here one at a time and are turned into
state transitions, transcript entries and diagnostic lines.
"""

import logging
from typing import Callable, Optional

from rabbithole.auth import Authenticator
from rabbithole.commands import CommandBuilder
from rabbithole.dispatcher import AudioSink, MessageDispatcher, RegisterCallback
from rabbithole.models.session import AuthState, Connection, SessionState
from rabbithole.models.transcript import Origin, PayloadKind
from rabbithole.transcript import DiagnosticLog, Transcript

logger = logging.getLogger(__name__)

SERVICE_NAME = "Rabbithole"


def describe_error(error: BaseException) -> str:
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


class Session:
    def __init__(
        self,
        *,
        account_key: Optional[str] = None,
        imei: Optional[str] = None,
        audio_sink: Optional[AudioSink] = None,
        on_register: Optional[RegisterCallback] = None,
    ):
        self.account_key = account_key
        self.imei = imei
        self.state = SessionState()
        self.transcript = Transcript()
        self.log = DiagnosticLog()
        self.auth = Authenticator(self)
        self.commands = CommandBuilder(self)
        self.dispatcher = MessageDispatcher(self, audio_sink=audio_sink, on_register=on_register)
        self._state_listeners: list[Callable[[AuthState], None]] = []

    @property
    def auth_state(self) -> AuthState:
        return self.state.auth_state

    def add_state_listener(self, listener: Callable[[AuthState], None]) -> Callable[[], None]:
        self._state_listeners.append(listener)

        def remove() -> None:
            try:
                self._state_listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def notify_state(self) -> None:
        current = self.state.auth_state
        for listener in list(self._state_listeners):
            try:
                listener(current)
            except Exception:
                logger.exception("State listener failed")

    def announce(self, text: str) -> None:
        """Record a system event in both the log and the transcript."""
        self.log.append(text)
        self.transcript.add(text, Origin.SYSTEM, PayloadKind.TEXT)

    def attach(self, connection: Connection) -> None:
        """Start a fresh SessionState bound to a new connection."""
        self.state = SessionState(connection)

    def detach(self) -> None:
        self.state.reset()
        self.state = SessionState()
        self.notify_state()

    # Transport notifications

    def handle_open(self) -> None:
        self.announce(f"Connected to {SERVICE_NAME}")
        self.state.eligible = True
        self.notify_state()
        self.auth.auto_logon()

    def handle_message(self, raw: str) -> None:
        self.dispatcher.dispatch(raw)

    def handle_close(self) -> None:
        self.announce(f"Disconnected from {SERVICE_NAME}")
        self.state.reset()
        self.notify_state()

    def handle_error(self, error: BaseException) -> None:
        # state changes are left to the close notification that follows
        self.announce(f"Error: {describe_error(error)}")
