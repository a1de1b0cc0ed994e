"""
Per-connection session state.
"""

import enum
from typing import Optional, Protocol


class Connection(Protocol):
    """What the session needs from the socket owner."""

    @property
    def connected(self) -> bool: ...

    def send(self, text: str) -> None: ...


class AuthState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class SessionState:
    """Recreated for every connection target (url + device id)."""

    __slots__ = ("connection", "eligible", "authenticated", "logon_pending", "logon_attempted")

    def __init__(self, connection: Optional[Connection] = None):
        self.connection = connection
        self.eligible = False
        self.authenticated = False
        # set when a logon frame is out and no acknowledgment has arrived yet
        self.logon_pending = False
        # consumed by the automatic logon; at most one per connection
        self.logon_attempted = False

    @property
    def socket_open(self) -> bool:
        return self.connection is not None and self.connection.connected

    @property
    def auth_state(self) -> AuthState:
        if self.authenticated:
            return AuthState.AUTHENTICATED
        if self.eligible and self.logon_pending:
            return AuthState.AUTHENTICATING
        if self.eligible:
            return AuthState.CONNECTED
        return AuthState.DISCONNECTED

    def reset(self) -> None:
        self.eligible = False
        self.authenticated = False
        self.logon_pending = False

    def __repr__(self) -> str:
        return f"SessionState(state={self.auth_state.value!r}, eligible={self.eligible!r})"
