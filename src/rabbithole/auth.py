"""
Authentication state machine.

    DISCONNECTED -> CONNECTED(eligible) -> AUTHENTICATING -> AUTHENTICATED
    any -> DISCONNECTED on close

Entering CONNECTED triggers one automatic logon when both credentials
are present and non-empty.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rabbithole.models.transcript import Origin, PayloadKind

if TYPE_CHECKING:
    from rabbithole.session import Session

LOGON_SUCCESS = "success"


class Authenticator:
    def __init__(self, session: Session):
        self._session = session

    def auto_logon(self) -> bool:
        """Attempt the automatic logon once per connection. Returns True if a logon was sent."""
        session = self._session
        state = session.state
        if not state.eligible or state.authenticated or not state.socket_open:
            return False
        if state.logon_attempted:
            return False
        state.logon_attempted = True

        if session.account_key is None or session.imei is None:
            session.log.append("No credentials configured, waiting for registration")
            return False
        if session.account_key == "" or session.imei == "":
            session.log.append("Account key or IMEI not provided")
            return False
        return session.commands.logon()

    def rearm(self) -> bool:
        """Credentials changed: allow one more automatic logon on the current connection."""
        self._session.state.logon_attempted = False
        return self.auto_logon()

    def logon_sent(self) -> None:
        self._session.state.logon_pending = True
        self._session.notify_state()

    def handle_ack(self, data: Any) -> None:
        session = self._session
        state = session.state
        state.logon_pending = False
        if data != LOGON_SUCCESS:
            session.log.append("Authentication failed")
            session.notify_state()
            return

        state.authenticated = True
        state.eligible = False
        session.log.append("Authenticated successfully")
        session.transcript.add("Authenticated successfully", Origin.SYSTEM, PayloadKind.TEXT)
        session.notify_state()
