"""
Outbound command builder.

Every command checks its precondition against the current session
state and returns False without sending when it does not hold.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from rabbithole.audio import is_wav_data_uri, to_data_uri
from rabbithole.errors import ConnectionError
from rabbithole.models.envelope import EnvelopeType, LogonPayload
from rabbithole.models.transcript import Origin, PayloadKind
from rabbithole.transcript import mask_credentials
from rabbithole.transport.envelope import encode_envelope

if TYPE_CHECKING:
    from rabbithole.session import Session

logger = logging.getLogger(__name__)


class CommandBuilder:
    def __init__(self, session: Session):
        self._session = session

    def _send(self, event_type: str, data: Any) -> str:
        payload = encode_envelope(event_type, data)
        self._session.state.connection.send(payload)  # type: ignore[union-attr]
        return payload

    def logon(self) -> bool:
        """Send credentials. Requires an eligible, unauthenticated, open session."""
        session = self._session
        state = session.state
        if not state.eligible or state.authenticated or not state.socket_open:
            return False
        data = LogonPayload(imei=session.imei or "", accountKey=session.account_key or "").model_dump()
        masked = encode_envelope(EnvelopeType.LOGON, mask_credentials(data))
        session.log.append(f"Authenticating with payload: {masked}")
        session.transcript.add("Authenticating", Origin.SYSTEM, PayloadKind.TEXT)
        self._send(EnvelopeType.LOGON, data)
        session.auth.logon_sent()
        return True

    def send_message(self, message: str) -> bool:
        session = self._session
        if not session.state.authenticated or not session.state.socket_open:
            return False
        payload = encode_envelope(EnvelopeType.MESSAGE, message)
        session.log.append(f"Sending message: {payload}")
        session.transcript.add(message, Origin.USER, PayloadKind.TEXT)
        session.state.connection.send(payload)  # type: ignore[union-attr]
        return True

    def send_ptt(self, active: bool, image: Optional[str] = None) -> bool:
        session = self._session
        if not session.state.authenticated or not session.state.socket_open:
            return False
        data: dict[str, Any] = {"active": active}
        if image is not None:
            data["image"] = image
        status = "true" if active else "false"
        session.log.append(f"Sending PTT with status {status} {'with an image' if image else 'without image'}")
        if image:
            session.transcript.add(image, Origin.USER, PayloadKind.IMAGE)
        self._send(EnvelopeType.PTT, data)
        return True

    async def send_audio(self, audio: bytes, mime_type: Optional[str] = "audio/wav") -> bool:
        """Encode and upload captured audio. Only audio/wav payloads are sent."""
        state = self._session.state
        if not state.authenticated:
            return False

        uri = await to_data_uri(audio, mime_type)

        # the connection may have closed or been replaced while encoding
        if self._session.state is not state or not state.authenticated or not state.socket_open:
            logger.debug("Connection gone before audio upload, dropping")
            return False
        if not is_wav_data_uri(uri):
            logger.debug(f"Dropping audio with unsupported type {mime_type!r}")
            return False
        self._session.transcript.add("Sending audio", Origin.SYSTEM, PayloadKind.TEXT)
        self._send(EnvelopeType.AUDIO, uri)
        return True

    def register(self, code: str) -> bool:
        """Relay a scanned registration code. Only before authentication."""
        session = self._session
        state = session.state
        if not state.eligible or state.authenticated or not state.socket_open:
            return False
        payload = encode_envelope(EnvelopeType.REGISTER, code)
        session.log.append(f"Registering: {payload}")
        session.transcript.add("Registering", Origin.SYSTEM, PayloadKind.TEXT)
        state.connection.send(payload)  # type: ignore[union-attr]
        return True

    def send_raw(self, data: str) -> bool:
        connection = self._session.state.connection
        if connection is None:
            return False
        try:
            connection.send(encode_envelope(EnvelopeType.RAW, data))
        except ConnectionError as e:
            self._session.log.append(f"Raw frame not sent: {e}")
            return False
        return True

    def stop_meeting(self) -> bool:
        session = self._session
        if not session.state.authenticated or not session.state.socket_open:
            return False
        self._send(EnvelopeType.MEETING, False)
        return True
