"""
Inbound message dispatcher.

Each envelope type maps to exactly one handler. Unknown types and
payloads of the wrong shape are recorded in the diagnostic log and
never interrupt the session.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from pydantic import ValidationError

from rabbithole.errors import ProtocolError
from rabbithole.models.envelope import (
    AudioPayload,
    Envelope,
    EnvelopeType,
    LongPayload,
    MeetingPayload,
    RegisterPayload,
)
from rabbithole.models.transcript import Origin, PayloadKind
from rabbithole.transcript import mask_credentials
from rabbithole.transport.envelope import decode_envelope

if TYPE_CHECKING:
    from rabbithole.session import Session

logger = logging.getLogger(__name__)

AudioSink = Callable[[str], None]
RegisterCallback = Callable[[str, str, str], None]


def dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def as_text(data: Any) -> str:
    return data if isinstance(data, str) else dumps(data)


class MessageDispatcher:
    def __init__(
        self,
        session: Session,
        audio_sink: Optional[AudioSink] = None,
        on_register: Optional[RegisterCallback] = None,
    ):
        self._session = session
        self._audio_sink = audio_sink
        self._on_register = on_register
        self._handlers: dict[str, Callable[[Envelope], None]] = {
            EnvelopeType.LOGON: self._on_logon,
            EnvelopeType.MESSAGE: self._on_message,
            EnvelopeType.PTT: self._on_ptt,
            EnvelopeType.AUDIO: self._on_audio,
            EnvelopeType.REGISTER: self._on_register_reply,
            EnvelopeType.LONG: self._on_long,
            EnvelopeType.MEETING: self._on_meeting,
        }

    def dispatch(self, raw: str) -> None:
        log = self._session.log
        envelope = decode_envelope(raw)
        if envelope is None:
            logger.warning(f"Undecodable frame: {raw[:200]!r}")
            log.append(f"Malformed message: {raw[:200]}")
            return

        handler = self._handlers.get(envelope.type)
        if handler is None:
            log.append(f"Unknown message type {envelope.type}: {dumps(envelope.data)}")
            return

        try:
            handler(envelope)
        except (ValidationError, ProtocolError) as e:
            logger.warning(f"Malformed {envelope.type} payload: {e}")
            log.append(f"Malformed {envelope.type} message: {dumps(envelope.data)}")
        except Exception:
            logger.exception(f"Handler for {envelope.type} failed")
            log.append(f"Failed to handle {envelope.type} message")

    def _on_logon(self, envelope: Envelope) -> None:
        self._session.auth.handle_ack(envelope.data)

    def _on_message(self, envelope: Envelope) -> None:
        text = as_text(envelope.data)
        self._session.log.append(text)
        self._session.transcript.add(text, Origin.RABBIT, PayloadKind.TEXT)

    def _on_ptt(self, envelope: Envelope) -> None:
        # server echo of our own push-to-talk
        self._session.transcript.add(as_text(envelope.data), Origin.USER, PayloadKind.AUDIO)

    def _on_audio(self, envelope: Envelope) -> None:
        payload = AudioPayload.model_validate(envelope.data)
        if self._audio_sink is None:
            logger.debug("No audio sink configured, dropping audio payload")
            return
        self._audio_sink(payload.audio)

    def _on_register_reply(self, envelope: Envelope) -> None:
        payload = RegisterPayload.model_validate(envelope.data)
        raw = dumps(envelope.data)
        if self._on_register is not None:
            try:
                self._on_register(payload.imei, payload.accountKey, raw)
            except Exception:
                logger.exception("Registration callback failed")
                self._session.log.append("Registration callback failed")
        self._session.log.append(f"Registered with data: {dumps(mask_credentials(envelope.data))}")

    def _on_long(self, envelope: Envelope) -> None:
        payload = LongPayload.model_validate(envelope.data)
        self._session.transcript.add("\n".join(payload.images), Origin.RABBIT, PayloadKind.IMAGE)

    def _on_meeting(self, envelope: Envelope) -> None:
        data = envelope.data
        if isinstance(data, bool):
            active = data
        elif isinstance(data, dict):
            active = MeetingPayload.model_validate(data).active
        elif data is None:
            active = False
        else:
            raise ProtocolError(f"Unexpected meeting payload: {data!r}")
        # some servers send the flag beside `data`
        extra = envelope.model_extra or {}
        if active or extra.get("active") is True:
            self._session.transcript.add("Meeting started", Origin.SYSTEM, PayloadKind.TEXT)
