"""
Wire envelope and typed payloads.

Every frame is a JSON object ``{"type": <str>, "data": <type-dependent>}``.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class EnvelopeType:
    LOGON = "logon"
    MESSAGE = "message"
    PTT = "ptt"
    AUDIO = "audio"
    REGISTER = "register"
    LONG = "long"
    MEETING = "meeting"
    RAW = "raw"


class Envelope(BaseModel):
    # Some servers put flags next to `data` (e.g. meeting `active`)
    model_config = ConfigDict(extra="allow")

    type: str
    data: Any = None


class LogonPayload(BaseModel):
    imei: str
    accountKey: str


class PttPayload(BaseModel):
    active: bool
    image: Optional[str] = None


class AudioPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    audio: str


class RegisterPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    imei: str
    accountKey: str


class LongPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    images: list[str]


class MeetingPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    active: bool = False
