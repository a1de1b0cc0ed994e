"""
Transcript entry model.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict


class Origin:
    USER = "user"
    RABBIT = "rabbit"
    SYSTEM = "system"


class PayloadKind:
    TEXT = "text"
    AUDIO = "audio"
    IMAGE = "image"


class TranscriptEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    origin: Literal["user", "rabbit", "system"]
    kind: Literal["text", "audio", "image"]
    content: str
