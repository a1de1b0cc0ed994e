"""
Audio payload encoding for upload.
"""

import asyncio
import base64
from pathlib import Path
from typing import Optional

WAV_PREFIX = "data:audio/wav"
DEFAULT_MIME_TYPE = "application/octet-stream"


async def to_data_uri(audio: bytes, mime_type: Optional[str] = None) -> str:
    """Encode captured audio as a base64 data URI off the event loop."""
    encoded = await asyncio.to_thread(base64.b64encode, audio)
    return f"data:{mime_type or DEFAULT_MIME_TYPE};base64,{encoded.decode('ascii')}"


def is_wav_data_uri(uri: object) -> bool:
    return isinstance(uri, str) and uri.startswith(WAV_PREFIX)


def mime_type_for(path: Path) -> str:
    # mimetypes maps .wav to audio/x-wav on most platforms; the server wants audio/wav
    if path.suffix.lower() == ".wav":
        return "audio/wav"
    return DEFAULT_MIME_TYPE
