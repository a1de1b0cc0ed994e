"""
Envelope encoding and decoding.
"""

from typing import Any, Optional

from pydantic import ValidationError

from rabbithole.models.envelope import Envelope


def encode_envelope(event_type: str, data: Any) -> str:
    """Build an outbound frame as compact JSON text."""
    return Envelope(type=event_type, data=data).model_dump_json()


def decode_envelope(raw: str) -> Optional[Envelope]:
    """Parse an inbound frame. Returns None if invalid."""
    try:
        return Envelope.model_validate_json(raw)
    except ValidationError:
        return None
