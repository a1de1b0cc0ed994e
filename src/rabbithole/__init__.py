"""
rabbithole — device companion client for Python.

WebSocket client that authenticates a device, exchanges typed envelopes
and keeps a transcript and diagnostic log of the session.
"""

from rabbithole.client import AsyncRabbitholeClient
from rabbithole.session import Session
from rabbithole.errors import RabbitholeError, AuthError, ProtocolError, ConnectionError
from rabbithole.models.envelope import Envelope, EnvelopeType
from rabbithole.models.session import AuthState
from rabbithole.models.transcript import Origin, PayloadKind, TranscriptEntry
from rabbithole.reconnect import ExponentialBackoff, NoReconnect

__version__ = "0.1.0"
__all__ = [
    "AsyncRabbitholeClient",
    "Session",
    "RabbitholeError",
    "AuthError",
    "ProtocolError",
    "ConnectionError",
    "Envelope",
    "EnvelopeType",
    "AuthState",
    "Origin",
    "PayloadKind",
    "TranscriptEntry",
    "ExponentialBackoff",
    "NoReconnect",
]
