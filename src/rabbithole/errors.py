"""
Rabbithole error types.
"""

from typing import Any, Optional


class RabbitholeError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class AuthError(RabbitholeError):
    def __init__(self, message: str, code: str = "auth_error"):
        super().__init__(code, message)


class ProtocolError(RabbitholeError):
    def __init__(self, message: str, code: str = "protocol_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class ConnectionError(RabbitholeError):
    def __init__(self, message: str):
        super().__init__("connection_error", message)
