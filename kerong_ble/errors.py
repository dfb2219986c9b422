"""
Kerong BLE Lock - Exceptions
"""

from typing import Optional


class LockError(Exception):
    """Base exception for all lock errors."""


class ConfigurationError(LockError):
    """Raised when the session is missing configuration it needs."""


class NotAuthenticatedError(LockError):
    """Raised when a user-management command is issued before authentication."""


class TransportError(LockError):
    """Raised when the BLE transport cannot connect or write."""


class LockTimeoutError(LockError, TimeoutError):
    """Raised when a correlated response does not arrive in time."""


class ProtocolError(LockError):
    """Raised when an inbound frame cannot be decoded."""


class RequestPendingError(LockError):
    """Raised when a single-flight request is already outstanding."""


class SessionClosedError(LockError):
    """Set on pending requests that were still waiting when the session was reset."""


class DeviceStatusError(LockError):
    """Raised when the lock answers with a non-success status byte."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        if status is not None:
            message = f"{message} (status: 0x{status:02X})"
        super().__init__(message)
