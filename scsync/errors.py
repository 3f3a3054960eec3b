"""Exception types shared across scsync."""

from typing import Optional


class SyncError(Exception):
    """Base class for all scsync errors."""


class CloneError(SyncError):
    """Raised by the git engine when a clone cannot be completed."""

    def __init__(self, reason: str, remote_url: Optional[str] = None):
        self.reason = reason
        self.remote_url = remote_url
        super().__init__(reason)


class ProviderError(SyncError):
    """Raised when a source-control provider cannot list repositories."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class ConfigurationError(SyncError):
    """Raised for invalid or incomplete configuration."""
