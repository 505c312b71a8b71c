"""Exceptions raised by pysyncer."""

from typing import Optional


class SyncerError(Exception):
    """Base exception for all pysyncer errors."""


class SyncerConfigError(SyncerError):
    """Missing or invalid configuration (no provider, empty token, ...)."""


class ProviderError(SyncerError):
    """A remote storage provider reported a failure."""

    def __init__(self, message: str, provider_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider_id = provider_id


class SyncerNetworkError(ProviderError):
    """Transport-level failure talking to a provider (always retriable)."""


class SyncerRateLimitError(ProviderError):
    """The provider asked us to slow down (always retriable)."""


class FileNotReadableError(SyncerError):
    """A local file could not be read."""

    def __init__(self, path: str, reason: Optional[str] = None):
        message = f"File not readable: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path
        self.reason = reason


class StateStoreError(SyncerError):
    """Persisted sync state could not be written."""


class SyncInProgressError(SyncerError):
    """A sync was requested while another one is running."""

    def __init__(self, message: str = "Sync already in progress"):
        super().__init__(message)


class SyncOperationError(SyncerError):
    """First terminal error observed while executing a ledger."""

    def __init__(self, operation_type: str, path: str, message: str):
        super().__init__(f"Failed {operation_type} {path}: {message}")
        self.operation_type = operation_type
        self.path = path
        self.message = message
