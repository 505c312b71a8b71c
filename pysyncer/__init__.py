"""pysyncer - push a local folder to cloud storage, transferring only changes."""

from .exceptions import (
    FileNotReadableError,
    ProviderError,
    StateStoreError,
    SyncerConfigError,
    SyncerError,
    SyncerNetworkError,
    SyncerRateLimitError,
    SyncInProgressError,
    SyncOperationError,
)
from .providers import (
    CloudProvider,
    FolderProvider,
    ProviderRegistry,
    ProviderResult,
    YandexDiskProvider,
)
from .sync import JsonStateStore, LocalFileStore, SyncEngine

__version__ = "0.1.0"

__all__ = [
    "SyncEngine",
    "LocalFileStore",
    "JsonStateStore",
    "CloudProvider",
    "ProviderResult",
    "ProviderRegistry",
    "FolderProvider",
    "YandexDiskProvider",
    "SyncerError",
    "SyncerConfigError",
    "ProviderError",
    "SyncerNetworkError",
    "SyncerRateLimitError",
    "FileNotReadableError",
    "StateStoreError",
    "SyncInProgressError",
    "SyncOperationError",
]
