"""Remote storage providers."""

from .base import REMOTE_MARKER_PATH, CloudProvider, ProviderResult
from .folder import FolderProvider
from .registry import ProviderRegistry, build_registry
from .yandex import YandexDiskProvider

__all__ = [
    "CloudProvider",
    "ProviderResult",
    "ProviderRegistry",
    "build_registry",
    "FolderProvider",
    "YandexDiskProvider",
    "REMOTE_MARKER_PATH",
]
