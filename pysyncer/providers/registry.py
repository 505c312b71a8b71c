"""Registry of available storage providers."""

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .base import CloudProvider
from .folder import FolderProvider
from .yandex import YandexDiskProvider

if TYPE_CHECKING:
    from ..config import Config


class ProviderRegistry:
    """Providers keyed by their identifier."""

    def __init__(self) -> None:
        self._providers: dict[str, CloudProvider] = {}

    def register(self, provider: CloudProvider) -> None:
        self._providers[provider.id] = provider

    def get(self, provider_id: str) -> Optional[CloudProvider]:
        return self._providers.get(provider_id)

    def list(self) -> list[CloudProvider]:
        return list(self._providers.values())

    def options(self) -> dict[str, str]:
        """Provider id -> display name, for menus and help output."""
        return {provider.id: provider.name for provider in self._providers.values()}

    def close(self) -> None:
        for provider in self._providers.values():
            provider.close()


def build_registry(
    config: "Config", folder_root: Optional[Path] = None
) -> ProviderRegistry:
    """Create a registry holding the built-in providers.

    Args:
        config: Settings used to configure providers
        folder_root: Target directory for the folder provider (overrides config)

    Returns:
        Populated ProviderRegistry
    """
    registry = ProviderRegistry()
    registry.register(YandexDiskProvider())

    root = folder_root or config.folder_root
    if root is not None:
        registry.register(FolderProvider(root))
    return registry
