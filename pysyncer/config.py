"""Configuration management for pysyncer.

Settings are stored as JSON in ``~/.config/pysyncer/config.json``. The
directory can be moved with the ``PYSYNCER_CONFIG_DIR`` environment variable,
and ``PYSYNCER_TOKEN`` / ``PYSYNCER_PROVIDER`` override the stored token and
active provider.
"""

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import SyncerConfigError
from .utils import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    MAX_RETRIES,
    clamp_concurrency,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
STATE_DIR_NAME = "sync_state"

DEFAULT_SETTINGS: dict[str, Any] = {
    "activeProvider": "yandex",
    "maxConcurrentUploads": DEFAULT_CONCURRENCY,
    "maxRetries": DEFAULT_MAX_RETRIES,
    "providers": {
        "yandex": {"token": ""},
        "folder": {"root": ""},
    },
}


def _default_config_dir() -> Path:
    env_dir = os.environ.get("PYSYNCER_CONFIG_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".config" / "pysyncer"


def merge_settings(raw: dict[str, Any]) -> dict[str, Any]:
    """Merge stored settings over the defaults.

    Older config files kept the token at the top level (``{"token": ...}``)
    or stored settings under a ``settings`` key; both shapes are accepted.

    Args:
        raw: Settings as read from disk (possibly partial)

    Returns:
        Complete settings dictionary
    """
    stored = raw.get("settings") if isinstance(raw.get("settings"), dict) else raw

    providers: dict[str, Any] = {
        key: dict(value) for key, value in DEFAULT_SETTINGS["providers"].items()
    }
    for provider_id, provider_settings in (stored.get("providers") or {}).items():
        if isinstance(provider_settings, dict):
            providers.setdefault(provider_id, {}).update(provider_settings)

    # Legacy flat token
    if stored.get("token") and not providers["yandex"].get("token"):
        providers["yandex"]["token"] = stored["token"]

    merged = {**DEFAULT_SETTINGS, **stored, "providers": providers}
    merged.pop("token", None)
    merged.pop("settings", None)
    return merged


class Config:
    """Settings for providers and sync behaviour."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = config_dir or _default_config_dir()
        self._settings: Optional[dict[str, Any]] = None

    def get_config_path(self) -> Path:
        """Path to the JSON settings file."""
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def settings(self) -> dict[str, Any]:
        if self._settings is None:
            self._settings = self._load()
        return self._settings

    def _load(self) -> dict[str, Any]:
        path = self.get_config_path()
        if not path.exists():
            return merge_settings({})
        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read config {path}: {e}")
            return merge_settings({})
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed config {path}")
            return merge_settings({})
        return merge_settings(raw)

    def save(self) -> None:
        """Write the current settings to disk.

        Raises:
            SyncerConfigError: If the config file cannot be written
        """
        path = self.get_config_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.settings, f, indent=2)
            # Token is a secret
            os.chmod(path, 0o600)
        except OSError as e:
            raise SyncerConfigError(f"Failed to save config to {path}: {e}") from e
        logger.debug(f"Saved config to {path}")

    def reload(self) -> None:
        self._settings = None

    # =========================
    # Provider settings
    # =========================

    @property
    def active_provider(self) -> str:
        return os.environ.get("PYSYNCER_PROVIDER") or self.settings["activeProvider"]

    def set_active_provider(self, provider_id: str) -> None:
        self.settings["activeProvider"] = provider_id

    def get_provider_settings(self, provider_id: str) -> dict[str, Any]:
        return self.settings["providers"].setdefault(provider_id, {})

    def get_token(self, provider_id: Optional[str] = None) -> str:
        """Return the credentials for a provider (env var wins)."""
        env_token = os.environ.get("PYSYNCER_TOKEN")
        if env_token:
            return env_token
        provider_id = provider_id or self.active_provider
        return self.get_provider_settings(provider_id).get("token") or ""

    def save_token(self, token: str, provider_id: Optional[str] = None) -> None:
        provider_id = provider_id or self.active_provider
        self.get_provider_settings(provider_id)["token"] = token
        self.save()

    def is_configured(self, provider_id: Optional[str] = None) -> bool:
        return bool(self.get_token(provider_id))

    @property
    def folder_root(self) -> Optional[Path]:
        root = self.get_provider_settings("folder").get("root")
        return Path(root).expanduser() if root else None

    # =========================
    # Sync settings
    # =========================

    @property
    def max_concurrent_uploads(self) -> int:
        try:
            value = int(self.settings.get("maxConcurrentUploads", DEFAULT_CONCURRENCY))
        except (TypeError, ValueError):
            value = DEFAULT_CONCURRENCY
        return clamp_concurrency(value)

    @property
    def max_retries(self) -> int:
        try:
            value = int(self.settings.get("maxRetries", DEFAULT_MAX_RETRIES))
        except (TypeError, ValueError):
            value = DEFAULT_MAX_RETRIES
        return min(MAX_RETRIES, max(0, value))

    # =========================
    # State location
    # =========================

    @property
    def state_dir(self) -> Path:
        return self.config_dir / STATE_DIR_NAME

    def get_state_file(self, local_root: Path) -> Path:
        """State file for a local tree, keyed by a hash of its absolute path."""
        local_abs = str(local_root.resolve())
        key = hashlib.sha256(local_abs.encode()).hexdigest()[:16]
        return self.state_dir / f"{key}.json"


config = Config()
