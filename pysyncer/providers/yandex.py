"""Yandex Disk provider (REST API over HTTPS)."""

from __future__ import annotations

import logging
import threading
from typing import Any

import httpx

from .base import REMOTE_MARKER_PATH, CloudProvider, ProviderResult

logger = logging.getLogger(__name__)

API_ROOT = "https://cloud-api.yandex.net/v1/disk"
APP_ROOT = "app:"
VAULT_ROOT = "app:/SyncerVault"


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _describe_request_error(e: httpx.RequestError) -> str:
    if isinstance(e, httpx.TimeoutException):
        return f"Request timeout: {e}"
    return f"Network error: {e}"


class YandexDiskProvider(CloudProvider):
    """Stores the tree under ``app:/SyncerVault`` on Yandex Disk.

    Credentials are an OAuth token. Every method reports failures through
    ProviderResult; HTTP failures carry ``HTTP <status>`` in the message.
    """

    id = "yandex"
    name = "Yandex Disk"
    requires_credentials = True

    def __init__(
        self,
        api_root: str = API_ROOT,
        vault_root: str = VAULT_ROOT,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the provider.

        Args:
            api_root: REST API base URL
            vault_root: Remote folder that mirrors the local tree
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_root = api_root.rstrip("/")
        self.vault_root = vault_root.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()
        self._known_folders: set[str] = set()
        self._folders_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.Client(
                    timeout=httpx.Timeout(self.timeout),
                    follow_redirects=True,
                    transport=self._transport,
                )
            return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        with self._client_lock:
            if self._client is not None and not self._client.is_closed:
                self._client.close()
            self._client = None

    def _request(
        self, method: str, endpoint: str, token: str, **kwargs: Any
    ) -> httpx.Response:
        url = f"{self.api_root}/{endpoint.lstrip('/')}"
        headers = {"Authorization": f"OAuth {token}"}
        return self._get_client().request(method, url, headers=headers, **kwargs)

    def build_remote_path(self, path: str) -> str:
        """Full remote path of a tree-relative path."""
        return f"{self.vault_root}/{path.lstrip('/')}"

    # =========================
    # Connection
    # =========================

    def check_connection(self, credentials: str) -> ProviderResult:
        if not credentials or not credentials.strip():
            return ProviderResult.failure("Missing OAuth token")

        try:
            response = self._request(
                "GET",
                "/resources",
                credentials,
                params={"path": f"{APP_ROOT}/", "fields": "name"},
            )
        except httpx.RequestError as e:
            return ProviderResult.failure(_describe_request_error(e))

        if _is_success(response.status_code):
            return ProviderResult.success()
        return ProviderResult.failure(f"HTTP {response.status_code}")

    # =========================
    # Sync marker
    # =========================

    def has_remote_marker(self, credentials: str) -> bool:
        try:
            response = self._request(
                "GET",
                "/resources",
                credentials,
                params={
                    "path": self.build_remote_path(REMOTE_MARKER_PATH),
                    "fields": "name",
                },
            )
        except httpx.RequestError as e:
            logger.debug(f"Marker lookup failed: {e}")
            return False
        return _is_success(response.status_code)

    def write_remote_marker(self, credentials: str, payload: bytes) -> ProviderResult:
        return self.upload_file(credentials, REMOTE_MARKER_PATH, payload)

    # =========================
    # File operations
    # =========================

    def upload_file(self, credentials: str, path: str, data: bytes) -> ProviderResult:
        full_path = self.build_remote_path(path)
        parent_path = full_path.rsplit("/", 1)[0]
        ensured = self._ensure_folder_path(credentials, parent_path)
        if not ensured.ok:
            return ensured

        try:
            upload_meta = self._request(
                "GET",
                "/resources/upload",
                credentials,
                params={"path": full_path, "overwrite": "true"},
            )
            if not _is_success(upload_meta.status_code):
                return ProviderResult.failure(
                    f"Upload URL error: HTTP {upload_meta.status_code}"
                )

            try:
                href = upload_meta.json().get("href")
            except ValueError:
                href = None
            if not href:
                return ProviderResult.failure(
                    "Upload URL missing in provider response"
                )

            # The href is pre-signed; no Authorization header
            upload_result = self._get_client().put(
                href,
                content=data,
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.RequestError as e:
            return ProviderResult.failure(_describe_request_error(e))

        if _is_success(upload_result.status_code):
            logger.debug(f"Uploaded {path} ({len(data)} bytes)")
            return ProviderResult.success()
        return ProviderResult.failure(
            f"Upload failed: HTTP {upload_result.status_code}"
        )

    def delete_file(self, credentials: str, path: str) -> ProviderResult:
        try:
            response = self._request(
                "DELETE",
                "/resources",
                credentials,
                params={"path": self.build_remote_path(path), "permanently": "true"},
            )
        except httpx.RequestError as e:
            return ProviderResult.failure(_describe_request_error(e))

        if response.status_code == 404 or _is_success(response.status_code):
            return ProviderResult.success()
        return ProviderResult.failure(f"Delete failed: HTTP {response.status_code}")

    # =========================
    # Folders
    # =========================

    def _ensure_folder_path(self, token: str, full_folder_path: str) -> ProviderResult:
        """Create every folder on the way to ``full_folder_path``."""
        if not full_folder_path or full_folder_path == APP_ROOT:
            return ProviderResult.success()

        current = ""
        for segment in (s for s in full_folder_path.split("/") if s):
            if segment == APP_ROOT:
                current = APP_ROOT
                continue

            current = f"{current}/{segment}" if current else segment
            with self._folders_lock:
                if current in self._known_folders:
                    continue

            result = self._create_folder(token, current)
            if not result.ok:
                return result
            with self._folders_lock:
                self._known_folders.add(current)

        return ProviderResult.success()

    def _create_folder(self, token: str, full_folder_path: str) -> ProviderResult:
        try:
            response = self._request(
                "PUT", "/resources", token, params={"path": full_folder_path}
            )
        except httpx.RequestError as e:
            return ProviderResult.failure(_describe_request_error(e))

        # 409: already exists
        if response.status_code in (201, 409):
            return ProviderResult.success()
        return ProviderResult.failure(
            f"Create folder failed: HTTP {response.status_code}"
        )
