"""Remote storage provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

REMOTE_MARKER_PATH = ".syncer/state.json"


@dataclass(frozen=True)
class ProviderResult:
    """Outcome of a provider call: ``ok`` or a failure message."""

    ok: bool
    message: Optional[str] = None

    @classmethod
    def success(cls) -> "ProviderResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, message: str) -> "ProviderResult":
        return cls(ok=False, message=message)


class CloudProvider(ABC):
    """A remote storage location the local tree is pushed to.

    Failures are reported as ``ProviderResult.failure(message)`` rather than
    raised, so the executor can classify them. Messages for HTTP failures
    contain ``HTTP <status>`` and network failures contain a hint such as
    ``timeout`` or ``Network error``.
    """

    id: str = ""
    name: str = ""
    requires_credentials: bool = True

    @abstractmethod
    def check_connection(self, credentials: str) -> ProviderResult:
        """Verify the credentials and that the remote is reachable."""

    @abstractmethod
    def has_remote_marker(self, credentials: str) -> bool:
        """Whether a sync marker has ever been written to the remote."""

    @abstractmethod
    def write_remote_marker(self, credentials: str, payload: bytes) -> ProviderResult:
        """Store the opaque sync marker payload on the remote."""

    @abstractmethod
    def upload_file(self, credentials: str, path: str, data: bytes) -> ProviderResult:
        """Upload (create or overwrite) one file."""

    @abstractmethod
    def delete_file(self, credentials: str, path: str) -> ProviderResult:
        """Delete one file. Deleting an absent path is a success."""

    def close(self) -> None:
        """Release connections. Default: nothing to release."""
