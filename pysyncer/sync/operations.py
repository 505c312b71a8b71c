"""Transfer primitives: perform one ledger operation against a provider."""

import logging

from ..exceptions import ProviderError
from ..providers.base import CloudProvider, ProviderResult
from .models import OperationType, SyncOperation
from .scanner import LocalFileStore

logger = logging.getLogger(__name__)


class SyncOperations:
    """Uploads and deletes with a common interface."""

    def __init__(
        self, provider: CloudProvider, file_store: LocalFileStore, credentials: str
    ):
        """Initialize sync operations.

        Args:
            provider: Remote storage provider
            file_store: Store the uploaded bytes are read from
            credentials: Credentials passed to every provider call
        """
        self.provider = provider
        self.file_store = file_store
        self.credentials = credentials

    def upload_file(self, path: str) -> None:
        """Upload the current bytes of a local file.

        Raises:
            FileNotReadableError: If the file cannot be read
            ProviderError: If the provider rejects the upload
        """
        data = self.file_store.read_bytes(path)
        self._check(self.provider.upload_file(self.credentials, path, data))

    def delete_remote(self, path: str) -> None:
        """Delete a remote file.

        Raises:
            ProviderError: If the provider rejects the delete
        """
        self._check(self.provider.delete_file(self.credentials, path))

    def perform(self, operation: SyncOperation) -> None:
        """Execute one operation once (no retries)."""
        if operation.type == OperationType.UPLOAD:
            logger.debug(f"Uploading {operation.path}...")
            self.upload_file(operation.path)
        elif operation.type == OperationType.DELETE:
            logger.debug(f"Deleting remote {operation.path}...")
            self.delete_remote(operation.path)
        else:
            raise ValueError(f"Unknown operation type: {operation.type}")

    def _check(self, result: ProviderResult) -> None:
        if not result.ok:
            raise ProviderError(
                result.message or "Operation failed", provider_id=self.provider.id
            )
