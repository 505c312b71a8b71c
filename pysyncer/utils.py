"""Utility functions for pysyncer."""

import hashlib
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

# =============================================================================
# Constants for sync operations
# =============================================================================

# Worker pool bounds for transfer operations
MIN_CONCURRENCY: int = 1
MAX_CONCURRENCY: int = 8
DEFAULT_CONCURRENCY: int = 4

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
MAX_RETRIES: int = 10
RETRY_BASE_DELAY: float = 0.4  # seconds
RETRY_MAX_DELAY: float = 5.0  # seconds
RETRY_MAX_JITTER: float = 0.2  # seconds

# Read size used when hashing files
HASH_CHUNK_SIZE: int = 1024 * 1024


def clamp_concurrency(value: int) -> int:
    """Clamp a configured worker count into the supported range.

    Examples:
        >>> clamp_concurrency(0)
        1
        >>> clamp_concurrency(20)
        8
    """
    return min(MAX_CONCURRENCY, max(MIN_CONCURRENCY, value))


# =============================================================================
# Hash calculation utilities
# =============================================================================


def sha256_hex(data: bytes) -> str:
    """Return the hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def sha256_chunks(chunks: Iterable[bytes]) -> str:
    """Return the hex SHA-256 digest over a stream of byte chunks.

    The digest is identical to hashing the concatenated bytes at once, so
    a file hashed in chunks matches ``sha256_hex`` of its full contents.
    """
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk)
    return digest.hexdigest()


# =============================================================================
# Timestamp utilities
# =============================================================================


def now_timestamp() -> float:
    """Current time as a Unix timestamp."""
    return time.time()


def format_timestamp(timestamp: Optional[float]) -> str:
    """Format a Unix timestamp for display.

    Args:
        timestamp: Unix timestamp or None

    Returns:
        Local time string, or "never" when no timestamp is given
    """
    if timestamp is None:
        return "never"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
