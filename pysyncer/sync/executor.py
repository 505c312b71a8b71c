"""Execution of pending-sync ledgers.

Operations run on a bounded thread pool. Each worker pulls the next operation
from a shared queue, retries transient failures with exponential backoff and
records the outcome on the ledger. The first terminal failure stops workers
from taking new operations; operations already running are allowed to finish.
After every status change the ledger is handed to a checkpoint callback so an
interrupted run can resume where it stopped.
"""

import logging
import queue
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..exceptions import (
    FileNotReadableError,
    ProviderError,
    SyncerNetworkError,
    SyncerRateLimitError,
    SyncOperationError,
)
from ..providers.base import CloudProvider
from ..utils import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    RETRY_MAX_JITTER,
    clamp_concurrency,
)
from .ledger import refresh_done_count, remaining_operations
from .models import PendingSyncLedger, SyncOperation
from .operations import SyncOperations
from .scanner import LocalFileStore

logger = logging.getLogger(__name__)

RETRIABLE_STATUS_MARKERS = ("HTTP 429", "HTTP 500", "HTTP 502", "HTTP 503", "HTTP 504")

RETRIABLE_NETWORK_HINTS = (
    "timeout",
    "timed out",
    "network",
    "temporarily unavailable",
    "connection reset",
    "socket hang up",
    "broken pipe",
)


def is_retriable_error(error: BaseException) -> bool:
    """Classify an operation failure as transient or terminal.

    Rate limiting and server unavailability (``HTTP 429/5xx`` markers) and
    generic network hints in the provider message are transient; everything
    else, including a local file that cannot be read, is terminal.
    """
    if isinstance(error, FileNotReadableError):
        return False
    if isinstance(error, (SyncerNetworkError, SyncerRateLimitError)):
        return True

    message = error.message if isinstance(error, ProviderError) else str(error)
    if any(marker in message for marker in RETRIABLE_STATUS_MARKERS):
        return True

    lower_message = message.lower()
    return any(hint in lower_message for hint in RETRIABLE_NETWORK_HINTS)


def retry_backoff(
    attempt: int,
    base: float = RETRY_BASE_DELAY,
    cap: float = RETRY_MAX_DELAY,
    jitter: float = RETRY_MAX_JITTER,
) -> float:
    """Delay in seconds before retry number ``attempt + 1``.

    ``min(cap, base * 2**attempt)`` plus up to ``jitter`` seconds of random
    jitter.
    """
    return min(cap, base * (2**attempt)) + random.uniform(0, jitter)


@dataclass
class ExecutionResult:
    """Outcome of executing a ledger."""

    ledger: PendingSyncLedger
    error: Optional[SyncOperationError] = None
    """First terminal error, None if every attempted operation succeeded"""

    attempted: int = 0
    """Operations that reached done/failed during this run"""

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class _ExecutionRun:
    """Shared state of one execute() call."""

    ledger: PendingSyncLedger
    work: "queue.Queue[SyncOperation]"
    lock: threading.Lock = field(default_factory=threading.Lock)
    stop: threading.Event = field(default_factory=threading.Event)
    first_error: Optional[SyncOperationError] = None
    fatal: Optional[BaseException] = None
    attempted: int = 0


class OperationExecutor:
    """Runs ledger operations with bounded concurrency and retries."""

    def __init__(
        self,
        provider: CloudProvider,
        file_store: LocalFileStore,
        credentials: str,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        checkpoint: Optional[Callable[[PendingSyncLedger], None]] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize executor.

        Args:
            provider: Remote storage provider
            file_store: Store upload bytes are read from
            credentials: Credentials passed to the provider
            concurrency: Worker count, clamped to [1, 8]
            max_retries: Retries per operation for transient errors
            checkpoint: Called with the whole ledger after every transition
            progress_callback: Called with (done_count, total_count)
            sleep: Function used to wait between retries
        """
        self.operations = SyncOperations(provider, file_store, credentials)
        self.concurrency = clamp_concurrency(concurrency)
        self.max_retries = max(0, max_retries)
        self.checkpoint = checkpoint
        self.progress_callback = progress_callback
        self.sleep = sleep

    def execute(self, ledger: PendingSyncLedger) -> ExecutionResult:
        """Run every operation of ``ledger`` that is not done yet.

        Args:
            ledger: Ledger to execute; statuses are updated in place

        Returns:
            ExecutionResult carrying the first terminal error, if any

        Raises:
            Exception: Whatever the checkpoint callback raised, after all
                workers have stopped
        """
        eligible = remaining_operations(ledger)
        refresh_done_count(ledger)
        self._report(ledger.done_count, ledger.total_count)

        if not eligible:
            return ExecutionResult(ledger=ledger)

        work: "queue.Queue[SyncOperation]" = queue.Queue()
        for operation in eligible:
            work.put(operation)
        run = _ExecutionRun(ledger=ledger, work=work)

        max_workers = min(self.concurrency, len(eligible))
        logger.debug(
            f"Executing {len(eligible)} of {ledger.total_count} operations "
            f"with {max_workers} workers"
        )

        with ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="pysyncer-worker"
        ) as executor:
            futures = [
                executor.submit(self._run_worker, run) for _ in range(max_workers)
            ]
            for future in as_completed(futures):
                future.result()

        if run.fatal is not None:
            raise run.fatal

        return ExecutionResult(
            ledger=ledger, error=run.first_error, attempted=run.attempted
        )

    def _run_worker(self, run: _ExecutionRun) -> None:
        while not run.stop.is_set():
            try:
                operation = run.work.get_nowait()
            except queue.Empty:
                return

            start = time.time()
            try:
                self._perform_with_retry(operation)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.debug(
                    f"Failed {operation.type.value} {operation.path} "
                    f"in {time.time() - start:.2f}s: {message}"
                )
                self._record(run, operation, message)
            else:
                logger.debug(
                    f"Completed {operation.path} in {time.time() - start:.2f}s"
                )
                self._record(run, operation, None)

    def _perform_with_retry(self, operation: SyncOperation) -> None:
        attempt = 0
        while True:
            try:
                self.operations.perform(operation)
                return
            except Exception as e:
                if attempt >= self.max_retries or not is_retriable_error(e):
                    raise
                delay = retry_backoff(attempt)
                logger.debug(
                    f"{operation.type.value} {operation.path} failed "
                    f"(attempt {attempt + 1}/{self.max_retries + 1}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                self.sleep(delay)
                attempt += 1

    def _record(
        self, run: _ExecutionRun, operation: SyncOperation, error: Optional[str]
    ) -> None:
        """Store an operation outcome, checkpoint and report progress."""
        with run.lock:
            if error is None:
                operation.mark_done()
            else:
                operation.mark_failed(error)
                if run.first_error is None:
                    run.first_error = SyncOperationError(
                        operation.type.value, operation.path, error
                    )
                    run.stop.set()
            run.attempted += 1
            refresh_done_count(run.ledger)

            if self.checkpoint is not None:
                try:
                    self.checkpoint(run.ledger)
                except Exception as e:
                    logger.error(f"Checkpoint failed: {e}")
                    if run.fatal is None:
                        run.fatal = e
                    run.stop.set()

            self._report(run.ledger.done_count, run.ledger.total_count)

    def _report(self, done: int, total: int) -> None:
        if self.progress_callback is not None:
            self.progress_callback(done, total)
