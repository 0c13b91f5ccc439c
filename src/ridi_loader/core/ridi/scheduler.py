"""
Bounded-parallel batch decryption with retry and resumable state.
"""

import asyncio
import errno
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from ...utils.errors import (
    BookFileNotFoundError,
    BookIOError,
    DecryptionError,
    InvalidPathError,
    KeyExtractionError,
    RidiLoaderError,
    UnsupportedFormatError,
)
from .book import RidiBook
from .state import ProcessingState

logger = logging.getLogger(__name__)

DEFAULT_PARALLEL = 4
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_CHECKPOINT_INTERVAL = 5

RETRYABLE_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "temporary",
    "temporarily",
    "io error",
    "broken pipe",
    "resource busy",
)

# Failures that come from the book itself and repeat on every attempt
PERMANENT_ERRORS = (
    BookFileNotFoundError,
    InvalidPathError,
    UnsupportedFormatError,
    KeyExtractionError,
    DecryptionError,
)

TRANSIENT_ERRNOS = frozenset({errno.EAGAIN, errno.EBUSY, errno.EINTR, errno.EIO, errno.ETIMEDOUT})


def is_retryable_error(error: BaseException) -> bool:
    """Transient failures (network, timeouts, flaky I/O) are worth retrying."""
    if isinstance(error, PERMANENT_ERRORS):
        return False
    if isinstance(error, BookIOError):
        # The message carries a file path, so judge by the wrapped OS error
        error = error.__cause__
        if not isinstance(error, OSError):
            return False
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    if isinstance(error, OSError) and error.errno is not None:
        return error.errno in TRANSIENT_ERRNOS
    message = str(error).lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


class EventKind(Enum):
    STARTED = "started"
    RETRYING = "retrying"
    FINISHED = "finished"


@dataclass
class BookResult:
    """Outcome of one book's decryption."""

    book_id: str
    success: bool
    error: str | None = None
    output_path: Path | None = None
    attempts: int = 0


@dataclass
class ProgressEvent:
    """Message sent from a worker to the aggregator."""

    kind: EventKind
    book: RidiBook
    slot: int
    result: BookResult | None = None
    message: str | None = None


@dataclass
class BatchProgress:
    """Aggregate progress, owned by the aggregator."""

    total: int
    completed: int = 0
    failed: int = 0
    retries: int = 0
    active: dict[int, str] = field(default_factory=dict)  # {worker slot: book name}

    @property
    def finished(self) -> int:
        return self.completed + self.failed


@dataclass
class BatchSummary:
    results: list[BookResult]
    state: ProcessingState

    @property
    def completed(self) -> list[BookResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[BookResult]:
        return [r for r in self.results if not r.success]


ProgressCallback = Callable[[BatchProgress, ProgressEvent], None]


def select_books(
    books: Iterable[RidiBook],
    state: ProcessingState,
    force: bool = False,
    resume: bool = False,
    output_dir: Path | None = None,
    library_path: Path | None = None,
) -> list[RidiBook]:
    """
    Pick the books a run should process.

    Args:
        books: All resolved books
        state: State loaded from the previous run (empty if not resuming)
        force: Process every book regardless of earlier results
        resume: Skip books recorded as completed in the state
        output_dir: Custom output directory used for the existing-output check
        library_path: Configured library path used for the existing-output check
    """
    selected = []
    for book in books:
        if force:
            selected.append(book)
            continue
        if resume and book.id in state.completed:
            logger.debug("Skipping %s: completed in a previous run", book.id)
            continue
        if book.is_already_decrypted(output_dir, library_path):
            logger.debug("Skipping %s: already decrypted", book.id)
            continue
        selected.append(book)
    return selected


class BatchScheduler:
    """Runs a decrypt callable over many books with bounded parallelism.

    Workers only report events; a single aggregator task applies them to
    the ProcessingState and BatchProgress and writes checkpoints.
    """

    def __init__(
        self,
        decrypt: Callable[[RidiBook], Path],
        state: ProcessingState | None = None,
        state_path: Path | None = None,
        parallel: int = DEFAULT_PARALLEL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            decrypt: Blocking callable decrypting one book, returning the output path
            state: State to fold results into
            state_path: Where checkpoints are written (None disables persistence)
            parallel: Maximum number of books decrypted at once
            max_retries: Attempt budget per book for retryable errors
            retry_delay: Seconds to wait between attempts
            checkpoint_interval: Save state after every N finished books
            on_progress: Called by the aggregator after every event
        """
        if parallel < 1:
            raise ValueError("parallel must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.decrypt = decrypt
        self.state = state if state is not None else ProcessingState()
        self.state_path = state_path
        self.parallel = parallel
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.checkpoint_interval = checkpoint_interval
        self.on_progress = on_progress

    def run_sync(self, books: list[RidiBook]) -> BatchSummary:
        return asyncio.run(self.run(books))

    async def run(self, books: list[RidiBook]) -> BatchSummary:
        """Process all books and return their results.

        If the run is cancelled, the state on disk stays at the last checkpoint.
        """
        queue: asyncio.Queue = asyncio.Queue()
        progress = BatchProgress(total=len(books))
        semaphore = asyncio.Semaphore(self.parallel)
        free_slots = list(reversed(range(self.parallel)))

        aggregator = asyncio.create_task(self._aggregate(queue, progress))
        workers = [
            asyncio.create_task(self._run_book(book, semaphore, free_slots, queue))
            for book in books
        ]

        try:
            await asyncio.gather(*workers)
            await queue.put(None)
            results = await aggregator
        finally:
            for task in (*workers, aggregator):
                if not task.done():
                    task.cancel()

        self._save_state(final=True)
        return BatchSummary(results=results, state=self.state)

    async def _run_book(
        self,
        book: RidiBook,
        semaphore: asyncio.Semaphore,
        free_slots: list[int],
        queue: asyncio.Queue,
    ) -> None:
        async with semaphore:
            slot = free_slots.pop()
            try:
                await queue.put(ProgressEvent(EventKind.STARTED, book, slot))
                result = await self._decrypt_with_retry(book, slot, queue)
                await queue.put(ProgressEvent(EventKind.FINISHED, book, slot, result=result))
            finally:
                free_slots.append(slot)

    async def _decrypt_with_retry(self, book: RidiBook, slot: int, queue: asyncio.Queue) -> BookResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                output_path = await asyncio.to_thread(self.decrypt, book)
                return BookResult(book.id, True, output_path=output_path, attempts=attempt)
            except Exception as e:
                if attempt < self.max_retries and is_retryable_error(e):
                    logger.info(
                        "Retrying %s (%d attempts left): %s", book.id, self.max_retries - attempt, e
                    )
                    await queue.put(ProgressEvent(EventKind.RETRYING, book, slot, message=str(e)))
                    await asyncio.sleep(self.retry_delay)
                    continue
                if not isinstance(e, RidiLoaderError):
                    logger.exception("Unexpected error decrypting %s", book.id)
                else:
                    logger.warning("Failed to decrypt %s: %s", book.id, e)
                return BookResult(book.id, False, error=str(e), attempts=attempt)

    async def _aggregate(self, queue: asyncio.Queue, progress: BatchProgress) -> list[BookResult]:
        results: list[BookResult] = []

        while True:
            event = await queue.get()
            if event is None:
                return results

            if event.kind is EventKind.STARTED:
                self.state.mark_started(event.book.id)
                progress.active[event.slot] = event.book.display_name
            elif event.kind is EventKind.RETRYING:
                progress.retries += 1
            elif event.kind is EventKind.FINISHED:
                result = event.result
                progress.active.pop(event.slot, None)
                if result.success:
                    self.state.mark_completed(result.book_id)
                    progress.completed += 1
                else:
                    self.state.mark_failed(result.book_id, result.error or "Unknown error")
                    progress.failed += 1
                results.append(result)

                if self.checkpoint_interval and progress.finished % self.checkpoint_interval == 0:
                    self._save_state()

            if self.on_progress:
                try:
                    self.on_progress(progress, event)
                except Exception:
                    logger.exception("Progress callback failed on %s event", event.kind.value)

    def _save_state(self, final: bool = False) -> None:
        if self.state_path is None:
            return
        try:
            self.state.save(self.state_path)
        except RidiLoaderError as e:
            if final:
                raise
            logger.warning("Checkpoint failed: %s", e)
        else:
            logger.debug("Saved processing state to %s", self.state_path)
