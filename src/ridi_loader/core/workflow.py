"""
Main workflow orchestration.
"""

import logging
from pathlib import Path

from .ridi import (
    BatchScheduler,
    BatchSummary,
    CredentialValidator,
    LibraryFinder,
    ProcessingState,
    RidiBook,
    RidiDecryptor,
    select_books,
)
from .ridi.scheduler import DEFAULT_RETRY_DELAY, ProgressCallback
from ..utils.config import Config
from ..utils.errors import LibraryNotFoundError

logger = logging.getLogger(__name__)


class RidiLoader:
    """Main RIDI decryption workflow."""

    def __init__(
        self,
        config: Config,
        finder: LibraryFinder | None = None,
        validator: CredentialValidator | None = None,
    ):
        self.config = config
        self.finder = finder or LibraryFinder(config.paths)
        self.validator = validator or CredentialValidator()

    def validate_credentials(self) -> None:
        """Check the configured credentials with RIDI. Raises on rejection."""
        self.config.require_credentials()
        self.validator.validate(self.config.device_id, self.config.user_idx)

    def find_books(self) -> list[RidiBook]:
        """
        All books in the configured (or discovered) library.

        Raises:
            LibraryNotFoundError: No book could be found
        """
        books = self.finder.find_books(self.config.library_path)
        if not books:
            raise LibraryNotFoundError(
                "No books found. Make sure RIDI is installed and books are downloaded."
            )
        return books

    def load_state(self, resume: bool) -> ProcessingState:
        if resume:
            return ProcessingState.load(self.config.state_path)
        return ProcessingState()

    def select(self, books: list[RidiBook], state: ProcessingState, resume: bool = False) -> list[RidiBook]:
        return select_books(
            books,
            state,
            force=self.config.force,
            resume=resume,
            output_dir=self.config.output_dir,
            library_path=self.config.library_path,
        )

    def decrypt_book(self, book: RidiBook) -> Path:
        """Decrypt a single book to its configured output location."""
        decryptor = RidiDecryptor(self.config.device_id)
        output_path = book.output_path(self.config.output_dir, self.config.library_path)
        return decryptor.decrypt_book(book, output_path)

    def process_books(
        self,
        books: list[RidiBook],
        state: ProcessingState | None = None,
        on_progress: ProgressCallback | None = None,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> BatchSummary:
        """
        Decrypt books in parallel, folding results into the processing state.

        Args:
            books: Books to decrypt (already filtered)
            state: State to update; persisted to config.state_path
            on_progress: Progress observer
            retry_delay: Seconds between retries

        Returns:
            Summary with per-book results and the final state
        """
        self.config.require_credentials()

        scheduler = BatchScheduler(
            self.decrypt_book,
            state=state,
            state_path=self.config.state_path,
            parallel=self.config.parallel,
            max_retries=self.config.max_retries,
            retry_delay=retry_delay,
            on_progress=on_progress,
        )
        logger.info("Processing %d book(s) with %d worker(s)", len(books), self.config.parallel)
        return scheduler.run_sync(books)

    def run(
        self,
        resume: bool = False,
        validate: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> BatchSummary:
        """
        Complete processing workflow.

        Args:
            resume: Skip books completed in the previous run
            validate: Check credentials with RIDI before doing anything else
            on_progress: Progress observer

        Returns:
            Batch summary (empty when nothing needed processing)
        """
        # 1. Credentials
        self.config.require_credentials()
        if validate:
            self.validate_credentials()

        # 2. Discover and resolve books
        books = self.find_books()

        # 3. Choose what still needs work
        state = self.load_state(resume)
        todo = self.select(books, state, resume=resume)
        if not todo:
            logger.info("All %d book(s) already decrypted", len(books))
            return BatchSummary(results=[], state=state)

        # 4. Decrypt
        return self.process_books(todo, state=state, on_progress=on_progress)
