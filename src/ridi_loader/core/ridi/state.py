"""
Resumable batch processing state.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from ...utils.errors import BookIOError

logger = logging.getLogger(__name__)


@dataclass
class ProcessingState:
    """Which books finished, failed or were mid-flight at the last checkpoint."""

    completed: set[str] = field(default_factory=set)
    failed: dict[str, str] = field(default_factory=dict)  # {book_id: last error message}
    in_progress: set[str] = field(default_factory=set)

    def mark_started(self, book_id: str) -> None:
        self.in_progress.add(book_id)

    def mark_completed(self, book_id: str) -> None:
        self.in_progress.discard(book_id)
        self.failed.pop(book_id, None)
        self.completed.add(book_id)

    def mark_failed(self, book_id: str, error: str) -> None:
        self.in_progress.discard(book_id)
        self.completed.discard(book_id)
        self.failed[book_id] = error

    def to_dict(self) -> dict:
        return {
            "completed": sorted(self.completed),
            "failed": [[book_id, self.failed[book_id]] for book_id in sorted(self.failed)],
            "in_progress": sorted(self.in_progress),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessingState":
        return cls(
            completed=set(data.get("completed", [])),
            failed={book_id: message for book_id, message in data.get("failed", [])},
            in_progress=set(data.get("in_progress", [])),
        )

    @classmethod
    def load(cls, path: Path) -> "ProcessingState":
        """
        Load a snapshot written by a previous run.

        A missing or unreadable snapshot yields an empty state.
        """
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                state = cls.from_dict(json.load(f))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable processing state %s: %s", path, e)
            return cls()

        logger.debug(
            "Loaded processing state: %d completed, %d failed",
            len(state.completed),
            len(state.failed),
        )
        return state

    def save(self, path: Path) -> None:
        """Write the snapshot atomically."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".state-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_name, path)
        except OSError as e:
            raise BookIOError(f"Failed to save processing state to {path}: {e}") from e
