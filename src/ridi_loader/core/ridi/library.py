"""
RIDI library discovery.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from ...utils.errors import LibraryNotFoundError, RidiLoaderError
from .book import CONTENT_EXTENSIONS, KEY_FILE_EXTENSION, RidiBook
from .paths import LibrarySource, PlatformPaths

logger = logging.getLogger(__name__)

USER_BUCKET_PATTERN = re.compile(r"^_\d+$")
METADATA_DIRNAME = "metadata"

BASE_CONFIDENCE = 0.1
METADATA_BONUS = 0.3
USER_BUCKET_BONUS = 0.4
BOOK_BONUS = 0.3
MAX_CONFIDENCE = 1.0


@dataclass
class LibraryLocation:
    """A candidate RIDI library root."""

    path: Path
    confidence: float
    book_count: int = 0
    source: LibrarySource = LibrarySource.COMMON_PATH


def _list_dir(path: Path) -> list[Path]:
    """Sorted directory listing; unreadable directories yield nothing."""
    try:
        return sorted(path.iterdir())
    except OSError as e:
        logger.debug("Skipping unreadable directory %s: %s", path, e)
        return []


def is_user_bucket(name: str) -> bool:
    """User buckets are named '_' followed by the numeric RIDI user id."""
    return USER_BUCKET_PATTERN.match(name) is not None


def is_book_directory(path: Path) -> bool:
    """True if the directory holds a key file and a content file."""
    if not path.is_dir():
        return False

    has_key = False
    has_content = False
    for entry in _list_dir(path):
        if not entry.is_file():
            continue
        ext = entry.suffix.lower().lstrip(".")
        if ext == KEY_FILE_EXTENSION:
            has_key = True
        elif ext in CONTENT_EXTENSIONS:
            has_content = True
    return has_key and has_content


class LibraryFinder:
    """Finds RIDI library roots and the book directories inside them."""

    def __init__(self, paths: PlatformPaths | None = None):
        self.paths = paths or PlatformPaths()

    def calculate_confidence(self, path: Path) -> float:
        """
        Heuristic 0.0-1.0 score that a directory is a RIDI library root.

        A directory without any RIDI marker scores 0.0.
        """
        path = Path(path)
        if not path.is_dir():
            return 0.0

        confidence = BASE_CONFIDENCE
        evidence = False

        if (path / METADATA_DIRNAME).is_dir():
            confidence += METADATA_BONUS
            evidence = True

        if any(child.is_dir() and is_user_bucket(child.name) for child in _list_dir(path)):
            confidence += USER_BUCKET_BONUS
            evidence = True

        if self.find_book_directories(path):
            confidence += BOOK_BONUS
            evidence = True

        if not evidence:
            return 0.0
        return min(confidence, MAX_CONFIDENCE)

    def count_books(self, path: Path) -> int:
        return len(self.find_book_directories(path))

    def find_library_locations(self, root: Path | None = None) -> list[LibraryLocation]:
        """
        Candidate library roots sorted by descending confidence.

        Args:
            root: Explicit library root. When given, only this path is scored.

        Raises:
            LibraryNotFoundError: The explicit root does not exist
        """
        if root is not None:
            root = Path(root).expanduser()
            if not root.is_dir():
                raise LibraryNotFoundError(f"Library directory not found: {root}")
            return [
                LibraryLocation(
                    path=root,
                    confidence=self.calculate_confidence(root),
                    book_count=self.count_books(root),
                    source=LibrarySource.USER_SPECIFIED,
                )
            ]

        locations = []
        for path, source in self.paths.library_candidates():
            try:
                confidence = self.calculate_confidence(path)
            except OSError as e:
                logger.debug("Skipping library candidate %s: %s", path, e)
                continue
            if confidence <= 0.0:
                continue
            locations.append(
                LibraryLocation(
                    path=path,
                    confidence=confidence,
                    book_count=self.count_books(path),
                    source=source,
                )
            )
            logger.debug("Library candidate %s scored %.2f", path, confidence)

        # sort() is stable, so ties keep discovery order
        locations.sort(key=lambda loc: loc.confidence, reverse=True)
        return locations

    def find_book_directories(self, root: Path) -> list[Path]:
        """Book directories inside user buckets, plus any directly under root."""
        book_dirs = []
        for child in _list_dir(Path(root)):
            if not child.is_dir():
                continue
            if is_user_bucket(child.name):
                book_dirs.extend(d for d in _list_dir(child) if is_book_directory(d))
            elif is_book_directory(child):
                book_dirs.append(child)
        return book_dirs

    def find_books(self, root: Path | None = None) -> list[RidiBook]:
        """
        Resolve every book in the library.

        Args:
            root: Explicit library root; otherwise all discovered locations are scanned

        Returns:
            Books in discovery order. A book id found in several locations is
            taken from the highest-confidence one.
        """
        roots = [loc.path for loc in self.find_library_locations(root)]

        books: list[RidiBook] = []
        seen: set[str] = set()
        for library_root in roots:
            for book_dir in self.find_book_directories(library_root):
                if book_dir.name in seen:
                    continue
                try:
                    book = RidiBook.from_directory(book_dir)
                except RidiLoaderError as e:
                    logger.warning("Failed to process book directory %s: %s", book_dir, e)
                    continue
                seen.add(book.id)
                books.append(book)

        logger.info("Found %d book(s) in %d library location(s)", len(books), len(roots))
        return books
