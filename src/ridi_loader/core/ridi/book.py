"""
RIDI book model and book directory resolution.
"""

import logging
import re
import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ...utils.errors import BookFileNotFoundError, InvalidPathError, UnsupportedFormatError

logger = logging.getLogger(__name__)

KEY_FILE_EXTENSION = "dat"
CONTENT_EXTENSIONS = ("epub", "pdf")


class BookFormat(Enum):
    """Content file format."""

    EPUB = "epub"
    PDF = "pdf"

    @classmethod
    def from_extension(cls, ext: str) -> "BookFormat":
        """Map a file extension (with or without the dot) to a format."""
        normalized = ext.lower().lstrip(".")
        for fmt in cls:
            if fmt.value == normalized:
                return fmt
        raise UnsupportedFormatError(f"Unsupported book format: {ext}")


class DrmVersion(Enum):
    """DRM scheme used by the content file.

    V1 encrypts the whole file; V11 is a zip whose entries are encrypted one by one.
    """

    V1 = "v1"
    V11 = "v11"


def _content_pattern(book_id: str) -> re.Pattern:
    # {id}.epub, {id}.pdf, {id}.v11.epub, ...
    return re.compile(
        rf"^{re.escape(book_id)}(?P<marker>\.v\d+)?\.(?P<ext>epub|pdf)$",
        re.IGNORECASE,
    )


@dataclass
class RidiBook:
    """Represents one downloaded book in the RIDI library."""

    id: str
    format: BookFormat
    directory: Path
    content_filename: str
    drm_version: DrmVersion
    title: str | None = None

    @classmethod
    def from_directory(cls, directory: Path) -> "RidiBook":
        """
        Build a book from its directory.

        Args:
            directory: Book directory, named after the book id

        Returns:
            The resolved RidiBook

        Raises:
            InvalidPathError: Directory missing or no content file found
            BookFileNotFoundError: Key file missing
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise InvalidPathError(f"Not a book directory: {directory}")

        book_id = directory.name
        if not (directory / f"{book_id}.{KEY_FILE_EXTENSION}").is_file():
            raise BookFileNotFoundError(f"Key file not found: {directory / (book_id + '.dat')}")

        content_filename, has_marker = cls._resolve_content_filename(directory, book_id)
        ext = content_filename.rsplit(".", 1)[-1]

        return cls(
            id=book_id,
            format=BookFormat.from_extension(ext),
            directory=directory,
            content_filename=content_filename,
            drm_version=DrmVersion.V11 if has_marker else DrmVersion.V1,
        )

    @staticmethod
    def _resolve_content_filename(directory: Path, book_id: str) -> tuple[str, bool]:
        """
        Find the content file, preferring a version-marked (encrypted) name.

        A plain {id}.epub next to {id}.v11.epub may be plaintext left by an
        earlier run, so it is only used when no marked file exists.
        """
        pattern = _content_pattern(book_id)
        marked: list[str] = []
        plain: dict[str, str] = {}

        try:
            names = sorted(p.name for p in directory.iterdir() if p.is_file())
        except OSError as e:
            raise InvalidPathError(f"Cannot read book directory {directory}: {e}")

        for name in names:
            match = pattern.match(name)
            if not match:
                continue
            if match.group("marker"):
                marked.append(name)
            else:
                plain.setdefault(match.group("ext").lower(), name)

        if marked:
            return marked[0], True
        for ext in CONTENT_EXTENSIONS:
            if ext in plain:
                return plain[ext], False

        raise InvalidPathError(f"No book file found for '{book_id}' in {directory}")

    @property
    def key_path(self) -> Path:
        return self.directory / f"{self.id}.{KEY_FILE_EXTENSION}"

    @property
    def content_path(self) -> Path:
        return self.directory / self.content_filename

    @property
    def has_version_marker(self) -> bool:
        match = _content_pattern(self.id).match(self.content_filename)
        return bool(match and match.group("marker"))

    @property
    def output_filename(self) -> str:
        return f"{self.id}_decrypted.{self.format.value}"

    @property
    def display_name(self) -> str:
        return self.title or self.id

    def output_path(self, output_dir: Path | None = None, library_path: Path | None = None) -> Path:
        """
        Where the decrypted file goes.

        Priority: explicit output directory, configured library path,
        then the parent of the book directory.
        """
        if output_dir:
            base = Path(output_dir)
        elif library_path:
            base = Path(library_path)
        else:
            base = self.directory.parent
        return base / self.output_filename

    def is_already_decrypted(self, output_dir: Path | None = None, library_path: Path | None = None) -> bool:
        """Check whether the content file is plaintext or an output file already exists."""
        if self.drm_version is not DrmVersion.V11 and not self.has_version_marker:
            # An encrypted EPUB payload is never a well-formed archive
            if self._is_plain_archive(self.content_path):
                logger.debug("Content file of %s is already a readable archive", self.id)
                return True

        output = self.output_path(output_dir, library_path)
        if output.exists():
            logger.debug("Output for %s already exists: %s", self.id, output)
            return True
        return False

    @staticmethod
    def _is_plain_archive(path: Path) -> bool:
        try:
            with zipfile.ZipFile(path) as zf:
                return len(zf.infolist()) > 0
        except (zipfile.BadZipFile, OSError):
            return False

    def file_size(self) -> int | None:
        try:
            return self.content_path.stat().st_size
        except OSError:
            return None

    def format_file_size(self) -> str:
        size = self.file_size()
        if size is None:
            return "Unknown size"
        if size < 1024:
            return f"{size} B"
        if size < 1024 * 1024:
            return f"{size / 1024:.1f} KB"
        return f"{size / (1024 * 1024):.1f} MB"
