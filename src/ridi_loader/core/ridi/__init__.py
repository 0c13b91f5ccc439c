"""
RIDI Books library discovery and DRM removal.
"""

from .book import BookFormat, DrmVersion, RidiBook
from .credentials import CredentialValidator
from .decryptor import RidiDecryptor
from .library import LibraryFinder, LibraryLocation
from .paths import LibrarySource, PlatformPaths
from .scheduler import BatchScheduler, BatchSummary, BookResult, select_books
from .state import ProcessingState

__all__ = [
    "BookFormat",
    "DrmVersion",
    "RidiBook",
    "CredentialValidator",
    "RidiDecryptor",
    "LibraryFinder",
    "LibraryLocation",
    "LibrarySource",
    "PlatformPaths",
    "BatchScheduler",
    "BatchSummary",
    "BookResult",
    "select_books",
    "ProcessingState",
]
