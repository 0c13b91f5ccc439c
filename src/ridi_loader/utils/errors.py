"""
Custom exception classes for ridi-loader.
"""


class RidiLoaderError(Exception):
    """Base exception class for all ridi-loader errors."""

    pass


class BookIOError(RidiLoaderError):
    """Raised when reading or writing a book file fails at the OS level."""

    pass


class InvalidPathError(RidiLoaderError):
    """Raised when a book directory cannot be resolved into a book."""

    pass


class BookFileNotFoundError(RidiLoaderError):
    """Raised when a book's key file or content file is missing."""

    pass


class UnsupportedFormatError(RidiLoaderError):
    """Raised when a content file extension is neither EPUB nor PDF."""

    pass


class KeyExtractionError(RidiLoaderError):
    """Raised when the decrypted key file does not contain a usable content key."""

    pass


class DecryptionError(RidiLoaderError):
    """Raised when AES decryption or padding removal fails."""

    pass


class ConfigError(RidiLoaderError):
    """Raised when configuration values or the config file are invalid."""

    pass


class LibraryNotFoundError(RidiLoaderError):
    """Raised when the RIDI library directory cannot be found."""

    pass


class CredentialValidationError(RidiLoaderError):
    """Raised when RIDI rejects the device id / user index pair."""

    pass
