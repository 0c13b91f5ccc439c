"""
RIDI book decryption engine.
"""

import io
import logging
import os
import zipfile
from pathlib import Path

from Crypto.Cipher import AES
from Crypto.Util.Padding import unpad

from ...utils.errors import BookFileNotFoundError, BookIOError, DecryptionError, KeyExtractionError
from .book import DrmVersion, RidiBook

logger = logging.getLogger(__name__)

KEY_SIZE = 16
MIN_KEY_FILE_SIZE = 32
MIN_KEY_TEXT_LENGTH = 84
CONTENT_KEY_SLICE = slice(68, 84)

WRONG_DEVICE_HINT = (
    "Wrong device_id for this book? "
    "Try credentials from the device where the book was downloaded."
)


def _fit_key(data: bytes) -> bytes:
    """Truncate or zero-pad to an AES-128 key."""
    return data[:KEY_SIZE].ljust(KEY_SIZE, b"\x00")


def _decrypt_cbc(data: bytes, key: bytes) -> bytes:
    """
    Decrypt IV-prefixed AES-128-CBC data and strip PKCS#7 padding.

    Raises ValueError if the data is malformed or the padding is invalid.
    """
    if len(data) < AES.block_size:
        raise ValueError(f"Data too small for decryption: {len(data)} bytes")
    cipher = AES.new(key, AES.MODE_CBC, iv=data[: AES.block_size])
    return unpad(cipher.decrypt(data[AES.block_size:]), AES.block_size)


def _read_file(path: Path, what: str) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError as e:
        raise BookFileNotFoundError(f"{what} not found: {path}") from e
    except OSError as e:
        raise BookIOError(f"IO error reading {what.lower()} {path}: {e}") from e


def device_key(device_id: str) -> bytes:
    """AES key built from the first 16 bytes of the device id."""
    return _fit_key(device_id.encode("utf-8"))


def extract_content_key(key_data: bytes, device_id: str) -> bytes:
    """
    Derive a book's content key from its key file contents.

    Args:
        key_data: Raw bytes of the {id}.dat key file
        device_id: RIDI device id of the device that downloaded the book

    Returns:
        16-byte content key

    Raises:
        DecryptionError: Key file too small or not decryptable with this device id
        KeyExtractionError: Decrypted key text is malformed
    """
    if len(key_data) < MIN_KEY_FILE_SIZE:
        raise DecryptionError(f"Invalid key file: too small ({len(key_data)} bytes)")

    try:
        plaintext = _decrypt_cbc(key_data, device_key(device_id))
    except ValueError as e:
        raise DecryptionError(f"Failed to decrypt key file: {e}. {WRONG_DEVICE_HINT}")

    try:
        text = plaintext.decode("utf-8")
    except UnicodeDecodeError:
        raise KeyExtractionError("Invalid UTF-8 in decrypted key file")

    if len(text) < MIN_KEY_TEXT_LENGTH:
        raise KeyExtractionError(f"Decrypted key file too short: {len(text)} chars")

    # Character offsets, not byte offsets
    return _fit_key(text[CONTENT_KEY_SLICE].encode("utf-8"))


def decrypt_v1(data: bytes, key: bytes) -> bytes:
    """Decrypt a whole-file (V1) content payload."""
    try:
        return _decrypt_cbc(data, key)
    except ValueError as e:
        raise DecryptionError(f"Book decryption failed: {e}. {WRONG_DEVICE_HINT}")


def decrypt_v11(data: bytes, key: bytes) -> bytes:
    """
    Decrypt a zip-wrapped (V11) content payload entry by entry.

    Entries that do not decrypt are copied unchanged; every entry is
    re-compressed with deflate.
    """
    try:
        zin = zipfile.ZipFile(io.BytesIO(data), "r")
    except zipfile.BadZipFile as e:
        raise DecryptionError(f"V11 book is not a valid zip archive: {e}")

    output = io.BytesIO()
    with zin, zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as zout:
        for info in zin.infolist():
            contents = zin.read(info)
            try:
                contents = _decrypt_cbc(contents, key)
            except ValueError:
                logger.debug("Keeping entry %s unchanged (not encrypted)", info.filename)
            zout.writestr(info.filename, contents)
    return output.getvalue()


class RidiDecryptor:
    """Decrypts RIDI books using a device id."""

    def __init__(self, device_id: str):
        self.device_id = device_id

    def extract_key(self, book: RidiBook) -> bytes:
        """Read the book's key file and derive its content key."""
        return extract_content_key(_read_file(book.key_path, "Key file"), self.device_id)

    def decrypt_content(self, book: RidiBook, key: bytes) -> bytes:
        """Decrypt the book's content file with its content key."""
        data = _read_file(book.content_path, "Book file")

        if book.drm_version is DrmVersion.V1:
            return decrypt_v1(data, key)
        elif book.drm_version is DrmVersion.V11:
            return decrypt_v11(data, key)
        else:
            raise DecryptionError(f"Unknown DRM version: {book.drm_version}")

    def decrypt_book(self, book: RidiBook, output_path: Path) -> Path:
        """
        Decrypt a RIDI book and save the plaintext file.

        Args:
            book: The RidiBook to decrypt.
            output_path: Destination file path.

        Returns:
            Path to the output file.

        Raises:
            BookFileNotFoundError: Key file or content file missing.
            DecryptionError: Content could not be decrypted.
            KeyExtractionError: Key file plaintext malformed.
            BookIOError: Output could not be written.
        """
        logger.debug("Decrypting %s (%s, %s)", book.id, book.format.value, book.drm_version.value)

        key = self.extract_key(book)
        contents = self.decrypt_content(book, key)
        del key

        output_path = Path(output_path)
        part_path = output_path.with_name(output_path.name + ".part")
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            part_path.write_bytes(contents)
            os.replace(part_path, output_path)
        except OSError as e:
            if part_path.exists():
                part_path.unlink()
            raise BookIOError(f"Failed to write output file {output_path}: {e}") from e

        logger.info("Decrypted %s -> %s", book.id, output_path)
        return output_path
