"""Builders for encrypted RIDI library fixtures."""

import io
import zipfile
from pathlib import Path

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad

DEVICE_ID = "12345678-1234-1234-1234-123456789012"
OTHER_DEVICE_ID = "87654321-4321-4321-4321-210987654321"
CONTENT_KEY = b"0123456789abcdef"
IV = bytes(range(16))


def aes_key(device_id: str) -> bytes:
    return device_id.encode("utf-8")[:16].ljust(16, b"\x00")


def encrypt_cbc(data: bytes, key: bytes, iv: bytes = IV) -> bytes:
    """IV-prefixed AES-128-CBC with PKCS#7 padding."""
    return iv + AES.new(key, AES.MODE_CBC, iv=iv).encrypt(pad(data, AES.block_size))


def key_text(content_key: bytes = CONTENT_KEY, prefix: str = "A" * 68) -> str:
    return prefix + content_key.decode("utf-8") + "Z" * 16


def key_file_bytes(device_id: str = DEVICE_ID, text: str | None = None) -> bytes:
    if text is None:
        text = key_text()
    return encrypt_cbc(text.encode("utf-8"), aes_key(device_id))


def make_v1_book(bucket: Path, book_id: str, plaintext: bytes, ext: str = "pdf") -> Path:
    """Book directory with a whole-file encrypted {id}.{ext}."""
    book_dir = bucket / book_id
    book_dir.mkdir(parents=True)
    (book_dir / f"{book_id}.dat").write_bytes(key_file_bytes())
    (book_dir / f"{book_id}.{ext}").write_bytes(encrypt_cbc(plaintext, CONTENT_KEY))
    return book_dir


def zip_bytes(entries: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_STORED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def make_v11_book(
    bucket: Path,
    book_id: str,
    encrypted: dict[str, bytes],
    plain: dict[str, bytes] | None = None,
) -> Path:
    """Book directory with {id}.v11.epub whose `encrypted` entries are AES-wrapped."""
    book_dir = bucket / book_id
    book_dir.mkdir(parents=True)
    (book_dir / f"{book_id}.dat").write_bytes(key_file_bytes())

    entries = dict(plain or {})
    entries.update({name: encrypt_cbc(data, CONTENT_KEY) for name, data in encrypted.items()})
    (book_dir / f"{book_id}.v11.epub").write_bytes(zip_bytes(entries))
    return book_dir
