"""Unit tests for book directory resolution."""

import pytest

from ridi_loader.core.ridi import BookFormat, DrmVersion, RidiBook
from ridi_loader.utils.errors import BookFileNotFoundError, InvalidPathError, UnsupportedFormatError

from helpers import key_file_bytes, make_v1_book, make_v11_book, zip_bytes


def _book_dir(parent, book_id, *filenames):
    book_dir = parent / book_id
    book_dir.mkdir(parents=True)
    for name in filenames:
        (book_dir / name).write_bytes(b"x" * 64)
    return book_dir


class TestBookFormat:
    @pytest.mark.parametrize("ext, expected", [
        ("epub", BookFormat.EPUB),
        ("PDF", BookFormat.PDF),
        (".Epub", BookFormat.EPUB),
    ])
    def test_from_extension(self, ext, expected):
        assert BookFormat.from_extension(ext) is expected

    def test_unknown_extension(self):
        with pytest.raises(UnsupportedFormatError):
            BookFormat.from_extension("mobi")


class TestFromDirectory:
    def test_plain_epub(self, tmp_path):
        book = RidiBook.from_directory(_book_dir(tmp_path, "100", "100.dat", "100.epub"))

        assert book.id == "100"
        assert book.format is BookFormat.EPUB
        assert book.drm_version is DrmVersion.V1
        assert book.key_path.name == "100.dat"
        assert book.content_path.name == "100.epub"

    def test_versioned_file_is_v11(self, tmp_path):
        book = RidiBook.from_directory(_book_dir(tmp_path, "200", "200.dat", "200.v11.epub"))

        assert book.content_filename == "200.v11.epub"
        assert book.drm_version is DrmVersion.V11
        assert book.has_version_marker

    def test_prefers_encrypted_over_plain(self, tmp_path):
        book_dir = _book_dir(tmp_path, "300", "300.dat", "300.epub", "300.v11.epub")

        book = RidiBook.from_directory(book_dir)

        assert book.content_filename == "300.v11.epub"

    def test_pdf(self, tmp_path):
        book = RidiBook.from_directory(_book_dir(tmp_path, "400", "400.dat", "400.PDF"))

        assert book.format is BookFormat.PDF
        assert book.content_filename == "400.PDF"

    def test_ignores_files_of_other_books(self, tmp_path):
        book_dir = _book_dir(tmp_path, "500", "500.dat", "5001.epub", "500.epub")

        assert RidiBook.from_directory(book_dir).content_filename == "500.epub"

    def test_missing_key_file(self, tmp_path):
        with pytest.raises(BookFileNotFoundError):
            RidiBook.from_directory(_book_dir(tmp_path, "600", "600.epub"))

    def test_missing_content_file(self, tmp_path):
        with pytest.raises(InvalidPathError):
            RidiBook.from_directory(_book_dir(tmp_path, "700", "700.dat", "700.txt"))

    def test_not_a_directory(self, tmp_path):
        with pytest.raises(InvalidPathError):
            RidiBook.from_directory(tmp_path / "missing")


class TestOutputPath:
    def test_priority(self, tmp_path):
        book = RidiBook.from_directory(_book_dir(tmp_path / "lib" / "_1", "800", "800.dat", "800.v11.epub"))

        assert book.output_path(tmp_path / "out", tmp_path / "lib") == tmp_path / "out" / "800_decrypted.epub"
        assert book.output_path(None, tmp_path / "lib") == tmp_path / "lib" / "800_decrypted.epub"
        assert book.output_path() == tmp_path / "lib" / "_1" / "800_decrypted.epub"


class TestAlreadyDecrypted:
    def test_plain_zip_content_counts_as_decrypted(self, tmp_path):
        book_dir = _book_dir(tmp_path, "900", "900.dat")
        (book_dir / "900.epub").write_bytes(zip_bytes({"mimetype": b"application/epub+zip"}))

        assert RidiBook.from_directory(book_dir).is_already_decrypted()

    def test_encrypted_v1_content_is_not(self, bucket):
        book = RidiBook.from_directory(make_v1_book(bucket, "901", b"secret", ext="epub"))

        assert not book.is_already_decrypted()

    def test_v11_zip_is_not_plaintext(self, bucket):
        book = RidiBook.from_directory(make_v11_book(bucket, "902", encrypted={"a.xhtml": b"<a/>"}))

        assert not book.is_already_decrypted()

    def test_existing_output_counts_as_decrypted(self, bucket, tmp_path):
        book = RidiBook.from_directory(make_v1_book(bucket, "903", b"secret"))
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        (out_dir / "903_decrypted.pdf").write_bytes(b"%PDF")

        assert book.is_already_decrypted(output_dir=out_dir)
        assert not book.is_already_decrypted()

    def test_empty_zip_is_not_decrypted(self, tmp_path):
        book_dir = _book_dir(tmp_path, "904", "904.dat")
        (book_dir / "904.epub").write_bytes(zip_bytes({}))

        assert not RidiBook.from_directory(book_dir).is_already_decrypted()


class TestFileSize:
    def test_format_file_size(self, tmp_path):
        book_dir = tmp_path / "905"
        book_dir.mkdir()
        (book_dir / "905.dat").write_bytes(key_file_bytes())
        (book_dir / "905.epub").write_bytes(b"\0" * 2048)

        assert RidiBook.from_directory(book_dir).format_file_size() == "2.0 KB"
