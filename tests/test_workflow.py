"""End-to-end tests for the RidiLoader workflow."""

import os
import zipfile

import pytest

from ridi_loader.core.ridi import ProcessingState
from ridi_loader.core.workflow import RidiLoader
from ridi_loader.utils.config import Config
from ridi_loader.utils.errors import ConfigError, CredentialValidationError, LibraryNotFoundError

from helpers import DEVICE_ID, make_v1_book, make_v11_book, zip_bytes


class RejectingValidator:
    def __init__(self):
        self.calls = []

    def validate(self, device_id, user_idx):
        self.calls.append((device_id, user_idx))
        raise CredentialValidationError("Invalid credentials: HTTP 401")


class TestRun:
    def test_decrypts_library(self, config, bucket, library):
        make_v1_book(bucket, "100", b"%PDF-1.4 body")
        make_v11_book(bucket, "200", encrypted={"text.xhtml": b"<p/>"}, plain={"mimetype": b"application/epub+zip"})

        summary = RidiLoader(config).run()

        assert sorted(r.book_id for r in summary.completed) == ["100", "200"]
        assert (library / "100_decrypted.pdf").read_bytes() == b"%PDF-1.4 body"
        with zipfile.ZipFile(library / "200_decrypted.epub") as zf:
            assert zf.read("text.xhtml") == b"<p/>"
        assert ProcessingState.load(config.state_path).completed == {"100", "200"}

    def test_second_run_processes_nothing(self, config, bucket):
        make_v1_book(bucket, "100", b"a")
        make_v11_book(bucket, "200", encrypted={"a.xhtml": b"<a/>"})
        loader = RidiLoader(config)

        first = loader.run()
        second = loader.run()

        assert len(first.completed) == 2
        assert second.results == []

    def test_bad_book_recorded_and_batch_continues(self, config, bucket):
        bad = bucket / "A"
        bad.mkdir()
        (bad / "A.dat").write_bytes(os.urandom(40))
        (bad / "A.v11.epub").write_bytes(zip_bytes({"chapter.xhtml": b"<html/>"}))
        make_v1_book(bucket, "B", b"fine")

        summary = RidiLoader(config).run()

        assert [r.book_id for r in summary.completed] == ["B"]
        assert [r.book_id for r in summary.failed] == ["A"]
        assert "A" in ProcessingState.load(config.state_path).failed

    def test_resume_skips_completed_even_if_output_deleted(self, config, bucket, library):
        make_v1_book(bucket, "A", b"a")
        make_v1_book(bucket, "B", b"b")
        ProcessingState(completed={"A"}).save(config.state_path)

        summary = RidiLoader(config).run(resume=True)

        assert [r.book_id for r in summary.results] == ["B"]
        assert not (library / "A_decrypted.pdf").exists()
        assert ProcessingState.load(config.state_path).completed == {"A", "B"}

    def test_force_redecrypts(self, config, bucket):
        make_v1_book(bucket, "100", b"a")
        RidiLoader(config).run()

        config.force = True
        summary = RidiLoader(config).run()

        assert [r.book_id for r in summary.completed] == ["100"]

    def test_output_directory(self, fake_paths, library, bucket, tmp_path):
        make_v1_book(bucket, "100", b"payload")
        config = Config(
            device_id=DEVICE_ID,
            output_dir=tmp_path / "books",
            library_path=library,
            state_path=tmp_path / "state.json",
            paths=fake_paths,
        )

        RidiLoader(config).run()

        assert (tmp_path / "books" / "100_decrypted.pdf").read_bytes() == b"payload"


class TestFailures:
    def test_no_books(self, config):
        with pytest.raises(LibraryNotFoundError, match="No books found"):
            RidiLoader(config).run()

    def test_missing_library(self, fake_paths, tmp_path):
        config = Config(device_id=DEVICE_ID, library_path=tmp_path / "missing", paths=fake_paths)

        with pytest.raises(LibraryNotFoundError):
            RidiLoader(config).run()

    def test_missing_device_id(self, fake_paths, library):
        config = Config(library_path=library, paths=fake_paths)

        with pytest.raises(ConfigError, match="Device ID"):
            RidiLoader(config).run()

    def test_validation_failure_stops_before_discovery(self, fake_paths, tmp_path):
        config = Config(device_id=DEVICE_ID, user_idx="1", library_path=tmp_path / "missing", paths=fake_paths)
        validator = RejectingValidator()

        with pytest.raises(CredentialValidationError):
            RidiLoader(config, validator=validator).run(validate=True)
        assert validator.calls == [(DEVICE_ID, "1")]
