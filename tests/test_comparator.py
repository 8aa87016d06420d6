"""Tests for ContentComparator and file_digest."""

import hashlib

import pytest

import tree_mirror
from tree_mirror import ContentComparator, file_digest


class TestFileDigest:
    def test_matches_hashlib(self, tmp_path):
        f = tmp_path / "data.bin"
        f.write_bytes(b"hello world")
        assert file_digest(f) == hashlib.md5(b"hello world").hexdigest()

    def test_reads_whole_file_across_chunks(self, tmp_path):
        """Small chunk size still digests every byte."""
        payload = bytes(range(256)) * 10
        f = tmp_path / "data.bin"
        f.write_bytes(payload)
        assert file_digest(f, "sha256", chunk_size=7) == hashlib.sha256(payload).hexdigest()


class TestContentComparator:
    def test_different_sizes_skip_digest(self, tmp_path, monkeypatch):
        """Files of different size are unequal without being read."""
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.write_bytes(b"short")
        b.write_bytes(b"much longer")

        def _fail(*args, **kwargs):
            raise AssertionError("digest computed for files of different size")

        monkeypatch.setattr(tree_mirror, "file_digest", _fail)
        assert ContentComparator().equal(a, b) is False

    def test_same_size_different_content(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.write_bytes(b"hello")
        b.write_bytes(b"jello")
        assert ContentComparator().equal(a, b) is False

    def test_same_content(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.write_bytes(b"hello")
        b.write_bytes(b"hello")
        assert ContentComparator().equal(a, b) is True

    def test_difference_in_last_byte_detected(self, tmp_path):
        """The whole stream is compared, not a sample."""
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.write_bytes(b"x" * 5000 + b"1")
        b.write_bytes(b"x" * 5000 + b"2")
        assert ContentComparator(chunk_size=1024).equal(a, b) is False

    def test_empty_files_equal(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.write_bytes(b"")
        b.write_bytes(b"")
        assert ContentComparator().equal(a, b) is True

    def test_does_not_modify_files(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.write_bytes(b"left")
        b.write_bytes(b"rght")
        ContentComparator().equal(a, b)
        assert a.read_bytes() == b"left"
        assert b.read_bytes() == b"rght"

    def test_missing_file_raises(self, tmp_path):
        a = tmp_path / "a"
        a.write_bytes(b"x")
        with pytest.raises(FileNotFoundError):
            ContentComparator().equal(a, tmp_path / "missing")

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ValueError):
            ContentComparator(algorithm="not-a-hash")
