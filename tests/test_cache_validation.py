"""Unit tests for cache validation module."""

import hashlib

import pytest

from doccache.cache.validation import (
    check_actual_size,
    check_declared_size,
    compute_checksum,
    compute_checksum_from_bytes,
    derive_cache_key,
    is_text_like,
    normalize_content_type,
    parse_content_length,
    validate_path,
)
from doccache.errors import ContentPolicyError, ContentTooLargeError, PathTraversalError


class TestCacheKey:
    """Test cache key derivation."""

    def test_key_is_sha256_of_locator(self):
        """Test that the key is the hex SHA-256 of the locator string."""
        locator = "https://example.com/doc.txt"
        expected = hashlib.sha256(locator.encode("utf-8")).hexdigest()

        assert derive_cache_key(locator) == expected

    def test_key_format(self):
        """Test that keys are 64 lowercase hex characters."""
        key = derive_cache_key("https://example.com/doc.txt?version=1")

        assert len(key) == 64
        assert all(c in "0123456789abcdef" for c in key)

    def test_key_is_deterministic(self):
        """Test that repeated calls give the same key."""
        locator = "https://example.com/a.txt"
        assert derive_cache_key(locator) == derive_cache_key(locator)

    def test_key_is_stable_across_runs(self):
        """Test against a fixed digest so restarts cannot change keys."""
        # SHA-256 of the empty string
        assert (
            derive_cache_key("")
            == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_locator_is_not_normalized(self):
        """Test that trailing slashes and query order yield different keys."""
        assert derive_cache_key("https://x/y") != derive_cache_key("https://x/y/")
        assert derive_cache_key("https://x/y?a=1&b=2") != derive_cache_key(
            "https://x/y?b=2&a=1"
        )


class TestPathValidation:
    """Test path traversal rejection."""

    @pytest.mark.parametrize(
        "path",
        [
            "/home/user/docs/file.txt",
            "docs/file.txt",
            "relative/dir",
            "/tmp/some.dir/file.txt",
        ],
    )
    def test_valid_paths(self, path):
        """Test that ordinary paths pass."""
        validate_path(path)

    @pytest.mark.parametrize(
        "path",
        [
            "/home/user/../../../etc/passwd",
            "docs/../../etc/passwd",
            "..",
            "../sibling",
            "docs/..",
        ],
    )
    def test_traversal_rejected(self, path):
        """Test that any '..' component is rejected."""
        with pytest.raises(PathTraversalError):
            validate_path(path)

    def test_traversal_error_carries_path(self):
        """Test that the error reports the offending path."""
        with pytest.raises(PathTraversalError) as exc_info:
            validate_path("a/../b")

        assert exc_info.value.path == "a/../b"
        assert "a/../b" in str(exc_info.value)


class TestContentType:
    """Test content type allow-list."""

    @pytest.mark.parametrize(
        "content_type",
        [
            "text/plain",
            "text/html; charset=utf-8",
            "TEXT/Markdown",
            "application/json",
            "application/xml",
            "application/javascript",
            "application/x-yaml",
            "application/yaml",
            "  application/json ; charset=utf-8",
        ],
    )
    def test_text_types_accepted(self, content_type):
        """Test that allow-listed types are accepted."""
        assert is_text_like(content_type) is True

    @pytest.mark.parametrize(
        "content_type",
        [
            "application/octet-stream",
            "image/png",
            "application/pdf",
            "",
            None,
        ],
    )
    def test_other_types_rejected(self, content_type):
        """Test that anything off the allow-list is rejected."""
        assert is_text_like(content_type) is False

    def test_normalize_strips_parameters(self):
        """Test parameter stripping and lower-casing."""
        assert normalize_content_type("Text/HTML; charset=utf-8") == "text/html"
        assert normalize_content_type(None) == ""


class TestSizeLimits:
    """Test declared and actual size checks."""

    def test_declared_at_limit_passes(self):
        """Test that a declared length equal to the limit passes."""
        check_declared_size(100, 100)

    def test_declared_over_limit_rejected(self):
        """Test that limit + 1 is rejected."""
        with pytest.raises(ContentTooLargeError) as exc_info:
            check_declared_size(101, 100)

        assert exc_info.value.size == 101
        assert exc_info.value.limit == 100

    def test_declared_absent_passes(self):
        """Test that an absent length defers to the actual-size check."""
        check_declared_size(None, 100)

    def test_actual_over_limit_rejected(self):
        """Test that actual bytes over the limit are rejected."""
        with pytest.raises(ContentPolicyError):
            check_actual_size(101, 100)

    def test_actual_at_limit_passes(self):
        """Test that actual bytes equal to the limit pass."""
        check_actual_size(100, 100)

    @pytest.mark.parametrize(
        "value,expected",
        [("1024", 1024), (" 7 ", 7), (None, None), ("abc", None), ("-1", None)],
    )
    def test_parse_content_length(self, value, expected):
        """Test Content-Length header parsing."""
        assert parse_content_length(value) == expected


class TestChecksums:
    """Test checksum helpers."""

    def test_checksum_from_bytes(self):
        """Test SHA-256 of bytes."""
        assert compute_checksum_from_bytes(b"hello") == hashlib.sha256(b"hello").hexdigest()

    def test_checksum_of_file_matches_bytes(self, tmp_path):
        """Test that file and byte checksums agree."""
        data = b"x" * 20000
        path = tmp_path / "data.txt"
        path.write_bytes(data)

        assert compute_checksum(path) == compute_checksum_from_bytes(data)
