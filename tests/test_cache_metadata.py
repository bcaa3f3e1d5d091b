"""Tests for cache entries and the on-disk cache layout."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from doccache.cache.metadata import (
    CacheEntry,
    CacheStore,
    document_path,
    format_timestamp,
    load_metadata,
    metadata_path,
    parse_timestamp,
    save_metadata,
)
from doccache.cache.validation import derive_cache_key
from doccache.errors import CacheIOError, MetadataCorruptError, MetadataNotFoundError


@pytest.fixture
def sample_entry():
    """Create a fully populated cache entry."""
    return CacheEntry(
        url="https://x/y",
        downloaded_at=datetime(2024, 1, 1, 12, 30, 15, 123456, tzinfo=timezone.utc),
        content_hash="abc",
        etag="e1",
        last_modified="Mon, 01 Jan 2024 00:00:00 GMT",
        content_type="text/plain",
        size=1024,
    )


@pytest.fixture
def store(tmp_path):
    """Create a cache store rooted in a temporary directory."""
    return CacheStore(tmp_path)


class TestLayout:
    """Test path composition."""

    def test_document_and_metadata_paths(self, tmp_path):
        """Test the documents/{key}.txt and .meta.json layout."""
        key = "a" * 64

        assert document_path(tmp_path, key) == tmp_path / "documents" / f"{key}.txt"
        assert metadata_path(tmp_path, key) == tmp_path / "documents" / f"{key}.meta.json"

    def test_store_paths_match_functions(self, store, tmp_path):
        """Test that store methods use the same layout."""
        key = derive_cache_key("https://example.com/a.txt")

        assert store.document_path(key) == document_path(tmp_path, key)
        assert store.metadata_path(key) == metadata_path(tmp_path, key)


class TestTimestamps:
    """Test RFC 3339 formatting."""

    def test_utc_uses_z_suffix(self):
        """Test that UTC timestamps end with Z."""
        dt = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert format_timestamp(dt) == "2024-01-01T00:00:00Z"

    def test_parse_z_suffix(self):
        """Test parsing the Z suffix."""
        dt = parse_timestamp("2024-01-01T00:00:00Z")
        assert dt == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_parse_naive_as_utc(self):
        """Test that naive timestamps are treated as UTC."""
        dt = parse_timestamp("2024-01-01T00:00:00")
        assert dt.tzinfo is not None

    def test_parse_nanoseconds_with_offset(self):
        """Test nanosecond precision and a local offset."""
        dt = parse_timestamp("2025-01-15T10:30:00.123456789-08:00")

        assert dt == datetime(
            2025, 1, 15, 10, 30, 0, 123456, tzinfo=timezone(timedelta(hours=-8))
        )

    @pytest.mark.parametrize(
        "value,micros",
        [
            ("2025-01-15T18:30:00.5Z", 500000),
            ("2025-01-15T18:30:00.1234Z", 123400),
            ("2025-01-15T18:30:00.123Z", 123000),
        ],
    )
    def test_parse_short_fractions(self, value, micros):
        """Test fractional seconds with trailing zeros trimmed."""
        assert parse_timestamp(value).microsecond == micros

    def test_load_metadata_with_nanosecond_timestamp(self, tmp_path):
        """Test loading metadata written with nanosecond timestamps."""
        path = tmp_path / "doc.meta.json"
        path.write_text(
            json.dumps(
                {
                    "url": "https://x/y",
                    "downloaded_at": "2025-01-15T10:30:00.123456789-08:00",
                    "content_hash": "abc",
                    "content_type": "text/plain",
                    "size": 3,
                }
            )
        )

        entry = load_metadata(path)

        assert entry.downloaded_at == datetime(
            2025, 1, 15, 18, 30, 0, 123456, tzinfo=timezone.utc
        )
        assert entry.etag == ""


class TestMetadataRoundTrip:
    """Test save/load of metadata files."""

    def test_round_trip_preserves_fields(self, tmp_path, sample_entry):
        """Test that every field survives save then load."""
        path = tmp_path / "test.meta.json"

        save_metadata(path, sample_entry)
        loaded = load_metadata(path)

        assert loaded == sample_entry
        assert loaded.url == "https://x/y"
        assert loaded.content_hash == "abc"
        assert loaded.etag == "e1"
        assert loaded.size == 1024

    def test_json_field_names(self, tmp_path, sample_entry):
        """Test the on-disk JSON keys."""
        path = tmp_path / "test.meta.json"
        save_metadata(path, sample_entry)

        data = json.loads(path.read_text())

        assert set(data) == {
            "url",
            "downloaded_at",
            "content_hash",
            "etag",
            "last_modified",
            "content_type",
            "size",
        }
        assert data["downloaded_at"].endswith("Z")

    def test_empty_validators_omitted(self, tmp_path):
        """Test that empty etag/last_modified are not written."""
        entry = CacheEntry(
            url="https://x/y",
            downloaded_at=datetime.now(timezone.utc),
            content_hash="abc",
            content_type="text/plain",
            size=3,
        )
        path = tmp_path / "test.meta.json"
        save_metadata(path, entry)

        data = json.loads(path.read_text())
        assert "etag" not in data
        assert "last_modified" not in data
        assert load_metadata(path).has_validators is False

    def test_save_creates_parent_directories(self, tmp_path, sample_entry):
        """Test that missing parents are created on demand."""
        path = tmp_path / "deep" / "nested" / "x.meta.json"

        save_metadata(path, sample_entry)

        assert path.exists()

    def test_load_missing(self, tmp_path):
        """Test that a missing file raises MetadataNotFoundError."""
        with pytest.raises(MetadataNotFoundError):
            load_metadata(tmp_path / "missing.meta.json")

    def test_load_corrupt_json(self, tmp_path):
        """Test that invalid JSON raises MetadataCorruptError."""
        path = tmp_path / "bad.meta.json"
        path.write_text("{not json")

        with pytest.raises(MetadataCorruptError):
            load_metadata(path)

    def test_load_missing_fields(self, tmp_path):
        """Test that JSON without required fields is corrupt."""
        path = tmp_path / "partial.meta.json"
        path.write_text(json.dumps({"url": "https://x/y"}))

        with pytest.raises(MetadataCorruptError):
            load_metadata(path)

    def test_corrupt_is_a_cache_io_error(self):
        """Test the error hierarchy."""
        assert issubclass(MetadataCorruptError, CacheIOError)
        assert issubclass(MetadataNotFoundError, CacheIOError)


class TestCacheStore:
    """Test CacheStore operations."""

    def test_write_document(self, store):
        """Test writing content for a key."""
        key = derive_cache_key("https://example.com/a.txt")

        path = store.write_document(key, b"hello")

        assert path == store.document_path(key)
        assert path.read_bytes() == b"hello"
        assert store.has_document(key)

    def test_write_leaves_no_temp_files(self, store):
        """Test that temp files are renamed into place."""
        key = derive_cache_key("https://example.com/a.txt")
        store.write_document(key, b"hello")

        leftovers = [p for p in store.documents_dir.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_metadata_failure_keeps_content(self, store, sample_entry):
        """Test that a failed metadata write leaves content untouched."""
        key = derive_cache_key(sample_entry.url)
        content_path = store.write_document(key, b"hello")

        with patch("doccache.cache.metadata.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(CacheIOError):
                store.save_metadata(key, sample_entry)

        assert content_path.read_bytes() == b"hello"
        assert not store.metadata_path(key).exists()

    def test_metadata_failure_keeps_previous_metadata(self, store, sample_entry):
        """Test that a failed rewrite does not corrupt existing metadata."""
        key = derive_cache_key(sample_entry.url)
        store.save_metadata(key, sample_entry)

        updated = CacheEntry(
            url=sample_entry.url,
            downloaded_at=datetime.now(timezone.utc),
            content_hash="def",
        )
        with patch("doccache.cache.metadata.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(CacheIOError):
                store.save_metadata(key, updated)

        assert store.load_metadata(key) == sample_entry

    def test_get_entry(self, store, sample_entry):
        """Test lookup by locator."""
        store.save_metadata(derive_cache_key(sample_entry.url), sample_entry)

        assert store.get_entry(sample_entry.url) == sample_entry
        assert store.get_entry("https://other/") is None

    def test_list_entries_skips_corrupt(self, store, sample_entry):
        """Test listing entries with a corrupt file present."""
        store.save_metadata(derive_cache_key(sample_entry.url), sample_entry)
        (store.documents_dir / f"{'b' * 64}.meta.json").write_text("garbage")

        entries = store.list_entries()

        assert entries == [sample_entry]

    def test_list_entries_empty(self, store):
        """Test listing an empty cache."""
        assert store.list_entries() == []

    def test_remove(self, store, sample_entry):
        """Test removing one entry."""
        key = derive_cache_key(sample_entry.url)
        store.write_document(key, b"hello")
        store.save_metadata(key, sample_entry)

        assert store.remove(sample_entry.url) is True
        assert not store.document_path(key).exists()
        assert not store.metadata_path(key).exists()
        assert store.remove(sample_entry.url) is False

    def test_clear(self, store):
        """Test clearing all documents."""
        store.write_document(derive_cache_key("https://a/"), b"a")
        store.write_document(derive_cache_key("https://b/"), b"b")

        store.clear()

        assert not store.documents_dir.exists()
        assert isinstance(store.root, Path)

    def test_clear_removes_lock_files(self, store, tmp_path):
        """Test that clearing also drops the per-key lock directory."""
        store.write_document(derive_cache_key("https://a/"), b"a")
        lock_dir = tmp_path / ".locks"
        lock_dir.mkdir()
        (lock_dir / f"{derive_cache_key('https://a/')}.lock").touch()

        store.clear()

        assert store.lock_dir == lock_dir
        assert not lock_dir.exists()
        assert not store.documents_dir.exists()

    def test_clear_empty_cache(self, store):
        """Test that clearing a missing cache is a no-op."""
        store.clear()

        assert not store.root.joinpath(".locks").exists()
