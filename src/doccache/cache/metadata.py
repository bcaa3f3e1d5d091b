"""Cache entry metadata and on-disk layout.

Layout under the cache root:

    documents/{key}.txt        raw content
    documents/{key}.meta.json  metadata for the content file
"""

import json
import logging
import os
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from doccache.cache.validation import derive_cache_key
from doccache.errors import CacheIOError, MetadataCorruptError, MetadataNotFoundError

logger = logging.getLogger(__name__)

DOCUMENTS_DIR = "documents"
DOCUMENT_EXT = ".txt"
METADATA_EXT = ".meta.json"
LOCKS_DIR = ".locks"


# RFC 3339 allows any number of fractional digits; fromisoformat before 3.11 takes 3 or 6
_FRACTION_RE = re.compile(r"\.(\d+)")


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as RFC 3339 (UTC uses the 'Z' suffix)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    text = dt.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp, including the 'Z' suffix.

    Fractional seconds of any precision are accepted and truncated to
    microseconds.
    """
    value = value.replace("Z", "+00:00")
    value = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    dt = datetime.fromisoformat(value)
    # Handle timezone-naive datetimes
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class CacheEntry:
    """Metadata describing one cached document."""

    url: str
    downloaded_at: datetime
    content_hash: str
    etag: str = ""
    last_modified: str = ""
    content_type: str = ""
    size: int = 0

    @property
    def has_validators(self) -> bool:
        """True if the entry carries an ETag or Last-Modified value."""
        return bool(self.etag or self.last_modified)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the on-disk JSON shape (empty validators omitted)."""
        data: Dict[str, Any] = {
            "url": self.url,
            "downloaded_at": format_timestamp(self.downloaded_at),
            "content_hash": self.content_hash,
        }
        if self.etag:
            data["etag"] = self.etag
        if self.last_modified:
            data["last_modified"] = self.last_modified
        data["content_type"] = self.content_type
        data["size"] = self.size
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        """Build an entry from its JSON shape.

        Raises:
            KeyError, TypeError, ValueError: If required fields are missing or invalid
        """
        return cls(
            url=data["url"],
            downloaded_at=parse_timestamp(data["downloaded_at"]),
            content_hash=data["content_hash"],
            etag=data.get("etag") or "",
            last_modified=data.get("last_modified") or "",
            content_type=data.get("content_type") or "",
            size=int(data.get("size", 0)),
        )


def document_path(root: Path, key: str) -> Path:
    """Path of the content file for a cache key."""
    return Path(root) / DOCUMENTS_DIR / f"{key}{DOCUMENT_EXT}"


def metadata_path(root: Path, key: str) -> Path:
    """Path of the metadata file for a cache key."""
    return Path(root) / DOCUMENTS_DIR / f"{key}{METADATA_EXT}"


def _atomic_write(path: Path, data: bytes) -> None:
    """Write bytes through a temp file and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    try:
        with open(temp_path, "wb") as f:
            f.write(data)
        os.replace(temp_path, path)
    except BaseException:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError as e:
                logger.warning(f"Failed to clean up temp file {temp_path}: {e}")
        raise


def save_metadata(path: Path, entry: CacheEntry) -> None:
    """Write metadata JSON, creating parent directories on demand.

    The write goes through a temp file, so a failure leaves any existing
    metadata file and the content file untouched.

    Raises:
        CacheIOError: If the file cannot be written
    """
    path = Path(path)
    payload = json.dumps(entry.to_dict(), indent=2).encode("utf-8")
    try:
        _atomic_write(path, payload)
    except OSError as e:
        raise CacheIOError(f"Failed to write metadata file {path}: {e}") from e


def load_metadata(path: Path) -> CacheEntry:
    """Read metadata JSON.

    Raises:
        MetadataNotFoundError: If the file does not exist
        MetadataCorruptError: If the file cannot be parsed
        CacheIOError: If the file exists but cannot be read
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise MetadataNotFoundError(f"No metadata file at {path}") from e
    except json.JSONDecodeError as e:
        raise MetadataCorruptError(f"Failed to parse metadata {path}: {e}") from e
    except OSError as e:
        raise CacheIOError(f"Failed to read metadata file {path}: {e}") from e

    try:
        return CacheEntry.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MetadataCorruptError(f"Invalid metadata in {path}: {e}") from e


class CacheStore:
    """Reads and writes cached documents under a cache root."""

    def __init__(self, root: Path):
        """Initialize the store.

        Args:
            root: Cache root directory (created lazily on first write)
        """
        self.root = Path(root)
        self.documents_dir = self.root / DOCUMENTS_DIR
        self.lock_dir = self.root / LOCKS_DIR

    def document_path(self, key: str) -> Path:
        return document_path(self.root, key)

    def metadata_path(self, key: str) -> Path:
        return metadata_path(self.root, key)

    def has_document(self, key: str) -> bool:
        """True if a content file exists for the key."""
        return self.document_path(key).is_file()

    def write_document(self, key: str, content: bytes) -> Path:
        """Write content for a key and return its path.

        Raises:
            CacheIOError: If the content cannot be written
        """
        path = self.document_path(key)
        try:
            _atomic_write(path, content)
        except PermissionError as e:
            raise CacheIOError(f"Cannot write to cache file {path}: {e}") from e
        except OSError as e:
            logger.error(f"OS error writing cache file: {e}")
            raise CacheIOError(f"Failed to write document to cache: {e}") from e
        return path

    def save_metadata(self, key: str, entry: CacheEntry) -> None:
        save_metadata(self.metadata_path(key), entry)

    def load_metadata(self, key: str) -> CacheEntry:
        return load_metadata(self.metadata_path(key))

    def get_entry(self, locator: str) -> Optional[CacheEntry]:
        """Metadata for a locator, or None if missing or unreadable."""
        try:
            return self.load_metadata(derive_cache_key(locator))
        except CacheIOError as e:
            logger.debug(f"No usable metadata for {locator}: {e}")
            return None

    def iter_entries(self) -> Iterator[CacheEntry]:
        """Yield every readable cache entry, skipping corrupt files."""
        if not self.documents_dir.is_dir():
            return
        for meta_file in sorted(self.documents_dir.glob(f"*{METADATA_EXT}")):
            try:
                yield load_metadata(meta_file)
            except CacheIOError as e:
                logger.warning(f"Skipping unreadable metadata {meta_file}: {e}")

    def list_entries(self) -> List[CacheEntry]:
        return list(self.iter_entries())

    def remove(self, locator: str) -> bool:
        """Remove the content and metadata for a locator.

        Returns:
            True if anything was removed
        """
        key = derive_cache_key(locator)
        removed = False
        for path in (self.document_path(key), self.metadata_path(key)):
            try:
                path.unlink()
                removed = True
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheIOError(f"Cannot remove cache file {path}: {e}") from e
        return removed

    def clear(self) -> None:
        """Remove every cached document along with the per-key lock files."""
        for directory in (self.documents_dir, self.lock_dir):
            if not directory.exists():
                continue
            try:
                shutil.rmtree(directory)
            except OSError as e:
                raise CacheIOError(f"Cannot clear cache at {directory}: {e}") from e
