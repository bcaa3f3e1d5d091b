"""Downloader for fetching remote documents into the local cache."""

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple

import requests
from filelock import FileLock, Timeout

from doccache.cache.config import FetchConfig
from doccache.cache.metadata import CacheEntry, CacheStore
from doccache.cache.validation import (
    check_actual_size,
    check_declared_size,
    compute_checksum_from_bytes,
    derive_cache_key,
    is_text_like,
    parse_content_length,
)
from doccache.errors import (
    CacheIOError,
    CacheLockError,
    NotTextFileError,
    TransportError,
    UpstreamStatusError,
)
from doccache.utils import check_cancelled, validate_url

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class Downloader:
    """Downloads documents over HTTP and keeps them in a local cache.

    A fetch runs through these states:

        CHECK_CACHE -> VALIDATE_FRESHNESS -> FETCH -> VALIDATE_CONTENT
        -> PERSIST -> DONE

    and raises on failure from any of them. Cached copies are revalidated with
    a conditional request when the stored metadata carries an ETag or
    Last-Modified value. Fetches of the same locator are serialized with a
    per-key file lock, so concurrent threads and processes never interleave
    writes for one key.
    """

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the downloader.

        Args:
            config: Fetch configuration (defaults if None)
            session: HTTP session to use (a new one if None)

        Raises:
            InvalidConfigError: If the configuration is unusable
        """
        self.config = config or FetchConfig()
        self.config.validate()
        self.store = CacheStore(self.config.cache_dir)
        self.session = session or requests.Session()
        logger.debug(f"Initialized downloader with cache directory: {self.cache_dir}")

    @property
    def cache_dir(self) -> Path:
        """Cache root directory in use."""
        return self.config.cache_dir

    def _get_lock_path(self, key: str) -> Path:
        return self.config.lock_dir / f"{key}.lock"

    def _get_lock(self, key: str) -> FileLock:
        """Create the file lock guarding one cache key.

        Raises:
            CacheIOError: If the lock directory cannot be created
        """
        lock_dir = self.config.lock_dir
        try:
            lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Error creating cache lock directory: {e}")
            raise CacheIOError(f"Cannot access cache directory at {lock_dir}: {e}") from e
        return FileLock(str(self._get_lock_path(key)), timeout=self.config.lock_timeout)

    def cached_path(self, locator: str) -> Optional[Path]:
        """Return the cached content path for a locator, or None if absent."""
        path = self.store.document_path(derive_cache_key(locator))
        return path if path.is_file() else None

    def fetch(self, locator: str, cancel: Optional[threading.Event] = None) -> Path:
        """Fetch a document and return its local cached path.

        Args:
            locator: http(s) URL of the document
            cancel: Optional event; when set, the fetch aborts with CancelledError

        Returns:
            Path to the cached content file

        Raises:
            InvalidLocatorError: If the URL scheme or host is invalid
            TransportError: If the request fails without a response
            UpstreamStatusError: If the server does not answer 200
            ContentPolicyError: If the content type or size is rejected
            CacheIOError: If the content cannot be written locally
            CancelledError: If cancel is set during the fetch
        """
        validate_url(locator)
        check_cancelled(cancel, f"fetch {locator}")

        key = derive_cache_key(locator)
        lock = self._get_lock(key)
        # Timeout subclasses OSError, so it must be caught first
        try:
            lock.acquire()
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring lock for {locator} after {self.config.lock_timeout} seconds"
            ) from e
        except OSError as e:
            logger.error(f"Error acquiring cache lock {lock.lock_file}: {e}")
            raise CacheIOError(f"Cannot lock cache entry for {locator}: {e}") from e

        try:
            return self._fetch_locked(locator, key, cancel)
        finally:
            lock.release()

    def _fetch_locked(
        self, locator: str, key: str, cancel: Optional[threading.Event]
    ) -> Path:
        """Fetch with the per-key lock already held."""
        if self.store.has_document(key) and not self.config.force_refresh:
            if self._is_fresh(locator, key, cancel):
                logger.debug(f"Using cached document for {locator}")
                return self.store.document_path(key)
            logger.debug(f"Cached document for {locator} is stale")

        logger.info(f"Downloading document from {locator}")
        content, entry = self._download(locator, cancel)

        path = self.store.write_document(key, content)
        entry.content_hash = compute_checksum_from_bytes(content)
        entry.size = len(content)

        try:
            self.store.save_metadata(key, entry)
        except CacheIOError as e:
            # Content is cached even if the metadata update fails
            logger.warning(f"Failed to save metadata for {locator}: {e}")

        logger.info(f"Downloaded and cached document from {locator} ({len(content)} bytes)")
        return path

    def validate_cache(self, locator: str, cancel: Optional[threading.Event] = None) -> bool:
        """Check whether the cached copy of a locator is still fresh.

        Returns:
            True if a cached copy exists and may be used
        """
        key = derive_cache_key(locator)
        if not self.store.has_document(key):
            return False
        return self._is_fresh(locator, key, cancel)

    def _is_fresh(
        self, locator: str, key: str, cancel: Optional[threading.Event]
    ) -> bool:
        """Decide whether a cached document can be reused."""
        try:
            entry = self.store.load_metadata(key)
        except CacheIOError as e:
            logger.warning(f"Failed to validate cache for {locator}: {e}")
            return False

        if not entry.has_validators:
            return self.config.assume_valid_without_validators

        return self._check_freshness(locator, entry, cancel)

    def _check_freshness(
        self, locator: str, entry: CacheEntry, cancel: Optional[threading.Event]
    ) -> bool:
        """Revalidate a cached entry with a conditional request.

        A 304 confirms freshness and any other response marks the entry
        stale. Transport failures fall back to
        config.assume_valid_on_transport_error.
        """
        headers: Dict[str, str] = {}
        if entry.etag:
            headers["If-None-Match"] = entry.etag
        if entry.last_modified:
            headers["If-Modified-Since"] = entry.last_modified

        check_cancelled(cancel, f"revalidate {locator}")
        try:
            response = self.session.head(
                locator,
                headers=headers,
                timeout=self.config.timeout,
                allow_redirects=True,
            )
        except requests.exceptions.RequestException as e:
            logger.debug(
                f"Revalidation request failed for {locator}, "
                f"assume valid={self.config.assume_valid_on_transport_error}: {e}"
            )
            return self.config.assume_valid_on_transport_error

        try:
            return response.status_code == 304
        finally:
            response.close()

    def _download(
        self, locator: str, cancel: Optional[threading.Event]
    ) -> Tuple[bytes, CacheEntry]:
        """GET a document and validate status, type and size."""
        check_cancelled(cancel, f"fetch {locator}")
        limit = self.config.max_content_bytes

        try:
            response = self.session.get(locator, timeout=self.config.timeout, stream=True)
        except requests.exceptions.RequestException as e:
            raise TransportError(locator, str(e)) from e

        with response:
            if response.status_code != 200:
                raise UpstreamStatusError(locator, response.status_code)

            content_type = response.headers.get("Content-Type", "")
            if not is_text_like(content_type):
                raise NotTextFileError(f"content type: {content_type or '(none)'}")

            check_declared_size(parse_content_length(response.headers.get("Content-Length")), limit)

            content = self._read_body(response, locator, limit, cancel)
            check_actual_size(len(content), limit)

            entry = CacheEntry(
                url=locator,
                downloaded_at=datetime.now(timezone.utc),
                content_hash="",
                etag=response.headers.get("ETag", ""),
                last_modified=response.headers.get("Last-Modified", ""),
                content_type=content_type,
                size=len(content),
            )

        return content, entry

    def _read_body(
        self,
        response: requests.Response,
        locator: str,
        limit: int,
        cancel: Optional[threading.Event],
    ) -> bytes:
        """Read at most limit + 1 bytes of the body, polling for cancellation."""
        buffer = bytearray()
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                check_cancelled(cancel, f"read {locator}")
                if not chunk:
                    continue
                buffer.extend(chunk[: limit + 1 - len(buffer)])
                if len(buffer) > limit:
                    break
        except requests.exceptions.RequestException as e:
            raise TransportError(locator, f"failed to read response body: {e}") from e
        return bytes(buffer)
