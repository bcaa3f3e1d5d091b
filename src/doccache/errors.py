"""Exception hierarchy for document acquisition and caching.

Errors are grouped by how a caller should react to them:

- InvalidLocatorError: bad scheme/host or unsafe path, never retried
- TransportError: the network failed before a response arrived, retryable
- UpstreamStatusError: the server answered with something other than 200
- ContentPolicyError: disallowed content type or size, never retried
- CacheIOError: no durable local path could be produced
"""

from typing import Optional


class DocCacheError(Exception):
    """Base exception for all doccache errors."""

    retryable = False


class InvalidConfigError(DocCacheError):
    """Raised when a FetchConfig holds unusable values."""

    pass


class InvalidLocatorError(DocCacheError):
    """Raised when a locator is not a usable URL or path."""

    pass


class PathTraversalError(InvalidLocatorError):
    """Raised when a path contains a parent-directory component."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path traversal detected: {path}")


class InvalidPathError(InvalidLocatorError):
    """Raised when a local path has the wrong kind (file vs directory)."""

    pass


class TransportError(DocCacheError):
    """Raised when a request fails without a server response."""

    retryable = True

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Download failed for {url}: {reason}")


class UpstreamStatusError(DocCacheError):
    """Raised when the server responds with a status other than 200."""

    def __init__(self, url: str, status_code: int):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Download failed for {url}: HTTP {status_code}")


class ContentPolicyError(DocCacheError):
    """Raised when content is rejected by type or size policy."""

    pass


class NotTextFileError(ContentPolicyError):
    """Raised when content is not classified as text."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Not a text file: {detail}")


class ContentTooLargeError(ContentPolicyError):
    """Raised when content exceeds the configured size limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Content too large: {size} bytes exceeds limit of {limit} bytes")


class CacheIOError(DocCacheError):
    """Raised when the cache cannot be read or written."""

    pass


class CacheLockError(CacheIOError):
    """Raised when a per-key cache lock cannot be acquired."""

    retryable = True


class MetadataNotFoundError(CacheIOError):
    """Raised when no metadata file exists for a cache key."""

    pass


class MetadataCorruptError(CacheIOError):
    """Raised when a metadata file cannot be parsed."""

    pass


class CancelledError(DocCacheError):
    """Raised when an operation is aborted by its cancellation signal."""

    pass


class DocumentSourceError(DocCacheError):
    """Raised when one locator of a batch fails.

    Attributes:
        locator: The locator that failed
        cause: The underlying error
    """

    def __init__(self, locator: str, cause: Exception, source: Optional[str] = None):
        self.locator = locator
        self.cause = cause
        self.source = source
        self.retryable = getattr(cause, "retryable", False)
        prefix = f"Document source '{source}': " if source else ""
        super().__init__(f"{prefix}failed to process document '{locator}': {cause}")
