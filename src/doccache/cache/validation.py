"""Key derivation, path and content validation for cached documents."""

import hashlib
import os
from pathlib import Path
from typing import Optional, Union

from doccache.errors import ContentTooLargeError, PathTraversalError

# Content types accepted for caching (prefix match after normalization)
TEXT_CONTENT_TYPES = (
    "text/",
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
    "application/yaml",
)


def derive_cache_key(locator: str) -> str:
    """Derive the cache key for a locator.

    The key is addressed by locator, not by content: the exact string is
    hashed without normalization, so 'https://x/a' and 'https://x/a/' map to
    different keys.

    Args:
        locator: Document locator (usually a URL)

    Returns:
        64-character lowercase hex SHA-256 digest

    Examples:
        >>> len(derive_cache_key('https://example.com/doc.txt'))
        64
    """
    return hashlib.sha256(locator.encode("utf-8")).hexdigest()


def compute_checksum_from_bytes(data: bytes) -> str:
    """Compute the SHA-256 hex digest of bytes.

    Args:
        data: Bytes to hash

    Returns:
        Hex digest of checksum
    """
    return hashlib.sha256(data).hexdigest()


def compute_checksum(file_path: Path) -> str:
    """Compute the SHA-256 hex digest of a file.

    Args:
        file_path: Path to file

    Returns:
        Hex digest of checksum
    """
    hasher = hashlib.sha256()

    # Read file in chunks to handle large files
    with open(file_path, "rb") as f:
        while chunk := f.read(8192):
            hasher.update(chunk)

    return hasher.hexdigest()


def validate_path(path: Union[str, Path]) -> None:
    """Reject paths that contain a parent-directory component.

    The raw input is checked first, then its lexically normalized form.

    Args:
        path: Path to validate

    Raises:
        PathTraversalError: If '..' appears before or after normalization
    """
    path_str = str(path)
    if ".." in path_str:
        raise PathTraversalError(path_str)

    if ".." in os.path.normpath(path_str):
        raise PathTraversalError(path_str)


def normalize_content_type(content_type: Optional[str]) -> str:
    """Strip parameters and lower-case a Content-Type header value.

    Examples:
        >>> normalize_content_type('Text/HTML; charset=utf-8')
        'text/html'
    """
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_text_like(content_type: Optional[str]) -> bool:
    """Check whether a Content-Type header is on the text allow-list.

    Args:
        content_type: Raw Content-Type header value (may be None)

    Returns:
        True if the media type is text-like, False otherwise
    """
    media_type = normalize_content_type(content_type)
    if not media_type:
        return False
    return media_type.startswith(TEXT_CONTENT_TYPES)


def parse_content_length(value: Optional[str]) -> Optional[int]:
    """Parse a Content-Length header, returning None when absent or invalid."""
    if value is None:
        return None
    try:
        length = int(value.strip())
    except (TypeError, ValueError):
        return None
    return length if length >= 0 else None


def check_declared_size(declared_length: Optional[int], limit: int) -> None:
    """Reject a response whose declared length exceeds the limit.

    This runs before any body byte is read. An absent length passes here;
    the actual byte count is checked separately with check_actual_size.

    Args:
        declared_length: Parsed Content-Length, or None
        limit: Maximum accepted size in bytes

    Raises:
        ContentTooLargeError: If declared_length > limit
    """
    if declared_length is not None and declared_length > limit:
        raise ContentTooLargeError(declared_length, limit)


def check_actual_size(actual_length: int, limit: int) -> None:
    """Reject content whose actual size exceeds the limit.

    Raises:
        ContentTooLargeError: If actual_length > limit
    """
    if actual_length > limit:
        raise ContentTooLargeError(actual_length, limit)
