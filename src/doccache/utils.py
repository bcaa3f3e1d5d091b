"""Utility functions for doccache."""

import os
import threading
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from doccache.errors import CancelledError, InvalidLocatorError

REMOTE_PREFIXES = ("http://", "https://")


def is_remote_locator(locator: Union[str, Path]) -> bool:
    """Check if a locator names a remote document.

    Args:
        locator: Locator to check

    Returns:
        True if the locator starts with an http(s) scheme

    Examples:
        >>> is_remote_locator('https://example.com/a.txt')
        True
        >>> is_remote_locator('/local/path/a.txt')
        False
    """
    return str(locator).startswith(REMOTE_PREFIXES)


def validate_url(url: str) -> None:
    """Check that a URL is safe to download from.

    Only http and https schemes with a non-empty host are accepted. No
    network I/O happens here.

    Raises:
        InvalidLocatorError: If the URL cannot be used
    """
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError as e:
        raise InvalidLocatorError(f"Invalid URL {url!r}: failed to parse: {e}") from e

    if parsed.scheme not in ("http", "https"):
        raise InvalidLocatorError(
            f"Invalid URL {url!r}: unsupported scheme: {parsed.scheme or '(none)'}"
        )

    if not host:
        raise InvalidLocatorError(f"Invalid URL {url!r}: missing host")


def resolve_path(path: Union[str, Path], base_dir: Optional[Union[str, Path]] = None) -> Path:
    """Resolve a local path to absolute form without following symlinks.

    Args:
        path: Path to resolve
        base_dir: Base directory for relative paths (defaults to cwd)

    Returns:
        Absolute path
    """
    path_obj = Path(path).expanduser()
    if not path_obj.is_absolute():
        path_obj = Path(base_dir or Path.cwd()) / path_obj
    return Path(os.path.normpath(str(path_obj)))


def check_cancelled(cancel: Optional[threading.Event], operation: str) -> None:
    """Raise CancelledError if the cancellation event is set.

    Args:
        cancel: Cancellation event, or None for uncancellable calls
        operation: Description used in the error message
    """
    if cancel is not None and cancel.is_set():
        raise CancelledError(f"Cancelled: {operation}")
