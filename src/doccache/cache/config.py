"""Fetch configuration and cache root resolution."""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from doccache.cache.metadata import DOCUMENTS_DIR, LOCKS_DIR
from doccache.errors import CacheIOError, InvalidConfigError

# Environment variable overriding the cache root
CACHE_DIR_ENV = "DOCCACHE_CACHE_DIR"

# Subdirectory appended to the platform cache directory
CACHE_SUBDIR = Path("doccache") / "rag"

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_CONTENT_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_LOCK_TIMEOUT = 30.0


def resolve_cache_root(
    override: Optional[str] = None,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Resolve the cache root directory.

    Priority:
    1. Explicit override argument
    2. DOCCACHE_CACHE_DIR environment variable
    3. Platform default:
       - macOS: ~/Library/Caches/doccache/rag
       - Windows: %LOCALAPPDATA%/doccache/rag
       - others: $XDG_CACHE_HOME/doccache/rag or ~/.cache/doccache/rag

    All inputs are explicit so the result is a pure function of them; the
    defaults read the running process's state.

    Args:
        override: Explicit cache directory
        platform: Platform identifier as in sys.platform
        env: Environment mapping
        home: Home directory

    Returns:
        Cache root path

    Raises:
        CacheIOError: If the Windows default is needed but LOCALAPPDATA is unset
    """
    if override:
        return Path(override).expanduser()

    env = os.environ if env is None else env
    platform = sys.platform if platform is None else platform

    if env.get(CACHE_DIR_ENV):
        return Path(env[CACHE_DIR_ENV]).expanduser()

    if platform == "darwin":
        home = Path.home() if home is None else home
        return home / "Library" / "Caches" / CACHE_SUBDIR

    if platform.startswith("win"):
        local_app_data = env.get("LOCALAPPDATA")
        if not local_app_data:
            raise CacheIOError("LOCALAPPDATA environment variable not set")
        return Path(local_app_data) / CACHE_SUBDIR

    xdg_cache = env.get("XDG_CACHE_HOME")
    if xdg_cache:
        return Path(xdg_cache) / CACHE_SUBDIR

    home = Path.home() if home is None else home
    return home / ".cache" / CACHE_SUBDIR


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class FetchConfig:
    """Configuration for document fetching and caching.

    Attributes:
        cache_dir: Root directory of the cache. Resolved once on creation
            (explicit value, then DOCCACHE_CACHE_DIR, then platform default).
        timeout: HTTP timeout in seconds
        max_content_bytes: Maximum accepted document size in bytes
        force_refresh: Always re-download, ignoring cached copies
        assume_valid_without_validators: Treat a cached copy with no
            ETag/Last-Modified as fresh without contacting the server
        assume_valid_on_transport_error: Treat a cached copy as fresh when
            the revalidation request fails at the transport level
        lock_timeout: Seconds to wait for a per-key cache lock
    """

    cache_dir: Optional[Path] = None
    timeout: float = DEFAULT_TIMEOUT
    max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES
    force_refresh: bool = False
    assume_valid_without_validators: bool = True
    assume_valid_on_transport_error: bool = True
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    _is_explicit_cache_dir: bool = field(default=False, repr=False)

    def __post_init__(self):
        """Resolve cache_dir and track whether it was explicitly provided."""
        if self.cache_dir is None:
            self.cache_dir = resolve_cache_root()
            self._is_explicit_cache_dir = False
        else:
            self.cache_dir = Path(self.cache_dir).expanduser()
            self._is_explicit_cache_dir = True

    @property
    def documents_dir(self) -> Path:
        """Directory holding cached content and metadata files."""
        return self.cache_dir / DOCUMENTS_DIR

    @property
    def lock_dir(self) -> Path:
        """Directory holding per-key lock files."""
        return self.cache_dir / LOCKS_DIR

    def validate(self) -> None:
        """Check that numeric settings are usable.

        Raises:
            InvalidConfigError: If timeout or max_content_bytes is not positive
        """
        if self.timeout is None or self.timeout <= 0:
            raise InvalidConfigError("timeout must be positive")
        if self.max_content_bytes is None or self.max_content_bytes <= 0:
            raise InvalidConfigError("max content size must be positive")
        if self.lock_timeout is not None and self.lock_timeout < 0:
            raise InvalidConfigError("lock timeout must not be negative")

    @classmethod
    def load(cls, config_path: Path) -> "FetchConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config file

        Returns:
            FetchConfig instance (defaults if the file does not exist)
        """
        config_path = Path(config_path)
        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if data.get("cache_dir"):
            data["cache_dir"] = Path(data["cache_dir"])

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to a JSON file.

        Args:
            config_path: Path to config file. If None, uses cache_dir/config.json.
        """
        if config_path is None:
            config_path = self.cache_dir / "config.json"
        config_path = Path(config_path)

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir) if self._is_explicit_cache_dir else None,
            "timeout": self.timeout,
            "max_content_bytes": self.max_content_bytes,
            "force_refresh": self.force_refresh,
            "assume_valid_without_validators": self.assume_valid_without_validators,
            "assume_valid_on_transport_error": self.assume_valid_on_transport_error,
            "lock_timeout": self.lock_timeout,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "FetchConfig":
        """Create configuration from environment variables.

        Environment variables:
            DOCCACHE_CACHE_DIR: Cache directory path
            DOCCACHE_TIMEOUT: HTTP timeout in seconds
            DOCCACHE_MAX_CONTENT_BYTES: Maximum document size in bytes
            DOCCACHE_FORCE_REFRESH: Force re-download (true/false)

        Returns:
            FetchConfig instance

        Raises:
            InvalidConfigError: If a numeric variable cannot be parsed
        """
        env = os.environ if env is None else env
        kwargs = {}

        try:
            if env.get(CACHE_DIR_ENV):
                kwargs["cache_dir"] = Path(env[CACHE_DIR_ENV])
            if env.get("DOCCACHE_TIMEOUT"):
                kwargs["timeout"] = float(env["DOCCACHE_TIMEOUT"])
            if env.get("DOCCACHE_MAX_CONTENT_BYTES"):
                kwargs["max_content_bytes"] = int(env["DOCCACHE_MAX_CONTENT_BYTES"])
        except ValueError as e:
            raise InvalidConfigError(f"Invalid environment setting: {e}") from e

        if env.get("DOCCACHE_FORCE_REFRESH"):
            kwargs["force_refresh"] = _parse_bool(env["DOCCACHE_FORCE_REFRESH"])

        return cls(**kwargs)
