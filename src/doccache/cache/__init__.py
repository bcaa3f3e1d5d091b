"""Local caching of remote documents.

This package downloads documents over HTTP and keeps them in a local cache,
revalidating cached copies with conditional requests.

Key components:
- Downloader: Fetch-or-reuse interface
- FetchConfig: Configuration and cache root resolution
- CacheStore / CacheEntry: On-disk layout and metadata
- validation: Key derivation, path and content checks
"""

from doccache.cache.config import FetchConfig, resolve_cache_root
from doccache.cache.manager import Downloader
from doccache.cache.metadata import (
    CacheEntry,
    CacheStore,
    document_path,
    load_metadata,
    metadata_path,
    save_metadata,
)
from doccache.cache.validation import (
    derive_cache_key,
    is_text_like,
    validate_path,
)

__all__ = [
    "Downloader",
    "FetchConfig",
    "resolve_cache_root",
    "CacheEntry",
    "CacheStore",
    "document_path",
    "metadata_path",
    "load_metadata",
    "save_metadata",
    "derive_cache_key",
    "is_text_like",
    "validate_path",
]
