"""doccache: Download, validate and cache documents for local indexing."""

__version__ = "0.1.0"

from doccache.cache import CacheEntry, CacheStore, Downloader, FetchConfig
from doccache.processor import DocumentLocator, DocumentSetProcessor, LocatorKind
from doccache.scanner import Scanner

__all__ = [
    "CacheEntry",
    "CacheStore",
    "DocumentLocator",
    "DocumentSetProcessor",
    "Downloader",
    "FetchConfig",
    "LocatorKind",
    "Scanner",
    "__version__",
]
