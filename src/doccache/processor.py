"""Turning mixed document locators into a flat list of local paths."""

import logging
import re
import stat
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from doccache.cache.config import FetchConfig
from doccache.cache.manager import Downloader
from doccache.errors import DocCacheError, DocumentSourceError, InvalidLocatorError, InvalidPathError
from doccache.scanner import Scanner
from doccache.utils import check_cancelled, is_remote_locator, resolve_path

logger = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


class LocatorKind(Enum):
    """Kind of document source a locator names."""

    REMOTE_URL = "url"
    LOCAL_FILE = "file"
    LOCAL_DIRECTORY = "directory"


@dataclass(frozen=True)
class DocumentLocator:
    """A classified locator.

    Attributes:
        kind: What the locator names
        location: The URL as given, or the absolute local path
    """

    kind: LocatorKind
    location: str

    @classmethod
    def classify(cls, locator: str) -> "DocumentLocator":
        """Classify a locator by scheme prefix or filesystem stat.

        Raises:
            InvalidLocatorError: If a non-http scheme is used
            InvalidPathError: If a local path does not exist or cannot be read
        """
        if is_remote_locator(locator):
            return cls(LocatorKind.REMOTE_URL, locator)

        if _SCHEME_RE.match(locator):
            raise InvalidLocatorError(f"Unsupported locator scheme: {locator}")

        abs_path = resolve_path(locator)
        try:
            info = abs_path.stat()
        except OSError as e:
            raise InvalidPathError(f"Failed to access path '{abs_path}': {e}") from e

        if stat.S_ISDIR(info.st_mode):
            return cls(LocatorKind.LOCAL_DIRECTORY, str(abs_path))
        return cls(LocatorKind.LOCAL_FILE, str(abs_path))


class DocumentSetProcessor:
    """Resolves locators into local paths ready for indexing.

    URLs are downloaded through the cache, directories are scanned
    recursively for text files and expanded in place, and single files are
    passed through as absolute paths. Explicit files are not
    extension-filtered. The first failing locator aborts the whole batch.
    """

    def __init__(
        self,
        downloader: Optional[Downloader] = None,
        scanner: Optional[Scanner] = None,
        config: Optional[FetchConfig] = None,
    ):
        self._downloader = downloader
        self._config = config
        self.scanner = scanner or Scanner()

    @property
    def downloader(self) -> Downloader:
        """Downloader, created on first use so local-only batches need no cache."""
        if self._downloader is None:
            self._downloader = Downloader(self._config)
        return self._downloader

    def process(
        self, locators: Iterable[str], cancel: Optional[threading.Event] = None
    ) -> List[Path]:
        """Resolve locators into an ordered list of local paths.

        Args:
            locators: URLs, file paths and directory paths
            cancel: Optional cancellation event

        Returns:
            Local absolute paths, in input order with directories expanded

        Raises:
            DocumentSourceError: If any locator fails (wraps the cause)
        """
        processed: List[Path] = []

        for locator in locators:
            try:
                check_cancelled(cancel, "process documents")
                processed.extend(self._process_one(locator, cancel))
            except DocCacheError as e:
                raise DocumentSourceError(locator, e) from e

        return processed

    def _process_one(self, locator: str, cancel: Optional[threading.Event]) -> List[Path]:
        source = DocumentLocator.classify(locator)

        if source.kind is LocatorKind.REMOTE_URL:
            logger.debug(f"Downloading remote document: {locator}")
            local_path = self.downloader.fetch(locator, cancel=cancel)
            logger.debug(f"Downloaded to: {local_path}")
            return [local_path]

        if source.kind is LocatorKind.LOCAL_DIRECTORY:
            logger.debug(f"Scanning directory: {source.location}")
            files = self.scanner.scan_directory(source.location, recursive=True, cancel=cancel)
            logger.debug(f"Found {len(files)} files in directory")
            return files

        logger.debug(f"Adding file: {source.location}")
        return [Path(source.location)]

    def process_sources(
        self,
        sources: Dict[str, List[str]],
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, List[Path]]:
        """Resolve several named groups of locators.

        Args:
            sources: Mapping of source name to its locators
            cancel: Optional cancellation event

        Returns:
            Mapping of source name to resolved local paths

        Raises:
            DocumentSourceError: If any locator fails, naming its source
        """
        if sources:
            logger.info("Processing document sources...")

        processed: Dict[str, List[Path]] = {}
        for name, locators in sources.items():
            try:
                processed[name] = self.process(locators, cancel=cancel)
            except DocumentSourceError as e:
                raise DocumentSourceError(e.locator, e.cause, source=name) from e.cause
            logger.info(f"Processed document source '{name}': {len(processed[name])} documents")

        return processed
