"""Scanning of local files and directories for text documents."""

import logging
import os
import stat
import threading
from pathlib import Path
from typing import Iterator, List, Optional, Union

from doccache.cache.validation import validate_path
from doccache.errors import InvalidPathError, NotTextFileError
from doccache.utils import check_cancelled, resolve_path

logger = logging.getLogger(__name__)

HIDDEN_PREFIX = "."

# Extensions treated as text or source code
TEXT_EXTENSIONS = frozenset(
    {
        ".txt", ".md", ".markdown",
        ".json", ".yaml", ".yml",
        ".xml", ".html", ".htm",
        ".csv", ".tsv",
        ".log",
        ".rst", ".adoc", ".asciidoc",
        ".tex", ".latex",
        ".org",
        ".conf", ".config", ".cfg",
        ".ini", ".toml",
        ".sh", ".bash", ".zsh",
        ".py", ".js", ".ts", ".go", ".java", ".c", ".cpp", ".h", ".hpp",
        ".rb", ".php", ".pl", ".lua", ".r",
        ".css", ".scss", ".sass", ".less",
        ".sql",
    }
)


def is_text_file(path: Union[str, Path]) -> bool:
    """Check if a file name has a text extension (case-insensitive)."""
    return Path(path).suffix.lower() in TEXT_EXTENSIONS


class Scanner:
    """Finds text files under local paths.

    Directory walks are depth-first with entries visited in name order.
    Hidden entries are always skipped. Errors on individual entries are
    logged and the entry skipped; only a failure at the walk root raises.
    """

    def is_text_file(self, path: Union[str, Path]) -> bool:
        return is_text_file(path)

    def _resolve_directory(self, dir_path: Union[str, Path]) -> Path:
        """Validate and resolve the root of a walk.

        Raises:
            PathTraversalError: If the path contains '..'
            InvalidPathError: If the path is missing or not a directory
        """
        validate_path(dir_path)
        abs_path = resolve_path(dir_path)

        try:
            info = abs_path.stat()
        except OSError as e:
            raise InvalidPathError(f"Failed to stat directory {abs_path}: {e}") from e

        if not stat.S_ISDIR(info.st_mode):
            raise InvalidPathError(f"{abs_path} is not a directory")

        return abs_path

    def iter_directory(
        self,
        dir_path: Union[str, Path],
        recursive: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[Path]:
        """Lazily yield text files under a directory.

        The root is validated eagerly, before the first item is requested.

        Args:
            dir_path: Directory to scan
            recursive: Descend into subdirectories
            cancel: Optional event polled before every entry

        Yields:
            Absolute paths of text files

        Raises:
            PathTraversalError: If the path contains '..'
            InvalidPathError: If the root is missing, not a directory, or unreadable
            CancelledError: If cancel is set during the walk
        """
        root = self._resolve_directory(dir_path)
        check_cancelled(cancel, f"scan {root}")
        try:
            entries = self._list_entries(root)
        except OSError as e:
            raise InvalidPathError(f"Failed to read directory {root}: {e}") from e
        return self._walk(root, entries, recursive, cancel)

    @staticmethod
    def _list_entries(directory: Path) -> List[os.DirEntry]:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda entry: entry.name)

    def _walk(
        self,
        directory: Path,
        entries: List[os.DirEntry],
        recursive: bool,
        cancel: Optional[threading.Event],
    ) -> Iterator[Path]:
        for entry in entries:
            check_cancelled(cancel, f"scan {directory}")

            if entry.name.startswith(HIDDEN_PREFIX):
                continue

            try:
                if entry.is_dir(follow_symlinks=False):
                    if recursive:
                        children = self._list_entries(Path(entry.path))
                        yield from self._walk(Path(entry.path), children, recursive, cancel)
                    continue

                info = entry.stat()
            except OSError as e:
                logger.warning(f"Error accessing path {entry.path}: {e}")
                continue

            if not stat.S_ISREG(info.st_mode):
                continue

            if is_text_file(entry.name):
                logger.debug(f"Found text file: {entry.path}")
                yield Path(entry.path)

    def scan_directory(
        self,
        dir_path: Union[str, Path],
        recursive: bool = True,
        cancel: Optional[threading.Event] = None,
    ) -> List[Path]:
        """Collect text files under a directory.

        Partial results are discarded if the walk is cancelled.

        Returns:
            Absolute paths in walk order
        """
        files = list(self.iter_directory(dir_path, recursive=recursive, cancel=cancel))
        logger.info(f"Scanned directory {dir_path}: found {len(files)} text files")
        return files

    def scan_file(self, file_path: Union[str, Path]) -> Path:
        """Validate a single text file.

        Returns:
            Absolute path of the file

        Raises:
            PathTraversalError: If the path contains '..'
            InvalidPathError: If the path is missing or is a directory
            NotTextFileError: If the extension is not a text extension
        """
        validate_path(file_path)
        abs_path = resolve_path(file_path)

        try:
            info = abs_path.stat()
        except OSError as e:
            raise InvalidPathError(f"Failed to stat file {abs_path}: {e}") from e

        if stat.S_ISDIR(info.st_mode):
            raise InvalidPathError(f"{abs_path} is a directory, not a file")

        if not is_text_file(abs_path):
            raise NotTextFileError(str(abs_path))

        logger.debug(f"Validated text file: {abs_path}")
        return abs_path
