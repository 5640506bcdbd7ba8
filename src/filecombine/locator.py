"""
Discovery and caching of ``.gitignore`` / ``.filecombine`` files.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .fs import FileKind, LocalFileSystem
from .ignore import IgnoreMatcher, compile_matcher, parse_patterns

logger = logging.getLogger(__name__)

GITIGNORE_FILENAME = ".gitignore"
OVERRIDE_FILENAME = ".filecombine"
IGNORE_FILENAMES: Tuple[str, ...] = (GITIGNORE_FILENAME, OVERRIDE_FILENAME)


@dataclass(frozen=True)
class IgnoreFileEntry:
    file_path: Path
    patterns: Tuple[str, ...]

    @property
    def directory(self) -> Path:
        return self.file_path.parent


_MISSING = object()


class IgnoreFileCache:
    """Parsed ignore files keyed by absolute path.

    Lives for one run: :func:`filecombine.aggregator.combine_files` clears it
    before collecting, since ignore files may change between runs. A cached
    ``None`` means "no rules here" (missing or unreadable file).
    """

    def __init__(self) -> None:
        self._entries: Dict[Path, Optional[IgnoreFileEntry]] = {}
        self._lock = threading.Lock()

    def get(self, path: Path):
        with self._lock:
            return self._entries.get(path, _MISSING)

    def put(self, path: Path, entry: Optional[IgnoreFileEntry]) -> None:
        with self._lock:
            self._entries[path] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, path: Path) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def is_within(path: Path, root: Path) -> bool:
    """Return whether ``path`` is at or under ``root``."""
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


class IgnoreFileLocator:
    """Finds the ignore files that apply to a directory.

    Search never goes above *workspace_root*. Compiled matchers are memoised
    per directory for the lifetime of the locator (one run).
    """

    def __init__(
        self,
        workspace_root: Path,
        cache: IgnoreFileCache,
        fs: Optional[LocalFileSystem] = None,
        filenames: Sequence[str] = IGNORE_FILENAMES,
    ):
        self.workspace_root = Path(workspace_root)
        self.cache = cache
        self.fs = fs or LocalFileSystem()
        self.filenames = tuple(filenames)
        self._matchers: Dict[Path, Optional[IgnoreMatcher]] = {}
        self._lock = threading.Lock()

    def read_entry(self, file_path: Path) -> Optional[IgnoreFileEntry]:
        cached = self.cache.get(file_path)
        if cached is not _MISSING:
            return cached

        entry: Optional[IgnoreFileEntry] = None
        if not self.fs.exists(file_path):
            self.cache.put(file_path, None)
            return None
        try:
            raw = self.fs.read_file(file_path)
        except (FileNotFoundError, NotADirectoryError):
            pass
        except OSError as e:
            logger.warning("Could not read ignore file %s: %s", file_path, e)
        else:
            text = raw.decode("utf-8", errors="replace")
            entry = IgnoreFileEntry(file_path=file_path, patterns=tuple(parse_patterns(text)))
            logger.debug("Loaded %d patterns from %s", len(entry.patterns), file_path)

        self.cache.put(file_path, entry)
        return entry

    def entries_in(self, directory: Path) -> List[IgnoreFileEntry]:
        entries = []
        for name in self.filenames:
            entry = self.read_entry(directory / name)
            if entry is not None:
                entries.append(entry)
        return entries

    def locate(self, start: Path) -> List[IgnoreFileEntry]:
        """Collect ignore files from *start* up to the workspace root, deepest first."""
        start = Path(start)
        try:
            current = start if self.fs.stat(start).kind is FileKind.DIRECTORY else start.parent
        except OSError:
            current = start.parent

        found: List[IgnoreFileEntry] = []
        for directory in self.directories(current):
            found.extend(self.entries_in(directory))
        return found

    def directories(self, start: Path) -> Iterator[Path]:
        """Yield *start* and its ancestors up to the workspace root, deepest first.

        Nothing is yielded for a directory outside the workspace.
        """
        current = Path(start)
        visited = set()
        while is_within(current, self.workspace_root) and current not in visited:
            visited.add(current)
            yield current
            if current == self.workspace_root:
                return
            parent = current.parent
            if parent == current:
                return
            current = parent

    def matcher_for(self, directory: Path) -> Optional[IgnoreMatcher]:
        with self._lock:
            if directory in self._matchers:
                return self._matchers[directory]

        patterns: List[str] = []
        for entry in self.entries_in(directory):
            patterns.extend(entry.patterns)
        matcher = compile_matcher(directory, patterns)

        with self._lock:
            return self._matchers.setdefault(directory, matcher)
