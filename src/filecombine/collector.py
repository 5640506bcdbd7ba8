"""
Tree walking: turn selected roots into a deduplicated list of files plus a
record of everything that was left out and why.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from .errors import OperationCancelled, SelectionError
from .fs import FileKind, LocalFileSystem
from .ignore import GlobalExcluder
from .locator import IgnoreFileLocator, is_within

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8

# (path, kind, real paths of the directories above it in this walk)
_Pending = Tuple[Path, FileKind, FrozenSet[str]]


class CancellationToken:
    """Cooperative cancellation flag polled by the collector and reader."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")


def absolute(path) -> Path:
    """Absolute, normalised path without resolving symlinks."""
    return Path(os.path.abspath(os.fspath(path)))


def relative_to_workspace(path: Path, workspace_root: Path) -> str:
    """POSIX path of *path* relative to the workspace (absolute when outside)."""
    try:
        return path.relative_to(workspace_root).as_posix()
    except ValueError:
        return path.as_posix()


@dataclass(frozen=True)
class SelectionRoot:
    path: Path
    kind: FileKind

    @classmethod
    def from_path(cls, path, fs: Optional[LocalFileSystem] = None) -> "SelectionRoot":
        fs = fs or LocalFileSystem()
        path = absolute(path)
        return cls(path=path, kind=fs.stat(path).kind)


@dataclass(frozen=True)
class CollectedFile:
    path: Path
    relative_path: str


@dataclass(frozen=True)
class ExclusionRecord:
    relative_path: str
    reason_directory: Path


@dataclass
class CollectionResult:
    files: List[CollectedFile] = field(default_factory=list)
    ignored: List[ExclusionRecord] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


def resolve_roots(
    paths: Iterable, fs: Optional[LocalFileSystem] = None
) -> Tuple[List[SelectionRoot], List[Tuple[str, str]]]:
    """Stat each selected path.

    Returns the roots that could be stat'ed and ``(path, message)`` pairs for
    those that could not. Raises :class:`SelectionError` when none could.
    """
    fs = fs or LocalFileSystem()
    roots: List[SelectionRoot] = []
    failed: List[Tuple[str, str]] = []
    paths = list(paths)
    for p in paths:
        try:
            roots.append(SelectionRoot.from_path(p, fs))
        except OSError as e:
            logger.warning("Could not stat selected path %s: %s", p, e)
            failed.append((str(p), str(e)))
    if paths and not roots:
        raise SelectionError(
            "None of the selected paths could be read: "
            + ", ".join(path for path, _ in failed)
        )
    return roots, failed


class FileCollector:
    """Walks selected roots applying global excludes and ignore files.

    Siblings are visited concurrently, one directory level at a time. Every
    decision depends only on the path and the ignore files in its ancestor
    chain, so the outcome does not depend on which root reached a path first.
    """

    def __init__(
        self,
        workspace_root: Path,
        excluder: GlobalExcluder,
        locator: IgnoreFileLocator,
        fs: Optional[LocalFileSystem] = None,
        token: Optional[CancellationToken] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.workspace_root = absolute(workspace_root)
        self.excluder = excluder
        self.locator = locator
        self.fs = fs or LocalFileSystem()
        self.token = token or CancellationToken()
        self.max_workers = max(1, max_workers)

        self._lock = threading.Lock()
        self._seen_files: Set[Path] = set()
        self._files: List[CollectedFile] = []
        self._ignored: Dict[str, ExclusionRecord] = {}
        self._excluded: Set[str] = set()
        self._failed: List[Tuple[str, str]] = []

    def collect(self, roots: Iterable[SelectionRoot]) -> CollectionResult:
        frontier: List[_Pending] = [(absolute(root.path), root.kind, frozenset()) for root in roots]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            while frontier:
                self.token.raise_if_cancelled()
                batches = pool.map(self._visit, frontier)
                frontier = [child for batch in batches for child in batch]
        return self._result()

    def _result(self) -> CollectionResult:
        with self._lock:
            return CollectionResult(
                files=sorted(self._files, key=lambda f: f.relative_path),
                ignored=sorted(self._ignored.values(), key=lambda r: r.relative_path),
                excluded=sorted(self._excluded),
                failed=sorted(self._failed),
            )

    def ignoring_directory(self, path: Path, is_dir: bool) -> Optional[Path]:
        """Return the directory whose ignore rules exclude *path*, if any.

        Checks the containing directory first and walks up to the workspace
        root; the deepest matching directory wins.
        """
        if path == self.workspace_root or not is_within(path, self.workspace_root):
            return None
        for directory in self.locator.directories(path.parent):
            matcher = self.locator.matcher_for(directory)
            if matcher is not None and matcher.matches(path.relative_to(directory).as_posix(), is_dir):
                return directory
        return None

    def _visit(self, item: _Pending) -> List[_Pending]:
        self.token.raise_if_cancelled()
        path, kind, ancestors = item
        if kind is FileKind.OTHER:
            logger.debug("Skipping special file %s", path)
            return []

        is_dir = kind is FileKind.DIRECTORY
        rel = relative_to_workspace(path, self.workspace_root)

        if path != self.workspace_root:
            if self.excluder.matches(rel, is_dir):
                with self._lock:
                    self._excluded.add(rel)
                return []

            owner = self.ignoring_directory(path, is_dir)
            if owner is not None:
                with self._lock:
                    self._ignored.setdefault(rel, ExclusionRecord(rel, owner))
                return []

        if is_dir:
            return self._children(path, rel, ancestors)

        with self._lock:
            if path not in self._seen_files:
                self._seen_files.add(path)
                self._files.append(CollectedFile(path=path, relative_path=rel))
        return []

    def _children(self, path: Path, rel: str, ancestors: FrozenSet[str]) -> List[_Pending]:
        real = os.path.realpath(path)
        if real in ancestors:
            logger.debug("Skipping directory cycle at %s", path)
            return []
        ancestors = ancestors | {real}

        try:
            entries = self.fs.read_directory(path)
        except OSError as e:
            logger.warning("Could not read directory %s: %s", path, e)
            with self._lock:
                if (rel, str(e)) not in self._failed:
                    self._failed.append((rel, str(e)))
            return []
        return [(path / name, kind, ancestors) for name, kind in sorted(entries, key=lambda e: e[0])]
