"""
Filesystem access used by the collector, locator and reader.

Everything goes through :class:`LocalFileSystem` so tests can substitute a
wrapper that fails on purpose. "Not found" surfaces as ``FileNotFoundError``
from ``stat``/``read_file`` and as ``False`` from ``exists``.
"""

from __future__ import annotations

import enum
import os
import stat as stat_mod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple


class FileKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


@dataclass(frozen=True)
class FileStat:
    kind: FileKind
    size: int


def _kind_from_mode(is_dir: bool, is_file: bool) -> FileKind:
    if is_dir:
        return FileKind.DIRECTORY
    if is_file:
        return FileKind.FILE
    return FileKind.OTHER


class LocalFileSystem:
    """Thin wrapper over :mod:`os` for the four operations the core needs."""

    def stat(self, path: Path) -> FileStat:
        st = os.stat(path)
        kind = _kind_from_mode(stat_mod.S_ISDIR(st.st_mode), stat_mod.S_ISREG(st.st_mode))
        return FileStat(kind=kind, size=st.st_size)

    def read_directory(self, path: Path) -> List[Tuple[str, FileKind]]:
        entries: List[Tuple[str, FileKind]] = []
        with os.scandir(path) as it:
            for entry in it:
                try:
                    kind = _kind_from_mode(entry.is_dir(), entry.is_file())
                except OSError:
                    kind = FileKind.OTHER
                entries.append((entry.name, kind))
        return entries

    def read_file(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def exists(self, path: Path) -> bool:
        return os.path.exists(path)
