"""Pytest bootstrap and shared fixtures.

Puts ``src/`` on sys.path so ``import filecombine`` works without an
editable install, and provides a helper to lay out workspaces on disk.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC_ROOT = str(Path(__file__).resolve().parent.parent / "src")

if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)

from filecombine.fs import LocalFileSystem  # noqa: E402


def write_tree(root: Path, files: dict) -> Path:
    """Create *files* (relative path -> str or bytes content) under *root*."""
    for rel, content in files.items():
        path = root / rel
        if rel.endswith("/"):
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def workspace(tmp_path):
    """Return a function that populates a fresh workspace directory."""
    root = tmp_path / "ws"
    root.mkdir()

    def _make(files: dict) -> Path:
        return write_tree(root, files)

    return _make


class FlakyFileSystem(LocalFileSystem):
    """Local filesystem that fails reads for chosen paths.

    ``read_errors`` maps absolute paths to the exception raised on
    ``read_file``; ``on_read_directory`` is called before every directory
    listing.
    """

    def __init__(self, read_errors=None, on_read_directory=None):
        self.read_errors = {Path(k): v for k, v in (read_errors or {}).items()}
        self.on_read_directory = on_read_directory
        self.read_calls = []

    def read_file(self, path):
        self.read_calls.append(Path(path))
        error = self.read_errors.get(Path(path))
        if error is not None:
            raise error
        return super().read_file(path)

    def read_directory(self, path):
        if self.on_read_directory is not None:
            self.on_read_directory(Path(path))
        return super().read_directory(path)


@pytest.fixture
def flaky_fs():
    return FlakyFileSystem
