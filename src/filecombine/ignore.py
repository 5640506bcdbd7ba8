"""
Ignore-rule compilation.

Both the per-directory ``.gitignore`` / ``.filecombine`` matchers and the
global exclude list are compiled with :mod:`pathspec` using git's own
wildmatch semantics (``**``, leading ``/`` anchors, trailing ``/`` for
directories, ``!`` negation).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

import pathspec

logger = logging.getLogger(__name__)

# Applied everywhere unless CombineConfig.exclude_patterns replaces them.
DEFAULT_EXCLUDE_PATTERNS: List[str] = [
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "dist/**",
    "build/**",
    "node_modules/**",
    "*.min.js",
    "*.bundle.js",
    "tsconfig.tsbuildinfo",
    ".next/**",
    "*.svg",
    "*.jpg",
    "*.png",
    "*.ico",
    ".env*",
    "*.log",
    "coverage/**",
    ".idea/**",
    ".vscode/**",
    ".git/",
    "__pycache__/",
]


def parse_patterns(text: str) -> List[str]:
    """Split ignore-file *text* into pattern lines, dropping blanks and comments."""
    patterns: List[str] = []
    for line in text.splitlines():
        line = line.rstrip("\r")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        patterns.append(line)
    return patterns


def _to_posix(path: str) -> str:
    return path.replace("\\", "/")


def _compile(patterns: Iterable[str], source: str) -> "pathspec.GitIgnoreSpec":
    valid: List[str] = []
    for pattern in patterns:
        try:
            pathspec.GitIgnoreSpec.from_lines([pattern])
        except ValueError as e:
            logger.debug("Skipping unparseable pattern %r in %s: %s", pattern, source, e)
            continue
        valid.append(pattern)
    return pathspec.GitIgnoreSpec.from_lines(valid)


class IgnoreMatcher:
    """Compiled ignore rules owned by one directory.

    Paths given to :meth:`matches` are relative to :attr:`directory`.
    """

    def __init__(self, directory: Path, patterns: Iterable[str]):
        self.directory = directory
        self.patterns = tuple(patterns)
        self._spec = _compile(self.patterns, str(directory))

    def matches(self, relative_path: str, is_dir: bool = False) -> bool:
        rel = _to_posix(relative_path).strip("/")
        if not rel:
            return False
        if is_dir:
            rel += "/"
        return self._spec.match_file(rel)

    def __repr__(self) -> str:
        return f"IgnoreMatcher({self.directory!s}, {len(self.patterns)} patterns)"


def compile_matcher(directory: Path, patterns: Iterable[str]) -> Optional[IgnoreMatcher]:
    """Return a matcher for *directory*, or ``None`` when there are no rules."""
    patterns = list(patterns)
    if not patterns:
        return None
    return IgnoreMatcher(directory, patterns)


class GlobalExcluder:
    """Workspace-wide exclude globs, checked before any ignore file."""

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        if patterns is None:
            patterns = DEFAULT_EXCLUDE_PATTERNS
        self.patterns = tuple(p for p in patterns if p.strip() and not p.lstrip().startswith("#"))
        self._spec = _compile(self.patterns, "global exclude patterns")

    def matches(self, relative_path: str, is_dir: bool = False) -> bool:
        rel = _to_posix(relative_path).strip("/")
        if not rel:
            return False
        if is_dir:
            rel += "/"
        return self._spec.match_file(rel)
