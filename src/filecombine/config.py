"""
Run configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .collector import DEFAULT_MAX_WORKERS
from .errors import ConfigFileError
from .ignore import DEFAULT_EXCLUDE_PATTERNS, parse_patterns


@dataclass(frozen=True)
class CombineConfig:
    """Options for one :func:`~filecombine.aggregator.combine_files` run.

    The ``include_*`` flags toggle the optional sections of the document;
    *instructions* is a free-text preamble for the LLM.
    """

    exclude_patterns: Tuple[str, ...] = field(default_factory=lambda: tuple(DEFAULT_EXCLUDE_PATTERNS))
    include_summary: bool = False
    instructions: Optional[str] = None
    include_exclusion_lists: bool = True
    include_timings: bool = True
    include_tree: bool = True
    max_workers: int = DEFAULT_MAX_WORKERS

    def with_patterns(self, patterns: Iterable[str]) -> "CombineConfig":
        """Return a copy with *patterns* appended to the exclude list."""
        return replace(self, exclude_patterns=self.exclude_patterns + tuple(patterns))


def load_exclude_patterns(config_path: Path) -> List[str]:
    """Read newline-separated exclude globs from *config_path*."""
    if not config_path.exists():
        raise ConfigFileError(f"Config file '{config_path}' does not exist")
    if not config_path.is_file():
        raise ConfigFileError(f"'{config_path}' is not a file")
    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigFileError(f"Could not read config file '{config_path}': {e}")
    return [line.strip() for line in parse_patterns(text)]
