"""
File Combine - merge selected files into one Markdown document for LLMs.

This package walks the selected files and folders, filters them through
global exclude patterns and hierarchical ``.gitignore`` / ``.filecombine``
rules, skips binary content and concatenates the remaining text files into
a single Markdown document with a summary, exclusion report and file tree.
"""

__version__ = "0.1.0"
__author__ = "File Combine Team"

from .aggregator import CombineResult, CombineStatus, ProcessingSummary, combine_files
from .collector import CancellationToken
from .config import CombineConfig

__all__ = [
    "CancellationToken",
    "CombineConfig",
    "CombineResult",
    "CombineStatus",
    "ProcessingSummary",
    "combine_files",
]
