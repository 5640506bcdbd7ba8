"""
Run the whole pipeline (collect, read, tree) and assemble the Markdown
document handed to the presentation layer.
"""

from __future__ import annotations

import enum
import logging
import os
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .collector import (
    CancellationToken,
    ExclusionRecord,
    FileCollector,
    absolute,
    relative_to_workspace,
    resolve_roots,
)
from .config import CombineConfig
from .errors import FileReadError, OperationCancelled, SelectionError
from .fs import FileKind, LocalFileSystem
from .ignore import GlobalExcluder
from .locator import IgnoreFileCache, IgnoreFileLocator
from .reader import ProcessedFileResult, format_file_size, process_file
from .tree import build_tree, render_tree

logger = logging.getLogger(__name__)


class CombineStatus(enum.Enum):
    COMPLETED = "completed"
    EMPTY = "empty"
    CANCELLED = "cancelled"


@dataclass
class ProcessingSummary:
    total_files: int = 0
    processed_files: int = 0
    total_size: int = 0
    estimated_tokens: int = 0
    ignored_files: List[ExclusionRecord] = field(default_factory=list)
    excluded_files: List[str] = field(default_factory=list)
    binary_files: List[str] = field(default_factory=list)
    failed_files: List[Tuple[str, str]] = field(default_factory=list)
    timings: Dict[str, int] = field(default_factory=dict)


@dataclass
class CombineResult:
    status: CombineStatus
    summary: ProcessingSummary
    document: Optional[str] = None
    files: List[ProcessedFileResult] = field(default_factory=list)


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


def default_workspace_root(paths: Iterable, fs: Optional[LocalFileSystem] = None) -> Path:
    """Deepest directory containing every selected path.

    Paths that cannot be stat'ed count as files.
    """
    fs = fs or LocalFileSystem()
    dirs = []
    for p in paths:
        p = absolute(p)
        try:
            is_dir = fs.stat(p).kind is FileKind.DIRECTORY
        except OSError:
            is_dir = False
        dirs.append(str(p if is_dir else p.parent))
    if not dirs:
        return absolute(".")
    return Path(os.path.commonpath(dirs))


def combine_files(
    paths: Iterable,
    config: Optional[CombineConfig] = None,
    workspace_root: Optional[Path] = None,
    *,
    token: Optional[CancellationToken] = None,
    cache: Optional[IgnoreFileCache] = None,
    fs: Optional[LocalFileSystem] = None,
) -> CombineResult:
    """Merge the text files under *paths* into one Markdown document.

    *cache* is cleared before anything is read so ignore files edited since
    the previous run are picked up. Failures on single files are recorded in
    the summary; only a selection where no path can be stat'ed raises
    :class:`SelectionError`. Cancellation through *token* yields a
    ``CANCELLED`` result without a document.
    """
    config = config or CombineConfig()
    token = token or CancellationToken()
    cache = cache if cache is not None else IgnoreFileCache()
    fs = fs or LocalFileSystem()
    paths = list(paths)
    if not paths:
        raise SelectionError("No files or folders selected.")

    root = absolute(workspace_root) if workspace_root is not None else default_workspace_root(paths, fs)
    summary = ProcessingSummary()
    cache.clear()

    try:
        start = time.perf_counter()
        roots, failed_roots = resolve_roots(paths, fs)
        summary.failed_files.extend(
            (relative_to_workspace(absolute(p), root), msg) for p, msg in failed_roots
        )

        stage = time.perf_counter()
        collector = FileCollector(
            root,
            GlobalExcluder(config.exclude_patterns),
            IgnoreFileLocator(root, cache, fs),
            fs=fs,
            token=token,
            max_workers=config.max_workers,
        )
        collected = collector.collect(roots)
        summary.timings["collect_files"] = _elapsed_ms(stage)
        summary.total_files = len(collected.files)
        summary.ignored_files.extend(collected.ignored)
        summary.excluded_files.extend(collected.excluded)
        summary.failed_files.extend(collected.failed)
        logger.debug(
            "Collected %d files (%d ignored, %d excluded)",
            len(collected.files), len(collected.ignored), len(collected.excluded),
        )

        stage = time.perf_counter()
        results: List[ProcessedFileResult] = []
        for file in collected.files:
            token.raise_if_cancelled()
            try:
                result = process_file(file, fs)
            except FileReadError as e:
                logger.warning("%s", e)
                summary.failed_files.append((file.relative_path, str(e.__cause__ or e)))
                continue
            if result is None:
                summary.binary_files.append(file.relative_path)
                continue
            results.append(result)
            summary.processed_files += 1
            summary.total_size += result.size
            summary.estimated_tokens += result.tokens
        summary.timings["process_files"] = _elapsed_ms(stage)
        token.raise_if_cancelled()
    except OperationCancelled:
        logger.info("Cancelled, no document produced")
        return CombineResult(status=CombineStatus.CANCELLED, summary=summary)

    if not results:
        logger.warning("No text files found.")
        return CombineResult(status=CombineStatus.EMPTY, summary=summary)

    stage = time.perf_counter()
    tree_text = ""
    if len(results) > 1:
        tree_text = render_tree(build_tree(r.relative_path for r in results))
    summary.timings["tree_generation"] = _elapsed_ms(stage)
    summary.timings["total"] = _elapsed_ms(start)

    document = render_document(
        summary,
        "".join(r.content for r in results),
        tree_text,
        config,
        workspace_root=root,
    )
    return CombineResult(
        status=CombineStatus.COMPLETED, summary=summary, document=document, files=results
    )


def group_ignored(
    records: Iterable[ExclusionRecord], workspace_root: Optional[Path] = None
) -> Dict[str, List[str]]:
    """Group ignored paths by the workspace-relative directory that caused them."""
    groups: Dict[str, List[str]] = defaultdict(list)
    for record in records:
        directory = record.reason_directory
        if workspace_root is not None:
            rel = relative_to_workspace(directory, workspace_root)
            directory = "" if rel == "." else rel
        groups[str(directory)].append(record.relative_path)
    return {key: groups[key] for key in sorted(groups)}


def _bullet_list(items: Iterable[str]) -> str:
    return "\n".join(f"  - {item}" for item in items) + "\n\n"


def render_document(
    summary: ProcessingSummary,
    combined: str,
    tree_text: str,
    config: CombineConfig,
    workspace_root: Optional[Path] = None,
) -> str:
    """Assemble the optional sections and the file contents, in fixed order."""
    out: List[str] = []

    if config.include_summary:
        out.append("# Processing Summary\n```\n")
        out.append(f"Total files found: {summary.total_files}\n")
        out.append(f"Files processed: {summary.processed_files}\n")
        out.append(f"Total size: {format_file_size(summary.total_size)}\n")
        out.append(f"Estimated tokens: ~{summary.estimated_tokens:,}\n")
        out.append("```\n\n")

    if config.instructions:
        out.append("# Instructions for LLM\n")
        out.append(f"{config.instructions}\n\n")

    if config.include_exclusion_lists:
        for directory, paths in group_ignored(summary.ignored_files, workspace_root).items():
            out.append(f"Files ignored by rules in ./{directory}:\n")
            out.append(_bullet_list(paths))
        if summary.excluded_files:
            out.append("Files excluded by global settings:\n")
            out.append(_bullet_list(summary.excluded_files))
        if summary.binary_files:
            out.append("Binary files skipped:\n")
            out.append(_bullet_list(summary.binary_files))
        if summary.failed_files:
            out.append("Files that could not be read:\n")
            out.append(_bullet_list(f"{path} ({msg})" for path, msg in summary.failed_files))

    if config.include_timings:
        out.append("Timings:\n```\n")
        for stage, ms in summary.timings.items():
            out.append(f"  - {stage}: {ms}ms\n")
        out.append("```\n\n")

    if config.include_tree and tree_text:
        out.append(f"# File Structure\n```\n{tree_text}```\n\n")

    out.append("# Combined Files\n\n")
    out.append(combined)
    return "".join(out)
