"""
CLI entrypoint for filecombine package.
"""
import argparse
import logging
import signal
import sys
from pathlib import Path

from colorama import Fore, Style, init as colorama_init

from . import __version__
from .aggregator import CombineStatus, ProcessingSummary, combine_files, group_ignored
from .collector import CancellationToken
from .config import CombineConfig, load_exclude_patterns
from .errors import ConfigFileError, FilecombineError, OutputError, SelectionError
from .ignore import DEFAULT_EXCLUDE_PATTERNS
from .reader import format_file_size

EXIT_CANCELLED = 130


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="filecombine",
        description="Combine selected files and folders into one Markdown document for LLMs.",
    )
    p.add_argument(
        "paths",
        nargs="*",
        type=Path,
        help="Files or folders to combine (default: the root)",
    )
    p.add_argument("--root", type=Path, default=Path("."), help="Workspace root dir")
    p.add_argument(
        "--out",
        default="-",
        help="Output file, '-' for stdout (default: stdout)",
    )
    p.add_argument(
        "--config",
        type=Path,
        help="Path to a file with extra exclude patterns (one per line)",
    )
    p.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Extra global exclude glob (repeatable)",
    )
    p.add_argument(
        "--no-default-excludes",
        action="store_true",
        help="Do not apply the built-in exclude patterns",
    )
    p.add_argument("--instructions", help="Instructions for the LLM placed before the files")
    p.add_argument("--summary", action="store_true", help="Include the processing summary")
    p.add_argument("--no-exclusions", action="store_true", help="Omit the excluded-file lists")
    p.add_argument("--no-timings", action="store_true", help="Omit the timing breakdown")
    p.add_argument("--no-tree", action="store_true", help="Omit the file structure tree")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def build_config(ns: argparse.Namespace) -> CombineConfig:
    patterns = [] if ns.no_default_excludes else list(DEFAULT_EXCLUDE_PATTERNS)
    if ns.config:
        patterns.extend(load_exclude_patterns(ns.config.resolve()))
    patterns.extend(ns.exclude)
    return CombineConfig(
        exclude_patterns=tuple(patterns),
        include_summary=ns.summary,
        instructions=ns.instructions,
        include_exclusion_lists=not ns.no_exclusions,
        include_timings=not ns.no_timings,
        include_tree=not ns.no_tree,
    )


def _write_output(document: str, out: str) -> None:
    if out == "-":
        sys.stdout.write(document)
        return
    out_path = Path(out).resolve()
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(document, encoding="utf-8", newline="\n")
    except (OSError, PermissionError) as e:
        raise OutputError(f"Could not write '{out_path}': {e}")


def print_summary(summary: ProcessingSummary, root: Path, stream=None) -> None:
    stream = stream or sys.stderr

    def say(msg: str, colour: str = "") -> None:
        print(f"{colour}{msg}{Style.RESET_ALL if colour else ''}", file=stream)

    say("--- Processing Summary ---", Fore.CYAN)
    say(f"Total files found: {summary.total_files}")
    say(f"Files processed: {summary.processed_files}")
    say(f"Total size: {format_file_size(summary.total_size)}")
    say(f"Estimated tokens: ~{summary.estimated_tokens:,}")
    if summary.ignored_files:
        say("Files ignored by project rules:", Fore.YELLOW)
        for directory, paths in group_ignored(summary.ignored_files, root).items():
            say(f"  By rules in ./{directory}:")
            for p in paths:
                say(f"    - {p}")
    if summary.excluded_files:
        say("Files excluded by global settings:", Fore.YELLOW)
        for p in summary.excluded_files:
            say(f"  - {p}")
    if summary.binary_files:
        say("Binary files skipped:", Fore.YELLOW)
        for p in summary.binary_files:
            say(f"  - {p}")
    if summary.failed_files:
        say("Files that could not be read:", Fore.RED)
        for p, msg in summary.failed_files:
            say(f"  - {p}: {msg}")
    say("Timings:")
    for stage, ms in summary.timings.items():
        say(f"  - {stage}: {ms}ms")
    say("--------------------------", Fore.CYAN)


def main(argv=None) -> int:
    ns = _parse_args(argv)
    colorama_init()
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    token = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
    try:
        root = ns.root.resolve()
        paths = [p.resolve() for p in ns.paths] or [root]
        try:
            config = build_config(ns)
        except ConfigFileError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        try:
            result = combine_files(paths, config, workspace_root=root, token=token)
        except SelectionError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if result.status is CombineStatus.CANCELLED:
            print("\nCancelled.", file=sys.stderr)
            return EXIT_CANCELLED

        if ns.verbose:
            print_summary(result.summary, root)

        if result.status is CombineStatus.EMPTY:
            print(Fore.YELLOW + "No text files found." + Style.RESET_ALL, file=sys.stderr)
            return 0

        try:
            _write_output(result.document, ns.out)
        except OutputError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if ns.out != "-":
            print(
                Fore.GREEN
                + f"[filecombine] Done → {ns.out}. {result.summary.processed_files} files, "
                f"~{result.summary.estimated_tokens:,} tokens."
                + Style.RESET_ALL,
                file=sys.stderr,
            )
        return 0
    except FilecombineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)


if __name__ == "__main__":
    sys.exit(main())
