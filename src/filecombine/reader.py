"""
Reading candidate files, telling text from binary and formatting text files
as Markdown code blocks.
"""

from __future__ import annotations

import codecs
import logging
import math
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

from .collector import CollectedFile
from .errors import FileReadError
from .fs import LocalFileSystem

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 8192
NON_TEXT_RATIO = 0.30

BINARY_EXTENSIONS = frozenset({
    "png", "jpg", "jpeg", "gif", "bmp", "ico", "webp", "tif", "tiff", "psd",
    "mp3", "mp4", "wav", "ogg", "flac", "avi", "mov", "mkv", "webm",
    "zip", "gz", "tgz", "bz2", "xz", "7z", "rar", "tar", "jar", "war",
    "exe", "dll", "so", "dylib", "o", "a", "lib", "obj", "class", "pyc", "pyo",
    "wasm", "bin", "dat", "db", "sqlite", "pdf", "doc", "docx", "xls", "xlsx",
    "ppt", "pptx", "woff", "woff2", "ttf", "otf", "eot",
})

TEXT_EXTENSIONS = frozenset({
    "txt", "md", "markdown", "rst", "py", "pyi", "js", "mjs", "cjs", "ts", "tsx",
    "jsx", "json", "jsonc", "yml", "yaml", "toml", "ini", "cfg", "conf", "xml",
    "html", "htm", "css", "scss", "sass", "less", "svg", "sh", "bash", "zsh",
    "ps1", "bat", "c", "h", "cc", "cpp", "hpp", "cs", "java", "kt", "go", "rs",
    "rb", "php", "pl", "swift", "scala", "sql", "graphql", "csv", "tsv", "lua",
    "r", "vue", "svelte", "tf", "dockerfile", "gitignore", "env", "lock", "log",
})

TEXT_FILENAMES = frozenset({
    "Dockerfile", "Makefile", "LICENSE", "README", "Gemfile", "Procfile",
    ".gitignore", ".filecombine", ".editorconfig",
})

# Printable ASCII plus tab, newline, carriage return, form feed, backspace,
# escape and everything >= 0x80 (multi-byte UTF-8 and legacy code pages).
_TEXT_BYTES = bytes({7, 8, 9, 10, 12, 13, 27} | set(range(0x20, 0x100)) - {0x7F})


def extension_of(name: str) -> str:
    """Extension without the dot, case kept (``""`` when there is none)."""
    suffix = PurePosixPath(name).suffix
    return suffix[1:] if suffix else ""


def _is_utf8(sample: bytes) -> bool:
    # final=False lets a multi-byte sequence cut at the sample end through
    try:
        codecs.getincrementaldecoder("utf-8")().decode(sample, final=False)
    except UnicodeDecodeError:
        return False
    return True


def is_binary(name: str, data: bytes) -> bool:
    """Decide whether *data* (the content of file *name*) is binary.

    Order of checks on the leading :data:`SAMPLE_SIZE` bytes:

    1. empty content is text;
    2. a NUL byte means binary, whatever the extension says;
    3. a known binary extension means binary;
    4. a known text extension or filename means text;
    5. a sample that decodes as UTF-8 is text, even when the sample ends
       inside a multi-byte sequence;
    6. otherwise binary when more than :data:`NON_TEXT_RATIO` of the sample
       are control bytes. Bytes >= 0x80 count as text so legacy encodings
       such as Latin-1 pass.
    """
    sample = data[:SAMPLE_SIZE]
    if not sample:
        return False
    if b"\x00" in sample:
        return True

    base = PurePosixPath(name).name
    ext = extension_of(base).lower()
    if ext in BINARY_EXTENSIONS:
        return True
    if ext in TEXT_EXTENSIONS or base in TEXT_FILENAMES:
        return False
    if _is_utf8(sample):
        return False

    non_text = len(sample.translate(None, _TEXT_BYTES))
    return non_text / len(sample) > NON_TEXT_RATIO


def format_file_size(size: float) -> str:
    units = ["B", "KB", "MB", "GB"]
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.1f} {units[unit]}"


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


def format_file_block(relative_path: str, size: int, extension: str, content: str) -> str:
    return (
        f"## Path: {relative_path} ({format_file_size(size)})\n\n"
        f"```{extension}\n{content}\n```\n\n"
    )


@dataclass(frozen=True)
class ProcessedFileResult:
    relative_path: str
    size: int
    extension: str
    content: str
    tokens: int


def process_file(
    file: CollectedFile, fs: Optional[LocalFileSystem] = None
) -> Optional[ProcessedFileResult]:
    """Read *file* once and format it.

    Returns ``None`` for binary files. Raises :class:`FileReadError` when the
    file cannot be read.
    """
    fs = fs or LocalFileSystem()
    try:
        data = fs.read_file(file.path)
    except OSError as e:
        raise FileReadError(f"Could not read {file.relative_path}: {e}") from e

    if is_binary(file.path.name, data):
        logger.debug("Skipping binary %s", file.relative_path)
        return None

    text = data.decode("utf-8", errors="replace")
    ext = extension_of(file.path.name)
    return ProcessedFileResult(
        relative_path=file.relative_path,
        size=len(data),
        extension=ext,
        content=format_file_block(file.relative_path, len(data), ext, text),
        tokens=estimate_tokens(text),
    )
