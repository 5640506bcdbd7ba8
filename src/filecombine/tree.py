"""
ASCII tree of the included files.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

# A directory maps child names to nodes; a file is ``None``.
TreeNode = Dict[str, Optional["TreeNode"]]

GLYPH_CHILD = "├── "
GLYPH_LAST = "└── "
GLYPH_PIPE = "│   "
GLYPH_SPACE = "    "


def build_tree(paths: Iterable[str]) -> TreeNode:
    """Nest relative POSIX *paths* into a dict tree.

    A trailing ``/`` marks a directory. Every ancestor of a file becomes a
    directory node, even when it is never listed on its own.
    """
    tree: TreeNode = {}
    for path in paths:
        is_dir = path.endswith("/")
        parts = [part for part in path.split("/") if part and part != "."]
        if not parts:
            continue
        cur = tree
        for part in parts[:-1]:
            child = cur.get(part)
            if child is None:
                child = cur[part] = {}
            cur = child
        leaf = parts[-1]
        if is_dir:
            if cur.get(leaf) is None:
                cur[leaf] = {}
        else:
            cur.setdefault(leaf, None)
    return tree


def render_tree(tree: TreeNode) -> str:
    """Render *tree* like the Unix ``tree`` utility.

    • Directories are listed before files.
    • Names of the same kind are in ordinal (case-sensitive) order.
    • The last sibling at each level uses ``└──``.
    """
    lines: List[str] = []

    def _walk(node: TreeNode, prefix: str) -> None:
        items = sorted(node.items(), key=lambda kv: (kv[1] is None, kv[0]))  # dirs first
        for idx, (name, child) in enumerate(items):
            last = idx == len(items) - 1
            lines.append(f"{prefix}{GLYPH_LAST if last else GLYPH_CHILD}{name}")
            if child is not None:
                _walk(child, prefix + (GLYPH_SPACE if last else GLYPH_PIPE))

    _walk(tree, "")
    return "".join(line + "\n" for line in lines)
