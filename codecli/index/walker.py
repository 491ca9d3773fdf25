"""
Workspace enumeration — recursive walk filtered by file extension.
"""

from __future__ import annotations

import os
from typing import Iterable, Optional

from .errors import IndexIOError

# ---------------------------------------------------------------------------
# Directory exclusion rules
# ---------------------------------------------------------------------------

DEFAULT_EXCLUDE_DIRS: frozenset[str] = frozenset({
    "node_modules", "dist", "build", "__pycache__",
    ".git", "vendor", ".codecli",
    ".venv", "venv", "env",
    ".tox", ".mypy_cache", ".pytest_cache",
    "target",           # Rust/Java build output
    "bin", "obj",       # C# build output
    "coverage",
    ".next", ".nuxt",   # JS frameworks
    ".cache",
})


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lower-case *extensions* and give each a leading dot (``"go"`` → ``".go"``)."""
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        normalized.add(ext if ext.startswith(".") else f".{ext}")
    return frozenset(normalized)


def list_files(
    root: str,
    extensions: Iterable[str],
    exclude_dirs: Optional[Iterable[str]] = None,
) -> list[str]:
    """
    Walk *root* and return the paths of files whose extension is wanted.

    Parameters
    ----------
    root:
        Directory to walk.
    extensions:
        Extensions to keep, with or without the leading dot.
    exclude_dirs:
        Directory names pruned from the walk.  Defaults to
        :data:`DEFAULT_EXCLUDE_DIRS`.

    Returns
    -------
    list[str]
        Sorted paths joined onto *root*.

    Raises
    ------
    IndexIOError
        If *root* is not a directory or a directory cannot be listed.
    """
    if not os.path.isdir(root):
        raise IndexIOError(f"Workspace root is not a directory: {root}")

    wanted = normalize_extensions(extensions)
    skip = frozenset(exclude_dirs) if exclude_dirs is not None else DEFAULT_EXCLUDE_DIRS
    results: list[str] = []

    def _on_error(exc: OSError) -> None:
        raise IndexIOError(f"Cannot list {exc.filename}: {exc.strerror}") from exc

    for dirpath, dirnames, filenames in os.walk(root, topdown=True, onerror=_on_error):
        # Prune excluded directories in-place (modifies the walk)
        dirnames[:] = [d for d in dirnames if d not in skip]

        for fname in filenames:
            if os.path.splitext(fname)[1].lower() in wanted:
                results.append(os.path.join(dirpath, fname))

    return sorted(results)
