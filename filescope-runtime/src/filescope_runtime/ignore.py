"""
Static ignore patterns applied to project paths before they reach any model
call or selection logic.

Patterns follow the ``.gitignore`` convention the selector has always used: a
pattern without a slash matches any single path component (so ``node_modules``
hides the directory and everything below it, and ``*.log`` hides log files at
any depth), while a pattern containing a slash is matched against the whole
project-relative path.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable, List, Sequence

from .config import DEFAULT_PROJECT_ROOT


IGNORE_PATTERNS: tuple[str, ...] = (
    # dependencies
    "node_modules",
    ".venv",
    "venv",
    # version control
    ".git",
    ".svn",
    ".hg",
    # build outputs
    "dist",
    "build",
    ".next",
    "coverage",
    # caches
    "__pycache__",
    ".cache",
    ".pytest_cache",
    "*.pyc",
    # logs
    "*.log",
    # lockfiles
    "*.lock",
    "package-lock.json",
    "pnpm-lock.yaml",
    # secrets and editor metadata
    ".env*",
    ".DS_Store",
    ".idea",
    ".vscode",
    "*.swp",
)


def relative_path(path: str, project_root: str = DEFAULT_PROJECT_ROOT) -> str:
    """Strips the project root prefix (and any leading slash) from ``path``."""
    root = project_root if project_root.endswith("/") else f"{project_root}/"
    if path.startswith(root):
        path = path[len(root):]
    return path.lstrip("/")


class IgnoreFilter:
    """Matches project paths against a fixed set of ignore patterns."""

    def __init__(
        self,
        patterns: Sequence[str] = IGNORE_PATTERNS,
        *,
        project_root: str = DEFAULT_PROJECT_ROOT,
    ) -> None:
        self.patterns = tuple(p.strip().rstrip("/") for p in patterns if p and p.strip())
        self.project_root = project_root
        self._component_patterns = tuple(p for p in self.patterns if "/" not in p)
        self._path_patterns = tuple(p.lstrip("/") for p in self.patterns if "/" in p)

    def ignores(self, path: str) -> bool:
        rel = relative_path(path, self.project_root)
        if not rel:
            return False
        parts = [part for part in rel.split("/") if part]
        for pattern in self._component_patterns:
            if any(fnmatchcase(part, pattern) for part in parts):
                return True
        for pattern in self._path_patterns:
            if fnmatchcase(rel, pattern) or fnmatchcase(rel, f"{pattern}/*"):
                return True
        return False

    def filter(self, paths: Iterable[str]) -> List[str]:
        return [path for path in paths if not self.ignores(path)]


_DEFAULT_FILTER = IgnoreFilter()


def is_ignored(path: str) -> bool:
    """Returns True when ``path`` matches one of the default ignore patterns."""
    return _DEFAULT_FILTER.ignores(path)


def filter_paths(paths: Iterable[str]) -> List[str]:
    """Drops every path matched by the default ignore patterns, preserving order."""
    return _DEFAULT_FILTER.filter(paths)
