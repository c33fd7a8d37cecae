"""Read-set tracking for one orchestration session."""

from __future__ import annotations

import posixpath
from collections.abc import Callable, Iterable, Iterator
from fnmatch import fnmatchcase

DEFAULT_WORK_DIR = "/home/project"

type ExemptPredicate = Callable[[str], bool]


def normalize_path(path: str, work_dir: str = DEFAULT_WORK_DIR) -> str:
    """Normalize a path to its work-dir relative POSIX form."""
    cleaned = path.strip().replace("\\", "/")
    root = work_dir.rstrip("/")
    if root and cleaned.startswith(root + "/"):
        cleaned = cleaned[len(root) + 1 :]
    cleaned = posixpath.normpath(cleaned) if cleaned else cleaned
    return cleaned.lstrip("/") if cleaned != "." else ""


def exempt_by_patterns(patterns: Iterable[str]) -> ExemptPredicate:
    """Build an exemption predicate from glob patterns over normalized paths."""
    compiled = tuple(patterns)

    def _exempt(path: str) -> bool:
        return any(fnmatchcase(path, pattern) for pattern in compiled)

    return _exempt


class ReadSet:
    """Paths whose contents were disclosed to the model; never shrinks."""

    def __init__(self, paths: Iterable[str] = (), *, work_dir: str = DEFAULT_WORK_DIR) -> None:
        self.work_dir = work_dir
        self._paths: set[str] = set()
        for path in paths:
            self.record_read(path)

    def record_read(self, path: str) -> bool:
        """Record a disclosure; returns True when the path was new."""
        normalized = normalize_path(path, self.work_dir)
        if not normalized or normalized in self._paths:
            return False
        self._paths.add(normalized)
        return True

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return normalize_path(path, self.work_dir) in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._paths)
