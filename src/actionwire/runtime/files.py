"""File stores backing validation and action execution."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol

from loguru import logger

from actionwire.errors import EditNotFoundError
from actionwire.guard.readset import DEFAULT_WORK_DIR, normalize_path
from actionwire.markup.body import decode_entities
from actionwire.markup.types import Edit


class WritableFileStore(Protocol):
    def get_contents(self, path: str) -> str | None: ...

    def write(self, path: str, content: str) -> None: ...


class InMemoryFileStore:
    """Path to content map keyed by work-dir relative paths."""

    def __init__(self, files: Mapping[str, str] | None = None, *, work_dir: str = DEFAULT_WORK_DIR) -> None:
        self.work_dir = work_dir
        self._files: dict[str, str] = {}
        for path, content in (files or {}).items():
            self.write(path, content)

    def get_contents(self, path: str) -> str | None:
        return self._files.get(normalize_path(path, self.work_dir))

    def write(self, path: str, content: str) -> None:
        self._files[normalize_path(path, self.work_dir)] = content

    def paths(self) -> list[str]:
        return sorted(self._files)


class WorkspaceFileStore:
    """File store over a local directory; paths may not escape the root."""

    def __init__(self, root: Path, *, work_dir: str = DEFAULT_WORK_DIR) -> None:
        self.root = root.resolve()
        self.work_dir = work_dir

    def _resolve(self, path: str) -> Path:
        relative = normalize_path(path, self.work_dir)
        resolved = (self.root / relative).resolve()
        if not resolved.is_relative_to(self.root):
            raise ValueError(f"path escapes workspace: {path}")
        return resolved

    def get_contents(self, path: str) -> str | None:
        try:
            target = self._resolve(path)
        except ValueError:
            return None
        if not target.is_file():
            return None
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            logger.warning("files.workspace.unreadable path={}", path)
            return None

    def write(self, path: str, content: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")


def apply_edits(content: str, edits: Iterable[Edit], *, path: str = "") -> str:
    """Apply edits in order, each replacing the first occurrence of its `before` text."""
    current = content
    for index, edit in enumerate(edits):
        before, after = edit.before, edit.after
        if not before or before not in current:
            decoded = decode_entities(before)
            if not decoded or decoded == before or decoded not in current:
                raise EditNotFoundError(path, index, before)
            logger.warning("files.edit.entities_decoded path={} index={}", path, index)
            before, after = decoded, decode_entities(after)

        occurrences = current.count(before)
        if occurrences > 1:
            logger.warning("files.edit.ambiguous path={} index={} occurrences={}", path, index, occurrences)
        current = current.replace(before, after, 1)
    return current
