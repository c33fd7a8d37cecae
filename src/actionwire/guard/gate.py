"""Read-before-write validation of submitted actions."""

from __future__ import annotations

from collections.abc import Iterable, Set
from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger

from actionwire.guard.readset import DEFAULT_WORK_DIR, ExemptPredicate, ReadSet, exempt_by_patterns, normalize_path
from actionwire.markup.body import clean_file_content, decode_entities
from actionwire.markup.types import Action, FileAction, ModifyAction

NEED_READ_FILES = "NEED_READ_FILES"
FILE_ALREADY_UPDATED = "FILE_ALREADY_UPDATED"
EDIT_TARGET_NOT_FOUND = "EDIT_TARGET_NOT_FOUND"
PREVIEW_LENGTH = 100


class FileStore(Protocol):
    """Read-only view of the current working tree."""

    def get_contents(self, path: str) -> str | None: ...


@dataclass(frozen=True)
class Acceptance:
    ok: bool = True

    def to_payload(self) -> dict[str, Any]:
        return {"ok": True}


@dataclass(frozen=True)
class Rejection:
    """A recoverable refusal the caller is expected to act on."""

    error_code: str
    missing_paths: tuple[str, ...] = ()
    remediation: str = "read-then-resubmit"
    details: tuple[dict[str, Any], ...] = field(default_factory=tuple)
    ok: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "errorCode": self.error_code,
            "missingPaths": list(self.missing_paths),
            "remediation": {"action": self.remediation},
        }
        if self.details:
            payload["details"] = [dict(item) for item in self.details]
        return payload


type Verdict = Acceptance | Rejection


class ValidationGate:
    """Set comparison between submitted paths, the working tree and the read set."""

    def __init__(
        self,
        store: FileStore,
        read_set: ReadSet,
        *,
        exempt: ExemptPredicate | None = None,
        work_dir: str = DEFAULT_WORK_DIR,
    ) -> None:
        self._store = store
        self._read_set = read_set
        self._exempt = exempt or exempt_by_patterns(())
        self._work_dir = work_dir

    @classmethod
    def with_patterns(
        cls, store: FileStore, read_set: ReadSet, patterns: Iterable[str], *, work_dir: str = DEFAULT_WORK_DIR
    ) -> ValidationGate:
        return cls(store, read_set, exempt=exempt_by_patterns(patterns), work_dir=work_dir)

    def needs_read(self, path: str) -> bool:
        """Whether writing `path` requires a prior disclosure."""
        normalized = normalize_path(path, self._work_dir)
        if not normalized or self._exempt(normalized):
            return False
        return self._store.get_contents(normalized) is not None

    def check_submission(self, actions: Iterable[Action]) -> Verdict:
        required: set[str] = set()
        for action in actions:
            match action:
                case FileAction(path=path) | ModifyAction(path=path):
                    if self.needs_read(path):
                        required.add(normalize_path(path, self._work_dir))
                case _:
                    continue

        missing = sorted(path for path in required if path not in self._read_set)
        if not missing:
            return Acceptance()
        logger.warning("guard.submission.rejected missing={}", missing)
        return Rejection(error_code=NEED_READ_FILES, missing_paths=tuple(missing))

    def check_edits(self, actions: Iterable[Action], updated: Set[str] = frozenset()) -> Verdict:
        """Reject modify actions that cannot apply to the current working tree."""
        already_updated: set[str] = set()
        details: list[dict[str, Any]] = []
        for action in actions:
            if not isinstance(action, ModifyAction):
                continue
            path = normalize_path(action.path, self._work_dir)
            if path in updated:
                already_updated.add(path)
                continue
            content = self._store.get_contents(path)
            if content is None:
                continue
            for index, edit in enumerate(action.edits):
                if not _contains_edit_target(content, edit.before, path):
                    preview = edit.before[:PREVIEW_LENGTH] + ("..." if len(edit.before) > PREVIEW_LENGTH else "")
                    details.append({"path": path, "index": index, "before": preview})

        if already_updated:
            logger.warning("guard.modify.already_updated paths={}", sorted(already_updated))
            return Rejection(
                error_code=FILE_ALREADY_UPDATED,
                missing_paths=tuple(sorted(already_updated)),
                remediation="resubmit-as-file",
            )
        if details:
            logger.warning("guard.modify.target_not_found count={}", len(details))
            return Rejection(
                error_code=EDIT_TARGET_NOT_FOUND,
                missing_paths=tuple(sorted({item["path"] for item in details})),
                remediation="copy-exact-before-text",
                details=tuple(details),
            )
        return Acceptance()


def _contains_edit_target(content: str, before: str, path: str) -> bool:
    if not before:
        return False
    if before in content:
        return True
    if path.endswith(".md"):
        return False
    normalized = decode_entities(clean_file_content(before).removesuffix("\n"))
    return bool(normalized) and normalized in content
