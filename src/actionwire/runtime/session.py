"""Per-conversation orchestration state."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from loguru import logger

from actionwire.config import Settings, get_settings
from actionwire.guard.gate import Acceptance, ValidationGate, Verdict
from actionwire.guard.policy import CommandPolicy
from actionwire.guard.readset import ReadSet, normalize_path
from actionwire.logging_utils import bind_session, unbind_session
from actionwire.markup.scanner import TagScanner
from actionwire.markup.types import Action, ActionClose, ScanEvent
from actionwire.runtime.files import WritableFileStore
from actionwire.runtime.runner import ActionRecord, ActionRunner
from actionwire.shell.session import ShellSession


class OrchestrationSession:
    """Owns everything one conversation accumulates.

    The read set, the updated set and the per-message scanners live here and
    nowhere else; two sessions over the same file store share nothing else.
    """

    def __init__(
        self,
        store: WritableFileStore,
        settings: Settings | None = None,
        *,
        shell: ShellSession | None = None,
        session_id: str | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.store = store
        self.shell = shell
        work_dir = self.settings.work_dir
        self.read_set = ReadSet(work_dir=work_dir)
        self.gate = ValidationGate.with_patterns(store, self.read_set, self.settings.exempt_patterns, work_dir=work_dir)
        self.policy = CommandPolicy(self.settings.forbidden_commands)
        self.runner = ActionRunner(store, shell, work_dir=work_dir)
        self._scanners: dict[str, TagScanner] = {}

    @property
    def updated(self) -> frozenset[str]:
        return self.runner.updated

    @contextmanager
    def bound(self) -> Iterator[None]:
        """Tag log records emitted inside the block with this session's id."""
        token = bind_session(self.session_id)
        try:
            yield
        finally:
            unbind_session(token)

    def disclose(self, paths: Iterable[str]) -> dict[str, str | None]:
        """Read files for the model; every path that exists joins the read set."""
        disclosed: dict[str, str | None] = {}
        with self.bound():
            for path in paths:
                normalized = normalize_path(path, self.settings.work_dir)
                content = self.store.get_contents(normalized)
                disclosed[normalized] = content
                if content is not None and self.read_set.record_read(normalized):
                    logger.info("session.read path={}", normalized)
        return disclosed

    def scanner(self, message_id: str) -> TagScanner:
        scanner = self._scanners.get(message_id)
        if scanner is None:
            scanner = TagScanner(
                message_id,
                tag_name=self.settings.tag_name,
                fence_passthrough=self.settings.fence_passthrough,
            )
            self._scanners[message_id] = scanner
        return scanner

    def feed(self, message_id: str, chunk: str) -> list[ScanEvent]:
        with self.bound():
            return self.scanner(message_id).feed(chunk)

    def finish(self, message_id: str) -> list[ScanEvent]:
        """Finalize a message; its scanner is released afterwards."""
        scanner = self._scanners.pop(message_id, None)
        if scanner is None:
            return []
        with self.bound():
            return scanner.finalize()

    def submit(self, actions: Iterable[Action]) -> Verdict:
        """Validate a submission; the first failing check wins."""
        batch = list(actions)
        with self.bound():
            checks = (
                lambda: self.gate.check_submission(batch),
                lambda: self.gate.check_edits(batch, self.updated),
                lambda: self.policy.check(batch),
            )
            for check in checks:
                verdict = check()
                if not verdict.ok:
                    return verdict
            logger.info("session.submission.accepted actions={}", len(batch))
            return Acceptance()

    async def apply(self, actions: Iterable[Action]) -> tuple[Verdict, list[ActionRecord]]:
        """Validate and, when accepted, execute a submission in order."""
        batch = list(actions)
        verdict = self.submit(batch)
        if not verdict.ok:
            return verdict, []
        with self.bound():
            try:
                records = await self.runner.run_all(batch)
            finally:
                for path in self.updated:
                    self.read_set.record_read(path)
        return verdict, records


def closed_actions(events: Iterable[ScanEvent]) -> list[Action]:
    return [event.action for event in events if isinstance(event, ActionClose)]
