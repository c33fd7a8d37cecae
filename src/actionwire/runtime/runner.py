"""Serial execution of closed actions."""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from actionwire.errors import ActionCommandError, ActionExecutionError
from actionwire.guard.readset import DEFAULT_WORK_DIR, normalize_path
from actionwire.markup.types import Action, FileAction, ModifyAction, ShellAction
from actionwire.runtime.files import WritableFileStore, apply_edits
from actionwire.shell.session import ShellSession


class ActionStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class ActionRecord:
    action: Action
    status: ActionStatus = ActionStatus.PENDING
    output: str = ""
    exit_code: int | None = None
    error: str | None = None
    elapsed_ms: int = 0


class ActionRunner:
    """Execute actions one at a time against a file store and a shell session.

    Files written by this runner form the updated set; a later modify action
    on one of those paths is expected to be resubmitted as a full file.
    """

    def __init__(
        self,
        store: WritableFileStore,
        shell: ShellSession | None = None,
        *,
        work_dir: str = DEFAULT_WORK_DIR,
    ) -> None:
        self._store = store
        self._shell = shell
        self._work_dir = work_dir
        self._records: dict[str, ActionRecord] = {}
        self._updated: set[str] = set()

    @property
    def updated(self) -> frozenset[str]:
        return frozenset(self._updated)

    def records(self) -> list[ActionRecord]:
        return list(self._records.values())

    def status(self, action_id: str) -> ActionStatus | None:
        record = self._records.get(action_id)
        return record.status if record is not None else None

    def add(self, action: Action) -> ActionRecord:
        record = self._records.get(action.action_id)
        if record is None:
            record = ActionRecord(action)
            self._records[action.action_id] = record
        return record

    async def run_all(self, actions: Iterable[Action]) -> list[ActionRecord]:
        """Run actions in order; the first failure propagates and later actions stay pending."""
        pending = [self.add(action) for action in actions]
        for record in pending:
            await self.run(record.action)
        return pending

    async def run(self, action: Action) -> ActionRecord:
        record = self.add(action)
        if record.status != ActionStatus.PENDING:
            logger.debug("runner.action.skip id={} status={}", action.action_id, record.status)
            return record

        record.status = ActionStatus.RUNNING
        logger.info("runner.action.start id={} type={}", action.action_id, action.type)
        start = time.monotonic()
        try:
            match action:
                case FileAction():
                    self._write(action.path, action.content)
                case ModifyAction():
                    self._modify(action)
                case ShellAction():
                    await self._run_shell(action, record)
        except ActionExecutionError as exc:
            record.status = ActionStatus.FAILED
            record.error = str(exc)
            logger.warning("runner.action.failed id={} error={}", action.action_id, exc)
            raise
        finally:
            record.elapsed_ms = int((time.monotonic() - start) * 1000)

        if record.status == ActionStatus.RUNNING:
            record.status = ActionStatus.COMPLETE
        logger.info("runner.action.finish id={} status={}", action.action_id, record.status)
        return record

    def abort(self) -> bool:
        """Abort the shell command in flight, if any."""
        if self._shell is None:
            return False
        return self._shell.abort()

    def _write(self, path: str, content: str) -> None:
        self._store.write(path, content)
        self._updated.add(normalize_path(path, self._work_dir))

    def _modify(self, action: ModifyAction) -> None:
        current = self._store.get_contents(action.path)
        if current is None:
            raise ActionExecutionError(f"{action.path}: cannot modify a file that does not exist")
        self._write(action.path, apply_edits(current, action.edits, path=action.path))

    async def _run_shell(self, action: ShellAction, record: ActionRecord) -> None:
        if self._shell is None:
            raise ActionExecutionError("no shell session is attached to this runner")

        def mark_aborted() -> None:
            record.status = ActionStatus.ABORTED

        result = await self._shell.execute_command(action.command, abort=mark_aborted)
        if result is None:
            record.status = ActionStatus.ABORTED
            return
        record.output = result.display()
        record.exit_code = result.exit_code
        if result.exit_code is None:
            raise ActionCommandError("Shell command did not report an exit code", record.output or "No output")
        if result.exit_code != 0:
            raise ActionCommandError(
                f"Shell command failed with exit code {result.exit_code}", record.output or "No output"
            )
