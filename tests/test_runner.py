from __future__ import annotations

import asyncio

import pytest
from conftest import FakeChannel, ScriptedChannel

from actionwire.errors import ActionCommandError, ActionExecutionError, EditNotFoundError
from actionwire.markup.types import Edit, FileAction, ModifyAction, ShellAction
from actionwire.runtime.files import InMemoryFileStore
from actionwire.runtime.runner import ActionRunner, ActionStatus
from actionwire.shell.session import ShellSession


async def _shell(channel: FakeChannel) -> ShellSession:
    session = ShellSession(channel, "runner")
    await session.start()
    return session


@pytest.mark.asyncio
async def test_file_and_modify_actions_write_the_store() -> None:
    store = InMemoryFileStore({"src/a.ts": "export const a = 1;\n"})
    runner = ActionRunner(store)

    await runner.run(FileAction("m:0", "src/b.ts", "export const b = 2;\n"))
    record = await runner.run(ModifyAction("m:1", "/home/project/src/a.ts", (Edit("a = 1", "a = 3"),)))

    assert record.status == ActionStatus.COMPLETE
    assert store.get_contents("src/a.ts") == "export const a = 3;\n"
    assert store.get_contents("src/b.ts") == "export const b = 2;\n"
    assert runner.updated == frozenset({"src/a.ts", "src/b.ts"})


@pytest.mark.asyncio
async def test_modify_failures_mark_the_action_failed() -> None:
    store = InMemoryFileStore({"a.ts": "a\n"})
    runner = ActionRunner(store)

    with pytest.raises(ActionExecutionError):
        await runner.run(ModifyAction("m:0", "missing.ts", (Edit("a", "b"),)))
    with pytest.raises(EditNotFoundError):
        await runner.run(ModifyAction("m:1", "a.ts", (Edit("zzz", "b"),)))

    assert runner.status("m:0") == ActionStatus.FAILED
    assert runner.status("m:1") == ActionStatus.FAILED
    assert runner.updated == frozenset()
    assert store.get_contents("a.ts") == "a\n"


@pytest.mark.asyncio
async def test_shell_action_runs_in_session() -> None:
    channel = ScriptedChannel({"npm install": ("\x1b[32madded 1 package\x1b[0m\n", 0)})
    runner = ActionRunner(InMemoryFileStore(), await _shell(channel))

    record = await runner.run(ShellAction("m:0", "npm install"))

    assert record.status == ActionStatus.COMPLETE
    assert record.exit_code == 0
    assert record.output == "added 1 package"
    assert channel.writes == ["npm install\n"]


@pytest.mark.asyncio
async def test_failing_shell_action_raises_command_error() -> None:
    channel = ScriptedChannel({"npm test": ("1 failing\n", 1)})
    runner = ActionRunner(InMemoryFileStore(), await _shell(channel))

    with pytest.raises(ActionCommandError) as exc_info:
        await runner.run(ShellAction("m:0", "npm test"))

    assert exc_info.value.output == "1 failing"
    assert "exit code 1" in exc_info.value.header
    assert runner.status("m:0") == ActionStatus.FAILED


@pytest.mark.asyncio
async def test_shell_action_without_session_fails() -> None:
    runner = ActionRunner(InMemoryFileStore())

    with pytest.raises(ActionExecutionError):
        await runner.run(ShellAction("m:0", "ls"))


@pytest.mark.asyncio
async def test_run_all_stops_at_first_failure() -> None:
    channel = ScriptedChannel({"false": ("", 1)})
    store = InMemoryFileStore()
    runner = ActionRunner(store, await _shell(channel))
    actions = [FileAction("m:0", "a.ts", "a\n"), ShellAction("m:1", "false"), FileAction("m:2", "b.ts", "b\n")]

    with pytest.raises(ActionCommandError):
        await runner.run_all(actions)

    assert [record.status for record in runner.records()] == [
        ActionStatus.COMPLETE,
        ActionStatus.FAILED,
        ActionStatus.PENDING,
    ]
    assert store.get_contents("b.ts") is None


@pytest.mark.asyncio
async def test_completed_actions_are_not_rerun() -> None:
    store = InMemoryFileStore()
    runner = ActionRunner(store)
    action = FileAction("m:0", "a.ts", "first\n")

    await runner.run(action)
    store.write("a.ts", "changed\n")
    await runner.run(action)

    assert store.get_contents("a.ts") == "changed\n"


@pytest.mark.asyncio
async def test_aborted_shell_action() -> None:
    channel = FakeChannel()
    runner = ActionRunner(InMemoryFileStore(), await _shell(channel))

    task = asyncio.create_task(runner.run(ShellAction("m:0", "npm run dev")))
    await asyncio.sleep(0)
    assert runner.status("m:0") == ActionStatus.RUNNING

    assert runner.abort() is True
    record = await task

    assert record.status == ActionStatus.ABORTED
