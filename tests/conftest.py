from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from actionwire.shell.sentinel import encode_sentinel


def exit_sentinel(code: int | str) -> str:
    return encode_sentinel("exit", code)


class FakeChannel:
    """In-memory remote channel; output is whatever the test pushes."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[str | None] = asyncio.Queue()
        self.spawned: list[str] = []
        self.writes: list[str] = []
        self.aborts = 0
        self.on_write: Callable[[str], None] | None = None
        self.on_abort: Callable[[], None] | None = None

    async def spawn(self, session_id: str) -> str:
        self.spawned.append(session_id)
        return f"handle-{session_id}"

    async def write(self, handle: str, data: str) -> None:
        self.writes.append(data)
        if self.on_write is not None:
            self.on_write(data)

    async def read(self, handle: str) -> str | None:
        return await self.queue.get()

    def signal_abort(self, handle: str) -> None:
        self.aborts += 1
        if self.on_abort is not None:
            self.on_abort()

    def push(self, *chunks: str) -> None:
        for chunk in chunks:
            self.queue.put_nowait(chunk)

    def finish(self) -> None:
        self.queue.put_nowait(None)


class ScriptedChannel(FakeChannel):
    """Replies to each written command with canned output and an exit code."""

    def __init__(self, replies: dict[str, tuple[str, int]] | None = None) -> None:
        super().__init__()
        self.replies = dict(replies or {})
        self.on_write = self._reply

    def _reply(self, data: str) -> None:
        output, code = self.replies.get(data.strip(), ("", 0))
        self.push(output + exit_sentinel(code))


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()
