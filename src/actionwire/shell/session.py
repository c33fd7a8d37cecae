"""Serialized command execution over one remote shell channel."""

from __future__ import annotations

import asyncio
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from loguru import logger

from actionwire.errors import SessionNotStartedError
from actionwire.shell.sanitize import sanitize
from actionwire.shell.sentinel import DEFAULT_OPCODE, EXIT_SENTINEL, Sentinel, SentinelDecoder, TextRun, Token

SCREEN_CLEAR_RE = re.compile(r"\x1b\[[23]J|\x1bc")
# Longest clear sequence minus one character.
CLEAR_CARRY = 3


class RemoteChannel(Protocol):
    """Process channel owned by the execution environment."""

    async def spawn(self, session_id: str) -> Any: ...

    async def write(self, handle: Any, data: str) -> None: ...

    async def read(self, handle: Any) -> str | None:
        """Next chunk of interleaved output; None at end of stream."""
        ...

    def signal_abort(self, handle: Any) -> None: ...


class SessionState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    ABORTED = "aborted"


@dataclass(frozen=True)
class CommandResult:
    """Displayable output of one command; `exit_code` is None when no exit sentinel arrived."""

    output: str
    exit_code: int | None = None

    @property
    def complete(self) -> bool:
        return self.exit_code is not None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def display(self) -> str:
        return sanitize(self.output)


@dataclass
class _Execution:
    generation: int
    command: str
    abort: Callable[[], None] | None = None


@dataclass
class _OutputCollector:
    """Accumulates displayable text for the command in flight.

    Screen clears are detected by their escape sequence. The last few
    characters of earlier output are kept in `carry` so a sequence split
    across reads still matches; output before the clear is dropped.
    """

    parts: list[str] = field(default_factory=list)
    carry: str = ""
    exit_code: int | None = None

    def append(self, text: str) -> None:
        window = self.carry + text
        clear = None
        for clear in SCREEN_CLEAR_RE.finditer(window):
            pass
        if clear is None:
            self.parts.append(text)
            self.carry = window[-CLEAR_CARRY:]
            return
        tail = window[clear.end() :]
        logger.debug("shell.output.screen_clear dropped={}", len(self.output) - len(self.carry) + clear.start())
        self.parts = [tail]
        self.carry = tail[-CLEAR_CARRY:]

    @property
    def output(self) -> str:
        return "".join(self.parts)

    def result(self) -> CommandResult:
        return CommandResult(output=self.output, exit_code=self.exit_code)


class ShellSession:
    """Runs one command at a time against a remote shell.

    Issuing a command while another is running aborts the running one first:
    its abort callback is invoked synchronously, the channel is signalled and
    the generation counter advances, so whatever the old command still
    produces is discarded and its `execute_command` call returns None. The new
    command is written only once the aborted one has reported its exit.
    """

    def __init__(
        self,
        channel: RemoteChannel,
        session_id: str | None = None,
        *,
        opcode: str = DEFAULT_OPCODE,
        timeout_seconds: float | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self._channel = channel
        self._timeout_seconds = timeout_seconds
        self._decoder = SentinelDecoder(opcode)
        self._handle: Any = None
        self._state = SessionState.IDLE
        self._generation = 0
        self._current: _Execution | None = None
        self._read_task: asyncio.Future[str | None] | None = None
        self._leftover: list[Token] = []
        self._stale = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def started(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> Any:
        return self._handle

    async def start(self, *, ready_sentinel: str | None = None) -> None:
        """Spawn the channel process; optionally wait for its ready checkpoint."""
        if self._handle is not None:
            return
        self._handle = await self._channel.spawn(self.session_id)
        logger.info("shell.session.start session={}", self.session_id)
        if ready_sentinel is not None:
            await self.wait_for_completion(ready_sentinel)

    async def execute_command(self, command: str, abort: Callable[[], None] | None = None) -> CommandResult | None:
        if self._handle is None:
            raise SessionNotStartedError(f"shell session {self.session_id} is not started")

        if self._current is not None:
            self._supersede()

        self._generation += 1
        generation = self._generation
        self._current = _Execution(generation=generation, command=command, abort=abort)
        self._state = SessionState.RUNNING
        logger.info("shell.command.start session={} generation={} command={!r}", self.session_id, generation, command)

        collector = _OutputCollector()
        try:
            async with asyncio.timeout(self._timeout_seconds):
                if self._stale:
                    # Output of the aborted command runs up to its own exit sentinel.
                    await self._wait(generation, EXIT_SENTINEL, _OutputCollector())
                    if generation != self._generation:
                        logger.info("shell.command.discarded session={} generation={}", self.session_id, generation)
                        return None
                    self._stale = False
                self._decoder.reset()
                self._leftover = []
                await self._channel.write(self._handle, command.strip() + "\n")
                result = await self._wait(generation, EXIT_SENTINEL, collector)
        except TimeoutError:
            if generation != self._generation:
                return None
            logger.warning("shell.command.timeout session={} generation={}", self.session_id, generation)
            self.abort()
            return collector.result()

        if result is None:
            logger.info("shell.command.discarded session={} generation={}", self.session_id, generation)
            return None

        self._current = None
        self._state = SessionState.IDLE
        logger.info(
            "shell.command.finish session={} generation={} exit_code={}", self.session_id, generation, result.exit_code
        )
        return result

    async def wait_for_completion(self, sentinel_name: str = EXIT_SENTINEL) -> CommandResult | None:
        """Read until an exit sentinel or the named checkpoint; None if superseded meanwhile."""
        if self._handle is None:
            raise SessionNotStartedError(f"shell session {self.session_id} is not started")
        return await self._wait(self._generation, sentinel_name, _OutputCollector())

    def abort(self) -> bool:
        """Abort the running command without starting another one."""
        if self._current is None:
            return False
        self._supersede()
        self._generation += 1
        return True

    def _supersede(self) -> None:
        current = self._current
        if current is None:
            return
        logger.info("shell.command.abort session={} generation={}", self.session_id, current.generation)
        if current.abort is not None:
            current.abort()
        self._channel.signal_abort(self._handle)
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()
        self._read_task = None
        self._current = None
        self._state = SessionState.ABORTED
        self._stale = True

    async def _wait(self, generation: int, sentinel_name: str, collector: _OutputCollector) -> CommandResult | None:
        tokens, self._leftover = self._leftover, []
        while True:
            for index, token in enumerate(tokens):
                match token:
                    case TextRun(text=text):
                        collector.append(text)
                    case Sentinel() if token.is_exit or token.name == sentinel_name:
                        if token.is_exit:
                            collector.exit_code = token.code
                        self._leftover = tokens[index + 1 :]
                        return collector.result()
                    case Sentinel():
                        logger.debug("shell.sentinel.skip name={} value={}", token.name, token.value)

            if generation != self._generation:
                return None
            chunk = await self._read(generation)
            if generation != self._generation:
                return None
            if chunk is None:
                tokens = self._decoder.finalize()
                for token in tokens:
                    if isinstance(token, TextRun):
                        collector.append(token.text)
                logger.warning("shell.stream.end session={} generation={}", self.session_id, generation)
                return collector.result()
            tokens = self._decoder.feed(chunk)

    async def _read(self, generation: int) -> str | None:
        task = asyncio.ensure_future(self._channel.read(self._handle))
        self._read_task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._read_task is task:
                self._read_task = None
        if task.cancelled() or generation != self._generation:
            return None
        return task.result()
