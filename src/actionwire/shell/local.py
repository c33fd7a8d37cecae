"""Local subprocess implementation of the remote shell channel."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import os
import shutil
import signal
from pathlib import Path

from loguru import logger

from actionwire.errors import ShellSessionError
from actionwire.shell.sentinel import DEFAULT_OPCODE, EXIT_SENTINEL

READ_SIZE = 4096
READY_SENTINEL = "prompt"


def _stdin(handle: asyncio.subprocess.Process) -> asyncio.StreamWriter:
    if handle.stdin is None:
        raise ShellSessionError(f"shell process {handle.pid} has no stdin pipe")
    return handle.stdin


def _stdout(handle: asyncio.subprocess.Process) -> asyncio.StreamReader:
    if handle.stdout is None:
        raise ShellSessionError(f"shell process {handle.pid} has no stdout pipe")
    return handle.stdout


class LocalShellChannel:
    """Runs a long-lived `bash` reading commands from stdin.

    Plain bash does not emit completion sentinels, so every submitted command
    is followed by a `printf` hook reporting `$?` in the sentinel format, and
    the session shell traps SIGINT so aborting a command leaves it alive.
    """

    def __init__(
        self,
        executable: str = "bash",
        *,
        cwd: Path | None = None,
        opcode: str = DEFAULT_OPCODE,
        ready_sentinel: str = READY_SENTINEL,
    ) -> None:
        self.executable = shutil.which(executable) or executable
        self.cwd = cwd
        self.opcode = opcode
        self.ready_sentinel = ready_sentinel
        self._decoders: dict[int, codecs.IncrementalDecoder] = {}

    def _ready_hook(self) -> str:
        return f"printf '\\033]{self.opcode};{self.ready_sentinel}\\007'\n"

    def _exit_hook(self) -> str:
        return f"printf '\\033]{self.opcode};{EXIT_SENTINEL}=%d\\007' \"$?\"\n"

    async def spawn(self, session_id: str) -> asyncio.subprocess.Process:
        process = await asyncio.create_subprocess_exec(
            self.executable,
            "--noprofile",
            "--norc",
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=str(self.cwd) if self.cwd is not None else None,
            start_new_session=True,
        )
        self._decoders[process.pid] = codecs.getincrementaldecoder("utf-8")(errors="replace")
        logger.info("shell.local.spawn session={} pid={}", session_id, process.pid)
        await self._send(process, "trap ':' INT\n" + self._ready_hook())
        return process

    async def write(self, handle: asyncio.subprocess.Process, data: str) -> None:
        script = data.rstrip("\n")
        await self._send(handle, f"{{\n{script}\n}} </dev/null\n" + self._exit_hook())

    async def read(self, handle: asyncio.subprocess.Process) -> str | None:
        stdout = _stdout(handle)
        decoder = self._decoders[handle.pid]
        while True:
            data = await stdout.read(READ_SIZE)
            if not data:
                tail = decoder.decode(b"", final=True)
                return tail or None
            text = decoder.decode(data)
            if text:
                return text

    def signal_abort(self, handle: asyncio.subprocess.Process) -> None:
        with contextlib.suppress(ProcessLookupError):
            os.killpg(handle.pid, signal.SIGINT)

    async def close(self, handle: asyncio.subprocess.Process) -> None:
        if handle.returncode is None:
            with contextlib.suppress(ProcessLookupError, BrokenPipeError, ConnectionResetError):
                stdin = _stdin(handle)
                stdin.write(b"exit\n")
                await stdin.drain()
            try:
                await asyncio.wait_for(handle.wait(), timeout=2)
            except TimeoutError:
                handle.kill()
                await handle.wait()
        self._decoders.pop(handle.pid, None)

    async def _send(self, handle: asyncio.subprocess.Process, text: str) -> None:
        stdin = _stdin(handle)
        stdin.write(text.encode("utf-8"))
        await stdin.drain()
