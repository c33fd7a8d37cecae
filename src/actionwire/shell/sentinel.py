"""Out-of-band completion sentinels embedded in shell output.

A sentinel is an OSC escape sequence ``ESC ] <opcode> ; <name> [=<value>] BEL``.
The remote shell emits ``exit=<code>`` (or ``exit=<pid>:<code>``) after every
command, and arbitrary names such as ``prompt`` as synchronization points.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

ESC = "\x1b"
BEL = "\x07"
DEFAULT_OPCODE = "654"
EXIT_SENTINEL = "exit"
MAX_SENTINEL_LENGTH = 256

SENTINEL_RE = re.compile(r"\x1b\](\d+);([^\x07\x1b=]+)(?:=([^\x07\x1b]*))?\x07")
SENTINEL_PREFIX_RE = re.compile(r"\x1b(?:\](?:\d+(?:;(?:[^\x07\x1b=]+(?:=[^\x07\x1b]*)?)?)?)?)?\Z")


@dataclass(frozen=True)
class TextRun:
    """Displayable text; `partial` marks an unresolved fragment flushed at end of stream."""

    text: str
    partial: bool = False


@dataclass(frozen=True)
class Sentinel:
    name: str
    value: str | None = None
    opcode: str = DEFAULT_OPCODE

    @property
    def code(self) -> int | None:
        """Numeric payload; for ``pid:code`` values the last field is used."""
        if self.value is None:
            return None
        try:
            return int(self.value.rsplit(":", 1)[-1])
        except ValueError:
            return None

    @property
    def is_exit(self) -> bool:
        return self.name == EXIT_SENTINEL


type Token = TextRun | Sentinel


def encode_sentinel(name: str, value: object | None = None, *, opcode: str = DEFAULT_OPCODE) -> str:
    if not name or any(char in name for char in (ESC, BEL, "=")):
        raise ValueError(f"invalid sentinel name: {name!r}")
    payload = "" if value is None else f"={value}"
    if ESC in payload or BEL in payload:
        raise ValueError(f"invalid sentinel value: {value!r}")
    return f"{ESC}]{opcode};{name}{payload}{BEL}"


class SentinelDecoder:
    """Splits a character stream into text runs and sentinels.

    A fragment that may still complete into a sentinel is held until the next
    `feed`, so a sentinel split across reads is decoded exactly once.
    """

    def __init__(self, opcode: str = DEFAULT_OPCODE) -> None:
        self.opcode = opcode
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, text: str) -> list[Token]:
        data = self._pending + text
        self._pending = ""
        tokens: list[Token] = []
        plain: list[str] = []
        i = 0
        while i < len(data):
            j = data.find(ESC, i)
            if j == -1:
                plain.append(data[i:])
                break
            plain.append(data[i:j])

            match = SENTINEL_RE.match(data, j)
            if match is not None and match.end() - j <= MAX_SENTINEL_LENGTH:
                if match.group(1) == self.opcode:
                    _flush_plain(plain, tokens)
                    tokens.append(Sentinel(name=match.group(2), value=match.group(3), opcode=self.opcode))
                else:
                    plain.append(match.group(0))
                i = match.end()
                continue

            tail = data[j:]
            if len(tail) < MAX_SENTINEL_LENGTH and SENTINEL_PREFIX_RE.match(tail):
                self._pending = tail
                break
            plain.append(ESC)
            i = j + 1

        _flush_plain(plain, tokens)
        return tokens

    def finalize(self) -> list[Token]:
        rest, self._pending = self._pending, ""
        if not rest:
            return []
        logger.debug("shell.sentinel.partial raw={!r}", rest)
        return [TextRun(rest, partial=True)]

    def reset(self) -> None:
        self._pending = ""


def _flush_plain(plain: list[str], tokens: list[Token]) -> None:
    text = "".join(plain)
    plain.clear()
    if text:
        tokens.append(TextRun(text))


def decode_sentinels(text: str, opcode: str = DEFAULT_OPCODE) -> list[Token]:
    decoder = SentinelDecoder(opcode)
    return decoder.feed(text) + decoder.finalize()
