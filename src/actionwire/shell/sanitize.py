"""Terminal output normalization for display."""

from __future__ import annotations

import re

OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
CSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
ESC_SEQUENCE_RE = re.compile(r"\x1b[@-Z\\-_]")
CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# A keyword gets its own line unless it already starts one or is glued to a
# word or path character (`TypeError:`, `src/error:` stay intact).
KEYWORDS = r"(?:(?:error|warning|failed|Error|Warning|Failed|ERROR|WARNING|WARN|FAILED):|npm ERR!)"
KEYWORD_BREAK_RE = re.compile(rf"(?<=\S)[ \t]+(?={KEYWORDS})|(?<=[^\s\w/\\.\-])(?={KEYWORDS})")
STACK_FRAME_BREAK_RE = re.compile(r"(?<=\S)[ \t]+(?=at (?:async )?(?:\S+ \(\S+:\d+:\d+\)|\S+:\d+:\d+))")
EXTRA_BLANK_LINES_RE = re.compile(r"\n{3,}")


def strip_control(text: str) -> str:
    text = OSC_RE.sub("", text)
    text = CSI_RE.sub("", text)
    text = ESC_SEQUENCE_RE.sub("", text)
    text = text.replace("\x1b", "")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return CONTROL_RE.sub("", text)


def sanitize(text: str) -> str:
    """Clean terminal output for presentation; `sanitize(sanitize(x)) == sanitize(x)`."""
    cleaned = strip_control(text)
    cleaned = KEYWORD_BREAK_RE.sub("\n", cleaned)
    cleaned = STACK_FRAME_BREAK_RE.sub("\n", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n"))
    cleaned = EXTRA_BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()
