from __future__ import annotations

import pytest

from actionwire.shell.sanitize import sanitize, strip_control

SAMPLES = [
    "\x1b[32m✔\x1b[0m compiled\r\n",
    "Build done error: cannot find module './x' warning: deprecated",
    "npm ERR! code 1 npm ERR! missing script: dev",
    "Error: boom    at foo (src/a.js:1:2)    at async bar (src/b.js:3:4)",
    "see src/error: details and TypeError: nope",
    "(error: nested)\n\n\n\n\nend",
    "\x1b]0;title\x07progress\r50%\r100%\n",
]


def test_strip_control() -> None:
    assert strip_control("\x1b[31mred\x1b[0m\x1b]0;t\x07\x08!") == "red!"
    assert strip_control("a\r\nb\rc") == "a\nb\nc"


def test_keywords_start_new_lines() -> None:
    assert sanitize("Build done error: failed to compile") == "Build done\nerror: failed to compile"
    assert sanitize("npm ERR! code 1 npm ERR! missing") == "npm ERR! code 1\nnpm ERR! missing"
    assert sanitize("ok WARNING: slow") == "ok\nWARNING: slow"


def test_keywords_inside_words_and_paths_stay() -> None:
    assert sanitize("TypeError: x") == "TypeError: x"
    assert sanitize("see src/error: x") == "see src/error: x"
    assert sanitize("error: at start") == "error: at start"


def test_stack_frames_start_new_lines() -> None:
    text = "Error: boom    at foo (file.js:1:2)    at bar (x.js:3:4)"

    assert sanitize(text) == "Error: boom\nat foo (file.js:1:2)\nat bar (x.js:3:4)"


def test_blank_lines_collapse_and_lines_trim() -> None:
    assert sanitize("  a  \n\n\n\n  b  \n") == "a\n\nb"


@pytest.mark.parametrize("text", SAMPLES)
def test_sanitize_is_idempotent(text: str) -> None:
    once = sanitize(text)

    assert sanitize(once) == once
