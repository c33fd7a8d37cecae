"""Decoding helpers for action bodies."""

from __future__ import annotations

import re

from loguru import logger

from actionwire.markup.types import Edit

CDATA_OPEN = "<![CDATA["
CDATA_CLOSE = "]]>"

ENTITIES = {
    "&lt;": "<",
    "&gt;": ">",
    "&amp;": "&",
    "&quot;": '"',
    "&apos;": "'",
    "&#39;": "'",
    "&#x27;": "'",
    "&#x3D;": "=",
    "&#60;": "<",
    "&#62;": ">",
}
ENTITY_RE = re.compile("|".join(re.escape(name) for name in ENTITIES))
PARTIAL_ENTITY_RE = re.compile(r"&#?[A-Za-z0-9]{0,6}$")
FENCED_BODY_RE = re.compile(r"^\s*```[\w.+-]*\n([\s\S]*?)\n\s*```\s*$")
EDIT_MARKERS = ("before", "after")


def decode_entities(text: str) -> str:
    """Decode the entities models use to escape angle brackets and quotes."""
    if "&" not in text:
        return text
    return ENTITY_RE.sub(lambda match: ENTITIES[match.group(0)], text)


def partial_suffix(text: str, marker: str, start: int = 0) -> int:
    """Length of the longest proper prefix of `marker` that `text[start:]` ends with."""
    limit = min(len(marker) - 1, len(text) - start)
    for size in range(limit, 0, -1):
        if text.endswith(marker[:size]):
            return size
    return 0


def find_outside_cdata(text: str, needle: str, start: int = 0) -> int:
    """Find `needle` in `text`, skipping over CDATA sections; -1 if absent."""
    pos = start
    while True:
        index = text.find(needle, pos)
        cdata = text.find(CDATA_OPEN, pos)
        if cdata == -1 or (index != -1 and index < cdata):
            return index
        close = text.find(CDATA_CLOSE, cdata + len(CDATA_OPEN))
        if close == -1:
            return -1
        pos = close + len(CDATA_CLOSE)


class BodyDecoder:
    """Incremental decoder for raw body text.

    Entities are decoded outside CDATA sections; CDATA content is passed
    through verbatim with its delimiters removed. A trailing fragment that
    could still become an entity or a CDATA delimiter is held back until
    more text arrives, so the concatenated output never depends on how the
    input was split.
    """

    def __init__(self) -> None:
        self._pending = ""
        self._in_cdata = False

    def feed(self, text: str) -> str:
        data = self._pending + text
        out: list[str] = []
        i = 0
        while i < len(data):
            if self._in_cdata:
                end = data.find(CDATA_CLOSE, i)
                if end == -1:
                    keep = partial_suffix(data, CDATA_CLOSE, i)
                    out.append(data[i : len(data) - keep])
                    i = len(data) - keep
                    break
                out.append(data[i:end])
                i = end + len(CDATA_CLOSE)
                self._in_cdata = False
                continue

            start = data.find(CDATA_OPEN, i)
            if start == -1:
                segment = data[i:]
                keep = partial_suffix(segment, CDATA_OPEN)
                entity = PARTIAL_ENTITY_RE.search(segment)
                if entity is not None:
                    keep = max(keep, len(segment) - entity.start())
                out.append(decode_entities(segment[: len(segment) - keep]))
                i = len(data) - keep
                break
            out.append(decode_entities(data[i:start]))
            i = start + len(CDATA_OPEN)
            self._in_cdata = True

        self._pending = data[i:]
        return "".join(out)

    def flush(self) -> str:
        rest, self._pending = self._pending, ""
        if self._in_cdata:
            return rest
        return decode_entities(rest)


def decode_body(raw: str) -> str:
    decoder = BodyDecoder()
    return decoder.feed(raw) + decoder.flush()


def clean_file_content(content: str) -> str:
    """Normalize decoded file content: unwrap a whole-body code fence, end with one newline."""
    processed = content.strip()
    fenced = FENCED_BODY_RE.match(processed)
    if fenced is not None:
        processed = fenced.group(1)
    return processed + "\n"


def parse_edits(raw: str, *, path: str = "") -> tuple[Edit, ...]:
    """Collect ordered before/after pairs from a raw modify body."""
    edits: list[Edit] = []
    pending_before: str | None = None
    pos = 0
    while True:
        name, start = _next_edit_marker(raw, pos)
        if name is None:
            break
        closing = f"</{name}>"
        end = find_outside_cdata(raw, closing, start)
        if end == -1:
            value_raw, pos = raw[start:], len(raw)
        else:
            value_raw, pos = raw[start:end], end + len(closing)
        value = decode_body(value_raw).strip("\r\n")

        if name == "before":
            if pending_before is not None:
                logger.warning("markup.modify.unpaired_before path={}", path)
            pending_before = value
            continue
        edits.append(Edit(before=pending_before or "", after=value))
        pending_before = None

    if pending_before is not None:
        logger.warning("markup.modify.unpaired_before path={}", path)
    return tuple(edits)


def _next_edit_marker(raw: str, pos: int) -> tuple[str | None, int]:
    best_name: str | None = None
    best_index = -1
    for name in EDIT_MARKERS:
        index = find_outside_cdata(raw, f"<{name}>", pos)
        if index != -1 and (best_index == -1 or index < best_index):
            best_name, best_index = name, index
    if best_name is None:
        return None, -1
    return best_name, best_index + len(best_name) + 2
