"""Incremental scanner for action markup embedded in model output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum

from loguru import logger

from actionwire.markup.body import (
    CDATA_CLOSE,
    CDATA_OPEN,
    BodyDecoder,
    clean_file_content,
    decode_body,
    decode_entities,
    parse_edits,
    partial_suffix,
)
from actionwire.markup.types import (
    Action,
    ActionClose,
    ActionOpen,
    ActionStream,
    ActionType,
    FileAction,
    ModifyAction,
    ScanEvent,
    ScanResult,
    ShellAction,
    TextEvent,
)

DEFAULT_TAG_NAME = "tag"
FENCE = "```"
MAX_MARKER_LENGTH = 4096
ATTR_NAME_RE = re.compile(r"[A-Za-z0-9_:\-]")
PATH_ATTRIBUTES = ("path", "filePath")


class Mode(IntEnum):
    TEXT = 0
    FENCE = 1
    MARKER = 2
    ATTR_SPACE = 3
    ATTR_NAME = 4
    ATTR_EQ = 5
    ATTR_QUOTE = 6
    ATTR_VALUE = 7
    BODY = 8


@dataclass
class ScanState:
    """Resumable parse state for one message.

    `buffer[cursor:]` is text received but not yet consumed. `pending` holds
    the raw text of an opening marker whose attributes are still being
    parsed; it is re-emitted verbatim if the marker turns out to be invalid.
    """

    mode: Mode = Mode.TEXT
    buffer: str = ""
    cursor: int = 0
    pending: str = ""
    need_space: bool = False
    attr_name: str = ""
    attr_value: str = ""
    quote: str = ""
    escaped: bool = False
    attributes: dict[str, str] = field(default_factory=dict)
    action: Action | None = None
    body: list[str] = field(default_factory=list)
    streamed: list[str] = field(default_factory=list)
    decoder: BodyDecoder | None = None
    in_cdata: bool = False
    action_count: int = 0

    def compact(self) -> None:
        self.buffer = self.buffer[self.cursor :]
        self.cursor = 0

    def reset_marker(self) -> None:
        self.pending = ""
        self.need_space = False
        self.attr_name = ""
        self.attr_value = ""
        self.quote = ""
        self.escaped = False
        self.attributes = {}

    def reset_body(self) -> None:
        self.action = None
        self.body = []
        self.streamed = []
        self.decoder = None
        self.in_cdata = False


class TagScanner:
    """Turns chunks of model output into ordered text and action events.

    `feed` accepts chunks split anywhere, down to one character at a time,
    and returns the events that became recognizable; `finalize` flushes
    whatever is still held and implicitly closes an unterminated action.
    The closed actions never depend on how the text was chunked.
    """

    def __init__(self, message_id: str, *, tag_name: str = DEFAULT_TAG_NAME, fence_passthrough: bool = True) -> None:
        self.message_id = message_id
        self.tag_name = tag_name
        self.fence_passthrough = fence_passthrough
        self._open_marker = f"<{tag_name}"
        self._close_marker = f"</{tag_name}>"
        self._text_re = re.compile(r"[<`]" if fence_passthrough else r"<")
        self.state = ScanState()
        self._events: list[ScanEvent] = []
        self._finalized = False

    def feed(self, chunk: str) -> list[ScanEvent]:
        if self._finalized:
            raise RuntimeError(f"scanner for {self.message_id} is already finalized")
        if not chunk:
            return []
        self.state.buffer += chunk
        self._run(final=False)
        return self._drain()

    def finalize(self) -> list[ScanEvent]:
        if self._finalized:
            return []
        self._run(final=True)
        state = self.state
        rest = state.buffer[state.cursor :]
        state.buffer, state.cursor = "", 0
        if state.mode in (Mode.TEXT, Mode.FENCE):
            self._emit_text(rest)
        elif state.mode == Mode.BODY:
            self._append_body(rest)
            self._close_action(implicit=True)
        else:
            logger.debug("markup.marker.incomplete message={} raw={!r}", self.message_id, state.pending)
            self._emit_text(state.pending + rest)
            state.reset_marker()
        state.mode = Mode.TEXT
        self._finalized = True
        return self._drain()

    def reset(self) -> None:
        self.state = ScanState()
        self._events = []
        self._finalized = False

    def _drain(self) -> list[ScanEvent]:
        events, self._events = self._events, []
        return events

    def _run(self, *, final: bool) -> None:
        state = self.state
        while state.cursor < len(state.buffer):
            if state.mode == Mode.TEXT:
                progressed = self._scan_text(final)
            elif state.mode == Mode.FENCE:
                progressed = self._scan_fence(final)
            elif state.mode == Mode.BODY:
                progressed = self._scan_body()
            else:
                progressed = self._scan_marker_char()
            if not progressed:
                break
        state.compact()

    def _scan_text(self, final: bool) -> bool:
        state = self.state
        buf, i = state.buffer, state.cursor
        match = self._text_re.search(buf, i)
        if match is None:
            self._emit_text(buf[i:])
            state.cursor = len(buf)
            return True

        start = match.start()
        self._emit_text(buf[i:start])
        state.cursor = start
        if buf[start] == "<":
            state.mode = Mode.MARKER
            state.pending = "<"
            state.cursor = start + 1
            return True

        run_end = start
        while run_end < len(buf) and buf[run_end] == "`":
            run_end += 1
        if run_end == len(buf) and not final:
            return False
        self._emit_text(buf[start:run_end])
        state.cursor = run_end
        if run_end - start >= len(FENCE):
            state.mode = Mode.FENCE
        return True

    def _scan_fence(self, final: bool) -> bool:
        state = self.state
        buf, i = state.buffer, state.cursor
        end = buf.find(FENCE, i)
        if end == -1:
            keep = 0 if final else partial_suffix(buf, FENCE, i)
            self._emit_text(buf[i : len(buf) - keep])
            state.cursor = len(buf) - keep
            return False
        self._emit_text(buf[i : end + len(FENCE)])
        state.cursor = end + len(FENCE)
        state.mode = Mode.TEXT
        return True

    def _scan_marker_char(self) -> bool:
        state = self.state
        char = state.buffer[state.cursor]
        if len(state.pending) >= MAX_MARKER_LENGTH:
            self._reject_marker(char)
            return True

        match state.mode:
            case Mode.MARKER:
                candidate = state.pending + char
                if not self._open_marker.startswith(candidate):
                    self._reject_marker(char)
                    return True
                self._consume(char)
                if candidate == self._open_marker:
                    state.mode = Mode.ATTR_SPACE
                    state.need_space = True
            case Mode.ATTR_SPACE:
                if char.isspace():
                    self._consume(char)
                    state.need_space = False
                elif char == ">":
                    self._consume(char)
                    self._open_action()
                elif ATTR_NAME_RE.match(char) and not state.need_space:
                    self._consume(char)
                    state.attr_name = char
                    state.mode = Mode.ATTR_NAME
                else:
                    self._reject_marker(char)
            case Mode.ATTR_NAME:
                if ATTR_NAME_RE.match(char):
                    self._consume(char)
                    state.attr_name += char
                elif char == "=":
                    self._consume(char)
                    state.mode = Mode.ATTR_QUOTE
                elif char.isspace():
                    self._consume(char)
                    state.mode = Mode.ATTR_EQ
                else:
                    self._reject_marker(char)
            case Mode.ATTR_EQ:
                if char.isspace():
                    self._consume(char)
                elif char == "=":
                    self._consume(char)
                    state.mode = Mode.ATTR_QUOTE
                else:
                    self._reject_marker(char)
            case Mode.ATTR_QUOTE:
                if char.isspace():
                    self._consume(char)
                elif char in "\"'":
                    self._consume(char)
                    state.quote = char
                    state.attr_value = ""
                    state.mode = Mode.ATTR_VALUE
                else:
                    self._reject_marker(char)
            case Mode.ATTR_VALUE:
                self._consume(char)
                if state.escaped:
                    state.attr_value += char if char in (state.quote, "\\") else "\\" + char
                    state.escaped = False
                elif char == "\\":
                    state.escaped = True
                elif char == state.quote:
                    state.attributes.setdefault(state.attr_name, decode_entities(state.attr_value))
                    state.attr_name = ""
                    state.attr_value = ""
                    state.mode = Mode.ATTR_SPACE
                else:
                    state.attr_value += char
        return True

    def _consume(self, char: str) -> None:
        self.state.pending += char
        self.state.cursor += 1

    def _reject_marker(self, char: str) -> None:
        state = self.state
        if char == "<":
            self._emit_text(state.pending)
        else:
            self._emit_text(state.pending + char)
            state.cursor += 1
        state.reset_marker()
        state.mode = Mode.TEXT

    def _open_action(self) -> None:
        state = self.state
        action = self._build_header(state.attributes)
        if action is None:
            logger.debug("markup.marker.invalid message={} raw={!r}", self.message_id, state.pending)
            self._emit_text(state.pending)
            state.reset_marker()
            state.mode = Mode.TEXT
            return

        state.reset_marker()
        state.reset_body()
        state.action = action
        state.action_count += 1
        if isinstance(action, FileAction):
            state.decoder = BodyDecoder()
        state.mode = Mode.BODY
        logger.debug("markup.action.open id={} type={}", action.action_id, action.type)
        self._events.append(ActionOpen(action))

    def _build_header(self, attributes: dict[str, str]) -> Action | None:
        action_id = f"{self.message_id}:action-{self.state.action_count}"
        raw_type = attributes.get("type", "")
        try:
            action_type = ActionType(raw_type)
        except ValueError:
            return None

        if action_type == ActionType.SHELL:
            return ShellAction(action_id=action_id)

        path = next((attributes[name] for name in PATH_ATTRIBUTES if attributes.get(name)), "")
        if not path:
            return None
        if action_type == ActionType.FILE:
            return FileAction(action_id=action_id, path=path)
        return ModifyAction(action_id=action_id, path=path)

    def _scan_body(self) -> bool:
        state = self.state
        buf, i = state.buffer, state.cursor
        if state.in_cdata:
            end = buf.find(CDATA_CLOSE, i)
            if end == -1:
                keep = partial_suffix(buf, CDATA_CLOSE, i)
                self._append_body(buf[i : len(buf) - keep])
                state.cursor = len(buf) - keep
                return False
            self._append_body(buf[i : end + len(CDATA_CLOSE)])
            state.cursor = end + len(CDATA_CLOSE)
            state.in_cdata = False
            return True

        close = buf.find(self._close_marker, i)
        cdata = buf.find(CDATA_OPEN, i)
        if cdata != -1 and (close == -1 or cdata < close):
            self._append_body(buf[i : cdata + len(CDATA_OPEN)])
            state.cursor = cdata + len(CDATA_OPEN)
            state.in_cdata = True
            return True
        if close != -1:
            self._append_body(buf[i:close])
            state.cursor = close + len(self._close_marker)
            self._close_action(implicit=False)
            return True

        keep = max(partial_suffix(buf, self._close_marker, i), partial_suffix(buf, CDATA_OPEN, i))
        self._append_body(buf[i : len(buf) - keep])
        state.cursor = len(buf) - keep
        return False

    def _append_body(self, piece: str) -> None:
        state = self.state
        if not piece:
            return
        state.body.append(piece)
        if state.decoder is not None:
            self._stream(state.decoder.feed(piece))

    def _stream(self, delta: str) -> None:
        state = self.state
        if not delta or state.action is None:
            return
        state.streamed.append(delta)
        self._events.append(ActionStream(action_id=state.action.action_id, delta=delta))

    def _close_action(self, *, implicit: bool) -> None:
        state = self.state
        action = state.action
        if action is None:
            return
        if state.decoder is not None:
            self._stream(state.decoder.flush())

        raw = "".join(state.body)
        final: Action
        match action:
            case FileAction():
                final = FileAction(action.action_id, action.path, clean_file_content("".join(state.streamed)))
            case ModifyAction():
                final = ModifyAction(action.action_id, action.path, parse_edits(raw, path=action.path))
            case ShellAction():
                final = ShellAction(action.action_id, decode_body(raw).strip())

        if implicit:
            logger.warning("markup.action.implicit_close id={} type={}", action.action_id, action.type)
        else:
            logger.debug("markup.action.close id={} type={}", action.action_id, action.type)
        self._events.append(ActionClose(final, implicit=implicit))
        state.reset_body()
        state.mode = Mode.TEXT

    def _emit_text(self, text: str) -> None:
        if not text:
            return
        if self._events and isinstance(self._events[-1], TextEvent):
            self._events[-1] = TextEvent(self._events[-1].text + text)
            return
        self._events.append(TextEvent(text))


def scan_text(
    text: str, message_id: str = "message", *, tag_name: str = DEFAULT_TAG_NAME, fence_passthrough: bool = True
) -> ScanResult:
    """Scan a complete message in one pass."""
    scanner = TagScanner(message_id, tag_name=tag_name, fence_passthrough=fence_passthrough)
    result = ScanResult()
    result.events.extend(scanner.feed(text))
    result.events.extend(scanner.finalize())
    return result
