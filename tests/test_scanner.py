from __future__ import annotations

import pytest

from actionwire.markup.scanner import TagScanner, scan_text
from actionwire.markup.types import (
    ActionClose,
    ActionOpen,
    ActionStream,
    Edit,
    FileAction,
    ModifyAction,
    ScanResult,
    ShellAction,
    TextEvent,
)

MESSAGE = (
    "I'll create the helper first.\n\n"
    '<tag type="file" path="src/util.ts">\n'
    "export const lt = (a: number, b: number) => a &lt; b;\n"
    "</tag>\n"
    "Then patch the entry point:\n"
    '<tag type="modify" filePath="src/main.ts">'
    "<before>import a from './a';</before>"
    "<after>import a from './a';\nimport { lt } from './util';</after>"
    "</tag>\n"
    "Template markup goes in verbatim:\n"
    '<tag type="file" path="index.html"><![CDATA[<p>&lt;tag&gt;</p></tag>]]></tag>\n'
    "```html\n<tag type=\"shell\">not an action</tag>\n```\n"
    '<tag type="shell">npm install &amp;&amp; npm test</tag>\n'
    "Done."
)


def scan_in_chunks(text: str, size: int) -> ScanResult:
    scanner = TagScanner("m1")
    result = ScanResult()
    for start in range(0, len(text), size):
        result.events.extend(scanner.feed(text[start : start + size]))
    result.events.extend(scanner.finalize())
    return result


def streamed(result: ScanResult, action_id: str) -> str:
    return "".join(
        event.delta for event in result.events if isinstance(event, ActionStream) and event.action_id == action_id
    )


def test_split_shell_action_yields_one_open_and_one_close() -> None:
    scanner = TagScanner("m")
    events = []
    for chunk in ('<tag type="sh', 'ell">npm in', "stall</tag>"):
        events.extend(scanner.feed(chunk))
    events.extend(scanner.finalize())

    assert [type(event) for event in events] == [ActionOpen, ActionClose]
    assert events[0].action == ShellAction("m:action-0")
    assert events[1].action == ShellAction("m:action-0", "npm install")
    assert events[1].implicit is False


def test_whole_message_actions() -> None:
    result = scan_text(MESSAGE, "m1")

    assert result.actions == [
        FileAction("m1:action-0", "src/util.ts", "export const lt = (a: number, b: number) => a < b;\n"),
        ModifyAction(
            "m1:action-1",
            "src/main.ts",
            (Edit("import a from './a';", "import a from './a';\nimport { lt } from './util';"),),
        ),
        FileAction("m1:action-2", "index.html", "<p>&lt;tag&gt;</p></tag>\n"),
        ShellAction("m1:action-3", "npm install && npm test"),
    ]
    assert '```html\n<tag type="shell">not an action</tag>\n```' in result.text
    assert result.text.startswith("I'll create the helper first.")
    assert result.text.endswith("Done.")


@pytest.mark.parametrize("size", [1, 2, 3, 5, 8, 13, 64])
def test_closed_actions_do_not_depend_on_chunking(size: int) -> None:
    whole = scan_text(MESSAGE, "m1")
    chunked = scan_in_chunks(MESSAGE, size)

    assert chunked.actions == whole.actions
    assert chunked.text == whole.text
    assert streamed(chunked, "m1:action-0") == streamed(whole, "m1:action-0")
    assert streamed(chunked, "m1:action-2") == streamed(whole, "m1:action-2")


def test_file_action_streams_decoded_content() -> None:
    result = scan_in_chunks('<tag type="file" path="a.ts">\nif (a &lt; b) {}\n</tag>', 4)

    assert streamed(result, "m1:action-0") == "\nif (a < b) {}\n"
    assert result.actions == [FileAction("m1:action-0", "a.ts", "if (a < b) {}\n")]


def test_file_content_unwraps_code_fence() -> None:
    result = scan_text('<tag type="file" path="a.py">\n```python\nprint(1)\n```\n</tag>')

    assert result.actions[0].content == "print(1)\n"


def test_modify_and_shell_bodies_do_not_stream() -> None:
    result = scan_text('<tag type="shell">ls</tag><tag type="modify" path="a"><before>x</before><after>y</after></tag>')

    assert not any(isinstance(event, ActionStream) for event in result.events)


@pytest.mark.parametrize(
    "text",
    [
        "a < b and b > c",
        "<b>bold</b>",
        "<tagx>not ours</tagx>",
        '<tag type="bogus">unknown</tag>',
        '<tag type="file">missing path</tag>',
        "<tag type=unquoted>x</tag>",
    ],
)
def test_malformed_markup_falls_back_to_text(text: str) -> None:
    result = scan_text(text)

    assert result.actions == []
    assert result.text == text


def test_text_events_are_merged() -> None:
    result = scan_text("Hello <b>world</b>!")

    assert result.events == [TextEvent("Hello <b>world</b>!")]


def test_angle_bracket_before_marker_is_reprocessed() -> None:
    result = scan_text('<<tag type="shell">ls</tag>')

    assert result.text == "<"
    assert result.actions == [ShellAction("message:action-0", "ls")]


def test_attribute_values_support_escapes_and_entities() -> None:
    result = scan_text("<tag type='file' path=\"dir/a\\\"b &amp; c.txt\">x</tag>")

    assert result.actions[0].path == 'dir/a"b & c.txt'


def test_file_path_attribute_alias() -> None:
    result = scan_text('<tag type="file" filePath="b.ts">x</tag>')

    assert result.actions == [FileAction("message:action-0", "b.ts", "x\n")]


def test_unterminated_action_is_closed_implicitly() -> None:
    scanner = TagScanner("m")
    events = scanner.feed('<tag type="shell">npm te')
    events += scanner.feed("st")
    events += scanner.finalize()

    close = events[-1]
    assert isinstance(close, ActionClose)
    assert close.implicit is True
    assert close.action == ShellAction("m:action-0", "npm test")


def test_incomplete_marker_is_flushed_as_text() -> None:
    scanner = TagScanner("m")
    events = scanner.feed('hello <tag type="fi')
    events += scanner.finalize()

    assert events == [TextEvent("hello "), TextEvent('<tag type="fi')]


def test_fence_passthrough_can_be_disabled() -> None:
    text = '```\n<tag type="shell">ls</tag>\n```'

    assert scan_text(text).actions == []
    assert scan_text(text, fence_passthrough=False).actions == [ShellAction("message:action-0", "ls")]


def test_custom_tag_name() -> None:
    result = scan_text('<boltAction type="shell">ls</boltAction>', tag_name="boltAction")

    assert result.actions == [ShellAction("message:action-0", "ls")]


def test_feed_after_finalize_is_rejected() -> None:
    scanner = TagScanner("m")
    scanner.finalize()

    with pytest.raises(RuntimeError):
        scanner.feed("late")

    scanner.reset()
    assert scanner.feed("again") == [TextEvent("again")]
