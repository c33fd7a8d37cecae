from __future__ import annotations

from actionwire.config import DEFAULT_EXEMPT_PATTERNS
from actionwire.guard.gate import (
    EDIT_TARGET_NOT_FOUND,
    FILE_ALREADY_UPDATED,
    NEED_READ_FILES,
    Acceptance,
    Rejection,
    ValidationGate,
)
from actionwire.guard.readset import ReadSet, exempt_by_patterns, normalize_path
from actionwire.markup.types import Edit, FileAction, ModifyAction, ShellAction
from actionwire.runtime.files import InMemoryFileStore


def _store() -> InMemoryFileStore:
    return InMemoryFileStore(
        {
            "a.ts": "export const a = 1;\n",
            "b.ts": "export const b = a &lt; 2;\n",
            "z.ts": "z\n",
            "PROJECT/notes.md": "# notes\n",
            "src/assets.json": "{}\n",
            "README.md": "if (a < b)\n",
        }
    )


def test_normalize_path() -> None:
    assert normalize_path("/home/project/src/x.ts") == "src/x.ts"
    assert normalize_path("./src/../a.ts") == "a.ts"
    assert normalize_path("/abs/elsewhere.ts") == "abs/elsewhere.ts"
    assert normalize_path("src\\win.ts") == "src/win.ts"
    assert normalize_path("/srv/app/a.ts", "/srv/app/") == "a.ts"


def test_read_set_is_monotonic() -> None:
    read_set = ReadSet()

    assert read_set.record_read("b.ts") is True
    assert read_set.record_read("/home/project/b.ts") is False
    assert read_set.record_read("a.ts") is True
    assert list(read_set) == ["a.ts", "b.ts"]
    assert len(read_set) == 2
    assert "a.ts" in read_set
    assert read_set.snapshot() == frozenset({"a.ts", "b.ts"})


def test_exempt_by_patterns() -> None:
    exempt = exempt_by_patterns(DEFAULT_EXEMPT_PATTERNS)

    assert exempt("PROJECT/notes.md")
    assert exempt("src/assets.json")
    assert not exempt("src/notes.md")


def test_missing_reads_are_reported() -> None:
    gate = ValidationGate(_store(), ReadSet(["a.ts"]))

    verdict = gate.check_submission([FileAction("m:0", "a.ts", "x"), FileAction("m:1", "b.ts", "y")])

    assert verdict == Rejection(error_code=NEED_READ_FILES, missing_paths=("b.ts",))
    assert verdict.to_payload() == {
        "errorCode": "NEED_READ_FILES",
        "missingPaths": ["b.ts"],
        "remediation": {"action": "read-then-resubmit"},
    }


def test_missing_paths_are_sorted_and_unique() -> None:
    gate = ValidationGate(_store(), ReadSet())

    verdict = gate.check_submission(
        [
            FileAction("m:0", "z.ts"),
            ModifyAction("m:1", "/home/project/a.ts"),
            FileAction("m:2", "a.ts"),
        ]
    )

    assert isinstance(verdict, Rejection)
    assert verdict.missing_paths == ("a.ts", "z.ts")


def test_new_files_and_shell_actions_need_no_read() -> None:
    gate = ValidationGate(_store(), ReadSet())

    verdict = gate.check_submission([FileAction("m:0", "src/new.ts", "x"), ShellAction("m:1", "npm test")])

    assert verdict == Acceptance()
    assert verdict.to_payload() == {"ok": True}


def test_exempt_paths_need_no_read() -> None:
    actions = [FileAction("m:0", "PROJECT/notes.md"), FileAction("m:1", "src/assets.json")]

    strict = ValidationGate(_store(), ReadSet())
    relaxed = ValidationGate.with_patterns(_store(), ReadSet(), DEFAULT_EXEMPT_PATTERNS)

    assert strict.check_submission(actions).missing_paths == ("PROJECT/notes.md", "src/assets.json")
    assert relaxed.check_submission(actions) == Acceptance()


def test_reading_then_resubmitting_is_accepted() -> None:
    read_set = ReadSet()
    gate = ValidationGate(_store(), read_set)
    actions = [ModifyAction("m:0", "b.ts", (Edit("b", "c"),))]

    assert not gate.check_submission(actions).ok
    read_set.record_read("b.ts")
    assert gate.check_submission(actions).ok


def test_edit_targets_must_exist() -> None:
    gate = ValidationGate(_store(), ReadSet())
    action = ModifyAction("m:0", "a.ts", (Edit("export const a = 1;", "x"), Edit("const c = 3;", "y")))

    verdict = gate.check_edits([action])

    assert isinstance(verdict, Rejection)
    assert verdict.error_code == EDIT_TARGET_NOT_FOUND
    assert verdict.remediation == "copy-exact-before-text"
    assert verdict.details == ({"path": "a.ts", "index": 1, "before": "const c = 3;"},)
    assert verdict.to_payload()["details"] == [{"path": "a.ts", "index": 1, "before": "const c = 3;"}]


def test_edit_targets_match_after_entity_decoding_outside_markdown() -> None:
    gate = ValidationGate(_store(), ReadSet())

    assert gate.check_edits([ModifyAction("m:0", "a.ts", (Edit("const a &#x3D; 1;", "x"),))]).ok
    assert not gate.check_edits([ModifyAction("m:1", "README.md", (Edit("a &lt; b", "x"),))]).ok


def test_modify_of_updated_file_is_rejected() -> None:
    gate = ValidationGate(_store(), ReadSet())
    action = ModifyAction("m:0", "a.ts", (Edit("export const a = 1;", "x"),))

    verdict = gate.check_edits([action], updated=frozenset({"a.ts"}))

    assert isinstance(verdict, Rejection)
    assert verdict.error_code == FILE_ALREADY_UPDATED
    assert verdict.missing_paths == ("a.ts",)
    assert verdict.remediation == "resubmit-as-file"
