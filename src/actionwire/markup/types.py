"""Action variants and scanner events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class ActionType(StrEnum):
    FILE = "file"
    MODIFY = "modify"
    SHELL = "shell"


@dataclass(frozen=True)
class Edit:
    """One textual replacement inside a modify action."""

    before: str
    after: str


@dataclass(frozen=True)
class FileAction:
    """Create or overwrite a file with complete content."""

    action_id: str
    path: str
    content: str = ""

    @property
    def type(self) -> ActionType:
        return ActionType.FILE


@dataclass(frozen=True)
class ModifyAction:
    """Apply ordered replacements to an existing file."""

    action_id: str
    path: str
    edits: tuple[Edit, ...] = ()

    @property
    def type(self) -> ActionType:
        return ActionType.MODIFY


@dataclass(frozen=True)
class ShellAction:
    """Run one command in the session shell."""

    action_id: str
    command: str = ""

    @property
    def type(self) -> ActionType:
        return ActionType.SHELL


type Action = FileAction | ModifyAction | ShellAction


def action_path(action: Action) -> str | None:
    """Return the file path an action writes, or None for shell actions."""
    match action:
        case FileAction(path=path) | ModifyAction(path=path):
            return path
        case ShellAction():
            return None


@dataclass(frozen=True)
class TextEvent:
    """Plain text found between action tags."""

    text: str


@dataclass(frozen=True)
class ActionOpen:
    """An opening marker finished attribute parsing; payload is still empty."""

    action: Action

    @property
    def action_id(self) -> str:
        return self.action.action_id


@dataclass(frozen=True)
class ActionStream:
    """A decoded content increment of a file action."""

    action_id: str
    delta: str


@dataclass(frozen=True)
class ActionClose:
    """The finalized action.

    `implicit` is set when the stream ended before the closing marker and the
    action was closed with whatever content had accumulated.
    """

    action: Action
    implicit: bool = False

    @property
    def action_id(self) -> str:
        return self.action.action_id


type ActionEvent = ActionOpen | ActionStream | ActionClose
type ScanEvent = TextEvent | ActionEvent


@dataclass
class ScanResult:
    """Events collected over a whole message, in source order."""

    events: list[ScanEvent] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(event.text for event in self.events if isinstance(event, TextEvent))

    @property
    def closed(self) -> list[ActionClose]:
        return [event for event in self.events if isinstance(event, ActionClose)]

    @property
    def actions(self) -> list[Action]:
        return [event.action for event in self.closed]
