"""Action markup scanning."""

from actionwire.markup.scanner import TagScanner, scan_text
from actionwire.markup.types import (
    Action,
    ActionClose,
    ActionOpen,
    ActionStream,
    ActionType,
    Edit,
    FileAction,
    ModifyAction,
    ScanEvent,
    ScanResult,
    ShellAction,
    TextEvent,
)

__all__ = [
    "Action",
    "ActionClose",
    "ActionOpen",
    "ActionStream",
    "ActionType",
    "Edit",
    "FileAction",
    "ModifyAction",
    "ScanEvent",
    "ScanResult",
    "ShellAction",
    "TagScanner",
    "TextEvent",
    "scan_text",
]
