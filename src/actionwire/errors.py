"""Application-level exception types for actionwire."""

from __future__ import annotations


class ActionwireError(Exception):
    """Base exception for actionwire."""


class ConfigurationError(ActionwireError):
    """Raised when settings are invalid."""


class ShellSessionError(ActionwireError):
    """Base exception for shell session misuse."""


class SessionNotStartedError(ShellSessionError):
    """Raised when a command is issued before the session channel is spawned."""


class ActionExecutionError(ActionwireError):
    """Base exception for failures while executing a closed action."""


class ActionCommandError(ActionExecutionError):
    """Raised when a shell action finishes with a non-zero or unknown exit code."""

    def __init__(self, header: str, output: str) -> None:
        super().__init__(f"{header}\n\nOutput:\n{output}")
        self.header = header
        self.output = output


class EditNotFoundError(ActionExecutionError):
    """Raised when an edit's `before` text is absent from the target file."""

    def __init__(self, path: str, index: int, before: str) -> None:
        preview = before if len(before) <= 50 else f"{before[:50]}..."
        super().__init__(f"{path}: edit #{index + 1} text not found: {preview!r}")
        self.path = path
        self.index = index
        self.before = before
