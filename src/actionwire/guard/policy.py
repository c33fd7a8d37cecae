"""Shell command policy for submitted shell actions."""

from __future__ import annotations

import re
from collections.abc import Iterable

from loguru import logger

from actionwire.config import DEFAULT_FORBIDDEN_COMMANDS
from actionwire.guard.gate import Acceptance, Rejection, Verdict
from actionwire.markup.types import Action, ShellAction

FORBIDDEN_COMMAND = "FORBIDDEN_COMMAND"
SEGMENT_SPLIT_RE = re.compile(r"&&|\|\||[;|\n]")


def command_segments(command: str) -> list[str]:
    """Split a command line on shell control operators."""
    return [segment.strip() for segment in SEGMENT_SPLIT_RE.split(command) if segment.strip()]


class CommandPolicy:
    """Rejects shell actions containing any forbidden fragment."""

    def __init__(self, forbidden: Iterable[str] = DEFAULT_FORBIDDEN_COMMANDS) -> None:
        self.forbidden = tuple(item for item in forbidden if item)

    def violation(self, command: str) -> str | None:
        stripped = command.strip()
        if not stripped:
            return "empty command"
        for segment in command_segments(stripped):
            for fragment in self.forbidden:
                if fragment in segment:
                    return fragment
        return None

    def check(self, actions: Iterable[Action]) -> Verdict:
        details = []
        for action in actions:
            if not isinstance(action, ShellAction):
                continue
            fragment = self.violation(action.command)
            if fragment is not None:
                details.append({"command": action.command, "forbidden": fragment})
        if not details:
            return Acceptance()
        logger.warning("guard.command.forbidden commands={}", [item["command"] for item in details])
        return Rejection(error_code=FORBIDDEN_COMMAND, remediation="drop-or-rewrite-command", details=tuple(details))
