"""Action execution runtime."""

from actionwire.runtime.files import InMemoryFileStore, WorkspaceFileStore, apply_edits
from actionwire.runtime.runner import ActionRecord, ActionRunner, ActionStatus
from actionwire.runtime.session import OrchestrationSession

__all__ = [
    "ActionRecord",
    "ActionRunner",
    "ActionStatus",
    "InMemoryFileStore",
    "OrchestrationSession",
    "WorkspaceFileStore",
    "apply_edits",
]
