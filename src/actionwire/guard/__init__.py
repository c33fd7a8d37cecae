"""Submission validation."""

from actionwire.guard.gate import Acceptance, FileStore, Rejection, ValidationGate, Verdict
from actionwire.guard.policy import CommandPolicy
from actionwire.guard.readset import ReadSet, normalize_path

__all__ = [
    "Acceptance",
    "CommandPolicy",
    "FileStore",
    "ReadSet",
    "Rejection",
    "ValidationGate",
    "Verdict",
    "normalize_path",
]
