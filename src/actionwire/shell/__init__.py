"""Remote shell coordination."""

from actionwire.shell.sanitize import sanitize
from actionwire.shell.sentinel import Sentinel, SentinelDecoder, TextRun, encode_sentinel
from actionwire.shell.session import CommandResult, RemoteChannel, SessionState, ShellSession

__all__ = [
    "CommandResult",
    "RemoteChannel",
    "Sentinel",
    "SentinelDecoder",
    "SessionState",
    "ShellSession",
    "TextRun",
    "encode_sentinel",
    "sanitize",
]
