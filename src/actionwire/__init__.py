"""actionwire - stream, validate and execute model actions."""

from actionwire.markup.scanner import TagScanner, scan_text
from actionwire.runtime.session import OrchestrationSession
from actionwire.shell.session import CommandResult, ShellSession

__version__ = "0.1.0"

__all__ = ["CommandResult", "OrchestrationSession", "ShellSession", "TagScanner", "scan_text"]
