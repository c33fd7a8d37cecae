"""Command line interface for actionwire."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from pathlib import Path
from typing import Any

import typer

from actionwire.config import Settings, get_settings
from actionwire.errors import ActionExecutionError, ConfigurationError
from actionwire.logging_utils import configure_logging
from actionwire.markup.scanner import TagScanner
from actionwire.markup.types import Action, ActionClose, ActionOpen, ActionStream, ScanEvent, TextEvent
from actionwire.runtime.files import WorkspaceFileStore
from actionwire.runtime.runner import ActionRecord
from actionwire.runtime.session import OrchestrationSession, closed_actions
from actionwire.shell.local import LocalShellChannel
from actionwire.shell.sanitize import sanitize
from actionwire.shell.session import ShellSession

EXIT_REJECTED = 2


def _action_payload(action: Action) -> dict[str, Any]:
    payload = dataclasses.asdict(action)
    payload["type"] = str(action.type)
    return payload


def event_payload(event: ScanEvent) -> dict[str, Any]:
    """JSON-ready form of one scanner event."""
    match event:
        case TextEvent(text=text):
            return {"event": "text", "text": text}
        case ActionOpen(action=action):
            return {"event": "open", **_action_payload(action)}
        case ActionStream(action_id=action_id, delta=delta):
            return {"event": "stream", "action_id": action_id, "delta": delta}
        case ActionClose(action=action, implicit=implicit):
            return {"event": "close", "implicit": implicit, **_action_payload(action)}


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ConfigurationError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(1) from exc


def _read_message(file: Path) -> str:
    try:
        return file.read_text(encoding="utf-8")
    except OSError as exc:
        typer.echo(f"Cannot read {file}: {exc}", err=True)
        raise typer.Exit(1) from exc


def _scan(text: str, settings: Settings, message_id: str, chunk_size: int) -> list[ScanEvent]:
    scanner = TagScanner(message_id, tag_name=settings.tag_name, fence_passthrough=settings.fence_passthrough)
    events: list[ScanEvent] = []
    step = chunk_size if chunk_size > 0 else max(len(text), 1)
    for start in range(0, len(text), step):
        events.extend(scanner.feed(text[start : start + step]))
    events.extend(scanner.finalize())
    return events


def scan(
    file: Path = typer.Argument(..., help="Message text to scan"),  # noqa: B008
    chunk_size: int = typer.Option(0, "--chunk-size", "-c", help="Feed the scanner N characters at a time"),
    message_id: str = typer.Option("message", "--message-id", help="Message id used in action ids"),
) -> None:
    """Print scanner events as JSON lines."""
    settings = _load_settings()
    for event in _scan(_read_message(file), settings, message_id, chunk_size):
        typer.echo(json.dumps(event_payload(event), ensure_ascii=False))


def clean(
    file: Path = typer.Argument(..., help="Captured terminal output"),  # noqa: B008
) -> None:
    """Print terminal output sanitized for display."""
    typer.echo(sanitize(_read_message(file)))


def _render_record(record: ActionRecord) -> str:
    header = f"[{record.status}] {record.action.action_id} {record.action.type}"
    if record.output:
        return f"{header}\n{record.output}"
    return header


async def _run_actions(
    actions: list[Action], settings: Settings, workspace: Path, reads: list[str]
) -> tuple[dict[str, Any], list[ActionRecord]]:
    store = WorkspaceFileStore(workspace, work_dir=settings.work_dir)
    channel: LocalShellChannel | None = None
    shell: ShellSession | None = None
    if any(action.type == "shell" for action in actions):
        channel = LocalShellChannel(settings.shell_executable, cwd=workspace, opcode=settings.sentinel_opcode)
        shell = ShellSession(
            channel, opcode=settings.sentinel_opcode, timeout_seconds=settings.command_timeout_seconds
        )
        await shell.start(ready_sentinel=channel.ready_sentinel)

    session = OrchestrationSession(store, settings, shell=shell)
    try:
        session.disclose(reads)
        verdict, records = await session.apply(actions)
        return verdict.to_payload(), records
    finally:
        if channel is not None and shell is not None:
            await channel.close(shell.handle)


def run(
    file: Path = typer.Argument(..., help="Message text containing actions"),  # noqa: B008
    workspace: Path = typer.Option(..., "--workspace", "-w", help="Workspace root"),  # noqa: B008
    read: list[str] | None = typer.Option(None, "--read", "-r", help="Path disclosed before submitting"),  # noqa: B008
) -> None:
    """Scan a message, validate its actions and execute them in a workspace."""
    settings = _load_settings()
    configure_logging(profile="cli", level=settings.log_level)
    if not workspace.is_dir():
        typer.echo(f"Workspace does not exist: {workspace}", err=True)
        raise typer.Exit(1)

    actions = closed_actions(_scan(_read_message(file), settings, "message", 0))
    if not actions:
        typer.echo("(no actions)")
        return

    try:
        payload, records = asyncio.run(_run_actions(actions, settings, workspace, read or []))
    except ActionExecutionError as exc:
        typer.echo(f"Action failed: {exc}", err=True)
        raise typer.Exit(1) from exc

    if not payload.get("ok", False):
        typer.echo(json.dumps(payload, ensure_ascii=False))
        raise typer.Exit(EXIT_REJECTED)
    for record in records:
        typer.echo(_render_record(record))


def create_cli_app() -> typer.Typer:
    app = typer.Typer(name="actionwire", help="Stream, validate and execute model actions", add_completion=False)
    app.command("scan")(scan)
    app.command("clean")(clean)
    app.command("run")(run)
    return app
