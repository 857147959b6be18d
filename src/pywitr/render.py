"""Terminal and JSON rendering of explanation reports and errors."""

import json
import unicodedata
from dataclasses import asdict
from enum import Enum

from rich.console import Console
from rich.markup import escape

from pywitr.errors import (
    AmbiguousTarget,
    InvalidTarget,
    OwnerNotDetected,
    SourceUnavailable,
    TargetNotFound,
    WitrError,
)
from pywitr.explain import Report
from pywitr.models import ProcessRecord, SocketState, Source, SourceKind

CHILDREN_LIMIT = 10

SOURCE_TITLES = {
    SourceKind.CONTAINER: "container",
    SourceKind.SERVICE_MANAGER: "service manager",
    SourceKind.SUPERVISOR: "supervisor",
    SourceKind.CRON: "scheduled task",
    SourceKind.SHELL: "interactive shell",
    SourceKind.UNKNOWN: "unknown",
}


def _escape_codepoint(code: int) -> str:
    if code <= 0xFF:
        return f"\\x{code:02x}"
    if code <= 0xFFFF:
        return f"\\u{code:04x}"
    return f"\\U{code:08x}"


def sanitize_terminal(text: str) -> str:
    """
    Make process-supplied text safe for a terminal.

    Control characters (except newline and tab) become visible escapes such
    as '\\x1b'. Undecodable bytes, carried as surrogate escapes, become the
    original byte in '\\xHH' form.
    """
    out: list[str] = []
    for ch in text:
        code = ord(ch)
        if ch in "\n\t":
            out.append(ch)
        elif 0xDC80 <= code <= 0xDCFF:
            out.append(_escape_codepoint(code - 0xDC00))
        elif unicodedata.category(ch) in ("Cc", "Cs"):
            out.append(_escape_codepoint(code))
        else:
            out.append(ch)
    return "".join(out)


def safe(text: str) -> str:
    """Sanitize and escape Rich markup in untrusted text."""
    return escape(sanitize_terminal(text))


def format_source(source: Source) -> str:
    title = SOURCE_TITLES[source.kind]
    if source.kind is SourceKind.UNKNOWN:
        return title
    return f"{title} ({safe(source.name)}), confidence {source.confidence:.0%}"


def _label(record: ProcessRecord, highlight: bool) -> str:
    name = safe(record.command)
    if highlight:
        name = f"[green]{name}[/green]"
    return f"{name} ([bold]pid {record.pid}[/bold])"


def render_short(report: Report, console: Console) -> None:
    """One line: root → ... → target."""
    last = len(report.ancestry) - 1
    parts = [_label(r, i == last) for i, r in enumerate(report.ancestry)]
    console.print("[magenta] → [/magenta]".join(parts))


def render_tree(report: Report, console: Console) -> None:
    """Indented ancestry with the target's direct children underneath."""
    last = len(report.ancestry) - 1
    for i, record in enumerate(report.ancestry):
        prefix = "  " * i + "[magenta]└─ [/magenta]" if i else ""
        console.print(prefix + _label(record, i == last))

    base = "  " * len(report.ancestry)
    kids = report.children
    for i, child in enumerate(kids[:CHILDREN_LIMIT]):
        connector = "└─ " if i == min(len(kids), CHILDREN_LIMIT) - 1 else "├─ "
        console.print(f"{base}[magenta]{connector}[/magenta]{_label(child, False)}")
    if len(kids) > CHILDREN_LIMIT:
        console.print(f"{base}[magenta]└─ [/magenta]... and {len(kids) - CHILDREN_LIMIT} more")


def render_warnings(report: Report, console: Console) -> None:
    if not report.warnings:
        console.print("[green]No warnings.[/green]")
        return
    for warning in report.warnings:
        console.print(f"[yellow]•[/yellow] {safe(warning)}")


def _render_socket_states(states: list[SocketState], console: Console) -> None:
    for state in states:
        line = f"  {state.state:<12} {safe(state.local_address)}"
        if state.remote_address:
            line += f" → {safe(state.remote_address)}"
        console.print(line)
        console.print(f"    [dim]{safe(state.explanation)}[/dim]")
        if state.workaround:
            console.print(f"    [dim]Workaround: {safe(state.workaround)}[/dim]")


def render_standard(report: Report, console: Console) -> None:
    proc = report.process
    console.print(f"[bold]Target[/bold]      : {safe(str(report.target))}")
    console.print(f"[bold]Process[/bold]     : {_label(proc, True)}")
    if proc.username:
        console.print(f"[bold]User[/bold]        : {safe(proc.username)}")
    console.print(f"[bold]Command[/bold]     : {safe(proc.cmdline)}")
    console.print(f"[bold]State[/bold]       : {safe(proc.state)}")
    if report.resolution.bind_address is not None:
        console.print(f"[bold]Bound to[/bold]    : {safe(report.resolution.bind_address)}")
    console.print()

    console.print("[bold]Why It Exists[/bold] :")
    console.print("  " + "[magenta] → [/magenta]".join(_label(r, False) for r in report.ancestry))
    console.print()
    console.print(f"[bold]Source[/bold]      : {format_source(report.source)}")
    if report.restart_count:
        console.print(f"[bold]Restarts[/bold]    : {report.restart_count}")

    if report.listening:
        console.print(f"[bold]Listening[/bold]   : {safe(', '.join(report.listening))}")
    if report.established:
        console.print(f"[bold]Connections[/bold] : {report.established} established")
    if report.socket_states:
        console.print()
        console.print("[bold]Socket State[/bold] :")
        _render_socket_states(report.socket_states, console)

    if report.warnings:
        console.print()
        console.print("[bold yellow]Warnings[/bold yellow] :")
        render_warnings(report, console)


def _json_default(value):
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"cannot serialize {type(value).__name__}")


def report_to_dict(report: Report) -> dict:
    return asdict(report)


def render_json(report: Report, console: Console) -> None:
    console.out(json.dumps(report_to_dict(report), indent=2, default=_json_default), highlight=False)


def render_ambiguity(error: AmbiguousTarget, console: Console) -> None:
    console.print(f'Ambiguous target: "{safe(error.target.value)}"')
    console.print()
    console.print("The query matches multiple processes:")
    console.print()
    for line in error.listing():
        console.print(safe(line))
    console.print()
    console.print("pywitr cannot determine intent safely.")
    console.print("Please re-run with an explicit PID:")
    console.print("  pywitr --pid <pid>")


def render_error(
    error: WitrError,
    console: Console,
    argv: list[str] | None = None,
    states: list[SocketState] | None = None,
) -> None:
    """Print a terminal failure with enough context for the user to act on it."""
    if isinstance(error, AmbiguousTarget):
        render_ambiguity(error, console)
        return

    console.print("[bold red]Error:[/bold red]")
    console.print(f"  {safe(str(error))}")
    console.print()
    if isinstance(error, OwnerNotDetected):
        console.print("A socket was found for the port, but the owning process could not be detected.")
        console.print("This may be due to insufficient permissions. Try running with sudo:")
        if argv:
            console.print("  sudo " + safe(" ".join(argv)))
    elif isinstance(error, InvalidTarget):
        console.print("PIDs and ports must be positive integers.")
    elif isinstance(error, (TargetNotFound, SourceUnavailable)):
        if states:
            console.print("No listener, but sockets on this port are in these states:")
            _render_socket_states(states, console)
            console.print()
        console.print(
            "No matching process or service found. "
            "Please check your query or try a different name/port/PID."
        )
    console.print("For usage and options, run: pywitr --help")
