"""pywitr - interactive Textual browser."""

import io
from enum import Enum

from rich.console import Console
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from pywitr.backends import Sources
from pywitr.classify import LauncherTables
from pywitr.errors import AmbiguousTarget, WitrError
from pywitr.explain import Report, explain
from pywitr.models import ProcessRecord, Target, TargetKind
from pywitr.render import render_ambiguity, render_standard, safe, sanitize_terminal


class SortKey(Enum):
    """Sort keys for the process table."""

    PID = "pid"
    NAME = "name"
    USER = "user"


def report_text(report: Report, width: int = 100) -> Text:
    """Render a report with the standard renderer into a Rich Text."""
    console = Console(
        file=io.StringIO(), force_terminal=True, color_system="standard", width=width
    )
    render_standard(report, console)
    return Text.from_ansi(console.file.getvalue())


class ExplainPane(Static):
    """Side pane showing why the selected process is running."""

    DEFAULT_CSS = """
    ExplainPane {
        width: 1fr;
        height: 1fr;
        padding: 1;
        background: $surface;
        overflow-y: auto;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__("Select a process and press Enter.", *args, **kwargs)
        self.pid: int | None = None

    def show_report(self, report: Report) -> None:
        self.pid = report.process.pid
        self.update(report_text(report))

    def show_error(self, pid: int, error: WitrError) -> None:
        self.pid = pid
        if isinstance(error, AmbiguousTarget):
            console = Console(file=io.StringIO(), force_terminal=True, width=100)
            render_ambiguity(error, console)
            self.update(Text.from_ansi(console.file.getvalue()))
            return
        self.update(f"[bold red]Error:[/bold red] {safe(str(error))}")


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        width: 1fr;
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._records: list[ProcessRecord] = []
        self._sort_key: SortKey = SortKey.PID

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    @property
    def pids(self) -> list[int]:
        """PIDs in display order."""
        return [r.pid for r in self._sorted()]

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key, redraw, and return the key."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        self._redraw()
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("PPID", key="ppid", width=8)
        table.add_column("USER", key="user", width=10)
        table.add_column("STATE", key="state", width=9)
        table.add_column("Command", key="command")

    def update_processes(self, records: list[ProcessRecord]) -> None:
        """Replace the table contents with a new point-in-time snapshot."""
        self._records = list(records)
        self._redraw()

    def _sorted(self) -> list[ProcessRecord]:
        key_func = {
            SortKey.PID: lambda r: r.pid,
            SortKey.NAME: lambda r: (r.command.lower(), r.pid),
            SortKey.USER: lambda r: (r.username.lower(), r.pid),
        }
        return sorted(self._records, key=key_func[self._sort_key])

    def _redraw(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for record in self._sorted():
            table.add_row(
                str(record.pid),
                str(record.ppid),
                sanitize_terminal(record.username)[:10],
                record.state,
                Text(sanitize_terminal(record.cmdline)[:80]),
                key=str(record.pid),
            )


class WitrApp(App):
    """Browse processes and explain where any of them came from."""

    TITLE = "pywitr"
    SUB_TITLE = "Why is this running?"

    CSS = """
    Screen {
        layout: vertical;
    }

    Horizontal {
        height: 1fr;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("r", "refresh", "Refresh"),
        ("e", "explain", "Explain"),
    ]

    def __init__(self, sources: Sources, tables: LauncherTables | None = None) -> None:
        """Initialize the WitrApp."""
        super().__init__()
        self._sources = sources
        self._tables = tables

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Horizontal(ProcessTable(), ExplainPane(id="explain-pane"))
        yield Footer()

    def on_mount(self) -> None:
        """Take the first snapshot."""
        self.action_refresh()

    def action_refresh(self) -> None:
        """Take a fresh snapshot of the process table."""
        records = self._sources.processes.list_processes()
        self.query_one(ProcessTable).update_processes(records)
        self.notify(f"{len(records)} processes")

    def action_sort(self) -> None:
        """Handle sort action - cycle through sort keys."""
        new_sort_key = self.query_one(ProcessTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_explain(self) -> None:
        """Explain the process under the cursor."""
        table = self.query_one("#process-table", DataTable)
        if table.row_count == 0:
            return
        row_key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key
        self.explain_pid(int(row_key.value))

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self.explain_pid(int(event.row_key.value))

    def explain_pid(self, pid: int) -> None:
        pane = self.query_one("#explain-pane", ExplainPane)
        try:
            report = explain(Target(TargetKind.PID, str(pid)), self._sources, self._tables)
        except WitrError as exc:
            pane.show_error(pid, exc)
            return
        pane.show_report(report)
