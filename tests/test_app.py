"""Tests for the interactive browser."""

import pytest
from conftest import make_record
from textual.widgets import DataTable

from pywitr.app import ExplainPane, ProcessTable, SortKey, WitrApp, report_text
from pywitr.explain import explain
from pywitr.models import Target, TargetKind


@pytest.fixture
def app(make_sources, ssh_chain):
    records = ssh_chain + [make_record(7, 1, "cron", "/usr/sbin/cron -f", username="root")]
    return WitrApp(make_sources(records))


class TestSortKey:
    """Tests for SortKey enum."""

    def test_sort_key_members(self):
        """Test SortKey enum has all expected members."""
        assert [k.value for k in SortKey] == ["pid", "name", "user"]


def test_report_text(make_sources, ssh_chain):
    """Test report_text carries the standard rendering."""
    sources = make_sources(ssh_chain)
    report = explain(Target(TargetKind.PID, "121"), sources)
    text = report_text(report)
    assert "python" in text.plain
    assert "interactive shell (bash)" in text.plain


@pytest.mark.asyncio
async def test_app_creation(app):
    """Test WitrApp can be instantiated."""
    assert app.title == "pywitr"
    assert app.sub_title == "Why is this running?"


@pytest.mark.asyncio
async def test_app_lists_processes(app):
    """Test the first snapshot fills the table."""
    async with app.run_test() as pilot:
        await pilot.pause()
        table = pilot.app.query_one("#process-table", DataTable)
        assert table.row_count == 5
        assert pilot.app.query_one(ProcessTable).pids == [1, 7, 50, 120, 121]


@pytest.mark.asyncio
async def test_app_quit_binding(app):
    """Test that 'q' binding triggers quit."""
    async with app.run_test() as pilot:
        await pilot.press("q")
        assert pilot.app._exit


@pytest.mark.asyncio
async def test_process_table_cycle_sort(app):
    """Test F6 cycles sort keys and reorders rows."""
    async with app.run_test() as pilot:
        await pilot.pause()
        process_table = pilot.app.query_one(ProcessTable)
        assert process_table.sort_key == SortKey.PID

        await pilot.press("f6")
        assert process_table.sort_key == SortKey.NAME
        assert process_table.pids == [120, 7, 1, 121, 50]

        await pilot.press("f6")
        assert process_table.sort_key == SortKey.USER
        assert process_table.pids[:2] == [120, 121]

        process_table.cycle_sort()
        assert process_table.sort_key == SortKey.PID


@pytest.mark.asyncio
async def test_explain_binding(app):
    """Test 'e' explains the process under the cursor."""
    async with app.run_test() as pilot:
        await pilot.pause()
        await pilot.press("e")
        pane = pilot.app.query_one("#explain-pane", ExplainPane)
        assert pane.pid == 1


@pytest.mark.asyncio
async def test_explain_pid(app):
    """Test explaining a PID directly updates the pane."""
    async with app.run_test() as pilot:
        await pilot.pause()
        pilot.app.explain_pid(121)
        assert pilot.app.query_one(ExplainPane).pid == 121


@pytest.mark.asyncio
async def test_explain_vanished_pid(app):
    """Test a PID that no longer exists is reported in the pane."""
    async with app.run_test() as pilot:
        await pilot.pause()
        pilot.app.explain_pid(4242)
        assert pilot.app.query_one(ExplainPane).pid == 4242
