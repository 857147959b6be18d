"""Tests for the command line entry point."""

import json

import pytest
from conftest import FakeSocketTable, make_record

from pywitr import cli
from pywitr.config import MIN_TIMEOUT
from pywitr.models import Connection, ListeningSocket


@pytest.fixture
def run(monkeypatch, make_sources, ssh_chain):
    for var in ("PYWITR_LAUNCHERS", "PYWITR_TIMEOUT", "PYWITR_LOG_LEVEL", "NO_COLOR"):
        monkeypatch.delenv(var, raising=False)
    # keep the test runner out of name matches
    monkeypatch.setattr("pywitr.target.os.getpid", lambda: 9000)
    monkeypatch.setattr("pywitr.target.os.getppid", lambda: 8999)

    records = ssh_chain + [
        make_record(300, 1, "nginx", "nginx: master process", username="root"),
        make_record(400, 121, "worker", "python worker.py"),
        make_record(401, 121, "worker", "python worker.py --second"),
    ]
    sockets = [ListeningSocket("0.0.0.0", 80, "h1", pid=300), ListeningSocket("::", 9, "h2")]
    connections = [Connection("TCP", "127.0.0.1", 5432, "127.0.0.1", 40000, "TIME_WAIT")]
    table = FakeSocketTable(sockets=sockets, connections=connections)
    sources = make_sources(records, table)
    monkeypatch.setattr(cli, "default_sources", lambda settings: sources)

    def _run(*argv):
        return cli.main(list(argv))

    return _run


class TestMain:
    """Tests for pywitr.cli.main."""

    def test_pid(self, run, capsys):
        assert run("--pid", "121") == 0
        out = capsys.readouterr().out
        assert "python (pid 121)" in out
        assert "interactive shell (bash)" in out

    def test_short(self, run, capsys):
        assert run("--pid", "121", "--short") == 0
        assert capsys.readouterr().out.strip() == (
            "init (pid 1) → sshd (pid 50) → bash (pid 120) → python (pid 121)"
        )

    def test_json(self, run, capsys):
        assert run("--port", "80", "--json") == 0
        data = json.loads(capsys.readouterr().out)
        assert data["resolution"]["pid"] == 300
        assert data["resolution"]["bind_address"] == "0.0.0.0"
        assert data["listening"] == []

    def test_warnings_only(self, run, capsys):
        assert run("--port", "80", "--warnings") == 0
        assert "Process is running as root" in capsys.readouterr().out

    def test_name_unique(self, run, capsys):
        assert run("nginx", "--short") == 0
        assert "nginx (pid 300)" in capsys.readouterr().out

    def test_name_ambiguous(self, run, capsys):
        assert run("worker") == 1
        out = capsys.readouterr().out
        assert 'Ambiguous target: "worker"' in out
        assert "[1] PID 400   manual   python worker.py" in out
        assert "[2] PID 401   manual   python worker.py --second" in out

    def test_unknown_pid(self, run, capsys):
        assert run("--pid", "99999") == 1
        assert "No matching process or service found" in capsys.readouterr().out

    def test_invalid_pid(self, run, capsys):
        assert run("--pid", "abc") == 1
        assert "positive integers" in capsys.readouterr().out

    def test_port_without_owner(self, run, capsys):
        assert run("--port", "9") == 1
        out = capsys.readouterr().out
        assert "owning process not detected" in out
        assert "sudo pywitr --port 9" in out

    def test_port_not_listening_shows_states(self, run, capsys):
        assert run("--port", "5432") == 1
        out = capsys.readouterr().out
        assert "TIME_WAIT" in out
        assert "SO_REUSEADDR" in out

    def test_no_target(self, run, capsys):
        assert run() == 1
        assert "usage: pywitr" in capsys.readouterr().out

    def test_modes_are_exclusive(self, run):
        with pytest.raises(SystemExit):
            run("--pid", "1", "--json", "--tree")

    def test_bad_launcher_table(self, run, tmp_path, capsys):
        broken = tmp_path / "broken.toml"
        broken.write_text("shells = [")
        assert run("--pid", "121", "--launchers", str(broken)) == 2
        assert "cannot load launcher table" in capsys.readouterr().out

    def test_timeout_below_minimum_is_raised(self, run, monkeypatch, make_sources, ssh_chain):
        seen = []

        def sources_for(settings):
            seen.append(settings)
            return make_sources(ssh_chain)

        monkeypatch.setattr(cli, "default_sources", sources_for)
        assert run("--timeout", "-1", "--pid", "121") == 0
        assert seen[0].timeout == MIN_TIMEOUT
