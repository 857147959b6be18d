"""Shared fixtures: in-memory stand-ins for the OS sources."""

import pytest

from pywitr.backends import Sources
from pywitr.classify import default_tables
from pywitr.errors import SourceUnavailable, TargetNotFound
from pywitr.models import Connection, ListeningSocket, ProcessRecord
from pywitr.sources import ProcessTableSource, ServiceManagerSource, SocketTableSource


def make_record(pid, ppid, command, cmdline=None, **kwargs) -> ProcessRecord:
    return ProcessRecord(
        pid=pid,
        ppid=ppid,
        command=command,
        cmdline=cmdline if cmdline is not None else command,
        state=kwargs.pop("state", "sleeping"),
        **kwargs,
    )


class FakeProcessTable(ProcessTableSource):
    """Process table over a fixed list of records."""

    def __init__(self, records: list[ProcessRecord]) -> None:
        self.records = {r.pid: r for r in records}
        self.reads: list[int] = []

    def read_process(self, pid: int) -> ProcessRecord:
        self.reads.append(pid)
        if pid not in self.records:
            raise TargetNotFound(None, f"process {pid} does not exist")
        return self.records[pid]

    def list_processes(self) -> list[ProcessRecord]:
        return list(self.records.values())


class FakeSocketTable(SocketTableSource):
    """Socket table over fixed sockets; `handles` maps pid -> open socket handles."""

    def __init__(
        self,
        sockets: list[ListeningSocket] | None = None,
        handles: dict[int, list[str]] | None = None,
        connections: list[Connection] | None = None,
        unavailable: bool = False,
        name: str = "fake",
    ) -> None:
        self.sockets = sockets or []
        self.handles = handles or {}
        self.connections = connections or []
        self.unavailable = unavailable
        self.name = name
        self.queried = 0

    def list_listening_sockets(self) -> list[ListeningSocket]:
        self.queried += 1
        if self.unavailable:
            raise SourceUnavailable(self.name, "tool missing")
        return list(self.sockets)

    def list_open_handles(self, pid: int) -> list[str]:
        return list(self.handles.get(pid, []))

    def list_connections(self) -> list[Connection]:
        if self.unavailable:
            raise SourceUnavailable(self.name, "tool missing")
        return list(self.connections)


class FakeServiceManager(ServiceManagerSource):
    """Service manager over a name -> main PID mapping."""

    name = "fake-services"

    def __init__(self, services: dict[str, int] | None = None, unavailable: bool = False) -> None:
        self.services = services or {}
        self.unavailable = unavailable

    def find_service_main_pid(self, name: str) -> int | None:
        if self.unavailable:
            raise SourceUnavailable(self.name, "not installed")
        return self.services.get(name)


@pytest.fixture
def tables():
    return default_tables()


@pytest.fixture
def ssh_chain():
    """init -> sshd -> bash -> python."""
    return [
        make_record(1, 0, "init", "/sbin/init", username="root"),
        make_record(50, 1, "sshd", "/usr/sbin/sshd -D", username="root"),
        make_record(120, 50, "bash", "-bash", username="alice"),
        make_record(121, 120, "python", "python app.py", username="alice"),
    ]


@pytest.fixture
def make_sources():
    """Factory building Sources from records, socket tables and services."""

    def factory(records, sockets=None, services=None):
        if sockets is None:
            sockets = [FakeSocketTable()]
        elif isinstance(sockets, SocketTableSource):
            sockets = [sockets]
        return Sources(
            processes=FakeProcessTable(records),
            sockets=tuple(sockets),
            services=services or FakeServiceManager(),
        )

    return factory
