"""
Read-only sources of OS facts consumed by the resolver and ancestry walker.

Each concern gets one abstract interface; backends.py picks the concrete
implementation for the running platform.
"""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

import psutil

from pywitr.errors import TargetNotFound
from pywitr.models import Connection, ListeningSocket, ProcessRecord

logger = logging.getLogger(__name__)

# Container scopes and ids in /proc/<pid>/cgroup paths, mapped to a runtime label.
# Host daemon units such as docker.service or lxcfs.service never match.
CGROUP_RUNTIMES = (
    (re.compile(r"/kubepods\b"), "kubernetes"),
    (re.compile(r"/docker[-/][0-9a-f]{12,64}\b"), "docker"),
    (re.compile(r"/libpod-[0-9a-f]{12,64}\b"), "podman"),
    (re.compile(r"/cri-containerd-[0-9a-f]{12,64}\b"), "containerd"),
    (re.compile(r"/lxc\.payload[./]|/lxc/[^/\s]+"), "lxc"),
)


class ProcessTableSource(ABC):
    """Per-process records and the full process listing."""

    @abstractmethod
    def read_process(self, pid: int) -> ProcessRecord:
        """Return the record for a live PID or raise TargetNotFound."""

    @abstractmethod
    def list_processes(self) -> list[ProcessRecord]:
        """Return records for every process visible to the caller."""


class SocketTableSource(ABC):
    """Listening sockets, per-process socket handles and all connections."""

    name = "socket table"

    @abstractmethod
    def list_listening_sockets(self) -> list[ListeningSocket]:
        """Return every TCP socket in LISTEN state; raise SourceUnavailable on failure."""

    @abstractmethod
    def list_open_handles(self, pid: int) -> list[str]:
        """Return the socket handles held open by a PID (empty if unreadable)."""

    @abstractmethod
    def list_connections(self) -> list[Connection]:
        """Return all TCP and UDP sockets; raise SourceUnavailable on failure."""


class ServiceManagerSource(ABC):
    """Lookup of managed service units."""

    name = "service manager"

    @abstractmethod
    def find_service_main_pid(self, name: str) -> int | None:
        """Return the leading PID of a running unit, or None if not running."""


def container_hint(pid: int, proc_root: Path = Path("/proc")) -> str | None:
    """Guess the container runtime of a PID from its cgroup membership (Linux only)."""
    try:
        cgroup = (proc_root / str(pid) / "cgroup").read_text()
    except OSError:
        return None
    for pattern, label in CGROUP_RUNTIMES:
        if pattern.search(cgroup):
            return label
    return None


class PsutilProcessTable(ProcessTableSource):
    """
    Process table backed by psutil.

    Handles AccessDenied and ZombieProcess errors gracefully: fields that
    cannot be read fall back to safe defaults, processes that vanish while
    being listed are skipped.
    """

    ATTRS = ["pid", "ppid", "name", "cmdline", "status", "username", "create_time"]

    def __init__(self, proc_root: Path | None = None) -> None:
        """
        Initialize the process table.

        Args:
            proc_root: procfs mount to read cgroup hints from, or None to skip them.
        """
        self._proc_root = proc_root

    def read_process(self, pid: int) -> ProcessRecord:
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                info = proc.as_dict(attrs=self.ATTRS, ad_value=None)
        except psutil.NoSuchProcess as exc:
            raise TargetNotFound(None, f"process {pid} does not exist") from exc
        return self._to_record(info)

    def list_processes(self) -> list[ProcessRecord]:
        records: list[ProcessRecord] = []
        for proc in psutil.process_iter():
            try:
                with proc.oneshot():
                    info = proc.as_dict(attrs=self.ATTRS, ad_value=None)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                # Process died mid-scan
                logger.debug("skipping pid %s during scan", proc.pid)
                continue
            records.append(self._to_record(info))
        return records

    def _to_record(self, info: dict) -> ProcessRecord:
        pid = info.get("pid") or 0
        name = info.get("name") or ""
        cmdline = info.get("cmdline") or []
        container = None
        if self._proc_root is not None:
            container = container_hint(pid, self._proc_root)
        return ProcessRecord(
            pid=pid,
            ppid=info.get("ppid") or 0,
            command=name,
            cmdline=" ".join(cmdline) if cmdline else name,
            state=info.get("status") or "?",
            username=info.get("username") or "",
            create_time=info.get("create_time") or 0.0,
            container=container,
        )
