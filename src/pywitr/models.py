"""Data models for pywitr."""

from dataclasses import dataclass
from enum import Enum


class TargetKind(Enum):
    """How the user identified the process."""

    PID = "pid"
    PORT = "port"
    NAME = "name"


@dataclass(slots=True, frozen=True)
class Target:
    """Immutable user query: a PID, a listening port, or a process name."""

    kind: TargetKind
    value: str

    @classmethod
    def from_args(
        cls,
        pid: str | None = None,
        port: str | None = None,
        name: str | None = None,
    ) -> "Target":
        """Build a Target from CLI input, PID taking precedence over port over name."""
        if pid:
            return cls(TargetKind.PID, pid)
        if port:
            return cls(TargetKind.PORT, port)
        if name:
            return cls(TargetKind.NAME, name)
        raise ValueError("one of pid, port or name is required")

    def __str__(self) -> str:
        return f"{self.kind.value} {self.value}"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable snapshot of a single process."""

    pid: int
    ppid: int
    command: str  # short name, e.g. 'bash'
    cmdline: str
    state: str  # psutil status string: 'running', 'sleeping', 'zombie', ...
    username: str = ""
    create_time: float = 0.0  # Seconds since the epoch
    container: str | None = None  # runtime hint from cgroup, e.g. 'docker'


class SourceKind(Enum):
    """Launch mechanisms the classifier can infer."""

    CONTAINER = "container"
    SERVICE_MANAGER = "service_manager"
    SUPERVISOR = "supervisor"
    CRON = "cron"
    SHELL = "shell"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class Source:
    """Inferred origin of a process."""

    kind: SourceKind
    name: str
    confidence: float  # 0.0 - 1.0

    @classmethod
    def unknown(cls) -> "Source":
        return cls(SourceKind.UNKNOWN, "", 0.0)


@dataclass(slots=True, frozen=True)
class ListeningSocket:
    """A socket in LISTEN state as reported by a socket table source."""

    address: str
    port: int
    handle: str  # inode on Linux, backend-specific key elsewhere
    pid: int | None = None  # set when the backend reports the owner directly


@dataclass(slots=True, frozen=True)
class Connection:
    """Any TCP/UDP socket, listening or connected."""

    protocol: str  # 'TCP' or 'UDP'
    local_address: str
    local_port: int
    remote_address: str
    remote_port: int
    state: str  # 'LISTEN', 'ESTABLISHED', ... ('' for UDP)
    pid: int | None = None


@dataclass(slots=True, frozen=True)
class Resolution:
    """A target resolved to exactly one PID."""

    target: Target
    pid: int
    bind_address: str | None = None


@dataclass(slots=True, frozen=True)
class Candidate:
    """One row of a disambiguation listing."""

    pid: int
    label: str  # 'service', 'manual', or a bind address
    description: str


@dataclass(slots=True, frozen=True)
class SocketState:
    """State of a socket on a queried port, with a human explanation."""

    port: int
    state: str
    local_address: str
    remote_address: str
    explanation: str
    workaround: str = ""
