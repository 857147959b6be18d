"""Tie resolution, ancestry and classification together into one report."""

import logging
from dataclasses import dataclass, field

from pywitr.ancestry import children, restart_count, walk
from pywitr.backends import Sources
from pywitr.classify import LauncherTables, classify, default_tables
from pywitr.errors import SourceUnavailable
from pywitr.models import (
    Connection,
    ProcessRecord,
    Resolution,
    SocketState,
    Source,
    SourceKind,
    Target,
    TargetKind,
)
from pywitr.target import TargetResolver

logger = logging.getLogger(__name__)

WILDCARD_ADDRESSES = frozenset({"0.0.0.0", "::", "*", ""})

# state -> (explanation, workaround)
STATE_EXPLANATIONS = {
    "LISTEN": ("Actively listening for connections", ""),
    "TIME_WAIT": (
        "Connection closed, waiting for delayed packets",
        "Wait for the timeout to expire, or use SO_REUSEADDR in your server",
    ),
    "CLOSE_WAIT": (
        "Remote side closed connection, local side has not closed yet",
        "The application should call close() on the socket",
    ),
    "FIN_WAIT1": ("Local side initiated close, waiting for acknowledgment", ""),
    "FIN_WAIT2": ("Local close acknowledged, waiting for remote close", ""),
    "ESTABLISHED": ("Active connection", ""),
    "SYN_SENT": ("Connection request sent, waiting for response", ""),
    "SYN_RECV": ("Connection request received, sending acknowledgment", ""),
    "CLOSING": ("Both sides initiated close simultaneously", ""),
    "LAST_ACK": ("Waiting for final acknowledgment of close", ""),
}
# lsof spells a few states differently
STATE_ALIASES = {"FIN_WAIT_1": "FIN_WAIT1", "FIN_WAIT_2": "FIN_WAIT2", "SYN_RECEIVED": "SYN_RECV"}


@dataclass(slots=True, frozen=True)
class Report:
    """Everything known about one resolved process."""

    target: Target
    resolution: Resolution
    process: ProcessRecord
    ancestry: list[ProcessRecord]
    source: Source
    restart_count: int = 0
    children: list[ProcessRecord] = field(default_factory=list)
    listening: list[str] = field(default_factory=list)  # 'address:port'
    established: int = 0
    socket_states: list[SocketState] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def describe_state(port: int, conn: Connection) -> SocketState:
    state = STATE_ALIASES.get(conn.state, conn.state)
    explanation, workaround = STATE_EXPLANATIONS.get(state, (f"Socket in {state} state", ""))
    remote = f"{conn.remote_address}:{conn.remote_port}" if conn.remote_address else ""
    return SocketState(
        port=port,
        state=state,
        local_address=f"{conn.local_address}:{conn.local_port}",
        remote_address=remote,
        explanation=explanation,
        workaround=workaround,
    )


def list_connections(sources: Sources) -> list[Connection]:
    """Connections from the first socket source that answers, or [] if none does."""
    for source in sources.sockets:
        try:
            return source.list_connections()
        except SourceUnavailable as exc:
            logger.debug("connections unavailable from %s: %s", source.name, exc.reason)
    return []


def socket_states_for_port(port: int, connections: list[Connection]) -> list[SocketState]:
    return [
        describe_state(port, c)
        for c in connections
        if c.protocol == "TCP" and c.local_port == port and c.state
    ]


def build_warnings(
    process: ProcessRecord, source: Source, listening: list[str], restarts: int
) -> list[str]:
    warnings: list[str] = []
    if process.username == "root":
        warnings.append("Process is running as root")
    if process.state == "zombie":
        warnings.append("Process is a zombie (exited, not yet reaped by its parent)")
    elif process.state == "stopped":
        warnings.append("Process is stopped")
    for addr in listening:
        host = addr.rpartition(":")[0]
        if host in WILDCARD_ADDRESSES:
            warnings.append(f"Process is listening on all interfaces ({addr})")
    if restarts:
        warnings.append(f"Process or its ancestors were restarted {restarts} time(s)")
    if source.kind is SourceKind.UNKNOWN:
        warnings.append("No known launcher detected; origin is unknown")
    return warnings


def explain_pid(
    resolution: Resolution, sources: Sources, tables: LauncherTables | None = None
) -> Report:
    """Walk, classify and gather context for an already-resolved PID."""
    tables = tables or default_tables()
    chain = walk(resolution.pid, sources.processes)
    process = chain[-1]
    source = classify(chain, tables)
    restarts = restart_count(chain)

    connections = list_connections(sources)
    listening = sorted(
        {
            f"{c.local_address}:{c.local_port}"
            for c in connections
            if c.pid == process.pid and c.state == "LISTEN"
        }
    )
    established = sum(1 for c in connections if c.pid == process.pid and c.state == "ESTABLISHED")
    states: list[SocketState] = []
    if resolution.target.kind is TargetKind.PORT:
        states = socket_states_for_port(int(resolution.target.value), connections)

    return Report(
        target=resolution.target,
        resolution=resolution,
        process=process,
        ancestry=chain,
        source=source,
        restart_count=restarts,
        children=children(process.pid, sources.processes),
        listening=listening,
        established=established,
        socket_states=states,
        warnings=build_warnings(process, source, listening, restarts),
    )


def explain(target: Target, sources: Sources, tables: LauncherTables | None = None) -> Report:
    """
    Resolve a target and explain where the process came from.

    Raises:
        TargetNotFound, AmbiguousTarget, OwnerNotDetected, InvalidTarget:
            Propagated from resolution or from the root ancestry lookup.
    """
    tables = tables or default_tables()
    resolution = TargetResolver(sources, tables).resolve(target)
    return explain_pid(resolution, sources, tables)
