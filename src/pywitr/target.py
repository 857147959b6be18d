"""Turn a user query (PID, port or name) into exactly one PID."""

import logging
import os
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor

from pywitr.ambiguity import MANUAL_LABEL, SERVICE_LABEL, report_ambiguity
from pywitr.backends import Sources
from pywitr.classify import LauncherTables, default_tables
from pywitr.errors import InvalidTarget, OwnerNotDetected, SourceUnavailable, TargetNotFound
from pywitr.models import (
    Candidate,
    ListeningSocket,
    ProcessRecord,
    Resolution,
    Target,
    TargetKind,
)
from pywitr.sources import SocketTableSource

logger = logging.getLogger(__name__)

MAX_PORT = 65535


def parse_positive(value: str, what: str, upper: int | None = None) -> int:
    """Parse a strictly positive integer, raising InvalidTarget otherwise."""
    try:
        number = int(value.strip())
    except ValueError:
        raise InvalidTarget(f"{what} must be a positive integer, got {value!r}") from None
    if number <= 0 or (upper is not None and number > upper):
        bound = f" between 1 and {upper}" if upper is not None else " greater than 0"
        raise InvalidTarget(f"{what} must be{bound}, got {number}")
    return number


class TargetResolver:
    """
    Resolves a Target against the process, socket and service sources.

    Resolution either returns a single Resolution or raises one of
    TargetNotFound, AmbiguousTarget, OwnerNotDetected or InvalidTarget.
    Multiple live candidates are never narrowed down silently.
    """

    def __init__(
        self,
        sources: Sources,
        tables: LauncherTables | None = None,
        exclude_pids: tuple[int, ...] | None = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            sources: Collaborators to query.
            tables: Launcher tables (for the text-filter exclusions).
            exclude_pids: PIDs never matched by name. Defaults to our own PID and parent.
        """
        self._sources = sources
        self._tables = tables or default_tables()
        if exclude_pids is None:
            exclude_pids = (os.getpid(), os.getppid())
        self._exclude = frozenset(exclude_pids)

    def resolve(self, target: Target) -> Resolution:
        """
        Resolve a target to exactly one PID.

        Args:
            target: The PID, port or name to look up.

        Returns:
            The resolution, with the bind address for port targets.
        """
        handlers = {
            TargetKind.PID: self._resolve_pid,
            TargetKind.PORT: self._resolve_port,
            TargetKind.NAME: self._resolve_name,
        }
        return handlers[target.kind](target)

    def _describe(self, pid: int) -> str:
        """Command line of a candidate, or a marker if it has exited."""
        try:
            return self._sources.processes.read_process(pid).cmdline
        except TargetNotFound:
            return "(exited)"

    # PID

    def _resolve_pid(self, target: Target) -> Resolution:
        """Accept a PID only if the process table can read it."""
        pid = parse_positive(target.value, "pid")
        try:
            self._sources.processes.read_process(pid)
        except TargetNotFound as exc:
            raise TargetNotFound(target, f"no process with pid {pid}") from exc
        return Resolution(target=target, pid=pid)

    # Port

    def _listening_sockets(self, target: Target) -> tuple[SocketTableSource, list[ListeningSocket]]:
        """Query socket sources in order, falling back while they are unavailable."""
        failures: list[str] = []
        for source in self._sources.sockets:
            try:
                sockets = source.list_listening_sockets()
            except SourceUnavailable as exc:
                logger.info("socket source %s unavailable (%s), trying next", source.name, exc.reason)
                failures.append(str(exc))
                continue
            return source, sockets
        raise TargetNotFound(
            target,
            "no socket source could be queried: " + ("; ".join(failures) or "none configured"),
        )

    def _owners_by_handle(
        self, source: SocketTableSource, handles: set[str]
    ) -> dict[str, set[int]]:
        """Cross-reference socket handles against every process's open handles."""
        owners: dict[str, set[int]] = defaultdict(set)
        for record in self._sources.processes.list_processes():
            for handle in source.list_open_handles(record.pid):
                if handle in handles:
                    owners[handle].add(record.pid)
        return owners

    def _resolve_port(self, target: Target) -> Resolution:
        """
        Resolve the owner of a listening port.

        Each bind address is represented by its smallest owning PID; the
        port is ambiguous only if those representatives differ.
        """
        port = parse_positive(target.value, "port", upper=MAX_PORT)
        source, sockets = self._listening_sockets(target)
        matching = [s for s in sockets if s.port == port]
        if not matching:
            raise TargetNotFound(target, f"no process listening on port {port}")

        unowned = {s.handle for s in matching if s.pid is None}
        handle_owners = self._owners_by_handle(source, unowned) if unowned else {}

        by_address: dict[str, set[int]] = defaultdict(set)
        for sock in matching:
            pids = {sock.pid} if sock.pid is not None else handle_owners.get(sock.handle, set())
            by_address[sock.address].update(pids)

        # Forked workers share the listener and get larger PIDs than the parent
        representatives = {addr: min(pids) for addr, pids in by_address.items() if pids}
        if not representatives:
            raise OwnerNotDetected(port)
        for addr in sorted(set(by_address) - set(representatives)):
            logger.warning("port %d on %s has no detectable owner", port, addr)

        if len(set(representatives.values())) == 1:
            address = sorted(representatives)[0]
            return Resolution(target=target, pid=representatives[address], bind_address=address)

        report_ambiguity(
            target,
            [
                Candidate(pid=pid, label=addr, description=self._describe(pid))
                for addr, pid in sorted(representatives.items())
            ],
        )

    # Name

    def _is_text_filter(self, record: ProcessRecord) -> bool:
        """Check whether a process is a text search tool such as grep."""
        return record.command.lower() in self._tables.text_filters

    def _name_matches(self, record: ProcessRecord, query: str) -> bool:
        """Case-insensitive substring match on command name or command line."""
        if record.pid in self._exclude or query == str(record.pid):
            return False
        if self._is_text_filter(record):
            return False
        return query in record.command.lower() or query in record.cmdline.lower()

    def _service_pid(self, name: str) -> int | None:
        """Main PID of a service with this name, or None."""
        try:
            return self._sources.services.find_service_main_pid(name)
        except SourceUnavailable as exc:
            logger.debug("service manager %s unavailable: %s", exc.source, exc.reason)
            return None

    def _resolve_name(self, target: Target) -> Resolution:
        """Match processes and services by name; service candidates are listed first."""
        query = target.value.strip()
        if not query:
            raise InvalidTarget("process name must not be empty")

        with ThreadPoolExecutor(max_workers=2) as pool:
            records_future = pool.submit(self._sources.processes.list_processes)
            service_future = pool.submit(self._service_pid, query)
            records = records_future.result()
            service_pid = service_future.result()

        lowered = query.lower()
        matches = {r.pid: r for r in records if self._name_matches(r, lowered)}

        candidates: list[Candidate] = []
        if service_pid is not None:
            record = matches.get(service_pid)
            description = record.cmdline if record else self._describe(service_pid)
            candidates.append(Candidate(service_pid, SERVICE_LABEL, description))
        for pid, record in sorted(matches.items()):
            if pid != service_pid:
                candidates.append(Candidate(pid, MANUAL_LABEL, record.cmdline))

        if not candidates:
            raise TargetNotFound(target, f"no running process or service named {query!r}")
        if len(candidates) == 1:
            return Resolution(target=target, pid=candidates[0].pid)
        report_ambiguity(target, candidates)
