"""Ancestry reconstruction: walk a process's parent chain up to the tree root."""

import logging
from collections import deque

from pywitr.errors import TargetNotFound
from pywitr.models import ProcessRecord
from pywitr.sources import ProcessTableSource

logger = logging.getLogger(__name__)


def walk(pid: int, processes: ProcessTableSource) -> list[ProcessRecord]:
    """
    Build the root-first ancestry chain ending at `pid`.

    The walk stops at PID 1, at a PPID of 0, on a PID already seen (cycle),
    or when an ancestor exits mid-walk; in each case the chain built so far
    is returned.

    Raises:
        TargetNotFound: If `pid` itself cannot be read.
    """
    chain: deque[ProcessRecord] = deque()
    visited: set[int] = set()
    current = pid

    while current > 0 and current not in visited:
        visited.add(current)
        try:
            record = processes.read_process(current)
        except TargetNotFound:
            if not chain:
                raise TargetNotFound(None, f"no process ancestry found for pid {pid}") from None
            logger.debug("ancestor %d of pid %d exited mid-walk", current, pid)
            break

        chain.appendleft(record)
        if record.pid == 1 or record.ppid == 0:
            break
        current = record.ppid

    if not chain:
        raise TargetNotFound(None, f"no process ancestry found for pid {pid}")
    return list(chain)


def restart_count(chain: list[ProcessRecord]) -> int:
    """Count consecutive ancestry entries that repeat the previous command."""
    count = 0
    for parent, child in zip(chain, chain[1:]):
        if parent.command == child.command:
            count += 1
    return count


def children(pid: int, processes: ProcessTableSource) -> list[ProcessRecord]:
    """Direct children of `pid`, ordered by PID."""
    return sorted(
        (r for r in processes.list_processes() if r.ppid == pid and r.pid != pid),
        key=lambda r: r.pid,
    )
