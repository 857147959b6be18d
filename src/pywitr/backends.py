"""Per-platform selection of source implementations."""

import sys
from dataclasses import dataclass

from pywitr.config import Settings
from pywitr.services import LaunchdServiceManager, NullServiceManager, SystemdServiceManager
from pywitr.sockets import LsofSocketTable, ProcfsSocketTable, PsutilSocketTable
from pywitr.sources import (
    ProcessTableSource,
    PsutilProcessTable,
    ServiceManagerSource,
    SocketTableSource,
)


@dataclass(slots=True, frozen=True)
class Sources:
    """The three collaborators the core consumes."""

    processes: ProcessTableSource
    sockets: tuple[SocketTableSource, ...]  # primary first, then fallbacks
    services: ServiceManagerSource


def default_sources(settings: Settings | None = None, platform: str | None = None) -> Sources:
    """
    Pick source implementations for a platform.

    Args:
        settings: Timeouts and procfs root. Defaults to Settings.from_env().
        platform: sys.platform-style name. Defaults to the running platform.
    """
    settings = settings or Settings.from_env()
    platform = platform or sys.platform

    if platform.startswith("linux"):
        return Sources(
            processes=PsutilProcessTable(proc_root=settings.proc_root),
            sockets=(
                ProcfsSocketTable(settings.proc_root),
                PsutilSocketTable(),
                LsofSocketTable(settings.timeout),
            ),
            services=SystemdServiceManager(settings.timeout),
        )
    if platform == "darwin":
        return Sources(
            processes=PsutilProcessTable(),
            sockets=(LsofSocketTable(settings.timeout), PsutilSocketTable()),
            services=LaunchdServiceManager(settings.timeout),
        )
    return Sources(
        processes=PsutilProcessTable(),
        sockets=(PsutilSocketTable(), LsofSocketTable(settings.timeout)),
        services=NullServiceManager(),
    )
