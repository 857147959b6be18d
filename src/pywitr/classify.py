"""
Origin classification: infer what launched a process from its ancestry.

Detectors run in a fixed precedence, most specific first. Each one looks at
the whole root-first chain and either returns a Source or None; the first
Source wins. The name tables the detectors consult live in launchers.toml.
"""

import tomllib
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

from pywitr.models import ProcessRecord, Source, SourceKind

CONTAINER_CONFIDENCE = 0.9
SERVICE_MANAGER_CONFIDENCE = 0.8
CRON_CONFIDENCE = 0.8
DEDICATED_SUPERVISOR_CONFIDENCE = 0.9
SUPERVISOR_CONFIDENCE = 0.7
SHELL_CONFIDENCE = 0.5

INIT_LABEL = "init"

DEFAULT_TABLES_PATH = Path(__file__).with_name("launchers.toml")


def _lowered(table: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType({k.lower(): v for k, v in table.items()})


@dataclass(slots=True, frozen=True)
class LauncherTables:
    """Name tables for shells, supervisors, container runtimes and friends."""

    shells: frozenset[str] = frozenset()
    text_filters: frozenset[str] = frozenset()
    supervisors: Mapping[str, str] = field(default_factory=dict)
    dedicated_supervisors: Mapping[str, str] = field(default_factory=dict)
    containers: Mapping[str, str] = field(default_factory=dict)
    service_managers: Mapping[str, str] = field(default_factory=dict)
    schedulers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping) -> "LauncherTables":
        """Build tables from parsed TOML, lowercasing every name."""
        return cls(
            shells=frozenset(s.lower() for s in data.get("shells", [])),
            text_filters=frozenset(s.lower() for s in data.get("text_filters", [])),
            supervisors=_lowered(data.get("supervisors", {})),
            dedicated_supervisors=_lowered(data.get("dedicated_supervisors", {})),
            containers=_lowered(data.get("containers", {})),
            service_managers=_lowered(data.get("service_managers", {})),
            schedulers=_lowered(data.get("schedulers", {})),
        )


def load_tables(path: Path | None = None) -> LauncherTables:
    """
    Load launcher tables from a TOML file.

    Args:
        path: File to read. Defaults to the launchers.toml shipped with pywitr.

    Raises:
        OSError: If the file cannot be read.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
    """
    path = Path(path) if path is not None else DEFAULT_TABLES_PATH
    raw = path.read_text(encoding="utf-8")
    return LauncherTables.from_dict(tomllib.loads(raw))


@lru_cache(maxsize=1)
def default_tables() -> LauncherTables:
    return load_tables()


def _argv_names(cmdline: str) -> set[str]:
    """Basenames of every whitespace-separated token of a command line."""
    return {token.rsplit("/", 1)[-1].lower() for token in cmdline.split()}


def detect_container(chain: Sequence[ProcessRecord], tables: LauncherTables) -> Source | None:
    for record in chain:
        name = record.command.lower()
        for runtime, label in tables.containers.items():
            if name == runtime or name.startswith((f"{runtime}-", f"{runtime}:")):
                return Source(SourceKind.CONTAINER, label, CONTAINER_CONFIDENCE)
        if record.container:
            return Source(SourceKind.CONTAINER, record.container, CONTAINER_CONFIDENCE)
    return None


def detect_service_manager(
    chain: Sequence[ProcessRecord], tables: LauncherTables
) -> Source | None:
    """A process whose direct parent is the service manager was started as a unit."""
    if len(chain) < 2:
        return None
    label = tables.service_managers.get(chain[-2].command.lower())
    if label is None:
        return None
    return Source(SourceKind.SERVICE_MANAGER, label, SERVICE_MANAGER_CONFIDENCE)


def detect_cron(chain: Sequence[ProcessRecord], tables: LauncherTables) -> Source | None:
    for record in chain:
        label = tables.schedulers.get(record.command.lower())
        if label is not None:
            return Source(SourceKind.CRON, label, CRON_CONFIDENCE)
    return None


def detect_supervisor(chain: Sequence[ProcessRecord], tables: LauncherTables) -> Source | None:
    """
    Root-first scan for a known supervisor.

    An "init" hit is skipped when a shell is anywhere in the chain, so
    processes started from a terminal are not attributed to the tree root.
    """
    has_shell = any(r.command.lower() in tables.shells for r in chain)

    for record in chain:
        name = record.command.lower().replace(" ", "")
        cmdline = record.cmdline.lower().replace(" ", "")
        for needle, label in tables.dedicated_supervisors.items():
            if needle in name or needle in cmdline:
                return Source(SourceKind.SUPERVISOR, label, DEDICATED_SUPERVISOR_CONFIDENCE)

        label = tables.supervisors.get(record.command.lower())
        if label is not None and not (label == INIT_LABEL and has_shell):
            return Source(SourceKind.SUPERVISOR, label, SUPERVISOR_CONFIDENCE)

        argv = _argv_names(record.cmdline)
        for supervisor, label in tables.supervisors.items():
            if supervisor in argv and not (label == INIT_LABEL and has_shell):
                return Source(SourceKind.SUPERVISOR, label, SUPERVISOR_CONFIDENCE)
    return None


def detect_shell(chain: Sequence[ProcessRecord], tables: LauncherTables) -> Source | None:
    """The nearest shell to the target is the one that launched it."""
    for record in reversed(chain):
        if record.command.lower() in tables.shells:
            return Source(SourceKind.SHELL, record.command, SHELL_CONFIDENCE)
    return None


Detector = Callable[[Sequence[ProcessRecord], LauncherTables], Source | None]

DETECTORS: tuple[Detector, ...] = (
    detect_container,
    detect_service_manager,
    detect_cron,
    detect_supervisor,
    detect_shell,
)


def classify(chain: Sequence[ProcessRecord], tables: LauncherTables | None = None) -> Source:
    """Return the first detector's verdict, or an Unknown source with zero confidence."""
    tables = tables or default_tables()
    for detector in DETECTORS:
        source = detector(chain, tables)
        if source is not None:
            return source
    return Source.unknown()
