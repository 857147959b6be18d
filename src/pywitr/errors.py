"""Exception taxonomy for target resolution."""

from pywitr.models import Candidate, Target


class WitrError(Exception):
    """Base class for every error pywitr reports to the caller."""


class InvalidTarget(WitrError, ValueError):
    """The target value cannot be interpreted (e.g. a non-numeric PID)."""


class TargetNotFound(WitrError):
    """No process matched the query."""

    def __init__(self, target: Target | None, reason: str) -> None:
        super().__init__(reason)
        self.target = target
        self.reason = reason


class AmbiguousTarget(WitrError):
    """
    The query matched two or more live processes.

    Never resolved automatically: the caller must retry with an explicit PID.
    """

    def __init__(self, target: Target, candidates: tuple[Candidate, ...]) -> None:
        super().__init__(f"ambiguous target {target.value!r}: {len(candidates)} candidates")
        self.target = target
        self.candidates = candidates

    @property
    def pids(self) -> list[int]:
        return [c.pid for c in self.candidates]

    def listing(self) -> list[str]:
        """Numbered disambiguation lines in candidate order."""
        return [
            f"[{i}] PID {c.pid}   {c.label}   {c.description}"
            for i, c in enumerate(self.candidates, start=1)
        ]


class OwnerNotDetected(WitrError):
    """A listening socket exists but its owning process could not be attributed."""

    def __init__(self, port: int) -> None:
        super().__init__(f"socket found on port {port} but owning process not detected")
        self.port = port


class SourceUnavailable(WitrError):
    """An external source (tool, procfs file, API) could not be queried at all."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason
