"""Shared reporting for queries that match more than one live process."""

from typing import NoReturn

from pywitr.errors import AmbiguousTarget
from pywitr.models import Candidate, Target

SERVICE_LABEL = "service"
MANUAL_LABEL = "manual"


def candidate_order(candidate: Candidate) -> tuple[int, str, int]:
    """Service entries first, then by label, then by PID."""
    return (0 if candidate.label == SERVICE_LABEL else 1, candidate.label, candidate.pid)


def order_candidates(candidates: list[Candidate]) -> tuple[Candidate, ...]:
    """Deduplicate by PID (first occurrence wins) and sort deterministically."""
    seen: set[int] = set()
    unique: list[Candidate] = []
    for candidate in candidates:
        if candidate.pid in seen:
            continue
        seen.add(candidate.pid)
        unique.append(candidate)
    return tuple(sorted(unique, key=candidate_order))


def report_ambiguity(target: Target, candidates: list[Candidate]) -> NoReturn:
    """
    Terminate a resolution that matched several processes.

    Raises:
        AmbiguousTarget: always, with the ordered candidates.
        ValueError: if fewer than two distinct PIDs were given.
    """
    ordered = order_candidates(candidates)
    if len(ordered) < 2:
        raise ValueError("ambiguity needs at least two distinct PIDs")
    raise AmbiguousTarget(target, ordered)
