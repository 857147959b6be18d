"""Tests for shared ambiguity reporting."""

import pytest

from pywitr.ambiguity import order_candidates, report_ambiguity
from pywitr.errors import AmbiguousTarget
from pywitr.models import Candidate, Target, TargetKind

TARGET = Target(TargetKind.NAME, "redis")


def test_service_entries_first():
    ordered = order_candidates(
        [
            Candidate(12, "manual", "redis-server *:6380"),
            Candidate(30, "service", "redis-server 127.0.0.1:6379"),
            Candidate(5, "manual", "redis-cli monitor"),
        ]
    )
    assert [(c.pid, c.label) for c in ordered] == [(30, "service"), (5, "manual"), (12, "manual")]


def test_duplicate_pids_collapse_to_first():
    ordered = order_candidates(
        [Candidate(7, "service", "a"), Candidate(7, "manual", "b"), Candidate(9, "manual", "c")]
    )
    assert [(c.pid, c.label) for c in ordered] == [(7, "service"), (9, "manual")]


def test_order_is_independent_of_input_order():
    candidates = [Candidate(2, "::", "x"), Candidate(1, "0.0.0.0", "y"), Candidate(3, "manual", "z")]
    assert order_candidates(candidates) == order_candidates(list(reversed(candidates)))


def test_report_raises_with_listing():
    with pytest.raises(AmbiguousTarget) as excinfo:
        report_ambiguity(TARGET, [Candidate(2, "manual", "b"), Candidate(1, "service", "a")])

    assert excinfo.value.target == TARGET
    assert excinfo.value.listing() == [
        "[1] PID 1   service   a",
        "[2] PID 2   manual   b",
    ]


def test_report_needs_two_distinct_pids():
    with pytest.raises(ValueError):
        report_ambiguity(TARGET, [Candidate(1, "service", "a"), Candidate(1, "manual", "a")])
