from __future__ import annotations

from uuid import uuid4

import pytest

from pathway_progress.core.errors import NotFoundError


def test_pathway_summary(harness) -> None:
    p = harness.pathway()
    a = harness.activity(p, "A", hint=1)
    b = harness.activity(p, "B", hint=2)
    done = harness.enroll(p)
    half = harness.enroll(p)
    harness.enroll(p)
    harness.complete(done, a)
    harness.complete(done, b)
    harness.complete(half, a)

    summary = harness.reporting.pathway_summary(p.id)

    assert summary.enrollment_count == 3
    assert summary.complete_count == 1
    assert summary.average_rollup_percent == 50.0
    assert [(c.title, c.completed) for c in summary.activities] == [("A", 2), ("B", 1)]


def test_summary_ignores_enrollments_working_elsewhere(harness) -> None:
    p, other = harness.pathway("P"), harness.pathway("Other")
    harness.activity(p, "A")
    e = harness.enroll(other)
    harness.clock.advance(seconds=1)
    harness.assignments.assign_pathway(e.id, p.id)

    assert harness.reporting.pathway_summary(p.id).enrollment_count == 0
    assert harness.reporting.pathway_summary(other.id).enrollment_count == 1


def test_empty_pathway_summary(harness) -> None:
    p = harness.pathway()
    summary = harness.reporting.pathway_summary(p.id)
    assert summary.enrollment_count == 0
    assert summary.average_rollup_percent == 0.0
    assert summary.activities == ()


def test_summary_unknown_pathway(harness) -> None:
    with pytest.raises(NotFoundError):
        harness.reporting.pathway_summary(uuid4())
