from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

from pathway_progress.models.override import ActivityOverride
from pathway_progress.models.progress import ActivityState
from pathway_progress.services.drip import DripEvaluation
from pathway_progress.services.overrides import DEFER, resolve_override
from pathway_progress.services.prerequisites import PrerequisiteResult
from pathway_progress.services.unlock import combine_gates, next_status

NOW = 1_767_225_600
OPEN = PrerequisiteResult(satisfied=True)
CLOSED = PrerequisiteResult(satisfied=False)
DRIP_OPEN = DripEvaluation(satisfied=True)
DRIP_CLOSED = DripEvaluation(satisfied=False, next_available_at=NOW + 10)


def _override(type: str, expires_at: int | None = None) -> ActivityOverride:
    return ActivityOverride.new(
        enrollment_id=uuid4(),
        activity_id=uuid4(),
        type=type,
        created_at=NOW,
        expires_at=expires_at,
    )


def _state(status: str, percent: int = 0) -> ActivityState:
    return ActivityState(
        enrollment_id=uuid4(), activity_id=uuid4(), status=status, completion_percent=percent
    )


# ---- combine_gates: most restrictive wins ----


def test_both_gates_must_hold_without_override() -> None:
    assert combine_gates(OPEN, DRIP_OPEN, DEFER, NOW)
    assert not combine_gates(CLOSED, DRIP_OPEN, DEFER, NOW)
    assert not combine_gates(OPEN, DRIP_CLOSED, DEFER, NOW)


def test_permanent_override_bypasses_gates() -> None:
    for type in ("exempt", "manual_unlock"):
        decision = resolve_override(_override(type))
        assert decision.kind == "force_unlocked_permanent"
        assert combine_gates(CLOSED, DRIP_CLOSED, decision, NOW)


def test_grace_override_only_until_expiry() -> None:
    decision = resolve_override(_override("grace_unlock", expires_at=NOW + 100))
    assert decision.kind == "force_unlocked_until"
    assert combine_gates(CLOSED, DRIP_CLOSED, decision, NOW + 99)
    assert not combine_gates(CLOSED, DRIP_CLOSED, decision, NOW + 100)
    # After expiry computed gating decides again
    assert combine_gates(OPEN, DRIP_OPEN, decision, NOW + 100)


def test_closed_override_defers() -> None:
    closed = _override("exempt")
    assert resolve_override(replace(closed, closed_at=NOW)) is DEFER
    assert resolve_override(None) is DEFER


# ---- next_status ----


def test_first_evaluation_creates_locked_or_not_started() -> None:
    assert next_status(None, False) == "locked"
    assert next_status(None, True) == "not_started"


def test_unlock_moves_locked_to_not_started() -> None:
    assert next_status(_state("locked"), True) == "not_started"


def test_unlock_resumes_progress_recorded_while_locked() -> None:
    assert next_status(_state("locked", percent=40), True) == "in_progress"


def test_started_activities_keep_status_while_unlocked() -> None:
    assert next_status(_state("not_started"), True) == "not_started"
    assert next_status(_state("in_progress", 30), True) == "in_progress"


def test_relock_from_non_terminal_states() -> None:
    assert next_status(_state("not_started"), False) == "locked"
    assert next_status(_state("in_progress", 30), False) == "locked"


def test_complete_is_terminal() -> None:
    assert next_status(_state("complete", 100), False) == "complete"
    assert next_status(_state("complete", 100), True) == "complete"
