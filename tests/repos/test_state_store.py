from __future__ import annotations

from uuid import uuid4

import pytest

from pathway_progress.core.errors import StateConflictError
from pathway_progress.models.override import ActivityOverride
from pathway_progress.models.progress import ActivityState, CompletionRollup
from pathway_progress.repos.state_store import InMemoryStateStore, guard_terminal


def _state(status="not_started", percent=0, eid=None, aid=None) -> ActivityState:
    return ActivityState(
        enrollment_id=eid or uuid4(),
        activity_id=aid or uuid4(),
        status=status,
        completion_percent=percent,
        completed_at=10 if status == "complete" else None,
    )


def test_guard_terminal_allows_forward_moves() -> None:
    guard_terminal(None, _state())
    guard_terminal(_state("in_progress"), _state("complete", 100))
    guard_terminal(_state("complete", 100), _state("complete", 100))


def test_guard_terminal_refuses_regression() -> None:
    with pytest.raises(StateConflictError) as excinfo:
        guard_terminal(_state("complete", 100), _state("in_progress", 40))
    assert excinfo.value.reason == "complete_is_terminal"


def test_upsert_is_last_writer_wins() -> None:
    store = InMemoryStateStore()
    eid, aid = uuid4(), uuid4()
    store.upsert_state(_state("not_started", eid=eid, aid=aid))
    store.upsert_state(_state("in_progress", 30, eid=eid, aid=aid))

    assert store.get_state(eid, aid).completion_percent == 30
    assert len(store.list_states(eid)) == 1


def test_upsert_keeps_complete_row() -> None:
    store = InMemoryStateStore()
    eid, aid = uuid4(), uuid4()
    store.upsert_state(_state("complete", 100, eid=eid, aid=aid))

    with pytest.raises(StateConflictError):
        store.upsert_state(_state("locked", eid=eid, aid=aid))

    assert store.get_state(eid, aid).status == "complete"


def test_overrides_supersede_and_close() -> None:
    store = InMemoryStateStore()
    eid, aid = uuid4(), uuid4()
    first = ActivityOverride.new(
        enrollment_id=eid, activity_id=aid, type="manual_unlock", created_at=1
    )
    second = ActivityOverride.new(
        enrollment_id=eid, activity_id=aid, type="exempt", created_at=2
    )

    assert store.add_override(first) is None
    superseded = store.add_override(second)

    assert superseded.id == first.id
    assert superseded.closed_at == 2
    assert store.get_active_override(eid, aid).id == second.id

    closed = store.close_override(eid, aid, 3)
    assert closed.id == second.id
    assert store.get_active_override(eid, aid) is None
    assert store.close_override(eid, aid, 4) is None
    assert [o.closed_at for o in store.list_overrides(eid, aid)] == [2, 3]


def test_rollups() -> None:
    store = InMemoryStateStore()
    eid = uuid4()
    store.upsert_rollup(CompletionRollup(eid, None, 0.0, "not_started", 1))
    store.upsert_rollup(CompletionRollup(eid, None, 25.0, "in_progress", 2))

    assert store.get_rollup(eid).rollup_percent == 25.0
    assert store.list_rollups([eid, uuid4()]) == [store.get_rollup(eid)]
