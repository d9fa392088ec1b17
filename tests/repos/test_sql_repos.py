"""SQL repositories against an in-memory SQLite database."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from pathway_progress.core.errors import StateConflictError
from pathway_progress.db.engine import Base, make_session_factory
from pathway_progress.models.curriculum import (
    SECONDS_PER_DAY,
    Activity,
    ChildAssessmentRef,
    CourseRef,
    DelayAfterActivityDrip,
    FixedDateDrip,
    Pathway,
    PrerequisiteGroup,
    SelfAssessmentRef,
)
from pathway_progress.models.enrollment import Enrollment, PathwayAssignment
from pathway_progress.models.override import ActivityOverride
from pathway_progress.models.progress import ActivityState, CompletionRollup
from pathway_progress.repos.sql_curriculum_repo import SqlCurriculumRepo
from pathway_progress.repos.sql_state_store import SqlStateStore
from pathway_progress.services.assignment import AssignmentService
from pathway_progress.services.curriculum_service import CurriculumService, GroupSpec
from pathway_progress.services.engine import ProgressionEngine
from pathway_progress.services.events import StateChangeBus
from pathway_progress.services.locks import InMemoryEnrollmentLocks


@pytest.fixture
def session_factory():
    db_engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(db_engine)
    yield make_session_factory(db_engine)
    db_engine.dispose()


@pytest.fixture
def repo(session_factory) -> SqlCurriculumRepo:
    return SqlCurriculumRepo(session_factory)


@pytest.fixture
def store(session_factory) -> SqlStateStore:
    return SqlStateStore(session_factory)


@pytest.fixture
def pathway(repo) -> Pathway:
    p = Pathway.new(name="Lead Teacher Track", target_roles=("lead teacher",))
    repo.add_pathway(p)
    return p


def _activity(repo, pathway, title, config=None, hint=0) -> Activity:
    a = Activity.new(
        pathway_id=pathway.id,
        title=title,
        config=config or CourseRef(course_id=title),
        ordering_hint=hint,
    )
    repo.add_activity(a)
    return a


# ---------------------------------------------------------------------------
# SqlCurriculumRepo
# ---------------------------------------------------------------------------


def test_pathway_roundtrip(repo, pathway) -> None:
    assert repo.get_pathway(pathway.id) == pathway
    assert repo.list_pathways() == [pathway]
    assert repo.get_pathway(uuid4()) is None


def test_duplicate_pathway_rejected(repo, pathway) -> None:
    with pytest.raises(ValueError):
        repo.add_pathway(pathway)


def test_activity_config_survives_storage(repo, pathway) -> None:
    a = _activity(repo, pathway, "Pre", SelfAssessmentRef(instrument_id="TSA", phase="pre"))
    stored = repo.get_activity(a.id)
    assert stored == a
    assert isinstance(stored.config, SelfAssessmentRef)
    assert stored.config.phase == "pre"


def test_list_activities_filters_inactive_and_orders(repo, pathway) -> None:
    second = _activity(repo, pathway, "Second", hint=2)
    first = _activity(repo, pathway, "First", hint=1)
    gone = _activity(repo, pathway, "Gone", hint=0)
    repo.set_activity_active(gone.id, False)

    assert [a.id for a in repo.list_activities(pathway.id)] == [first.id, second.id]
    assert len(repo.list_activities(pathway.id, include_inactive=True)) == 3
    assert repo.set_activity_active(uuid4(), False) is None


def test_prerequisite_groups_replace(repo, pathway) -> None:
    a, b, c = (_activity(repo, pathway, t) for t in "ABC")
    repo.set_prerequisite_groups(
        c.id, [PrerequisiteGroup.new(activity_id=c.id, type="all_of", prerequisite_ids=[a.id])]
    )
    groups = [
        PrerequisiteGroup.new(
            activity_id=c.id, type="n_of_m", prerequisite_ids=[b.id, a.id], n_required=1
        ),
        PrerequisiteGroup.new(activity_id=c.id, type="any_of", prerequisite_ids=[b.id]),
    ]
    repo.set_prerequisite_groups(c.id, groups)

    assert repo.list_prerequisite_groups(c.id) == groups
    repo.set_prerequisite_groups(c.id, [])
    assert repo.list_prerequisite_groups(c.id) == []


def test_drip_rules(repo, pathway) -> None:
    a, b = _activity(repo, pathway, "A"), _activity(repo, pathway, "B")
    fixed = FixedDateDrip(activity_id=a.id, release_at=1_800_000_000)
    delay = DelayAfterActivityDrip(activity_id=b.id, anchor_activity_id=a.id, delay_days=90)
    repo.set_drip_rule(a.id, fixed)
    repo.set_drip_rule(b.id, delay)

    assert repo.get_drip_rule(a.id) == fixed
    assert repo.get_drip_rule(b.id) == delay

    repo.set_drip_rule(a.id, None)
    assert repo.get_drip_rule(a.id) is None


def test_enrollments_and_assignments(repo, pathway) -> None:
    user_id = uuid4()
    e = Enrollment.new(user_id=user_id, roles=("lead teacher",))
    repo.add_enrollment(e)
    assignment = PathwayAssignment(
        enrollment_id=e.id, pathway_id=pathway.id, assignment_type="explicit", assigned_at=5
    )
    repo.add_assignment(assignment)

    assert repo.get_enrollment(e.id) == e
    assert repo.list_enrollments_for_user(user_id) == [e]
    assert repo.list_assignments(e.id) == [assignment]
    assert repo.list_assignments_for_pathway(pathway.id) == [assignment]
    with pytest.raises(ValueError):
        repo.add_assignment(assignment)

    assert repo.remove_assignment(e.id, pathway.id) is True
    assert repo.remove_assignment(e.id, pathway.id) is False
    assert repo.list_assignments(e.id) == []


# ---------------------------------------------------------------------------
# SqlStateStore
# ---------------------------------------------------------------------------


def test_state_upsert(store) -> None:
    eid, aid = uuid4(), uuid4()
    store.upsert_state(ActivityState(enrollment_id=eid, activity_id=aid))
    store.upsert_state(
        ActivityState(
            enrollment_id=eid, activity_id=aid, status="in_progress", completion_percent=20
        )
    )

    (state,) = store.list_states(eid)
    assert state.status == "in_progress"
    assert state.completion_percent == 20
    assert store.get_state(eid, uuid4()) is None


def test_state_complete_is_terminal(store) -> None:
    eid, aid = uuid4(), uuid4()
    done = ActivityState(
        enrollment_id=eid,
        activity_id=aid,
        status="complete",
        completion_percent=100,
        completed_at=7,
    )
    store.upsert_state(done)

    with pytest.raises(StateConflictError):
        store.upsert_state(ActivityState(enrollment_id=eid, activity_id=aid))

    assert store.get_state(eid, aid) == done


def test_override_lifecycle(store) -> None:
    eid, aid = uuid4(), uuid4()
    grace = ActivityOverride.new(
        enrollment_id=eid, activity_id=aid, type="grace_unlock", created_at=1, expires_at=50
    )
    exempt = ActivityOverride.new(
        enrollment_id=eid, activity_id=aid, type="exempt", created_at=2, reason="transfer"
    )

    assert store.add_override(grace) is None
    superseded = store.add_override(exempt)

    assert superseded.id == grace.id
    assert superseded.closed_at == 2
    assert store.get_active_override(eid, aid) == exempt
    assert store.close_override(eid, aid, 3).id == exempt.id
    assert store.get_active_override(eid, aid) is None
    assert [o.closed_at for o in store.list_overrides(eid, aid)] == [2, 3]


def test_rollup_upsert(store) -> None:
    eid = uuid4()
    store.upsert_rollup(CompletionRollup(eid, None, 0.0, "not_started", 1))
    updated = CompletionRollup(eid, uuid4(), 57.14, "in_progress", 2)
    store.upsert_rollup(updated)

    assert store.get_rollup(eid) == updated
    assert store.list_rollups([eid]) == [updated]
    assert store.list_rollups([]) == []


# ---------------------------------------------------------------------------
# Engine over SQL storage
# ---------------------------------------------------------------------------


def test_engine_runs_on_sql_storage(repo, store) -> None:
    now = [1_767_225_600]
    clock = lambda: now[0]  # noqa: E731
    bus = StateChangeBus()
    engine = ProgressionEngine(repo, store, bus, InMemoryEnrollmentLocks(), clock=clock)
    admin = CurriculumService(repo, bus)
    assignments = AssignmentService(repo, bus, clock)

    p = admin.create_pathway("Lead Teacher Track")
    ld = admin.add_activity(p.id, "LD", CourseRef(course_id="LD"), weight=2, ordering_hint=1)
    kids = admin.add_activity(
        p.id, "Children", ChildAssessmentRef(instrument_id="CA"), ordering_hint=2
    )
    admin.set_prerequisites(kids.id, [GroupSpec("all_of", [ld.id])])
    admin.set_drip_rule(
        kids.id,
        DelayAfterActivityDrip(activity_id=kids.id, anchor_activity_id=ld.id, delay_days=1),
    )
    e = admin.create_enrollment(uuid4())
    assignments.assign_pathway(e.id, p.id)

    engine.record_progress(e.id, ld.id, 100)
    assert store.get_state(e.id, kids.id).status == "locked"
    assert engine.get_rollup(e.id).rollup_percent == pytest.approx(66.67)

    now[0] += SECONDS_PER_DAY
    engine.recompute(e.id)

    assert store.get_state(e.id, kids.id).status == "not_started"
