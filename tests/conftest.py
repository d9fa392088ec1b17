from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import pathway_progress` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pathway_progress.api.dependencies import reset_in_memory_state  # noqa: E402
from pathway_progress.main import app  # noqa: E402
from pathway_progress.models.curriculum import (  # noqa: E402
    SECONDS_PER_DAY,
    Activity,
    ActivityConfig,
    CourseRef,
    Pathway,
)
from pathway_progress.models.enrollment import Enrollment  # noqa: E402
from pathway_progress.repos.curriculum_repo import InMemoryCurriculumRepo  # noqa: E402
from pathway_progress.repos.state_store import InMemoryStateStore  # noqa: E402
from pathway_progress.services.assignment import AssignmentService  # noqa: E402
from pathway_progress.services.curriculum_service import CurriculumService  # noqa: E402
from pathway_progress.services.engine import ProgressionEngine  # noqa: E402
from pathway_progress.services.events import StateChangeBus  # noqa: E402
from pathway_progress.services.locks import InMemoryEnrollmentLocks  # noqa: E402
from pathway_progress.services.overrides import OverrideService  # noqa: E402
from pathway_progress.services.reporting import ReportingService  # noqa: E402
from pathway_progress.services.signals import SignalRouter  # noqa: E402

T0 = 1_767_225_600  # 2026-01-01T00:00:00Z


@pytest.fixture(autouse=True)
def reset_service_state() -> None:
    """Clear the API's in-memory repos between tests."""
    reset_in_memory_state()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


class FixedClock:
    """Deterministic epoch-seconds clock; advance() moves it forward."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, *, days: int = 0, seconds: int = 0) -> None:
        self.now += days * SECONDS_PER_DAY + seconds


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@dataclass
class Harness:
    """Fully wired in-memory engine driven by a fixed clock."""

    clock: FixedClock
    curriculum: InMemoryCurriculumRepo
    store: InMemoryStateStore
    bus: StateChangeBus
    engine: ProgressionEngine
    admin: CurriculumService
    assignments: AssignmentService
    overrides: OverrideService
    signals: SignalRouter
    reporting: ReportingService

    def pathway(self, name: str = "Lead Teacher Track", roles: tuple[str, ...] = ()) -> Pathway:
        return self.admin.create_pathway(name, roles)

    def activity(
        self,
        pathway: Pathway,
        title: str,
        config: ActivityConfig | None = None,
        *,
        weight: float = 1.0,
        hint: int = 0,
    ) -> Activity:
        return self.admin.add_activity(
            pathway.id,
            title,
            config or CourseRef(course_id=title),
            weight=weight,
            ordering_hint=hint,
        )

    def enroll(
        self,
        pathway: Pathway | None = None,
        *,
        user_id: UUID | None = None,
        roles: tuple[str, ...] = (),
    ) -> Enrollment:
        enrollment = self.admin.create_enrollment(user_id or uuid4(), roles)
        if pathway is not None:
            self.assignments.assign_pathway(enrollment.id, pathway.id)
        return enrollment

    def status(self, enrollment: Enrollment, activity: Activity) -> str:
        state = self.store.get_state(enrollment.id, activity.id)
        return state.status if state is not None else "locked"

    def complete(self, enrollment: Enrollment, activity: Activity) -> None:
        self.engine.record_progress(enrollment.id, activity.id, 100)


@pytest.fixture
def harness(clock: FixedClock) -> Harness:
    curriculum = InMemoryCurriculumRepo()
    store = InMemoryStateStore()
    bus = StateChangeBus()
    engine = ProgressionEngine(
        curriculum, store, bus, InMemoryEnrollmentLocks(), clock=clock
    )
    return Harness(
        clock=clock,
        curriculum=curriculum,
        store=store,
        bus=bus,
        engine=engine,
        admin=CurriculumService(curriculum, bus),
        assignments=AssignmentService(curriculum, bus, clock),
        overrides=OverrideService(curriculum, store, bus, clock),
        signals=SignalRouter(curriculum, engine),
        reporting=ReportingService(curriculum, store),
    )
