"""Service wiring shared by the routers.

Repositories are chosen at import time, the same way db/engine.py picks
its engine: SQL-backed when DATABASE_URL is configured, in-memory
otherwise.  Recompute locks use Redis when REDIS_URL is configured.
"""

from __future__ import annotations

import logging

from pathway_progress.core.config import SETTINGS
from pathway_progress.db.engine import session_factory
from pathway_progress.db.redis import redis_client
from pathway_progress.repos.curriculum_repo import CurriculumRepo, InMemoryCurriculumRepo
from pathway_progress.repos.state_store import InMemoryStateStore, StateStore
from pathway_progress.services.assignment import AssignmentService
from pathway_progress.services.curriculum_service import CurriculumService
from pathway_progress.services.engine import ProgressionEngine
from pathway_progress.services.events import StateChangeBus
from pathway_progress.services.locks import (
    EnrollmentLocks,
    InMemoryEnrollmentLocks,
    RedisEnrollmentLocks,
)
from pathway_progress.services.overrides import OverrideService
from pathway_progress.services.reporting import ReportingService
from pathway_progress.services.signals import SignalRouter

logger = logging.getLogger(__name__)

curriculum_repo: CurriculumRepo
state_store: StateStore

if session_factory is not None:
    from pathway_progress.repos.sql_curriculum_repo import SqlCurriculumRepo
    from pathway_progress.repos.sql_state_store import SqlStateStore

    curriculum_repo = SqlCurriculumRepo(session_factory)
    state_store = SqlStateStore(session_factory)
else:
    curriculum_repo = InMemoryCurriculumRepo()
    state_store = InMemoryStateStore()

locks: EnrollmentLocks
if redis_client is not None:
    locks = RedisEnrollmentLocks(
        redis_client, timeout_seconds=SETTINGS.recompute_lock_timeout_seconds
    )
else:
    locks = InMemoryEnrollmentLocks()

bus = StateChangeBus()
engine = ProgressionEngine(
    curriculum_repo,
    state_store,
    bus,
    locks,
    precision=SETTINGS.rollup_precision,
)
curriculum_service = CurriculumService(curriculum_repo, bus)
assignment_service = AssignmentService(curriculum_repo, bus)
override_service = OverrideService(curriculum_repo, state_store, bus)
signal_router = SignalRouter(curriculum_repo, engine)
reporting_service = ReportingService(curriculum_repo, state_store)


def reset_in_memory_state() -> None:
    """Empty the in-memory stores (no-op for SQL-backed stores)."""
    if isinstance(curriculum_repo, InMemoryCurriculumRepo):
        curriculum_repo.clear()
    if isinstance(state_store, InMemoryStateStore):
        state_store.clear()
