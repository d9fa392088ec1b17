"""State store: per-enrollment runtime state owned by the engine.

activity_state is keyed by (enrollment_id, activity_id) with upsert
semantics: the last writer wins, except that a "complete" row can never
be overwritten by a non-complete one.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from pathway_progress.core.errors import StateConflictError
from pathway_progress.models.override import ActivityOverride
from pathway_progress.models.progress import ActivityState, CompletionRollup


class StateStore(Protocol):
    def get_state(self, enrollment_id: UUID, activity_id: UUID) -> ActivityState | None: ...
    def list_states(self, enrollment_id: UUID) -> list[ActivityState]: ...
    def upsert_state(self, state: ActivityState) -> None: ...

    def get_active_override(
        self, enrollment_id: UUID, activity_id: UUID
    ) -> ActivityOverride | None: ...
    def add_override(self, override: ActivityOverride) -> ActivityOverride | None: ...
    def close_override(
        self, enrollment_id: UUID, activity_id: UUID, closed_at: int
    ) -> ActivityOverride | None: ...
    def list_overrides(
        self, enrollment_id: UUID, activity_id: UUID
    ) -> list[ActivityOverride]: ...

    def get_rollup(self, enrollment_id: UUID) -> CompletionRollup | None: ...
    def upsert_rollup(self, rollup: CompletionRollup) -> None: ...
    def list_rollups(self, enrollment_ids: Iterable[UUID]) -> list[CompletionRollup]: ...


def guard_terminal(existing: ActivityState | None, incoming: ActivityState) -> None:
    """Raise StateConflictError if incoming would move a complete row backward."""
    if existing is not None and existing.is_complete and not incoming.is_complete:
        raise StateConflictError(
            "complete_is_terminal",
            f"activity {incoming.activity_id} is already complete for "
            f"enrollment {incoming.enrollment_id}",
        )


class InMemoryStateStore:
    def __init__(self) -> None:
        self._states: dict[tuple[UUID, UUID], ActivityState] = {}
        self._overrides: list[ActivityOverride] = []
        self._rollups: dict[UUID, CompletionRollup] = {}

    def clear(self) -> None:
        self._states.clear()
        self._overrides.clear()
        self._rollups.clear()

    # --- activity_state ---

    def get_state(self, enrollment_id: UUID, activity_id: UUID) -> ActivityState | None:
        return self._states.get((enrollment_id, activity_id))

    def list_states(self, enrollment_id: UUID) -> list[ActivityState]:
        return [s for (eid, _), s in self._states.items() if eid == enrollment_id]

    def upsert_state(self, state: ActivityState) -> None:
        key = (state.enrollment_id, state.activity_id)
        guard_terminal(self._states.get(key), state)
        self._states[key] = state

    # --- activity_override ---

    def get_active_override(
        self, enrollment_id: UUID, activity_id: UUID
    ) -> ActivityOverride | None:
        for o in reversed(self._overrides):
            if (
                o.enrollment_id == enrollment_id
                and o.activity_id == activity_id
                and o.is_active
            ):
                return o
        return None

    def add_override(self, override: ActivityOverride) -> ActivityOverride | None:
        """Store override, closing any active one for the same key.

        Returns the superseded override (now closed), if any.
        """
        superseded = self.close_override(
            override.enrollment_id, override.activity_id, override.created_at
        )
        self._overrides.append(override)
        return superseded

    def close_override(
        self, enrollment_id: UUID, activity_id: UUID, closed_at: int
    ) -> ActivityOverride | None:
        for i, o in enumerate(self._overrides):
            if (
                o.enrollment_id == enrollment_id
                and o.activity_id == activity_id
                and o.is_active
            ):
                closed = replace(o, closed_at=closed_at)
                self._overrides[i] = closed
                return closed
        return None

    def list_overrides(
        self, enrollment_id: UUID, activity_id: UUID
    ) -> list[ActivityOverride]:
        return [
            o
            for o in self._overrides
            if o.enrollment_id == enrollment_id and o.activity_id == activity_id
        ]

    # --- completion_rollup ---

    def get_rollup(self, enrollment_id: UUID) -> CompletionRollup | None:
        return self._rollups.get(enrollment_id)

    def upsert_rollup(self, rollup: CompletionRollup) -> None:
        self._rollups[rollup.enrollment_id] = rollup

    def list_rollups(self, enrollment_ids: Iterable[UUID]) -> list[CompletionRollup]:
        return [self._rollups[e] for e in enrollment_ids if e in self._rollups]
