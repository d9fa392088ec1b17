"""Write-time validation of gating configuration.

Everything here raises ConfigurationError and is called before a
configuration change is persisted.  The evaluators tolerate whatever
slips through (they fail safe to "locked"), but the admin path should
never store a malformed definition in the first place.
"""

from __future__ import annotations

import graphlib
from collections.abc import Collection, Iterable, Mapping
from uuid import UUID

from pathway_progress.core.errors import ConfigurationError
from pathway_progress.models.curriculum import (
    ACTIVITY_TYPES,
    GROUP_TYPES,
    Activity,
    DelayAfterActivityDrip,
    DripRule,
    FixedDateDrip,
    PrerequisiteGroup,
)
from pathway_progress.models.override import OVERRIDE_TYPES


def validate_activity(activity: Activity) -> None:
    if activity.type not in ACTIVITY_TYPES:
        raise ConfigurationError(f"unknown activity type {activity.type!r}")
    if activity.config.kind != activity.type:
        raise ConfigurationError(
            f"activity type {activity.type!r} does not match its "
            f"{activity.config.kind!r} configuration"
        )
    if not activity.weight > 0:
        raise ConfigurationError(f"weight must be positive (got {activity.weight})")
    if not activity.title.strip():
        raise ConfigurationError("activity title must be non-empty")


def validate_group(
    group: PrerequisiteGroup, known_activity_ids: Collection[UUID]
) -> None:
    if group.type not in GROUP_TYPES:
        raise ConfigurationError(f"unknown prerequisite group type {group.type!r}")

    prereq_ids = group.prerequisite_ids
    if not prereq_ids:
        raise ConfigurationError("prerequisite group must reference at least one activity")
    if len(set(prereq_ids)) != len(prereq_ids):
        raise ConfigurationError("prerequisite group references an activity twice")

    if group.type == "n_of_m":
        if group.n_required is None or not 1 <= group.n_required <= len(prereq_ids):
            raise ConfigurationError(
                f"n_of_m requires 1 <= n_required <= {len(prereq_ids)} "
                f"(got {group.n_required})"
            )
    elif group.n_required is not None:
        raise ConfigurationError("n_required is only valid for n_of_m groups")

    for pid in prereq_ids:
        if pid == group.activity_id:
            raise ConfigurationError("an activity cannot be its own prerequisite")
        if pid not in known_activity_ids:
            raise ConfigurationError(f"prerequisite references unknown activity {pid}")


def validate_drip_rule(rule: DripRule, known_activity_ids: Collection[UUID]) -> None:
    if isinstance(rule, FixedDateDrip):
        if rule.release_at is None:
            raise ConfigurationError("fixed_date drip rule requires release_at")
        return
    if isinstance(rule, DelayAfterActivityDrip):
        if rule.anchor_activity_id == rule.activity_id:
            raise ConfigurationError("drip rule cannot be anchored on its own activity")
        if rule.anchor_activity_id not in known_activity_ids:
            raise ConfigurationError(
                f"drip rule anchors on unknown activity {rule.anchor_activity_id}"
            )
        if rule.delay_days < 0:
            raise ConfigurationError(f"delay_days must be >= 0 (got {rule.delay_days})")
        return
    raise ConfigurationError(f"unknown drip rule {rule!r}")


def validate_override(type: str, expires_at: int | None, now: int) -> None:
    if type not in OVERRIDE_TYPES:
        raise ConfigurationError(f"unknown override type {type!r}")
    if type == "grace_unlock":
        if expires_at is None:
            raise ConfigurationError("grace_unlock requires expires_at")
        if expires_at <= now:
            raise ConfigurationError("grace_unlock expires_at must be in the future")
    elif expires_at is not None:
        raise ConfigurationError(f"{type} overrides do not expire")


# --- Prerequisite graph ---


def prerequisite_graph(
    groups_by_activity: Mapping[UUID, Iterable[PrerequisiteGroup]],
) -> dict[UUID, set[UUID]]:
    """activity id -> ids it depends on (across all its groups)."""
    graph: dict[UUID, set[UUID]] = {}
    for activity_id, groups in groups_by_activity.items():
        deps = graph.setdefault(activity_id, set())
        for g in groups:
            deps.update(g.prerequisite_ids)
    return graph


def find_cycle(graph: Mapping[UUID, Iterable[UUID]]) -> list[UUID] | None:
    """Return one dependency cycle (first node repeated last), or None."""
    try:
        graphlib.TopologicalSorter(graph).prepare()
    except graphlib.CycleError as exc:
        return list(exc.args[1])
    return None


def ensure_acyclic(
    graph: Mapping[UUID, Iterable[UUID]],
    activity_id: UUID,
    proposed: Iterable[PrerequisiteGroup],
) -> None:
    """Raise if replacing activity_id's groups with `proposed` creates a cycle."""
    candidate = {k: set(v) for k, v in graph.items()}
    candidate[activity_id] = {pid for g in proposed for pid in g.prerequisite_ids}
    cycle = find_cycle(candidate)
    if cycle is not None:
        raise ConfigurationError(
            "prerequisites would create a cycle: " + " -> ".join(str(c) for c in cycle),
            cycle=cycle,
        )


def topological_order(
    activity_ids: Iterable[UUID], graph: Mapping[UUID, Iterable[UUID]]
) -> list[UUID]:
    """Order activity_ids so prerequisites come before their dependents.

    Falls back to the given order if the stored graph is cyclic, so a
    corrupted configuration still gets evaluated (and fails safe).
    """
    ids = list(activity_ids)
    wanted = set(ids)
    sub = {a: {d for d in graph.get(a, ()) if d in wanted} for a in ids}
    try:
        return list(graphlib.TopologicalSorter(sub).static_order())
    except graphlib.CycleError:
        return ids
