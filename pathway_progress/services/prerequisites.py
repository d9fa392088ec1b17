"""Prerequisite evaluation.

Every group attached to an activity must hold (AND across groups):

  all_of  every referenced activity is complete
  any_of  at least one referenced activity is complete
  n_of_m  at least n_required referenced activities are complete

Malformed groups never raise here.  They evaluate as unsatisfied and are
logged as configuration anomalies, so a bad edit can only keep work
locked, never unlock it.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from uuid import UUID

from pathway_progress.core.metrics import CONFIG_ANOMALIES
from pathway_progress.models.curriculum import PrerequisiteGroup
from pathway_progress.models.progress import LifecycleStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GroupEvaluation:
    group_id: UUID
    type: str
    n_required: int
    completed: int
    total: int
    blockers: tuple[UUID, ...]
    satisfied: bool
    anomaly: str | None = None


@dataclass(frozen=True, slots=True)
class PrerequisiteResult:
    satisfied: bool
    groups: tuple[GroupEvaluation, ...] = ()

    @property
    def unmet_groups(self) -> tuple[GroupEvaluation, ...]:
        return tuple(g for g in self.groups if not g.satisfied)


def _group_anomaly(
    group: PrerequisiteGroup, known_activity_ids: Collection[UUID] | None
) -> str | None:
    total = len(group.items)
    if group.type not in ("all_of", "any_of", "n_of_m"):
        return "unknown_group_type"
    if total == 0:
        return "empty_group"
    if group.type == "n_of_m":
        if group.n_required is None:
            return "n_required_missing"
        if not 1 <= group.n_required <= total:
            return "n_required_out_of_range"
    for item in group.items:
        if item.prerequisite_activity_id == group.activity_id:
            return "self_reference"
        if (
            known_activity_ids is not None
            and item.prerequisite_activity_id not in known_activity_ids
        ):
            return "dangling_reference"
    return None


def evaluate_group(
    group: PrerequisiteGroup,
    statuses: Mapping[UUID, LifecycleStatus],
    known_activity_ids: Collection[UUID] | None = None,
) -> GroupEvaluation:
    total = len(group.items)
    completed = 0
    blockers: list[UUID] = []
    for item in group.items:
        if statuses.get(item.prerequisite_activity_id) == "complete":
            completed += 1
        else:
            blockers.append(item.prerequisite_activity_id)

    anomaly = _group_anomaly(group, known_activity_ids)
    if group.type == "n_of_m":
        n_required = group.n_required if group.n_required is not None else total
    elif group.type == "any_of":
        n_required = 1
    else:
        n_required = total

    if anomaly is not None:
        CONFIG_ANOMALIES.labels(kind=anomaly).inc()
        logger.warning(
            "Malformed prerequisite group %s (%s) on activity %s; treating as unsatisfied",
            group.id,
            anomaly,
            group.activity_id,
            extra={"activity_id": str(group.activity_id)},
        )
        satisfied = False
    else:
        satisfied = completed >= n_required

    return GroupEvaluation(
        group_id=group.id,
        type=group.type,
        n_required=n_required,
        completed=completed,
        total=total,
        blockers=tuple(blockers),
        satisfied=satisfied,
        anomaly=anomaly,
    )


def evaluate_prerequisites(
    groups: Iterable[PrerequisiteGroup],
    statuses: Mapping[UUID, LifecycleStatus],
    known_activity_ids: Collection[UUID] | None = None,
) -> PrerequisiteResult:
    """Evaluate all groups attached to one activity for one enrollment.

    statuses maps prerequisite activity id -> lifecycle status; missing
    ids count as not complete.  When known_activity_ids is given, items
    pointing outside it are reported as dangling references.
    """
    evaluations = tuple(
        evaluate_group(g, statuses, known_activity_ids) for g in groups
    )
    # Zero groups: vacuously satisfied
    return PrerequisiteResult(
        satisfied=all(e.satisfied for e in evaluations),
        groups=evaluations,
    )
