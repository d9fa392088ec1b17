"""Validated configuration writes (pathways, activities, gating rules).

Every write is validated first and rejected with ConfigurationError
instead of being stored.  Gating changes are followed by a recompute of
every enrollment currently assigned to the affected pathway.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from pathway_progress.core.errors import NotFoundError
from pathway_progress.models.curriculum import (
    Activity,
    ActivityConfig,
    DripRule,
    GroupType,
    Pathway,
    PrerequisiteGroup,
)
from pathway_progress.models.enrollment import Enrollment
from pathway_progress.repos.curriculum_repo import CurriculumRepo
from pathway_progress.services.assignment import resolve_assigned_pathway
from pathway_progress.services.config_validation import (
    ensure_acyclic,
    validate_activity,
    validate_drip_rule,
    validate_group,
)
from pathway_progress.services.events import StateChangeBus, StateChanged

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GroupSpec:
    type: GroupType
    prerequisite_ids: list[UUID] = field(default_factory=list)
    n_required: int | None = None


class CurriculumService:
    def __init__(self, curriculum: CurriculumRepo, bus: StateChangeBus) -> None:
        self._curriculum = curriculum
        self._bus = bus

    def _require_activity(self, activity_id: UUID) -> Activity:
        activity = self._curriculum.get_activity(activity_id)
        if activity is None:
            raise NotFoundError("activity", activity_id)
        return activity

    def _existing(self, ids: Iterable[UUID]) -> set[UUID]:
        return {i for i in ids if self._curriculum.get_activity(i) is not None}

    def _notify_pathway(self, pathway_id: UUID) -> None:
        for assignment in self._curriculum.list_assignments_for_pathway(pathway_id):
            eid = assignment.enrollment_id
            # Only enrollments actually working through this pathway
            if resolve_assigned_pathway(self._curriculum.list_assignments(eid)) == pathway_id:
                self._bus.publish(StateChanged(eid, None, "config"))

    # --- pathways & enrollments ---

    def create_pathway(self, name: str, target_roles: Iterable[str] = ()) -> Pathway:
        name = name.strip()
        if not name:
            raise ValueError("pathway name must be non-empty")
        pathway = Pathway.new(name=name, target_roles=tuple(target_roles))
        self._curriculum.add_pathway(pathway)
        logger.info("Created pathway %s (%s)", pathway.id, pathway.name)
        return pathway

    def create_enrollment(self, user_id: UUID, roles: Iterable[str] = ()) -> Enrollment:
        enrollment = Enrollment.new(user_id=user_id, roles=tuple(roles))
        self._curriculum.add_enrollment(enrollment)
        return enrollment

    # --- activities ---

    def add_activity(
        self,
        pathway_id: UUID,
        title: str,
        config: ActivityConfig,
        *,
        weight: float = 1.0,
        ordering_hint: int = 0,
    ) -> Activity:
        if self._curriculum.get_pathway(pathway_id) is None:
            raise NotFoundError("pathway", pathway_id)
        activity = Activity.new(
            pathway_id=pathway_id,
            title=title,
            config=config,
            weight=weight,
            ordering_hint=ordering_hint,
        )
        validate_activity(activity)
        self._curriculum.add_activity(activity)
        logger.info("Added %s activity %s to pathway %s", activity.type, activity.id, pathway_id)
        self._notify_pathway(pathway_id)
        return activity

    def set_activity_active(self, activity_id: UUID, active: bool) -> Activity:
        updated = self._curriculum.set_activity_active(activity_id, active)
        if updated is None:
            raise NotFoundError("activity", activity_id)
        logger.info("Activity %s active=%s", activity_id, active)
        self._notify_pathway(updated.pathway_id)
        return updated

    # --- gating ---

    def _dependency_graph(self, roots: Iterable[UUID]) -> dict[UUID, set[UUID]]:
        """Stored prerequisite edges reachable from roots (crosses pathways)."""
        graph: dict[UUID, set[UUID]] = {}
        pending = list(roots)
        while pending:
            aid = pending.pop()
            if aid in graph:
                continue
            deps = {
                pid
                for g in self._curriculum.list_prerequisite_groups(aid)
                for pid in g.prerequisite_ids
            }
            graph[aid] = deps
            pending.extend(deps)
        return graph

    def set_prerequisites(
        self, activity_id: UUID, specs: list[GroupSpec]
    ) -> list[PrerequisiteGroup]:
        """Replace all prerequisite groups of an activity."""
        activity = self._require_activity(activity_id)
        groups = [
            PrerequisiteGroup.new(
                activity_id=activity_id,
                type=s.type,
                prerequisite_ids=s.prerequisite_ids,
                n_required=s.n_required,
            )
            for s in specs
        ]
        referenced = {pid for g in groups for pid in g.prerequisite_ids}
        known = self._existing(referenced)
        for g in groups:
            validate_group(g, known)

        pathway_ids = [a.id for a in self._curriculum.list_activities(
            activity.pathway_id, include_inactive=True
        )]
        graph = self._dependency_graph([*pathway_ids, *referenced])
        ensure_acyclic(graph, activity_id, groups)

        self._curriculum.set_prerequisite_groups(activity_id, groups)
        logger.info("Set %d prerequisite group(s) on activity %s", len(groups), activity_id)
        self._notify_pathway(activity.pathway_id)
        return groups

    def set_drip_rule(self, activity_id: UUID, rule: DripRule | None) -> None:
        activity = self._require_activity(activity_id)
        if rule is not None:
            if rule.activity_id != activity_id:
                raise ValueError("drip rule belongs to a different activity")
            anchor = getattr(rule, "anchor_activity_id", None)
            validate_drip_rule(rule, self._existing([anchor] if anchor else []))
        self._curriculum.set_drip_rule(activity_id, rule)
        logger.info("Drip rule on activity %s set to %s", activity_id, rule)
        self._notify_pathway(activity.pathway_id)
