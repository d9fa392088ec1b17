"""Time-based gating.  Re-evaluated on every call; nothing is cached."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pathway_progress.core.metrics import CONFIG_ANOMALIES
from pathway_progress.models.curriculum import (
    DelayAfterActivityDrip,
    DripRule,
    FixedDateDrip,
)
from pathway_progress.models.progress import ActivityState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DripEvaluation:
    satisfied: bool
    # Known release time when the gate is closed only by the clock.
    # None when there is no rule, or when the anchor is not complete yet.
    next_available_at: int | None = None
    anomaly: str | None = None


def _anomaly(rule: DripRule, kind: str) -> DripEvaluation:
    CONFIG_ANOMALIES.labels(kind=kind).inc()
    logger.warning(
        "Malformed drip rule on activity %s (%s); treating as unsatisfied",
        rule.activity_id,
        kind,
        extra={"activity_id": str(rule.activity_id)},
    )
    return DripEvaluation(satisfied=False, anomaly=kind)


def evaluate_drip(
    rule: DripRule | None,
    anchor_state: ActivityState | None,
    now: int,
    *,
    anchor_exists: bool = True,
) -> DripEvaluation:
    """Return whether the drip gate is open at `now`.

    anchor_state is the enrollment's state for the rule's anchor activity
    (ignored for fixed-date rules).
    """
    if rule is None:
        return DripEvaluation(satisfied=True)

    if isinstance(rule, FixedDateDrip):
        if now >= rule.release_at:
            return DripEvaluation(satisfied=True)
        return DripEvaluation(satisfied=False, next_available_at=rule.release_at)

    if isinstance(rule, DelayAfterActivityDrip):
        if not anchor_exists:
            return _anomaly(rule, "dangling_anchor")
        if rule.delay_days < 0:
            return _anomaly(rule, "negative_delay")
        if anchor_state is None or not anchor_state.is_complete:
            return DripEvaluation(satisfied=False)
        if anchor_state.completed_at is None:
            return _anomaly(rule, "anchor_without_completed_at")
        available_at = anchor_state.completed_at + rule.delay_seconds
        if now >= available_at:
            return DripEvaluation(satisfied=True)
        return DripEvaluation(satisfied=False, next_available_at=available_at)

    return _anomaly(rule, "unknown_drip_type")


def release_time(rule: DripRule | None, anchor_state: ActivityState | None) -> int | None:
    """Moment the clock alone opens the gate, or None when not yet known."""
    if isinstance(rule, FixedDateDrip):
        return rule.release_at
    if (
        isinstance(rule, DelayAfterActivityDrip)
        and rule.delay_days >= 0
        and anchor_state is not None
        and anchor_state.is_complete
        and anchor_state.completed_at is not None
    ):
        return anchor_state.completed_at + rule.delay_seconds
    return None
