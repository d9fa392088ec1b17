from __future__ import annotations

from uuid import uuid4

import pytest

from pathway_progress.core.errors import ConfigurationError
from pathway_progress.models.curriculum import (
    Activity,
    CourseRef,
    DelayAfterActivityDrip,
    FixedDateDrip,
    ObservationRef,
    PrerequisiteGroup,
)
from pathway_progress.services.config_validation import (
    ensure_acyclic,
    find_cycle,
    topological_order,
    validate_activity,
    validate_drip_rule,
    validate_group,
    validate_override,
)

NOW = 1_767_225_600
TARGET, A, B, C = uuid4(), uuid4(), uuid4(), uuid4()
KNOWN = {TARGET, A, B, C}


def _group(type: str, ids, n_required=None) -> PrerequisiteGroup:
    return PrerequisiteGroup.new(
        activity_id=TARGET, type=type, prerequisite_ids=ids, n_required=n_required
    )


# ---- groups ----


def test_valid_groups_pass() -> None:
    validate_group(_group("all_of", [A, B]), KNOWN)
    validate_group(_group("any_of", [A]), KNOWN)
    validate_group(_group("n_of_m", [A, B, C], n_required=2), KNOWN)


@pytest.mark.parametrize("n_required", [None, 0, 4])
def test_n_of_m_range_enforced(n_required) -> None:
    with pytest.raises(ConfigurationError, match="n_required"):
        validate_group(_group("n_of_m", [A, B, C], n_required=n_required), KNOWN)


def test_n_required_rejected_outside_n_of_m() -> None:
    with pytest.raises(ConfigurationError, match="only valid for n_of_m"):
        validate_group(_group("all_of", [A], n_required=1), KNOWN)


def test_empty_group_rejected() -> None:
    with pytest.raises(ConfigurationError, match="at least one"):
        validate_group(_group("any_of", []), KNOWN)


def test_dangling_reference_rejected() -> None:
    with pytest.raises(ConfigurationError, match="unknown activity"):
        validate_group(_group("any_of", [uuid4()]), KNOWN)


def test_self_reference_rejected() -> None:
    with pytest.raises(ConfigurationError, match="own prerequisite"):
        validate_group(_group("any_of", [TARGET]), KNOWN)


def test_duplicate_items_rejected() -> None:
    with pytest.raises(ConfigurationError, match="twice"):
        validate_group(_group("all_of", [A, A]), KNOWN)


# ---- drip ----


def test_drip_rules() -> None:
    validate_drip_rule(FixedDateDrip(activity_id=TARGET, release_at=NOW), KNOWN)
    validate_drip_rule(
        DelayAfterActivityDrip(activity_id=TARGET, anchor_activity_id=A, delay_days=0), KNOWN
    )


def test_drip_anchor_must_exist_and_differ() -> None:
    with pytest.raises(ConfigurationError, match="unknown activity"):
        validate_drip_rule(
            DelayAfterActivityDrip(activity_id=TARGET, anchor_activity_id=uuid4(), delay_days=1),
            KNOWN,
        )
    with pytest.raises(ConfigurationError, match="own activity"):
        validate_drip_rule(
            DelayAfterActivityDrip(activity_id=TARGET, anchor_activity_id=TARGET, delay_days=1),
            KNOWN,
        )


def test_negative_delay_rejected() -> None:
    with pytest.raises(ConfigurationError, match="delay_days"):
        validate_drip_rule(
            DelayAfterActivityDrip(activity_id=TARGET, anchor_activity_id=A, delay_days=-5),
            KNOWN,
        )


# ---- activities ----


def test_activity_weight_must_be_positive() -> None:
    activity = Activity.new(
        pathway_id=uuid4(), title="LD", config=CourseRef(course_id="LD"), weight=0
    )
    with pytest.raises(ConfigurationError, match="weight"):
        validate_activity(activity)


def test_activity_type_must_match_config() -> None:
    activity = Activity(
        id=uuid4(),
        pathway_id=uuid4(),
        title="Observation",
        type="course",
        config=ObservationRef(form_id="OBS"),
    )
    with pytest.raises(ConfigurationError, match="does not match"):
        validate_activity(activity)


# ---- overrides ----


def test_grace_unlock_needs_future_expiry() -> None:
    validate_override("grace_unlock", NOW + 1, NOW)
    with pytest.raises(ConfigurationError, match="requires expires_at"):
        validate_override("grace_unlock", None, NOW)
    with pytest.raises(ConfigurationError, match="future"):
        validate_override("grace_unlock", NOW, NOW)


def test_permanent_overrides_do_not_expire() -> None:
    validate_override("exempt", None, NOW)
    with pytest.raises(ConfigurationError, match="do not expire"):
        validate_override("manual_unlock", NOW + 10, NOW)


def test_unknown_override_type_rejected() -> None:
    with pytest.raises(ConfigurationError, match="unknown override type"):
        validate_override("skip", None, NOW)


# ---- graph ----


def test_find_cycle_reports_path() -> None:
    cycle = find_cycle({A: {B}, B: {C}, C: {A}})
    assert cycle is not None
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {A, B, C}


def test_acyclic_graph_has_no_cycle() -> None:
    assert find_cycle({A: {B}, B: {C}, C: set()}) is None


def test_ensure_acyclic_substitutes_proposed_edges() -> None:
    graph = {A: {B}, B: set(), TARGET: {A}}
    # B -> TARGET closes TARGET -> A -> B -> TARGET
    proposed = [PrerequisiteGroup.new(activity_id=B, type="all_of", prerequisite_ids=[TARGET])]
    with pytest.raises(ConfigurationError, match="cycle") as excinfo:
        ensure_acyclic(graph, B, proposed)
    assert set(excinfo.value.cycle) == {A, B, TARGET}


def test_ensure_acyclic_replaces_old_edges() -> None:
    graph = {A: {B}, B: set()}
    # Replacing A's edges with [C] is fine even though C is new
    ensure_acyclic(graph, A, [PrerequisiteGroup.new(activity_id=A, type="all_of", prerequisite_ids=[C])])


def test_topological_order_puts_prerequisites_first() -> None:
    order = topological_order([C, B, A], {C: {B}, B: {A}})
    assert order.index(A) < order.index(B) < order.index(C)


def test_topological_order_falls_back_on_cycle() -> None:
    assert topological_order([A, B], {A: {B}, B: {A}}) == [A, B]
