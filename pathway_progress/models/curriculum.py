from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal
from uuid import UUID, uuid4

ActivityType = Literal[
    "course",
    "teacher_self_assessment",
    "child_assessment",
    "observation",
    "coaching_attendance",
]
AssessmentPhase = Literal["pre", "post"]
GroupType = Literal["all_of", "any_of", "n_of_m"]

ACTIVITY_TYPES: tuple[str, ...] = (
    "course",
    "teacher_self_assessment",
    "child_assessment",
    "observation",
    "coaching_attendance",
)
GROUP_TYPES: tuple[str, ...] = ("all_of", "any_of", "n_of_m")

SECONDS_PER_DAY = 86_400


# --- Type-specific activity configuration (tagged by `kind`) ---


@dataclass(frozen=True, slots=True)
class CourseRef:
    course_id: str
    kind: Literal["course"] = "course"


@dataclass(frozen=True, slots=True)
class SelfAssessmentRef:
    instrument_id: str
    phase: AssessmentPhase | None = None
    kind: Literal["teacher_self_assessment"] = "teacher_self_assessment"


@dataclass(frozen=True, slots=True)
class ChildAssessmentRef:
    instrument_id: str
    phase: AssessmentPhase | None = None
    kind: Literal["child_assessment"] = "child_assessment"


@dataclass(frozen=True, slots=True)
class ObservationRef:
    form_id: str
    kind: Literal["observation"] = "observation"


@dataclass(frozen=True, slots=True)
class CoachingAttendanceRef:
    session_number: int | None = None
    kind: Literal["coaching_attendance"] = "coaching_attendance"


ActivityConfig = (
    CourseRef
    | SelfAssessmentRef
    | ChildAssessmentRef
    | ObservationRef
    | CoachingAttendanceRef
)

_CONFIG_TYPES: dict[str, type] = {
    "course": CourseRef,
    "teacher_self_assessment": SelfAssessmentRef,
    "child_assessment": ChildAssessmentRef,
    "observation": ObservationRef,
    "coaching_attendance": CoachingAttendanceRef,
}


def config_to_dict(config: ActivityConfig) -> dict[str, Any]:
    return asdict(config)


def config_from_dict(data: dict[str, Any]) -> ActivityConfig:
    """Inverse of config_to_dict(); `kind` selects the config type."""
    fields = dict(data)
    kind = fields.pop("kind")
    try:
        config_type = _CONFIG_TYPES[kind]
    except KeyError:
        raise ValueError(f"unknown activity kind: {kind!r}") from None
    return config_type(**fields)


@dataclass(frozen=True, slots=True)
class Pathway:
    id: UUID
    name: str
    target_roles: tuple[str, ...] = ()
    active: bool = True

    @staticmethod
    def new(*, name: str, target_roles: tuple[str, ...] = ()) -> Pathway:
        return Pathway(id=uuid4(), name=name, target_roles=target_roles)


@dataclass(frozen=True, slots=True)
class Activity:
    id: UUID
    pathway_id: UUID
    title: str
    type: ActivityType
    config: ActivityConfig
    weight: float = 1.0
    ordering_hint: int = 0
    active: bool = True  # False once an administrator removes it from the pathway

    @staticmethod
    def new(
        *,
        pathway_id: UUID,
        title: str,
        config: ActivityConfig,
        weight: float = 1.0,
        ordering_hint: int = 0,
    ) -> Activity:
        return Activity(
            id=uuid4(),
            pathway_id=pathway_id,
            title=title,
            type=config.kind,
            config=config,
            weight=weight,
            ordering_hint=ordering_hint,
        )


@dataclass(frozen=True, slots=True)
class PrerequisiteItem:
    id: UUID
    group_id: UUID
    prerequisite_activity_id: UUID


@dataclass(frozen=True, slots=True)
class PrerequisiteGroup:
    id: UUID
    activity_id: UUID
    type: GroupType
    items: tuple[PrerequisiteItem, ...]
    n_required: int | None = None  # only for n_of_m

    @property
    def prerequisite_ids(self) -> tuple[UUID, ...]:
        return tuple(i.prerequisite_activity_id for i in self.items)

    @staticmethod
    def new(
        *,
        activity_id: UUID,
        type: GroupType,
        prerequisite_ids: list[UUID] | tuple[UUID, ...],
        n_required: int | None = None,
    ) -> PrerequisiteGroup:
        group_id = uuid4()
        items = tuple(
            PrerequisiteItem(id=uuid4(), group_id=group_id, prerequisite_activity_id=p)
            for p in prerequisite_ids
        )
        return PrerequisiteGroup(
            id=group_id,
            activity_id=activity_id,
            type=type,
            items=items,
            n_required=n_required,
        )


# --- Drip rules (tagged by `type`) ---


@dataclass(frozen=True, slots=True)
class FixedDateDrip:
    activity_id: UUID
    release_at: int
    type: Literal["fixed_date"] = "fixed_date"


@dataclass(frozen=True, slots=True)
class DelayAfterActivityDrip:
    activity_id: UUID
    anchor_activity_id: UUID
    delay_days: int
    type: Literal["delay_after_activity"] = "delay_after_activity"

    @property
    def delay_seconds(self) -> int:
        return self.delay_days * SECONDS_PER_DAY


DripRule = FixedDateDrip | DelayAfterActivityDrip
