# src/classsync/core/views.py

"""
Filter/sort pipeline that derives the caller's views from raw collections.

Everything here is a pure function of its inputs: assignments, classes, the caller's
enrollment set, the caller's personal states and identity. Views are recomputed on
each state change; nothing is cached.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time

from .models import Assignment, ClassRecord, ModerationStatus, PersonalState, Profile
from .urgency import END_OF_DAY, Urgency, classify

StateMap = Mapping[str, PersonalState]
# assignment_id -> caller's PersonalState


def is_completed(states: StateMap, assignment_id: str) -> bool:
    st = states.get(assignment_id)
    return bool(st and st.is_completed)


def is_visible_to(a: Assignment, *, enrolled: Collection[str], user_id: str | None) -> bool:
    """Ownership filter: a personal task owned by the caller, or a task of an enrolled class."""
    if a.is_personal:
        return a.is_owned_by(user_id)
    return a.class_id is not None and a.class_id in enrolled


def due_sort_key(a: Assignment) -> tuple[bool, date]:
    # Missing due dates sort after every dated assignment.
    return (a.due_date is None, a.due_date or date.max)


def active(
    assignments: Iterable[Assignment],
    *,
    enrolled: Collection[str],
    states: StateMap,
    user_id: str | None,
) -> list[Assignment]:
    out = [
        a
        for a in assignments
        if a.status is ModerationStatus.APPROVED
        and is_visible_to(a, enrolled=enrolled, user_id=user_id)
        and not is_completed(states, a.id)
    ]
    out.sort(key=due_sort_key)
    return out


def completed(
    assignments: Iterable[Assignment],
    *,
    enrolled: Collection[str],
    states: StateMap,
    user_id: str | None,
) -> list[Assignment]:
    """History view. Keeps input order."""
    return [
        a
        for a in assignments
        if is_completed(states, a.id) and is_visible_to(a, enrolled=enrolled, user_id=user_id)
    ]


def pending_moderation(assignments: Iterable[Assignment], *, is_admin: bool) -> list[Assignment]:
    if not is_admin:
        return []
    return [a for a in assignments if a.status is ModerationStatus.PENDING]


def pending_classes(classes: Iterable[ClassRecord], *, is_admin: bool) -> list[ClassRecord]:
    if not is_admin:
        return []
    return [c for c in classes if c.status is ModerationStatus.PENDING]


def enrolled_classes(classes: Iterable[ClassRecord], enrolled: Collection[str]) -> list[ClassRecord]:
    """Classes the caller can post assignments to."""
    return [c for c in classes if c.id in enrolled]


def with_urgency(
    assignments: Iterable[Assignment],
    now: datetime,
    *,
    default_time: time = END_OF_DAY,
) -> list[tuple[Assignment, Urgency]]:
    return [(a, classify(a.due_date, a.due_time, now, default_time=default_time)) for a in assignments]


@dataclass(slots=True, frozen=True)
class AssignmentViews:
    active: list[Assignment] = field(default_factory=list)
    completed: list[Assignment] = field(default_factory=list)
    pending_assignments: list[Assignment] = field(default_factory=list)
    pending_classes: list[ClassRecord] = field(default_factory=list)
    postable_classes: list[ClassRecord] = field(default_factory=list)

    @property
    def admin_badge_count(self) -> int:
        return len(self.pending_assignments) + len(self.pending_classes)


def build_views(
    assignments: Iterable[Assignment],
    classes: Iterable[ClassRecord],
    *,
    profile: Profile | None,
    states: StateMap,
) -> AssignmentViews:
    if profile is None:
        return AssignmentViews()

    assignments = list(assignments)
    classes = list(classes)
    enrolled = frozenset(profile.enrolled_classes)

    return AssignmentViews(
        active=active(assignments, enrolled=enrolled, states=states, user_id=profile.id),
        completed=completed(assignments, enrolled=enrolled, states=states, user_id=profile.id),
        pending_assignments=pending_moderation(assignments, is_admin=profile.is_admin),
        pending_classes=pending_classes(classes, is_admin=profile.is_admin),
        postable_classes=enrolled_classes(classes, enrolled),
    )
