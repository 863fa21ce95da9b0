# tests/test_views.py

from __future__ import annotations

from datetime import date, datetime

from classsync.core.models import Assignment, ClassRecord, ModerationStatus, PersonalState, Profile
from classsync.core.urgency import UrgencyBucket
from classsync.core.views import active, build_views, completed, pending_moderation, with_urgency

APPROVED = ModerationStatus.APPROVED
PENDING = ModerationStatus.PENDING


def _a(aid: str, class_id: str | None, due: date | None, status=APPROVED, **kw) -> Assignment:
    return Assignment(id=aid, title=aid.upper(), class_id=class_id, due_date=due, due_time=None, status=status, **kw)


def _done(user_id: str, *ids: str) -> dict[str, PersonalState]:
    return {aid: PersonalState(user_id=user_id, assignment_id=aid, is_completed=True) for aid in ids}


ASSIGNMENTS = [
    _a("later", "c1", date(2024, 6, 20)),
    _a("undated", "c1", None),
    _a("soon", "c1", date(2024, 6, 10)),
    _a("other-class", "c2", date(2024, 6, 10)),
    _a("unapproved", "c1", date(2024, 6, 11), status=PENDING),
    _a("mine", None, date(2024, 6, 12), user_id="u1", is_personal=True),
    _a("theirs", None, date(2024, 6, 12), user_id="u2", is_personal=True),
]
CLASSES = [
    ClassRecord(id="c1", name="Math", teacher=None, status=APPROVED),
    ClassRecord(id="c2", name="History", teacher=None, status=APPROVED),
    ClassRecord(id="c9", name="Pottery", teacher=None, status=PENDING),
]


def test_active_filters_and_sorts_missing_dates_last() -> None:
    out = active(ASSIGNMENTS, enrolled={"c1"}, states={}, user_id="u1")
    assert [a.id for a in out] == ["soon", "mine", "later", "undated"]


def test_completed_leaves_active_and_shows_in_history() -> None:
    states = _done("u1", "soon", "theirs")
    act = active(ASSIGNMENTS, enrolled={"c1"}, states=states, user_id="u1")
    hist = completed(ASSIGNMENTS, enrolled={"c1"}, states=states, user_id="u1")
    assert "soon" not in {a.id for a in act}
    # Someone else's personal task never shows, completed or not.
    assert [a.id for a in hist] == ["soon"]
    assert {a.id for a in act}.isdisjoint({a.id for a in hist})


def test_views_are_disjoint_for_enrolled_assignments() -> None:
    profile = Profile(id="u1", full_name="Ada", enrolled_classes=("c1", "c2"))
    states = _done("u1", "later", "mine")
    v = build_views(ASSIGNMENTS, CLASSES, profile=profile, states=states)
    assert not {a.id for a in v.active} & {a.id for a in v.completed}
    assert {a.id for a in v.completed} == {"later", "mine"}
    assert [c.id for c in v.postable_classes] == ["c1", "c2"]


def test_pending_queues_are_admin_only() -> None:
    assert pending_moderation(ASSIGNMENTS, is_admin=False) == []
    assert [a.id for a in pending_moderation(ASSIGNMENTS, is_admin=True)] == ["unapproved"]

    student = build_views(ASSIGNMENTS, CLASSES, profile=Profile(id="u1", full_name="Ada"), states={})
    admin = build_views(ASSIGNMENTS, CLASSES, profile=Profile(id="x", full_name="Root", is_admin=True), states={})
    assert student.admin_badge_count == 0
    assert admin.admin_badge_count == 2
    assert [c.id for c in admin.pending_classes] == ["c9"]


def test_no_profile_means_empty_views() -> None:
    v = build_views(ASSIGNMENTS, CLASSES, profile=None, states={})
    assert v.active == [] and v.completed == [] and v.admin_badge_count == 0


def test_with_urgency_pairs_each_assignment() -> None:
    out = active(ASSIGNMENTS, enrolled={"c1"}, states={}, user_id="u1")
    pairs = with_urgency(out, datetime(2024, 6, 9, 10, 0))
    assert [u.bucket for _, u in pairs] == [
        UrgencyBucket.SOON,
        UrgencyBucket.THIS_WEEK,
        UrgencyBucket.UPCOMING,
        UrgencyBucket.NO_DATE,
    ]
