# src/classsync/core/urgency.py

"""
Urgency classification of an assignment's due date.

Pure and deterministic given `now`. Results depend on the current instant, so callers
re-classify on every refresh instead of caching buckets.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import StrEnum

END_OF_DAY = time(23, 59)


class UrgencyBucket(StrEnum):
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    TOMORROW = "tomorrow"
    SOON = "soon"
    THIS_WEEK = "this_week"
    UPCOMING = "upcoming"
    NO_DATE = "no_date"


@dataclass(slots=True, frozen=True)
class UrgencyStyle:
    """Presentation hints: text colour/weight classes and the card's left border class."""

    color: str
    border: str


@dataclass(slots=True, frozen=True)
class Urgency:
    bucket: UrgencyBucket
    label: str
    style: UrgencyStyle

    @property
    def is_late(self) -> bool:
        return self.bucket is UrgencyBucket.OVERDUE


_PRESENTATION: dict[UrgencyBucket, tuple[str, UrgencyStyle]] = {
    UrgencyBucket.OVERDUE: ("Overdue", UrgencyStyle("text-red-600 font-extrabold", "border-l-red-800")),
    UrgencyBucket.DUE_TODAY: ("Due Today", UrgencyStyle("text-orange-600 font-bold", "border-l-orange-500")),
    UrgencyBucket.TOMORROW: ("Tomorrow", UrgencyStyle("text-yellow-600 font-bold", "border-l-yellow-500")),
    UrgencyBucket.SOON: ("Soon", UrgencyStyle("text-lime-600", "border-l-lime-500")),
    UrgencyBucket.THIS_WEEK: ("This Week", UrgencyStyle("text-green-600", "border-l-green-500")),
    UrgencyBucket.UPCOMING: ("Upcoming", UrgencyStyle("text-blue-600", "border-l-blue-400")),
    UrgencyBucket.NO_DATE: ("No Date", UrgencyStyle("text-gray-400", "border-l-gray-300")),
}


def urgency_for(bucket: UrgencyBucket) -> Urgency:
    label, style = _PRESENTATION[bucket]
    return Urgency(bucket=bucket, label=label, style=style)


def due_instant(due_date: date, due_time: time | None, *, default_time: time = END_OF_DAY) -> datetime:
    """Local wall-clock instant an assignment is due. No timezone attached."""
    return datetime.combine(due_date, due_time or default_time)


def classify_bucket(
    due_date: date | None,
    due_time: time | None,
    now: datetime,
    *,
    default_time: time = END_OF_DAY,
) -> UrgencyBucket:
    """
    Rules are evaluated in order, first match wins:
    - no date            -> NO_DATE
    - diff_hours < 0     -> OVERDUE   (due == now is not overdue)
    - diff_hours < 24    -> DUE_TODAY
    - ceil(days) <= 1    -> TOMORROW
    - ceil(days) <= 3    -> SOON
    - ceil(days) <= 7    -> THIS_WEEK
    - otherwise          -> UPCOMING
    """
    if due_date is None:
        return UrgencyBucket.NO_DATE

    due = due_instant(due_date, due_time, default_time=default_time)
    diff_hours = (due - now).total_seconds() / 3600.0
    diff_days = math.ceil(diff_hours / 24.0)

    if diff_hours < 0:
        return UrgencyBucket.OVERDUE
    if diff_hours < 24:
        return UrgencyBucket.DUE_TODAY
    if diff_days <= 1:
        return UrgencyBucket.TOMORROW
    if diff_days <= 3:
        return UrgencyBucket.SOON
    if diff_days <= 7:
        return UrgencyBucket.THIS_WEEK
    return UrgencyBucket.UPCOMING


def classify(
    due_date: date | None,
    due_time: time | None,
    now: datetime,
    *,
    default_time: time = END_OF_DAY,
) -> Urgency:
    return urgency_for(classify_bucket(due_date, due_time, now, default_time=default_time))
