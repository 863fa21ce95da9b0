# src/classsync/core/models.py

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from enum import StrEnum
from typing import Any

PERSONAL_CLASS_MARKER = "personal"


class ModerationStatus(StrEnum):
    """Moderation workflow state of a submitted assignment or class."""

    PENDING = "pending"
    APPROVED = "approved"
    DELETED = "deleted"

    @classmethod
    def from_db(cls, raw: str | None) -> ModerationStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.PENDING


class StorageLocation(StrEnum):
    DEVICE = "device"
    REMOTE = "remote"

    @classmethod
    def from_db(cls, raw: str | None) -> StorageLocation:
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.REMOTE


def parse_date(raw: Any) -> date | None:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError:
        return None


def parse_time(raw: Any) -> time | None:
    if isinstance(raw, time):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        # Postgres "time" columns come back as HH:MM:SS, form inputs as HH:MM.
        return time.fromisoformat(raw.strip())
    except ValueError:
        return None


def parse_datetime(raw: Any) -> datetime | None:
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _opt_str(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw)
    return s if s.strip() else None


@dataclass(slots=True, frozen=True)
class Assignment:
    id: str
    title: str
    class_id: str | None
    due_date: date | None
    due_time: time | None
    status: ModerationStatus

    suggested_by: str | None = None
    user_id: str | None = None  # owner of a personal task
    is_personal: bool = False
    storage: StorageLocation = StorageLocation.REMOTE

    def is_owned_by(self, user_id: str | None) -> bool:
        return self.is_personal and user_id is not None and self.user_id == user_id

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Assignment:
        class_id = _opt_str(row.get("class_id"))
        is_personal = bool(row.get("is_personal")) or class_id == PERSONAL_CLASS_MARKER
        return cls(
            id=str(row.get("id")),
            title=str(row.get("title") or ""),
            class_id=None if is_personal else class_id,
            due_date=parse_date(row.get("due_date")),
            due_time=parse_time(row.get("due_time")),
            status=ModerationStatus.from_db(row.get("status")),
            suggested_by=_opt_str(row.get("suggested_by")),
            user_id=_opt_str(row.get("user_id")),
            is_personal=is_personal,
            storage=StorageLocation.from_db(row.get("storage")),
        )

    def to_row(self) -> dict[str, Any]:
        """Serialized form, used for backend inserts and the on-device task list."""
        return {
            "id": self.id,
            "title": self.title,
            "class_id": self.class_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "due_time": self.due_time.strftime("%H:%M") if self.due_time else None,
            "status": self.status.value,
            "suggested_by": self.suggested_by,
            "user_id": self.user_id,
            "is_personal": self.is_personal,
            "storage": self.storage.value,
        }


@dataclass(slots=True, frozen=True)
class ClassRecord:
    id: str
    name: str
    teacher: str | None
    status: ModerationStatus
    suggested_by: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ClassRecord:
        return cls(
            id=str(row.get("id")),
            name=str(row.get("name") or ""),
            teacher=_opt_str(row.get("teacher")),
            status=ModerationStatus.from_db(row.get("status")),
            suggested_by=_opt_str(row.get("suggested_by")),
        )


PERSONAL_STATE_FIELDS = ("is_completed", "personal_note", "personal_link")


@dataclass(slots=True, frozen=True)
class PersonalState:
    """Private per-(user, assignment) annotations. Last write for a key wins."""

    user_id: str
    assignment_id: str
    is_completed: bool = False
    personal_note: str = ""
    personal_link: str = ""

    def merged(self, partial: Mapping[str, Any]) -> PersonalState:
        unknown = set(partial) - set(PERSONAL_STATE_FIELDS)
        if unknown:
            raise ValueError(f"unknown personal state fields: {sorted(unknown)}")
        changes: dict[str, Any] = {}
        if "is_completed" in partial:
            changes["is_completed"] = bool(partial["is_completed"])
        if "personal_note" in partial:
            changes["personal_note"] = str(partial["personal_note"] or "")
        if "personal_link" in partial:
            changes["personal_link"] = str(partial["personal_link"] or "")
        return replace(self, **changes)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> PersonalState:
        return cls(
            user_id=str(row.get("user_id")),
            assignment_id=str(row.get("assignment_id")),
            is_completed=bool(row.get("is_completed")),
            personal_note=str(row.get("personal_note") or ""),
            personal_link=str(row.get("personal_link") or ""),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "assignment_id": self.assignment_id,
            "is_completed": self.is_completed,
            "personal_note": self.personal_note,
            "personal_link": self.personal_link,
        }


@dataclass(slots=True, frozen=True)
class Profile:
    id: str
    full_name: str
    is_admin: bool = False
    is_banned: bool = False
    enrolled_classes: tuple[str, ...] = ()
    last_seen: datetime | None = None

    def is_enrolled(self, class_id: str | None) -> bool:
        return class_id is not None and class_id in self.enrolled_classes

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Profile:
        raw_enrolled = row.get("enrolled_classes") or []
        if not isinstance(raw_enrolled, (list, tuple)):
            raw_enrolled = []
        return cls(
            id=str(row.get("id")),
            full_name=str(row.get("full_name") or ""),
            is_admin=bool(row.get("is_admin")),
            is_banned=bool(row.get("is_banned")),
            enrolled_classes=tuple(str(c) for c in raw_enrolled if c is not None),
            last_seen=parse_datetime(row.get("last_seen")),
        )


@dataclass(slots=True, frozen=True)
class ModerationSetting:
    """The single global app_settings row."""

    moderation_enabled: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any] | None) -> ModerationSetting:
        if not row:
            return cls()
        return cls(moderation_enabled=bool(row.get("moderation_enabled", True)))
