# tests/conftest.py

from __future__ import annotations

from datetime import time
from pathlib import Path
from types import SimpleNamespace

import pytest

from classsync.core.session import ClassSyncSession
from classsync.core.state import AppState
from classsync.store.device_store import DeviceStore
from classsync.store.preferences import Preferences

from .fakes import FakeBackend, FakeClock

STUDENT = ("ada@example.com", "pw-ada", "u1")
ADMIN = ("grace@example.com", "pw-grace", "admin1")
BANNED = ("mal@example.com", "pw-mal", "banned1")


def seed_tables() -> dict[str, list[dict]]:
    return {
        "profiles": [
            {"id": "u1", "full_name": "Ada Student", "is_admin": False, "is_banned": False, "enrolled_classes": ["c1"]},
            {
                "id": "admin1",
                "full_name": "Grace Admin",
                "is_admin": True,
                "is_banned": False,
                "enrolled_classes": ["c1", "c2"],
            },
            {"id": "banned1", "full_name": "Mal", "is_admin": False, "is_banned": True, "enrolled_classes": ["c1"]},
        ],
        "classes": [
            {"id": "c1", "name": "Math", "teacher": "Mr. Euler", "status": "approved", "suggested_by": "Grace Admin"},
            {"id": "c2", "name": "History", "teacher": "Ms. Tuchman", "status": "approved"},
            {"id": "c3", "name": "Art", "teacher": "", "status": "pending", "suggested_by": "Ada Student"},
        ],
        "assignments": [
            {"id": "a1", "title": "Homework 4", "class_id": "c1", "due_date": "2024-06-12", "status": "approved"},
            {
                "id": "a2",
                "title": "Quiz",
                "class_id": "c1",
                "due_date": "2024-06-10",
                "due_time": "18:00:00",
                "status": "approved",
            },
            {"id": "a3", "title": "Essay", "class_id": "c2", "due_date": "2024-06-11", "status": "approved"},
            {"id": "a4", "title": "Lab report", "class_id": "c1", "due_date": "2024-06-15", "status": "pending"},
            {"id": "a5", "title": "Read chapter", "class_id": "c1", "due_date": None, "status": "approved"},
        ],
        "user_assignment_states": [],
        "app_settings": [{"id": 1, "moderation_enabled": True}],
    }


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the session and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="ClassSync",
        data_dir=tmp_path,
        device_store_path=tmp_path / "device.sqlite3",
        undo_window_seconds=5.0,
        default_due_time=time(23, 59),
        write_failure_policy="retain",
    )


@pytest.fixture()
def backend() -> FakeBackend:
    users = {email: (pw, uid) for email, pw, uid in (STUDENT, ADMIN, BANNED)}
    return FakeBackend(seed_tables(), users)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def prefs(settings: SimpleNamespace) -> Preferences:
    # Real SQLite store: its tolerance of bad payloads is part of what we test.
    return Preferences(DeviceStore(settings.device_store_path))


@pytest.fixture()
def session(settings: SimpleNamespace, backend: FakeBackend, prefs: Preferences, clock: FakeClock) -> ClassSyncSession:
    return ClassSyncSession(AppState(settings=settings), backend, prefs, clock=clock)
