# tests/test_storage_router.py

from __future__ import annotations

from datetime import date, time

import pytest

from classsync.core.errors import RemoteWriteError
from classsync.core.models import Assignment, ModerationStatus, StorageLocation
from classsync.core.storage_router import StorageRouter, is_device_id
from classsync.store.preferences import Preferences

from .fakes import FakeBackend


@pytest.mark.asyncio
async def test_device_task_stays_on_device(prefs: Preferences) -> None:
    backend = FakeBackend()
    router = StorageRouter(backend, prefs)

    task = await router.create_personal_task(
        user_id="u1", title="  Buy graph paper ", due_date=date(2024, 6, 12), keep_on_device=True
    )

    assert task is not None
    assert is_device_id(task.id)
    assert task.title == "Buy graph paper"
    assert task.storage is StorageLocation.DEVICE
    assert task.is_personal and task.user_id == "u1"
    assert task.status is ModerationStatus.APPROVED
    assert backend.rows("assignments") == []
    assert [t.id for t in prefs.load_local_tasks()] == [task.id]


@pytest.mark.asyncio
async def test_remote_task_is_tagged_with_owner(prefs: Preferences) -> None:
    backend = FakeBackend()
    router = StorageRouter(backend, prefs)

    task = await router.create_personal_task(
        user_id="u1",
        title="Dentist",
        due_date=date(2024, 6, 12),
        due_time=time(15, 30),
        keep_on_device=False,
    )

    rows = backend.rows("assignments")
    assert len(rows) == 1
    assert rows[0]["user_id"] == "u1"
    assert rows[0]["is_personal"] is True
    assert rows[0]["due_time"] == "15:30"
    assert task is not None and task.storage is StorageLocation.REMOTE
    assert task.is_owned_by("u1")
    assert prefs.load_local_tasks() == []


@pytest.mark.asyncio
async def test_remote_failure_raises_and_nothing_is_stored(prefs: Preferences) -> None:
    backend = FakeBackend()
    backend.fail_ops.add(("assignments", "insert"))
    router = StorageRouter(backend, prefs)

    with pytest.raises(RemoteWriteError):
        await router.create_personal_task(user_id="u1", title="x", due_date=None, keep_on_device=False)

    assert prefs.load_local_tasks() == []
    assert backend.rows("assignments") == []


@pytest.mark.asyncio
async def test_empty_title_is_rejected(prefs: Preferences) -> None:
    router = StorageRouter(FakeBackend(), prefs)
    with pytest.raises(ValueError):
        await router.create_personal_task(user_id="u1", title="   ", due_date=None, keep_on_device=True)


@pytest.mark.asyncio
async def test_merge_appends_own_device_tasks(prefs: Preferences) -> None:
    router = StorageRouter(FakeBackend(), prefs)
    mine = await router.create_personal_task(user_id="u1", title="mine", due_date=None, keep_on_device=True)
    await router.create_personal_task(user_id="u2", title="theirs", due_date=None, keep_on_device=True)

    remote = [
        Assignment(
            id="a1",
            title="HW",
            class_id="c1",
            due_date=date(2024, 6, 12),
            due_time=None,
            status=ModerationStatus.APPROVED,
        )
    ]
    merged = router.merge(remote, user_id="u1")

    assert [a.id for a in merged] == ["a1", mine.id]
    assert router.delete_device_task(mine.id) is True
    assert [a.id for a in router.merge(remote, user_id="u1")] == ["a1"]
