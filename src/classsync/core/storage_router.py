# src/classsync/core/storage_router.py

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import date, time

from .errors import BackendError, RemoteWriteError
from .models import Assignment, ModerationStatus, StorageLocation
from .ports import TABLE_ASSIGNMENTS, Backend, LocalTaskStore

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "local-"


def is_device_id(assignment_id: str) -> bool:
    return str(assignment_id).startswith(LOCAL_ID_PREFIX)


class StorageRouter:
    """
    Decides where a new personal task lives, based on the "keep on this device" choice.

    - device: appended to the on-device list, never sent to the backend
    - remote: inserted into `assignments` tagged with the owner; shows up on the next refresh

    Both paths yield the same Assignment shape. A failed remote insert raises
    RemoteWriteError; it is never retried on the device.
    """

    def __init__(self, backend: Backend, local_tasks: LocalTaskStore) -> None:
        self._backend = backend
        self._local = local_tasks

    async def create_personal_task(
        self,
        *,
        user_id: str,
        title: str,
        due_date: date | None,
        due_time: time | None = None,
        keep_on_device: bool,
        suggested_by: str | None = None,
    ) -> Assignment | None:
        """
        Create a personal task.

        Returns the new Assignment. For remote tasks this is the row echoed by the backend,
        or None when the backend returns nothing (the task then arrives with the next refresh).
        """
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        if not user_id:
            raise ValueError("user_id is required")

        if keep_on_device:
            task = Assignment(
                id=f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}",
                title=title,
                class_id=None,
                due_date=due_date,
                due_time=due_time,
                status=ModerationStatus.APPROVED,
                suggested_by=suggested_by,
                user_id=user_id,
                is_personal=True,
                storage=StorageLocation.DEVICE,
            )
            self._local.append_local_task(task)
            logger.info("Personal task stored on device id=%s", task.id)
            return task

        row = {
            "title": title,
            "class_id": None,
            "due_date": due_date.isoformat() if due_date else None,
            "due_time": due_time.strftime("%H:%M") if due_time else None,
            "status": ModerationStatus.APPROVED.value,
            "suggested_by": suggested_by,
            "user_id": user_id,
            "is_personal": True,
        }
        try:
            created = await self._backend.insert(TABLE_ASSIGNMENTS, row)
        except RemoteWriteError:
            raise
        except BackendError as e:
            raise RemoteWriteError(str(e), table=TABLE_ASSIGNMENTS, op="insert") from e

        logger.info("Personal task sent to backend user=%s", user_id)
        if not created:
            return None
        return replace(Assignment.from_row(created[0]), storage=StorageLocation.REMOTE)

    def delete_device_task(self, task_id: str) -> bool:
        return self._local.remove_local_task(task_id)

    def merge(self, remote: Iterable[Assignment], *, user_id: str | None) -> list[Assignment]:
        """Fetched assignments plus the caller's device-only tasks, in one collection."""
        out = [a for a in remote if not is_device_id(a.id)]
        for task in self._local.load_local_tasks():
            if isinstance(task, Assignment) and task.user_id == user_id:
                out.append(task)
        return out
