# src/classsync/core/ports.py

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the hosted backend and the on-device storage swappable and makes testing easier.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

Row = dict[str, Any]

# Collections exposed by the backend.
TABLE_PROFILES = "profiles"
TABLE_CLASSES = "classes"
TABLE_ASSIGNMENTS = "assignments"
TABLE_STATES = "user_assignment_states"
TABLE_SETTINGS = "app_settings"

# Composite key of user_assignment_states.
STATES_CONFLICT_KEY = "user_id,assignment_id"

SETTINGS_ROW_ID = 1


@dataclass(slots=True, frozen=True)
class AuthSession:
    user_id: str
    email: str | None = None


AuthListener = Callable[[str, AuthSession | None], None]
# (event name, session or None after sign-out)


class Backend(Protocol):
    """
    Backend-as-a-service surface consumed by the core: auth + table access.

    Every call is a coroutine. Implementations raise AuthError for credential
    problems and BackendError for everything else that fails remotely.
    """

    async def get_session(self) -> AuthSession | None: ...
    async def sign_in(self, *, email: str, password: str) -> AuthSession: ...
    async def sign_up(self, *, email: str, password: str, full_name: str) -> None: ...
    async def sign_out(self) -> None: ...
    def on_auth_change(self, listener: AuthListener) -> Callable[[], None]: ...

    async def select(self, table: str, *, eq: Mapping[str, Any] | None = None) -> list[Row]: ...
    async def insert(self, table: str, row: Row) -> list[Row]: ...
    async def update(self, table: str, row_id: Any, changes: Row) -> None: ...
    async def delete(self, table: str, row_id: Any) -> None: ...
    async def upsert(self, table: str, row: Row, *, on_conflict: str) -> None: ...


class KeyValueStore(Protocol):
    """On-device string blobs (the browser localStorage equivalent)."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


class LocalTaskStore(Protocol):
    """Device-only personal tasks, kept as one serialized list."""

    def load_local_tasks(self) -> list[Any]: ...
    def append_local_task(self, task: Any) -> None: ...
    def remove_local_task(self, task_id: str) -> bool: ...
