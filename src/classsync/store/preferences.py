# src/classsync/store/preferences.py

"""
Typed access to on-device state stored in a KeyValueStore.

Every value is JSON text. Absent or malformed values read back as defaults and
never raise: a corrupt blob must not take the session down.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any

from ..core.models import Assignment, PersonalState, StorageLocation
from ..core.ports import KeyValueStore
from ..core.presentation import DEFAULT_ACCENT, is_palette_color
from ..core.state import DEFAULT_VIEW, PERSISTED_VIEWS, View

logger = logging.getLogger(__name__)

KEY_LAST_VIEW = "cs_last_view"
KEY_DARK = "cs_dark"
KEY_ACCENT = "cs_accent"
KEY_CLASS_COLORS = "cs_class_colors"
KEY_LOCAL_TASKS = "cs_local_tasks"
KEY_LOCAL_STATES = "cs_local_states"

_MISSING: Any = object()


class Preferences:
    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    # ---- JSON helpers ----

    def _read(self, key: str) -> Any:
        raw = self._kv.get(key)
        if raw is None:
            return _MISSING
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed device value key=%s", key)
            return _MISSING

    def _write(self, key: str, value: Any) -> None:
        self._kv.set(key, json.dumps(value, ensure_ascii=False))

    # ---- view ----

    def last_view(self) -> View:
        raw = self._read(KEY_LAST_VIEW)
        try:
            view = View(raw)
        except ValueError:
            return DEFAULT_VIEW
        return view if view in PERSISTED_VIEWS else DEFAULT_VIEW

    def set_last_view(self, view: View) -> None:
        # Transient screens (loading, auth, setup, banned) are never restored.
        if view in PERSISTED_VIEWS:
            self._write(KEY_LAST_VIEW, view.value)

    # ---- theme ----

    def dark_mode(self) -> bool:
        raw = self._read(KEY_DARK)
        return raw if isinstance(raw, bool) else False

    def set_dark_mode(self, enabled: bool) -> None:
        self._write(KEY_DARK, bool(enabled))

    def accent(self) -> str:
        raw = self._read(KEY_ACCENT)
        return raw if is_palette_color(raw) else DEFAULT_ACCENT

    def set_accent(self, accent: str) -> None:
        if not is_palette_color(accent):
            raise ValueError(f"unknown accent colour: {accent!r}")
        self._write(KEY_ACCENT, accent)

    def class_colors(self) -> dict[str, str]:
        raw = self._read(KEY_CLASS_COLORS)
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if is_palette_color(v)}

    def set_class_color(self, class_id: str, color: str) -> dict[str, str]:
        if not is_palette_color(color):
            raise ValueError(f"unknown class colour: {color!r}")
        colors = self.class_colors()
        colors[str(class_id)] = color
        self._write(KEY_CLASS_COLORS, colors)
        return colors

    # ---- device-only tasks (LocalTaskStore) ----

    def load_local_tasks(self) -> list[Assignment]:
        raw = self._read(KEY_LOCAL_TASKS)
        if not isinstance(raw, list):
            return []
        out: list[Assignment] = []
        for item in raw:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            out.append(replace(Assignment.from_row(item), storage=StorageLocation.DEVICE, is_personal=True))
        return out

    def append_local_task(self, task: Assignment) -> None:
        tasks = [t.to_row() for t in self.load_local_tasks()]
        tasks.append(task.to_row())
        self._write(KEY_LOCAL_TASKS, tasks)

    def remove_local_task(self, task_id: str) -> bool:
        tasks = self.load_local_tasks()
        kept = [t for t in tasks if t.id != task_id]
        if len(kept) == len(tasks):
            return False
        self._write(KEY_LOCAL_TASKS, [t.to_row() for t in kept])
        self.remove_local_state(task_id)
        return True

    # ---- personal state of device-only tasks ----

    def load_local_states(self) -> list[PersonalState]:
        raw = self._read(KEY_LOCAL_STATES)
        if not isinstance(raw, dict):
            return []
        return [PersonalState.from_row(v) for v in raw.values() if isinstance(v, dict)]

    def save_local_state(self, state: PersonalState) -> None:
        raw = self._read(KEY_LOCAL_STATES)
        states = raw if isinstance(raw, dict) else {}
        states[state.assignment_id] = state.to_row()
        self._write(KEY_LOCAL_STATES, states)

    def remove_local_state(self, assignment_id: str) -> None:
        raw = self._read(KEY_LOCAL_STATES)
        if isinstance(raw, dict) and assignment_id in raw:
            del raw[assignment_id]
            self._write(KEY_LOCAL_STATES, raw)
