# src/classsync/core/reconciler.py

"""
Personal state reconciler.

Keeps the caller's per-assignment PersonalState map and pushes changes outward:
- merges a partial update into the cached state and makes it visible immediately,
- persists it (backend upsert keyed by (user_id, assignment_id), or the device sink
  for device-only tasks),
- writes for the same key go out one at a time, in the order they were issued,
- arms a short undo slot when an assignment is marked complete.

The local map is the source of truth for the running session. A failed remote write
is logged and reported; whether the optimistic state is kept or rolled back is a policy.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from ..config import WRITE_POLICY_RETAIN, WRITE_POLICY_ROLLBACK
from .errors import BackendError
from .models import PersonalState
from .ports import STATES_CONFLICT_KEY, TABLE_STATES, Backend

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]
ErrorListener = Callable[[str, Exception], None]
LocalSink = Callable[[PersonalState], None]


@dataclass(slots=True, frozen=True)
class UndoSlot:
    assignment_id: str
    armed_at: float


class PersonalStateReconciler:
    def __init__(
        self,
        backend: Backend,
        *,
        user_id: str,
        undo_window_seconds: float = 5.0,
        failure_policy: str = WRITE_POLICY_RETAIN,
        clock: Callable[[], float] = time.monotonic,
        is_device_assignment: Callable[[str], bool] | None = None,
        persist_local: LocalSink | None = None,
        on_change: ChangeListener | None = None,
        on_error: ErrorListener | None = None,
    ) -> None:
        if failure_policy not in (WRITE_POLICY_RETAIN, WRITE_POLICY_ROLLBACK):
            raise ValueError(f"unknown write failure policy: {failure_policy!r}")

        self._backend = backend
        self.user_id = user_id
        self.undo_window_seconds = float(undo_window_seconds)
        self.failure_policy = failure_policy
        self._clock = clock
        self._is_device_assignment = is_device_assignment or (lambda _aid: False)
        self._persist_local = persist_local
        self._on_change = on_change
        self._on_error = on_error

        self._states: dict[str, PersonalState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._seq = 0
        self._latest_seq: dict[str, int] = {}
        # Last state the backend acknowledged (or returned on fetch), per key.
        self._confirmed: dict[str, PersonalState] = {}
        self._undo: UndoSlot | None = None
        self._undo_timer: asyncio.TimerHandle | None = None

    # ---- reads ----

    @property
    def states(self) -> Mapping[str, PersonalState]:
        return MappingProxyType(self._states)

    def get(self, assignment_id: str) -> PersonalState | None:
        return self._states.get(str(assignment_id))

    def in_flight(self, assignment_id: str) -> bool:
        lock = self._locks.get(str(assignment_id))
        return lock is not None and lock.locked()

    # ---- loading ----

    def load(self, states: Iterable[PersonalState]) -> None:
        """
        Replace the cached map with freshly fetched states.

        Keys with a write still in flight keep their local value: the fetch may have
        been answered before that write landed.
        """
        fresh = {s.assignment_id: s for s in states if s.user_id == self.user_id}
        confirmed = dict(fresh)
        for aid, st in self._states.items():
            if self.in_flight(aid):
                fresh[aid] = st
                if aid in self._confirmed:
                    confirmed[aid] = self._confirmed[aid]
        self._confirmed = confirmed
        self._states = fresh
        self._notify()

    # ---- writes ----

    async def apply_update(self, assignment_id: str, partial: Mapping[str, Any]) -> PersonalState:
        """
        Merge `partial` into the cached state and persist it.

        Only fields present in `partial` change. The merged state is visible through
        `get()` before the write is acknowledged; the merged state is returned.
        """
        aid = str(assignment_id)
        base = self._states.get(aid) or PersonalState(user_id=self.user_id, assignment_id=aid)
        new_state = base.merged(partial)

        self._seq += 1
        seq = self._seq
        self._latest_seq[aid] = seq
        self._states[aid] = new_state

        if partial.get("is_completed") is True:
            self._arm_undo(aid)

        self._notify()
        await self._persist(new_state, seq=seq)
        return new_state

    async def _persist(self, state: PersonalState, *, seq: int) -> None:
        aid = state.assignment_id

        if self._is_device_assignment(aid):
            if self._persist_local is not None:
                self._persist_local(state)
            return

        lock = self._locks.setdefault(aid, asyncio.Lock())
        async with lock:
            try:
                await self._backend.upsert(TABLE_STATES, state.to_row(), on_conflict=STATES_CONFLICT_KEY)
            except BackendError as e:
                logger.warning(
                    "Personal state write failed assignment=%s seq=%s policy=%s: %s",
                    aid,
                    seq,
                    self.failure_policy,
                    e,
                )
                self._handle_failure(aid, seq=seq, exc=e)
                return
            self._confirmed[aid] = state
        logger.debug("Personal state persisted assignment=%s seq=%s", aid, seq)

    def _handle_failure(self, aid: str, *, seq: int, exc: Exception) -> None:
        # Rollback waits for the newest write of the key, then restores what the backend last confirmed.
        if self.failure_policy == WRITE_POLICY_ROLLBACK and self._latest_seq.get(aid) == seq:
            confirmed = self._confirmed.get(aid)
            if confirmed is None:
                self._states.pop(aid, None)
            else:
                self._states[aid] = confirmed
            self._notify()

        if self._on_error is not None:
            self._on_error(aid, exc)

    # ---- undo ----

    def _arm_undo(self, aid: str) -> None:
        self._undo = UndoSlot(assignment_id=aid, armed_at=self._clock())

        if self._undo_timer is not None:
            self._undo_timer.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._undo_timer = None
            return
        self._undo_timer = loop.call_later(self.undo_window_seconds, self._expire_undo, self._undo)

    def _expire_undo(self, slot: UndoSlot) -> None:
        if self._undo is slot:
            self._undo = None
            self._undo_timer = None
            self._notify()

    def pending_undo(self) -> str | None:
        """Assignment id that can still be un-completed, or None once the window has passed."""
        slot = self._undo
        if slot is None:
            return None
        if self._clock() - slot.armed_at >= self.undo_window_seconds:
            self._undo = None
            return None
        return slot.assignment_id

    async def undo(self) -> PersonalState | None:
        """Re-open the last completed assignment if still within the undo window. No-op otherwise."""
        aid = self.pending_undo()
        if aid is None:
            return None
        self._undo = None
        if self._undo_timer is not None:
            self._undo_timer.cancel()
            self._undo_timer = None
        return await self.apply_update(aid, {"is_completed": False})

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
