# src/classsync/core/session.py

"""
Session controller.

Owns the flow of one running client: auth, profile/data fetches, enrollment,
suggestions, admin moderation, personal tasks and view routing. Every mutation
lands in AppState and ends with state.notify().

Error policy:
- no backend configured -> SETUP_REQUIRED, no remote calls at all
- auth problems         -> state.auth_error, user retries
- banned profile        -> BANNED view, session-gated writes raise BannedError
- remote failures       -> caught here, logged and shown as state.notice
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import date, datetime, timezone
from datetime import time as dtime
from typing import Any

from ..store.preferences import Preferences
from .errors import AuthError, BackendError, BannedError, ConfigurationError, NotSignedInError
from .models import (
    Assignment,
    ClassRecord,
    ModerationSetting,
    ModerationStatus,
    PersonalState,
    Profile,
)
from .ports import (
    SETTINGS_ROW_ID,
    TABLE_ASSIGNMENTS,
    TABLE_CLASSES,
    TABLE_PROFILES,
    TABLE_SETTINGS,
    TABLE_STATES,
    AuthSession,
    Backend,
)
from .reconciler import PersonalStateReconciler
from .state import PERSISTED_VIEWS, AppState, View
from .storage_router import StorageRouter, is_device_id

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClassSyncSession:
    def __init__(
        self,
        state: AppState,
        backend: Backend | None,
        preferences: Preferences,
        *,
        clock: Callable[[], float] = time.monotonic,
        utcnow: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.state = state
        self.backend = backend
        self.prefs = preferences
        self._clock = clock
        self._utcnow = utcnow

        self.router = StorageRouter(backend, preferences) if backend is not None else None
        self._unsubscribe_auth: Callable[[], None] | None = None
        self._load_lock = asyncio.Lock()
        self._bg_tasks: set[asyncio.Task[Any]] = set()

    # ---- lifecycle ----

    async def start(self) -> None:
        st = self.state
        st.dark_mode = self.prefs.dark_mode()
        st.accent = self.prefs.accent()
        st.class_colors = self.prefs.class_colors()

        if self.backend is None:
            logger.error("Backend is not configured; entering setup_required.")
            st.view = View.SETUP_REQUIRED
            st.notify()
            return

        self._unsubscribe_auth = self.backend.on_auth_change(self._handle_auth_event)

        try:
            auth = await self.backend.get_session()
        except BackendError as e:
            logger.error("Backend unreachable on startup: %s", e)
            st.view = View.SETUP_REQUIRED
            st.notify()
            return

        if auth is None:
            st.view = View.AUTH
            st.notify()
            return
        await self._on_signed_in(auth)

    async def close(self) -> None:
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        for task in list(self._bg_tasks):
            task.cancel()

    def _require_backend(self) -> Backend:
        if self.backend is None or self.state.view is View.SETUP_REQUIRED:
            raise ConfigurationError("Backend is not configured. Set CLASSSYNC_SUPABASE_URL and key.")
        return self.backend

    def _require_router(self) -> StorageRouter:
        self._require_backend()
        if self.router is None:
            raise ConfigurationError("Storage router is not available without a backend.")
        return self.router

    def require_active(self) -> tuple[Backend, Profile]:
        backend = self._require_backend()
        profile = self.state.profile
        if self.state.auth_session is None or profile is None:
            raise NotSignedInError("Sign in first.")
        if profile.is_banned:
            raise BannedError(profile.id)
        return backend, profile

    def _require_reconciler(self) -> PersonalStateReconciler:
        self.require_active()
        if self.state.reconciler is None:
            raise NotSignedInError("Data has not been loaded yet.")
        return self.state.reconciler

    # ---- auth ----

    def _handle_auth_event(self, event: str, auth: AuthSession | None) -> None:
        logger.debug("Auth event=%s user=%s", event, auth.user_id if auth else None)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Auth event %s outside of the event loop; ignored.", event)
            return
        coro = self._on_signed_in(auth) if auth is not None else self._on_signed_out()
        task = loop.create_task(coro)
        self._bg_tasks.add(task)
        task.add_done_callback(self._bg_tasks.discard)

    async def _on_signed_in(self, auth: AuthSession) -> None:
        async with self._load_lock:
            st = self.state
            if st.auth_session == auth and st.profile is not None:
                return
            st.auth_session = auth
            st.auth_error = ""
            await self.fetch_profile()
            if st.view not in (View.BANNED, View.AUTH):
                await self.refresh()

    async def _on_signed_out(self) -> None:
        async with self._load_lock:
            st = self.state
            st.auth_session = None
            st.profile = None
            st.assignments = []
            st.classes = []
            st.all_profiles = []
            st.reconciler = None
            st.view = View.AUTH
            st.notify()

    async def sign_in(self, email: str, password: str) -> bool:
        backend = self._require_backend()
        self.state.auth_error = ""
        try:
            auth = await backend.sign_in(email=email.strip(), password=password)
        except AuthError as e:
            self.state.auth_error = str(e) or "Sign in failed."
            self.state.notify()
            return False
        await self._on_signed_in(auth)
        return True

    async def sign_up(self, email: str, password: str, full_name: str) -> bool:
        backend = self._require_backend()
        self.state.auth_error = ""
        if not (full_name or "").strip():
            self.state.auth_error = "Name required"
            self.state.notify()
            return False
        try:
            await backend.sign_up(email=email.strip(), password=password, full_name=full_name.strip())
        except AuthError as e:
            self.state.auth_error = str(e) or "Sign up failed."
            self.state.notify()
            return False
        self.state.set_notice("Check your email for the confirmation link!")
        return True

    async def sign_out(self) -> None:
        backend = self._require_backend()
        try:
            await backend.sign_out()
        except BackendError:
            logger.exception("Sign out failed; clearing the local session anyway.")
        await self._on_signed_out()

    # ---- fetching ----

    async def fetch_profile(self) -> Profile | None:
        backend = self._require_backend()
        st = self.state
        user_id = st.user_id
        if user_id is None:
            return None

        try:
            rows = await backend.select(TABLE_PROFILES, eq={"id": user_id})
        except BackendError as e:
            logger.error("Profile fetch failed user=%s: %s", user_id, e)
            st.profile = None
            st.view = View.AUTH
            st.set_notice("Could not load your profile. Try again.")
            return None

        if not rows:
            logger.warning("No profile row for user=%s", user_id)
            st.profile = None
            st.view = View.AUTH
            st.set_notice("Profile not found.")
            return None

        profile = Profile.from_row(rows[0])
        st.profile = profile
        if profile.is_banned:
            logger.info("Banned profile signed in user=%s", user_id)
            st.view = View.BANNED
            st.notify()
            return profile

        st.view = self.prefs.last_view()
        if st.view is View.ADMIN and not profile.is_admin:
            st.view = View.DASHBOARD
        st.notify()

        try:
            await backend.update(TABLE_PROFILES, user_id, {"last_seen": self._utcnow().isoformat()})
        except BackendError as e:
            logger.warning("last_seen update failed user=%s: %s", user_id, e)
        return profile

    def _build_reconciler(self, user_id: str) -> PersonalStateReconciler:
        settings = self.state.settings
        return PersonalStateReconciler(
            self._require_backend(),
            user_id=user_id,
            undo_window_seconds=float(getattr(settings, "undo_window_seconds", 5.0)),
            failure_policy=str(getattr(settings, "write_failure_policy", "retain")),
            clock=self._clock,
            is_device_assignment=is_device_id,
            persist_local=self.prefs.save_local_state,
            on_change=self.state.notify,
            on_error=self._on_write_error,
        )

    def _on_write_error(self, assignment_id: str, exc: Exception) -> None:
        a = self.state.find_assignment(assignment_id)
        title = a.title if a else assignment_id
        self.state.set_notice(f"Couldn't save your changes to '{title}'.")

    async def refresh(self) -> bool:
        """Full re-fetch of everything the signed-in profile can see."""
        backend = self._require_backend()
        st = self.state
        user_id = st.user_id
        if user_id is None or st.profile is None or st.profile.is_banned:
            return False

        try:
            class_rows = await backend.select(TABLE_CLASSES)
            assignment_rows = await backend.select(TABLE_ASSIGNMENTS)
            state_rows = await backend.select(TABLE_STATES, eq={"user_id": user_id})
            settings_rows = await backend.select(TABLE_SETTINGS)
            profile_rows = await backend.select(TABLE_PROFILES) if st.profile.is_admin else []
        except BackendError as e:
            logger.error("Refresh failed user=%s: %s", user_id, e)
            st.set_notice("Could not refresh data.")
            return False

        st.classes = [ClassRecord.from_row(r) for r in class_rows]
        remote = [Assignment.from_row(r) for r in assignment_rows]
        st.assignments = self._require_router().merge(remote, user_id=user_id)
        st.moderation = ModerationSetting.from_row(settings_rows[0] if settings_rows else None)
        st.all_profiles = [Profile.from_row(r) for r in profile_rows]

        if st.reconciler is None or st.reconciler.user_id != user_id:
            st.reconciler = self._build_reconciler(user_id)
        states = [PersonalState.from_row(r) for r in state_rows]
        states.extend(self.prefs.load_local_states())
        # load() notifies.
        st.reconciler.load(states)

        logger.info(
            "Refreshed user=%s classes=%d assignments=%d states=%d",
            user_id,
            len(st.classes),
            len(st.assignments),
            len(states),
        )
        return True

    # ---- routing / personalization ----

    def set_view(self, view: View) -> View:
        st = self.state
        if view not in PERSISTED_VIEWS:
            raise ValueError(f"cannot navigate to {view.value!r}")
        if st.view in (View.SETUP_REQUIRED, View.AUTH, View.BANNED, View.LOADING):
            return st.view
        if view is View.ADMIN and not (st.profile and st.profile.is_admin):
            view = View.DASHBOARD
        st.view = view
        self.prefs.set_last_view(view)
        st.notify()
        return view

    def set_accent(self, accent: str) -> None:
        self.prefs.set_accent(accent)
        self.state.accent = accent
        self.state.notify()

    def toggle_dark_mode(self) -> bool:
        self.state.dark_mode = not self.state.dark_mode
        self.prefs.set_dark_mode(self.state.dark_mode)
        self.state.notify()
        return self.state.dark_mode

    def set_class_color(self, class_id: str, color: str) -> None:
        self.state.class_colors = self.prefs.set_class_color(class_id, color)
        self.state.notify()

    # ---- enrollment / suggestions ----

    async def toggle_enrollment(self, class_id: str) -> bool:
        """Enroll in or leave a class. Returns the new enrollment flag."""
        backend, profile = self.require_active()
        class_id = str(class_id)
        current = list(profile.enrolled_classes)
        if class_id in current:
            updated = [c for c in current if c != class_id]
        else:
            updated = [*current, class_id]

        self.state.profile = replace(profile, enrolled_classes=tuple(updated))
        self.state.notify()
        try:
            await backend.update(TABLE_PROFILES, profile.id, {"enrolled_classes": updated})
        except BackendError as e:
            logger.warning("Enrollment update failed user=%s class=%s: %s", profile.id, class_id, e)
            self.state.set_notice("Couldn't save your class list.")
        return class_id in updated

    def initial_status(self, *, for_class: bool = False) -> ModerationStatus:
        """
        Status requested for a new submission.

        Only a hint: the row the backend hands back is what the client trusts.
        Classes ignore the moderation toggle, they always need an admin.
        """
        profile = self.state.profile
        if profile is not None and profile.is_admin:
            return ModerationStatus.APPROVED
        if not for_class and not self.state.moderation.moderation_enabled:
            return ModerationStatus.APPROVED
        return ModerationStatus.PENDING

    async def suggest_assignment(
        self, *, class_id: str, title: str, due_date: date, due_time: dtime | None = None
    ) -> ModerationStatus | None:
        backend, profile = self.require_active()
        title = (title or "").strip()
        if not title or not class_id or due_date is None:
            raise ValueError("class, title and due date are required")
        if not profile.is_enrolled(str(class_id)):
            raise ValueError("Enroll in a class first.")

        status = self.initial_status()
        row = {
            "title": title,
            "class_id": str(class_id),
            "due_date": due_date.isoformat(),
            "due_time": due_time.strftime("%H:%M") if due_time else None,
            "suggested_by": profile.full_name,
            "status": status.value,
        }
        try:
            created = await backend.insert(TABLE_ASSIGNMENTS, row)
        except BackendError as e:
            logger.error("Assignment insert failed user=%s: %s", profile.id, e)
            self.state.set_notice("Couldn't submit the assignment.")
            return None

        if created:
            status = ModerationStatus.from_db(created[0].get("status"))
        await self.refresh()
        self.state.set_notice("Published!" if status is ModerationStatus.APPROVED else "Sent for approval.")
        return status

    async def suggest_class(self, *, name: str, teacher: str = "") -> ModerationStatus | None:
        backend, profile = self.require_active()
        name = (name or "").strip()
        if not name:
            raise ValueError("class name is required")

        status = self.initial_status(for_class=True)
        row = {
            "name": name,
            "teacher": (teacher or "").strip(),
            "suggested_by": profile.full_name,
            "status": status.value,
        }
        try:
            created = await backend.insert(TABLE_CLASSES, row)
        except BackendError as e:
            logger.error("Class insert failed user=%s: %s", profile.id, e)
            self.state.set_notice("Couldn't submit the class.")
            return None

        if created:
            status = ModerationStatus.from_db(created[0].get("status"))
        await self.refresh()
        self.state.set_notice("Class Added!" if status is ModerationStatus.APPROVED else "Class suggested to Admin.")
        return status

    # ---- personal tasks ----

    async def create_personal_task(
        self,
        *,
        title: str,
        due_date: date | None,
        due_time: dtime | None = None,
        keep_on_device: bool,
    ) -> Assignment | None:
        _, profile = self.require_active()
        router = self._require_router()
        self.state.set_notice(None)
        try:
            task = await router.create_personal_task(
                user_id=profile.id,
                title=title,
                due_date=due_date,
                due_time=due_time,
                keep_on_device=keep_on_device,
                suggested_by=profile.full_name,
            )
        except BackendError as e:
            logger.error("Personal task insert failed user=%s: %s", profile.id, e)
            self.state.set_notice("Couldn't save the task online. Nothing was stored.")
            return None

        if keep_on_device and task is not None:
            self.state.assignments = [*self.state.assignments, task]
            self.state.notify()
            return task

        await self.refresh()
        return task

    async def delete_personal_task(self, assignment_id: str) -> bool:
        backend, profile = self.require_active()
        a = self.state.find_assignment(assignment_id)
        if a is None or not a.is_owned_by(profile.id):
            return False

        if is_device_id(a.id):
            self._require_router().delete_device_task(a.id)
        else:
            try:
                await backend.delete(TABLE_ASSIGNMENTS, a.id)
            except BackendError as e:
                logger.error("Personal task delete failed id=%s: %s", a.id, e)
                self.state.set_notice("Couldn't delete the task.")
                return False

        self.state.assignments = [x for x in self.state.assignments if x.id != a.id]
        self.state.notify()
        return True

    # ---- personal state ----

    async def update_personal_state(self, assignment_id: str, partial: Mapping[str, Any]) -> PersonalState:
        return await self._require_reconciler().apply_update(assignment_id, partial)

    async def complete(self, assignment_id: str) -> PersonalState:
        return await self.update_personal_state(assignment_id, {"is_completed": True})

    async def reopen(self, assignment_id: str) -> PersonalState:
        return await self.update_personal_state(assignment_id, {"is_completed": False})

    async def set_note(self, assignment_id: str, note: str) -> PersonalState:
        return await self.update_personal_state(assignment_id, {"personal_note": note})

    async def set_link(self, assignment_id: str, link: str) -> PersonalState:
        return await self.update_personal_state(assignment_id, {"personal_link": link})

    def pending_undo(self) -> str | None:
        rec = self.state.reconciler
        return rec.pending_undo() if rec is not None else None

    async def undo(self) -> PersonalState | None:
        return await self._require_reconciler().undo()

    # ---- admin ----
    # Access is enforced by the backend's row policies; the client only hides the controls.

    async def update_assignment_status(self, assignment_id: str, status: ModerationStatus) -> bool:
        backend, _ = self.require_active()
        try:
            if status is ModerationStatus.DELETED:
                await backend.delete(TABLE_ASSIGNMENTS, assignment_id)
            else:
                await backend.update(TABLE_ASSIGNMENTS, assignment_id, {"status": status.value})
        except BackendError as e:
            logger.error("Assignment moderation failed id=%s status=%s: %s", assignment_id, status, e)
            self.state.set_notice("Moderation action failed.")
            return False
        await self.refresh()
        return True

    async def update_class_status(self, class_id: str, status: ModerationStatus) -> bool:
        backend, _ = self.require_active()
        try:
            if status is ModerationStatus.DELETED:
                await backend.delete(TABLE_CLASSES, class_id)
            else:
                await backend.update(TABLE_CLASSES, class_id, {"status": status.value})
        except BackendError as e:
            logger.error("Class moderation failed id=%s status=%s: %s", class_id, status, e)
            self.state.set_notice("Moderation action failed.")
            return False
        await self.refresh()
        return True

    async def toggle_user_ban(self, user_id: str) -> bool | None:
        """Flip a profile's banned flag. Returns the new flag, None on failure."""
        backend, _ = self.require_active()
        target = next((p for p in self.state.all_profiles if p.id == str(user_id)), None)
        if target is None:
            raise ValueError(f"unknown profile: {user_id}")
        banned = not target.is_banned
        try:
            await backend.update(TABLE_PROFILES, target.id, {"is_banned": banned})
        except BackendError as e:
            logger.error("Ban toggle failed user=%s: %s", target.id, e)
            self.state.set_notice("Couldn't update the user.")
            return None
        await self.refresh()
        return banned

    async def toggle_moderation(self) -> bool:
        backend, _ = self.require_active()
        st = self.state
        new_val = not st.moderation.moderation_enabled
        st.moderation = ModerationSetting(moderation_enabled=new_val)
        st.notify()
        try:
            await backend.update(TABLE_SETTINGS, SETTINGS_ROW_ID, {"moderation_enabled": new_val})
        except BackendError as e:
            logger.warning("Moderation toggle failed: %s", e)
            st.set_notice("Couldn't save the moderation setting.")
        return new_val
