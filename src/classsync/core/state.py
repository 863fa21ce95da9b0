# src/classsync/core/state.py

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from .models import Assignment, ClassRecord, ModerationSetting, PersonalState, Profile
from .ports import AuthSession
from .presentation import DEFAULT_ACCENT
from .reconciler import PersonalStateReconciler
from .urgency import Urgency
from .views import AssignmentViews, build_views, with_urgency

logger = logging.getLogger(__name__)


class View(StrEnum):
    LOADING = "loading"
    SETUP_REQUIRED = "setup_required"
    AUTH = "auth"
    BANNED = "banned"
    DASHBOARD = "dashboard"
    CLASSES = "classes"
    HISTORY = "history"
    ADMIN = "admin"


PERSISTED_VIEWS = frozenset({View.DASHBOARD, View.CLASSES, View.HISTORY, View.ADMIN})
DEFAULT_VIEW = View.DASHBOARD

StateListener = Callable[["AppState"], None]


@dataclass
class AppState:
    """
    In-memory view model of one running session.

    Mutations go through the session controller, which calls notify(); subscribers
    then recompute what they need (views(), urgency) from the current snapshot.
    """

    settings: object

    view: View = View.LOADING
    auth_session: AuthSession | None = None
    profile: Profile | None = None

    assignments: list[Assignment] = field(default_factory=list)
    classes: list[ClassRecord] = field(default_factory=list)
    all_profiles: list[Profile] = field(default_factory=list)
    moderation: ModerationSetting = field(default_factory=ModerationSetting)

    dark_mode: bool = False
    accent: str = DEFAULT_ACCENT
    class_colors: dict[str, str] = field(default_factory=dict)

    auth_error: str = ""
    notice: str | None = None

    reconciler: PersonalStateReconciler | None = None

    _listeners: list[StateListener] = field(default_factory=list, repr=False)

    # ---- observer ----

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("State listener crashed: %r", listener)

    def set_notice(self, text: str | None) -> None:
        self.notice = text
        self.notify()

    # ---- derived data ----

    @property
    def user_id(self) -> str | None:
        return self.auth_session.user_id if self.auth_session else None

    @property
    def personal_states(self) -> Mapping[str, PersonalState]:
        if self.reconciler is None:
            return {}
        return self.reconciler.states

    def find_assignment(self, assignment_id: str) -> Assignment | None:
        for a in self.assignments:
            if a.id == str(assignment_id):
                return a
        return None

    def find_class(self, class_id: str | None) -> ClassRecord | None:
        for c in self.classes:
            if c.id == class_id:
                return c
        return None

    def views(self) -> AssignmentViews:
        return build_views(
            self.assignments,
            self.classes,
            profile=self.profile,
            states=self.personal_states,
        )

    def active_with_urgency(self, now: datetime | None = None) -> list[tuple[Assignment, Urgency]]:
        """Active assignments classified against `now` (default: current local time)."""
        default_time = getattr(self.settings, "default_due_time", None)
        kwargs = {"default_time": default_time} if default_time is not None else {}
        return with_urgency(self.views().active, now or datetime.now(), **kwargs)
