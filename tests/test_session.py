# tests/test_session.py

from __future__ import annotations

import asyncio
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from classsync.cli.bootstrap import create_session
from classsync.core.errors import BannedError, ConfigurationError, NotSignedInError
from classsync.core.models import ModerationStatus
from classsync.core.ports import AuthSession
from classsync.core.session import ClassSyncSession
from classsync.core.state import AppState, View
from classsync.core.urgency import UrgencyBucket
from classsync.store.preferences import Preferences

from .conftest import ADMIN, BANNED, STUDENT
from .fakes import FakeBackend, FakeClock


async def _sign_in(session: ClassSyncSession, who: tuple[str, str, str]) -> None:
    await session.start()
    assert await session.sign_in(who[0], who[1])
    # Let the auth listener's task run; it sees the session already loaded.
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_missing_backend_means_setup_required(settings: SimpleNamespace, prefs: Preferences) -> None:
    session = ClassSyncSession(AppState(settings=settings), None, prefs)
    await session.start()

    assert session.state.view is View.SETUP_REQUIRED
    with pytest.raises(ConfigurationError):
        await session.sign_in("a@b.c", "pw")
    with pytest.raises(ConfigurationError):
        await session.refresh()


@pytest.mark.asyncio
async def test_start_without_session_shows_auth(session: ClassSyncSession) -> None:
    await session.start()
    assert session.state.view is View.AUTH
    with pytest.raises(NotSignedInError):
        await session.complete("a1")


@pytest.mark.asyncio
async def test_start_with_existing_session_loads_data(session: ClassSyncSession, backend: FakeBackend) -> None:
    backend.session = AuthSession(user_id=STUDENT[2], email=STUDENT[0])
    await session.start()

    assert session.state.view is View.DASHBOARD
    assert session.state.profile.full_name == "Ada Student"
    assert {a.id for a in session.state.views().active} == {"a1", "a2", "a5"}


@pytest.mark.asyncio
async def test_bad_credentials_set_auth_error(session: ClassSyncSession) -> None:
    await session.start()
    assert await session.sign_in(STUDENT[0], "wrong") is False
    assert "Invalid" in session.state.auth_error
    assert session.state.view is View.AUTH


@pytest.mark.asyncio
async def test_sign_up_requires_name(session: ClassSyncSession, backend: FakeBackend) -> None:
    await session.start()
    assert await session.sign_up("new@example.com", "pw", "  ") is False
    assert session.state.auth_error == "Name required"
    assert backend.signups == []

    assert await session.sign_up("new@example.com", "pw", "New Person") is True
    assert backend.signups == [{"email": "new@example.com", "full_name": "New Person"}]
    assert session.state.notice == "Check your email for the confirmation link!"


@pytest.mark.asyncio
async def test_sign_in_loads_views_and_touches_last_seen(session: ClassSyncSession, backend: FakeBackend) -> None:
    await _sign_in(session, STUDENT)

    st = session.state
    assert st.view is View.DASHBOARD
    assert [a.id for a in st.views().active] == ["a2", "a1", "a5"]
    assert st.views().admin_badge_count == 0
    assert backend.find("profiles", "u1")["last_seen"]


@pytest.mark.asyncio
async def test_banned_profile_is_gated(session: ClassSyncSession, backend: FakeBackend) -> None:
    await _sign_in(session, BANNED)

    assert session.state.view is View.BANNED
    assert ("assignments", "select") not in backend.calls
    with pytest.raises(BannedError):
        await session.suggest_class(name="Chess")
    with pytest.raises(BannedError):
        await session.toggle_enrollment("c2")


@pytest.mark.asyncio
async def test_last_view_is_restored_and_admin_view_needs_admin(
    session: ClassSyncSession, prefs: Preferences
) -> None:
    prefs.set_last_view(View.ADMIN)
    await _sign_in(session, STUDENT)
    assert session.state.view is View.DASHBOARD

    assert session.set_view(View.HISTORY) is View.HISTORY
    assert prefs.last_view() is View.HISTORY
    assert session.set_view(View.ADMIN) is View.DASHBOARD


@pytest.mark.asyncio
async def test_complete_then_undo_through_session(session: ClassSyncSession, clock: FakeClock) -> None:
    await _sign_in(session, STUDENT)

    await session.complete("a1")
    assert "a1" not in {a.id for a in session.state.views().active}
    assert [a.id for a in session.state.views().completed] == ["a1"]
    assert session.pending_undo() == "a1"

    clock.advance(2.0)
    await session.undo()
    assert "a1" in {a.id for a in session.state.views().active}


@pytest.mark.asyncio
async def test_personal_state_survives_refresh(session: ClassSyncSession) -> None:
    await _sign_in(session, STUDENT)
    await session.set_note("a2", "chapter 3")
    await session.set_link("a2", "https://www.khanacademy.org/x")

    await session.refresh()

    st = session.state.personal_states["a2"]
    assert st.personal_note == "chapter 3"
    assert st.personal_link == "https://www.khanacademy.org/x"


@pytest.mark.asyncio
async def test_write_failure_is_reported_not_raised(session: ClassSyncSession, backend: FakeBackend) -> None:
    await _sign_in(session, STUDENT)
    backend.fail_ops.add(("user_assignment_states", "upsert"))

    await session.complete("a1")

    assert session.state.notice == "Couldn't save your changes to 'Homework 4'."
    assert session.state.personal_states["a1"].is_completed is True


@pytest.mark.asyncio
async def test_device_task_survives_refresh_and_stays_local(
    session: ClassSyncSession, backend: FakeBackend
) -> None:
    await _sign_in(session, STUDENT)

    task = await session.create_personal_task(title="Buy graph paper", due_date=None, keep_on_device=True)
    assert task is not None
    assert task.id in {a.id for a in session.state.views().active}

    await session.refresh()
    assert task.id in {a.id for a in session.state.views().active}
    assert all(r["title"] != "Buy graph paper" for r in backend.rows("assignments"))

    await session.complete(task.id)
    assert ("user_assignment_states", "upsert") not in backend.calls
    await session.refresh()
    assert session.state.personal_states[task.id].is_completed is True


@pytest.mark.asyncio
async def test_remote_personal_task_failure_stores_nothing(
    session: ClassSyncSession, backend: FakeBackend, prefs: Preferences
) -> None:
    await _sign_in(session, STUDENT)
    backend.fail_ops.add(("assignments", "insert"))

    task = await session.create_personal_task(title="Dentist", due_date=date(2024, 6, 12), keep_on_device=False)

    assert task is None
    assert session.state.notice == "Couldn't save the task online. Nothing was stored."
    assert prefs.load_local_tasks() == []
    assert "Dentist" not in {a.title for a in session.state.assignments}


@pytest.mark.asyncio
async def test_remote_personal_task_appears_after_refresh(session: ClassSyncSession) -> None:
    await _sign_in(session, STUDENT)
    await session.create_personal_task(title="Dentist", due_date=date(2024, 6, 12), keep_on_device=False)

    titles = [a.title for a in session.state.views().active]
    assert "Dentist" in titles


@pytest.mark.asyncio
async def test_suggestion_status_follows_moderation(session: ClassSyncSession, backend: FakeBackend) -> None:
    await _sign_in(session, STUDENT)

    status = await session.suggest_assignment(class_id="c1", title="Worksheet", due_date=date(2024, 6, 13))
    assert status is ModerationStatus.PENDING
    assert session.state.notice == "Sent for approval."
    assert "Worksheet" not in {a.title for a in session.state.views().active}

    backend.find("app_settings", 1)["moderation_enabled"] = False
    await session.refresh()
    status = await session.suggest_assignment(class_id="c1", title="Poster", due_date=date(2024, 6, 13))
    assert status is ModerationStatus.APPROVED
    assert session.state.notice == "Published!"
    assert "Poster" in {a.title for a in session.state.views().active}

    # Classes always need an admin.
    assert await session.suggest_class(name="Chess", teacher="Mr. Kasparov") is ModerationStatus.PENDING
    assert session.state.notice == "Class suggested to Admin."


@pytest.mark.asyncio
async def test_suggestion_requires_enrollment(session: ClassSyncSession) -> None:
    await _sign_in(session, STUDENT)
    with pytest.raises(ValueError):
        await session.suggest_assignment(class_id="c2", title="Essay 2", due_date=date(2024, 6, 13))


@pytest.mark.asyncio
async def test_toggle_enrollment_updates_profile(session: ClassSyncSession, backend: FakeBackend) -> None:
    await _sign_in(session, STUDENT)

    assert await session.toggle_enrollment("c2") is True
    assert backend.find("profiles", "u1")["enrolled_classes"] == ["c1", "c2"]
    assert "a3" in {a.id for a in session.state.views().active}

    assert await session.toggle_enrollment("c2") is False
    assert "a3" not in {a.id for a in session.state.views().active}


@pytest.mark.asyncio
async def test_admin_moderation_flow(session: ClassSyncSession, backend: FakeBackend) -> None:
    await _sign_in(session, ADMIN)

    v = session.state.views()
    assert [a.id for a in v.pending_assignments] == ["a4"]
    assert [c.id for c in v.pending_classes] == ["c3"]
    assert v.admin_badge_count == 2
    assert {p.id for p in session.state.all_profiles} == {"u1", "admin1", "banned1"}

    assert await session.update_assignment_status("a4", ModerationStatus.APPROVED)
    assert backend.find("assignments", "a4")["status"] == "approved"
    assert await session.update_class_status("c3", ModerationStatus.DELETED)
    assert backend.find("classes", "c3") is None
    assert session.state.views().admin_badge_count == 0

    assert await session.suggest_class(name="Robotics") is ModerationStatus.APPROVED
    assert session.state.notice == "Class Added!"


@pytest.mark.asyncio
async def test_admin_ban_and_moderation_toggles(session: ClassSyncSession, backend: FakeBackend) -> None:
    await _sign_in(session, ADMIN)

    assert await session.toggle_user_ban("u1") is True
    assert backend.find("profiles", "u1")["is_banned"] is True
    assert await session.toggle_user_ban("u1") is False

    assert await session.toggle_moderation() is False
    assert backend.find("app_settings", 1)["moderation_enabled"] is False


@pytest.mark.asyncio
async def test_sign_out_clears_session(session: ClassSyncSession) -> None:
    await _sign_in(session, STUDENT)
    await session.sign_out()
    await asyncio.sleep(0)

    st = session.state
    assert st.view is View.AUTH
    assert st.profile is None
    assert st.assignments == []
    assert st.reconciler is None


@pytest.mark.asyncio
async def test_active_with_urgency_uses_configured_end_of_day(session: ClassSyncSession) -> None:
    await _sign_in(session, STUDENT)
    pairs = session.state.active_with_urgency(datetime(2024, 6, 9, 10, 0))
    buckets = {a.id: u.bucket for a, u in pairs}
    # a2 is due 2024-06-10 18:00, a5 has no date.
    assert buckets["a2"] is UrgencyBucket.SOON
    assert buckets["a5"] is UrgencyBucket.NO_DATE


@pytest.mark.asyncio
async def test_bootstrap_without_credentials_blocks_the_session(settings: SimpleNamespace) -> None:
    settings.supabase_url = ""
    settings.supabase_anon_key = ""
    session = await create_session(settings=settings)
    await session.start()

    assert session.backend is None
    assert session.state.view is View.SETUP_REQUIRED
    assert settings.device_store_path.exists()


@pytest.mark.asyncio
async def test_personal_task_calls_without_router_raise_configuration_error(session: ClassSyncSession) -> None:
    await _sign_in(session, STUDENT)
    session.router = None

    with pytest.raises(ConfigurationError):
        await session.create_personal_task(title="Dentist", due_date=None, keep_on_device=True)
    with pytest.raises(ConfigurationError):
        await session.refresh()
