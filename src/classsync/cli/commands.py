# src/classsync/cli/commands.py

from __future__ import annotations

import logging
import shlex
from collections.abc import Awaitable, Callable
from datetime import date, datetime, time

from ..core.errors import BannedError, ClassSyncError, ConfigurationError
from ..core.models import Assignment, ModerationStatus
from ..core.presentation import CLASS_TAG_COLORS, PALETTE, class_theme, link_domain, note_lines
from ..core.session import ClassSyncSession
from ..core.state import View
from ..core.urgency import Urgency

CommandHandler = Callable[[ClassSyncSession, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console connector (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, session: ClassSyncSession, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
            return "Unbalanced quotes. Use /help to list available commands."
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(session, args)
        except BannedError:
            return "Access Restricted: this account is banned."
        except ConfigurationError as e:
            return f"Config Missing: {e}"
        except (ClassSyncError, ValueError) as e:
            return str(e)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- parsing / formatting helpers ----


def parse_date_arg(raw: str) -> date | None:
    if raw in ("-", "none", ""):
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"Bad date {raw!r}, expected YYYY-MM-DD.") from None


def _maybe_time(args: list[str]) -> tuple[time | None, list[str]]:
    if args:
        try:
            return time.fromisoformat(args[0]), args[1:]
        except ValueError:
            pass
    return None, args


def _resolve_assignment(session: ClassSyncSession, token: str, pool: list[Assignment]) -> Assignment:
    """Accept a literal assignment id, or else a 1-based index into `pool`."""
    a = session.state.find_assignment(token)
    if a is not None:
        return a
    if token.isdigit() and 1 <= int(token) <= len(pool):
        return pool[int(token) - 1]
    raise ValueError(f"No assignment {token!r}.")


def format_assignment(session: ClassSyncSession, a: Assignment, urgency: Urgency | None) -> str:
    st = session.state
    cls = st.find_class(a.class_id)
    tag = "Personal" if a.is_personal else (cls.name if cls else "?")
    parts = [f"[{tag}] {a.title}"]
    if urgency is not None:
        parts.append(urgency.label + (" LATE" if urgency.is_late else ""))
    if a.due_date is not None:
        when = a.due_date.strftime("%a %b %d")
        if a.due_time is not None:
            when += " " + a.due_time.strftime("%H:%M")
        parts.append(when)

    ps = st.personal_states.get(a.id)
    if ps is not None and ps.personal_link:
        parts.append(f"<{link_domain(ps.personal_link)}>")
    line = " | ".join(parts)
    if ps is not None:
        for n in note_lines(ps.personal_note):
            line += f"\n      - {n}"
    return line


# ---- commands ----


async def cmd_help(session: ClassSyncSession, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(session: ClassSyncSession, args: list[str]) -> str:
    st = session.state
    who = st.profile.full_name if st.profile else "(signed out)"
    role = "admin" if st.profile and st.profile.is_admin else "student"
    moderation = "ON" if st.moderation.moderation_enabled else "OFF"
    return (
        "Status:\n"
        f"  View: {st.view.value}\n"
        f"  User: {who} ({role})\n"
        f"  Moderation: {moderation}\n"
        f"  Theme: {st.accent}{' / dark' if st.dark_mode else ''}"
    )


async def cmd_login(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /login <email> <password>"
    ok = await session.sign_in(args[0], args[1])
    if not ok:
        return f"Login failed: {session.state.auth_error}"
    if session.state.view is View.BANNED:
        return "Access Restricted: this account is banned."
    name = session.state.profile.full_name if session.state.profile else args[0]
    return f"Welcome, {name}."


async def cmd_signup(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) < 3:
        return "Usage: /signup <email> <password> <full name...>"
    ok = await session.sign_up(args[0], args[1], " ".join(args[2:]))
    if not ok:
        return f"Sign up failed: {session.state.auth_error}"
    return session.state.notice or "Signed up."


async def cmd_logout(session: ClassSyncSession, args: list[str]) -> str:
    await session.sign_out()
    return "Signed out."


async def cmd_view(session: ClassSyncSession, args: list[str]) -> str:
    if not args:
        return f"Current view: {session.state.view.value}"
    try:
        view = View(args[0].lower())
    except ValueError:
        return "Usage: /view dashboard|classes|history|admin"
    return f"View: {session.set_view(view).value}"


async def cmd_tasks(session: ClassSyncSession, args: list[str]) -> str:
    session.require_active()
    items = session.state.active_with_urgency(datetime.now())
    if not items:
        return "No pending assignments! Relax or check /history."
    lines = ["My Assignments:"]
    for i, (a, urgency) in enumerate(items, start=1):
        lines.append(f"{i:>3}. {format_assignment(session, a, urgency)}")
    undo = session.pending_undo()
    if undo is not None:
        lines.append("(just completed something? /undo)")
    return "\n".join(lines)


async def cmd_history(session: ClassSyncSession, args: list[str]) -> str:
    session.require_active()
    done = session.state.views().completed
    if not done:
        return "Nothing completed yet."
    lines = ["Completed:"]
    for i, a in enumerate(done, start=1):
        lines.append(f"{i:>3}. {format_assignment(session, a, None)}")
    return "\n".join(lines)


async def cmd_classes(session: ClassSyncSession, args: list[str]) -> str:
    _, profile = session.require_active()
    approved = [c for c in session.state.classes if c.status is ModerationStatus.APPROVED]
    if not approved:
        return "No classes yet. Suggest one with /suggest-class."
    lines = ["Classes:"]
    for c in approved:
        mark = "x" if profile.is_enrolled(c.id) else " "
        teacher = f" ({c.teacher})" if c.teacher else ""
        colour = class_theme(c.id, session.state.class_colors, session.state.accent).name
        lines.append(f"  [{mark}] {c.id}: {c.name}{teacher} <{colour}>")
    return "\n".join(lines)


async def cmd_enroll(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /enroll <class_id>"
    enrolled = await session.toggle_enrollment(args[0])
    return f"{'Enrolled in' if enrolled else 'Left'} class {args[0]}."


async def cmd_add(session: ClassSyncSession, args: list[str]) -> str:
    """/add <class_id> <YYYY-MM-DD> [HH:MM] <title...>"""
    if len(args) < 3:
        return "Usage: /add <class_id> <YYYY-MM-DD> [HH:MM] <title...>"
    class_id = args[0]
    due_date = parse_date_arg(args[1])
    if due_date is None:
        return "Class assignments need a due date."
    due_time, rest = _maybe_time(args[2:])
    status = await session.suggest_assignment(
        class_id=class_id, title=" ".join(rest), due_date=due_date, due_time=due_time
    )
    if status is None:
        return session.state.notice or "Submission failed."
    return "Published!" if status is ModerationStatus.APPROVED else "Sent for approval."


async def cmd_personal(session: ClassSyncSession, args: list[str]) -> str:
    """/personal [--device] <YYYY-MM-DD|-> [HH:MM] <title...>"""
    keep_on_device = False
    if args and args[0] in ("--device", "-d"):
        keep_on_device = True
        args = args[1:]
    if len(args) < 2:
        return "Usage: /personal [--device] <YYYY-MM-DD|-> [HH:MM] <title...>"
    due_date = parse_date_arg(args[0])
    due_time, rest = _maybe_time(args[1:])
    task = await session.create_personal_task(
        title=" ".join(rest), due_date=due_date, due_time=due_time, keep_on_device=keep_on_device
    )
    if task is None and session.state.notice:
        return session.state.notice
    return "Saved on this device." if keep_on_device else "Saved."


async def cmd_delete(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /delete <n|id>  (personal tasks only)"
    a = _resolve_assignment(session, args[0], session.state.views().active)
    ok = await session.delete_personal_task(a.id)
    return f"Deleted '{a.title}'." if ok else "Only your own personal tasks can be deleted."


async def cmd_done(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /done <n|id>"
    a = _resolve_assignment(session, args[0], session.state.views().active)
    await session.complete(a.id)
    window = getattr(session.state.settings, "undo_window_seconds", 5.0)
    return f"Completed '{a.title}'. /undo within {window:g}s to restore."


async def cmd_reopen(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /reopen <n|id>  (n from /history)"
    a = _resolve_assignment(session, args[0], session.state.views().completed)
    await session.reopen(a.id)
    return f"Reopened '{a.title}'."


async def cmd_undo(session: ClassSyncSession, args: list[str]) -> str:
    restored = await session.undo()
    if restored is None:
        return "Nothing to undo."
    a = session.state.find_assignment(restored.assignment_id)
    return f"Restored '{a.title if a else restored.assignment_id}'."


async def cmd_note(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) < 1:
        return 'Usage: /note <n|id> "<text>"   (quote it, \\n for new lines, empty text clears)'
    a = _resolve_assignment(session, args[0], session.state.views().active)
    note = " ".join(args[1:]).replace("\\n", "\n")
    await session.set_note(a.id, note)
    return "Note saved." if note else "Note cleared."


async def cmd_link(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) not in (1, 2):
        return "Usage: /link <n|id> [url]"
    a = _resolve_assignment(session, args[0], session.state.views().active)
    link = args[1] if len(args) == 2 else ""
    await session.set_link(a.id, link)
    return f"Link set: {link_domain(link)}" if link else "Link cleared."


async def cmd_suggest_class(session: ClassSyncSession, args: list[str]) -> str:
    if not args:
        return 'Usage: /suggest-class "<name>" ["<teacher>"]'
    status = await session.suggest_class(name=args[0], teacher=" ".join(args[1:]))
    if status is None:
        return session.state.notice or "Submission failed."
    return "Class Added!" if status is ModerationStatus.APPROVED else "Class suggested to Admin."


async def cmd_admin(session: ClassSyncSession, args: list[str]) -> str:
    _, profile = session.require_active()
    if not profile.is_admin:
        return "Admins only."
    v = session.state.views()
    lines = [f"Pending ({v.admin_badge_count}):"]
    for a in v.pending_assignments:
        cls = session.state.find_class(a.class_id)
        lines.append(f"  a {a.id}: {a.title} [{cls.name if cls else '?'}] by {a.suggested_by or '?'}")
    for c in v.pending_classes:
        lines.append(f"  c {c.id}: {c.name} by {c.suggested_by or '?'}")
    lines.append("Users:")
    for p in session.state.all_profiles:
        flags = "".join([" admin" if p.is_admin else "", " BANNED" if p.is_banned else ""])
        lines.append(f"  {p.id}: {p.full_name}{flags}")
    lines.append(f"Moderation: {'ON' if session.state.moderation.moderation_enabled else 'OFF'}")
    return "\n".join(lines)


async def _moderate(session: ClassSyncSession, args: list[str], status: ModerationStatus) -> str:
    if len(args) != 2 or args[0] not in ("a", "c"):
        return f"Usage: /{'approve' if status is ModerationStatus.APPROVED else 'reject'} a|c <id>"
    if args[0] == "a":
        ok = await session.update_assignment_status(args[1], status)
    else:
        ok = await session.update_class_status(args[1], status)
    return "Done." if ok else (session.state.notice or "Failed.")


async def cmd_approve(session: ClassSyncSession, args: list[str]) -> str:
    return await _moderate(session, args, ModerationStatus.APPROVED)


async def cmd_reject(session: ClassSyncSession, args: list[str]) -> str:
    return await _moderate(session, args, ModerationStatus.DELETED)


async def cmd_ban(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /ban <user_id>   (toggles)"
    banned = await session.toggle_user_ban(args[0])
    if banned is None:
        return session.state.notice or "Failed."
    return f"User {args[0]} {'banned' if banned else 'unbanned'}."


async def cmd_moderation(session: ClassSyncSession, args: list[str]) -> str:
    enabled = await session.toggle_moderation()
    return f"Moderation is now {'ON' if enabled else 'OFF'}."


async def cmd_theme(session: ClassSyncSession, args: list[str]) -> str:
    """
    /theme          -> show accent + dark mode
    /theme dark     -> toggle dark mode
    /theme <color>  -> set accent
    """
    if not args:
        return f"Accent: {session.state.accent}. Dark mode: {'ON' if session.state.dark_mode else 'OFF'}."
    arg = args[0].lower()
    if arg == "dark":
        return f"Dark mode {'ON' if session.toggle_dark_mode() else 'OFF'}."
    if arg not in PALETTE:
        return f"Unknown colour. Choose one of: {', '.join(PALETTE)}."
    session.set_accent(arg)
    return f"Accent set to {arg}."


async def cmd_color(session: ClassSyncSession, args: list[str]) -> str:
    if len(args) != 2 or args[1] not in CLASS_TAG_COLORS:
        return f"Usage: /color <class_id> {'|'.join(CLASS_TAG_COLORS)}"
    session.set_class_color(args[0], args[1])
    return f"Class {args[0]} is now {args[1]}."


async def cmd_refresh(session: ClassSyncSession, args: list[str]) -> str:
    ok = await session.refresh()
    return "Refreshed." if ok else (session.state.notice or "Nothing to refresh.")


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show who is signed in and current settings.")
registry.register("login", cmd_login, help_text="Sign in: /login <email> <password>.")
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password> <name>.")
registry.register("logout", cmd_logout, help_text="Sign out.")
registry.register("view", cmd_view, help_text="Switch view: /view dashboard|classes|history|admin.")
registry.register("tasks", cmd_tasks, help_text="List active assignments by due date.", aliases=["ls"])
registry.register("history", cmd_history, help_text="List completed assignments.")
registry.register("classes", cmd_classes, help_text="List classes and your enrollment.")
registry.register("enroll", cmd_enroll, help_text="Join/leave a class: /enroll <class_id>.")
registry.register("add", cmd_add, help_text="Suggest a class assignment: /add <class> <date> [time] <title>.")
registry.register(
    "personal", cmd_personal, help_text="Personal task: /personal [--device] <date|-> [time] <title>."
)
registry.register("delete", cmd_delete, help_text="Delete one of your personal tasks.")
registry.register("done", cmd_done, help_text="Mark an assignment complete: /done <n|id>.")
registry.register("reopen", cmd_reopen, help_text="Reopen a completed assignment: /reopen <n|id>.")
registry.register("undo", cmd_undo, help_text="Undo the last completion (short window).")
registry.register("note", cmd_note, help_text='Private note: /note <n|id> "<text>".')
registry.register("link", cmd_link, help_text="Private link: /link <n|id> [url].")
registry.register("suggest-class", cmd_suggest_class, help_text='Suggest a class: /suggest-class "<name>" [teacher].')
registry.register("admin", cmd_admin, help_text="Admin overview: pending items and users.")
registry.register("approve", cmd_approve, help_text="Approve: /approve a|c <id>.")
registry.register("reject", cmd_reject, help_text="Reject (delete): /reject a|c <id>.")
registry.register("ban", cmd_ban, help_text="Toggle a user's ban: /ban <user_id>.")
registry.register("moderation", cmd_moderation, help_text="Toggle the approval requirement.")
registry.register("theme", cmd_theme, help_text="Theme: /theme [dark|<colour>].")
registry.register("color", cmd_color, help_text="Class tag colour: /color <class_id> <colour>.")
registry.register("refresh", cmd_refresh, help_text="Re-fetch everything from the server.")
