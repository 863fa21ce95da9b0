# src/classsync/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.session import ClassSyncSession
from ..core.state import AppState, StateListener, View

logger = logging.getLogger(__name__)

_BLOCKED_MESSAGES = {
    View.SETUP_REQUIRED: "Config Missing in .env: set CLASSSYNC_SUPABASE_URL and CLASSSYNC_SUPABASE_ANON_KEY.",
    View.BANNED: "Access Restricted.",
}


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _notice_printer() -> StateListener:
    """State listener that prints each new transient notice once."""
    last: dict[str, str | None] = {"notice": None}

    def on_change(state: AppState) -> None:
        if state.notice and state.notice != last["notice"]:
            _print_ts(f"[!] {state.notice}")
        last["notice"] = state.notice

    return on_change


async def run_console_loop(session: ClassSyncSession) -> None:
    logger.info("Console connector started.")
    app_name = str(getattr(session.state.settings, "app_name", "ClassSync"))

    blocked = _BLOCKED_MESSAGES.get(session.state.view)
    if blocked is not None:
        _print_ts(blocked)
        return

    unsubscribe = session.state.subscribe(_notice_printer())
    _print_ts(f"[{app_name}] Type /help for commands, /login to sign in, /exit to quit.\n")

    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, f"{app_name}> ")).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not user_input.startswith("/"):
                _print_ts("Commands start with '/'. Try /help.")
                continue

            try:
                reply = await command_registry.handle(session, user_input)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is not None:
                _print_ts(reply)

            if session.state.view is View.BANNED:
                _print_ts(_BLOCKED_MESSAGES[View.BANNED])
    finally:
        unsubscribe()
