# src/classsync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the device store, preferences and the Supabase backend into a session.
"""

from __future__ import annotations

import logging

from ..backend.supabase_backend import create_supabase_backend
from ..config import get_settings
from ..core.errors import ConfigurationError
from ..core.ports import Backend
from ..core.session import ClassSyncSession
from ..core.state import AppState
from ..store.device_store import DeviceStore
from ..store.preferences import Preferences

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.device_store_path.parent.mkdir(parents=True, exist_ok=True)


async def create_session(*, settings=None, backend: Backend | None = None) -> ClassSyncSession:
    """
    Create the session controller from the provided settings.

    Keeping settings/backend injectable makes the app easier to test and avoids hidden
    global config reads. Without a usable backend the session starts in setup_required.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if backend is None:
        try:
            backend = await create_supabase_backend(settings)
        except ConfigurationError as e:
            logger.error("%s", e)
            backend = None

    prefs = Preferences(DeviceStore(settings.device_store_path))
    state = AppState(settings=settings)
    return ClassSyncSession(state, backend, prefs)
