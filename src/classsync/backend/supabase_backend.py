# src/classsync/backend/supabase_backend.py

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from supabase import AsyncClient, acreate_client

from ..core.errors import AuthError, BackendError, ConfigurationError, RemoteWriteError
from ..core.ports import AuthListener, AuthSession, Row

logger = logging.getLogger(__name__)


def _is_auth_error(exc: Exception) -> bool:
    # supabase_auth/gotrue: AuthApiError, AuthInvalidCredentialsError, AuthWeakPasswordError, ...
    name = exc.__class__.__name__
    return name.startswith("Auth") and name.endswith("Error") and name != "AuthRetryableError"


def _is_connection_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "ConnectError",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
        "RemoteProtocolError",
        "AuthRetryableError",
    }


def _error_message(exc: Exception) -> str:
    # postgrest APIError keeps the server message in .message
    msg = getattr(exc, "message", None) or str(exc)
    return str(msg).strip() or exc.__class__.__name__


def _to_auth_session(session: Any) -> AuthSession | None:
    if session is None:
        return None
    user = getattr(session, "user", None)
    if user is None or getattr(user, "id", None) is None:
        return None
    return AuthSession(user_id=str(user.id), email=getattr(user, "email", None))


class SupabaseBackend:
    """
    Backend port implemented on the Supabase async client.

    Every Supabase/httpx exception is translated at this boundary:
    - credential problems -> AuthError
    - failed writes       -> RemoteWriteError
    - everything else     -> BackendError
    Row-level policies live on the server; this class does not re-check access.
    """

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    # ---- auth ----

    async def get_session(self) -> AuthSession | None:
        try:
            session = await self._client.auth.get_session()
        except Exception as e:
            raise BackendError(_error_message(e), op="get_session") from e
        return _to_auth_session(session)

    async def sign_in(self, *, email: str, password: str) -> AuthSession:
        if not email or not password:
            raise AuthError("Email and password are required.")
        try:
            resp = await self._client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            if _is_auth_error(e):
                raise AuthError(_error_message(e)) from e
            raise BackendError(_error_message(e), op="sign_in") from e

        auth = _to_auth_session(getattr(resp, "session", None))
        if auth is None:
            raise AuthError("Sign in failed.")
        logger.info("Signed in user=%s", auth.user_id)
        return auth

    async def sign_up(self, *, email: str, password: str, full_name: str) -> None:
        try:
            await self._client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": {"full_name": full_name}},
                }
            )
        except Exception as e:
            if _is_auth_error(e):
                raise AuthError(_error_message(e)) from e
            raise BackendError(_error_message(e), op="sign_up") from e
        logger.info("Sign up requested email=%s", email)

    async def sign_out(self) -> None:
        try:
            await self._client.auth.sign_out()
        except Exception as e:
            raise BackendError(_error_message(e), op="sign_out") from e

    def on_auth_change(self, listener: AuthListener) -> Callable[[], None]:
        def _callback(event: Any, session: Any) -> None:
            listener(str(event), _to_auth_session(session))

        subscription = self._client.auth.on_auth_state_change(_callback)
        return subscription.unsubscribe

    # ---- tables ----

    async def _execute(self, query: Any, *, table: str, op: str, write: bool) -> Any:
        try:
            return await query.execute()
        except Exception as e:
            logger.debug("Supabase %s on %s failed", op, table, exc_info=True)
            err_cls = RemoteWriteError if write else BackendError
            msg = "Cannot reach the server." if _is_connection_error(e) else _error_message(e)
            raise err_cls(msg, table=table, op=op) from e

    async def select(self, table: str, *, eq: Mapping[str, Any] | None = None) -> list[Row]:
        query = self._client.table(table).select("*")
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        resp = await self._execute(query, table=table, op="select", write=False)
        return list(resp.data or [])

    async def insert(self, table: str, row: Row) -> list[Row]:
        query = self._client.table(table).insert(row)
        resp = await self._execute(query, table=table, op="insert", write=True)
        return list(resp.data or [])

    async def update(self, table: str, row_id: Any, changes: Row) -> None:
        query = self._client.table(table).update(changes).eq("id", row_id)
        await self._execute(query, table=table, op="update", write=True)

    async def delete(self, table: str, row_id: Any) -> None:
        query = self._client.table(table).delete().eq("id", row_id)
        await self._execute(query, table=table, op="delete", write=True)

    async def upsert(self, table: str, row: Row, *, on_conflict: str) -> None:
        query = self._client.table(table).upsert(row, on_conflict=on_conflict)
        await self._execute(query, table=table, op="upsert", write=True)


async def create_supabase_backend(settings: Any) -> SupabaseBackend:
    """
    Build the backend from settings.

    Raises ConfigurationError when the URL/key are missing or the client can't be created;
    the caller then blocks the session instead of retrying.
    """
    url = str(getattr(settings, "supabase_url", "") or "").strip()
    key = str(getattr(settings, "supabase_anon_key", "") or "").strip()
    if not url or not key:
        raise ConfigurationError("Supabase URL/key are not set. Set CLASSSYNC_SUPABASE_URL in your .env.")

    try:
        client = await acreate_client(url, key)
    except Exception as e:
        raise ConfigurationError(f"Cannot create Supabase client: {_error_message(e)}") from e

    logger.info("Supabase backend ready url=%s", url)
    return SupabaseBackend(client)
