# tests/test_supabase_backend.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from classsync.backend.supabase_backend import SupabaseBackend, create_supabase_backend
from classsync.core.errors import AuthError, BackendError, ConfigurationError, RemoteWriteError


class AuthApiError(Exception):
    """Same class name as the auth library's error; the adapter matches on it."""


class ConnectError(Exception):
    pass


class _Query:
    def __init__(self, client: "_Client", table: str, op: str, payload=None, **kw) -> None:
        self.client = client
        self.table = table
        self.op = op
        self.payload = payload
        self.kw = kw
        self.filters: list[tuple[str, object]] = []

    def eq(self, column: str, value: object) -> "_Query":
        self.filters.append((column, value))
        return self

    async def execute(self):
        self.client.executed.append(self)
        if self.client.error is not None:
            raise self.client.error
        return SimpleNamespace(data=self.client.data)


class _Table:
    def __init__(self, client: "_Client", name: str) -> None:
        self.client = client
        self.name = name

    def select(self, columns: str) -> _Query:
        return _Query(self.client, self.name, "select", columns)

    def insert(self, row) -> _Query:
        return _Query(self.client, self.name, "insert", row)

    def update(self, changes) -> _Query:
        return _Query(self.client, self.name, "update", changes)

    def delete(self) -> _Query:
        return _Query(self.client, self.name, "delete")

    def upsert(self, row, on_conflict: str) -> _Query:
        return _Query(self.client, self.name, "upsert", row, on_conflict=on_conflict)


class _Auth:
    def __init__(self) -> None:
        self.error: Exception | None = None
        self.sign_ups: list[dict] = []

    async def sign_in_with_password(self, credentials):
        if self.error is not None:
            raise self.error
        user = SimpleNamespace(id="u1", email=credentials["email"])
        return SimpleNamespace(session=SimpleNamespace(user=user))

    async def sign_up(self, payload):
        self.sign_ups.append(payload)


class _Client:
    def __init__(self) -> None:
        self.auth = _Auth()
        self.data: list[dict] = []
        self.error: Exception | None = None
        self.executed: list[_Query] = []

    def table(self, name: str) -> _Table:
        return _Table(self, name)


@pytest.mark.asyncio
async def test_select_applies_equality_filters() -> None:
    client = _Client()
    client.data = [{"id": "a1"}]
    backend = SupabaseBackend(client)

    rows = await backend.select("user_assignment_states", eq={"user_id": "u1"})

    assert rows == [{"id": "a1"}]
    q = client.executed[0]
    assert (q.table, q.op, q.filters) == ("user_assignment_states", "select", [("user_id", "u1")])


@pytest.mark.asyncio
async def test_upsert_passes_conflict_key() -> None:
    client = _Client()
    backend = SupabaseBackend(client)

    await backend.upsert("user_assignment_states", {"user_id": "u1"}, on_conflict="user_id,assignment_id")

    assert client.executed[0].kw == {"on_conflict": "user_id,assignment_id"}


@pytest.mark.asyncio
async def test_failures_are_translated() -> None:
    client = _Client()
    backend = SupabaseBackend(client)

    client.error = RuntimeError("permission denied for table classes")
    with pytest.raises(RemoteWriteError, match="permission denied"):
        await backend.update("classes", "c1", {"status": "approved"})
    with pytest.raises(BackendError) as exc_info:
        await backend.select("classes")
    assert not isinstance(exc_info.value, RemoteWriteError)

    client.error = ConnectError("boom")
    with pytest.raises(BackendError, match="Cannot reach the server"):
        await backend.select("classes")


@pytest.mark.asyncio
async def test_sign_in_maps_auth_errors() -> None:
    client = _Client()
    backend = SupabaseBackend(client)

    auth = await backend.sign_in(email="ada@example.com", password="pw")
    assert auth.user_id == "u1" and auth.email == "ada@example.com"

    client.auth.error = AuthApiError("Invalid login credentials")
    with pytest.raises(AuthError, match="Invalid login credentials"):
        await backend.sign_in(email="ada@example.com", password="bad")


@pytest.mark.asyncio
async def test_sign_up_sends_full_name_as_metadata() -> None:
    client = _Client()
    await SupabaseBackend(client).sign_up(email="n@example.com", password="pw", full_name="New Person")
    assert client.auth.sign_ups[0]["options"] == {"data": {"full_name": "New Person"}}


@pytest.mark.asyncio
async def test_missing_credentials_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        await create_supabase_backend(SimpleNamespace(supabase_url="", supabase_anon_key=""))
