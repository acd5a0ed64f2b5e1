"""Shared fixtures: in-memory fakes for the hosted backend."""

import os

# Settings are read at import time by the rate limiter
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("ENVIRONMENT", "development")

from pathlib import Path  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402

from controle_api.clients.base import DataStoreClient, IdentityProviderClient, Row  # noqa: E402
from controle_api.exceptions import DataStoreError, IdentityProviderError  # noqa: E402
from controle_api.models.domain.identity import IdentityUser  # noqa: E402
from controle_api.services.local_state import LocalStateStore  # noqa: E402


class FakeDataStore(DataStoreClient):
    """Dict-of-lists store that records every call.

    Failures are armed per (operation, table): the operation raises once it
    has succeeded ``after`` times on that table.
    """

    def __init__(self, tables: dict[str, list[Row]] | None = None) -> None:
        self.tables: dict[str, list[Row]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.calls: list[tuple[Any, ...]] = []
        self._failures: dict[tuple[str, str], tuple[str, int]] = {}
        self._counts: dict[tuple[str, str], int] = {}

    def fail(self, operation: str, table: str, message: str = "permission denied", after: int = 0) -> None:
        self._failures[(operation, table)] = (message, after)

    def _check(self, operation: str, table: str) -> None:
        key = (operation, table)
        count = self._counts.get(key, 0)
        self._counts[key] = count + 1
        if key in self._failures:
            message, after = self._failures[key]
            if count >= after:
                raise DataStoreError(message, table=table, status_code=403)

    def calls_for(self, operation: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == operation]

    async def select_range(self, table: str, start: int, end: int) -> list[Row]:
        self.calls.append(("select", table, start, end))
        self._check("select", table)
        return [dict(row) for row in self.tables.get(table, [])[start : end + 1]]

    async def select_one(self, table: str, column: str, value: str) -> Row | None:
        self.calls.append(("select_one", table, column, value))
        self._check("select_one", table)
        for row in self.tables.get(table, []):
            if row.get(column) == value:
                return dict(row)
        return None

    async def upsert(self, table: str, rows: list[Row], on_conflict: str = "id") -> None:
        self.calls.append(("upsert", table, len(rows)))
        self._check("upsert", table)
        existing = self.tables.setdefault(table, [])
        for row in rows:
            for index, current in enumerate(existing):
                if current.get(on_conflict) == row.get(on_conflict):
                    existing[index] = {**current, **row}
                    break
            else:
                existing.append(dict(row))

    async def insert(self, table: str, rows: list[Row]) -> None:
        self.calls.append(("insert", table, len(rows)))
        self._check("insert", table)
        self.tables.setdefault(table, []).extend(dict(row) for row in rows)

    async def delete_where_not_equal(self, table: str, column: str, value: str) -> None:
        self.calls.append(("delete", table, column, value))
        self._check("delete", table)
        self.tables[table] = [row for row in self.tables.get(table, []) if row.get(column) == value]


class FakeIdentityProvider(IdentityProviderClient):
    """In-memory identity provider.

    ``create_errors`` is a queue of messages raised by the next create calls;
    ``always_fail`` makes every create call raise.
    """

    def __init__(self, users: list[IdentityUser] | None = None) -> None:
        self.users: list[IdentityUser] = list(users or [])
        self.tokens: dict[str, str] = {}
        self.create_errors: list[str] = []
        self.always_fail: str | None = None
        self.create_calls: list[str] = []
        self.list_calls: list[tuple[int, int]] = []
        self.deleted: list[str] = []
        self._next_id = 1

    async def create_user(self, email: str, password: str, email_confirmed: bool = True) -> IdentityUser:
        self.create_calls.append(email)
        if self.create_errors:
            raise IdentityProviderError(self.create_errors.pop(0), status_code=500)
        if self.always_fail:
            raise IdentityProviderError(self.always_fail, status_code=422)
        if any(user.matches_email(email) for user in self.users):
            raise IdentityProviderError(
                "A user with this email address has already been registered", status_code=422
            )
        user = IdentityUser(id=f"new-{self._next_id}", email=email)
        self._next_id += 1
        self.users.append(user)
        return user

    async def list_users(self, page: int, per_page: int) -> list[IdentityUser]:
        self.list_calls.append((page, per_page))
        start = (page - 1) * per_page
        return self.users[start : start + per_page]

    async def delete_user(self, user_id: str) -> None:
        self.deleted.append(user_id)
        self.users = [user for user in self.users if user.id != user_id]

    async def get_user(self, access_token: str) -> IdentityUser:
        if access_token not in self.tokens:
            raise IdentityProviderError("invalid JWT", status_code=401)
        return IdentityUser(id=self.tokens[access_token])


class RecordingSleep:
    """Awaitable stand-in for asyncio.sleep that records durations."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def data_store() -> FakeDataStore:
    return FakeDataStore()


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def state(tmp_path: Path) -> LocalStateStore:
    return LocalStateStore(tmp_path / "state" / "local_state.json")
