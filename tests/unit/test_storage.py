"""Unit tests for Storage.atomic and AutocommitScope (mocked sessions)."""

import asyncio
import inspect
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.us_common.errors import NestedTransactionError, UserNotFoundError
from src.us_users.domain.repository import UserRepositoryProtocol
from src.us_users.infrastructure.storage import AutocommitScope, Storage


def _factory_for(session: AsyncMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory


def _session(rowcount: int = 1) -> AsyncMock:
    session = AsyncMock()
    result = MagicMock()
    result.rowcount = rowcount
    session.execute.return_value = result
    return session


class TestAtomic:
    async def test_commits_on_success(self) -> None:
        session = _session()
        storage = Storage(_factory_for(session))

        async def unit(store: Storage) -> str:
            await store.users.delete_user("alice")
            return "done"

        assert await storage.atomic(unit) == "done"
        session.execute.assert_awaited_once()
        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    async def test_rolls_back_on_domain_error(self) -> None:
        session = _session(rowcount=0)
        storage = Storage(_factory_for(session))

        async def unit(store: Storage) -> None:
            await store.users.delete_user("nobody")

        with pytest.raises(UserNotFoundError):
            await storage.atomic(unit)
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_rolls_back_on_cancellation_and_reraises(self) -> None:
        session = _session()
        storage = Storage(_factory_for(session))

        async def unit(store: Storage) -> None:
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await storage.atomic(unit)
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_nested_atomic_is_rejected(self) -> None:
        session = _session()
        storage = Storage(_factory_for(session))

        async def inner(store: Storage) -> None:
            return None

        async def outer(store: Storage) -> None:
            await store.atomic(inner)

        with pytest.raises(NestedTransactionError):
            await storage.atomic(outer)
        session.rollback.assert_awaited_once()

    async def test_unit_receives_its_own_storage(self) -> None:
        session = _session()
        storage = Storage(_factory_for(session))

        async def unit(store: Storage) -> Storage:
            return store

        inner = await storage.atomic(unit)
        assert inner is not storage


class TestAutocommitScope:
    async def test_runs_statement_in_own_transaction(self) -> None:
        session = MagicMock()
        result = MagicMock()
        session.execute = AsyncMock(return_value=result)
        scope = AutocommitScope(_factory_for(session))

        returned = await scope.execute("SELECT 1", {"a": 1})

        assert returned is result
        session.begin.assert_called_once()
        session.execute.assert_awaited_once_with("SELECT 1", {"a": 1})


def test_users_repository_covers_protocol():
    storage = Storage(_factory_for(_session()))
    operations = [name for name in vars(UserRepositoryProtocol) if not name.startswith("_")]
    assert "activate_user" in operations
    for name in operations:
        assert inspect.iscoroutinefunction(getattr(storage.users, name)), name
