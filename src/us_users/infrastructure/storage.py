"""Storage: repositories plus transactional scoping.

A `Storage` built from the session factory alone runs every statement in
its own short transaction (`AutocommitScope`).  `Storage.atomic` hands the
unit of work a second `Storage` bound to one `AsyncSession`, so every
repository call inside it commits or rolls back together.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from sqlalchemy import Executable, Result
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.us_common.errors import NestedTransactionError
from src.us_users.domain.repository import Scope, UserRepositoryProtocol
from src.us_users.infrastructure.persistence import UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AutocommitScope:
    """Scope backed by the pool: each statement commits on its own."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def execute(
        self, statement: Executable, params: Mapping[str, Any] | None = None
    ) -> Result[Any]:
        async with self._session_factory() as session, session.begin():
            # AsyncSession results are buffered, so they outlive the session
            return await session.execute(statement, params)


class Storage:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scope: Scope | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._in_transaction = scope is not None
        self._scope: Scope = scope if scope is not None else AutocommitScope(session_factory)
        self.users: UserRepositoryProtocol = UserRepository(self._scope)

    async def atomic(self, fn: Callable[["Storage"], Awaitable[T]]) -> T:
        """Run `fn` against a transaction-bound Storage.

        Commits when `fn` returns; rolls back on any exception, including
        cancellation, and re-raises it.  Blocks are flat: calling `atomic`
        on the storage passed to `fn` raises NestedTransactionError.
        """
        if self._in_transaction:
            raise NestedTransactionError()

        async with self._session_factory() as session:
            try:
                result = await fn(Storage(self._session_factory, scope=session))
            except BaseException as exc:
                await session.rollback()
                logger.warning("Transaction rolled back: %s", type(exc).__name__)
                raise
            await session.commit()
            return result
