"""Integration-test fixtures.

Each test gets a fresh schema on the PostgreSQL at DATABASE_URL, created from
the ORM metadata. NullPool keeps connections from leaking across the
per-test event loops. The whole directory is skipped when the database
cannot be reached.
"""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config.settings import settings
from src.us_common.database import Base
from src.us_users.application.service import UserApplicationService
from src.us_users.infrastructure import db_models  # noqa: F401  -- registers tables
from src.us_users.infrastructure.storage import Storage


@pytest_asyncio.fixture
async def storage() -> AsyncIterator[Storage]:
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    except (OSError, SQLAlchemyError) as exc:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not available: {exc}")

    yield Storage(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def service(storage: Storage) -> UserApplicationService:
    return UserApplicationService(storage)
