"""UserApplicationService: thin orchestration over Storage.

Adds password hashing/verification on top of the repository. Activation
runs inside `storage.atomic` so the row lock covers check-then-set; every
other operation is a single statement and runs on the autocommit scope.
"""

import dataclasses
import logging
import secrets
from datetime import UTC, datetime, timedelta

from config.settings import settings
from src.us_common.errors import UserNotFoundError
from src.us_users.auth.password import (
    hash_password,
    needs_rehash,
    verify_dummy,
    verify_password,
)
from src.us_users.domain.models import (
    UNSET,
    ActivationCode,
    UpdateFields,
    User,
    UserCreate,
)
from src.us_users.infrastructure.storage import Storage

logger = logging.getLogger(__name__)


class UserApplicationService:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    async def create(self, user: UserCreate) -> User:
        user.password = hash_password(user.password)
        return await self._storage.users.create_user(user)

    async def get_by_username(self, username: str) -> User:
        return await self._storage.users.get_user_by_username(username)

    async def get_by_email(self, email: str) -> User:
        return await self._storage.users.get_user_by_email(email)

    async def get_many(self, usernames: list[str]) -> list[User]:
        return await self._storage.users.get_many_users(usernames)

    async def get_user_by_credentials(self, username: str, password: str) -> User:
        """Return the user when the password matches.

        Note: a wrong password raises UserNotFoundError, same as an unknown
        username, and an unknown username still costs one bcrypt check, so
        neither the error nor the response time reveals which usernames exist.
        """
        try:
            user = await self.get_by_username(username)
        except UserNotFoundError:
            verify_dummy(password)
            raise
        if not verify_password(password, user.password_hash):
            logger.info("Credential check failed")
            raise UserNotFoundError()

        if needs_rehash(user.password_hash):
            user = await self._storage.users.update_user(
                username, UpdateFields(password=hash_password(password))
            )
            logger.info("Upgraded legacy password hash for %s", username)
        return user

    async def update(self, username: str, fields: UpdateFields) -> User:
        if fields.password is not UNSET:
            fields = dataclasses.replace(fields, password=hash_password(fields.password))
        return await self._storage.users.update_user(username, fields)

    async def delete(self, username: str) -> None:
        await self._storage.users.delete_user(username)

    async def activate(self, username: str, code: str) -> None:
        async def _activate(store: Storage) -> None:
            await store.users.activate_user(username, code)

        await self._storage.atomic(_activate)

    async def issue_activation_code(self, username: str) -> ActivationCode:
        code = "".join(
            secrets.choice("0123456789") for _ in range(settings.ACTIVATION_CODE_LENGTH)
        )
        expires_at = datetime.now(UTC) + timedelta(
            minutes=settings.ACTIVATION_CODE_TTL_MINUTES
        )
        return await self._storage.users.issue_activation_code(username, code, expires_at)
