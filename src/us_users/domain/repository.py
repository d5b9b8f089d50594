"""Repository Protocol: dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation, bound to a scope.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import Executable, Result

from src.us_users.domain.models import ActivationCode, UpdateFields, User, UserCreate


class UserRepositoryProtocol(Protocol):
    async def create_user(self, create: UserCreate) -> User: ...

    async def get_user_by_username(self, username: str) -> User: ...

    async def get_user_by_email(self, email: str) -> User: ...

    async def get_many_users(self, usernames: list[str]) -> list[User]: ...

    async def update_user(self, username: str, fields: UpdateFields) -> User: ...

    async def delete_user(self, username: str) -> None: ...

    async def activate_user(self, username: str, code: str) -> None: ...

    async def issue_activation_code(
        self, username: str, code: str, expires_at: datetime
    ) -> ActivationCode: ...


class Scope(Protocol):
    """Executable handle a repository runs against.

    Implemented by ``AsyncSession`` (inside a transaction) and by
    ``AutocommitScope`` (one short transaction per statement).
    """

    async def execute(
        self, statement: Executable, params: Mapping[str, Any] | None = None
    ) -> Result[Any]: ...
