"""UserRepository: raw SQL persistence bound to a Scope.

Every statement runs against the scope given at construction: the
autocommit scope for standalone calls, or the session of an active
`Storage.atomic` block.  Constraint violations are translated into domain
errors in exactly one place (`_domain_error_for`); all other backend errors
propagate untouched.
"""

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.elements import TextClause

from src.us_common.errors import (
    AppError,
    EmailExistsError,
    InvalidActivationCodeError,
    MissingUsersError,
    UserExistsError,
    UserNotFoundError,
)
from src.us_users.domain.models import ActivationCode, UpdateFields, User, UserCreate
from src.us_users.domain.repository import Scope
from src.us_users.infrastructure.db_models import (
    ACTIVATION_USER_FK,
    EMAIL_CONSTRAINT,
    USERNAME_CONSTRAINT,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_USER_COLUMNS = """
    username, email, password_hash, first_name, last_name, avatar_id, is_active
"""

_UPDATABLE_COLUMNS = frozenset(
    {"password_hash", "email", "first_name", "last_name", "avatar_id"}
)

_INSERT_USER_SQL = text(f"""
    INSERT INTO users
        (username, email, password_hash, first_name, last_name, avatar_id, is_active)
    VALUES
        (:username, :email, :password_hash, :first_name, :last_name, :avatar_id, FALSE)
    RETURNING {_USER_COLUMNS}
""")

_GET_USER_BY_USERNAME_SQL = text(f"""
    SELECT {_USER_COLUMNS}
    FROM users WHERE username = :username
""")

_GET_USER_BY_EMAIL_SQL = text(f"""
    SELECT {_USER_COLUMNS}
    FROM users WHERE email = :email
""")

_GET_MANY_USERS_SQL = text(f"""
    SELECT {_USER_COLUMNS}
    FROM users WHERE username IN :usernames
""").bindparams(bindparam("usernames", expanding=True))

_DELETE_USER_SQL = text("""
    DELETE FROM users WHERE username = :username
""")

# Serialises activations of the same user until the transaction ends.
_LOCK_USER_SQL = text("""
    SELECT username FROM users WHERE username = :username
    FOR UPDATE
""")

# Consuming the code is the check: a second caller finds nothing to delete.
_CONSUME_ACTIVATION_CODE_SQL = text("""
    DELETE FROM users_activation_codes
    WHERE username = :username
      AND code = :code
      AND expires_at > NOW()
    RETURNING code
""")

_ACTIVATE_USER_SQL = text("""
    UPDATE users
    SET is_active = TRUE,
        updated_at = NOW()
    WHERE username = :username
""")

_DELETE_ACTIVATION_CODES_SQL = text("""
    DELETE FROM users_activation_codes WHERE username = :username
""")

_UPSERT_ACTIVATION_CODE_SQL = text("""
    INSERT INTO users_activation_codes (username, code, expires_at)
    VALUES (:username, :code, :expires_at)
    ON CONFLICT (username, code) DO UPDATE
        SET expires_at = EXCLUDED.expires_at
    RETURNING username, code, expires_at
""")


def _build_update_sql(columns: Iterable[str]) -> TextClause:
    """UPDATE whose SET clause names exactly the supplied columns."""
    columns = list(columns)
    unknown = set(columns) - _UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"Columns cannot be updated: {sorted(unknown)}")
    assignments = "".join(f"{column} = :{column},\n        " for column in columns)
    return text(f"""
    UPDATE users
    SET {assignments}updated_at = NOW()
    WHERE username = :username
    RETURNING {_USER_COLUMNS}
""")


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

_CONSTRAINT_ERRORS: dict[str, type[AppError]] = {
    USERNAME_CONSTRAINT: UserExistsError,
    EMAIL_CONSTRAINT: EmailExistsError,
    ACTIVATION_USER_FK: UserNotFoundError,
}


def _constraint_name(exc: IntegrityError) -> str | None:
    orig = exc.orig
    # asyncpg errors reach us wrapped by SQLAlchemy's DBAPI adapter
    candidates = (orig, getattr(orig, "__cause__", None), getattr(orig, "diag", None))
    for candidate in candidates:
        name = getattr(candidate, "constraint_name", None)
        if isinstance(name, str):
            return name
    return None


def _domain_error_for(exc: IntegrityError) -> AppError | None:
    error_cls = _CONSTRAINT_ERRORS.get(_constraint_name(exc) or "")
    return error_cls() if error_cls is not None else None


@contextmanager
def _translate_constraint_errors() -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        domain_error = _domain_error_for(exc)
        if domain_error is None:
            raise
        logger.info("Constraint violation translated: %s", domain_error.message)
        raise domain_error from exc


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_user(row: Any) -> User:
    return User(
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        avatar_id=str(row.avatar_id) if row.avatar_id is not None else None,
        is_active=bool(row.is_active),
    )


def _row_to_activation_code(row: Any) -> ActivationCode:
    return ActivationCode(
        username=row.username,
        code=row.code,
        expires_at=row.expires_at,
    )


class UserRepository:
    """Users table access; holds no state besides its scope."""

    def __init__(self, scope: Scope) -> None:
        self._scope = scope

    async def create_user(self, create: UserCreate) -> User:
        with _translate_constraint_errors():
            result = await self._scope.execute(
                _INSERT_USER_SQL,
                {
                    "username": create.username,
                    "email": create.email,
                    "password_hash": create.password,
                    "first_name": create.first_name,
                    "last_name": create.last_name,
                    "avatar_id": create.avatar_id,
                },
            )
            row = result.fetchone()
        return _row_to_user(row)

    async def get_user_by_username(self, username: str) -> User:
        result = await self._scope.execute(_GET_USER_BY_USERNAME_SQL, {"username": username})
        row = result.fetchone()
        if row is None:
            raise UserNotFoundError()
        return _row_to_user(row)

    async def get_user_by_email(self, email: str) -> User:
        result = await self._scope.execute(_GET_USER_BY_EMAIL_SQL, {"email": email})
        row = result.fetchone()
        if row is None:
            raise UserNotFoundError()
        return _row_to_user(row)

    async def get_many_users(self, usernames: list[str]) -> list[User]:
        """Fetch every requested user that exists.

        Raises MissingUsersError carrying the found users when some names have
        no row; the missing names keep their request order.
        """
        if not usernames:
            return []
        result = await self._scope.execute(_GET_MANY_USERS_SQL, {"usernames": list(usernames)})
        users = [_row_to_user(row) for row in result.fetchall()]
        if len(users) < len(usernames):
            found = {user.username for user in users}
            missing = [name for name in usernames if name not in found]
            if missing:
                raise MissingUsersError(missing, users=users)
        return users

    async def update_user(self, username: str, fields: UpdateFields) -> User:
        changes = fields.changes()
        if not changes:
            return await self.get_user_by_username(username)

        with _translate_constraint_errors():
            result = await self._scope.execute(
                _build_update_sql(changes), {**changes, "username": username}
            )
            row = result.fetchone()
        if row is None:
            raise UserNotFoundError()
        return _row_to_user(row)

    async def delete_user(self, username: str) -> None:
        result = await self._scope.execute(_DELETE_USER_SQL, {"username": username})
        if result.rowcount == 0:
            raise UserNotFoundError()

    async def activate_user(self, username: str, code: str) -> None:
        """Flip is_active and consume every code on file for the user.

        Must run inside `Storage.atomic` for the row lock to cover the update.
        """
        result = await self._scope.execute(_LOCK_USER_SQL, {"username": username})
        if result.fetchone() is None:
            raise UserNotFoundError()

        result = await self._scope.execute(
            _CONSUME_ACTIVATION_CODE_SQL, {"username": username, "code": code}
        )
        if result.fetchone() is None:
            raise InvalidActivationCodeError()

        await self._scope.execute(_ACTIVATE_USER_SQL, {"username": username})
        # No reactivation, so every outstanding code goes
        await self._scope.execute(_DELETE_ACTIVATION_CODES_SQL, {"username": username})

    async def issue_activation_code(
        self, username: str, code: str, expires_at: datetime
    ) -> ActivationCode:
        with _translate_constraint_errors():
            result = await self._scope.execute(
                _UPSERT_ACTIVATION_CODE_SQL,
                {"username": username, "code": code, "expires_at": expires_at},
            )
            row = result.fetchone()
        return _row_to_activation_code(row)
