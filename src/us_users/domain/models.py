"""Domain models for us_users. Pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Final


class _Unset:
    """Marker for an update field that was not supplied."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Final[Any] = _Unset()


@dataclass
class User:
    username: str
    email: str
    password_hash: str
    first_name: str = ""
    last_name: str = ""
    avatar_id: str | None = None
    is_active: bool = False


@dataclass
class UserCreate:
    username: str
    password: str    # plaintext until the use case swaps in the hash
    email: str
    first_name: str = ""
    last_name: str = ""
    avatar_id: str | None = None


@dataclass(frozen=True)
class UpdateFields:
    """Sparse patch: only fields that are not UNSET reach storage.

    An empty string is a real value. ``avatar_id=None`` clears the avatar.
    """

    password: Any = UNSET    # plaintext on input, hash by the time it is stored
    email: Any = UNSET
    first_name: Any = UNSET
    last_name: Any = UNSET
    avatar_id: Any = UNSET

    # password is persisted under a different column name
    _COLUMNS = {"password": "password_hash"}

    def changes(self) -> dict[str, Any]:
        """Column -> value for every supplied field, in declaration order."""
        return {
            self._COLUMNS.get(f.name, f.name): getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.changes()


@dataclass
class ActivationCode:
    username: str
    code: str
    expires_at: datetime
