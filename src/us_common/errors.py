"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: User
  9xxx: System
"""

from typing import Any


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: User ---

class UserNotFoundError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "User with provided username does not exist", 404)


class UserExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "User already exists", 409)


class EmailExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Provided email is already taken", 409)


class InvalidActivationCodeError(AppError):
    def __init__(self) -> None:
        super().__init__(1004, "Provided activation code is invalid", 400)


class MissingUsersError(AppError):
    """Batch lookup found fewer users than requested.

    Not fatal: ``users`` holds the rows that were found, ``usernames`` the
    requested names without a row, in request order.
    """

    def __init__(self, usernames: list[str], users: list[Any] | None = None) -> None:
        self.usernames = usernames
        self.users = users if users is not None else []
        super().__init__(
            1005,
            f"Several users do not exist: {', '.join(usernames)}",
            200,
        )


class LookupKeyRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1006, "Either username or email must be provided", 400)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class NestedTransactionError(AppError):
    def __init__(self) -> None:
        super().__init__(9003, "Nested atomic blocks are not supported", 500)
