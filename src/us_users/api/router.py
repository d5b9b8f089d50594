"""Users API router: CRUD, batch lookup, credentials check, activation.

All endpoints return ApiResponse. Domain errors (AppError) are turned into
error envelopes by the handler in src.main; the one exception is
MissingUsersError, which is a partial success and is answered here with the
found users plus the missing names.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from src.us_common.database import async_session_factory
from src.us_common.errors import LookupKeyRequiredError, MissingUsersError
from src.us_common.response import ApiResponse, partial_response, success_response
from src.us_users.application.schemas import (
    ActivateRequest,
    ActivationCodeResponse,
    CreateUserRequest,
    CredentialsRequest,
    GetManyUsersRequest,
    GetManyUsersResponse,
    UpdateUserRequest,
    UserData,
)
from src.us_users.application.service import UserApplicationService
from src.us_users.infrastructure.storage import Storage

router = APIRouter(prefix="/users", tags=["users"])
_service = UserApplicationService(Storage(async_session_factory))


def get_user_service() -> UserApplicationService:
    """FastAPI dependency; tests override it with a mocked service."""
    return _service


ServiceDep = Annotated[UserApplicationService, Depends(get_user_service)]


def _with_request_id(resp: ApiResponse, request: Request) -> ApiResponse:
    """Copy the request_id injected by RequestLogMiddleware, if any."""
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create user")
async def create_user(
    request: Request, body: CreateUserRequest, service: ServiceDep
) -> ApiResponse:
    user = await service.create(body.to_domain())
    resp = success_response(UserData.from_user(user).model_dump())
    resp.message = "User created successfully"
    return _with_request_id(resp, request)


@router.get("", summary="Get user by username or email")
async def get_user(
    request: Request,
    service: ServiceDep,
    username: str | None = Query(None),
    email: str | None = Query(None),
) -> ApiResponse:
    if username is not None:
        user = await service.get_by_username(username)
    elif email is not None:
        user = await service.get_by_email(email)
    else:
        raise LookupKeyRequiredError()
    return _with_request_id(success_response(UserData.from_user(user).model_dump()), request)


@router.post("/batch", summary="Get many users")
async def get_many_users(
    request: Request, body: GetManyUsersRequest, service: ServiceDep
) -> ApiResponse:
    try:
        users = await service.get_many(body.usernames)
    except MissingUsersError as exc:
        data = GetManyUsersResponse(
            users=[UserData.from_user(u) for u in exc.users],
            missing=exc.usernames,
        )
        resp = partial_response(exc.code, exc.message, data.model_dump())
        return _with_request_id(resp, request)

    data = GetManyUsersResponse(users=[UserData.from_user(u) for u in users])
    return _with_request_id(success_response(data.model_dump()), request)


@router.post("/credentials", summary="Get user by credentials")
async def get_user_by_credentials(
    request: Request, body: CredentialsRequest, service: ServiceDep
) -> ApiResponse:
    user = await service.get_user_by_credentials(body.username, body.password)
    return _with_request_id(success_response(UserData.from_user(user).model_dump()), request)


@router.get("/{username}", summary="Get user by username")
async def get_user_by_username(
    request: Request, username: str, service: ServiceDep
) -> ApiResponse:
    user = await service.get_by_username(username)
    return _with_request_id(success_response(UserData.from_user(user).model_dump()), request)


@router.patch("/{username}", summary="Partially update user")
async def update_user(
    request: Request, username: str, body: UpdateUserRequest, service: ServiceDep
) -> ApiResponse:
    user = await service.update(username, body.to_domain())
    return _with_request_id(success_response(UserData.from_user(user).model_dump()), request)


@router.delete("/{username}", summary="Delete user")
async def delete_user(request: Request, username: str, service: ServiceDep) -> ApiResponse:
    await service.delete(username)
    resp = success_response()
    resp.message = "User deleted"
    return _with_request_id(resp, request)


@router.post(
    "/{username}/activation-codes",
    status_code=status.HTTP_201_CREATED,
    summary="Issue activation code",
)
async def issue_activation_code(
    request: Request, username: str, service: ServiceDep
) -> ApiResponse:
    code = await service.issue_activation_code(username)
    return _with_request_id(
        success_response(ActivationCodeResponse.from_code(code).model_dump()), request
    )


@router.post("/{username}/activate", summary="Activate user")
async def activate_user(
    request: Request, username: str, body: ActivateRequest, service: ServiceDep
) -> ApiResponse:
    await service.activate(username, body.code)
    resp = success_response()
    resp.message = "User activated"
    return _with_request_id(resp, request)
