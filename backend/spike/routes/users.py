"""
Spike Server — Auth & Profile Route Handlers
=============================================

What:  POST /api/v1/auth/register, POST /api/v1/auth/login, GET /api/v1/users/profile.
How:   Each handler reads the typed RequestContext, returns the timeout
       envelope if the deadline already passed, validates input, delegates to
       UserService, and answers with the unified envelope.
Who:   Mounted by main.py under the middleware pipeline.

Error → Response Mapping:
    ValidationError (field rules)          → 400 / 10001 / rule message
    UserExistsError                        → 409 / 10001 / "username or email already exists"
    UserNotFoundError / wrong password     → 401 / 10001 / "invalid username or password"  (login)
    UserInactiveError                      → 403 / 10001 / "user is inactive"
    UserNotFoundError                      → 404 / 10001 / "user not found"                (profile)
    DatabaseError                          → 500 / 10000 / "<operation> failed"
    Anything else                          → propagates to the Recovery stage

Raised SpikeErrors are turned into envelopes by the handlers main.py registers.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from spike import resp
from spike.database import get_db_session
from spike.exceptions import (
    DatabaseError,
    InvalidCredentialsError,
    SpikeError,
    UserNotFoundError,
    ValidationError,
)
from spike.middleware.context import RequestContext, get_request_context, handle_timeout
from spike.repositories.user_repository import UserRepository
from spike.schemas.user import (
    LoginData,
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    UserResponse,
)
from spike.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Users"])

USERNAME_MIN, USERNAME_MAX = 3, 32
PASSWORD_MIN, PASSWORD_MAX = 6, 72
EMAIL_MAX = 254

_INT64_MAX = 2**63 - 1
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


# ── Dependencies ──────────────────────────────────────────────────────────
def get_user_service(db: AsyncSession = Depends(get_db_session)) -> UserService:
    return UserService(UserRepository(db))


# ── Validation ────────────────────────────────────────────────────────────
def is_valid_email(email: str) -> bool:
    """Loose format check: non-empty, at most 254 characters, contains '@' and '.'."""
    return 0 < len(email) <= EMAIL_MAX and "@" in email and "." in email


def validate_register_request(req: RegisterRequest) -> None:
    """Raises ValidationError with the first rule the request breaks."""
    if not USERNAME_MIN <= len(req.username) <= USERNAME_MAX:
        raise ValidationError(
            f"username must be between {USERNAME_MIN} and {USERNAME_MAX} characters", field="username"
        )
    if not PASSWORD_MIN <= len(req.password) <= PASSWORD_MAX:
        raise ValidationError(
            f"password must be between {PASSWORD_MIN} and {PASSWORD_MAX} characters", field="password"
        )
    if req.email == "":
        raise ValidationError("email is required", field="email")
    if not is_valid_email(req.email):
        raise ValidationError("invalid email format", field="email")


def validate_login_request(req: LoginRequest) -> None:
    if req.username == "":
        raise ValidationError("username is required", field="username")
    if req.password == "":
        raise ValidationError("password is required", field="password")


def parse_user_id(raw: Optional[str]) -> int:
    """Parse the `user_id` query value as a signed 64-bit integer."""
    if not raw:
        raise ValidationError("user_id is required", field="user_id")
    if not _INTEGER_RE.fullmatch(raw):
        raise ValidationError("invalid user_id", field="user_id")
    value = int(raw)
    if not -_INT64_MAX - 1 <= value <= _INT64_MAX:
        raise ValidationError("invalid user_id", field="user_id")
    return value


def operation_failed(operation: str, ctx: RequestContext, exc: DatabaseError) -> SpikeError:
    logger.error(
        "%s failed: %s",
        operation,
        exc.message,
        extra={"request_id": ctx.request_id, **exc.context},
    )
    return SpikeError(f"{operation} failed")


# ── Handlers ──────────────────────────────────────────────────────────────
@router.post(
    "/auth/register",
    summary="Register a new user",
    responses={
        200: {"description": "User created; data is the public user"},
        400: {"description": "Invalid body or field rule violated"},
        409: {"description": "Username or email already exists"},
    },
)
async def register(
    request: Request,
    body: RegisterRequest,
    service: UserService = Depends(get_user_service),
) -> JSONResponse:
    ctx = get_request_context(request)
    timed_out = handle_timeout(ctx)
    if timed_out is not None:
        return timed_out

    validate_register_request(body)

    try:
        user = await service.register(body, deadline=ctx.deadline)
    except DatabaseError as e:
        raise operation_failed("register", ctx, e) from e

    data = UserResponse.model_validate(user).model_dump(mode="json")
    return resp.ok(data, request_id=ctx.request_id)


@router.post(
    "/auth/login",
    summary="Log in with username (or email) and password",
    responses={
        200: {"description": "data.user is the authenticated user"},
        401: {"description": "Unknown user or wrong password"},
        403: {"description": "User is inactive"},
    },
)
async def login(
    request: Request,
    body: LoginRequest,
    service: UserService = Depends(get_user_service),
) -> JSONResponse:
    ctx = get_request_context(request)
    timed_out = handle_timeout(ctx)
    if timed_out is not None:
        return timed_out

    validate_login_request(body)

    try:
        user = await service.login(body, deadline=ctx.deadline)
    except UserNotFoundError as e:
        # Unknown user and wrong password look the same to the client
        raise InvalidCredentialsError() from e
    except DatabaseError as e:
        raise operation_failed("login", ctx, e) from e

    data = LoginData(user=UserResponse.model_validate(user)).model_dump(mode="json")
    return resp.ok(data, request_id=ctx.request_id)


@router.get(
    "/users/profile",
    summary="Get a user's profile",
    responses={
        200: {"description": "Public user including updated_at"},
        400: {"description": "user_id missing or not an integer"},
        404: {"description": "User not found"},
    },
)
async def get_profile(
    request: Request,
    user_id: Optional[str] = Query(default=None, description="Numeric user id"),
    service: UserService = Depends(get_user_service),
) -> JSONResponse:
    ctx = get_request_context(request)
    timed_out = handle_timeout(ctx)
    if timed_out is not None:
        return timed_out

    uid = parse_user_id(user_id)

    try:
        user = await service.get_user_by_id(uid)
    except DatabaseError as e:
        raise operation_failed("get profile", ctx, e) from e

    data = ProfileResponse.model_validate(user).model_dump(mode="json")
    return resp.ok(data, request_id=ctx.request_id)
