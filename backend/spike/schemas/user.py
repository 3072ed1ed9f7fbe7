"""
Spike Server — User Request/Response Schemas
=============================================

What:  Pydantic models defining the auth and profile API contract.
How:   Request models only enforce SHAPE (a JSON object whose fields are
       strings); anything else is rejected as "invalid request body". The
       business rules (lengths, email format) are checked by the handlers so
       each failure carries its own message.
       Response models whitelist the fields a client may see.

Design Decision:
    Schemas are separate from SQLAlchemy models so password_hash can never
    leak: serialization goes through UserResponse, which does not declare it.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(BaseModel):
    """POST /api/v1/auth/register body."""

    username: str = Field(default="")
    email: str = Field(default="")
    password: str = Field(default="")

    model_config = ConfigDict(strict=True, extra="ignore")


class LoginRequest(BaseModel):
    """
    POST /api/v1/auth/login body.

    `username` accepts either the username or the email address.
    """

    username: str = Field(default="")
    password: str = Field(default="")

    model_config = ConfigDict(strict=True, extra="ignore")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UserResponse(BaseModel):
    """Public view of a user, returned by register and login."""

    id: int
    username: str
    email: str
    role: str
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileResponse(UserResponse):
    """Profile view; adds the last-modified timestamp."""

    updated_at: datetime


class LoginData(BaseModel):
    user: UserResponse
