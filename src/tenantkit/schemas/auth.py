"""Pydantic schemas for the auth flow.

Learn: Pydantic v2 models validate request/response data. JSON on the
wire is camelCase (firstName, accessToken, ...); Python attributes stay
snake_case via an alias generator. Request models forbid unknown fields.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from tenantkit.db.models import UserRole, UserStatus


def _either_case(name: str) -> AliasChoices:
    return AliasChoices(name, to_camel(name))


class CamelModel(BaseModel):
    """Response base: read from ORM objects or camelCase JSON, written as camelCase."""
    model_config = ConfigDict(
        alias_generator=AliasGenerator(
            validation_alias=_either_case, serialization_alias=to_camel
        ),
        from_attributes=True,
    )


class RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


# ─── Requests ───────────────────────────────────────────


class SignUpRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: Optional[UserRole] = None
    tenant_id: Optional[str] = Field(None, max_length=100)


class SignInRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshTokenRequest(RequestModel):
    refresh_token: str = Field(min_length=1)


# ─── Responses ──────────────────────────────────────────


class UserRead(CamelModel):
    """Public user projection. Never includes the password hash."""
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    tenant_id: Optional[str] = None


class UserProfile(UserRead):
    status: UserStatus
    created_at: datetime
    last_login_at: Optional[datetime] = None


class UserIdentity(CamelModel):
    """Minimal echo of the caller (id, email, role)."""
    id: uuid.UUID
    email: str
    role: UserRole


class AuthResponse(CamelModel):
    access_token: str
    refresh_token: str
    user: UserRead


class AccessTokenResponse(CamelModel):
    access_token: str


class MessageResponse(CamelModel):
    message: str


class VerifyResponse(CamelModel):
    valid: bool
    user: UserIdentity


class IdentityMessage(CamelModel):
    message: str
    user: UserIdentity


class HealthResponse(CamelModel):
    status: str
    timestamp: datetime
    uptime: float
    version: str


class HelloResponse(CamelModel):
    message: str
    timestamp: datetime
