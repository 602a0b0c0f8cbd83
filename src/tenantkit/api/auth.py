"""Auth API — sign-up, sign-in, token refresh, logout, profile.

Learn: Routes for the session-token lifecycle:
- POST /auth/signup → create account → token pair + user
- POST /auth/signin → email/password → token pair + user
- POST /auth/refresh → stored refresh token → new access token
- POST /auth/logout → revoke one refresh token
- POST /auth/logout-all → revoke every refresh token of the caller
- GET /auth/profile → full profile of the caller
- GET /auth/verify → is my access token still good?
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tenantkit.auth.dependencies import AUTHENTICATED, PUBLIC, enforce
from tenantkit.db.engine import get_db
from tenantkit.db.models import User
from tenantkit.schemas.auth import (
    AccessTokenResponse,
    AuthResponse,
    MessageResponse,
    RefreshTokenRequest,
    SignInRequest,
    SignUpRequest,
    UserIdentity,
    UserProfile,
    UserRead,
    VerifyResponse,
)
from tenantkit.services.auth_service import AuthResult, AuthService

router = APIRouter(prefix="/auth")


def _get_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    return AuthService(db)


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=UserRead.model_validate(result.user),
    )


# ─── Sign up / sign in ───────────────────────────────────


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=201,
    dependencies=[Depends(enforce(PUBLIC))],
)
async def sign_up(body: SignUpRequest, svc: AuthService = Depends(_get_service)):
    """Create a new account and sign it in."""
    result = await svc.sign_up(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
        tenant_id=body.tenant_id,
    )
    return _auth_response(result)


@router.post(
    "/signin",
    response_model=AuthResponse,
    dependencies=[Depends(enforce(PUBLIC))],
)
async def sign_in(body: SignInRequest, svc: AuthService = Depends(_get_service)):
    """Exchange email + password for a token pair."""
    result = await svc.sign_in(body.email, body.password)
    return _auth_response(result)


# ─── Refresh / logout ────────────────────────────────────


@router.post(
    "/refresh",
    response_model=AccessTokenResponse,
    dependencies=[Depends(enforce(PUBLIC))],
)
async def refresh(body: RefreshTokenRequest, svc: AuthService = Depends(_get_service)):
    """Exchange a stored refresh token for a new access token."""
    access_token = await svc.refresh_token(body.refresh_token)
    return AccessTokenResponse(access_token=access_token)


@router.post(
    "/logout",
    response_model=MessageResponse,
    dependencies=[Depends(enforce(AUTHENTICATED))],
)
async def logout(body: RefreshTokenRequest, svc: AuthService = Depends(_get_service)):
    """Revoke a single refresh token."""
    await svc.logout(body.refresh_token)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    user: User = Depends(enforce(AUTHENTICATED)),
    svc: AuthService = Depends(_get_service),
):
    """Revoke every refresh token belonging to the caller."""
    await svc.logout_all(user.id)
    return MessageResponse(message="Logged out from all devices")


# ─── Current user ───────────────────────────────────────


@router.get("/profile", response_model=UserProfile)
async def profile(user: User = Depends(enforce(AUTHENTICATED))):
    return UserProfile.model_validate(user)


@router.get("/verify", response_model=VerifyResponse)
async def verify(user: User = Depends(enforce(AUTHENTICATED))):
    return VerifyResponse(valid=True, user=UserIdentity.model_validate(user))
