"""Route guard — access policies resolved by one FastAPI dependency.

Learn: Each route states its access rules as data, an AccessPolicy:
- requires_auth: must a valid bearer access token be present?
- allowed_roles: if set, the resolved user's role must be in it
  (exact membership, no role hierarchy).

enforce(policy) turns a policy into a dependency. Handlers that need the
caller declare `user: User = Depends(enforce(AUTHENTICATED))`; the same
User is also stored on request.state.user, before the role check, so
middleware and error handlers can read who made the request.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tenantkit.auth.jwt import ACCESS, TokenError, verify_token
from tenantkit.db.engine import get_db
from tenantkit.db.models import User, UserRole
from tenantkit.errors import ForbiddenError, UnauthorizedError
from tenantkit.services.auth_service import AuthService

logger = structlog.get_logger()


@dataclass(frozen=True)
class AccessPolicy:
    requires_auth: bool = True
    allowed_roles: Optional[frozenset[UserRole]] = None

    def permits(self, role: UserRole) -> bool:
        return self.allowed_roles is None or role in self.allowed_roles


PUBLIC = AccessPolicy(requires_auth=False)
AUTHENTICATED = AccessPolicy()


def require_roles(*roles: UserRole) -> AccessPolicy:
    """Policy for routes restricted to the given roles."""
    return AccessPolicy(requires_auth=True, allowed_roles=frozenset(roles))


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an `Authorization: Bearer <token>` header."""
    if not authorization:
        raise UnauthorizedError("Authentication required")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise UnauthorizedError("Malformed Authorization header")
    return token


async def authenticate(authorization: Optional[str], db: AsyncSession) -> User:
    """Validate the bearer token and re-check the user's status."""
    token = extract_bearer_token(authorization)
    try:
        payload = verify_token(token, expected_type=ACCESS)
    except TokenError as e:
        raise UnauthorizedError(str(e))

    user = await AuthService(db).validate_user(payload["sub"])
    if not user:
        raise UnauthorizedError("User not found or inactive")
    return user


def enforce(policy: AccessPolicy):
    """Build the dependency that applies `policy` to a request.

    Returns the resolved User, or None for public routes. Public routes
    get a dependency without a database session.
    """
    if not policy.requires_auth:

        async def public_dependency() -> None:
            return None

        return public_dependency

    async def dependency(
        request: Request,
        authorization: Optional[str] = Header(None),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        try:
            user = await authenticate(authorization, db)
        except UnauthorizedError as e:
            logger.info("auth.guard.rejected", path=request.url.path, reason=e.message)
            raise

        request.state.user = user
        if not policy.permits(user.role):
            logger.info(
                "auth.guard.forbidden",
                path=request.url.path,
                user_id=str(user.id),
                role=user.role.value,
            )
            raise ForbiddenError("Insufficient permissions")

        return user

    return dependency
