"""Auth service — sign-up, sign-in, refresh, logout, user validation.

Learn: Service layer separates business logic from HTTP routing.
The API routes and the route guard call this; it talks to the database
and raises domain errors (tenantkit.errors) that main.py maps to HTTP.

bcrypt is CPU-bound, so hashing and checking run on the thread pool
instead of blocking the event loop.
"""

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Union

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from tenantkit.auth.jwt import create_access_token, create_refresh_token
from tenantkit.auth.password import hash_password, verify_password
from tenantkit.config import settings
from tenantkit.db.models import RefreshToken, User, UserRole, UserStatus, utcnow
from tenantkit.errors import ConflictError, UnauthorizedError

logger = structlog.get_logger()


@dataclass
class AuthResult:
    access_token: str
    refresh_token: str
    user: User


class AuthService:
    """Business logic for the credential and refresh-token stores."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Sign up / sign in ──────────────────────────────

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: Optional[UserRole] = None,
        tenant_id: Optional[str] = None,
    ) -> AuthResult:
        email = _normalize_email(email)
        if await self._get_by_email(email):
            raise ConflictError("User with this email already exists")

        password_hash = await run_in_threadpool(hash_password, password)
        user = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role or UserRole.MEMBER,
            tenant_id=tenant_id or None,
            status=UserStatus.ACTIVE,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent sign-up for the same email.
            await self.db.rollback()
            raise ConflictError("User with this email already exists")

        result = await self._issue_tokens(user)
        await self.db.commit()
        logger.info("auth.sign_up.success", user_id=str(user.id), role=user.role.value)
        return result

    async def sign_in(self, email: str, password: str) -> AuthResult:
        user = await self._get_by_email(_normalize_email(email))
        if not user:
            logger.info("auth.sign_in.rejected", reason="unknown_email")
            raise UnauthorizedError("Invalid credentials")

        if not await run_in_threadpool(verify_password, password, user.password_hash):
            logger.info("auth.sign_in.rejected", reason="bad_password", user_id=str(user.id))
            raise UnauthorizedError("Invalid credentials")

        if user.status != UserStatus.ACTIVE:
            logger.info("auth.sign_in.rejected", reason="inactive", user_id=str(user.id))
            raise UnauthorizedError("Account is not active")

        user.last_login_at = utcnow()
        result = await self._issue_tokens(user)
        await self.db.commit()
        logger.info("auth.sign_in.success", user_id=str(user.id))
        return result

    # ─── Refresh tokens ─────────────────────────────────

    async def refresh_token(self, token: str) -> str:
        """Mint a new access token from a stored, unexpired refresh token.

        The refresh token itself is left untouched; it stays usable until
        it expires or is logged out.
        """
        q = select(RefreshToken).where(RefreshToken.token == token)
        record = (await self.db.execute(q)).scalars().first()

        if record and record.is_expired():
            await self.db.delete(record)
            await self.db.commit()
            record = None

        if not record:
            logger.info("auth.refresh.rejected")
            raise UnauthorizedError("Invalid or expired refresh token")

        user = await self.db.get(User, record.user_id)
        if not user:
            raise UnauthorizedError("Invalid or expired refresh token")

        return create_access_token(str(user.id), user.email)

    async def logout(self, token: str) -> int:
        """Delete one refresh token. Deleting nothing is not an error."""
        result = await self.db.execute(
            delete(RefreshToken).where(RefreshToken.token == token)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def logout_all(self, user_id: Union[str, uuid.UUID]) -> int:
        """Delete every refresh token owned by the user."""
        uid = _parse_uuid(user_id)
        if uid is None:
            return 0
        result = await self.db.execute(
            delete(RefreshToken).where(RefreshToken.user_id == uid)
        )
        await self.db.commit()
        logger.info("auth.logout_all", user_id=str(uid), revoked=result.rowcount)
        return result.rowcount or 0

    async def purge_expired_tokens(self) -> int:
        """Housekeeping: drop refresh-token rows past their expiry."""
        result = await self.db.execute(
            delete(RefreshToken).where(RefreshToken.expires_at <= utcnow())
        )
        await self.db.commit()
        return result.rowcount or 0

    # ─── Users ──────────────────────────────────────────

    async def validate_user(self, user_id: Union[str, uuid.UUID]) -> Optional[User]:
        """Return the user if it exists and is ACTIVE, else None."""
        uid = _parse_uuid(user_id)
        if uid is None:
            return None
        user = await self.db.get(User, uid)
        if not user or user.status != UserStatus.ACTIVE:
            return None
        return user

    async def _get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def _issue_tokens(self, user: User) -> AuthResult:
        """Sign an access/refresh pair and persist the refresh token.

        The stored expiry is computed here from the same setting the JWT
        uses, not read back out of the token.
        """
        access_token = create_access_token(str(user.id), user.email)
        refresh_token = create_refresh_token(str(user.id))
        self.db.add(
            RefreshToken(
                token=refresh_token,
                user_id=user.id,
                expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
            )
        )
        await self.db.flush()
        return AuthResult(access_token=access_token, refresh_token=refresh_token, user=user)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _parse_uuid(value: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
