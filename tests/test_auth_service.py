"""AuthService tests — business logic without HTTP."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from structlog.testing import capture_logs

from tenantkit.auth.jwt import ACCESS, REFRESH, verify_token
from tenantkit.config import settings
from tenantkit.db.models import RefreshToken, User, UserRole, UserStatus, utcnow
from tenantkit.errors import ConflictError, UnauthorizedError
from tenantkit.services.auth_service import AuthService


async def _sign_up(svc: AuthService, email="svc@example.com", **kwargs):
    return await svc.sign_up(email, "Passw0rd!", "Svc", "User", **kwargs)


@pytest.mark.asyncio
async def test_sign_up_defaults(db_session):
    svc = AuthService(db_session)
    result = await _sign_up(svc)

    assert result.user.role == UserRole.MEMBER
    assert result.user.status == UserStatus.ACTIVE
    assert result.user.tenant_id is None
    assert result.user.password_hash.startswith("$2")
    assert result.user.password_hash != "Passw0rd!"


@pytest.mark.asyncio
async def test_token_pair_claims(db_session):
    result = await _sign_up(AuthService(db_session))

    access = verify_token(result.access_token, expected_type=ACCESS)
    assert access["sub"] == str(result.user.id)
    assert access["email"] == result.user.email

    refresh = verify_token(result.refresh_token, expected_type=REFRESH)
    assert refresh["sub"] == str(result.user.id)
    assert "email" not in refresh


@pytest.mark.asyncio
async def test_stored_expiry_is_issuance_plus_configured_days(db_session):
    before = utcnow()
    result = await _sign_up(AuthService(db_session))
    after = utcnow()

    record = await db_session.scalar(
        select(RefreshToken).where(RefreshToken.token == result.refresh_token)
    )
    expires_at = record.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=before.tzinfo)
    days = timedelta(days=settings.refresh_token_expire_days)
    assert before + days <= expires_at <= after + days


@pytest.mark.asyncio
async def test_duplicate_sign_up_raises_conflict(db_session):
    svc = AuthService(db_session)
    await _sign_up(svc, email="same@example.com")
    with pytest.raises(ConflictError):
        await _sign_up(svc, email="SAME@example.com")


@pytest.mark.asyncio
async def test_concurrent_duplicate_sign_up_hits_unique_index(db_session, monkeypatch):
    """Both callers pass the email pre-check; the unique index decides."""

    async def not_found(self, email):
        return None

    monkeypatch.setattr(AuthService, "_get_by_email", not_found)
    svc = AuthService(db_session)
    await _sign_up(svc, email="race@example.com")
    with pytest.raises(ConflictError, match="already exists"):
        await _sign_up(svc, email="race@example.com")

    count = await db_session.scalar(
        select(func.count()).select_from(User).where(User.email == "race@example.com")
    )
    assert count == 1

    # The rollback leaves the session usable
    other = await _sign_up(svc, email="other@example.com")
    assert other.user.email == "other@example.com"


@pytest.mark.asyncio
async def test_sign_in_errors(db_session):
    svc = AuthService(db_session)
    result = await _sign_up(svc)

    with pytest.raises(UnauthorizedError, match="Invalid credentials"):
        await svc.sign_in("svc@example.com", "nope-nope")
    with pytest.raises(UnauthorizedError, match="Invalid credentials"):
        await svc.sign_in("missing@example.com", "Passw0rd!")

    result.user.status = UserStatus.INACTIVE
    await db_session.commit()
    with pytest.raises(UnauthorizedError, match="Account is not active"):
        await svc.sign_in("svc@example.com", "Passw0rd!")


@pytest.mark.asyncio
async def test_sign_in_updates_last_login(db_session):
    svc = AuthService(db_session)
    await _sign_up(svc)
    result = await svc.sign_in("svc@example.com", "Passw0rd!")
    assert result.user.last_login_at is not None


@pytest.mark.asyncio
async def test_refresh_logout_cycle(db_session):
    svc = AuthService(db_session)
    result = await _sign_up(svc)

    access = await svc.refresh_token(result.refresh_token)
    assert verify_token(access, expected_type=ACCESS)["sub"] == str(result.user.id)

    assert await svc.logout(result.refresh_token) == 1
    assert await svc.logout(result.refresh_token) == 0
    with pytest.raises(UnauthorizedError):
        await svc.refresh_token(result.refresh_token)


@pytest.mark.asyncio
async def test_logout_all_counts(db_session):
    svc = AuthService(db_session)
    result = await _sign_up(svc)
    await svc.sign_in("svc@example.com", "Passw0rd!")
    await svc.sign_in("svc@example.com", "Passw0rd!")

    assert await svc.logout_all(result.user.id) == 3
    assert await svc.logout_all(str(result.user.id)) == 0
    assert await svc.logout_all("not-a-uuid") == 0


@pytest.mark.asyncio
async def test_validate_user(db_session):
    svc = AuthService(db_session)
    result = await _sign_up(svc)

    assert (await svc.validate_user(str(result.user.id))).id == result.user.id
    assert await svc.validate_user(uuid.uuid4()) is None
    assert await svc.validate_user("garbage") is None

    result.user.status = UserStatus.SUSPENDED
    await db_session.commit()
    assert await svc.validate_user(result.user.id) is None


@pytest.mark.asyncio
async def test_purge_expired_tokens(db_session):
    svc = AuthService(db_session)
    result = await _sign_up(svc)
    db_session.add(
        RefreshToken(
            token="stale-token",
            user_id=result.user.id,
            expires_at=utcnow() - timedelta(days=1),
        )
    )
    await db_session.commit()

    assert await svc.purge_expired_tokens() == 1
    # The live token survives
    assert await svc.refresh_token(result.refresh_token)


@pytest.mark.asyncio
async def test_sign_in_logs_never_carry_secrets(db_session):
    svc = AuthService(db_session)
    await _sign_up(svc)

    with capture_logs() as logs:
        result = await svc.sign_in("svc@example.com", "Passw0rd!")
        with pytest.raises(UnauthorizedError):
            await svc.sign_in("svc@example.com", "wrong-password")

    events = [entry["event"] for entry in logs]
    assert "auth.sign_in.success" in events
    assert "auth.sign_in.rejected" in events
    rendered = repr(logs)
    for secret in ("Passw0rd!", "wrong-password", result.access_token, result.refresh_token):
        assert secret not in rendered
