"""Client session tests.

Learn: SessionContext runs against the real app in-process:
HttpTransport is handed an httpx.ASGITransport, and the `client`
fixture has already pointed get_db at the per-test database.
"""

import json
import os
import stat

import pytest
import pytest_asyncio
from httpx import ASGITransport

from conftest import PASSWORD, unique_email
from tenantkit.client import (
    ApiClient,
    ApiError,
    HttpTransport,
    JsonFileStorage,
    MemoryStorage,
    MockTransport,
    RouteDecision,
    Session,
    SessionContext,
    SessionState,
    build_transport,
)
from tenantkit.client.transport import TransportError
from tenantkit.config import Settings
from tenantkit.main import app


@pytest_asyncio.fixture()
async def api(client):
    api = ApiClient(HttpTransport("http://test", transport=ASGITransport(app=app)))
    yield api
    await api.aclose()


@pytest.fixture()
def storage():
    return MemoryStorage()


@pytest.fixture()
def ctx(api, storage):
    return SessionContext(api, storage)


async def _signed_up(ctx: SessionContext, role=None) -> str:
    email = unique_email("session")
    await ctx.sign_up(email, PASSWORD, "Ses", "Sion", role=role)
    return email


class _UnreachableTransport:
    """Every call fails as if the backend were down."""

    async def request(self, method, path, json=None, token=None):
        raise TransportError("connection refused")

    async def aclose(self):
        return None


# ═══════════════════════════════════════════════════════════
# Transitions
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sign_up_authenticates_and_persists(ctx, storage):
    assert ctx.state == SessionState.ANONYMOUS
    email = await _signed_up(ctx)

    assert ctx.state == SessionState.AUTHENTICATED
    assert ctx.is_authenticated
    assert ctx.user["email"] == email
    assert ctx.session.role == "MEMBER"
    assert storage.session is ctx.session


@pytest.mark.asyncio
async def test_failed_sign_in_stays_anonymous(ctx, storage):
    with pytest.raises(ApiError) as exc:
        await ctx.sign_in("nobody@example.com", "wrong-pass")
    assert exc.value.status == 401
    assert ctx.last_error == "Invalid credentials"
    assert ctx.state == SessionState.ANONYMOUS
    assert storage.session is None


@pytest.mark.asyncio
async def test_sign_in_after_sign_up(api):
    first = SessionContext(api, MemoryStorage())
    email = await _signed_up(first)

    second = SessionContext(api, MemoryStorage())
    await second.sign_in(email, PASSWORD)
    assert second.is_authenticated
    assert second.session.refresh_token != first.session.refresh_token


@pytest.mark.asyncio
async def test_load_restores_persisted_session(api, storage):
    await _signed_up(SessionContext(api, storage))

    restored = SessionContext(api, storage)
    assert restored.load() == SessionState.AUTHENTICATED
    assert await restored.verify() is True


@pytest.mark.asyncio
async def test_sign_out_revokes_refresh_token(ctx, api, storage):
    await _signed_up(ctx)
    refresh_token = ctx.session.refresh_token

    await ctx.sign_out()
    assert ctx.state == SessionState.ANONYMOUS
    assert storage.session is None

    with pytest.raises(ApiError) as exc:
        await api.refresh_token(refresh_token)
    assert exc.value.status == 401


@pytest.mark.asyncio
async def test_sign_out_clears_locally_when_server_unreachable(storage):
    storage.save(Session(user={"role": "MEMBER"}, access_token="a", refresh_token="r"))
    ctx = SessionContext(ApiClient(_UnreachableTransport()), storage)
    ctx.load()

    await ctx.sign_out()
    assert ctx.state == SessionState.ANONYMOUS
    assert storage.session is None


@pytest.mark.asyncio
async def test_logout_all(ctx, api):
    email = await _signed_up(ctx)
    other_device = SessionContext(api, MemoryStorage())
    await other_device.sign_in(email, PASSWORD)

    assert await ctx.logout_all() == "Logged out from all devices"
    assert ctx.state == SessionState.ANONYMOUS

    with pytest.raises(ApiError):
        await other_device.refresh_access_token()
    assert other_device.state == SessionState.ANONYMOUS


# ═══════════════════════════════════════════════════════════
# Verification
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_verify_silently_refreshes_bad_access_token(ctx, storage):
    await _signed_up(ctx)
    ctx.session.access_token = "expired-or-garbage"

    assert await ctx.verify() is True
    assert ctx.state == SessionState.AUTHENTICATED
    assert ctx.session.access_token != "expired-or-garbage"
    assert storage.session.access_token == ctx.session.access_token


@pytest.mark.asyncio
async def test_verify_fails_when_refresh_also_fails(ctx, api, storage):
    await _signed_up(ctx)
    await api.logout(ctx.session.access_token, ctx.session.refresh_token)
    ctx.session.access_token = "expired-or-garbage"

    assert await ctx.verify() is False
    assert ctx.state == SessionState.ANONYMOUS
    assert storage.session is None


@pytest.mark.asyncio
async def test_verify_does_not_retry_non_auth_errors(storage):
    storage.save(Session(user={"role": "MEMBER"}, access_token="a", refresh_token="r"))
    ctx = SessionContext(ApiClient(_UnreachableTransport()), storage)
    ctx.load()

    with pytest.raises(ApiError) as exc:
        await ctx.verify()
    assert exc.value.status == 0
    assert ctx.last_error == "connection refused"
    assert ctx.state == SessionState.AUTHENTICATED
    assert storage.session is not None


# ═══════════════════════════════════════════════════════════
# Protected routes
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_enter_protected_route_anonymous(ctx):
    assert await ctx.enter_protected_route() == RouteDecision.REDIRECT_SIGN_IN


@pytest.mark.asyncio
async def test_enter_protected_route_role_mismatch(ctx):
    await _signed_up(ctx)
    assert await ctx.enter_protected_route() == RouteDecision.ALLOW
    assert await ctx.enter_protected_route("ADMIN") == RouteDecision.REDIRECT_DASHBOARD


@pytest.mark.asyncio
async def test_admin_session_reaches_admin_route(ctx, api):
    await _signed_up(ctx, role="ADMIN")
    assert await ctx.enter_protected_route("ADMIN") == RouteDecision.ALLOW
    data = await api.get_admin_only(ctx.session.access_token)
    assert data["user"]["role"] == "ADMIN"


@pytest.mark.asyncio
async def test_member_gets_forbidden_from_admin_route(ctx, api):
    await _signed_up(ctx)
    with pytest.raises(ApiError) as exc:
        await api.get_admin_only(ctx.session.access_token)
    assert exc.value.status == 403
    assert exc.value.message == "Insufficient permissions"


@pytest.mark.asyncio
async def test_validation_errors_are_joined(api):
    with pytest.raises(ApiError) as exc:
        await api.sign_up("bad", "short", "A", "B")
    assert exc.value.status == 400
    assert "password" in exc.value.message


# ═══════════════════════════════════════════════════════════
# Storage + transport selection
# ═══════════════════════════════════════════════════════════


def test_json_file_storage(tmp_path):
    path = tmp_path / "nested" / "session.json"
    storage = JsonFileStorage(path)
    assert storage.load() is None

    session = Session(user={"email": "a@x.com", "role": "ADMIN"}, access_token="a", refresh_token="r")
    storage.save(session)
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert json.loads(path.read_text())["refresh_token"] == "r"
    assert storage.load() == session

    storage.save(None)
    assert not path.exists()
    storage.save(None)


def test_json_file_storage_is_private_from_creation(tmp_path, monkeypatch):
    path = tmp_path / "session.json"
    session = Session(user={"email": "a@x.com"}, access_token="a", refresh_token="r")

    # With a permissive umask and chmod disabled, the mode comes from os.open alone.
    monkeypatch.setattr(os, "chmod", lambda *args, **kwargs: None)
    old_umask = os.umask(0)
    try:
        JsonFileStorage(path).save(session)
    finally:
        os.umask(old_umask)
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_json_file_storage_tightens_existing_file(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{}")
    path.chmod(0o644)

    JsonFileStorage(path).save(Session(user={}, access_token="a", refresh_token="r"))
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert json.loads(path.read_text())["access_token"] == "a"


def test_json_file_storage_corrupt(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert JsonFileStorage(path).load() is None


def test_build_transport_selection():
    assert isinstance(build_transport(Settings(client_transport="mock")), MockTransport)
    assert isinstance(build_transport(Settings(client_transport="http")), HttpTransport)
    with pytest.raises(ValueError):
        Settings(client_transport="carrier-pigeon")


@pytest.mark.asyncio
async def test_mock_transport_session():
    transport = MockTransport()
    ctx = SessionContext(ApiClient(transport), MemoryStorage())

    await ctx.sign_up("mock@example.com", PASSWORD, "Mo", "Ck", role="VIEWER")
    assert ctx.session.role == "VIEWER"
    assert await ctx.enter_protected_route() == RouteDecision.ALLOW
    await ctx.sign_out()

    assert transport.calls == [
        ("POST", "/auth/signup"),
        ("GET", "/auth/verify"),
        ("POST", "/auth/logout"),
    ]
    with pytest.raises(ApiError) as exc:
        await ctx.api._request("GET", "/does-not-exist")
    assert exc.value.status == 404
