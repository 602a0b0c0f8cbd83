"""TenantKit CLI — sign in, inspect the session, call guarded routes.

Usage:
    tenantkit signup a@x.com -f Ada -l Byron      # Create an account (prompts for password)
    tenantkit signin a@x.com                      # Sign in, session saved locally
    tenantkit whoami                              # Profile of the signed-in user
    tenantkit verify                              # Check token, refresh once if needed
    tenantkit protected / admin                   # Call the sample guarded routes
    tenantkit signout / logout-all                # Revoke one / every refresh token
    tenantkit ping                                # Health + hello
    tenantkit purge-tokens                        # Server-side: drop expired refresh tokens
    tenantkit serve                               # Run the API with uvicorn

The session lives in TENANTKIT_SESSION_FILE (default ~/.tenantkit/session.json).
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import sys
from contextlib import asynccontextmanager
from typing import Optional

import click

from tenantkit import __version__
from tenantkit.client.api import ApiClient, ApiError
from tenantkit.client.session import JsonFileStorage, RouteDecision, SessionContext
from tenantkit.client.transport import build_transport
from tenantkit.config import settings
from tenantkit.logging_config import configure_logging

ROLES = ["ADMIN", "MEMBER", "VIEWER"]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


@asynccontextmanager
async def _session(api_url: Optional[str]):
    """Load the persisted session, yield it, close the transport."""
    api = ApiClient(build_transport(settings, api_url))
    ctx = SessionContext(api, JsonFileStorage(settings.session_file))
    ctx.load()
    try:
        yield ctx
    except ApiError as e:
        _fail(f"{e.message} (HTTP {e.status})" if e.status else e.message)
    finally:
        await api.aclose()


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _require_session(ctx: SessionContext) -> None:
    if not ctx.is_authenticated:
        _fail("Not signed in. Run `tenantkit signin <email>` first.")


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_user(user: dict) -> None:
    name = f"{user.get('firstName', '')} {user.get('lastName', '')}".strip()
    role = click.style(user.get("role", "?"), fg=_role_color(user.get("role", "")))
    click.echo(f"  {user.get('email')}  {name}  [{role}]")
    if user.get("tenantId"):
        click.echo(f"  tenant: {user['tenantId']}")


def _role_color(role: str) -> str:
    return {"ADMIN": "magenta", "MEMBER": "green", "VIEWER": "cyan"}.get(role, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="tenantkit")
@click.option("--api-url", envvar="TENANTKIT_API_URL", help="Backend base URL")
@click.pass_context
def main(ctx: click.Context, api_url: Optional[str]):
    """TenantKit — multi-tenant SaaS starter: auth session and API calls."""
    configure_logging(level="WARNING")
    ctx.obj = {"api_url": api_url}


# ---------------------------------------------------------------------------
# Sign up / sign in / sign out
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.option("--first-name", "-f", required=True)
@click.option("--last-name", "-l", required=True)
@click.option("--role", "-r", type=click.Choice(ROLES), help="Defaults to MEMBER")
@click.option("--tenant-id", "-t", help="Tenant to join")
@click.password_option()
@click.pass_obj
def signup(obj, email, first_name, last_name, role, tenant_id, password):
    """Create an account and start a session."""
    _run(_signup_impl(obj["api_url"], email, password, first_name, last_name, role, tenant_id))


async def _signup_impl(api_url, email, password, first_name, last_name, role, tenant_id):
    async with _session(api_url) as ctx:
        response = await ctx.sign_up(
            email, password, first_name, last_name, role=role, tenant_id=tenant_id
        )
        click.secho("Account created, signed in as:", fg="green")
        _print_user(response["user"])


@main.command()
@click.argument("email")
@click.password_option(confirmation_prompt=False)
@click.pass_obj
def signin(obj, email, password):
    """Sign in and save the session."""
    _run(_signin_impl(obj["api_url"], email, password))


async def _signin_impl(api_url, email, password):
    async with _session(api_url) as ctx:
        response = await ctx.sign_in(email, password)
        click.secho("Signed in as:", fg="green")
        _print_user(response["user"])


@main.command()
@click.pass_obj
def signout(obj):
    """Revoke this session's refresh token and forget it locally."""
    _run(_signout_impl(obj["api_url"]))


async def _signout_impl(api_url):
    async with _session(api_url) as ctx:
        if not ctx.is_authenticated:
            click.echo("Not signed in.")
            return
        await ctx.sign_out()
        click.secho("Signed out.", fg="green")


@main.command("logout-all")
@click.pass_obj
def logout_all(obj):
    """Revoke every refresh token of the signed-in user."""
    _run(_logout_all_impl(obj["api_url"]))


async def _logout_all_impl(api_url):
    async with _session(api_url) as ctx:
        _require_session(ctx)
        click.secho(await ctx.logout_all(), fg="green")


# ---------------------------------------------------------------------------
# Session inspection
# ---------------------------------------------------------------------------


@main.command()
@click.pass_obj
def whoami(obj):
    """Show the signed-in user's profile."""
    _run(_whoami_impl(obj["api_url"]))


async def _whoami_impl(api_url):
    async with _session(api_url) as ctx:
        _require_session(ctx)
        if await ctx.enter_protected_route() != RouteDecision.ALLOW:
            _fail("Session expired. Sign in again.")
        profile = await ctx.api.get_profile(ctx.session.access_token)
        _print_user(profile)
        click.echo(f"  status: {profile.get('status')}")
        click.echo(f"  last login: {profile.get('lastLoginAt') or '—'}")


@main.command()
@click.pass_obj
def verify(obj):
    """Verify the access token (one silent refresh on expiry)."""
    _run(_verify_impl(obj["api_url"]))


async def _verify_impl(api_url):
    async with _session(api_url) as ctx:
        _require_session(ctx)
        if await ctx.verify():
            click.secho("Session valid.", fg="green")
        else:
            _fail("Session expired. Sign in again.")


@main.command()
@click.pass_obj
def refresh(obj):
    """Mint a new access token from the saved refresh token."""
    _run(_refresh_impl(obj["api_url"]))


async def _refresh_impl(api_url):
    async with _session(api_url) as ctx:
        _require_session(ctx)
        await ctx.refresh_access_token()
        click.secho("Access token refreshed.", fg="green")


# ---------------------------------------------------------------------------
# API calls
# ---------------------------------------------------------------------------


@main.command()
@click.pass_obj
def ping(obj):
    """Call the public health and hello endpoints."""
    _run(_ping_impl(obj["api_url"]))


async def _ping_impl(api_url):
    async with _session(api_url) as ctx:
        health = await ctx.api.get_health()
        hello = await ctx.api.get_hello()
        click.echo(f"health: {health['status']} (uptime {health['uptime']}s)")
        click.echo(hello["message"])


@main.command()
@click.pass_obj
def protected(obj):
    """Call /protected with the current session."""
    _run(_guarded_impl(obj["api_url"], admin=False))


@main.command()
@click.pass_obj
def admin(obj):
    """Call /admin-only with the current session."""
    _run(_guarded_impl(obj["api_url"], admin=True))


async def _guarded_impl(api_url, admin: bool):
    async with _session(api_url) as ctx:
        _require_session(ctx)
        decision = await ctx.enter_protected_route("ADMIN" if admin else None)
        if decision == RouteDecision.REDIRECT_SIGN_IN:
            _fail("Session expired. Sign in again.")
        token = ctx.session.access_token
        call = ctx.api.get_admin_only if admin else ctx.api.get_protected
        click.echo(_pretty_json(await call(token)))


# ---------------------------------------------------------------------------
# Server side
# ---------------------------------------------------------------------------


@main.command("purge-tokens")
def purge_tokens():
    """Delete expired refresh tokens from the database."""
    deleted = _run(_purge_impl())
    click.echo(f"Purged {deleted} expired refresh token(s).")


async def _purge_impl() -> int:
    from tenantkit.db.engine import async_session_factory, engine
    from tenantkit.services.auth_service import AuthService

    try:
        async with async_session_factory() as db:
            return await AuthService(db).purge_expired_tokens()
    finally:
        await engine.dispose()


@main.command()
def serve():
    """Run the API server (uvicorn)."""
    from tenantkit.main import run

    run()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
