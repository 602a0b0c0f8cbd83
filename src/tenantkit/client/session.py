"""SessionContext — the caller-side session state machine.

Learn: States are ANONYMOUS, VERIFYING and AUTHENTICATED.
- sign in / sign up success:        ANONYMOUS → AUTHENTICATED
- sign out, failed verify+refresh,
  failed refresh:                   AUTHENTICATED → ANONYMOUS
- entering a protected route:       AUTHENTICATED → VERIFYING → (one of the above)

Verification calls /auth/verify; on a 401 it tries exactly one silent
refresh, and if that fails too the session is dropped. Other errors are
kept in last_error and re-raised; they are never retried automatically.

The context is an explicit object handed to whoever needs it. It reads
and writes its state through a SessionStorage, so persistence happens
only at load() and after each transition.
"""

from __future__ import annotations

import enum
import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Protocol

import structlog

from tenantkit.client.api import ApiClient, ApiError

logger = structlog.get_logger()


class SessionState(str, enum.Enum):
    ANONYMOUS = "anonymous"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"


class RouteDecision(str, enum.Enum):
    ALLOW = "allow"
    REDIRECT_SIGN_IN = "redirect_sign_in"
    REDIRECT_DASHBOARD = "redirect_dashboard"


@dataclass
class Session:
    """What gets persisted: the user projection plus the token pair."""
    user: dict
    access_token: str
    refresh_token: str

    @property
    def role(self) -> Optional[str]:
        return self.user.get("role")


# ─── Storage hooks ──────────────────────────────────────


class SessionStorage(Protocol):
    def load(self) -> Optional[Session]: ...

    def save(self, session: Optional[Session]) -> None: ...


class MemoryStorage:
    def __init__(self, session: Optional[Session] = None):
        self.session = session

    def load(self) -> Optional[Session]:
        return self.session

    def save(self, session: Optional[Session]) -> None:
        self.session = session


class JsonFileStorage:
    """Keeps the session in a JSON file readable only by its owner."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path).expanduser()

    def load(self) -> Optional[Session]:
        try:
            data = json.loads(self.path.read_text())
            return Session(
                user=data["user"],
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
            )
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError):
            logger.warning("session.storage.corrupt", path=str(self.path))
            return None

    def save(self, session: Optional[Session]) -> None:
        if session is None:
            self.path.unlink(missing_ok=True)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Owner-only from creation; a pre-existing file is tightened before the write.
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        os.chmod(self.path, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(json.dumps(asdict(session), indent=2))


# ─── Context ────────────────────────────────────────────


class SessionContext:
    def __init__(self, api: ApiClient, storage: SessionStorage):
        self.api = api
        self.storage = storage
        self.session: Optional[Session] = None
        self.state = SessionState.ANONYMOUS
        self.last_error: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED and self.session is not None

    @property
    def user(self) -> Optional[dict]:
        return self.session.user if self.session else None

    def load(self) -> SessionState:
        """Restore a persisted session (process start)."""
        self.session = self.storage.load()
        self.state = (
            SessionState.AUTHENTICATED if self.session else SessionState.ANONYMOUS
        )
        return self.state

    # ─── Transitions ────────────────────────────────────

    async def sign_in(self, email: str, password: str) -> dict:
        self.last_error = None
        try:
            response = await self.api.sign_in(email, password)
        except ApiError as e:
            self.last_error = e.message
            raise
        self._establish(response)
        return response

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> dict:
        self.last_error = None
        try:
            response = await self.api.sign_up(
                email, password, first_name, last_name, role=role, tenant_id=tenant_id
            )
        except ApiError as e:
            self.last_error = e.message
            raise
        self._establish(response)
        return response

    async def sign_out(self) -> None:
        """Revoke the refresh token server-side, then forget the session.

        A failed server call is logged; the local session is cleared anyway.
        """
        if self.session:
            try:
                await self.api.logout(self.session.access_token, self.session.refresh_token)
            except ApiError as e:
                logger.warning("session.logout.server_failed", status=e.status, error=e.message)
        self._clear()

    async def logout_all(self) -> str:
        """Revoke every refresh token of this user, then forget the session."""
        if not self.session:
            raise ApiError("Not signed in", 401)
        response = await self.api.logout_all(self.session.access_token)
        self._clear()
        return response["message"]

    async def refresh_access_token(self) -> str:
        """Swap in a new access token. Any failure ends the session."""
        if not self.session:
            raise ApiError("No refresh token available", 401)
        try:
            response = await self.api.refresh_token(self.session.refresh_token)
        except ApiError:
            self._clear()
            raise
        self.session.access_token = response["accessToken"]
        self.storage.save(self.session)
        return self.session.access_token

    async def verify(self) -> bool:
        """Check the access token, refreshing once on a 401."""
        if not self.session:
            return False

        self.state = SessionState.VERIFYING
        try:
            await self.api.verify_token(self.session.access_token)
        except ApiError as e:
            if not e.is_unauthorized:
                self.state = SessionState.AUTHENTICATED
                self.last_error = e.message
                raise
            try:
                await self.refresh_access_token()
            except ApiError:
                logger.info("session.verify.expired")
                self._clear()
                return False
        self.state = SessionState.AUTHENTICATED
        return True

    async def enter_protected_route(self, required_role: Optional[str] = None) -> RouteDecision:
        """Decide what a protected page should do for the current session."""
        if not self.is_authenticated:
            return RouteDecision.REDIRECT_SIGN_IN
        if not await self.verify():
            return RouteDecision.REDIRECT_SIGN_IN
        if required_role and self.session.role != required_role:
            return RouteDecision.REDIRECT_DASHBOARD
        return RouteDecision.ALLOW

    # ─── Helpers ────────────────────────────────────────

    def _establish(self, response: dict) -> None:
        self.session = Session(
            user=response["user"],
            access_token=response["accessToken"],
            refresh_token=response["refreshToken"],
        )
        self.state = SessionState.AUTHENTICATED
        self.storage.save(self.session)

    def _clear(self) -> None:
        self.session = None
        self.state = SessionState.ANONYMOUS
        self.storage.save(None)
