"""Transports — how the client reaches the backend.

Learn: A Transport takes (method, path, json body, bearer token) and
returns (status code, decoded JSON body). HttpTransport talks to a real
server with httpx; MockTransport answers from canned data for offline
work. build_transport() picks one from settings at startup. A failing
HttpTransport never falls back to the mock.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import httpx

from tenantkit.config import Settings

API_PREFIX = "/api/v1"


class TransportError(Exception):
    """Raised when the backend could not be reached at all."""


class Transport(Protocol):
    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        token: Optional[str] = None,
    ) -> tuple[int, Any]: ...

    async def aclose(self) -> None: ...


class HttpTransport:
    """httpx-backed transport.

    `transport` lets callers inject an httpx transport, e.g.
    httpx.ASGITransport(app=...) to drive the app in-process.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        token: Optional[str] = None,
    ) -> tuple[int, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            r = await self._client.request(
                method, f"{API_PREFIX}{path}", json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

        try:
            body = r.json()
        except ValueError:
            body = {}
        return r.status_code, body

    async def aclose(self) -> None:
        await self._client.aclose()


class MockTransport:
    """Canned responses shaped like the real API. Records calls, never hits the network."""

    MOCK_USER_ID = "00000000-0000-0000-0000-000000000001"

    def __init__(self):
        self.calls: list[tuple[str, str]] = []

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        token: Optional[str] = None,
    ) -> tuple[int, Any]:
        self.calls.append((method, path))
        body = json or {}
        now = datetime.now(timezone.utc).isoformat()
        stamp = uuid.uuid4().hex[:12]
        user = {
            "id": self.MOCK_USER_ID,
            "email": body.get("email", "mock@example.com"),
            "firstName": body.get("firstName", "Mock"),
            "lastName": body.get("lastName", "User"),
            "role": body.get("role") or "MEMBER",
            "tenantId": body.get("tenantId"),
        }
        identity = {"id": user["id"], "email": user["email"], "role": user["role"]}
        token_pair = {
            "accessToken": f"mock-access-token-{stamp}",
            "refreshToken": f"mock-refresh-token-{stamp}",
            "user": user,
        }

        responses = {
            ("POST", "/auth/signup"): (201, token_pair),
            ("POST", "/auth/signin"): (200, token_pair),
            ("POST", "/auth/refresh"): (
                200, {"accessToken": f"mock-refreshed-access-token-{stamp}"}
            ),
            ("POST", "/auth/logout"): (200, {"message": "Logged out successfully"}),
            ("POST", "/auth/logout-all"): (200, {"message": "Logged out from all devices"}),
            ("GET", "/auth/profile"): (
                200, {**user, "status": "ACTIVE", "createdAt": now, "lastLoginAt": now}
            ),
            ("GET", "/auth/verify"): (200, {"valid": True, "user": identity}),
            ("GET", "/health"): (
                200, {"status": "ok", "timestamp": now, "uptime": 0.0, "version": "mock"}
            ),
            ("GET", "/hello"): (
                200, {"message": "Hello from the mock transport!", "timestamp": now}
            ),
            ("GET", "/protected"): (
                200, {"message": "This is a protected route", "user": identity}
            ),
            ("GET", "/admin-only"): (
                200, {"message": "This is an admin-only route", "user": identity}
            ),
        }
        return responses.get(
            (method, path),
            (404, {"statusCode": 404, "message": "Not Found", "error": "Not Found"}),
        )

    async def aclose(self) -> None:
        return None


def build_transport(settings: Settings, api_url: Optional[str] = None) -> Transport:
    """Select the transport named by settings.client_transport."""
    if settings.client_transport == "mock":
        return MockTransport()
    return HttpTransport(api_url or settings.api_url)
