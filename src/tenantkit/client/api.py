"""ApiClient — one method per backend endpoint.

Learn: The client never reads session state itself; callers pass the
access token explicitly. Non-2xx responses become ApiError carrying the
status and the server's {"message"}; an unreachable backend is an
ApiError with status 0.
"""

from __future__ import annotations

from typing import Any, Optional

from tenantkit.client.transport import Transport, TransportError


class ApiError(Exception):
    """A failed API call."""

    def __init__(self, message: str, status: int, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401


class ApiClient:
    def __init__(self, transport: Transport):
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        token: Optional[str] = None,
    ) -> Any:
        try:
            status, body = await self.transport.request(method, path, json=json, token=token)
        except TransportError as e:
            raise ApiError(str(e) or "An unknown error occurred", 0) from e

        if status >= 400:
            raise ApiError(_error_message(body, status), status, body)
        return body

    async def aclose(self) -> None:
        await self.transport.aclose()

    # ─── Auth ───────────────────────────────────────────

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> dict:
        body = {
            "email": email,
            "password": password,
            "firstName": first_name,
            "lastName": last_name,
        }
        if role:
            body["role"] = role
        if tenant_id:
            body["tenantId"] = tenant_id
        return await self._request("POST", "/auth/signup", json=body)

    async def sign_in(self, email: str, password: str) -> dict:
        return await self._request(
            "POST", "/auth/signin", json={"email": email, "password": password}
        )

    async def refresh_token(self, refresh_token: str) -> dict:
        return await self._request(
            "POST", "/auth/refresh", json={"refreshToken": refresh_token}
        )

    async def logout(self, access_token: str, refresh_token: str) -> dict:
        return await self._request(
            "POST",
            "/auth/logout",
            json={"refreshToken": refresh_token},
            token=access_token,
        )

    async def logout_all(self, access_token: str) -> dict:
        return await self._request("POST", "/auth/logout-all", token=access_token)

    async def get_profile(self, access_token: str) -> dict:
        return await self._request("GET", "/auth/profile", token=access_token)

    async def verify_token(self, access_token: str) -> dict:
        return await self._request("GET", "/auth/verify", token=access_token)

    # ─── General ────────────────────────────────────────

    async def get_health(self) -> dict:
        return await self._request("GET", "/health")

    async def get_hello(self) -> dict:
        return await self._request("GET", "/hello")

    async def get_protected(self, access_token: str) -> dict:
        return await self._request("GET", "/protected", token=access_token)

    async def get_admin_only(self, access_token: str) -> dict:
        return await self._request("GET", "/admin-only", token=access_token)


def _error_message(body: Any, status: int) -> str:
    message = body.get("message") if isinstance(body, dict) else None
    if isinstance(message, list):
        message = "; ".join(str(m) for m in message)
    return message or f"HTTP {status}"
