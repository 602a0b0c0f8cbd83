"""Python client for the TenantKit API.

Learn: Three layers, each replaceable:
- transport: moves a request to the backend (real HTTP or canned mock),
  chosen once at startup from settings
- api: one method per endpoint, raises ApiError on non-2xx
- session: SessionContext, the caller-side session state machine,
  persisted through explicit load/save hooks
"""

from tenantkit.client.api import ApiClient, ApiError
from tenantkit.client.session import (
    JsonFileStorage,
    MemoryStorage,
    RouteDecision,
    Session,
    SessionContext,
    SessionState,
)
from tenantkit.client.transport import HttpTransport, MockTransport, build_transport

__all__ = [
    "ApiClient",
    "ApiError",
    "HttpTransport",
    "JsonFileStorage",
    "MemoryStorage",
    "MockTransport",
    "RouteDecision",
    "Session",
    "SessionContext",
    "SessionState",
    "build_transport",
]
