"""TenantKit — multi-tenant SaaS starter.

Async FastAPI backend with a JWT auth flow (sign-up, sign-in, refresh,
logout, role-gated routes) and a Python client that keeps the session
on the caller's side.
"""

__version__ = "0.1.0"
