"""Domain errors for the auth flow.

Services raise these; main.py turns them into HTTP responses of the form
{"statusCode", "message", "error"}. Nothing is retried server-side.
"""


class TenantKitError(Exception):
    """Base class. Carries the HTTP status the error maps to."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(TenantKitError):
    status_code = 400
    error = "Bad Request"


class UnauthorizedError(TenantKitError):
    """Bad credentials, inactive account, invalid or expired token."""

    status_code = 401
    error = "Unauthorized"


class ForbiddenError(TenantKitError):
    """Authenticated, but the role is not allowed on this route."""

    status_code = 403
    error = "Forbidden"


class ConflictError(TenantKitError):
    """Duplicate email on sign-up."""

    status_code = 409
    error = "Conflict"
