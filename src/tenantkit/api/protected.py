"""Sample guarded routes.

Learn: /protected admits any active user; /admin-only additionally
requires the ADMIN role. Both echo who the caller is.
"""

from fastapi import APIRouter, Depends

from tenantkit.auth.dependencies import AUTHENTICATED, enforce, require_roles
from tenantkit.db.models import User, UserRole
from tenantkit.schemas.auth import IdentityMessage, UserIdentity

router = APIRouter()

ADMIN_ONLY = require_roles(UserRole.ADMIN)


@router.get("/protected", response_model=IdentityMessage)
async def protected(user: User = Depends(enforce(AUTHENTICATED))):
    return IdentityMessage(
        message="This is a protected route",
        user=UserIdentity.model_validate(user),
    )


@router.get("/admin-only", response_model=IdentityMessage)
async def admin_only(user: User = Depends(enforce(ADMIN_ONLY))):
    return IdentityMessage(
        message="This is an admin-only route",
        user=UserIdentity.model_validate(user),
    )
