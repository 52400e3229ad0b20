"""
FastAPI dependencies for the current principal and permission checks.

Authentication happens upstream: the gateway in front of this service
passes the authenticated principal id in ``PRINCIPAL_HEADER``. Roles come
from the principal's stored assignments.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.core import config
from bizrole.core.database.engine import get_db
from bizrole.features.authorization.evaluator import PermissionEvaluator
from bizrole.features.authorization.principal import Principal
from bizrole.features.roles.store import RoleStore
from bizrole.utils import get_logger


log = get_logger(__name__)


async def get_current_principal(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Principal:
    """
    Build the current principal from the gateway header and stored assignments.

    Usage:
        @router.get("/me")
        async def me(principal: Principal = Depends(get_current_principal)):
            return principal
    """
    principal_id = request.headers.get(config.PRINCIPAL_HEADER)
    if not principal_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    role_names = await RoleStore(db).role_names_for_principal(principal_id)
    return Principal.of(principal_id, role_names)


def require_permission(permission: str):
    """
    FastAPI dependency to require an action permission.

    Usage:
        @router.delete("/roles/{role_id}")
        async def delete_role(
            role_id: int,
            principal: Principal = Depends(require_permission("roles:manage"))
        ):
            ...

    Raises:
        HTTPException: 403 if the principal lacks the permission
    """
    async def permission_dependency(
        db: Annotated[AsyncSession, Depends(get_db)],
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if not await PermissionEvaluator(db).has_permission(principal, permission):
            log.debug(f"Principal {principal.identifier} denied {permission}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {permission}",
            )
        return principal

    return permission_dependency


def get_principal_key(request: Request) -> str:
    """
    Extract the principal header for rate limiting.
    Used with slowapi Limiter.
    """
    return request.headers.get(config.PRINCIPAL_HEADER) or "anonymous"


# The admin endpoints all share this guard
require_role_manager = require_permission(config.MANAGE_ROLES_PERMISSION)
