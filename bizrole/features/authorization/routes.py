"""
Authorization API routes for the current principal.

These are the call sites for the action gate (permission set, single
permission check) and the data gate (row filter for an entity class).
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.core.database.engine import get_db
from bizrole.features.authorization.dependencies import get_current_principal
from bizrole.features.authorization.evaluator import PermissionEvaluator
from bizrole.features.authorization.principal import Principal
from bizrole.features.authorization.schemas import (
    PermissionCheckResponse,
    PermissionSetResponse,
    RowFilterResponse,
)


router = APIRouter()


@router.get("/permissions", response_model=PermissionSetResponse)
async def my_permissions(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Effective action permissions of the current principal."""
    permissions = await PermissionEvaluator(db).effective_permission_set(principal)
    return PermissionSetResponse(
        principal_id=principal.identifier,
        is_wildcard=permissions.is_wildcard,
        permissions=permissions.to_list(),
    )


@router.get("/check", response_model=PermissionCheckResponse)
async def check_permission(
    permission: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Check a single action permission for the current principal."""
    granted = await PermissionEvaluator(db).has_permission(principal, permission)
    return PermissionCheckResponse(principal_id=principal.identifier, permission=permission, granted=granted)


@router.get("/row-filter", response_model=RowFilterResponse)
async def row_filter(
    entity_class: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Composed row filter of the current principal for ``entity_class``."""
    statement = await PermissionEvaluator(db).effective_row_filter(principal, entity_class)
    return RowFilterResponse(principal_id=principal.identifier, entity_class=entity_class, statement=statement)
