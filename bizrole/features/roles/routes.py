"""
Role management API routes.

Provides endpoints for creating, searching, updating and deleting roles and
for assigning them to principals. Every endpoint requires the role manager
permission.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.core.database.engine import get_db
from bizrole.features.authorization.dependencies import require_role_manager
from bizrole.features.authorization.principal import Principal
from bizrole.features.roles.models import Role
from bizrole.features.roles.query import RoleQueryService
from bizrole.features.roles.schemas import (
    AssignmentResponse,
    AssignPrincipal,
    RoleAdminResponse,
    RoleCreate,
    RoleEnsure,
    RoleOption,
    RoleResponse,
    RoleUpdate,
)
from bizrole.features.roles.store import RoleStore


router = APIRouter()


async def _get_role_or_404(store: RoleStore, role_id: int) -> Role:
    role = await store.get(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_in: RoleCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Create a new role."""
    store = RoleStore(db, actor=principal.identifier)
    data = role_in.model_dump(exclude_none=True)
    role = Role(**data)
    await store.save(role)
    await db.refresh(role)
    return role


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    skip: int = 0,
    limit: int = 100,
    valid_only: bool = False,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """List roles, optionally only the valid ones."""
    return await RoleStore(db).list_roles(skip=skip, limit=limit, valid_only=valid_only)


@router.get("/search", response_model=List[RoleResponse])
async def search_roles(
    q: str = "",
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Search valid roles by name or title."""
    return await RoleQueryService(db).search_roles(q)


@router.get("/options", response_model=List[RoleOption])
async def role_options(
    q: str = "",
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Valid roles matching ``q`` formatted for selection widgets."""
    service = RoleQueryService(db)
    return service.format_for_selection(await service.search_roles(q))


@router.put("/by-name/{name}", response_model=RoleResponse)
async def ensure_role(
    name: str,
    role_in: RoleEnsure,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Return the role called ``name``, creating it if needed."""
    store = RoleStore(db, actor=principal.identifier)
    return await store.find_or_create(name, role_in.title)


@router.get("/{role_id}", response_model=RoleAdminResponse)
async def get_role(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Get a role with its principal count."""
    store = RoleStore(db)
    role = await _get_role_or_404(store, role_id)
    response = RoleAdminResponse.model_validate(role)
    response.principal_count = await store.count_principals(role)
    return response


@router.patch("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_update: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Update a role."""
    store = RoleStore(db, actor=principal.identifier)
    role = await _get_role_or_404(store, role_id)
    
    update_data = role_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(role, key, value)
    
    await store.save(role)
    await db.refresh(role)
    return role


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Delete a role and its data permission rules."""
    store = RoleStore(db, actor=principal.identifier)
    role = await _get_role_or_404(store, role_id)
    await store.remove(role)
    return None


@router.post("/{role_id}/principals", response_model=AssignmentResponse)
async def assign_role(
    role_id: int,
    assignment: AssignPrincipal,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Assign a role to a principal."""
    store = RoleStore(db, actor=principal.identifier)
    role = await _get_role_or_404(store, role_id)
    changed = await store.assign_principal(role, assignment.principal_id)
    return AssignmentResponse(role_id=role.id, principal_id=assignment.principal_id, changed=changed)


@router.delete("/{role_id}/principals/{principal_id}", response_model=AssignmentResponse)
async def unassign_role(
    role_id: int,
    principal_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Remove a role from a principal."""
    store = RoleStore(db, actor=principal.identifier)
    role = await _get_role_or_404(store, role_id)
    changed = await store.unassign_principal(role, principal_id)
    return AssignmentResponse(role_id=role.id, principal_id=principal_id, changed=changed)
