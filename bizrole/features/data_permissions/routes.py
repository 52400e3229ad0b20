"""
Data permission rule API routes.

Rules are created under their owning role and edited or removed by id.
Only the statement, remark and valid flag of an existing rule can change.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.core.database.engine import get_db
from bizrole.features.authorization.dependencies import require_role_manager
from bizrole.features.authorization.principal import Principal
from bizrole.features.data_permissions.models import DataPermissionRule
from bizrole.features.data_permissions.persistence import RulePersistence
from bizrole.features.data_permissions.schemas import RuleCreate, RuleResponse, RuleUpdate
from bizrole.features.roles.store import RoleStore


router = APIRouter()


async def _get_rule_or_404(rules: RulePersistence, rule_id: str) -> DataPermissionRule:
    rule = await rules.get(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Data permission rule not found")
    return rule


@router.get("/roles/{role_id}/rules", response_model=List[RuleResponse])
async def list_role_rules(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """List the data permission rules of a role."""
    role = await RoleStore(db).get(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return await RulePersistence(db).find_by_role(role)


@router.post("/roles/{role_id}/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    role_id: int,
    rule_in: RuleCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Attach a data permission rule to a role."""
    role = await RoleStore(db).get(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    
    rule = DataPermissionRule.create(role, rule_in.entity_class, rule_in.statement)
    rule.remark = rule_in.remark
    rule.valid = rule_in.valid
    await RulePersistence(db, actor=principal.identifier).save(rule)
    await db.refresh(rule)
    return rule


@router.get("/rules/{rule_id}", response_model=RuleResponse)
async def get_rule(
    rule_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Get a data permission rule."""
    return await _get_rule_or_404(RulePersistence(db), rule_id)


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: str,
    rule_update: RuleUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Update a data permission rule."""
    rules = RulePersistence(db, actor=principal.identifier)
    rule = await _get_rule_or_404(rules, rule_id)
    
    update_data = rule_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(rule, key, value)
    
    await rules.save(rule)
    await db.refresh(rule)
    return rule


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role_manager)
):
    """Delete a data permission rule."""
    rules = RulePersistence(db, actor=principal.identifier)
    rule = await _get_rule_or_404(rules, rule_id)
    await rules.remove(rule)
    return None
