"""
Persistence boundary for data permission rules.

The (role, entity_class) pair is unique. The database constraint is the
final word; a violating write is rolled back to its savepoint and reported
as ``DuplicateRuleError`` instead of leaking the driver's IntegrityError.
Writes staged earlier in the same transaction are kept.
"""
from typing import List, Optional
from sqlalchemy import and_, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.core.exceptions import DuplicateRuleError, ValidationError
from bizrole.features.data_permissions.models import DataPermissionRule
from bizrole.features.roles.models import Role
from bizrole.utils import get_logger


log = get_logger(__name__)


class RulePersistence:
    def __init__(self, db: AsyncSession, actor: Optional[str] = None):
        self.db = db
        self.actor = actor

    async def get(self, rule_id: str) -> Optional[DataPermissionRule]:
        return await self.db.get(DataPermissionRule, rule_id)

    async def find_by_role(self, role: Role) -> List[DataPermissionRule]:
        if role.id is None:
            return []
        stmt = (
            select(DataPermissionRule)
            .where(DataPermissionRule.role_id == role.id)
            .order_by(DataPermissionRule.entity_class)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_for_entity(self, role: Role, entity_class: str) -> Optional[DataPermissionRule]:
        if role.id is None:
            return None
        return await self._find(role.id, entity_class)

    async def _find(self, role_id: int, entity_class: str) -> Optional[DataPermissionRule]:
        stmt = select(DataPermissionRule).where(
            and_(
                DataPermissionRule.role_id == role_id,
                DataPermissionRule.entity_class == entity_class,
            )
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def save(self, rule: DataPermissionRule, commit_now: bool = True) -> DataPermissionRule:
        """
        Persist ``rule``; ``commit_now=False`` only flushes.

        Raises:
            ValidationError: the rule has no owning role
            DuplicateRuleError: the role already has a rule for this entity class
        """
        role = rule.role
        if role is None:
            raise ValidationError("role", "role must not be empty")
        role_id = role.id
        role_name = role.name
        entity_class = rule.entity_class

        existing = await self.find_for_entity(role, entity_class)
        if existing is not None and existing is not rule:
            log.warning(f"Role '{role_name}' already has a rule for '{entity_class}'")
            self._discard(rule)
            raise DuplicateRuleError(role_name, entity_class)

        rule.touch(self.actor)
        self.db.add(rule)
        try:
            async with self.db.begin_nested():
                await self.db.flush()
        except IntegrityError as exc:
            # the savepoint rollback expires the role, so look up by the captured id
            conflicting = await self._find(role_id, entity_class) if role_id is not None else None
            if conflicting is None or conflicting is rule:
                raise
            log.warning(f"Rule for role '{role_name}' on '{entity_class}' violates uniqueness")
            raise DuplicateRuleError(role_name, entity_class) from exc

        if commit_now:
            await self.db.commit()
        log.info(f"Saved data permission rule {rule.id} for role '{role_name}' on '{entity_class}'")
        return rule

    async def remove(self, rule: DataPermissionRule, commit_now: bool = True) -> None:
        rule_id = rule.id
        if rule.role is not None:
            rule.role.remove_data_permission_rule(rule)
        await self.db.delete(rule)
        await self.db.flush()
        if commit_now:
            await self.db.commit()
        log.info(f"Removed data permission rule {rule_id}")

    async def commit(self) -> None:
        await self.db.commit()

    def _discard(self, rule: DataPermissionRule) -> None:
        """Unlink a rejected, never-persisted rule so a later flush ignores it."""
        state = inspect(rule)
        if state.persistent:
            return
        if rule.role is not None:
            rule.role.remove_data_permission_rule(rule)
        if state.pending:
            self.db.expunge(rule)
