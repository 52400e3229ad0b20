"""
Permission evaluation for the action gate and the data gate.

- ``effective_permission_set``: union of the effective permissions of every
  valid role the principal holds
- ``effective_row_filter``: the valid data permission rules of those roles
  for one entity class, each parenthesised and joined with OR

Evaluation only reads; it never mutates roles or rules. Role objects are
loaded once per call, so a caller that changes roles must evaluate again
to see the change.
"""
from typing import Dict, Iterable, List, Optional
from sqlalchemy import Select, false, text
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.core import config
from bizrole.features.authorization.principal import Principal
from bizrole.features.roles.models import Role
from bizrole.features.roles.permissions import PermissionSet
from bizrole.features.roles.store import RoleStore
from bizrole.utils import get_logger


log = get_logger(__name__)


def compose_row_filter(statements: Iterable[str]) -> Optional[str]:
    """
    Join WHERE fragments with OR, parenthesising each one.

    Returns None when there is nothing to join.
    """
    fragments = [statement.strip() for statement in statements if statement and statement.strip()]
    fragments = list(dict.fromkeys(fragments))
    if not fragments:
        return None
    return " OR ".join(f"({fragment})" for fragment in fragments)


def apply_row_filter(stmt: Select, fragment: Optional[str], deny_when_absent: Optional[bool] = None) -> Select:
    """
    Append a composed row filter to ``stmt``.

    Without a fragment the statement is restricted to no rows, unless
    ``deny_when_absent`` is False (defaults to ``ROW_FILTER_DEFAULT_DENY``).

    Usage:
        fragment = await evaluator.effective_row_filter(principal, "App\\Entity\\Content")
        stmt = apply_row_filter(select(Content), fragment)
    """
    if deny_when_absent is None:
        deny_when_absent = config.ROW_FILTER_DEFAULT_DENY
    if fragment is None:
        return stmt.where(false()) if deny_when_absent else stmt
    # Fragments carry no bind parameters; keep colons literal
    return stmt.where(text(fragment.replace(":", "\\:")))


def permission_set_for_roles(roles: Iterable[Role], resolver) -> PermissionSet:
    result = PermissionSet()
    for role in roles:
        result = result | role.effective_permissions(resolver)
        if result.is_wildcard:
            break
    return result


def row_filter_for_roles(roles: Iterable[Role], entity_class: str) -> Optional[str]:
    statements = [
        rule.statement
        for role in roles
        for rule in role.rules
        if rule.valid and rule.entity_class == entity_class
    ]
    return compose_row_filter(statements)


class PermissionEvaluator:
    def __init__(self, db: AsyncSession):
        self.store = RoleStore(db)

    async def _load(self, principal: Principal) -> tuple[List[Role], Dict[str, Role]]:
        by_name = {role.name: role for role in await self.store.list_valid()}
        held = [by_name[name] for name in principal.role_names if name in by_name]
        return held, by_name

    async def effective_permission_set(self, principal: Principal) -> PermissionSet:
        held, by_name = await self._load(principal)
        permissions = permission_set_for_roles(held, by_name.get)
        log.debug(f"Principal {principal.identifier} holds {permissions.to_list()}")
        return permissions

    async def has_permission(self, principal: Principal, permission: str) -> bool:
        return permission in await self.effective_permission_set(principal)

    async def effective_row_filter(self, principal: Principal, entity_class: str) -> Optional[str]:
        held, _ = await self._load(principal)
        fragment = row_filter_for_roles(held, entity_class)
        log.debug(f"Row filter for principal {principal.identifier} on {entity_class}: {fragment}")
        return fragment
