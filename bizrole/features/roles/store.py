"""
Persistence boundary for roles.

Wraps an AsyncSession with the role lookups the rest of the system needs
and enforces the role invariants at write time:
- role names are unique (``DuplicateRoleError``)
- role inheritance never loops (``CycleError``)
- removing a role removes its data permission rules and assignments

Usage:
    store = RoleStore(db, actor=principal.identifier)
    role = await store.find_or_create("moderator", "内容审核员")
    role.permissions = {"content:review"}
    await store.save(role)
"""
from typing import Dict, List, Optional
from sqlalchemy import and_, delete, func, insert, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.core.exceptions import CycleError, DuplicateRoleError, RoleCreationError, ValidationError
from bizrole.core.validation import optional_text, require_text
from bizrole.features.roles.models import NAME_MAX_LENGTH, TITLE_MAX_LENGTH, Role, principal_roles
from bizrole.features.roles.permissions import find_hierarchy_cycle
from bizrole.utils import get_logger


log = get_logger(__name__)


def insert_ignore(dialect_name: str, table):
    """
    Build an INSERT that silently skips rows hitting a unique constraint.
    """
    if dialect_name == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing()
    if dialect_name == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing()
    if dialect_name in ("mysql", "mariadb"):
        return mysql.insert(table).prefix_with("IGNORE")
    # Plain insert; a lost race surfaces as IntegrityError and is read back
    return insert(table)


class RoleStore:
    def __init__(self, db: AsyncSession, actor: Optional[str] = None):
        self.db = db
        self.actor = actor

    # ========================================================================
    # Lookups
    # ========================================================================

    async def get(self, role_id: int) -> Optional[Role]:
        return await self.db.get(Role, role_id)

    async def find_by_name(self, name: str) -> Optional[Role]:
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalars().first()

    async def list_valid(self) -> List[Role]:
        result = await self.db.execute(select(Role).where(Role.valid.is_(True)).order_by(Role.id))
        return list(result.scalars().all())

    async def list_roles(self, skip: int = 0, limit: int = 100, valid_only: bool = False) -> List[Role]:
        stmt = select(Role)
        if valid_only:
            stmt = stmt.where(Role.valid.is_(True))
        stmt = stmt.order_by(Role.id).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # ========================================================================
    # Writes
    # ========================================================================

    async def find_or_create(self, name: str, title: Optional[str] = None, commit_now: bool = True) -> Role:
        """
        Return the role called ``name``, creating it when absent.

        The insert is a single conditional statement at the storage layer,
        so concurrent callers asking for the same name end up with one row.
        It runs inside a savepoint; changes the caller staged earlier are
        neither committed nor discarded unless ``commit_now`` is set.
        Roles created here inherit from nothing.
        """
        require_text("name", name, NAME_MAX_LENGTH)
        title = title if title is not None and title.strip() else name
        optional_text("title", title, TITLE_MAX_LENGTH)

        dialect_name = self.db.get_bind().dialect.name
        stmt = insert_ignore(dialect_name, Role.__table__).values(
            name=name,
            title=title,
            valid=True,
            is_admin=False,
            hierarchical_roles=[],
            created_by=self.actor,
            updated_by=self.actor,
        )
        try:
            async with self.db.begin_nested():
                await self.db.execute(stmt)
        except IntegrityError:
            # Another writer inserted the same name first
            log.debug(f"Insert of role '{name}' lost the race, reading it back")
        if commit_now:
            await self.db.commit()

        role = await self.find_by_name(name)
        if role is None:
            log.error(f"Role '{name}' could neither be inserted nor found")
            raise RoleCreationError.failed_to_create_or_find(name)
        return role

    async def save(self, role: Role, commit_now: bool = True) -> Role:
        """
        Persist pending changes to ``role``.

        With ``commit_now=False`` the changes are only flushed; the caller
        commits once all staged changes are in place.
        """
        if not role.name:
            raise ValidationError("name", "name must not be blank")
        if not role.title:
            raise ValidationError("title", "title must not be blank")

        name = role.name
        existing = await self.find_by_name(name)
        if existing is not None and existing is not role:
            log.warning(f"Refusing to save duplicate role '{name}'")
            raise DuplicateRoleError(name)
        await self.check_hierarchy(role)

        role.touch(self.actor)
        self.db.add(role)
        try:
            async with self.db.begin_nested():
                await self.db.flush()
        except IntegrityError as exc:
            # only the savepoint is rolled back; staged writes survive
            existing = await self.find_by_name(name)
            if existing is None or existing is role:
                raise
            log.warning(f"Role '{name}' conflicts with an existing role")
            raise DuplicateRoleError(name) from exc

        if commit_now:
            await self.db.commit()
        log.info(f"Saved role '{name}' (id={role.id})")
        return role

    async def remove(self, role: Role, commit_now: bool = True) -> None:
        """Delete ``role`` together with its data permission rules and assignments."""
        name = role.name
        if role.id is not None:
            await self.db.execute(delete(principal_roles).where(principal_roles.c.role_id == role.id))
        await self.db.delete(role)
        await self.db.flush()
        if commit_now:
            await self.db.commit()
        log.info(f"Removed role '{name}'")

    async def commit(self) -> None:
        await self.db.commit()

    async def check_hierarchy(self, role: Role) -> None:
        """Raise ``CycleError`` if saving ``role`` would make inheritance loop."""
        if not role.hierarchical_roles:
            return
        result = await self.db.execute(select(Role.name, Role.hierarchical_roles))
        parents: Dict[str, List[str]] = {name: list(hierarchy or []) for name, hierarchy in result.all()}
        parents[role.name] = list(role.hierarchical_roles)

        cycle = find_hierarchy_cycle(role.name, lambda name: parents.get(name, []))
        if cycle:
            log.warning(f"Rejecting role '{role.name}': hierarchy cycle {' -> '.join(cycle)}")
            raise CycleError(cycle)

    # ========================================================================
    # Principal assignments
    # ========================================================================

    async def assign_principal(self, role: Role, principal_id: str, commit_now: bool = True) -> bool:
        """Assign ``role`` to a principal. Returns False if it was already assigned."""
        require_text("principal_id", principal_id, 64)
        dialect_name = self.db.get_bind().dialect.name
        stmt = insert_ignore(dialect_name, principal_roles).values(
            principal_id=principal_id,
            role_id=role.id,
            assigned_by=self.actor,
        )
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(stmt)
        except IntegrityError:
            return False
        if commit_now:
            await self.db.commit()
        assigned = result.rowcount != 0
        if assigned:
            log.info(f"Assigned role '{role.name}' to principal {principal_id}")
        return assigned

    async def unassign_principal(self, role: Role, principal_id: str, commit_now: bool = True) -> bool:
        result = await self.db.execute(
            delete(principal_roles).where(
                and_(
                    principal_roles.c.role_id == role.id,
                    principal_roles.c.principal_id == principal_id,
                )
            )
        )
        if commit_now:
            await self.db.commit()
        removed = result.rowcount != 0
        if removed:
            log.info(f"Unassigned role '{role.name}' from principal {principal_id}")
        return removed

    async def count_principals(self, role: Role) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(principal_roles).where(principal_roles.c.role_id == role.id)
        )
        return result.scalar_one()

    async def role_names_for_principal(self, principal_id: str) -> List[str]:
        result = await self.db.execute(
            select(Role.name)
            .join(principal_roles, principal_roles.c.role_id == Role.id)
            .where(principal_roles.c.principal_id == principal_id)
            .order_by(Role.id)
        )
        return list(result.scalars().all())
