"""
Read-side role lookups for admin selection widgets.
"""
from typing import Any, Dict, List, Sequence
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bizrole.features.roles.models import Role
from bizrole.features.roles.store import RoleStore


class RoleQueryService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = RoleStore(db)

    async def get_valid_roles(self) -> List[Role]:
        return await self.store.list_valid()

    async def search_roles(self, query: str) -> List[Role]:
        """
        Valid roles whose title or name contains ``query``.

        An empty query matches every valid role. Case sensitivity follows
        the database's LIKE semantics.
        """
        stmt = (
            select(Role)
            .where(
                or_(
                    Role.title.contains(query, autoescape=True),
                    Role.name.contains(query, autoescape=True),
                )
            )
            .where(Role.valid.is_(True))
            .order_by(Role.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def format_for_selection(roles: Sequence[Role]) -> List[Dict[str, Any]]:
        return [{"id": role.id, "label": f"{role.title} ({role.name})"} for role in roles]
