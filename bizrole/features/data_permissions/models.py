"""
Data permission rule model.

A rule binds a role to an entity class and a WHERE fragment, written
without its leading ``WHERE``/``AND``:
- entity_class="App\\Entity\\User", statement="1 = 1"
- entity_class="App\\Entity\\Content", statement='status = "pending" OR status = "published"'

Statements are raw SQL authored by administrators through the management
API. They are trusted input and must never be built from end-user data.
"""
from typing import Any, Optional
from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from bizrole.core.database.base import Base, BlameMixin, TimestampMixin, generate_ulid
from bizrole.core.exceptions import ValidationError
from bizrole.core.validation import optional_text, require_text
from bizrole.features.roles.models import Role


ENTITY_CLASS_MAX_LENGTH = 255
STATEMENT_MAX_LENGTH = 65535


class DataPermissionRule(Base, TimestampMixin, BlameMixin):
    """
    Entity-scoped row filter owned by a role.

    A role holds at most one rule per entity class. Rules start out
    invalid and are ignored until explicitly activated.
    """
    __tablename__ = "biz_data_permission"
    __table_args__ = (
        UniqueConstraint("role_id", "entity_class", name="biz_data_permission_idx_uniq"),
    )
    __mapper_args__ = {"eager_defaults": True}
    
    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    role_id: Mapped[int] = mapped_column(
        ForeignKey("biz_role.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_class: Mapped[str] = mapped_column(String(ENTITY_CLASS_MAX_LENGTH), nullable=False, index=True)
    statement: Mapped[str] = mapped_column(Text, nullable=False)
    remark: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    valid: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=False, index=True)
    
    role: Mapped[Optional[Role]] = relationship(Role, back_populates="rules", lazy="selectin")

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("valid", False)
        super().__init__(**kwargs)

    @classmethod
    def create(cls, role: Optional[Role], entity_class: str, statement: str) -> "DataPermissionRule":
        if role is None:
            raise ValidationError("role", "role must not be empty")
        rule = cls(entity_class=entity_class, statement=statement)
        # linking appends to role.rules, so only link a fully validated rule
        rule.role = role
        return rule

    @validates("entity_class")
    def _check_entity_class(self, _key: str, value: str) -> str:
        return require_text("entity_class", value, ENTITY_CLASS_MAX_LENGTH)

    @validates("statement")
    def _check_statement(self, _key: str, value: str) -> str:
        return require_text("statement", value, STATEMENT_MAX_LENGTH)

    @validates("remark")
    def _check_remark(self, _key: str, value: Optional[str]) -> Optional[str]:
        return optional_text("remark", value, STATEMENT_MAX_LENGTH)

    def __str__(self) -> str:
        if self.id is None:
            return ""
        return f"DataPermissionRule {self.id} ({self.entity_class})"

    def __repr__(self) -> str:
        return f"<DataPermissionRule(id={self.id}, role_id={self.role_id}, entity_class={self.entity_class!r}, valid={self.valid})>"
