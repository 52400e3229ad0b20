"""
Role model and the principal assignment table.

A role is a named permission grant:
- ``permissions`` / ``exclude_permissions``: action permission keys granted and revoked
- ``hierarchical_roles``: names of roles whose permissions are inherited
- ``is_admin``: grants every permission
- ``rules``: data permission rules restricting which rows members may see
"""
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from bizrole.core import config
from bizrole.core.database.base import Base, BlameMixin, TimestampMixin
from bizrole.core.validation import optional_text, require_text
from bizrole.features.roles.permissions import PermissionSet, RoleResolver, resolve_effective_permissions

if TYPE_CHECKING:
    from bizrole.features.data_permissions.models import DataPermissionRule


NAME_MAX_LENGTH = 80
TITLE_MAX_LENGTH = 255
MENU_MAX_LENGTH = 65535


def default_hierarchy(name: Optional[str] = None) -> List[str]:
    # the base role never inherits from itself
    if name == config.BASE_ROLE_NAME:
        return []
    return [config.BASE_ROLE_NAME]


def _unique_keys(values: Optional[Iterable[str]]) -> List[str]:
    if values is None:
        return []
    if isinstance(values, (set, frozenset)):
        return sorted(values)
    return list(dict.fromkeys(values))


# Principals are owned by the identity provider; only the link is stored here.
principal_roles = Table(
    "biz_role_principal",
    Base.metadata,
    Column("principal_id", String(64), primary_key=True),
    Column("role_id", Integer, ForeignKey("biz_role.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
    Column("assigned_by", String(64), nullable=True),
)


class Role(Base, TimestampMixin, BlameMixin):
    """
    Role model for grouping action permissions and data permission rules.

    Examples: admin, moderator, analyst
    """
    __tablename__ = "biz_role"
    __mapper_args__ = {"eager_defaults": True}
    
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    
    # Stable machine key, matched against the principal's role names
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)
    
    is_admin: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=False)
    permissions: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True, default=list)
    exclude_permissions: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True, default=list)
    hierarchical_roles: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True, default=list)
    valid: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=True, index=True)
    
    # Custom menu definition, stored for the admin UI and never parsed here
    menu_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default="")
    
    rules: Mapped[List["DataPermissionRule"]] = relationship(
        "DataPermissionRule",
        back_populates="role",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DataPermissionRule.entity_class",
    )

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("is_admin", False)
        kwargs.setdefault("valid", True)
        kwargs.setdefault("permissions", [])
        kwargs.setdefault("exclude_permissions", [])
        kwargs.setdefault("hierarchical_roles", default_hierarchy(kwargs.get("name")))
        kwargs.setdefault("menu_json", "")
        kwargs.setdefault("rules", [])
        super().__init__(**kwargs)

    @classmethod
    def create(cls, name: str, title: str) -> "Role":
        """Build a valid, non-admin role inheriting from the base role."""
        return cls(name=name, title=title)

    @validates("name")
    def _check_name(self, _key: str, value: str) -> str:
        return require_text("name", value, NAME_MAX_LENGTH)

    @validates("title")
    def _check_title(self, _key: str, value: str) -> str:
        return require_text("title", value, TITLE_MAX_LENGTH)

    @validates("menu_json")
    def _check_menu(self, _key: str, value: Optional[str]) -> Optional[str]:
        return optional_text("menu_json", value, MENU_MAX_LENGTH)

    @validates("permissions", "exclude_permissions", "hierarchical_roles")
    def _normalise_keys(self, _key: str, value: Optional[Iterable[str]]) -> List[str]:
        return _unique_keys(value)

    def add_data_permission_rule(self, rule: "DataPermissionRule") -> "Role":
        if rule not in self.rules:
            self.rules.append(rule)
        return self

    def remove_data_permission_rule(self, rule: "DataPermissionRule") -> "Role":
        if rule in self.rules:
            self.rules.remove(rule)
            # the rule may already belong to another role
            if rule.role is self:
                rule.role = None
        return self

    def effective_permissions(self, resolver: RoleResolver) -> PermissionSet:
        return resolve_effective_permissions(self, resolver)

    def render_permission_list(self) -> List[Dict[str, Any]]:
        return [{"text": permission, "font_size": "12px"} for permission in self.permissions or []]

    def to_plain_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "title": self.title,
            "valid": self.valid,
            "hierarchical_roles": list(self.hierarchical_roles or []),
        }

    def to_admin_dict(self, principal_count: int = 0) -> Dict[str, Any]:
        return {
            **self.to_plain_dict(),
            "permissions": list(self.permissions or []),
            "principal_count": principal_count,
        }

    def __str__(self) -> str:
        if self.id is None:
            return ""
        return f"{self.title}({self.name})"

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, valid={self.valid})>"


# Role.rules refers to DataPermissionRule by name; make sure it is mapped.
import bizrole.features.data_permissions.models  # noqa: E402,F401
