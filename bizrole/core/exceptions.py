"""Error kinds raised by role and data permission management."""
from typing import Sequence


class RoleError(Exception):
    """Base exception for role management."""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(RoleError):
    """Raised when a required field is blank, oversized or missing."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class ConflictError(RoleError):
    """Raised when a write would violate a uniqueness constraint."""
    pass


class DuplicateRoleError(ConflictError):
    """Raised when a role name is already taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Role "{name}" already exists')


class DuplicateRuleError(ConflictError):
    """Raised when a role already has a data permission rule for an entity class."""

    def __init__(self, role_name: str, entity_class: str):
        self.role_name = role_name
        self.entity_class = entity_class
        super().__init__(f'Role "{role_name}" already has a data permission rule for "{entity_class}"')


class RoleCreationError(RoleError):
    """Raised when find-or-create could neither insert nor read back a role."""

    @classmethod
    def failed_to_create_or_find(cls, name: str) -> "RoleCreationError":
        return cls(f'Failed to create or find role "{name}"')


class CycleError(RoleError):
    """Raised when role inheritance loops back on itself."""

    def __init__(self, path: Sequence[str]):
        self.path = tuple(path)
        super().__init__("Role hierarchy contains a cycle: " + " -> ".join(self.path))
