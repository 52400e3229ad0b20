"""
Pydantic schemas for role management.

Request and response models for roles, selection options and principal
assignments.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=80, description="Unique role name")
    title: str = Field(..., min_length=1, max_length=255, description="Human readable title")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""
    is_admin: bool = False
    valid: bool = True
    permissions: List[str] = Field(default_factory=list)
    exclude_permissions: List[str] = Field(default_factory=list)
    hierarchical_roles: Optional[List[str]] = Field(None, description="Inherited role names (defaults to the base role)")
    menu_json: Optional[str] = Field(None, max_length=65535)


class RoleUpdate(BaseModel):
    """Schema for updating a role."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    is_admin: Optional[bool] = None
    valid: Optional[bool] = None
    permissions: Optional[List[str]] = None
    exclude_permissions: Optional[List[str]] = None
    hierarchical_roles: Optional[List[str]] = None
    menu_json: Optional[str] = Field(None, max_length=65535)


class RoleEnsure(BaseModel):
    """Schema for find-or-create by name."""
    title: Optional[str] = Field(None, max_length=255)


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: int
    is_admin: Optional[bool]
    valid: Optional[bool]
    permissions: List[str] = []
    exclude_permissions: List[str] = []
    hierarchical_roles: List[str] = []
    menu_json: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class RoleAdminResponse(RoleResponse):
    """Role with the number of principals holding it."""
    principal_count: int = 0


class RoleOption(BaseModel):
    """Role entry for selection widgets."""
    id: int
    label: str


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignPrincipal(BaseModel):
    """Schema for assigning a role to a principal."""
    principal_id: str = Field(..., min_length=1, max_length=64)


class AssignmentResponse(BaseModel):
    role_id: int
    principal_id: str
    changed: bool
