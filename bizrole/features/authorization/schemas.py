"""
Pydantic schemas for authorization checks.
"""
from typing import List, Optional
from pydantic import BaseModel


class PermissionSetResponse(BaseModel):
    principal_id: str
    is_wildcard: bool
    permissions: List[str]


class PermissionCheckResponse(BaseModel):
    principal_id: str
    permission: str
    granted: bool


class RowFilterResponse(BaseModel):
    principal_id: str
    entity_class: str
    statement: Optional[str]
