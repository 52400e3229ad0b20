"""
Pydantic schemas for data permission rules.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class RuleCreate(BaseModel):
    """Schema for creating a data permission rule."""
    entity_class: str = Field(..., min_length=1, max_length=255, description="Entity class the rule restricts")
    statement: str = Field(..., min_length=1, max_length=65535, description="WHERE fragment without the leading keyword")
    remark: Optional[str] = Field(None, max_length=65535)
    valid: bool = False


class RuleUpdate(BaseModel):
    """Schema for updating a data permission rule."""
    statement: Optional[str] = Field(None, min_length=1, max_length=65535)
    remark: Optional[str] = Field(None, max_length=65535)
    valid: Optional[bool] = None


class RuleResponse(BaseModel):
    """Schema for data permission rule response."""
    id: str
    role_id: int
    entity_class: str
    statement: str
    remark: Optional[str]
    valid: Optional[bool]
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)
