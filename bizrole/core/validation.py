"""Field checks shared by the role and data permission models."""
from typing import Optional

from bizrole.core.exceptions import ValidationError


def require_text(field: str, value: Optional[str], max_length: int) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field, f"{field} must not be blank")
    return optional_text(field, value, max_length)


def optional_text(field: str, value: Optional[str], max_length: int) -> Optional[str]:
    if value is not None and len(value) > max_length:
        raise ValidationError(field, f"{field} must be at most {max_length} characters")
    return value
