"""
Document Gateway: User Field Rules
===================================

Users are free-form JSON documents. Only two fields have rules, and only
when present:

    email  must contain "@" and "."
    role   one of admin, user, moderator, developer

Everything else passes through untouched.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from docgateway.exceptions import ValidationError

VALID_ROLES = ("admin", "user", "moderator", "developer")


class UserFields(BaseModel):
    """Checks the constrained fields of a user body; extra fields allowed."""

    model_config = ConfigDict(extra="allow")

    email: Optional[str] = None
    role: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and ("@" not in v or "." not in v):
            raise ValueError(f"'{v}' is not a valid email address")
        return v

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in VALID_ROLES:
            raise ValueError(f"Invalid role '{v}'. Must be one of: {', '.join(VALID_ROLES)}")
        return v


def check_user_fields(payload: Dict[str, Any]) -> None:
    """Raises the gateway ValidationError for the first broken field rule."""
    try:
        UserFields.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        message = first["msg"].removeprefix("Value error, ")
        raise ValidationError(message=message, field=field) from None
