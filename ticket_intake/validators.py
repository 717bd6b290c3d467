"""
Validation of incoming ticket records.

Records arrive as loosely-typed mappings (CSV rows, JSON objects, XML
elements). TicketValidator checks them against the ticket input schema
and reports every problem as a field-level error instead of raising, so
one bad row never stops a batch.
"""

import logging
import re
from typing import Annotated, Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .models import Category, DeviceType, FieldError, Priority, TicketSource, TicketStatus


logger = logging.getLogger(__name__)


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

SUBJECT_MAX_LENGTH = 200
DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 2000

RequiredText = Annotated[str, Field(min_length=1)]
SubjectText = Annotated[str, Field(min_length=1, max_length=SUBJECT_MAX_LENGTH)]
DescriptionText = Annotated[
    str, Field(min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH)
]

# Optional fields where a blank CSV cell or empty XML element means "not given"
OPTIONAL_FIELDS = ("category", "priority", "status", "assigned_to", "tags", "metadata")

ENUM_FIELDS = {
    "category": Category,
    "priority": Priority,
    "status": TicketStatus,
    "metadata.source": TicketSource,
    "metadata.device_type": DeviceType,
}


def _drop_blank(data: Any, fields: tuple[str, ...]) -> Any:
    if not isinstance(data, dict):
        return data
    return {
        key: value for key, value in data.items()
        if not (key in fields and (value is None or value == ""))
    }


class MetadataInput(BaseModel):
    source: Optional[TicketSource] = None
    browser: Optional[str] = None
    device_type: Optional[DeviceType] = None

    model_config = {"extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def drop_blank_fields(cls, data: Any) -> Any:
        return _drop_blank(data, ("source", "browser", "device_type"))


class TicketInput(BaseModel):
    """Schema for creating a ticket."""

    customer_id: RequiredText
    customer_email: str
    customer_name: RequiredText
    subject: SubjectText
    description: DescriptionText
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    status: Optional[TicketStatus] = None
    assigned_to: Optional[str] = None
    tags: Optional[list[str]] = None
    metadata: Optional[MetadataInput] = None

    model_config = {"extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def drop_blank_optionals(cls, data: Any) -> Any:
        return _drop_blank(data, OPTIONAL_FIELDS)

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not EMAIL_PATTERN.match(v.strip()):
            raise ValueError("customer_email must be a valid email")
        return v.strip() if v is not None else v

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Any:
        """Accept "a, b" strings and XML <tags><tag>..</tag></tags> wrappers."""
        if isinstance(v, dict) and len(v) == 1:
            v = next(iter(v.values()))
        if isinstance(v, str):
            return [tag.strip() for tag in v.split(",") if tag.strip()]
        return v


class TicketUpdateInput(TicketInput):
    """Schema for updating a ticket: same rules, nothing required."""

    customer_id: Optional[RequiredText] = None
    customer_email: Optional[str] = None
    customer_name: Optional[RequiredText] = None
    subject: Optional[SubjectText] = None
    description: Optional[DescriptionText] = None


class ValidationOutcome(BaseModel):
    """Result of validating one record."""

    valid: bool
    data: dict[str, Any] = Field(default_factory=dict)
    errors: list[FieldError] = Field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        return [error.message for error in self.errors]


def _to_field_error(err: dict[str, Any]) -> FieldError:
    """Translate a pydantic error into a readable field error."""
    field = ".".join(str(part) for part in err["loc"])
    error_type = err["type"]
    ctx = err.get("ctx", {})

    if error_type == "missing":
        message = f"{field} is required"
    elif error_type == "extra_forbidden":
        message = f"{field} is not allowed"
    elif error_type == "string_too_short":
        if ctx.get("min_length") == 1:
            message = f"{field} cannot be empty"
        else:
            message = f"{field} must be at least {ctx.get('min_length')} characters"
    elif error_type == "string_too_long":
        message = f"{field} must not exceed {ctx.get('max_length')} characters"
    elif error_type == "enum" and field in ENUM_FIELDS:
        allowed = ", ".join(member.value for member in ENUM_FIELDS[field])
        message = f"{field} must be one of: {allowed}"
    elif error_type == "value_error":
        message = str(ctx.get("error", err["msg"]))
    elif error_type == "string_type":
        message = f"{field} must be a string"
    elif error_type == "list_type":
        message = f"{field} must be a list"
    elif error_type in ("model_type", "model_attributes_type", "dict_type"):
        message = f"{field or 'record'} must be an object"
    else:
        message = f"{field}: {err['msg']}"

    return FieldError(field=field, message=message)


class TicketValidator:
    """Validator for ticket records."""

    def validate(self, data: Any, require_all: bool = True) -> ValidationOutcome:
        """
        Validate a ticket record.

        Args:
            data: Raw field mapping.
            require_all: True for creation (all required fields must be
                present), False for partial updates.

        Returns:
            ValidationOutcome with the cleaned field data when valid, or
            every field error found when not.
        """
        schema = TicketInput if require_all else TicketUpdateInput
        try:
            parsed = schema.model_validate(data)
        except ValidationError as e:
            errors = [_to_field_error(err) for err in e.errors()]
            logger.debug(f"Record rejected with {len(errors)} error(s)")
            return ValidationOutcome(valid=False, errors=errors)

        return ValidationOutcome(valid=True, data=parsed.model_dump(exclude_unset=True))
