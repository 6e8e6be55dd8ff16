"""Common helper functions for the service layer."""

from __future__ import annotations

import uuid

from crm_files.services.errors import NotFoundError, ValidationError


def coerce_uuid(value):
    """Convert value to UUID, returning None if value is None."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def parse_id(value, label: str = "Record") -> uuid.UUID:
    """Parse an identifier supplied by a caller.

    A malformed id can never match a row, so it is reported as not found.
    """
    try:
        return coerce_uuid(value)
    except (TypeError, ValueError, AttributeError) as exc:
        raise NotFoundError(f"{label} not found") from exc


def validate_enum(value, enum_cls, label: str):
    """Validate and convert a value to an enum member.

    Raises:
        ValidationError: if value is not a valid enum member
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {label}. Must be one of: {allowed}") from exc


def require_text(value, label: str, max_length: int | None = None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a non-empty string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{label} must be at most {max_length} characters")
    return value
