from __future__ import annotations

from uuid import UUID

from minrisk.core.errors import ValidationError


def is_uuid(value: str | None) -> bool:
    if not value:
        return False
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def require_uuid(value: str | None, field_name: str) -> str:
    # Identifiers are UUIDs in every table; reject malformed ids before querying.
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError("Missing required fields", details={"missing": [field_name]})
    if not is_uuid(cleaned):
        raise ValidationError(f"Invalid {field_name}", details={"field": field_name})
    return str(UUID(cleaned))
