from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.domain.models import AuditTrail


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ["api_key", "authorization", "token", "secret", "password", "action_link"]
_REDACTED_VALUE = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_metadata(value: Any) -> Any:
    # Recursively scrub credentials and sign-in links while preserving structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_metadata(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    return value


async def record_event(
    *,
    session: AsyncSession,
    organization_id: str | None,
    user_id: str | None,
    user_email: str | None,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    entity_code: str | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    commit: bool = False,
) -> None:
    # Audit rows are best effort; a failed write never fails the admin action.
    event = AuditTrail(
        organization_id=organization_id,
        user_id=user_id,
        user_email=user_email,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_code=entity_code,
        old_values=sanitize_metadata(old_values) if old_values is not None else None,
        new_values=sanitize_metadata(new_values) if new_values is not None else None,
        metadata_json=sanitize_metadata(metadata or {}),
    )

    try:
        session.add(event)
        if commit:
            await session.commit()
    except SQLAlchemyError as exc:
        if commit:
            await session.rollback()
        logger.warning(
            "audit_event_write_failed action=%s entity_type=%s",
            action,
            entity_type,
            exc_info=exc,
        )
