from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_ledger.models.audit_log import AuditLog


def to_json_value(value: Any) -> Any:
    """Coerce ids, timestamps, enums and policy/split dataclasses into JSON column values."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_json_value(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_value(v) for v in value]
    return str(value)


def snapshot(obj: object, *fields: str) -> dict[str, Any]:
    # Encoded eagerly so later mutations of the row (or of its JSON dicts) do not leak in.
    return {name: to_json_value(getattr(obj, name)) for name in fields}


async def audit_log(
    session: AsyncSession,
    *,
    actor: str,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    before: Mapping[str, Any] | None = None,
    after: Mapping[str, Any] | None = None,
) -> AuditLog:
    row = AuditLog(
        actor=actor,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        before=None if before is None else to_json_value(before),
        after=None if after is None else to_json_value(after),
    )
    session.add(row)
    return row
