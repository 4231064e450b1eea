"""Audit sink used by the ledger services."""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from cambio.database.base import Database

logger = logging.getLogger(__name__)


def to_payload(value: Any) -> Any:
    """Convert decimals, enums and dates into JSON-friendly values."""
    if isinstance(value, dict):
        return {str(k): to_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_payload(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class AuditSink(ABC):
    """Receives audit records for entities changed by the ledger."""

    @abstractmethod
    def record(
        self,
        entity_type: str,
        entity_id: int | str,
        action: str,
        payload: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> None:
        """Record one audit entry."""
        pass


class DatabaseAuditSink(AuditSink):
    """Writes audit entries to the ``audit_logs`` table.

    Called inside an atomic unit the row commits (or rolls back) with the unit.
    """

    def __init__(self, db: Database):
        self.db = db

    def record(
        self,
        entity_type: str,
        entity_id: int | str,
        action: str,
        payload: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> None:
        self.db.add_audit_entry(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            payload=to_payload(payload),
            actor_id=actor_id,
        )


def record_quietly(
    sink: AuditSink,
    entity_type: str,
    entity_id: int | str,
    action: str,
    payload: dict[str, Any],
    actor_id: Optional[str] = None,
) -> None:
    """Record an audit entry after the fact; failures are logged, never raised."""
    try:
        sink.record(entity_type, entity_id, action, payload, actor_id)
    except Exception:
        logger.warning(
            "Audit record %s for %s %s could not be written", action, entity_type, entity_id, exc_info=True
        )
