"""Audit log helper: append-only writes to audit_logs table."""
import json
import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from procurement.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log(
    db: Session,
    action: str,
    entity: str,
    entity_id: uuid.UUID | str | None = None,
    user_id: uuid.UUID | str | None = None,
    changes: Any | None = None,
) -> AuditLog:
    """Write a single audit log entry inside the caller's transaction.

    Args:
        db: Sync SQLAlchemy session. The row is flushed, never committed;
            it becomes durable together with the decision it records.
        action: Upper-snake verb, e.g. 'VALIDATION_OVERRIDDEN'.
        entity: Model name of the affected record, e.g. 'InvoiceValidation'.
        entity_id: PK of the affected record.
        user_id: User who performed the action (None for system actions).
        changes: JSON-serialisable snapshot of the decision.
    """
    entry = AuditLog(
        user_id=uuid.UUID(str(user_id)) if user_id else None,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        changes=json.dumps(changes, default=str) if changes is not None else None,
    )
    db.add(entry)
    db.flush()
    logger.debug("Audit: %s %s/%s", action, entity, entity_id)
    return entry
