"""Celery tasks for background invoice validation."""
import logging
import uuid

from sqlalchemy.exc import OperationalError

from procurement.core.exceptions import NotFoundError
from procurement.db.session import SessionLocal
from procurement.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="tasks.validate_invoice", max_retries=3)
def validate_invoice(self, invoice_id: str) -> dict:
    """Run every enabled validation rule for one invoice.

    Retries only on operational DB errors (lost connection, lock timeout);
    a missing invoice is reported, not retried.
    """
    from procurement.validation.orchestrator import ValidationOrchestrator

    logger.info("validate_invoice started: %s", invoice_id)
    db = SessionLocal()
    try:
        summary = ValidationOrchestrator(db).validate_invoice(uuid.UUID(invoice_id))
        result = {
            "invoice_id": invoice_id,
            "status": "validated",
            "is_valid": summary.is_valid,
            "flag_count": summary.flag_count,
            "has_blocking_issues": summary.has_blocking_issues,
            "highest_severity": summary.highest_severity.value if summary.highest_severity else None,
        }
        logger.info("validate_invoice complete: %s → %d flag(s)", invoice_id, summary.flag_count)
        return result

    except NotFoundError:
        logger.error("Invoice %s not found in DB", invoice_id)
        return {"invoice_id": invoice_id, "status": "not_found"}

    except OperationalError as exc:
        db.rollback()
        logger.warning("validate_invoice transient DB error for %s: %s", invoice_id, exc)
        raise self.retry(exc=exc, countdown=30)

    finally:
        db.close()
