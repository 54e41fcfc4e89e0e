"""Tests for the background validation task."""
import uuid
from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry
from sqlalchemy.exc import OperationalError

from procurement.core.exceptions import NotFoundError
from procurement.models.validation import Severity
from procurement.validation.types import ValidationSummary
from procurement.workers.validation_tasks import validate_invoice

ORCHESTRATOR = "procurement.validation.orchestrator.ValidationOrchestrator"
SESSION = "procurement.workers.validation_tasks.SessionLocal"


# ─── Tests ────────────────────────────────────────────────────────────────────

def test_task_reports_summary_and_closes_session():
    invoice_id = uuid.uuid4()
    summary = ValidationSummary(
        invoice_id=invoice_id, is_valid=False, flag_count=2,
        has_blocking_issues=True, highest_severity=Severity.CRITICAL, validations=[],
    )
    db = MagicMock()
    with patch(SESSION, return_value=db), patch(ORCHESTRATOR) as orch_cls:
        orch_cls.return_value.validate_invoice.return_value = summary
        result = validate_invoice(str(invoice_id))

    assert result == {
        "invoice_id": str(invoice_id),
        "status": "validated",
        "is_valid": False,
        "flag_count": 2,
        "has_blocking_issues": True,
        "highest_severity": "CRITICAL",
    }
    orch_cls.return_value.validate_invoice.assert_called_once_with(invoice_id)
    db.close.assert_called_once()


def test_missing_invoice_is_not_retried():
    invoice_id = str(uuid.uuid4())
    db = MagicMock()
    with patch(SESSION, return_value=db), patch(ORCHESTRATOR) as orch_cls, \
            patch.object(validate_invoice, "retry") as retry:
        orch_cls.return_value.validate_invoice.side_effect = NotFoundError("Invoice not found")
        result = validate_invoice(invoice_id)

    assert result == {"invoice_id": invoice_id, "status": "not_found"}
    retry.assert_not_called()
    db.close.assert_called_once()


def test_operational_error_rolls_back_and_retries():
    db = MagicMock()
    error = OperationalError("SELECT 1", {}, Exception("connection reset"))
    with patch(SESSION, return_value=db), patch(ORCHESTRATOR) as orch_cls, \
            patch.object(validate_invoice, "retry", side_effect=Retry()) as retry:
        orch_cls.return_value.validate_invoice.side_effect = error
        with pytest.raises(Retry):
            validate_invoice(str(uuid.uuid4()))

    db.rollback.assert_called_once()
    db.close.assert_called_once()
    assert retry.call_args.kwargs["countdown"] == 30
    assert retry.call_args.kwargs["exc"] is error


def test_evaluator_bug_propagates():
    db = MagicMock()
    with patch(SESSION, return_value=db), patch(ORCHESTRATOR) as orch_cls:
        orch_cls.return_value.validate_invoice.side_effect = KeyError("details")
        with pytest.raises(KeyError):
            validate_invoice(str(uuid.uuid4()))
    db.close.assert_called_once()
