"""Tests for the override / review workflow.

The flag+invoice lock and user lookups are MagicMock repositories; the
session is a MagicMock so commits and rollbacks can be asserted.
"""
import json
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from procurement.core.exceptions import (
    AuthFailureReason,
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from procurement.models.audit import AuditLog
from procurement.models.validation import InvoiceValidation, ValidationOverride, ValidationStatus
from procurement.validation.types import ReviewAction
from procurement.validation.workflow import OverrideWorkflow, check_override_permission

OWNER_ID = uuid.UUID("2f0c6f3a-3b8e-4e8f-9d57-6a1a0c000001")
OTHER_ID = uuid.UUID("2f0c6f3a-3b8e-4e8f-9d57-6a1a0c000002")
GOOD_REASON = "Vendor confirmed the amount by phone"


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _user(user_id=OWNER_ID, role="USER", name="Dana Buyer"):
    return SimpleNamespace(id=user_id, role=role, name=name)


def _validation(status=ValidationStatus.FLAGGED.value, meta=None):
    return InvoiceValidation(
        id=uuid.uuid4(),
        invoice_id=uuid.uuid4(),
        rule_type="AMOUNT_THRESHOLD_EXCEEDED",
        severity="WARNING",
        status=status,
        details={"amount": 15000.0},
        meta=meta,
    )


def _invoice(owner_id=OWNER_ID, status="PENDING"):
    return SimpleNamespace(id=uuid.uuid4(), user_id=owner_id, status=status)


def _workflow(validation=None, invoice=None, user=None, found=True):
    db = MagicMock()
    validations = MagicMock()
    if found:
        validations.get_for_update.return_value = (validation or _validation(), invoice or _invoice())
    else:
        validations.get_for_update.return_value = None
    users = MagicMock()
    users.get.return_value = user
    return OverrideWorkflow(db, validations=validations, users=users), db


def _added(db, cls):
    return [c.args[0] for c in db.add.call_args_list if isinstance(c.args[0], cls)]


# ─── Tests: permission check ──────────────────────────────────────────────────

def test_permission_owner_allowed():
    assert check_override_permission(_user(OWNER_ID, "USER"), OWNER_ID) is None


@pytest.mark.parametrize("role", ["MANAGER", "ADMIN"])
def test_permission_privileged_roles_allowed(role):
    assert check_override_permission(_user(OTHER_ID, role), OWNER_ID) is None


def test_permission_non_owner_user_denied():
    assert check_override_permission(_user(OTHER_ID, "USER"), OWNER_ID) is AuthFailureReason.NOT_OWNER_OR_PRIVILEGED


def test_permission_ownerless_invoice_requires_role():
    assert check_override_permission(_user(OTHER_ID, "USER"), None) is AuthFailureReason.NOT_OWNER_OR_PRIVILEGED


# ─── Tests: override failures ─────────────────────────────────────────────────

def test_short_reason_rejected_before_any_lookup():
    wf, db = _workflow(user=_user())
    with pytest.raises(ValidationError, match="(?i)reason must be at least 10 characters"):
        wf.override_validation(uuid.uuid4(), OWNER_ID, "short")
    wf.validations.get_for_update.assert_not_called()
    db.commit.assert_not_called()


def test_reason_is_sanitised_before_length_check():
    wf, _ = _workflow(user=_user())
    with pytest.raises(ValidationError):
        wf.override_validation(uuid.uuid4(), OWNER_ID, "<b>  ok  </b>      ")


def test_missing_validation():
    wf, db = _workflow(user=_user(), found=False)
    with pytest.raises(NotFoundError, match="Validation not found"):
        wf.override_validation(uuid.uuid4(), OWNER_ID, GOOD_REASON)
    db.rollback.assert_called_once()


def test_already_overridden_conflict():
    wf, db = _workflow(validation=_validation(status=ValidationStatus.OVERRIDDEN.value), user=_user())
    with pytest.raises(ConflictError, match="(?i)already overridden"):
        wf.override_validation(uuid.uuid4(), OWNER_ID, GOOD_REASON)
    db.commit.assert_not_called()


def test_dismissed_flag_cannot_be_overridden():
    wf, _ = _workflow(validation=_validation(status=ValidationStatus.DISMISSED.value), user=_user())
    with pytest.raises(ConflictError, match="already dismissed"):
        wf.override_validation(uuid.uuid4(), OWNER_ID, GOOD_REASON)


@pytest.mark.parametrize("invoice_status", ["APPROVED", "PAID"])
@pytest.mark.parametrize("role", ["USER", "MANAGER", "ADMIN"])
def test_settled_invoice_blocks_override_for_every_role(invoice_status, role):
    wf, db = _workflow(invoice=_invoice(status=invoice_status), user=_user(OWNER_ID, role))
    with pytest.raises(BusinessRuleError, match="(?i)Cannot override.*approved.*paid"):
        wf.override_validation(uuid.uuid4(), OWNER_ID, GOOD_REASON)
    db.rollback.assert_called_once()


def test_unknown_user():
    wf, _ = _workflow(user=None)
    with pytest.raises(NotFoundError, match="User not found"):
        wf.override_validation(uuid.uuid4(), OWNER_ID, GOOD_REASON)


def test_non_owner_user_unauthorized():
    wf, db = _workflow(user=_user(OTHER_ID, "USER"))
    with pytest.raises(UnauthorizedError, match="(?i)Unauthorized.*own invoices.*manager.*admin") as exc_info:
        wf.override_validation(uuid.uuid4(), OTHER_ID, GOOD_REASON)
    assert exc_info.value.reason is AuthFailureReason.NOT_OWNER_OR_PRIVILEGED
    assert _added(db, ValidationOverride) == []
    db.rollback.assert_called_once()


# ─── Tests: override success ──────────────────────────────────────────────────

@patch("procurement.services.audit.log")
def test_owner_override_with_ten_char_reason(mock_audit):
    validation = _validation()
    invoice = _invoice()
    wf, db = _workflow(validation=validation, invoice=invoice, user=_user())

    result = wf.override_validation(validation.id, OWNER_ID, "0123456789")

    assert validation.status == ValidationStatus.OVERRIDDEN.value
    assert validation.reviewed_by == OWNER_ID
    assert validation.reviewed_at is not None
    assert result.is_owner is True
    assert result.override.reason == "0123456789"
    assert result.override.validation_id == validation.id
    assert _added(db, ValidationOverride) == [result.override]
    db.commit.assert_called_once()

    mock_audit.assert_called_once()
    kwargs = mock_audit.call_args.kwargs
    assert kwargs["action"] == "VALIDATION_OVERRIDDEN"
    assert kwargs["entity"] == "InvoiceValidation"
    assert kwargs["entity_id"] == validation.id
    assert kwargs["changes"] == {
        "reason": "0123456789",
        "validationId": str(validation.id),
        "invoiceId": str(invoice.id),
        "ruleType": "AMOUNT_THRESHOLD_EXCEEDED",
        "severity": "WARNING",
        "isOwner": True,
        "userRole": "USER",
        "userName": "Dana Buyer",
    }


@pytest.mark.parametrize("role", ["MANAGER", "ADMIN"])
@patch("procurement.services.audit.log")
def test_privileged_override_of_other_users_invoice(mock_audit, role):
    wf, db = _workflow(user=_user(OTHER_ID, role, name="Morgan Lead"))
    result = wf.override_validation(uuid.uuid4(), OTHER_ID, GOOD_REASON)
    assert result.is_owner is False
    assert mock_audit.call_args.kwargs["changes"]["isOwner"] is False
    assert mock_audit.call_args.kwargs["changes"]["userRole"] == role
    db.commit.assert_called_once()


def test_override_writes_one_audit_row_in_same_session():
    wf, db = _workflow(user=_user())
    wf.override_validation(uuid.uuid4(), OWNER_ID, "  <p>Approved by   finance</p> ")
    audits = _added(db, AuditLog)
    assert len(audits) == 1
    changes = json.loads(audits[0].changes)
    assert changes["reason"] == "Approved by finance"
    assert changes["isOwner"] is True
    assert sorted(changes) == sorted([
        "reason", "validationId", "invoiceId", "ruleType", "severity", "isOwner", "userRole", "userName",
    ])


@patch("procurement.services.audit.log", side_effect=RuntimeError("audit insert failed"))
def test_audit_failure_rolls_back_everything(mock_audit):
    wf, db = _workflow(user=_user())
    with pytest.raises(RuntimeError, match="audit insert failed"):
        wf.override_validation(uuid.uuid4(), OWNER_ID, GOOD_REASON)
    db.rollback.assert_called_once()
    db.commit.assert_not_called()


def test_second_override_sees_terminal_status():
    validation = _validation()
    wf, _ = _workflow(validation=validation, user=_user())
    wf.override_validation(validation.id, OWNER_ID, GOOD_REASON)
    with pytest.raises(ConflictError, match="already overridden"):
        wf.override_validation(validation.id, OWNER_ID, GOOD_REASON)


# ─── Tests: review ────────────────────────────────────────────────────────────

@patch("procurement.services.audit.log")
def test_dismiss_sets_terminal_status(mock_audit):
    validation = _validation()
    wf, db = _workflow(validation=validation, user=_user())
    result = wf.review_validation(validation.id, OWNER_ID, ReviewAction.DISMISS)
    assert result.status == ValidationStatus.DISMISSED.value
    assert result.reviewed_by == OWNER_ID
    assert mock_audit.call_args.kwargs["action"] == "VALIDATION_DISMISSED"
    db.commit.assert_called_once()


def test_dismiss_audit_row_uses_stored_key_names():
    validation = _validation()
    invoice = _invoice()
    wf, db = _workflow(validation=validation, invoice=invoice, user=_user())
    wf.review_validation(validation.id, OWNER_ID, ReviewAction.DISMISS)

    audits = _added(db, AuditLog)
    assert len(audits) == 1
    changes = json.loads(audits[0].changes)
    assert sorted(changes) == sorted([
        "action", "validationId", "invoiceId", "ruleType", "severity", "status", "userRole", "userName",
    ])
    assert changes["invoiceId"] == str(invoice.id)
    assert changes["status"] == "DISMISSED"


@patch("procurement.services.audit.log")
def test_escalate_keeps_flag_open_and_marks_metadata(mock_audit):
    validation = _validation(meta={"source": "batch"})
    wf, _ = _workflow(validation=validation, user=_user(OTHER_ID, "MANAGER"))
    result = wf.review_validation(validation.id, OTHER_ID, "ESCALATE")
    assert result.status == ValidationStatus.FLAGGED.value
    assert result.reviewed_at is None
    assert result.meta["escalated"] is True
    assert result.meta["escalatedBy"] == str(OTHER_ID)
    assert result.meta["source"] == "batch"
    assert mock_audit.call_args.kwargs["action"] == "VALIDATION_ESCALATED"


def test_review_terminal_flag_conflicts():
    wf, _ = _workflow(validation=_validation(status=ValidationStatus.DISMISSED.value), user=_user())
    with pytest.raises(ConflictError):
        wf.review_validation(uuid.uuid4(), OWNER_ID, ReviewAction.DISMISS)


def test_review_requires_owner_or_privileged_role():
    wf, db = _workflow(user=_user(OTHER_ID, "USER"))
    with pytest.raises(UnauthorizedError):
        wf.review_validation(uuid.uuid4(), OTHER_ID, ReviewAction.DISMISS)
    db.rollback.assert_called_once()


def test_review_allowed_on_settled_invoice():
    wf, _ = _workflow(invoice=_invoice(status="PAID"), user=_user())
    assert wf.review_validation(uuid.uuid4(), OWNER_ID, ReviewAction.DISMISS).status == "DISMISSED"


def test_review_unknown_action():
    wf, _ = _workflow(user=_user())
    with pytest.raises(ValueError):
        wf.review_validation(uuid.uuid4(), OWNER_ID, "DELETE")
