"""Human resolution of validation flags: override, dismiss, escalate.

Every decision runs in one transaction: the flag and its invoice are
row-locked, preconditions are re-checked under the lock, and the state
change, override record and audit row are committed together or not at all.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from procurement.core.config import settings
from procurement.core.exceptions import (
    AuthFailureReason,
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from procurement.models.invoice import LOCKED_INVOICE_STATUSES
from procurement.models.user import PRIVILEGED_ROLES, User
from procurement.models.validation import InvoiceValidation, ValidationOverride, ValidationStatus
from procurement.services import audit as audit_svc
from procurement.services.sanitize import sanitize_text
from procurement.validation.repositories import InvoiceValidationRepository, UserRepository
from procurement.validation.types import ReviewAction

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = (
    "Unauthorized: You can only override validations for your own invoices "
    "or have manager/admin role"
)


def check_override_permission(user: User, invoice_owner_id: uuid.UUID | None) -> AuthFailureReason | None:
    """Return None when ``user`` may resolve flags on the invoice, else the failure reason."""
    if invoice_owner_id is not None and user.id == invoice_owner_id:
        return None
    if user.role in PRIVILEGED_ROLES:
        return None
    return AuthFailureReason.NOT_OWNER_OR_PRIVILEGED


@dataclass
class OverrideResult:
    validation: InvoiceValidation
    override: ValidationOverride
    is_owner: bool


class OverrideWorkflow:
    def __init__(
        self,
        db: Session,
        validations: InvoiceValidationRepository | None = None,
        users: UserRepository | None = None,
    ):
        self.db = db
        self.validations = validations or InvoiceValidationRepository(db)
        self.users = users or UserRepository(db)

    # ─── Shared checks (run under the row lock) ───

    def _lock_flagged(self, validation_id: uuid.UUID):
        found = self.validations.get_for_update(validation_id)
        if found is None:
            raise NotFoundError("Validation not found")
        validation, invoice = found
        if validation.status != ValidationStatus.FLAGGED.value:
            raise ConflictError(f"Validation already {validation.status.lower()}")
        return validation, invoice

    def _authorize(self, user_id: uuid.UUID, invoice) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        reason = check_override_permission(user, invoice.user_id)
        if reason is not None:
            logger.warning(
                "User %s (role %s) denied on invoice %s: %s",
                user.id, user.role, invoice.id, reason.value,
            )
            raise UnauthorizedError(UNAUTHORIZED_MESSAGE, reason=reason)
        return user

    # ─── Override ───

    def override_validation(self, validation_id: uuid.UUID, user_id: uuid.UUID, reason: str) -> OverrideResult:
        """Move a FLAGGED validation to OVERRIDDEN with a recorded justification.

        Raises ValidationError, NotFoundError, ConflictError,
        BusinessRuleError or UnauthorizedError, checked in that order.
        """
        clean_reason = sanitize_text(reason, max_length=settings.OVERRIDE_REASON_MAX_LENGTH)
        if len(clean_reason) < settings.OVERRIDE_REASON_MIN_LENGTH:
            raise ValidationError(
                f"Override reason must be at least {settings.OVERRIDE_REASON_MIN_LENGTH} characters"
            )

        try:
            validation, invoice = self._lock_flagged(validation_id)
            if invoice.status in LOCKED_INVOICE_STATUSES:
                raise BusinessRuleError("Cannot override validation for approved/paid invoice")
            user = self._authorize(user_id, invoice)
            is_owner = invoice.user_id is not None and user.id == invoice.user_id

            validation.status = ValidationStatus.OVERRIDDEN.value
            validation.reviewed_at = datetime.now(timezone.utc)
            validation.reviewed_by = user.id

            override = ValidationOverride(validation_id=validation.id, user_id=user.id, reason=clean_reason)
            self.db.add(override)
            self.db.flush()

            audit_svc.log(
                db=self.db,
                action="VALIDATION_OVERRIDDEN",
                entity="InvoiceValidation",
                entity_id=validation.id,
                user_id=user.id,
                changes={
                    "reason": clean_reason,
                    "validationId": str(validation.id),
                    "invoiceId": str(invoice.id),
                    "ruleType": validation.rule_type,
                    "severity": validation.severity,
                    "isOwner": is_owner,
                    "userRole": user.role,
                    "userName": user.name,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Validation %s (%s) overridden by %s on invoice %s",
            validation.id, validation.rule_type, user.id, invoice.id,
        )
        return OverrideResult(validation=validation, override=override, is_owner=is_owner)

    # ─── Review ───

    def review_validation(
        self, validation_id: uuid.UUID, user_id: uuid.UUID, action: ReviewAction | str
    ) -> InvoiceValidation:
        """DISMISS closes the flag; ESCALATE marks it for attention and leaves it FLAGGED."""
        action = ReviewAction(action)
        try:
            validation, invoice = self._lock_flagged(validation_id)
            user = self._authorize(user_id, invoice)
            now = datetime.now(timezone.utc)

            if action is ReviewAction.DISMISS:
                validation.status = ValidationStatus.DISMISSED.value
                validation.reviewed_at = now
                validation.reviewed_by = user.id
                audit_action = "VALIDATION_DISMISSED"
            else:
                # reassign so the JSON column registers the change
                validation.meta = {
                    **(validation.meta or {}),
                    "escalated": True,
                    "escalatedAt": now.isoformat(),
                    "escalatedBy": str(user.id),
                }
                audit_action = "VALIDATION_ESCALATED"

            audit_svc.log(
                db=self.db,
                action=audit_action,
                entity="InvoiceValidation",
                entity_id=validation.id,
                user_id=user.id,
                changes={
                    "action": action.value,
                    "validationId": str(validation.id),
                    "invoiceId": str(invoice.id),
                    "ruleType": validation.rule_type,
                    "severity": validation.severity,
                    "status": validation.status,
                    "userRole": user.role,
                    "userName": user.name,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Validation %s %s by %s", validation.id, action.value.lower(), user.id)
        return validation
