"""Invoice validation models: rule configuration, flags, and overrides."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement.db.base import Base, CreatedAtMixin, TimestampMixin, UUIDMixin


class RuleType(str, enum.Enum):
    DUPLICATE_INVOICE_NUMBER = "DUPLICATE_INVOICE_NUMBER"
    MISSING_INVOICE_NUMBER = "MISSING_INVOICE_NUMBER"
    AMOUNT_THRESHOLD_EXCEEDED = "AMOUNT_THRESHOLD_EXCEEDED"
    ROUND_AMOUNT_PATTERN = "ROUND_AMOUNT_PATTERN"
    PRICE_VARIANCE = "PRICE_VARIANCE"
    PO_AMOUNT_VARIANCE = "PO_AMOUNT_VARIANCE"
    PO_ITEM_MISMATCH = "PO_ITEM_MISMATCH"
    DELIVERY_NOTE_MISMATCH = "DELIVERY_NOTE_MISMATCH"


class Severity(str, enum.Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 1, Severity.WARNING: 2, Severity.CRITICAL: 3}


class ValidationStatus(str, enum.Enum):
    FLAGGED = "FLAGGED"  # only non-terminal state
    REVIEWED = "REVIEWED"
    DISMISSED = "DISMISSED"
    OVERRIDDEN = "OVERRIDDEN"


class ValidationRuleConfig(Base, UUIDMixin, TimestampMixin):
    """One row per rule type. Mutated only by admins, never deleted."""

    __tablename__ = "validation_rules"

    rule_type: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(nullable=False, default=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default=Severity.WARNING.value)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict, server_default="{}")  # numeric params


class InvoiceValidation(Base, UUIDMixin, CreatedAtMixin):
    """A single rule trigger (flag) on an invoice. Created only by the orchestrator."""

    __tablename__ = "invoice_validations"
    __table_args__ = (
        # at most one open flag per rule per invoice
        Index(
            "uq_invoice_validations_open_rule",
            "invoice_id", "rule_type",
            unique=True,
            postgresql_where=text("status = 'FLAGGED'"),
        ),
    )

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rule_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # frozen at creation
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ValidationStatus.FLAGGED.value, index=True
    )
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    meta: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="validations")  # type: ignore[name-defined]
    override: Mapped["ValidationOverride | None"] = relationship(
        "ValidationOverride", back_populates="validation", uselist=False
    )


class ValidationOverride(Base, UUIDMixin, CreatedAtMixin):
    """Human justification for an OVERRIDDEN flag. Immutable once written."""

    __tablename__ = "validation_overrides"

    validation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("invoice_validations.id", ondelete="CASCADE"),
        unique=True, nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    validation: Mapped["InvoiceValidation"] = relationship("InvoiceValidation", back_populates="override")
    user: Mapped["User"] = relationship("User")  # type: ignore[name-defined]
