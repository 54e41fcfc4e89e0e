"""Value objects shared by the validation engine.

Everything here is immutable: merged configs are handed out from a shared
cache snapshot, flags are produced by pure evaluators, and summaries are
plain results returned to callers.
"""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from procurement.models.validation import InvoiceValidation, RuleType, Severity


class ReviewAction(str, enum.Enum):
    DISMISS = "DISMISS"
    ESCALATE = "ESCALATE"


@dataclass(frozen=True)
class MergedConfig:
    """Effective settings for one rule type after env overrides are applied."""

    enabled: bool
    severity: Severity
    config: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.config, MappingProxyType):
            object.__setattr__(self, "config", MappingProxyType(dict(self.config)))

    def get(self, key: str, default: float) -> float:
        """Return a numeric parameter; an explicit 0 is honoured, only absence falls back."""
        value = self.config.get(key)
        return default if value is None else value

    def as_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "severity": self.severity.value, "config": dict(self.config)}


@dataclass(frozen=True)
class EnvOverride:
    """Typed view of the VALIDATION_RULE_<TYPE>_* variables for one rule type."""

    enabled: bool | None = None
    config: Mapping[str, float] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.enabled is None and not self.config


@dataclass(frozen=True)
class Flag:
    """One triggered rule, ready to be persisted as an InvoiceValidation."""

    rule_type: RuleType
    severity: Severity
    details: dict[str, Any]
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class PricePoint:
    price: float
    recorded_at: datetime


@dataclass
class InvoiceContext:
    """Everything any evaluator may read, loaded up front in a fixed number of queries.

    ``invoice`` is the ORM aggregate with items (+item, +vendor), purchase
    order (+items) and delivery-note links (+note, +items) eagerly loaded.
    ``duplicates`` holds other live invoices of the same vendor sharing the
    invoice number; ``price_history`` maps item id to prices, newest first.
    """

    invoice: Any
    duplicates: list[Any] = field(default_factory=list)
    price_history: dict[uuid.UUID, list[PricePoint]] = field(default_factory=dict)

    @property
    def purchase_order(self):
        return self.invoice.purchase_order

    @property
    def delivery_notes(self) -> list:
        return [link.delivery_note for link in (self.invoice.delivery_note_links or [])]


@dataclass
class ValidationSummary:
    """``flag_count`` counts every flag on the invoice; ``open_flag_count`` only those still FLAGGED."""

    invoice_id: uuid.UUID
    is_valid: bool
    flag_count: int
    has_blocking_issues: bool
    highest_severity: Severity | None
    open_flag_count: int = 0
    validations: list[InvoiceValidation] = field(default_factory=list)


def highest_severity(severities) -> Severity | None:
    ranked = [Severity(s) for s in severities]
    if not ranked:
        return None
    return max(ranked, key=lambda s: s.rank)
