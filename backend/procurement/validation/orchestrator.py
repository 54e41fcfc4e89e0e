"""Invoice validation orchestrator.

Loads an invoice aggregate once, runs every enabled rule evaluator against
it and persists the triggered flags in a single batch. All functions take a
sync SQLAlchemy Session so they can be called from API handlers and Celery
tasks alike.
"""
import logging
import uuid
from typing import Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procurement.core.config import settings
from procurement.core.exceptions import NotFoundError
from procurement.models.validation import InvoiceValidation, RuleType, Severity, ValidationStatus
from procurement.validation.config import ValidationConfigService, get_validation_config_service
from procurement.validation.evaluators import DEFAULT_HISTORICAL_COUNT, EVALUATORS, Evaluator, run_evaluators
from procurement.validation.repositories import InvoiceRepository, InvoiceValidationRepository
from procurement.validation.types import Flag, MergedConfig, ValidationSummary, highest_severity

logger = logging.getLogger(__name__)


def build_summary(invoice_id: uuid.UUID, rows: list) -> ValidationSummary:
    """Summarise every flag on an invoice.

    Only flags still FLAGGED can block the invoice; resolved flags are
    counted and listed but never blocking.
    """
    open_rows = [row for row in rows if row.status == ValidationStatus.FLAGGED.value]
    ordered = list(rows)
    ordered.sort(key=lambda r: r.created_at.timestamp() if r.created_at else 0, reverse=True)
    ordered.sort(key=lambda r: Severity(r.severity).rank, reverse=True)
    return ValidationSummary(
        invoice_id=invoice_id,
        is_valid=not rows,
        flag_count=len(rows),
        has_blocking_issues=any(row.severity == Severity.CRITICAL.value for row in open_rows),
        highest_severity=highest_severity(row.severity for row in rows),
        open_flag_count=len(open_rows),
        validations=ordered,
    )


def price_history_limit(configs: Mapping[RuleType, MergedConfig]) -> int:
    """Rows of price history to load per item: the lookback, widened to the configured historicalCount."""
    lookback = settings.PRICE_HISTORY_LOOKBACK
    config = configs.get(RuleType.PRICE_VARIANCE)
    if config is None or not config.enabled:
        return lookback
    wanted = int(config.get("historicalCount", DEFAULT_HISTORICAL_COUNT))
    return max(lookback, wanted)


class ValidationOrchestrator:
    def __init__(
        self,
        db: Session,
        config_service: ValidationConfigService | None = None,
        evaluators: dict[RuleType, Evaluator] | None = None,
        invoices: InvoiceRepository | None = None,
        validations: InvoiceValidationRepository | None = None,
    ):
        self.db = db
        self.config_service = config_service or get_validation_config_service()
        self.evaluators: dict = evaluators or EVALUATORS
        self.invoices = invoices or InvoiceRepository(db)
        self.validations = validations or InvoiceValidationRepository(db)

    def evaluate(self, invoice_id: uuid.UUID) -> list[Flag]:
        """Run enabled evaluators without persisting anything."""
        configs = self.config_service.get_all_rule_configs()
        ctx = self.invoices.load_context(invoice_id, price_history_limit=price_history_limit(configs))
        if ctx is None:
            logger.warning("Validation requested for missing invoice %s", invoice_id)
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return run_evaluators(ctx, configs, self.evaluators)

    def _open_by_rule(self, invoice_id: uuid.UUID) -> dict[str, InvoiceValidation]:
        open_rows = self.validations.list_for_invoice(invoice_id, status=ValidationStatus.FLAGGED.value)
        return {row.rule_type: row for row in open_rows}

    def validate_invoice(self, invoice_id: uuid.UUID) -> ValidationSummary:
        """Evaluate an invoice and persist one FLAGGED row per newly triggered rule.

        Idempotent per (invoice, rule type): a rule that already has an open
        FLAGGED row is not flagged again; the existing row is reported in
        the summary instead. A concurrent run that inserted the same open
        flag first wins; this run re-reads and reports that row. Evaluator
        errors propagate and nothing is written for that run.
        """
        flags = self.evaluate(invoice_id)
        open_by_rule = self._open_by_rule(invoice_id)

        new_rows = [
            InvoiceValidation(
                invoice_id=invoice_id,
                rule_type=flag.rule_type.value,
                severity=flag.severity.value,
                status=ValidationStatus.FLAGGED.value,
                details=flag.details,
                meta=flag.metadata,
            )
            for flag in flags
            if flag.rule_type.value not in open_by_rule
        ]
        try:
            self.validations.create_many(new_rows)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Concurrent validation of invoice %s; reusing open flags", invoice_id)
            new_rows = []
            open_by_rule = self._open_by_rule(invoice_id)
        except Exception:
            self.db.rollback()
            raise

        triggered = [open_by_rule.get(flag.rule_type.value) for flag in flags]
        result_rows = [row for row in triggered if row is not None] + new_rows
        summary = build_summary(invoice_id, result_rows)

        logger.info(
            "Validated invoice %s: %d flag(s) (%d new), highest severity %s",
            invoice_id, summary.flag_count, len(new_rows),
            summary.highest_severity.value if summary.highest_severity else None,
        )
        return summary

    def revalidate_invoice(self, invoice_id: uuid.UUID) -> ValidationSummary:
        logger.info("Revalidating invoice %s", invoice_id)
        return self.validate_invoice(invoice_id)

    def get_validation_summary(self, invoice_id: uuid.UUID) -> ValidationSummary:
        """Summarise persisted flags without re-running any evaluator."""
        return build_summary(invoice_id, self.validations.list_for_invoice(invoice_id))
