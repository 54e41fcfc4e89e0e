"""Read models and rule administration around the validation engine."""
import logging
import math
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from procurement.core.exceptions import (
    AuthFailureReason,
    ConfigNotFoundError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from procurement.models.validation import RuleType, Severity, ValidationRuleConfig, ValidationStatus
from procurement.services import audit as audit_svc
from procurement.validation.config import ValidationConfigService, get_validation_config_service
from procurement.validation.repositories import (
    InvoiceValidationRepository,
    RuleConfigRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "rule_type": RuleType.DUPLICATE_INVOICE_NUMBER.value,
        "name": "Duplicate Invoice Number",
        "description": "Prevents same invoice number from same vendor",
        "severity": Severity.CRITICAL.value,
        "config": {},
    },
    {
        "rule_type": RuleType.MISSING_INVOICE_NUMBER.value,
        "name": "Missing Invoice Number",
        "description": "Warns when invoice number is not provided",
        "severity": Severity.WARNING.value,
        "config": {},
    },
    {
        "rule_type": RuleType.AMOUNT_THRESHOLD_EXCEEDED.value,
        "name": "Amount Threshold Exceeded",
        "description": "Flags invoices above configured amount",
        "severity": Severity.WARNING.value,
        "config": {"threshold": 10000},
    },
    {
        "rule_type": RuleType.ROUND_AMOUNT_PATTERN.value,
        "name": "Round Amount Pattern",
        "description": "Detects suspiciously round invoice amounts",
        "severity": Severity.INFO.value,
        "config": {"minimumAmount": 1000},
    },
    {
        "rule_type": RuleType.PO_AMOUNT_VARIANCE.value,
        "name": "Purchase Order Amount Variance",
        "description": "Flags invoices with significant variance from PO amount",
        "severity": Severity.WARNING.value,
        "config": {"variancePercent": 10},
    },
    {
        "rule_type": RuleType.PO_ITEM_MISMATCH.value,
        "name": "Purchase Order Item Mismatch",
        "description": "Detects invoice items not present in purchase order",
        "severity": Severity.WARNING.value,
        "config": {},
    },
    {
        "rule_type": RuleType.DELIVERY_NOTE_MISMATCH.value,
        "name": "Delivery Note Mismatch",
        "description": "Detects invoice quantity exceeding delivered quantity",
        "severity": Severity.WARNING.value,
        "config": {},
    },
    {
        "rule_type": RuleType.PRICE_VARIANCE.value,
        "name": "Price Variance",
        "description": "Detects items priced significantly different from historical average",
        "severity": Severity.INFO.value,
        "config": {"variancePercent": 15, "historicalCount": 5},
    },
]


# ─── Flag listing / dashboard ───

def list_flagged_validations(
    db: Session,
    severity: str | None = None,
    status: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    items, total = InvoiceValidationRepository(db).list_filtered(
        severity=severity,
        status=status,
        created_from=created_from,
        created_to=created_to,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def get_dashboard_stats(db: Session) -> dict:
    repo = InvoiceValidationRepository(db)
    flagged = ValidationStatus.FLAGGED.value
    by_severity = repo.count_by("severity", status=flagged)
    by_status = repo.count_by("status")
    return {
        "total_flagged": by_status.get(flagged, 0),
        "flagged_by_severity": {s.value: by_severity.get(s.value, 0) for s in Severity},
        "by_status": {s.value: by_status.get(s.value, 0) for s in ValidationStatus},
        "recent_flags": repo.recent(flagged, limit=10),
    }


# ─── Rule administration ───

def list_rule_configs(
    config_service: ValidationConfigService | None = None,
    repository: RuleConfigRepository | None = None,
) -> list[dict]:
    """Stored rule rows side by side with the effective (env-merged) view."""
    service = config_service or get_validation_config_service()
    rows = {row.rule_type: row for row in (repository or RuleConfigRepository()).find_all()}
    effective = service.get_all_rule_configs()

    result = []
    for rule_type in RuleType:
        row = rows.get(rule_type.value)
        merged = effective.get(rule_type)
        result.append({
            "rule_type": rule_type.value,
            "name": row.name if row is not None else None,
            "description": row.description if row is not None else None,
            "stored": (
                {"enabled": row.enabled, "severity": row.severity, "config": dict(row.config or {})}
                if row is not None else None
            ),
            "effective": merged.as_dict() if merged is not None else None,
            "env_override": rule_type in service.overrides,
        })
    return result


def _validate_config_values(config: dict) -> dict:
    clean = {}
    for key, value in config.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Config value for '{key}' must be a number")
        if not math.isfinite(value) or value < 0:
            raise ValidationError(f"Config value for '{key}' must be a finite number >= 0")
        clean[key] = value
    return clean


def update_rule_config(
    db: Session,
    rule_type: RuleType | str,
    actor_id: uuid.UUID,
    enabled: bool | None = None,
    severity: Severity | str | None = None,
    config: dict | None = None,
    config_service: ValidationConfigService | None = None,
):
    """Update one stored rule (ADMIN only) and invalidate the merged-config cache."""
    try:
        rule_type = RuleType(rule_type)
    except ValueError:
        raise ConfigNotFoundError(f"No configuration found for rule type: {rule_type}") from None
    clean_config = _validate_config_values(config) if config is not None else None

    try:
        actor = UserRepository(db).get(actor_id)
        if actor is None:
            raise NotFoundError("User not found")
        if actor.role != "ADMIN":
            logger.warning("User %s (role %s) denied rule update for %s", actor.id, actor.role, rule_type.value)
            raise UnauthorizedError("Only admins can update validation rules", reason=AuthFailureReason.ADMIN_REQUIRED)

        row = RuleConfigRepository.get_for_update(db, rule_type.value)
        if row is None:
            raise ConfigNotFoundError(f"No configuration found for rule type: {rule_type.value}")

        before = {"enabled": row.enabled, "severity": row.severity, "config": dict(row.config or {})}
        if enabled is not None:
            row.enabled = enabled
        if severity is not None:
            row.severity = Severity(severity).value
        if clean_config is not None:
            row.config = {**(row.config or {}), **clean_config}
        after = {"enabled": row.enabled, "severity": row.severity, "config": dict(row.config or {})}

        audit_svc.log(
            db=db,
            action="VALIDATION_RULE_UPDATED",
            entity="ValidationRuleConfig",
            entity_id=row.id,
            user_id=actor.id,
            changes={"ruleType": rule_type.value, "before": before, "after": after},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    (config_service or get_validation_config_service()).invalidate_cache()
    logger.info("Validation rule %s updated by %s", rule_type.value, actor.id)
    return row


def seed_default_rules(db: Session) -> list[str]:
    """Insert missing default rule rows; existing rows are left untouched.

    Returns the rule types that were added.
    """
    existing = set(db.execute(select(ValidationRuleConfig.rule_type)).scalars().all())
    added = []
    for rule in DEFAULT_RULES:
        if rule["rule_type"] in existing:
            continue
        db.add(ValidationRuleConfig(enabled=True, **rule))
        added.append(rule["rule_type"])
    db.commit()
    logger.info("Seeded %d validation rule(s)", len(added))
    return added
