"""Invoice validation API.

Endpoints:
  GET   /validations/flagged                   paginated flag list (severity/status/date filters)
  GET   /validations/stats                     dashboard counters + recent open flags
  GET   /validations/invoices/{id}             persisted summary for one invoice
  POST  /validations/invoices/{id}/revalidate  re-run enabled rules (idempotent per open flag)
  POST  /validations/{id}/override             owner or MANAGER/ADMIN, with reason
  PUT   /validations/{id}/review               DISMISS or ESCALATE
  GET   /validations/rules                     stored vs effective rule configuration
  PATCH /validations/rules/{rule_type}         (ADMIN)
  GET   /validations/rules/cache               (ADMIN) config cache stats
  POST  /validations/rules/cache/invalidate    (ADMIN)

Handlers are plain ``def``: the engine runs on sync sessions and FastAPI
executes these in its threadpool. Domain errors propagate to the
ProcurementError handler installed in main.py.
"""
import logging
import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from procurement.core.deps import get_current_user, require_role
from procurement.db.session import get_sync_session
from procurement.models.validation import RuleType, Severity, ValidationStatus
from procurement.schemas.validation import (
    CacheStatsOut,
    DashboardStatsOut,
    FlaggedListResponse,
    OverrideRequest,
    OverrideResponse,
    ReviewRequest,
    RuleConfigOut,
    RuleConfigUpdate,
    RuleConfigUpdateOut,
    ValidationOut,
    ValidationSummaryOut,
)
from procurement.validation import admin as admin_svc
from procurement.validation.config import get_validation_config_service
from procurement.validation.orchestrator import ValidationOrchestrator
from procurement.validation.workflow import OverrideWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()

SyncDB = Annotated[Session, Depends(get_sync_session)]


# ─── Flags ───

@router.get("/flagged", response_model=FlaggedListResponse)
def list_flagged(
    db: SyncDB,
    current_user=Depends(get_current_user),
    severity: Severity | None = Query(None),
    status: ValidationStatus | None = Query(ValidationStatus.FLAGGED),
    created_from: datetime | None = Query(None),
    created_to: datetime | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=admin_svc.MAX_PAGE_SIZE),
):
    result = admin_svc.list_flagged_validations(
        db,
        severity=severity.value if severity else None,
        status=status.value if status else None,
        created_from=created_from,
        created_to=created_to,
        page=page,
        limit=limit,
    )
    return FlaggedListResponse.model_validate(result, from_attributes=True)


@router.get("/stats", response_model=DashboardStatsOut)
def dashboard_stats(db: SyncDB, current_user=Depends(get_current_user)):
    return DashboardStatsOut.model_validate(admin_svc.get_dashboard_stats(db), from_attributes=True)


@router.get("/invoices/{invoice_id}", response_model=ValidationSummaryOut)
def get_invoice_validations(invoice_id: uuid.UUID, db: SyncDB, current_user=Depends(get_current_user)):
    summary = ValidationOrchestrator(db).get_validation_summary(invoice_id)
    return ValidationSummaryOut.model_validate(summary, from_attributes=True)


@router.post("/invoices/{invoice_id}/revalidate", response_model=ValidationSummaryOut)
def revalidate_invoice(invoice_id: uuid.UUID, db: SyncDB, current_user=Depends(get_current_user)):
    summary = ValidationOrchestrator(db).revalidate_invoice(invoice_id)
    logger.info("Invoice %s revalidated by %s", invoice_id, current_user.id)
    return ValidationSummaryOut.model_validate(summary, from_attributes=True)


# ─── Rules ───

@router.get("/rules", response_model=list[RuleConfigOut])
def list_rules(current_user=Depends(get_current_user)):
    return [RuleConfigOut.model_validate(rule) for rule in admin_svc.list_rule_configs()]


@router.get("/rules/cache", response_model=CacheStatsOut)
def cache_stats(current_user=Depends(require_role("ADMIN"))):
    return CacheStatsOut(**get_validation_config_service().get_stats())


@router.post("/rules/cache/invalidate", response_model=CacheStatsOut)
def invalidate_cache(current_user=Depends(require_role("ADMIN"))):
    service = get_validation_config_service()
    service.invalidate_cache()
    logger.info("Validation config cache invalidated by %s", current_user.id)
    return CacheStatsOut(**service.get_stats())


@router.patch("/rules/{rule_type}", response_model=RuleConfigUpdateOut)
def update_rule(
    rule_type: RuleType,
    body: RuleConfigUpdate,
    db: SyncDB,
    current_user=Depends(require_role("ADMIN")),
):
    row = admin_svc.update_rule_config(
        db,
        rule_type,
        actor_id=current_user.id,
        enabled=body.enabled,
        severity=body.severity,
        config=body.config,
    )
    return RuleConfigUpdateOut.model_validate(row)


# ─── Decisions ───

@router.post("/{validation_id}/override", response_model=OverrideResponse)
def override_validation(
    validation_id: uuid.UUID,
    body: OverrideRequest,
    db: SyncDB,
    current_user=Depends(get_current_user),
):
    result = OverrideWorkflow(db).override_validation(validation_id, current_user.id, body.reason)
    return OverrideResponse(
        validation=ValidationOut.model_validate(result.validation),
        is_owner=result.is_owner,
    )


@router.put("/{validation_id}/review", response_model=ValidationOut)
def review_validation(
    validation_id: uuid.UUID,
    body: ReviewRequest,
    db: SyncDB,
    current_user=Depends(get_current_user),
):
    validation = OverrideWorkflow(db).review_validation(validation_id, current_user.id, body.action)
    return ValidationOut.model_validate(validation)
