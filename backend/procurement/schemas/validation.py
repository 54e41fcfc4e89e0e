"""Pydantic schemas for invoice validation flags, overrides and rule admin."""
import math
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from procurement.models.validation import RuleType, Severity, ValidationStatus
from procurement.validation.types import ReviewAction


class OverrideRequest(BaseModel):
    """Justification for overriding a flag. Length is re-checked after sanitisation."""
    reason: str = Field(..., max_length=2000)


class ReviewRequest(BaseModel):
    action: ReviewAction


class OverrideOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    reason: str
    created_at: datetime


class ValidationOut(BaseModel):
    """A single flag on an invoice."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_id: uuid.UUID
    rule_type: RuleType
    severity: Severity
    status: ValidationStatus
    details: dict[str, Any] = {}
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="meta")
    created_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: uuid.UUID | None = None
    override: OverrideOut | None = None


class ValidationSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invoice_id: uuid.UUID
    is_valid: bool
    flag_count: int
    open_flag_count: int = 0
    has_blocking_issues: bool
    highest_severity: Severity | None = None
    validations: list[ValidationOut] = []


class OverrideResponse(BaseModel):
    validation: ValidationOut
    is_owner: bool


class FlaggedListResponse(BaseModel):
    """Paginated list of flags."""
    items: list[ValidationOut]
    total: int
    page: int
    limit: int
    total_pages: int


class DashboardStatsOut(BaseModel):
    total_flagged: int
    flagged_by_severity: dict[str, int]
    by_status: dict[str, int]
    recent_flags: list[ValidationOut]


class MergedConfigOut(BaseModel):
    enabled: bool
    severity: Severity
    config: dict[str, float]


class RuleConfigOut(BaseModel):
    """Stored rule row alongside the effective configuration after env overrides."""
    rule_type: RuleType
    name: str | None = None
    description: str | None = None
    stored: MergedConfigOut | None = None
    effective: MergedConfigOut | None = None
    env_override: bool = False


class RuleConfigUpdate(BaseModel):
    enabled: bool | None = None
    severity: Severity | None = None
    config: dict[str, float] | None = None

    @field_validator("config")
    @classmethod
    def non_negative(cls, v: dict[str, float] | None) -> dict[str, float] | None:
        if v is None:
            return v
        for key, value in v.items():
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"'{key}' must be a finite number >= 0")
        return v


class RuleConfigUpdateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_type: RuleType
    name: str
    enabled: bool
    severity: Severity
    config: dict[str, float]
    updated_at: datetime | None = None


class CacheStatsOut(BaseModel):
    is_cached: bool
    age: float
    ttl: float
