"""Validation rule configuration: database rows merged with environment overrides.

Environment variable schema (prefix defaults to ``VALIDATION_RULE``):

    <PREFIX>_<RULE_TYPE>_ENABLED=true|false
    <PREFIX>_AMOUNT_THRESHOLD_EXCEEDED_THRESHOLD=10000
    <PREFIX>_ROUND_AMOUNT_PATTERN_MINIMUM_AMOUNT=1000
    <PREFIX>_PRICE_VARIANCE_VARIANCE_PERCENT=15
    <PREFIX>_PRICE_VARIANCE_HISTORICAL_COUNT=5
    <PREFIX>_PO_AMOUNT_VARIANCE_VARIANCE_PERCENT=10

Overrides always win over the database. Malformed values never block
startup: they are reported as warnings and the database value is kept.
"""
import logging
import math
import os
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Protocol

from procurement.core.config import settings
from procurement.core.exceptions import ConfigNotFoundError
from procurement.models.validation import RuleType, Severity, ValidationRuleConfig
from procurement.validation.types import EnvOverride, MergedConfig

logger = logging.getLogger(__name__)

# env suffix -> config key, per rule type
NUMERIC_KEYS: dict[RuleType, dict[str, str]] = {
    RuleType.AMOUNT_THRESHOLD_EXCEEDED: {"THRESHOLD": "threshold"},
    RuleType.ROUND_AMOUNT_PATTERN: {"MINIMUM_AMOUNT": "minimumAmount"},
    RuleType.PRICE_VARIANCE: {"VARIANCE_PERCENT": "variancePercent", "HISTORICAL_COUNT": "historicalCount"},
    RuleType.PO_AMOUNT_VARIANCE: {"VARIANCE_PERCENT": "variancePercent"},
}
ALL_NUMERIC_SUFFIXES = ("THRESHOLD", "VARIANCE_PERCENT", "HISTORICAL_COUNT", "MINIMUM_AMOUNT")
INTEGER_KEYS = frozenset({"historicalCount"})


class RuleConfigSource(Protocol):
    def find_all(self) -> list[ValidationRuleConfig]: ...


# ─── Environment parsing ───

def parse_non_negative_number(raw: str, integer: bool = False) -> float | int | None:
    """Parse a finite number >= 0; return None when the text is not acceptable."""
    try:
        value = float(raw.strip())
    except (ValueError, AttributeError):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    if integer:
        if not value.is_integer():
            return None
        return int(value)
    return value


def parse_env_overrides(
    environ: Mapping[str, str],
    prefix: str = "VALIDATION_RULE",
) -> tuple[dict[RuleType, EnvOverride], list[str]]:
    """Scan every override variable once.

    Returns (overrides, warnings). ``overrides`` only contains rule types
    with at least one valid override; ``warnings`` has one human-readable
    line per rejected variable.
    """
    overrides: dict[RuleType, EnvOverride] = {}
    warnings: list[str] = []

    for rule_type in RuleType:
        base = f"{prefix}_{rule_type.value}_"
        enabled: bool | None = None

        enabled_key = f"{base}ENABLED"
        if enabled_key in environ:
            raw = environ[enabled_key]
            if raw == "true":
                enabled = True
            elif raw == "false":
                enabled = False
            else:
                warnings.append(
                    f'{enabled_key}: "{raw}" (must be "true" or "false"); using database value'
                )

        config: dict[str, float] = {}
        relevant = NUMERIC_KEYS.get(rule_type, {})
        for suffix in ALL_NUMERIC_SUFFIXES:
            env_key = f"{base}{suffix}"
            if env_key not in environ:
                continue
            raw = environ[env_key]
            if suffix not in relevant:
                warnings.append(f"{env_key}: not used by rule type {rule_type.value}; ignored")
                continue
            config_key = relevant[suffix]
            integer = config_key in INTEGER_KEYS
            value = parse_non_negative_number(raw, integer=integer)
            if value is None:
                kind = "a whole number" if integer else "a finite number"
                warnings.append(f'{env_key}: "{raw}" (must be {kind} >= 0); using database value')
                continue
            config[config_key] = value

        override = EnvOverride(enabled=enabled, config=config)
        if not override.is_empty:
            overrides[rule_type] = override

    return overrides, warnings


# ─── Merge ───

def merge_rule_configs(
    rows: Iterable[ValidationRuleConfig],
    overrides: Mapping[RuleType, EnvOverride],
) -> dict[RuleType, MergedConfig]:
    """Layer env overrides on top of DB rows.

    A rule type present only in the environment starts from
    ``{enabled: False, severity: WARNING, config: {}}``.
    """
    merged: dict[RuleType, MergedConfig] = {}
    db_rows: dict[RuleType, ValidationRuleConfig] = {}
    for row in rows:
        try:
            rule_type = RuleType(row.rule_type)
        except ValueError:
            logger.warning("Ignoring validation rule row with unknown rule_type %r", row.rule_type)
            continue
        db_rows[rule_type] = row

    for rule_type in RuleType:
        row = db_rows.get(rule_type)
        override = overrides.get(rule_type)
        if row is None and override is None:
            continue

        if row is not None:
            enabled = bool(row.enabled)
            severity = Severity(row.severity)
            config = dict(row.config or {})
        else:
            enabled, severity, config = False, Severity.WARNING, {}

        if override is not None:
            if override.enabled is not None:
                enabled = override.enabled
            config.update(override.config)

        merged[rule_type] = MergedConfig(enabled=enabled, severity=severity, config=config)

    return merged


# ─── Service ───

@dataclass(frozen=True)
class _Snapshot:
    configs: Mapping[RuleType, MergedConfig]
    fetched_at: float


class ValidationConfigService:
    """Merged rule configuration behind a copy-on-write TTL cache.

    Readers take the current snapshot reference without locking; a stale or
    missing snapshot is rebuilt by exactly one thread under ``_lock`` and
    swapped in with a single assignment.
    """

    def __init__(
        self,
        repository: RuleConfigSource,
        environ: Mapping[str, str] | None = None,
        ttl_seconds: float | None = None,
        prefix: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._repository = repository
        self._ttl = float(settings.VALIDATION_CONFIG_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: _Snapshot | None = None
        self._generation = 0

        self.overrides, self.warnings = parse_env_overrides(
            os.environ if environ is None else environ,
            prefix or settings.VALIDATION_RULE_ENV_PREFIX,
        )
        if self.warnings:
            logger.warning(
                "Validation rule environment overrides have %d issue(s); falling back to database values",
                len(self.warnings),
            )
            for issue in self.warnings:
                logger.warning("  - %s", issue)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _is_fresh(self, snapshot: _Snapshot | None) -> bool:
        return snapshot is not None and (self._clock() - snapshot.fetched_at) < self._ttl

    def get_all_rule_configs(self) -> Mapping[RuleType, MergedConfig]:
        """Return the merged config snapshot; repository errors propagate."""
        snapshot = self._snapshot
        if self._is_fresh(snapshot):
            logger.debug("Validation config cache hit")
            return snapshot.configs

        with self._lock:
            snapshot = self._snapshot
            if self._is_fresh(snapshot):
                return snapshot.configs

            generation = self._generation
            rows = self._repository.find_all()
            configs = MappingProxyType(merge_rule_configs(rows, self.overrides))
            fresh = _Snapshot(configs=configs, fetched_at=self._clock())
            if generation == self._generation:
                self._snapshot = fresh
            logger.info(
                "Validation config loaded: %d rule(s), %d enabled",
                len(configs), sum(1 for c in configs.values() if c.enabled),
            )
            return configs

    def get_rule_config(self, rule_type: RuleType | str) -> MergedConfig:
        rule_type = RuleType(rule_type)
        config = self.get_all_rule_configs().get(rule_type)
        if config is None:
            raise ConfigNotFoundError(f"No configuration found for rule type: {rule_type.value}")
        return config

    def invalidate_cache(self) -> None:
        """Force the next read to rebuild. A rebuild already in flight is discarded."""
        self._generation += 1
        self._snapshot = None
        logger.info("Validation config cache invalidated")

    def get_stats(self) -> dict:
        snapshot = self._snapshot
        age = (self._clock() - snapshot.fetched_at) if snapshot is not None else 0.0
        return {"is_cached": snapshot is not None, "age": age, "ttl": self._ttl}


_service: ValidationConfigService | None = None
_service_lock = threading.Lock()


def get_validation_config_service() -> ValidationConfigService:
    """Process-wide service; env overrides are scanned once, on first use."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                from procurement.validation.repositories import RuleConfigRepository

                _service = ValidationConfigService(RuleConfigRepository())
    return _service
