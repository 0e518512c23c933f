"""
============================================================================
Ads Safety Pipeline - Prometheus Metrics
============================================================================

Reliability Level: L6 Critical
Input Constraints: All currency values must be Decimal
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- ads_guardrail_validations_total: Validations by outcome
- ads_guardrail_violations_total: Violations by type and severity
- ads_guardrail_validation_seconds: Validation latency
- ads_ledger_spend_rejections_total: Refused reservations by limit scope
- ads_ledger_reserved_spend_total: Reserved spend (currency units)
- ads_ledger_emergency_stops: Campaigns currently emergency-stopped
- ads_mutations_total: Mutation outcomes by kind and status
- ads_mutation_apply_seconds: External apply latency
- ads_rollbacks_total: Rollback replays by trigger and status
- ads_audit_entries_total: Audit entries by action and result
- ads_audit_write_failures_total: Failed audit appends

ZERO-FLOAT MANDATE
------------------
Decimal values are converted to float ONLY at the Prometheus boundary.

Metric helpers never raise. A broken metrics backend must not change a
pipeline outcome.

============================================================================
"""

import logging
from decimal import Decimal
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

GUARDRAIL_VALIDATIONS = Counter(
    "ads_guardrail_validations_total",
    "Total guardrail validations by outcome",
    ["outcome"]
)

GUARDRAIL_VIOLATIONS = Counter(
    "ads_guardrail_violations_total",
    "Total guardrail violations by type and severity",
    ["type", "severity"]
)

VALIDATION_LATENCY = Histogram(
    "ads_guardrail_validation_seconds",
    "Guardrail validation latency in seconds",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

SPEND_REJECTIONS = Counter(
    "ads_ledger_spend_rejections_total",
    "Spend reservations refused by the budget ledger",
    ["scope"]
)

RESERVED_SPEND = Counter(
    "ads_ledger_reserved_spend_total",
    "Spend reserved through the budget ledger (currency units)",
    ["tenant_id"]
)

EMERGENCY_STOPS = Gauge(
    "ads_ledger_emergency_stops",
    "Campaigns currently under an emergency stop"
)

MUTATIONS = Counter(
    "ads_mutations_total",
    "Mutation outcomes by kind and status",
    ["kind", "status"]
)

APPLY_LATENCY = Histogram(
    "ads_mutation_apply_seconds",
    "External ads client apply latency in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0]
)

ROLLBACKS = Counter(
    "ads_rollbacks_total",
    "Rollback replays by trigger and status",
    ["trigger", "status"]
)

AUDIT_ENTRIES = Counter(
    "ads_audit_entries_total",
    "Audit entries written by action and result",
    ["action", "result"]
)

AUDIT_WRITE_FAILURES = Counter(
    "ads_audit_write_failures_total",
    "Audit appends that failed"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_validation(
    passed: bool,
    duration_seconds: float,
    correlation_id: Optional[str] = None
) -> None:
    """Record one guardrail validation outcome and its latency."""
    try:
        GUARDRAIL_VALIDATIONS.labels(outcome="passed" if passed else "blocked").inc()
        VALIDATION_LATENCY.observe(duration_seconds)
        logger.debug(
            "Metric: validation | passed=%s | duration=%.4f | correlation_id=%s",
            passed, duration_seconds, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record validation metric | error=%s",
            str(e)
        )


def record_violation(violation_type: str, severity: str) -> None:
    try:
        GUARDRAIL_VIOLATIONS.labels(type=violation_type, severity=severity).inc()
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record violation metric | error=%s",
            str(e)
        )


def record_spend_rejection(scope: str) -> None:
    try:
        SPEND_REJECTIONS.labels(scope=scope).inc()
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record spend rejection metric | error=%s",
            str(e)
        )


def record_reserved_spend(tenant_id: str, amount: Decimal) -> None:
    """
    Record a successful reservation.

    ZERO-FLOAT MANDATE: Decimal converted to float at Prometheus boundary.
    """
    try:
        if not isinstance(amount, Decimal):
            logger.error(
                "[OBS-000] amount must be Decimal, got %s",
                type(amount).__name__
            )
            return
        if amount > Decimal("0"):
            RESERVED_SPEND.labels(tenant_id=tenant_id).inc(float(amount))
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record reserved spend metric | error=%s",
            str(e)
        )


def update_emergency_stops(active_count: int) -> None:
    try:
        EMERGENCY_STOPS.set(active_count)
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to update emergency stop gauge | error=%s",
            str(e)
        )


def record_mutation(
    kind: str,
    status: str,
    duration_seconds: Optional[float] = None,
    correlation_id: Optional[str] = None
) -> None:
    """Record a mutation outcome (success | failed | skipped)."""
    try:
        MUTATIONS.labels(kind=kind, status=status).inc()
        if duration_seconds is not None:
            APPLY_LATENCY.observe(duration_seconds)
        logger.debug(
            "Metric: mutation | kind=%s | status=%s | correlation_id=%s",
            kind, status, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record mutation metric | error=%s",
            str(e)
        )


def record_rollback(trigger: str, status: str) -> None:
    try:
        ROLLBACKS.labels(trigger=trigger, status=status).inc()
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record rollback metric | error=%s",
            str(e)
        )


def record_audit_entry(action: str, result: str) -> None:
    try:
        AUDIT_ENTRIES.labels(action=action, result=result).inc()
    except Exception as e:
        logger.error(
            "[OBS-004] Failed to record audit entry metric | error=%s",
            str(e)
        )


def record_audit_failure() -> None:
    try:
        AUDIT_WRITE_FAILURES.inc()
    except Exception as e:
        logger.error(
            "[OBS-004] Failed to record audit failure metric | error=%s",
            str(e)
        )


__all__ = [
    "record_validation",
    "record_violation",
    "record_spend_rejection",
    "record_reserved_spend",
    "update_emergency_stops",
    "record_mutation",
    "record_rollback",
    "record_audit_entry",
    "record_audit_failure",
]


# ============================================================================
# [Reliability Audit]
# Decimal Integrity: Verified (float conversion only at Prometheus boundary)
# Fail-Safe: Verified (helpers log OBS-00x and never raise)
# Error Codes: OBS-000 through OBS-004
# ============================================================================
