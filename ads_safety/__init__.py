"""
============================================================================
Ads Safety Pipeline
============================================================================

Guarded mutation pipeline for advertising accounts: normalization,
guardrail validation, multi-tenant budget ledger, signed audit log and
batch apply with rollback and save points.

Reliability Level: L6 Critical
============================================================================
"""

from ads_safety.mutation_models import (
    Mutation,
    MutationKind,
    ResourceType,
    Severity,
    RiskLevel,
    EnforcementLevel,
    GuardrailViolation,
    GuardrailResult,
    EstimatedImpact,
    MutationFormatError,
    normalize_mutation,
    mutations_equivalent,
    proposed_spend,
)

from ads_safety.config import (
    BudgetLimits,
    GuardrailConfig,
    GuardrailConfigurationError,
    PipelineSettings,
    get_guardrail_config,
    reset_guardrail_config,
)

from ads_safety.budget_ledger import (
    BudgetLedger,
    LocalBudgetLedger,
    SpendDecision,
    LimitScope,
)

from ads_safety.audit_log import (
    AuditLog,
    AuditLogEntry,
    AuditQuery,
    AuditSummary,
    AuditAction,
    AuditResult,
    AuditWriteError,
)

from ads_safety.landing_page_probe import (
    LandingPageHealth,
    LandingPageHealthProbe,
    HttpLandingPageProbe,
    StaticLandingPageProbe,
)

from ads_safety.guardrail_validator import (
    GuardrailValidator,
    CustomRule,
)

from ads_safety.ads_client import (
    ExternalAdsClient,
    MockAdsClient,
    AppliedMutation,
    AdsClientError,
)

from ads_safety.mutation_applier import (
    MutationApplier,
    MutationResult,
    MutationOutcome,
    OutcomeStatus,
    DryRunResult,
    SavePoint,
    RecoveryResult,
    BatchStatus,
    ConfirmationRequiredError,
    SavePointNotFoundError,
    detect_conflicts,
    estimate_cost,
    build_preview,
    create_rollback_mutation,
    is_degraded_inverse,
)

from ads_safety.logging_setup import configure_logging

__all__ = [
    # Models
    "Mutation",
    "MutationKind",
    "ResourceType",
    "Severity",
    "RiskLevel",
    "EnforcementLevel",
    "GuardrailViolation",
    "GuardrailResult",
    "EstimatedImpact",
    "MutationFormatError",
    "normalize_mutation",
    "mutations_equivalent",
    "proposed_spend",
    # Config
    "BudgetLimits",
    "GuardrailConfig",
    "GuardrailConfigurationError",
    "PipelineSettings",
    "get_guardrail_config",
    "reset_guardrail_config",
    # Ledger
    "BudgetLedger",
    "LocalBudgetLedger",
    "SpendDecision",
    "LimitScope",
    # Audit
    "AuditLog",
    "AuditLogEntry",
    "AuditQuery",
    "AuditSummary",
    "AuditAction",
    "AuditResult",
    "AuditWriteError",
    # Landing pages
    "LandingPageHealth",
    "LandingPageHealthProbe",
    "HttpLandingPageProbe",
    "StaticLandingPageProbe",
    # Validator
    "GuardrailValidator",
    "CustomRule",
    # Client
    "ExternalAdsClient",
    "MockAdsClient",
    "AppliedMutation",
    "AdsClientError",
    # Applier
    "MutationApplier",
    "MutationResult",
    "MutationOutcome",
    "OutcomeStatus",
    "DryRunResult",
    "SavePoint",
    "RecoveryResult",
    "BatchStatus",
    "ConfirmationRequiredError",
    "SavePointNotFoundError",
    "detect_conflicts",
    "estimate_cost",
    "build_preview",
    "create_rollback_mutation",
    "is_degraded_inverse",
    # Logging
    "configure_logging",
]
