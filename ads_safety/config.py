"""
============================================================================
Ads Safety Pipeline - Configuration
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All budget limits use decimal.Decimal with ROUND_HALF_EVEN
Traceability: Configuration changes are logged and audited by the caller

This module provides configuration management for the guarded mutation
pipeline:
- GuardrailConfig: immutable snapshot of every guardrail policy
- PipelineSettings: runtime settings (audit storage, timeouts, rollback)
- Environment variable parsing with type safety and fail-closed validation

GUARDRAIL ENVIRONMENT VARIABLES:
    - GUARDRAIL_DAILY_MAX: Daily spend ceiling per campaign (default: 10)
    - GUARDRAIL_CAMPAIGN_MAX: Lifetime spend ceiling per campaign (default: 50)
    - GUARDRAIL_ACCOUNT_MAX: Spend ceiling per tenant account (default: 100)
    - GUARDRAIL_ENFORCEMENT: "soft" or "hard" (default: hard)
    - GUARDRAIL_ALLOWED_DEVICES: Comma-separated devices (default: DESKTOP)
    - GUARDRAIL_MAX_LOAD_TIME_MS: Landing page load ceiling (default: 3000)
    - GUARDRAIL_MAX_CPC_MICROS: CPC bid ceiling (default: 5000000)
    - GUARDRAIL_MAX_CPM_MICROS: CPM bid ceiling (default: 10000000)
    - GUARDRAIL_PROHIBITED_TERMS: Comma-separated prohibited keyword terms

PIPELINE ENVIRONMENT VARIABLES:
    - ADS_SAFETY_AUDIT_DIR: Audit log directory (default: ./audit-logs)
    - ADS_SAFETY_AUDIT_RETENTION_DAYS: Segment retention (default: 90)
    - ADS_SAFETY_AUDIT_HMAC_KEY: Audit signature key (optional, see below)
    - ADS_SAFETY_LEDGER_DIR: Budget ledger snapshot directory (optional)
    - ADS_SAFETY_AUTO_ROLLBACK: Roll back a batch on first failure (default: false)
    - ADS_SAFETY_BATCH_TIMEOUT_SECONDS: Overall batch deadline (optional)
    - ADS_SAFETY_APPLY_TIMEOUT_SECONDS: Per-call apply timeout (default: 30)
    - ADS_SAFETY_LOG_LEVEL: Logging level (default: INFO)

ERROR CODES:
    - CFG-001: Invalid configuration

============================================================================
"""

from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Optional, List, Tuple, FrozenSet, Dict, Any
from dataclasses import dataclass, field, replace
import logging
import os

from dotenv import load_dotenv

from ads_safety.logging_setup import configure_logging
from ads_safety.mutation_models import EnforcementLevel

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PRECISION_BUDGET = Decimal("0.01")

KNOWN_DEVICES = frozenset({"DESKTOP", "MOBILE", "TABLET", "CONNECTED_TV", "OTHER"})


# =============================================================================
# Error Codes
# =============================================================================

class ConfigErrorCode:
    """Configuration error codes for audit logging."""
    INVALID_CONFIG = "CFG-001"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_DAILY_MAX = Decimal("10.00")
DEFAULT_CAMPAIGN_MAX = Decimal("50.00")
DEFAULT_ACCOUNT_MAX = Decimal("100.00")
DEFAULT_ALLOWED_DEVICES = frozenset({"DESKTOP"})
DEFAULT_MAX_LOAD_TIME_MS = 3000
DEFAULT_MAX_CPC_MICROS = 5_000_000
DEFAULT_MAX_CPM_MICROS = 10_000_000
DEFAULT_PROHIBITED_TERMS = ("free", "crack", "hack", "illegal", "torrent")

DEFAULT_AUDIT_DIR = "./audit-logs"
DEFAULT_AUDIT_RETENTION_DAYS = 90
DEFAULT_APPLY_TIMEOUT_SECONDS = 30.0


# =============================================================================
# Configuration Exception
# =============================================================================

class GuardrailConfigurationError(Exception):
    """
    Exception raised when guardrail or pipeline configuration is invalid.

    Raised at load/replace time so the pipeline never runs against a
    half-valid snapshot.
    """

    def __init__(self, message: str, error_code: str = ConfigErrorCode.INVALID_CONFIG):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# Helpers
# =============================================================================

def _to_budget(value: Any, name: str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise GuardrailConfigurationError(f"{name} must be numeric, got: {value!r}")
    return amount.quantize(PRECISION_BUDGET, rounding=ROUND_HALF_EVEN)


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return tuple(default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower().strip() in ("true", "1", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(
            f"[GUARDRAIL-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(
            f"[GUARDRAIL-CONFIG] Invalid {name} value: {raw}, using default: {default}"
        )
        return default


# =============================================================================
# Policy Data Classes
# =============================================================================

@dataclass(frozen=True)
class BudgetLimits:
    """Spend ceilings. Amounts are currency units, not micros."""
    daily_max: Decimal = DEFAULT_DAILY_MAX
    campaign_max: Decimal = DEFAULT_CAMPAIGN_MAX
    account_max: Decimal = DEFAULT_ACCOUNT_MAX
    enforcement_level: EnforcementLevel = EnforcementLevel.HARD

    def __post_init__(self) -> None:
        object.__setattr__(self, "daily_max", _to_budget(self.daily_max, "daily_max"))
        object.__setattr__(self, "campaign_max", _to_budget(self.campaign_max, "campaign_max"))
        object.__setattr__(self, "account_max", _to_budget(self.account_max, "account_max"))
        if not isinstance(self.enforcement_level, EnforcementLevel):
            object.__setattr__(
                self, "enforcement_level", EnforcementLevel(str(self.enforcement_level).lower())
            )


@dataclass(frozen=True)
class DeviceTargetingPolicy:
    allowed_devices: FrozenSet[str] = DEFAULT_ALLOWED_DEVICES
    enforce_restrictions: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "allowed_devices", frozenset(d.upper() for d in self.allowed_devices)
        )


@dataclass(frozen=True)
class LandingPagePolicy:
    check_for_404: bool = True
    check_ssl: bool = True
    check_load_time: bool = True
    max_load_time_ms: int = DEFAULT_MAX_LOAD_TIME_MS


@dataclass(frozen=True)
class BidLimits:
    """Bid ceilings in micros."""
    max_cpc_micros: int = DEFAULT_MAX_CPC_MICROS
    max_cpm_micros: int = DEFAULT_MAX_CPM_MICROS
    enforce_max_bids: bool = True


@dataclass(frozen=True)
class NegativeKeywordPolicy:
    enforce_shared_lists: bool = True
    block_prohibited_terms: bool = True
    prohibited_terms: Tuple[str, ...] = DEFAULT_PROHIBITED_TERMS


# =============================================================================
# GuardrailConfig Class
# =============================================================================

@dataclass(frozen=True)
class GuardrailConfig:
    """
    Immutable guardrail configuration snapshot.

    ============================================================================
    CONFIGURATION SECTIONS:
    ============================================================================
    - budget_limits: daily / campaign / account ceilings + enforcement level
    - device_targeting: allowed device set
    - landing_page: syntax, SSL, health and load-time checks
    - bid_limits: CPC / CPM ceilings in micros
    - negative_keywords: prohibited terms and shared-list policy
    ============================================================================

    A snapshot is never mutated. Changing a limit produces a new snapshot
    that the validator swaps in wholesale.
    """

    budget_limits: BudgetLimits = field(default_factory=BudgetLimits)
    device_targeting: DeviceTargetingPolicy = field(default_factory=DeviceTargetingPolicy)
    landing_page: LandingPagePolicy = field(default_factory=LandingPagePolicy)
    bid_limits: BidLimits = field(default_factory=BidLimits)
    negative_keywords: NegativeKeywordPolicy = field(default_factory=NegativeKeywordPolicy)

    @property
    def enforcement_level(self) -> EnforcementLevel:
        return self.budget_limits.enforcement_level

    def with_budget_limits(
        self,
        daily_max: Optional[Any] = None,
        campaign_max: Optional[Any] = None,
        account_max: Optional[Any] = None,
    ) -> "GuardrailConfig":
        """
        Return a new snapshot with updated budget ceilings.

        Raises:
            GuardrailConfigurationError: If any ceiling is negative (CFG-001)
        """
        changes: Dict[str, Decimal] = {}
        for name, value in (
            ("daily_max", daily_max),
            ("campaign_max", campaign_max),
            ("account_max", account_max),
        ):
            if value is None:
                continue
            amount = _to_budget(value, name)
            if amount < Decimal("0"):
                logger.error(
                    f"[{ConfigErrorCode.INVALID_CONFIG}] Negative budget rejected | "
                    f"field={name} | value={amount}"
                )
                raise GuardrailConfigurationError(f"{name} cannot be negative, got: {amount}")
            changes[name] = amount

        new_config = replace(self, budget_limits=replace(self.budget_limits, **changes))
        new_config.validate()
        return new_config

    def with_enforcement_level(self, level: Any) -> "GuardrailConfig":
        """Return a new snapshot with a different enforcement level."""
        try:
            enforcement = level if isinstance(level, EnforcementLevel) else EnforcementLevel(
                str(level).lower()
            )
        except ValueError:
            raise GuardrailConfigurationError(f"Unknown enforcement level: {level!r}")
        return replace(
            self, budget_limits=replace(self.budget_limits, enforcement_level=enforcement)
        )

    def validate(self) -> None:
        """
        Validate the snapshot.

        Raises:
            GuardrailConfigurationError: If any value is out of range (CFG-001)
        """
        errors: List[str] = []
        limits = self.budget_limits

        for name in ("daily_max", "campaign_max", "account_max"):
            if getattr(limits, name) < Decimal("0"):
                errors.append(f"{name} must be non-negative, got: {getattr(limits, name)}")

        if self.landing_page.max_load_time_ms <= 0:
            errors.append(
                f"max_load_time_ms must be positive, got: {self.landing_page.max_load_time_ms}"
            )
        if self.bid_limits.max_cpc_micros < 0 or self.bid_limits.max_cpm_micros < 0:
            errors.append("bid ceilings must be non-negative")

        unknown = self.device_targeting.allowed_devices - KNOWN_DEVICES
        if unknown:
            errors.append(f"unknown devices in allowed set: {sorted(unknown)}")

        if errors:
            error_msg = "Guardrail configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{ConfigErrorCode.INVALID_CONFIG}] {error_msg}")
            raise GuardrailConfigurationError(error_msg)

        logger.debug(
            f"[GUARDRAIL-CONFIG] Configuration validated | "
            f"daily_max={limits.daily_max} | "
            f"campaign_max={limits.campaign_max} | "
            f"account_max={limits.account_max} | "
            f"enforcement={limits.enforcement_level.value}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True, dotenv_path: Optional[str] = None) -> "GuardrailConfig":
        """
        Load a guardrail snapshot from GUARDRAIL_* environment variables, reading .env first.

        Unset variables fall back to the documented defaults. Malformed budget
        values fail closed with CFG-001 rather than silently defaulting.
        """
        load_dotenv(dotenv_path)

        enforcement_raw = os.environ.get("GUARDRAIL_ENFORCEMENT", "hard").strip().lower()
        try:
            enforcement = EnforcementLevel(enforcement_raw)
        except ValueError:
            raise GuardrailConfigurationError(
                f"GUARDRAIL_ENFORCEMENT must be 'soft' or 'hard', got: {enforcement_raw!r}"
            )

        budget_limits = BudgetLimits(
            daily_max=_to_budget(
                os.environ.get("GUARDRAIL_DAILY_MAX", DEFAULT_DAILY_MAX), "GUARDRAIL_DAILY_MAX"
            ),
            campaign_max=_to_budget(
                os.environ.get("GUARDRAIL_CAMPAIGN_MAX", DEFAULT_CAMPAIGN_MAX),
                "GUARDRAIL_CAMPAIGN_MAX",
            ),
            account_max=_to_budget(
                os.environ.get("GUARDRAIL_ACCOUNT_MAX", DEFAULT_ACCOUNT_MAX),
                "GUARDRAIL_ACCOUNT_MAX",
            ),
            enforcement_level=enforcement,
        )

        config = cls(
            budget_limits=budget_limits,
            device_targeting=DeviceTargetingPolicy(
                allowed_devices=frozenset(
                    _env_list("GUARDRAIL_ALLOWED_DEVICES", tuple(DEFAULT_ALLOWED_DEVICES))
                ),
            ),
            landing_page=LandingPagePolicy(
                max_load_time_ms=_env_int("GUARDRAIL_MAX_LOAD_TIME_MS", DEFAULT_MAX_LOAD_TIME_MS),
            ),
            bid_limits=BidLimits(
                max_cpc_micros=_env_int("GUARDRAIL_MAX_CPC_MICROS", DEFAULT_MAX_CPC_MICROS),
                max_cpm_micros=_env_int("GUARDRAIL_MAX_CPM_MICROS", DEFAULT_MAX_CPM_MICROS),
            ),
            negative_keywords=NegativeKeywordPolicy(
                prohibited_terms=_env_list("GUARDRAIL_PROHIBITED_TERMS", DEFAULT_PROHIBITED_TERMS),
            ),
        )

        logger.info(
            f"[GUARDRAIL-CONFIG] Loading configuration from environment | "
            f"GUARDRAIL_DAILY_MAX={budget_limits.daily_max} | "
            f"GUARDRAIL_CAMPAIGN_MAX={budget_limits.campaign_max} | "
            f"GUARDRAIL_ACCOUNT_MAX={budget_limits.account_max} | "
            f"GUARDRAIL_ENFORCEMENT={enforcement.value}"
        )

        if validate:
            config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for audit snapshots."""
        return {
            "budget_limits": {
                "daily_max": str(self.budget_limits.daily_max),
                "campaign_max": str(self.budget_limits.campaign_max),
                "account_max": str(self.budget_limits.account_max),
                "enforcement_level": self.budget_limits.enforcement_level.value,
            },
            "device_targeting": {
                "allowed_devices": sorted(self.device_targeting.allowed_devices),
                "enforce_restrictions": self.device_targeting.enforce_restrictions,
            },
            "landing_page": {
                "check_for_404": self.landing_page.check_for_404,
                "check_ssl": self.landing_page.check_ssl,
                "check_load_time": self.landing_page.check_load_time,
                "max_load_time_ms": self.landing_page.max_load_time_ms,
            },
            "bid_limits": {
                "max_cpc_micros": str(self.bid_limits.max_cpc_micros),
                "max_cpm_micros": str(self.bid_limits.max_cpm_micros),
                "enforce_max_bids": self.bid_limits.enforce_max_bids,
            },
            "negative_keywords": {
                "enforce_shared_lists": self.negative_keywords.enforce_shared_lists,
                "block_prohibited_terms": self.negative_keywords.block_prohibited_terms,
                "prohibited_terms": list(self.negative_keywords.prohibited_terms),
            },
        }


# =============================================================================
# PipelineSettings Class
# =============================================================================

@dataclass
class PipelineSettings:
    """
    Runtime settings for the audit log, ledger and applier.

    A missing audit HMAC key is tolerated: the audit log generates an
    ephemeral per-process key and logs a warning. Entries written under an
    ephemeral key fail signature verification in any other process.
    """

    audit_dir: str = DEFAULT_AUDIT_DIR
    audit_retention_days: int = DEFAULT_AUDIT_RETENTION_DAYS
    audit_hmac_key: Optional[str] = None
    ledger_dir: Optional[str] = None
    auto_rollback: bool = False
    batch_timeout_seconds: Optional[float] = None
    apply_timeout_seconds: float = DEFAULT_APPLY_TIMEOUT_SECONDS
    log_level: str = "INFO"

    def validate(self) -> None:
        errors: List[str] = []
        if self.audit_retention_days <= 0:
            errors.append(
                f"ADS_SAFETY_AUDIT_RETENTION_DAYS must be positive, got: {self.audit_retention_days}"
            )
        if self.apply_timeout_seconds <= 0:
            errors.append(
                f"ADS_SAFETY_APPLY_TIMEOUT_SECONDS must be positive, got: {self.apply_timeout_seconds}"
            )
        if self.batch_timeout_seconds is not None and self.batch_timeout_seconds <= 0:
            errors.append(
                f"ADS_SAFETY_BATCH_TIMEOUT_SECONDS must be positive, got: {self.batch_timeout_seconds}"
            )
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"ADS_SAFETY_LOG_LEVEL is not a logging level: {self.log_level}")

        if errors:
            error_msg = "Pipeline settings validation failed: " + "; ".join(errors)
            logger.error(f"[{ConfigErrorCode.INVALID_CONFIG}] {error_msg}")
            raise GuardrailConfigurationError(error_msg)

        if not self.audit_hmac_key:
            logger.warning(
                "[GUARDRAIL-CONFIG] ADS_SAFETY_AUDIT_HMAC_KEY not set | "
                "audit signatures will use an ephemeral per-process key"
            )

    def apply_logging(self) -> None:
        """Configure root logging at log_level."""
        configure_logging(self.log_level)

    @classmethod
    def from_environment(cls, validate: bool = True, dotenv_path: Optional[str] = None) -> "PipelineSettings":
        """Load settings from the environment, reading .env first."""
        load_dotenv(dotenv_path)

        settings = cls(
            audit_dir=os.environ.get("ADS_SAFETY_AUDIT_DIR", DEFAULT_AUDIT_DIR),
            audit_retention_days=_env_int(
                "ADS_SAFETY_AUDIT_RETENTION_DAYS", DEFAULT_AUDIT_RETENTION_DAYS
            ),
            audit_hmac_key=os.environ.get("ADS_SAFETY_AUDIT_HMAC_KEY") or None,
            ledger_dir=os.environ.get("ADS_SAFETY_LEDGER_DIR") or None,
            auto_rollback=_env_bool("ADS_SAFETY_AUTO_ROLLBACK", False),
            batch_timeout_seconds=_env_float("ADS_SAFETY_BATCH_TIMEOUT_SECONDS", None),
            apply_timeout_seconds=_env_float(
                "ADS_SAFETY_APPLY_TIMEOUT_SECONDS", DEFAULT_APPLY_TIMEOUT_SECONDS
            ),
            log_level=os.environ.get("ADS_SAFETY_LOG_LEVEL", "INFO").strip().upper(),
        )

        logger.info(
            f"[GUARDRAIL-CONFIG] Pipeline settings loaded | "
            f"audit_dir={settings.audit_dir} | "
            f"retention_days={settings.audit_retention_days} | "
            f"auto_rollback={settings.auto_rollback} | "
            f"apply_timeout_seconds={settings.apply_timeout_seconds}"
        )

        if validate:
            settings.validate()
        return settings


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[GuardrailConfig] = None


def get_guardrail_config(validate: bool = True) -> GuardrailConfig:
    """Get the process-wide guardrail snapshot, loading it on first access."""
    global _config_instance

    if _config_instance is None:
        _config_instance = GuardrailConfig.from_environment(validate=validate)

    return _config_instance


def reset_guardrail_config() -> None:
    """Reset the process-wide snapshot (tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[GUARDRAIL-CONFIG] Configuration instance reset")


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "ConfigErrorCode",
    "GuardrailConfigurationError",
    "BudgetLimits",
    "DeviceTargetingPolicy",
    "LandingPagePolicy",
    "BidLimits",
    "NegativeKeywordPolicy",
    "GuardrailConfig",
    "PipelineSettings",
    "get_guardrail_config",
    "reset_guardrail_config",
    "KNOWN_DEVICES",
]
