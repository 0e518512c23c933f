"""
============================================================================
Ads Safety Pipeline - Mutation Data Model
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All money values use decimal.Decimal with ROUND_HALF_EVEN
Traceability: Every mutation carries a mutation_id for audit

This module defines the canonical data model shared by every stage of the
guarded mutation pipeline:
- Mutation: the single canonical shape of a proposed change
- GuardrailViolation / GuardrailResult: structured validation outcome
- normalize_mutation(): the boundary adapter for producer payloads

BOUNDARY RULE:
    Producers may hand us legacy "semantic" payloads (UPDATE_BUDGET,
    ADD_KEYWORD, nested ad/keyword objects, ...). They are normalized
    exactly once, here. Nothing downstream inspects raw dicts.

MONEY:
    1 currency unit = 1,000,000 micros
    All amounts quantized to 0.01 with ROUND_HALF_EVEN

ERROR CODES:
    - MDL-001: Unknown mutation kind
    - MDL-002: Unknown resource type
    - MDL-003: Missing tenant identifier
    - MDL-004: Invalid money value
============================================================================
"""

from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
import copy
import json
import logging
import uuid

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PRECISION_MONEY = Decimal("0.01")
MICROS_PER_UNIT = Decimal("1000000")
ZERO = Decimal("0.00")


# =============================================================================
# Error Codes
# =============================================================================

class ModelErrorCode:
    """Data-model error codes for audit logging."""
    UNKNOWN_KIND = "MDL-001"
    UNKNOWN_RESOURCE = "MDL-002"
    MISSING_TENANT = "MDL-003"
    INVALID_MONEY = "MDL-004"


class MutationFormatError(ValueError):
    """
    Raised when a producer payload cannot be normalized.

    This is a boundary/programmer error, never a policy violation.
    """

    def __init__(self, message: str, error_code: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# Enums
# =============================================================================

class MutationKind(Enum):
    """Kind of change requested against an advertising entity."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    PAUSE = "PAUSE"
    REMOVE = "REMOVE"
    ENABLE = "ENABLE"


class ResourceType(Enum):
    """Advertising entity types the pipeline can mutate."""
    CAMPAIGN = "campaign"
    AD_GROUP = "ad_group"
    KEYWORD = "keyword"
    AD = "ad"
    BUDGET = "budget"


class Severity(Enum):
    """Guardrail violation severity."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RiskLevel(Enum):
    """Advisory risk bucket attached to every validation."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EnforcementLevel(Enum):
    """
    Budget/guardrail enforcement level.

    soft: error violations are reported as warnings and do not block
    hard: error violations block the mutation
    """
    SOFT = "soft"
    HARD = "hard"


# =============================================================================
# JSON Encoder
# =============================================================================

class MutationJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for pipeline data types.

    Handles:
    - Decimal -> str (preserves precision)
    - datetime/date -> ISO format string
    - UUID -> str
    - Enum -> value
    - set/tuple -> sorted list / list
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, set):
            return sorted(obj)
        if isinstance(obj, tuple):
            return list(obj)
        return super().default(obj)


# =============================================================================
# Money helpers
# =============================================================================

def parse_money(value: Any) -> Decimal:
    """
    Convert a producer-supplied amount to a quantized Decimal.

    Floats are routed through str() so 0.1 stays 0.10, not 0.1000000000000000055.

    Raises:
        MutationFormatError: If the value is not numeric (MDL-004)
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise MutationFormatError(
                f"Invalid money value: {value!r}", ModelErrorCode.INVALID_MONEY
            )
    if not amount.is_finite():
        raise MutationFormatError(
            f"Non-finite money value: {value!r}", ModelErrorCode.INVALID_MONEY
        )
    return amount.quantize(PRECISION_MONEY, rounding=ROUND_HALF_EVEN)


def parse_micros(value: Any) -> int:
    """Parse a micro-currency field (string or int) to int."""
    if isinstance(value, bool):
        raise MutationFormatError(
            f"Invalid micros value: {value!r}", ModelErrorCode.INVALID_MONEY
        )
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise MutationFormatError(
            f"Invalid micros value: {value!r}", ModelErrorCode.INVALID_MONEY
        )


def micros_to_money(micros: Any) -> Decimal:
    """Convert micros (1/1,000,000 of a unit) to a quantized Decimal."""
    return (Decimal(parse_micros(micros)) / MICROS_PER_UNIT).quantize(
        PRECISION_MONEY, rounding=ROUND_HALF_EVEN
    )


def money_to_micros(amount: Decimal) -> int:
    """Convert a Decimal amount to integer micros."""
    return int((parse_money(amount) * MICROS_PER_UNIT).to_integral_value(
        rounding=ROUND_HALF_EVEN
    ))


# =============================================================================
# Mutation Dataclass
# =============================================================================

@dataclass
class Mutation:
    """
    Canonical unit of change.

    ============================================================================
    MUTATION FIELDS:
    ============================================================================
    - kind: CREATE | UPDATE | PAUSE | REMOVE | ENABLE
    - resource_type: campaign | ad_group | keyword | ad | budget
    - tenant_id: Advertising customer (tenant) identifier
    - changes: Ordered field -> value map
    - entity_id: Target entity (absent for CREATE)
    - estimated_cost: Optional spend attributed to this change
    - affected_entities: Optional blast-radius list
    - campaign_id: Budget ledger key (derived when absent)
    - priority: Higher runs first within a batch
    - dependencies: Producer ordering hints (informational)
    - previous_values: Pre-mutation field values (UPDATE rollback)
    - previous_budget: Prior budget for the sudden-increase warning
    - ad_group_theme: Theme used by the keyword relevance check
    - mutation_id: Audit correlation identifier
    ============================================================================
    """

    kind: MutationKind
    resource_type: ResourceType
    tenant_id: str
    changes: Dict[str, Any] = field(default_factory=dict)
    entity_id: Optional[str] = None
    estimated_cost: Optional[Decimal] = None
    affected_entities: Optional[List[str]] = None
    campaign_id: Optional[str] = None
    priority: int = 0
    dependencies: List[str] = field(default_factory=list)
    previous_values: Optional[Dict[str, Any]] = None
    previous_budget: Optional[Decimal] = None
    ad_group_theme: Optional[str] = None
    mutation_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.estimated_cost is not None and not isinstance(self.estimated_cost, Decimal):
            self.estimated_cost = parse_money(self.estimated_cost)
        if self.previous_budget is not None and not isinstance(self.previous_budget, Decimal):
            self.previous_budget = parse_money(self.previous_budget)

    @property
    def ledger_campaign_id(self) -> str:
        """
        Campaign key used for budget ledger accounting.

        Campaign and budget mutations are accounted against their own entity;
        everything else falls back to an explicit campaign_id or the
        account-level bucket.
        """
        if self.campaign_id:
            return self.campaign_id
        if self.resource_type in (ResourceType.CAMPAIGN, ResourceType.BUDGET) and self.entity_id:
            return self.entity_id
        return ACCOUNT_LEVEL_CAMPAIGN

    @property
    def conflict_key(self) -> Optional[tuple]:
        """(tenant_id, resource_type, entity_id) or None for CREATEs."""
        if not self.entity_id:
            return None
        return (self.tenant_id, self.resource_type.value, self.entity_id)

    def copy(self, **overrides: Any) -> "Mutation":
        """Deep copy with a fresh mutation_id unless one is given."""
        data = {
            "kind": self.kind,
            "resource_type": self.resource_type,
            "tenant_id": self.tenant_id,
            "changes": copy.deepcopy(self.changes),
            "entity_id": self.entity_id,
            "estimated_cost": self.estimated_cost,
            "affected_entities": list(self.affected_entities) if self.affected_entities else None,
            "campaign_id": self.campaign_id,
            "priority": self.priority,
            "dependencies": list(self.dependencies),
            "previous_values": copy.deepcopy(self.previous_values),
            "previous_budget": self.previous_budget,
            "ad_group_theme": self.ad_group_theme,
        }
        data.update(overrides)
        return Mutation(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-compatible dictionary (audit snapshots)."""
        return {
            "mutation_id": self.mutation_id,
            "kind": self.kind.value,
            "resource_type": self.resource_type.value,
            "tenant_id": self.tenant_id,
            "entity_id": self.entity_id,
            "campaign_id": self.campaign_id,
            "changes": json.loads(json.dumps(self.changes, cls=MutationJSONEncoder)),
            "estimated_cost": str(self.estimated_cost) if self.estimated_cost is not None else None,
            "affected_entities": self.affected_entities,
            "priority": self.priority,
            "dependencies": list(self.dependencies),
            "previous_values": json.loads(
                json.dumps(self.previous_values, cls=MutationJSONEncoder)
            ) if self.previous_values is not None else None,
            "previous_budget": str(self.previous_budget) if self.previous_budget is not None else None,
            "ad_group_theme": self.ad_group_theme,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mutation":
        """Rebuild a Mutation from to_dict() output."""
        return cls(
            kind=MutationKind(data["kind"]),
            resource_type=ResourceType(data["resource_type"]),
            tenant_id=data["tenant_id"],
            changes=dict(data.get("changes") or {}),
            entity_id=data.get("entity_id"),
            estimated_cost=data.get("estimated_cost"),
            affected_entities=data.get("affected_entities"),
            campaign_id=data.get("campaign_id"),
            priority=int(data.get("priority") or 0),
            dependencies=list(data.get("dependencies") or []),
            previous_values=data.get("previous_values"),
            previous_budget=data.get("previous_budget"),
            ad_group_theme=data.get("ad_group_theme"),
            mutation_id=data.get("mutation_id") or str(uuid.uuid4()),
        )


# Ledger bucket for mutations that are not tied to a specific campaign
ACCOUNT_LEVEL_CAMPAIGN = "__account__"


# =============================================================================
# Guardrail Result Types
# =============================================================================

@dataclass
class GuardrailViolation:
    """Single guardrail finding."""
    type: str
    severity: Severity
    message: str
    field: Optional[str] = None
    suggested_value: Any = None

    @property
    def is_blocking_candidate(self) -> bool:
        return self.severity in (Severity.ERROR, Severity.CRITICAL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "field": self.field,
            "suggested_value": json.loads(
                json.dumps(self.suggested_value, cls=MutationJSONEncoder)
            ),
        }


@dataclass
class EstimatedImpact:
    """Advisory impact metadata attached to a GuardrailResult."""
    cost_increase: Optional[Decimal] = None
    risk_level: RiskLevel = RiskLevel.LOW
    risk_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cost_increase": str(self.cost_increase) if self.cost_increase is not None else None,
            "risk_level": self.risk_level.value,
            "risk_score": self.risk_score,
        }


@dataclass
class GuardrailResult:
    """
    Outcome of validating one mutation.

    INVARIANT:
        passed is False whenever any violation is CRITICAL, or any
        violation is ERROR while enforcement is HARD.
    """
    passed: bool = True
    violations: List[GuardrailViolation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    modifications: Dict[str, Any] = field(default_factory=dict)
    estimated_impact: EstimatedImpact = field(default_factory=EstimatedImpact)

    def add_violation(
        self,
        type: str,
        severity: Severity,
        message: str,
        field: Optional[str] = None,
        suggested_value: Any = None,
    ) -> GuardrailViolation:
        violation = GuardrailViolation(
            type=type,
            severity=severity,
            message=message,
            field=field,
            suggested_value=suggested_value,
        )
        self.violations.append(violation)
        return violation

    def violations_of(self, type: str) -> List[GuardrailViolation]:
        return [v for v in self.violations if v.type == type]

    def blocking_violations(self) -> List[GuardrailViolation]:
        """Violations that contributed to (or would contribute to) a block."""
        return [v for v in self.violations if v.is_blocking_candidate]

    def apply_decision(self, enforcement_level: EnforcementLevel) -> bool:
        """Recompute passed from the current violation list."""
        has_critical = any(v.severity == Severity.CRITICAL for v in self.violations)
        has_error = any(v.severity == Severity.ERROR for v in self.violations)
        self.passed = not (
            has_critical or (has_error and enforcement_level == EnforcementLevel.HARD)
        )
        return self.passed

    def summary_message(self) -> str:
        return "; ".join(v.message for v in self.violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "violations": [v.to_dict() for v in self.violations],
            "warnings": list(self.warnings),
            "modifications": json.loads(json.dumps(self.modifications, cls=MutationJSONEncoder)),
            "estimated_impact": self.estimated_impact.to_dict(),
        }

    @classmethod
    def system_error(cls, message: str) -> "GuardrailResult":
        """Fail-closed result used when validation itself breaks."""
        result = cls(passed=False)
        result.add_violation(
            type="system_error",
            severity=Severity.CRITICAL,
            message=f"Failed to validate mutation due to system error: {message}",
        )
        result.estimated_impact.risk_level = RiskLevel.HIGH
        return result


# =============================================================================
# Normalization (boundary adapter)
# =============================================================================

# Legacy semantic type -> (kind, resource)
LEGACY_TYPE_MAP: Dict[str, tuple] = {
    "UPDATE_BUDGET": (MutationKind.UPDATE, ResourceType.BUDGET),
    "UPDATE_AD": (MutationKind.UPDATE, ResourceType.AD),
    "UPDATE_TARGETING": (MutationKind.UPDATE, ResourceType.AD_GROUP),
    "UPDATE_BID": (MutationKind.UPDATE, ResourceType.AD_GROUP),
    "ADD_KEYWORD": (MutationKind.CREATE, ResourceType.KEYWORD),
    "ADD_NEGATIVE_KEYWORD": (MutationKind.CREATE, ResourceType.KEYWORD),
    "CREATE_CAMPAIGN": (MutationKind.CREATE, ResourceType.CAMPAIGN),
    "DELETE_CAMPAIGN": (MutationKind.REMOVE, ResourceType.CAMPAIGN),
    "PAUSE_AD_GROUP": (MutationKind.PAUSE, ResourceType.AD_GROUP),
}

# Nested producer objects merged into changes
NESTED_CHANGE_KEYS = ("campaign", "ad", "targeting", "bid", "keyword")

# Top-level producer fields moved into changes
TOP_LEVEL_CHANGE_KEYS = ("budget", "budgetMicros", "landingPageUrl", "status")


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def normalize_mutation(raw: Any) -> Mutation:
    """
    Normalize a producer payload into the canonical Mutation.

    ========================================================================
    NORMALIZATION PROCEDURE:
    ========================================================================
    1. Pass through Mutation instances untouched
    2. Resolve kind/resource (canonical names or legacy semantic type)
    3. Resolve tenant (tenantId | tenant_id | customerId)
    4. Merge nested ad/keyword/campaign/targeting/bid objects into changes
    5. Move top-level budget/budgetMicros/bid fields into changes
    6. Drop entity ids on Creates, keeping the parent ad group in changes
    7. Carry over cost, priority, pre-state and theme hints
    ========================================================================

    Raises:
        MutationFormatError: Unknown kind/resource or missing tenant
    """
    if isinstance(raw, Mutation):
        return raw
    if not isinstance(raw, dict):
        raise MutationFormatError(
            f"Unsupported mutation payload type: {type(raw).__name__}",
            ModelErrorCode.UNKNOWN_KIND,
        )

    raw_kind = _first(raw, "kind", "type")
    raw_resource = _first(raw, "resource_type", "resourceType", "resource")

    if isinstance(raw_kind, str) and raw_kind.upper() in LEGACY_TYPE_MAP and not raw_resource:
        kind, resource_type = LEGACY_TYPE_MAP[raw_kind.upper()]
    else:
        try:
            kind = raw_kind if isinstance(raw_kind, MutationKind) else MutationKind(
                str(raw_kind).upper()
            )
        except ValueError:
            if isinstance(raw_kind, str) and raw_kind.upper() in LEGACY_TYPE_MAP:
                kind = LEGACY_TYPE_MAP[raw_kind.upper()][0]
            else:
                raise MutationFormatError(
                    f"Unknown mutation kind: {raw_kind!r}", ModelErrorCode.UNKNOWN_KIND
                )
        try:
            resource_type = raw_resource if isinstance(raw_resource, ResourceType) else ResourceType(
                str(raw_resource).lower()
            )
        except ValueError:
            raise MutationFormatError(
                f"Unknown resource type: {raw_resource!r}", ModelErrorCode.UNKNOWN_RESOURCE
            )

    tenant_id = _first(raw, "tenant_id", "tenantId", "customerId", "customer_id")
    if not tenant_id or not str(tenant_id).strip():
        raise MutationFormatError(
            "Mutation is missing a tenant identifier", ModelErrorCode.MISSING_TENANT
        )

    changes: Dict[str, Any] = dict(raw.get("changes") or {})
    for key in NESTED_CHANGE_KEYS:
        nested = raw.get(key)
        if isinstance(nested, dict):
            changes.update(nested)
        elif key == "bid" and nested is not None:
            changes["bid"] = nested
    for key in TOP_LEVEL_CHANGE_KEYS:
        if raw.get(key) is not None and key not in changes:
            changes[key] = raw[key]

    # A Create has no target entity; the parent ad group stays in changes
    if kind == MutationKind.CREATE:
        entity_id = None
        parent_ad_group = _first(raw, "adGroupId", "ad_group_id")
        if parent_ad_group is not None and "adGroupId" not in changes:
            changes["adGroupId"] = str(parent_ad_group)
    else:
        entity_id = _first(raw, "entity_id", "entityId", "campaignId", "adGroupId")
        if entity_id is not None:
            entity_id = str(entity_id)

    previous_budget = _first(raw, "previous_budget", "previousBudget", "oldBudget")
    estimated_cost = _first(raw, "estimated_cost", "estimatedCost")

    mutation = Mutation(
        kind=kind,
        resource_type=resource_type,
        tenant_id=str(tenant_id).strip(),
        changes=changes,
        entity_id=entity_id,
        estimated_cost=parse_money(estimated_cost) if estimated_cost is not None else None,
        affected_entities=_first(raw, "affected_entities", "affectedEntities"),
        campaign_id=_first(raw, "campaign_id", "campaignId"),
        priority=int(raw.get("priority") or 0),
        dependencies=list(raw.get("dependencies") or []),
        previous_values=_first(raw, "previous_values", "previousValues"),
        previous_budget=parse_money(previous_budget) if previous_budget is not None else None,
        ad_group_theme=_first(raw, "ad_group_theme", "adGroupTheme"),
    )
    if raw.get("mutation_id"):
        mutation.mutation_id = str(raw["mutation_id"])

    logger.debug(
        f"[MODEL] Mutation normalized | "
        f"kind={mutation.kind.value} | "
        f"resource={mutation.resource_type.value} | "
        f"tenant={mutation.tenant_id} | "
        f"mutation_id={mutation.mutation_id}"
    )
    return mutation


def proposed_spend(mutation: Mutation) -> Decimal:
    """
    Spend a mutation asks the budget ledger for.

    estimated_cost when set and non-zero, else changes.budgetMicros. Campaign
    budget settings (changes.budget) are configuration, not spend.
    """
    if mutation.estimated_cost is not None and mutation.estimated_cost != ZERO:
        return mutation.estimated_cost
    micros = mutation.changes.get("budgetMicros")
    if micros not in (None, ""):
        return micros_to_money(micros)
    return ZERO


def mutations_equivalent(original: Mutation, other: Mutation) -> bool:
    """
    Compare two mutations for semantic equivalence.

    mutation_id and bookkeeping hints are ignored. entity_id is compared only
    when the original carries one (a CREATE has no id to compare).
    """
    if original.kind != other.kind:
        return False
    if original.resource_type != other.resource_type:
        return False
    if original.tenant_id != other.tenant_id:
        return False
    if original.changes != other.changes:
        return False
    if original.entity_id is not None and original.entity_id != other.entity_id:
        return False
    return True


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    # Enums
    "MutationKind",
    "ResourceType",
    "Severity",
    "RiskLevel",
    "EnforcementLevel",
    # Error codes / errors
    "ModelErrorCode",
    "MutationFormatError",
    # Data classes
    "Mutation",
    "GuardrailViolation",
    "EstimatedImpact",
    "GuardrailResult",
    # Utilities
    "MutationJSONEncoder",
    "normalize_mutation",
    "mutations_equivalent",
    "proposed_spend",
    "parse_money",
    "parse_micros",
    "micros_to_money",
    "money_to_micros",
    # Constants
    "PRECISION_MONEY",
    "MICROS_PER_UNIT",
    "ACCOUNT_LEVEL_CAMPAIGN",
    "LEGACY_TYPE_MAP",
]
