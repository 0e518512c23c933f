"""
============================================================================
Ads Safety Pipeline - Multi-Tenant Budget Ledger
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All spend uses decimal.Decimal with ROUND_HALF_EVEN
Traceability: Every decision is logged with tenant and campaign

The budget ledger tracks spend per (tenant, campaign) and answers one
question atomically: "may this amount be spent?"

SPEND SCOPES:
    - daily:    per campaign, reset at the first call of each calendar day
    - campaign: per campaign lifetime total
    - account:  per tenant lifetime total

DECISION PRECEDENCE:
    1. Emergency stop       -> refused (critical)
    2. Negative amount      -> refused (error, suggested 0)
    3. Daily limit          -> refused (error)
    4. Campaign limit       -> refused (error)
    5. Account limit        -> refused (critical)
    proposed = current + amount; refused iff proposed > limit
    suggested_amount = smallest remaining headroom, never below zero

CONCURRENCY:
    check + record happen under the (tenant, campaign) lock with the
    tenant lock nested inside. Locks are always taken in that order.

ERROR CODES:
    - LED-001: Spend refused
    - LED-002: Emergency stop active
    - LED-003: Ledger snapshot persistence failed
    - LED-004: Ledger snapshot unreadable
============================================================================
"""

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Dict, Any, List, Callable, Tuple
from dataclasses import dataclass, field
from datetime import datetime, date, timezone
from abc import ABC, abstractmethod
import json
import logging
import os
import threading

from ads_safety.config import BudgetLimits
from ads_safety.mutation_models import Severity, parse_money, ACCOUNT_LEVEL_CAMPAIGN
from ads_safety.observability import (
    record_spend_rejection,
    record_reserved_spend,
    update_emergency_stops,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PRECISION_SPEND = Decimal("0.01")
ZERO = Decimal("0.00")

# Warn when a proposed spend passes this share of a limit
WARNING_THRESHOLD = Decimal("0.8")


# =============================================================================
# Error Codes
# =============================================================================

class LedgerErrorCode:
    """Budget ledger error codes."""
    SPEND_REFUSED = "LED-001"
    EMERGENCY_STOP = "LED-002"
    PERSIST_FAILED = "LED-003"
    SNAPSHOT_UNREADABLE = "LED-004"


class LimitScope:
    """Which limit decided a SpendDecision."""
    EMERGENCY_STOP = "emergency_stop"
    INVALID_AMOUNT = "invalid_amount"
    DAILY = "daily"
    CAMPAIGN = "campaign"
    ACCOUNT = "account"
    NONE = "none"


def _q(amount: Decimal) -> Decimal:
    return amount.quantize(PRECISION_SPEND, rounding=ROUND_HALF_EVEN)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class EmergencyStop:
    reason: str
    timestamp: datetime
    actor: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmergencyStop":
        return cls(
            reason=data["reason"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            actor=data["actor"],
        )


@dataclass
class CampaignSpendRecord:
    """
    Spend counters for one campaign.

    daily_limit / campaign_limit of None mean "use the configured default".
    """
    campaign_id: str
    daily_spend: Decimal = ZERO
    total_spend: Decimal = ZERO
    daily_limit: Optional[Decimal] = None
    campaign_limit: Optional[Decimal] = None
    emergency_stop: Optional[EmergencyStop] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "daily_spend": str(self.daily_spend),
            "total_spend": str(self.total_spend),
            "daily_limit": str(self.daily_limit) if self.daily_limit is not None else None,
            "campaign_limit": str(self.campaign_limit) if self.campaign_limit is not None else None,
            "emergency_stop": self.emergency_stop.to_dict() if self.emergency_stop else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CampaignSpendRecord":
        return cls(
            campaign_id=data["campaign_id"],
            daily_spend=parse_money(data.get("daily_spend", "0")),
            total_spend=parse_money(data.get("total_spend", "0")),
            daily_limit=parse_money(data["daily_limit"]) if data.get("daily_limit") is not None else None,
            campaign_limit=parse_money(data["campaign_limit"]) if data.get("campaign_limit") is not None else None,
            emergency_stop=EmergencyStop.from_dict(data["emergency_stop"]) if data.get("emergency_stop") else None,
        )


@dataclass
class TenantLedger:
    tenant_id: str
    account_spend: Decimal = ZERO
    account_limit: Optional[Decimal] = None
    last_reset_date: Optional[date] = None
    campaigns: Dict[str, CampaignSpendRecord] = field(default_factory=dict)

    def campaign(self, campaign_id: str) -> CampaignSpendRecord:
        record = self.campaigns.get(campaign_id)
        if record is None:
            record = CampaignSpendRecord(campaign_id=campaign_id)
            self.campaigns[campaign_id] = record
        return record

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "account_spend": str(self.account_spend),
            "account_limit": str(self.account_limit) if self.account_limit is not None else None,
            "last_reset_date": self.last_reset_date.isoformat() if self.last_reset_date else None,
            "campaigns": {cid: rec.to_dict() for cid, rec in self.campaigns.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TenantLedger":
        return cls(
            tenant_id=data["tenant_id"],
            account_spend=parse_money(data.get("account_spend", "0")),
            account_limit=parse_money(data["account_limit"]) if data.get("account_limit") is not None else None,
            last_reset_date=date.fromisoformat(data["last_reset_date"]) if data.get("last_reset_date") else None,
            campaigns={
                cid: CampaignSpendRecord.from_dict(rec)
                for cid, rec in (data.get("campaigns") or {}).items()
            },
        )


@dataclass
class SpendDecision:
    """
    Result of a spend check or reservation.

    current_spend / proposed_spend / limit describe the deciding scope
    (the daily scope when the spend is allowed).
    """
    allowed: bool
    limit_scope: str = LimitScope.NONE
    reason: Optional[str] = None
    severity: Optional[Severity] = None
    current_spend: Decimal = ZERO
    proposed_spend: Decimal = ZERO
    limit: Decimal = ZERO
    suggested_amount: Optional[Decimal] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "limit_scope": self.limit_scope,
            "reason": self.reason,
            "severity": self.severity.value if self.severity else None,
            "current_spend": str(self.current_spend),
            "proposed_spend": str(self.proposed_spend),
            "limit": str(self.limit),
            "suggested_amount": str(self.suggested_amount) if self.suggested_amount is not None else None,
            "warnings": list(self.warnings),
        }


# =============================================================================
# BudgetLedger Interface
# =============================================================================

class BudgetLedger(ABC):
    """Abstract budget ledger. Implementations must make reserve atomic."""

    @abstractmethod
    def check_spend(self, tenant_id: str, campaign_id: Optional[str], amount: Any) -> SpendDecision:
        pass

    @abstractmethod
    def reserve_spend_decision(self, tenant_id: str, campaign_id: Optional[str], amount: Any) -> SpendDecision:
        pass

    def reserve_spend(self, tenant_id: str, campaign_id: Optional[str], amount: Any) -> bool:
        return self.reserve_spend_decision(tenant_id, campaign_id, amount).allowed

    def record_spend(self, tenant_id: str, campaign_id: Optional[str], amount: Any) -> SpendDecision:
        """Record actual spend; accepted only if it keeps every limit."""
        return self.reserve_spend_decision(tenant_id, campaign_id, amount)

    @abstractmethod
    def release_spend(self, tenant_id: str, campaign_id: Optional[str], amount: Any) -> None:
        pass

    @abstractmethod
    def set_emergency_stop(self, tenant_id: str, campaign_id: str, reason: str, actor: str = "system") -> None:
        pass

    @abstractmethod
    def clear_emergency_stop(self, tenant_id: str, campaign_id: str, actor: str = "system") -> bool:
        pass

    @abstractmethod
    def is_emergency_stopped(self, tenant_id: str, campaign_id: str) -> bool:
        pass

    @abstractmethod
    def reset_daily_budgets(self, force: bool = False) -> int:
        pass

    @abstractmethod
    def get_budget_status(self, tenant_id: str, campaign_id: Optional[str] = None) -> Dict[str, Any]:
        pass

    @abstractmethod
    def set_campaign_limits(
        self,
        tenant_id: str,
        campaign_id: str,
        daily_limit: Optional[Any] = None,
        campaign_limit: Optional[Any] = None,
    ) -> None:
        pass

    @abstractmethod
    def set_account_limit(self, tenant_id: str, limit: Any) -> None:
        pass


# =============================================================================
# LocalBudgetLedger Class
# =============================================================================

class LocalBudgetLedger(BudgetLedger):
    """
    In-process budget ledger with optional per-tenant JSON snapshots.

    Reliability Level: L6 Critical
    Input Constraints: amounts must be numeric
    Side Effects: Writes ledger_dir/<tenant>.json when ledger_dir is set
    """

    def __init__(
        self,
        budget_limits: Optional[BudgetLimits] = None,
        ledger_dir: Optional[str] = None,
        today_provider: Optional[Callable[[], date]] = None,
    ) -> None:
        self._defaults = budget_limits or BudgetLimits()
        self._ledger_dir = ledger_dir
        self._today = today_provider or (lambda: datetime.now(timezone.utc).date())

        self._tenants: Dict[str, TenantLedger] = {}
        self._tenant_locks: Dict[str, threading.Lock] = {}
        self._campaign_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._registry_lock = threading.Lock()

        if self._ledger_dir:
            os.makedirs(self._ledger_dir, exist_ok=True)

        logger.info(
            f"[LEDGER] Budget ledger initialized | "
            f"daily_max={self._defaults.daily_max} | "
            f"campaign_max={self._defaults.campaign_max} | "
            f"account_max={self._defaults.account_max} | "
            f"persistent={bool(self._ledger_dir)}"
        )

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def default_limits(self) -> BudgetLimits:
        return self._defaults

    def set_default_limits(self, budget_limits: BudgetLimits) -> None:
        """Swap the default ceilings used for campaigns without overrides."""
        with self._registry_lock:
            self._defaults = budget_limits
        logger.info(
            f"[LEDGER] Default limits updated | "
            f"daily_max={budget_limits.daily_max} | "
            f"campaign_max={budget_limits.campaign_max} | "
            f"account_max={budget_limits.account_max}"
        )

    # -------------------------------------------------------------------------
    # Locking / tenant state
    # -------------------------------------------------------------------------

    def _locks_for(self, tenant_id: str, campaign_id: str) -> Tuple[threading.Lock, threading.Lock]:
        with self._registry_lock:
            campaign_lock = self._campaign_locks.setdefault((tenant_id, campaign_id), threading.Lock())
            tenant_lock = self._tenant_locks.setdefault(tenant_id, threading.Lock())
        return campaign_lock, tenant_lock

    def _tenant_lock(self, tenant_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._tenant_locks.setdefault(tenant_id, threading.Lock())

    def _tenant(self, tenant_id: str) -> TenantLedger:
        """Load or create tenant state. Caller holds the tenant lock."""
        ledger = self._tenants.get(tenant_id)
        if ledger is None:
            ledger = self._load_snapshot(tenant_id) or TenantLedger(
                tenant_id=tenant_id, last_reset_date=self._today()
            )
            self._tenants[tenant_id] = ledger
        self._rollover(ledger)
        return ledger

    def _rollover(self, ledger: TenantLedger, force: bool = False) -> bool:
        """Zero daily counters once per calendar day. Caller holds the tenant lock."""
        today = self._today()
        if not force and ledger.last_reset_date == today:
            return False
        previous = ledger.last_reset_date
        for record in ledger.campaigns.values():
            record.daily_spend = ZERO
        ledger.last_reset_date = today
        logger.info(
            f"[LEDGER] Daily budgets reset | "
            f"tenant={ledger.tenant_id} | "
            f"previous_date={previous} | "
            f"new_date={today} | "
            f"forced={force}"
        )
        self._persist(ledger)
        return True

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _snapshot_path(self, tenant_id: str) -> str:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in tenant_id)
        return os.path.join(self._ledger_dir, f"{safe}.json")

    def _load_snapshot(self, tenant_id: str) -> Optional[TenantLedger]:
        if not self._ledger_dir:
            return None
        path = self._snapshot_path(tenant_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as handle:
                ledger = TenantLedger.from_dict(json.load(handle))
            logger.info(f"[LEDGER] Snapshot loaded | tenant={tenant_id} | path={path}")
            return ledger
        except (OSError, ValueError, KeyError) as e:
            logger.error(
                f"[{LedgerErrorCode.SNAPSHOT_UNREADABLE}] Ledger snapshot unreadable | "
                f"tenant={tenant_id} | path={path} | error={e}"
            )
            raise

    def _persist(self, ledger: TenantLedger) -> None:
        if not self._ledger_dir:
            return
        path = self._snapshot_path(ledger.tenant_id)
        tmp_path = f"{path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(ledger.to_dict(), handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(
                f"[{LedgerErrorCode.PERSIST_FAILED}] Failed to persist ledger snapshot | "
                f"tenant={ledger.tenant_id} | error={e}"
            )

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def _limits(self, ledger: TenantLedger, record: CampaignSpendRecord) -> Tuple[Decimal, Decimal, Decimal]:
        daily = record.daily_limit if record.daily_limit is not None else self._defaults.daily_max
        campaign = record.campaign_limit if record.campaign_limit is not None else self._defaults.campaign_max
        account = ledger.account_limit if ledger.account_limit is not None else self._defaults.account_max
        return daily, campaign, account

    def _evaluate(self, ledger: TenantLedger, record: CampaignSpendRecord, amount: Decimal) -> SpendDecision:
        daily_limit, campaign_limit, account_limit = self._limits(ledger, record)

        if record.emergency_stop is not None:
            return SpendDecision(
                allowed=False,
                limit_scope=LimitScope.EMERGENCY_STOP,
                reason=f"Emergency stop active for campaign {record.campaign_id}: {record.emergency_stop.reason}",
                severity=Severity.CRITICAL,
                current_spend=record.daily_spend,
                proposed_spend=_q(record.daily_spend + max(amount, ZERO)),
                limit=daily_limit,
                suggested_amount=ZERO,
            )

        if amount < ZERO:
            return SpendDecision(
                allowed=False,
                limit_scope=LimitScope.INVALID_AMOUNT,
                reason=f"Spend amount cannot be negative: {amount}",
                severity=Severity.ERROR,
                current_spend=record.daily_spend,
                proposed_spend=record.daily_spend,
                limit=daily_limit,
                suggested_amount=ZERO,
            )

        scopes = [
            (LimitScope.DAILY, "Daily", record.daily_spend, daily_limit, Severity.ERROR),
            (LimitScope.CAMPAIGN, "Campaign", record.total_spend, campaign_limit, Severity.ERROR),
            (LimitScope.ACCOUNT, "Account", ledger.account_spend, account_limit, Severity.CRITICAL),
        ]
        headroom = min(max(limit - current, ZERO) for _, _, current, limit, _ in scopes)

        warnings: List[str] = []
        for scope, label, current, limit, _ in scopes:
            if scope == LimitScope.CAMPAIGN:
                continue
            proposed = current + amount
            if limit > ZERO and proposed > limit * WARNING_THRESHOLD:
                percent = (proposed / limit * Decimal("100")).quantize(Decimal("0.1"))
                warnings.append(f"Approaching {label.lower()} budget limit ({percent}% used)")

        for scope, label, current, limit, severity in scopes:
            proposed = _q(current + amount)
            if proposed > limit:
                return SpendDecision(
                    allowed=False,
                    limit_scope=scope,
                    reason=f"{label} budget limit exceeded: {proposed} > {limit}",
                    severity=severity,
                    current_spend=current,
                    proposed_spend=proposed,
                    limit=limit,
                    suggested_amount=_q(headroom),
                    warnings=warnings,
                )

        return SpendDecision(
            allowed=True,
            limit_scope=LimitScope.NONE,
            current_spend=record.daily_spend,
            proposed_spend=_q(record.daily_spend + amount),
            limit=daily_limit,
            warnings=warnings,
        )

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def check_spend(self, tenant_id: str, campaign_id: Optional[str], amount: Any) -> SpendDecision:
        """Evaluate a spend without recording it."""
        campaign_id = campaign_id or ACCOUNT_LEVEL_CAMPAIGN
        value = parse_money(amount)
        campaign_lock, tenant_lock = self._locks_for(tenant_id, campaign_id)
        with campaign_lock:
            with tenant_lock:
                ledger = self._tenant(tenant_id)
                decision = self._evaluate(ledger, ledger.campaign(campaign_id), value)
        return decision

    def reserve_spend_decision(self, tenant_id: str, campaign_id: Optional[str], amount: Any) -> SpendDecision:
        """Atomically check and record a spend."""
        campaign_id = campaign_id or ACCOUNT_LEVEL_CAMPAIGN
        value = parse_money(amount)
        campaign_lock, tenant_lock = self._locks_for(tenant_id, campaign_id)
        with campaign_lock:
            with tenant_lock:
                ledger = self._tenant(tenant_id)
                record = ledger.campaign(campaign_id)
                decision = self._evaluate(ledger, record, value)
                if decision.allowed:
                    record.daily_spend = _q(record.daily_spend + value)
                    record.total_spend = _q(record.total_spend + value)
                    ledger.account_spend = _q(ledger.account_spend + value)
                    self._persist(ledger)

        if decision.allowed:
            record_reserved_spend(tenant_id, value)
            logger.info(
                f"[LEDGER] Spend reserved | "
                f"tenant={tenant_id} | "
                f"campaign={campaign_id} | "
                f"amount={value} | "
                f"daily_spend={decision.proposed_spend}"
            )
        else:
            record_spend_rejection(decision.limit_scope)
            code = (
                LedgerErrorCode.EMERGENCY_STOP
                if decision.limit_scope == LimitScope.EMERGENCY_STOP
                else LedgerErrorCode.SPEND_REFUSED
            )
            logger.warning(
                f"[{code}] Spend refused | "
                f"tenant={tenant_id} | "
                f"campaign={campaign_id} | "
                f"amount={value} | "
                f"scope={decision.limit_scope} | "
                f"reason={decision.reason}"
            )
        return decision

    def release_spend(self, tenant_id: str, campaign_id: Optional[str], amount: Any) -> None:
        """Refund a reservation whose external apply did not happen."""
        campaign_id = campaign_id or ACCOUNT_LEVEL_CAMPAIGN
        value = parse_money(amount)
        if value <= ZERO:
            return
        campaign_lock, tenant_lock = self._locks_for(tenant_id, campaign_id)
        with campaign_lock:
            with tenant_lock:
                ledger = self._tenant(tenant_id)
                record = ledger.campaign(campaign_id)
                record.daily_spend = max(ZERO, _q(record.daily_spend - value))
                record.total_spend = max(ZERO, _q(record.total_spend - value))
                ledger.account_spend = max(ZERO, _q(ledger.account_spend - value))
                self._persist(ledger)
        logger.info(
            f"[LEDGER] Spend released | tenant={tenant_id} | campaign={campaign_id} | amount={value}"
        )

    def set_emergency_stop(self, tenant_id: str, campaign_id: str, reason: str, actor: str = "system") -> None:
        campaign_lock, tenant_lock = self._locks_for(tenant_id, campaign_id)
        with campaign_lock:
            with tenant_lock:
                ledger = self._tenant(tenant_id)
                ledger.campaign(campaign_id).emergency_stop = EmergencyStop(
                    reason=reason,
                    timestamp=datetime.now(timezone.utc),
                    actor=actor,
                )
                self._persist(ledger)
        update_emergency_stops(self._count_emergency_stops())
        logger.critical(
            f"[{LedgerErrorCode.EMERGENCY_STOP}] *** EMERGENCY STOP SET *** | "
            f"tenant={tenant_id} | "
            f"campaign={campaign_id} | "
            f"actor={actor} | "
            f"reason={reason}"
        )

    def clear_emergency_stop(self, tenant_id: str, campaign_id: str, actor: str = "system") -> bool:
        campaign_lock, tenant_lock = self._locks_for(tenant_id, campaign_id)
        with campaign_lock:
            with tenant_lock:
                ledger = self._tenant(tenant_id)
                record = ledger.campaign(campaign_id)
                if record.emergency_stop is None:
                    return False
                record.emergency_stop = None
                self._persist(ledger)
        update_emergency_stops(self._count_emergency_stops())
        logger.warning(
            f"[LEDGER] Emergency stop cleared | "
            f"tenant={tenant_id} | "
            f"campaign={campaign_id} | "
            f"actor={actor}"
        )
        return True

    def is_emergency_stopped(self, tenant_id: str, campaign_id: str) -> bool:
        campaign_lock, tenant_lock = self._locks_for(tenant_id, campaign_id)
        with campaign_lock:
            with tenant_lock:
                ledger = self._tenant(tenant_id)
                record = ledger.campaigns.get(campaign_id)
                return record is not None and record.emergency_stop is not None

    def _count_emergency_stops(self) -> int:
        with self._registry_lock:
            tenant_ids = list(self._tenants)
        count = 0
        for tenant_id in tenant_ids:
            with self._tenant_lock(tenant_id):
                ledger = self._tenants[tenant_id]
                count += sum(1 for r in ledger.campaigns.values() if r.emergency_stop is not None)
        return count

    def reset_daily_budgets(self, force: bool = False) -> int:
        """
        Apply the daily rollover to every known tenant.

        Returns:
            Number of tenants whose daily counters were zeroed
        """
        with self._registry_lock:
            tenant_ids = list(self._tenants)
        reset = 0
        for tenant_id in tenant_ids:
            with self._tenant_lock(tenant_id):
                if self._rollover(self._tenants[tenant_id], force=force):
                    reset += 1
        return reset

    def get_budget_status(self, tenant_id: str, campaign_id: Optional[str] = None) -> Dict[str, Any]:
        with self._tenant_lock(tenant_id):
            ledger = self._tenant(tenant_id)
            account_limit = ledger.account_limit if ledger.account_limit is not None else self._defaults.account_max
            campaigns = []
            for cid, record in sorted(ledger.campaigns.items()):
                if campaign_id is not None and cid != campaign_id:
                    continue
                daily_limit, campaign_limit, _ = self._limits(ledger, record)
                campaigns.append({
                    "campaign_id": cid,
                    "daily_spend": str(record.daily_spend),
                    "daily_limit": str(daily_limit),
                    "daily_remaining": str(max(ZERO, daily_limit - record.daily_spend)),
                    "total_spend": str(record.total_spend),
                    "campaign_limit": str(campaign_limit),
                    "campaign_remaining": str(max(ZERO, campaign_limit - record.total_spend)),
                    "emergency_stop": record.emergency_stop.to_dict() if record.emergency_stop else None,
                })
            return {
                "tenant_id": tenant_id,
                "last_reset_date": ledger.last_reset_date.isoformat() if ledger.last_reset_date else None,
                "account": {
                    "spent": str(ledger.account_spend),
                    "limit": str(account_limit),
                    "remaining": str(max(ZERO, account_limit - ledger.account_spend)),
                },
                "campaigns": campaigns,
            }

    def set_campaign_limits(
        self,
        tenant_id: str,
        campaign_id: str,
        daily_limit: Optional[Any] = None,
        campaign_limit: Optional[Any] = None,
    ) -> None:
        campaign_lock, tenant_lock = self._locks_for(tenant_id, campaign_id)
        with campaign_lock:
            with tenant_lock:
                ledger = self._tenant(tenant_id)
                record = ledger.campaign(campaign_id)
                if daily_limit is not None:
                    record.daily_limit = parse_money(daily_limit)
                if campaign_limit is not None:
                    record.campaign_limit = parse_money(campaign_limit)
                self._persist(ledger)
        logger.info(
            f"[LEDGER] Campaign limits set | "
            f"tenant={tenant_id} | "
            f"campaign={campaign_id} | "
            f"daily_limit={daily_limit} | "
            f"campaign_limit={campaign_limit}"
        )

    def set_account_limit(self, tenant_id: str, limit: Any) -> None:
        with self._tenant_lock(tenant_id):
            ledger = self._tenant(tenant_id)
            ledger.account_limit = parse_money(limit)
            self._persist(ledger)
        logger.info(f"[LEDGER] Account limit set | tenant={tenant_id} | limit={limit}")


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "LedgerErrorCode",
    "LimitScope",
    "EmergencyStop",
    "CampaignSpendRecord",
    "TenantLedger",
    "SpendDecision",
    "BudgetLedger",
    "LocalBudgetLedger",
]
