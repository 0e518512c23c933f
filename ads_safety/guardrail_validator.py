"""
============================================================================
Ads Safety Pipeline - Guardrail Validator
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Spend and bid amounts use decimal.Decimal
Traceability: Every validation is logged with mutation_id

The guardrail validator decides whether a single proposed mutation may
proceed. It never mutates external state and never records spend; the
budget ledger is consulted read-only.

CHECK ORDER (every check runs, each only appends):
    1. Budget         - ledger headroom, negative amounts, sudden increases
    2. Landing page   - URL syntax, HTTPS, probe health and load time
    3. Devices        - allowed device set, bid modifier range
    4. Bids           - configured ceilings, fixed sane range
    5. Keywords       - prohibited terms, shared lists, quality, relevance
    6. Custom rules   - caller-registered predicates
    7. Risk           - advisory score and level

DECISION:
    critical violation              -> blocked
    error violation + hard mode     -> blocked
    error violation + soft mode     -> passes, warning added per error
    exception anywhere              -> blocked, single system_error violation

ERROR CODES:
    - GRD-001: Mutation blocked by guardrails
    - GRD-002: Validation system error
    - GRD-003: Custom rule registration invalid
============================================================================
"""

from decimal import Decimal
from collections import deque
from typing import Optional, Dict, Any, List, Callable, Tuple, Iterable, Deque
from dataclasses import dataclass
from urllib.parse import urlparse
import logging
import threading
import time

from ads_safety.config import GuardrailConfig
from ads_safety.budget_ledger import BudgetLedger
from ads_safety.landing_page_probe import LandingPageHealthProbe, HttpLandingPageProbe
from ads_safety.mutation_models import (
    Mutation,
    MutationKind,
    ResourceType,
    Severity,
    RiskLevel,
    EnforcementLevel,
    GuardrailResult,
    normalize_mutation,
    proposed_spend,
    parse_money,
    parse_micros,
    micros_to_money,
)
from ads_safety.observability import record_validation, record_violation

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Fixed sane bid range in currency units
MIN_BID = Decimal("0.05")
MAX_BID = Decimal("50.00")

# Device bid modifier range
MIN_DEVICE_MODIFIER = Decimal("0")
MAX_DEVICE_MODIFIER = Decimal("3.0")

# Budget increase above this percentage is flagged
BUDGET_INCREASE_WARNING_PERCENT = Decimal("500")

# Load time at or above which a slow page becomes an error
SLOW_PAGE_ERROR_MS = 5000

# Validated mutations kept for get_mutation_history()
DEFAULT_HISTORY_LIMIT = 1000

MIN_QUALITY_SCORE = 5

URL_FIELDS = ("finalUrls", "finalUrl", "landingPage", "landingPageUrl", "destinationUrl")

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")

# Risk scoring
RISK_WEIGHTS = {
    Severity.CRITICAL: 10,
    Severity.ERROR: 5,
    Severity.WARNING: 2,
}
RISK_KIND_WEIGHTS = {
    MutationKind.REMOVE: 3,
    MutationKind.CREATE: 2,
}
RISK_RESOURCE_WEIGHT = 3
RISK_MEDIUM_THRESHOLD = 8
RISK_HIGH_THRESHOLD = 15


# =============================================================================
# Error Codes
# =============================================================================

class GuardrailErrorCode:
    """Guardrail validator error codes."""
    BLOCKED = "GRD-001"
    SYSTEM_ERROR = "GRD-002"
    INVALID_RULE = "GRD-003"


# =============================================================================
# Custom Rules
# =============================================================================

@dataclass
class CustomRule:
    """
    Caller-registered guardrail.

    check returns (passed, message). A failing rule appends a violation of
    type id with the rule's severity; message falls back to the rule name.
    """
    id: str
    name: str
    check: Callable[[Mutation], Tuple[bool, Optional[str]]]
    severity: Severity = Severity.ERROR


# =============================================================================
# GuardrailValidator Class
# =============================================================================

class GuardrailValidator:
    """
    Stateless-per-call guardrail evaluation against a config snapshot.

    The config snapshot is swapped wholesale by reconfigure(); a validation
    in flight keeps using the snapshot it started with.
    """

    def __init__(
        self,
        config: Optional[GuardrailConfig] = None,
        ledger: Optional[BudgetLedger] = None,
        probe: Optional[LandingPageHealthProbe] = None,
        audit_log: Optional[Any] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        if history_limit <= 0:
            raise ValueError(f"history_limit must be positive, got: {history_limit}")
        self._config = config or GuardrailConfig()
        self._config.validate()
        self._ledger = ledger
        self._probe = probe if probe is not None else HttpLandingPageProbe()
        self._audit_log = audit_log
        self._custom_rules: Dict[str, CustomRule] = {}
        self._history: Deque[Mutation] = deque(maxlen=history_limit)
        self._lock = threading.Lock()

        logger.info(
            f"[GUARDRAIL] Validator initialized | "
            f"enforcement={self._config.enforcement_level.value} | "
            f"ledger={'attached' if ledger else 'none'}"
        )

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def config(self) -> GuardrailConfig:
        with self._lock:
            return self._config

    def reconfigure(self, config: GuardrailConfig, actor: str = "system") -> None:
        """Validate and swap in a new config snapshot."""
        config.validate()
        with self._lock:
            previous = self._config
            self._config = config
        if self._ledger is not None and hasattr(self._ledger, "set_default_limits"):
            self._ledger.set_default_limits(config.budget_limits)
        if self._audit_log is not None:
            self._audit_log.log_configuration(actor, previous.to_dict(), config.to_dict())
        logger.info(
            f"[GUARDRAIL] Configuration replaced | "
            f"actor={actor} | "
            f"enforcement={config.enforcement_level.value} | "
            f"daily_max={config.budget_limits.daily_max}"
        )

    def add_custom_rule(self, rule: CustomRule) -> None:
        if not rule.id or not callable(rule.check):
            raise ValueError(f"[{GuardrailErrorCode.INVALID_RULE}] Custom rule needs an id and a callable check")
        with self._lock:
            self._custom_rules[rule.id] = rule
        logger.info(
            f"[GUARDRAIL] Custom rule added | id={rule.id} | name={rule.name} | severity={rule.severity.value}"
        )

    def remove_custom_rule(self, rule_id: str) -> bool:
        with self._lock:
            removed = self._custom_rules.pop(rule_id, None) is not None
        if removed:
            logger.info(f"[GUARDRAIL] Custom rule removed | id={rule_id}")
        return removed

    def get_mutation_history(self) -> List[Mutation]:
        """Most recent validated mutations, oldest first, up to history_limit."""
        with self._lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    # -------------------------------------------------------------------------
    # Validation entry points
    # -------------------------------------------------------------------------

    def validate(self, mutation: Any) -> GuardrailResult:
        """
        Validate one mutation.

        Never raises. Any internal failure yields a blocked result with a
        single critical system_error violation.
        """
        started = time.monotonic()
        with self._lock:
            config = self._config
            rules = list(self._custom_rules.values())

        mutation_id = getattr(mutation, "mutation_id", None)
        try:
            mutation = normalize_mutation(mutation)
            mutation_id = mutation.mutation_id
            result = GuardrailResult()

            self._check_budget(mutation, result, config)
            self._check_landing_pages(mutation, result, config)
            self._check_devices(mutation, result, config)
            self._check_bids(mutation, result, config)
            self._check_keywords(mutation, result, config)
            self._check_custom_rules(mutation, result, rules)
            self._assess_risk(mutation, result)

            self._decide(result, config.enforcement_level)

            with self._lock:
                self._history.append(mutation)
        except Exception as e:
            logger.error(
                f"[{GuardrailErrorCode.SYSTEM_ERROR}] Validation failed with system error | "
                f"mutation_id={mutation_id} | "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            result = GuardrailResult.system_error(f"{type(e).__name__}: {e}")

        duration = time.monotonic() - started
        record_validation(result.passed, duration, correlation_id=mutation_id)
        for violation in result.violations:
            record_violation(violation.type, violation.severity.value)

        if result.passed:
            logger.debug(
                f"[GUARDRAIL] Mutation passed | "
                f"mutation_id={mutation_id} | "
                f"warnings={len(result.warnings)} | "
                f"risk={result.estimated_impact.risk_level.value}"
            )
        else:
            logger.warning(
                f"[{GuardrailErrorCode.BLOCKED}] Mutation blocked | "
                f"mutation_id={mutation_id} | "
                f"violations={[v.type for v in result.violations]}"
            )
        return result

    def validate_mutations(self, mutations: Iterable[Any]) -> List[GuardrailResult]:
        """
        Validate a batch, adding conflict violations for mutations that
        target the same (tenant, resource type, entity).
        """
        batch = [normalize_mutation(m) for m in mutations]
        groups: Dict[tuple, List[int]] = {}
        for index, mutation in enumerate(batch):
            key = mutation.conflict_key
            if key is not None:
                groups.setdefault(key, []).append(index)

        results: List[GuardrailResult] = []
        for mutation in batch:
            result = self.validate(mutation)
            key = mutation.conflict_key
            if key is not None and len(groups.get(key, [])) > 1:
                result.add_violation(
                    type="conflict",
                    severity=Severity.ERROR,
                    message=f"Conflicting mutations detected for {mutation.resource_type.value} {mutation.entity_id}",
                    field="entity_id",
                )
                result.passed = False
                record_violation("conflict", Severity.ERROR.value)
            results.append(result)
        return results

    # -------------------------------------------------------------------------
    # Decision
    # -------------------------------------------------------------------------

    def _decide(self, result: GuardrailResult, enforcement_level: EnforcementLevel) -> None:
        result.apply_decision(enforcement_level)
        if enforcement_level == EnforcementLevel.SOFT:
            for violation in result.violations:
                if violation.severity == Severity.ERROR:
                    result.warnings.append(f"Soft enforcement (not blocking): {violation.message}")

    # -------------------------------------------------------------------------
    # 1. Budget
    # -------------------------------------------------------------------------

    def _check_budget(self, mutation: Mutation, result: GuardrailResult, config: GuardrailConfig) -> None:
        amount = proposed_spend(mutation)

        if amount != Decimal("0") and self._ledger is not None:
            decision = self._ledger.check_spend(mutation.tenant_id, mutation.ledger_campaign_id, amount)
            if not decision.allowed:
                result.add_violation(
                    type="budget_limit",
                    severity=decision.severity or Severity.ERROR,
                    message=decision.reason or "Budget limit exceeded",
                    field="budget",
                    suggested_value=decision.suggested_amount,
                )
            result.warnings.extend(decision.warnings)
        elif amount < Decimal("0"):
            result.add_violation(
                type="budget_limit",
                severity=Severity.ERROR,
                message=f"Spend amount cannot be negative: {amount}",
                field="budget",
                suggested_value=Decimal("0.00"),
            )

        if mutation.estimated_cost is not None:
            result.estimated_impact.cost_increase = mutation.estimated_cost

        budget = mutation.changes.get("budget")
        previous = mutation.previous_budget
        if budget is not None and previous is not None and previous > Decimal("0"):
            new_budget = parse_money(budget)
            if new_budget > previous:
                increase = ((new_budget - previous) / previous * Decimal("100")).quantize(Decimal("1"))
                if increase > BUDGET_INCREASE_WARNING_PERCENT:
                    result.warnings.append(
                        f"Large budget increase: {increase}% increase from {previous} to {new_budget}"
                    )

    # -------------------------------------------------------------------------
    # 2. Landing pages
    # -------------------------------------------------------------------------

    def _extract_urls(self, mutation: Mutation) -> List[str]:
        urls: List[str] = []
        for name in URL_FIELDS:
            value = mutation.changes.get(name)
            if isinstance(value, str) and value:
                urls.append(value)
            elif isinstance(value, (list, tuple)):
                urls.extend(v for v in value if isinstance(v, str) and v)
        return urls

    def _url_format_problem(self, url: str) -> Optional[str]:
        try:
            parsed = urlparse(url)
        except ValueError:
            return "Invalid URL format"
        if parsed.scheme not in ("http", "https"):
            return "URL must use HTTP or HTTPS protocol"
        if not parsed.hostname:
            return "URL must have a valid hostname"
        return None

    def _check_landing_pages(self, mutation: Mutation, result: GuardrailResult, config: GuardrailConfig) -> None:
        policy = config.landing_page
        for url in self._extract_urls(mutation):
            problem = self._url_format_problem(url)
            if problem:
                result.add_violation(
                    type="landing_page_format",
                    severity=Severity.ERROR,
                    message=f"Invalid URL format for {url}: {problem}",
                    field="finalUrls",
                )
                continue

            parsed = urlparse(url)
            if policy.check_ssl and parsed.scheme != "https" and parsed.hostname not in LOOPBACK_HOSTS:
                result.add_violation(
                    type="landing_page_ssl",
                    severity=Severity.ERROR,
                    message=f"Landing page must use HTTPS: {url}",
                    field="finalUrls",
                )
                continue

            if not policy.check_for_404 or self._probe is None:
                continue

            health = self._probe.check(url)
            if not health.reachable:
                result.add_violation(
                    type="landing_page_accessibility",
                    severity=Severity.ERROR,
                    message=f"Landing page not accessible: {url}",
                    field="finalUrls",
                )
                continue

            status = health.http_status or 0
            if status == 404:
                result.add_violation(
                    type="landing_page_health",
                    severity=Severity.CRITICAL,
                    message=f"Landing page issues for {url}: HTTP 404",
                    field="finalUrls",
                )
            elif status >= 400:
                result.add_violation(
                    type="landing_page_health",
                    severity=Severity.ERROR,
                    message=f"Landing page issues for {url}: HTTP {status}",
                    field="finalUrls",
                )

            load_time = health.load_time_ms
            if policy.check_load_time and load_time is not None and load_time > policy.max_load_time_ms:
                if load_time >= SLOW_PAGE_ERROR_MS:
                    result.add_violation(
                        type="landing_page_health",
                        severity=Severity.ERROR,
                        message=f"Landing page issues for {url}: Slow load time: {load_time}ms",
                        field="finalUrls",
                    )
                else:
                    result.warnings.append(f"Landing page warnings for {url}: Slow load time: {load_time}ms")

    # -------------------------------------------------------------------------
    # 3. Devices
    # -------------------------------------------------------------------------

    def _check_devices(self, mutation: Mutation, result: GuardrailResult, config: GuardrailConfig) -> None:
        policy = config.device_targeting
        settings = mutation.changes.get("deviceTargeting")
        if policy.enforce_restrictions and isinstance(settings, dict):
            requested = [str(d).upper() for d in settings.get("targetedDevices") or []]
            disallowed = [d for d in requested if d not in policy.allowed_devices]
            if disallowed:
                permitted = [d for d in requested if d in policy.allowed_devices]
                suggested = {"targetedDevices": sorted(set(permitted)) if permitted else sorted(policy.allowed_devices)}
                result.add_violation(
                    type="device_targeting",
                    severity=Severity.ERROR,
                    message=f"Targeting disallowed devices: {', '.join(disallowed)}",
                    field="deviceTargeting",
                    suggested_value=suggested,
                )
                result.modifications["deviceTargeting"] = suggested

        modifiers = mutation.changes.get("deviceModifiers")
        if isinstance(modifiers, dict):
            for device, raw in modifiers.items():
                modifier = Decimal(str(raw))
                if modifier < MIN_DEVICE_MODIFIER:
                    result.add_violation(
                        type="device_modifier",
                        severity=Severity.ERROR,
                        message=f"Device modifier for {device} cannot be negative: {raw}",
                        field="deviceModifiers",
                    )
                elif modifier > MAX_DEVICE_MODIFIER:
                    result.add_violation(
                        type="device_modifier",
                        severity=Severity.ERROR,
                        message=f"Device modifier for {device} exceeds maximum ({MAX_DEVICE_MODIFIER}): {raw}",
                        field="deviceModifiers",
                    )

    # -------------------------------------------------------------------------
    # 4. Bids
    # -------------------------------------------------------------------------

    def _check_bids(self, mutation: Mutation, result: GuardrailResult, config: GuardrailConfig) -> None:
        limits = config.bid_limits
        changes = mutation.changes

        if limits.enforce_max_bids:
            for name, ceiling, label in (
                ("cpcBidMicros", limits.max_cpc_micros, "CPC"),
                ("cpmBidMicros", limits.max_cpm_micros, "CPM"),
            ):
                raw = changes.get(name)
                if raw in (None, ""):
                    continue
                if parse_micros(raw) > ceiling:
                    result.add_violation(
                        type="bid_limit",
                        severity=Severity.ERROR,
                        message=(
                            f"{label} bid exceeds maximum: {micros_to_money(raw)} > {micros_to_money(ceiling)}"
                        ),
                        field=name,
                        suggested_value=str(ceiling),
                    )
                    result.modifications[name] = str(ceiling)

        candidates: List[Tuple[str, Decimal]] = []
        if changes.get("bid") not in (None, ""):
            candidates.append(("bid", parse_money(changes["bid"])))
        if changes.get("cpcBidMicros") not in (None, ""):
            candidates.append(("cpcBidMicros", micros_to_money(changes["cpcBidMicros"])))

        for name, bid in candidates:
            if bid < MIN_BID:
                result.add_violation(
                    type="bid_range",
                    severity=Severity.ERROR,
                    message=f"Bid too low ({name}): {bid} is below minimum {MIN_BID}",
                    field=name,
                )
            elif bid > MAX_BID:
                result.add_violation(
                    type="bid_range",
                    severity=Severity.ERROR,
                    message=f"Bid too high ({name}): {bid} exceeds maximum {MAX_BID}",
                    field=name,
                )

    # -------------------------------------------------------------------------
    # 5. Keywords
    # -------------------------------------------------------------------------

    def _check_keywords(self, mutation: Mutation, result: GuardrailResult, config: GuardrailConfig) -> None:
        policy = config.negative_keywords
        text = mutation.changes.get("text")
        is_keyword_create = (
            mutation.resource_type == ResourceType.KEYWORD and mutation.kind == MutationKind.CREATE
        )

        if is_keyword_create and policy.block_prohibited_terms and isinstance(text, str) and text:
            lowered = text.lower()
            for term in policy.prohibited_terms:
                if term.lower() in lowered:
                    result.add_violation(
                        type="prohibited_keyword",
                        severity=Severity.ERROR,
                        message=f'Keyword contains prohibited term: "{term}"',
                        field="keyword.text",
                    )

        if (
            mutation.resource_type == ResourceType.CAMPAIGN
            and mutation.kind == MutationKind.CREATE
            and policy.enforce_shared_lists
            and not mutation.changes.get("sharedNegativeListIds")
        ):
            result.warnings.append("Campaign should have a shared negative keyword list attached")

        if mutation.resource_type == ResourceType.KEYWORD:
            quality = mutation.changes.get("qualityScore")
            if quality is not None and Decimal(str(quality)) < MIN_QUALITY_SCORE:
                result.warnings.append(f'Low keyword quality score ({quality}/10) for "{text}"')

        theme = mutation.ad_group_theme
        if is_keyword_create and isinstance(text, str) and text and theme:
            keyword_words = text.lower().split()
            theme_words = theme.lower().split()
            relevant = any(kw in tw or tw in kw for kw in keyword_words for tw in theme_words)
            if not relevant:
                result.add_violation(
                    type="keyword_relevance",
                    severity=Severity.ERROR,
                    message=f'Keyword "{text}" appears irrelevant to ad group theme "{theme}"',
                    field="keyword.text",
                )

    # -------------------------------------------------------------------------
    # 6. Custom rules
    # -------------------------------------------------------------------------

    def _check_custom_rules(self, mutation: Mutation, result: GuardrailResult, rules: List[CustomRule]) -> None:
        for rule in rules:
            passed, message = rule.check(mutation)
            if not passed:
                result.add_violation(
                    type=rule.id,
                    severity=rule.severity,
                    message=message or f"Custom rule violation: {rule.name}",
                )

    # -------------------------------------------------------------------------
    # 7. Risk
    # -------------------------------------------------------------------------

    def _assess_risk(self, mutation: Mutation, result: GuardrailResult) -> None:
        score = sum(RISK_WEIGHTS[v.severity] for v in result.violations)
        score += RISK_KIND_WEIGHTS.get(mutation.kind, 0)
        if mutation.resource_type in (ResourceType.BUDGET, ResourceType.CAMPAIGN):
            score += RISK_RESOURCE_WEIGHT

        cost = abs(mutation.estimated_cost) if mutation.estimated_cost is not None else None
        if cost is not None:
            if cost > Decimal("100"):
                score += 5
            elif cost > Decimal("50"):
                score += 3
            elif cost > Decimal("10"):
                score += 1

        if score >= RISK_HIGH_THRESHOLD:
            level = RiskLevel.HIGH
        elif score >= RISK_MEDIUM_THRESHOLD:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW
        result.estimated_impact.risk_score = score
        result.estimated_impact.risk_level = level


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "GuardrailErrorCode",
    "CustomRule",
    "GuardrailValidator",
    "MIN_BID",
    "MAX_BID",
    "DEFAULT_HISTORY_LIMIT",
]
