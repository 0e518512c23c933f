"""
============================================================================
Ads Safety Pipeline - Mutation Applier
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Cost estimates use decimal.Decimal with ROUND_HALF_EVEN
Traceability: Every outcome is written to the audit log with batch_id

The mutation applier orchestrates one batch of proposed mutations:

BATCH STATE MACHINE:
    PROPOSED -> CONFLICT_CHECKED -> APPLYING -> COMPLETED | ROLLED_BACK

PER-MUTATION PIPELINE (priority order, ties by submission order):
    1. Conflict      - same (tenant, resource type, entity) twice -> skipped
    2. Guardrails    - blocked -> skipped (unless skip_guardrails)
    3. Reservation   - atomic ledger reserve -> skipped if refused
    4. Apply         - worker thread bounded by per-call and batch timeout
                       timeout / client error -> failed, reservation released
    5. Inverse       - Create<->Remove, Pause<->Enable, Update via previous_values
    6. Audit         - one entry per outcome; audit failure -> failed

AUTO-ROLLBACK:
    On the first failure, every inverse recorded so far in the batch is
    replayed newest first, the batch is marked rolled_back and the
    remaining mutations are not attempted.

SAVE POINTS:
    A batch with at least one success (and no rollback) pushes a save point
    holding its inverse mutations. recover_from_save_point() replays one
    save point and discards it plus every newer save point.

ERROR CODES:
    - MUT-001: Confirmation required for a live apply
    - MUT-002: External apply failed
    - MUT-003: External apply timed out
    - MUT-004: Save point not found
    - MUT-005: Invalid batch state transition
    - MUT-006: Audit write failed for an outcome
    - MUT-007: Rollback degraded (Update without captured pre-state)
============================================================================
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Dict, Any, List, Tuple, Union, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import difflib
import json
import logging
import threading
import time
import uuid

from ads_safety.ads_client import ExternalAdsClient, AppliedMutation
from ads_safety.audit_log import AuditLog, AuditResult, AuditWriteError
from ads_safety.budget_ledger import BudgetLedger
from ads_safety.config import PipelineSettings
from ads_safety.guardrail_validator import GuardrailValidator
from ads_safety.mutation_models import (
    Mutation,
    MutationKind,
    ResourceType,
    Severity,
    GuardrailResult,
    MutationJSONEncoder,
    normalize_mutation,
    parse_money,
    micros_to_money,
    proposed_spend,
)
from ads_safety.observability import record_mutation, record_rollback

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PRECISION_COST = Decimal("0.01")

# Clicks assumed when estimating cost from a CPC bid
ESTIMATED_CLICKS = 100

# Entity status after a status-changing mutation, for dry-run previews
PREVIEW_STATUS = {
    MutationKind.PAUSE: "PAUSED",
    MutationKind.ENABLE: "ENABLED",
    MutationKind.REMOVE: "REMOVED",
}


# =============================================================================
# Error Codes
# =============================================================================

class MutationErrorCode:
    """Mutation applier error codes."""
    CONFIRMATION_REQUIRED = "MUT-001"
    APPLY_FAILED = "MUT-002"
    APPLY_TIMEOUT = "MUT-003"
    SAVE_POINT_NOT_FOUND = "MUT-004"
    INVALID_TRANSITION = "MUT-005"
    AUDIT_FAILED = "MUT-006"
    ROLLBACK_DEGRADED = "MUT-007"


class ConfirmationRequiredError(Exception):
    """Raised when a live apply is requested without confirm=True."""

    def __init__(self, message: str, error_code: str = MutationErrorCode.CONFIRMATION_REQUIRED):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


class SavePointNotFoundError(KeyError):
    """Raised when rollback() is given an unknown save point id."""

    def __init__(self, save_point_id: str):
        self.error_code = MutationErrorCode.SAVE_POINT_NOT_FOUND
        self.save_point_id = save_point_id
        super().__init__(f"[{self.error_code}] Save point {save_point_id} not found")


# =============================================================================
# Batch State Machine
# =============================================================================

class BatchStatus(Enum):
    PROPOSED = "PROPOSED"
    CONFLICT_CHECKED = "CONFLICT_CHECKED"
    APPLYING = "APPLYING"
    COMPLETED = "COMPLETED"
    ROLLED_BACK = "ROLLED_BACK"


VALID_BATCH_TRANSITIONS: Dict[str, List[str]] = {
    "PROPOSED": ["CONFLICT_CHECKED"],
    "CONFLICT_CHECKED": ["APPLYING"],
    "APPLYING": ["COMPLETED", "ROLLED_BACK"],
    "COMPLETED": [],  # Terminal state
    "ROLLED_BACK": [],  # Terminal state
}

TERMINAL_BATCH_STATES: List[str] = ["COMPLETED", "ROLLED_BACK"]


def validate_batch_transition(
    current_state: str,
    target_state: str,
    correlation_id: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Validate a batch state transition.

    Returns:
        (True, None) if allowed, (False, "MUT-005") otherwise
    """
    valid_targets = VALID_BATCH_TRANSITIONS.get(current_state)
    if valid_targets is None or target_state not in VALID_BATCH_TRANSITIONS:
        logger.error(
            f"[{MutationErrorCode.INVALID_TRANSITION}] Unknown batch state | "
            f"current={current_state} | target={target_state} | correlation_id={correlation_id}"
        )
        return False, MutationErrorCode.INVALID_TRANSITION

    if target_state not in valid_targets:
        valid_str = "/".join(valid_targets) if valid_targets else "NONE (terminal state)"
        logger.error(
            f"[{MutationErrorCode.INVALID_TRANSITION}] Invalid batch transition: "
            f"{current_state} -> {target_state}. Valid transitions from {current_state}: {valid_str} | "
            f"correlation_id={correlation_id}"
        )
        return False, MutationErrorCode.INVALID_TRANSITION

    return True, None


# =============================================================================
# Result Data Classes
# =============================================================================

class OutcomeStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class MutationOutcome:
    mutation: Mutation
    status: OutcomeStatus
    result: Optional[AppliedMutation] = None
    error: Optional[str] = None
    guardrail_result: Optional[GuardrailResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mutation": self.mutation.to_dict(),
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "guardrail_result": self.guardrail_result.to_dict() if self.guardrail_result else None,
        }


@dataclass
class MutationResult:
    """
    Outcome of a live batch apply or a rollback replay.

    outcomes lists every processed mutation in processing order; applied,
    skipped and failed are the same outcomes split by status. audit_failed
    is set when any outcome could not be written to the audit log; such a
    result is never successful.
    """
    batch_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    success: bool = True
    outcomes: List[MutationOutcome] = field(default_factory=list)
    rollback_available: bool = False
    rollback_id: Optional[str] = None
    rolled_back: bool = False
    rollback_plan: List[Mutation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    audit_failed: bool = False
    status: BatchStatus = BatchStatus.PROPOSED

    def record_audit_failure(self, message: str) -> None:
        logger.error(f"{message} | batch_id={self.batch_id}")
        self.audit_failed = True
        self.warnings.append(message)

    @property
    def applied(self) -> List[MutationOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SUCCESS]

    @property
    def skipped(self) -> List[MutationOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SKIPPED]

    @property
    def failed(self) -> List[MutationOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "total": len(self.outcomes),
            "succeeded": len(self.applied),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "success": self.success,
            "status": self.status.value,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "rollback_available": self.rollback_available,
            "rollback_id": self.rollback_id,
            "rolled_back": self.rolled_back,
            "rollback_plan": [m.to_dict() for m in self.rollback_plan],
            "warnings": list(self.warnings),
            "audit_failed": self.audit_failed,
            "summary": self.summary,
        }


@dataclass
class DryRunResult:
    can_proceed: bool
    mutations: List[Mutation] = field(default_factory=list)
    guardrail_results: List[GuardrailResult] = field(default_factory=list)
    estimated_changes: Dict[str, Any] = field(default_factory=lambda: {
        "campaigns": 0,
        "ad_groups": 0,
        "keywords": 0,
        "ads": 0,
        "budget_change": Decimal("0.00"),
    })
    warnings: List[str] = field(default_factory=list)
    blockers: List[str] = field(default_factory=list)
    preview: Dict[str, Any] = field(default_factory=lambda: {"before": {}, "after": {}, "diff": ""})


@dataclass
class SavePoint:
    """Inverse mutations are stored in replay order (newest change first)."""
    id: str
    timestamp: datetime
    inverse_mutations: List[Mutation] = field(default_factory=list)
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "mutation_count": len(self.inverse_mutations),
            "description": self.description,
        }


@dataclass
class RecoveryResult:
    success: bool
    recovered_mutations: int = 0
    errors: List[str] = field(default_factory=list)


# =============================================================================
# Pure helpers
# =============================================================================

def detect_conflicts(mutations: List[Mutation]) -> Dict[tuple, List[int]]:
    """
    Group batch indices by (tenant_id, resource_type, entity_id).

    Only groups with more than one member are returned. Mutations without an
    entity_id (Creates) never conflict.
    """
    groups: Dict[tuple, List[int]] = {}
    for index, mutation in enumerate(mutations):
        key = mutation.conflict_key
        if key is not None:
            groups.setdefault(key, []).append(index)
    return {key: indices for key, indices in groups.items() if len(indices) > 1}


def order_by_priority(mutations: Iterable[Mutation]) -> List[Mutation]:
    """Higher priority first; sorted() is stable so ties keep submission order."""
    return sorted(mutations, key=lambda m: -m.priority)


def build_preview(mutations: List[Mutation]) -> Dict[str, Any]:
    """
    Before/after view of a batch, built from the mutations alone.

    "before" holds the captured previous_values of every existing entity the
    batch touches; entities with nothing captured start empty. Creates get
    placeholder keys (preview-1, preview-2, ...). Later mutations on the
    same entity apply on top of earlier ones. diff is a unified diff of the
    two JSON renderings.
    """
    before: Dict[str, Dict[str, Any]] = {}
    after: Dict[str, Dict[str, Any]] = {}
    created = 0

    for mutation in mutations:
        if mutation.kind == MutationKind.CREATE:
            created += 1
            key = f"{mutation.resource_type.value}s/preview-{created}"
            after[key] = {"status": "ENABLED", **mutation.changes}
            continue

        key = f"{mutation.resource_type.value}s/{mutation.entity_id}"
        if key not in before:
            before[key] = dict(mutation.previous_values or {})
            after[key] = dict(before[key])
        state = after[key]
        if mutation.kind == MutationKind.UPDATE:
            state.update(mutation.changes)
        else:
            state["status"] = PREVIEW_STATUS[mutation.kind]

    before_text = json.dumps(before, indent=2, sort_keys=True, cls=MutationJSONEncoder).splitlines()
    after_text = json.dumps(after, indent=2, sort_keys=True, cls=MutationJSONEncoder).splitlines()
    diff = "\n".join(difflib.unified_diff(before_text, after_text, "before", "after", lineterm=""))
    return {"before": before, "after": after, "diff": diff}


def estimate_cost(mutation: Mutation) -> Decimal:
    """
    Estimate the spend impact of a mutation for dry-run reporting.

    estimated_cost, else changes.budget, else changes.budgetMicros, else
    changes.cpcBidMicros x ESTIMATED_CLICKS, else zero.
    """
    if mutation.estimated_cost is not None and mutation.estimated_cost != Decimal("0"):
        return mutation.estimated_cost
    changes = mutation.changes
    if changes.get("budget") not in (None, ""):
        return parse_money(changes["budget"])
    if changes.get("budgetMicros") not in (None, ""):
        return micros_to_money(changes["budgetMicros"])
    if changes.get("cpcBidMicros") not in (None, ""):
        return (micros_to_money(changes["cpcBidMicros"]) * ESTIMATED_CLICKS).quantize(
            PRECISION_COST, rounding=ROUND_HALF_EVEN
        )
    return Decimal("0.00")


def create_rollback_mutation(
    mutation: Mutation,
    applied: Optional[AppliedMutation] = None,
) -> Tuple[Mutation, Optional[str]]:
    """
    Synthesize the inverse of an applied mutation.

    Returns:
        (inverse, warning). warning is set when the inverse is degraded: an
        Update without previous_values becomes a no-op Update.
    """
    common = {"estimated_cost": None, "previous_budget": None}

    if mutation.kind == MutationKind.CREATE:
        entity_id = applied.resource_ref if applied is not None else mutation.entity_id
        return mutation.copy(kind=MutationKind.REMOVE, entity_id=entity_id, **common), None

    if mutation.kind == MutationKind.REMOVE:
        return mutation.copy(kind=MutationKind.CREATE, **common), None

    if mutation.kind == MutationKind.PAUSE:
        return mutation.copy(kind=MutationKind.ENABLE, **common), None

    if mutation.kind == MutationKind.ENABLE:
        return mutation.copy(kind=MutationKind.PAUSE, **common), None

    if mutation.previous_values:
        return mutation.copy(
            changes=dict(mutation.previous_values),
            previous_values=dict(mutation.changes),
            **common,
        ), None

    warning = (
        f"[{MutationErrorCode.ROLLBACK_DEGRADED}] Update of {mutation.resource_type.value} "
        f"{mutation.entity_id} has no captured previous values; rollback for it is a no-op"
    )
    logger.warning(f"{warning} | mutation_id={mutation.mutation_id}")
    return mutation.copy(changes={}, previous_values=None, **common), warning


def is_degraded_inverse(mutation: Mutation) -> bool:
    return mutation.kind == MutationKind.UPDATE and not mutation.changes


# =============================================================================
# MutationApplier Class
# =============================================================================

class MutationApplier:
    """
    Batch orchestrator for guarded mutations.

    Reliability Level: L6 Critical
    Side Effects: External applies, ledger reservations, audit entries
    """

    def __init__(
        self,
        client: ExternalAdsClient,
        validator: GuardrailValidator,
        ledger: BudgetLedger,
        audit_log: AuditLog,
        settings: Optional[PipelineSettings] = None,
    ) -> None:
        self._client = client
        self._validator = validator
        self._ledger = ledger
        self._audit_log = audit_log
        self._settings = settings or PipelineSettings()
        self._save_points: List[SavePoint] = []
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()

        logger.info(
            f"[APPLIER] Mutation applier initialized | "
            f"auto_rollback={self._settings.auto_rollback} | "
            f"apply_timeout_seconds={self._settings.apply_timeout_seconds} | "
            f"batch_timeout_seconds={self._settings.batch_timeout_seconds}"
        )

    # -------------------------------------------------------------------------
    # Batch entry point
    # -------------------------------------------------------------------------

    def apply_changes(
        self,
        mutations: Iterable[Any],
        dry_run: bool = False,
        confirm: bool = False,
        skip_guardrails: bool = False,
        auto_rollback: Optional[bool] = None,
        actor: str = "system",
        batch_timeout_seconds: Optional[float] = None,
    ) -> Union[MutationResult, DryRunResult]:
        """
        Apply (or preview) a batch of mutations.

        Raises:
            ConfirmationRequiredError: Live apply without confirm=True (MUT-001)
            MutationFormatError: A payload could not be normalized
        """
        batch = order_by_priority(normalize_mutation(m) for m in mutations)

        if dry_run:
            return self._dry_run(batch, skip_guardrails, actor)

        if not confirm:
            logger.warning(
                f"[{MutationErrorCode.CONFIRMATION_REQUIRED}] Live apply refused without confirmation | "
                f"mutations={len(batch)} | actor={actor}"
            )
            raise ConfirmationRequiredError(
                "Live apply requires confirm=True; run with dry_run=True to preview"
            )

        if auto_rollback is None:
            auto_rollback = self._settings.auto_rollback
        if batch_timeout_seconds is None:
            batch_timeout_seconds = self._settings.batch_timeout_seconds

        self._cancel_event.clear()
        return self._apply_batch(batch, skip_guardrails, auto_rollback, actor, batch_timeout_seconds)

    def cancel(self) -> None:
        """Stop the running batch before its next mutation. In-flight calls finish."""
        self._cancel_event.set()
        logger.warning("[APPLIER] Cancellation requested | next mutation will not start")

    # -------------------------------------------------------------------------
    # Dry run
    # -------------------------------------------------------------------------

    def _dry_run(self, batch: List[Mutation], skip_guardrails: bool, actor: str) -> DryRunResult:
        result = DryRunResult(can_proceed=True, mutations=list(batch))
        conflicted = self._conflicted_indices(batch)

        for index, mutation in enumerate(batch):
            guardrail_result = GuardrailResult() if skip_guardrails else self._validator.validate(mutation)
            if index in conflicted:
                self._add_conflict(guardrail_result, mutation)

            try:
                self._audit_log.log_validation(mutation, guardrail_result, actor=actor)
            except AuditWriteError as e:
                result.blockers.append(f"Audit write failed for {mutation.mutation_id}: {e}")

            if not guardrail_result.passed:
                result.blockers.extend(v.message for v in guardrail_result.blocking_violations())
            result.warnings.extend(guardrail_result.warnings)
            result.guardrail_results.append(guardrail_result)

            counts = result.estimated_changes
            if mutation.resource_type in (ResourceType.CAMPAIGN, ResourceType.BUDGET):
                counts["campaigns"] += 1
            elif mutation.resource_type == ResourceType.AD_GROUP:
                counts["ad_groups"] += 1
            elif mutation.resource_type == ResourceType.KEYWORD:
                counts["keywords"] += 1
            elif mutation.resource_type == ResourceType.AD:
                counts["ads"] += 1
            counts["budget_change"] += estimate_cost(mutation)

        result.preview = build_preview(batch)
        result.can_proceed = not result.blockers
        logger.info(
            f"[APPLIER] Dry run complete | "
            f"mutations={len(batch)} | "
            f"can_proceed={result.can_proceed} | "
            f"blockers={len(result.blockers)} | "
            f"budget_change={result.estimated_changes['budget_change']}"
        )
        return result

    # -------------------------------------------------------------------------
    # Live apply
    # -------------------------------------------------------------------------

    def _transition(self, result: MutationResult, target: BatchStatus) -> None:
        valid, error_code = validate_batch_transition(result.status.value, target.value, result.batch_id)
        if not valid:
            raise RuntimeError(
                f"[{error_code}] Invalid batch transition {result.status.value} -> {target.value}"
            )
        result.status = target

    def _conflicted_indices(self, batch: List[Mutation]) -> set:
        return {index for indices in detect_conflicts(batch).values() for index in indices}

    def _add_conflict(self, guardrail_result: GuardrailResult, mutation: Mutation) -> None:
        guardrail_result.add_violation(
            type="conflict",
            severity=Severity.ERROR,
            message=(
                f"Conflicting mutations detected for {mutation.resource_type.value} {mutation.entity_id}"
            ),
            field="entity_id",
        )
        guardrail_result.passed = False

    def _apply_batch(
        self,
        batch: List[Mutation],
        skip_guardrails: bool,
        auto_rollback: bool,
        actor: str,
        batch_timeout_seconds: Optional[float],
    ) -> MutationResult:
        result = MutationResult()
        deadline = time.monotonic() + batch_timeout_seconds if batch_timeout_seconds else None

        conflicted = self._conflicted_indices(batch)
        self._transition(result, BatchStatus.CONFLICT_CHECKED)
        self._transition(result, BatchStatus.APPLYING)

        logger.info(
            f"[APPLIER] Batch started | "
            f"batch_id={result.batch_id} | "
            f"mutations={len(batch)} | "
            f"conflicted={len(conflicted)} | "
            f"auto_rollback={auto_rollback} | "
            f"actor={actor}"
        )

        # Inverses of successful applies, in apply order
        inverses: List[Mutation] = []

        for index, mutation in enumerate(batch):
            stop_reason = None
            if self._cancel_event.is_set():
                stop_reason = "Not attempted: batch cancelled"
            elif deadline is not None and time.monotonic() >= deadline:
                stop_reason = "Not attempted: batch timeout exceeded"
            if stop_reason:
                for remaining in batch[index:]:
                    self._skip(result, remaining, stop_reason, actor)
                break

            if index in conflicted:
                guardrail_result = GuardrailResult()
                self._add_conflict(guardrail_result, mutation)
                self._skip(result, mutation, guardrail_result.summary_message(), actor, guardrail_result)
                continue

            guardrail_result = None
            if not skip_guardrails:
                guardrail_result = self._validator.validate(mutation)
                if not guardrail_result.passed:
                    self._skip(result, mutation, guardrail_result.summary_message(), actor, guardrail_result)
                    continue
                result.warnings.extend(guardrail_result.warnings)

            amount = proposed_spend(mutation)
            if amount != Decimal("0"):
                decision = self._ledger.reserve_spend_decision(
                    mutation.tenant_id, mutation.ledger_campaign_id, amount
                )
                if not decision.allowed:
                    self._skip(result, mutation, decision.reason or "Budget reservation refused", actor, guardrail_result)
                    continue

            outcome = self._apply_one(mutation, amount, deadline, actor, guardrail_result, result, inverses)
            result.outcomes.append(outcome)

            if outcome.status == OutcomeStatus.FAILED and auto_rollback:
                logger.warning(
                    f"[APPLIER] Auto-rollback triggered | "
                    f"batch_id={result.batch_id} | "
                    f"failed_mutation={mutation.mutation_id} | "
                    f"inverses={len(inverses)}"
                )
                plan = list(reversed(inverses))
                replay = self._replay(plan, trigger="auto", actor=actor, rollback_id=result.batch_id)
                result.warnings.extend(replay.warnings)
                if replay.audit_failed:
                    result.audit_failed = True
                if not replay.success:
                    result.warnings.append(
                        f"Auto-rollback incomplete: {len(replay.failed)} inverse mutation(s) failed"
                    )
                result.rolled_back = True
                result.rollback_plan = plan
                for remaining in batch[index + 1:]:
                    self._skip(result, remaining, "Not attempted: batch rolled back", actor)
                break

        if result.rolled_back:
            self._transition(result, BatchStatus.ROLLED_BACK)
        else:
            self._transition(result, BatchStatus.COMPLETED)
            if result.applied:
                save_point = self._push_save_point(
                    "rollback", list(reversed(inverses)), f"batch {result.batch_id}"
                )
                result.rollback_available = True
                result.rollback_id = save_point.id
                result.rollback_plan = list(save_point.inverse_mutations)

        result.success = not result.failed and not result.rolled_back and not result.audit_failed
        logger.info(
            f"[APPLIER] Batch finished | "
            f"batch_id={result.batch_id} | "
            f"status={result.status.value} | "
            f"summary={result.summary} | "
            f"rollback_id={result.rollback_id}"
        )
        return result

    def _skip(
        self,
        result: MutationResult,
        mutation: Mutation,
        reason: str,
        actor: str,
        guardrail_result: Optional[GuardrailResult] = None,
    ) -> None:
        result.outcomes.append(MutationOutcome(
            mutation=mutation,
            status=OutcomeStatus.SKIPPED,
            error=reason,
            guardrail_result=guardrail_result,
        ))
        record_mutation(mutation.kind.value, OutcomeStatus.SKIPPED.value, correlation_id=mutation.mutation_id)
        try:
            self._audit_log.log_mutation(
                mutation,
                AuditResult.SKIPPED,
                actor=actor,
                error=reason,
                impact={"batch_id": result.batch_id},
            )
        except AuditWriteError as e:
            result.record_audit_failure(
                f"[{MutationErrorCode.AUDIT_FAILED}] Audit write failed for skipped mutation {mutation.mutation_id}: {e}"
            )
        logger.info(
            f"[APPLIER] Mutation skipped | mutation_id={mutation.mutation_id} | reason={reason}"
        )

    def _call_client(self, mutation: Mutation, timeout: float) -> AppliedMutation:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ads-apply")
        try:
            future = executor.submit(self._client.apply, mutation)
            return future.result(timeout=timeout)
        finally:
            executor.shutdown(wait=False)

    def _effective_timeout(self, deadline: Optional[float]) -> float:
        timeout = self._settings.apply_timeout_seconds
        if deadline is not None:
            timeout = min(timeout, max(deadline - time.monotonic(), 0.0))
        return timeout

    def _apply_one(
        self,
        mutation: Mutation,
        reserved: Decimal,
        deadline: Optional[float],
        actor: str,
        guardrail_result: Optional[GuardrailResult],
        result: MutationResult,
        inverses: List[Mutation],
    ) -> MutationOutcome:
        timeout = self._effective_timeout(deadline)
        started = time.monotonic()
        try:
            applied = self._call_client(mutation, timeout)
        except FutureTimeoutError:
            error = f"[{MutationErrorCode.APPLY_TIMEOUT}] External apply timed out after {timeout:.2f}s"
            return self._fail(mutation, error, reserved, actor, guardrail_result, result, started)
        except Exception as e:
            error = f"[{MutationErrorCode.APPLY_FAILED}] External apply failed: {e}"
            return self._fail(mutation, error, reserved, actor, guardrail_result, result, started)

        duration = time.monotonic() - started
        inverse, warning = create_rollback_mutation(mutation, applied)
        inverses.append(inverse)
        if warning:
            result.warnings.append(warning)

        try:
            self._audit_log.log_mutation(
                mutation,
                AuditResult.SUCCESS,
                actor=actor,
                entity_id=applied.resource_ref,
                before_after_diff={
                    "before": mutation.previous_values,
                    "after": applied.applied_fields,
                },
                impact={"cost_change": reserved, "resource_ref": applied.resource_ref, "batch_id": result.batch_id},
            )
        except AuditWriteError as e:
            logger.error(
                f"[{MutationErrorCode.AUDIT_FAILED}] Applied mutation could not be audited | "
                f"mutation_id={mutation.mutation_id} | "
                f"resource_ref={applied.resource_ref} | "
                f"error={e}"
            )
            record_mutation(mutation.kind.value, OutcomeStatus.FAILED.value, duration, mutation.mutation_id)
            return MutationOutcome(
                mutation=mutation,
                status=OutcomeStatus.FAILED,
                result=applied,
                error=f"[{MutationErrorCode.AUDIT_FAILED}] Applied but audit write failed: {e}",
                guardrail_result=guardrail_result,
            )

        record_mutation(mutation.kind.value, OutcomeStatus.SUCCESS.value, duration, mutation.mutation_id)
        logger.info(
            f"[APPLIER] Mutation applied | "
            f"mutation_id={mutation.mutation_id} | "
            f"resource_ref={applied.resource_ref} | "
            f"duration={duration:.3f}s"
        )
        return MutationOutcome(
            mutation=mutation,
            status=OutcomeStatus.SUCCESS,
            result=applied,
            guardrail_result=guardrail_result,
        )

    def _fail(
        self,
        mutation: Mutation,
        error: str,
        reserved: Decimal,
        actor: str,
        guardrail_result: Optional[GuardrailResult],
        result: MutationResult,
        started: float,
    ) -> MutationOutcome:
        logger.error(f"{error} | mutation_id={mutation.mutation_id}")
        if reserved != Decimal("0"):
            self._ledger.release_spend(mutation.tenant_id, mutation.ledger_campaign_id, reserved)
        record_mutation(
            mutation.kind.value, OutcomeStatus.FAILED.value, time.monotonic() - started, mutation.mutation_id
        )
        try:
            self._audit_log.log_mutation(
                mutation,
                AuditResult.FAILED,
                actor=actor,
                error=error,
                impact={"batch_id": result.batch_id},
            )
        except AuditWriteError as e:
            result.record_audit_failure(
                f"[{MutationErrorCode.AUDIT_FAILED}] Audit write failed for failed mutation {mutation.mutation_id}: {e}"
            )
        return MutationOutcome(
            mutation=mutation,
            status=OutcomeStatus.FAILED,
            error=error,
            guardrail_result=guardrail_result,
        )

    # -------------------------------------------------------------------------
    # Rollback / save points
    # -------------------------------------------------------------------------

    def _replay(
        self,
        plan: List[Mutation],
        trigger: str,
        actor: str,
        rollback_id: Optional[str] = None,
    ) -> MutationResult:
        """Apply inverse mutations in the given order, auditing each."""
        result = MutationResult()
        for inverse in plan:
            if is_degraded_inverse(inverse):
                warning = (
                    f"[{MutationErrorCode.ROLLBACK_DEGRADED}] Skipped no-op inverse for "
                    f"{inverse.resource_type.value} {inverse.entity_id}: previous values were not captured"
                )
                logger.warning(warning)
                result.warnings.append(warning)
                result.outcomes.append(MutationOutcome(
                    mutation=inverse, status=OutcomeStatus.SKIPPED, error=warning
                ))
                record_rollback(trigger, OutcomeStatus.SKIPPED.value)
                try:
                    self._audit_log.log_rollback(
                        inverse, AuditResult.SKIPPED, actor=actor, error=warning, rollback_id=rollback_id
                    )
                except AuditWriteError as e:
                    result.record_audit_failure(
                        f"[{MutationErrorCode.AUDIT_FAILED}] Audit write failed for skipped rollback of "
                        f"{inverse.mutation_id}: {e}"
                    )
                continue

            try:
                applied = self._call_client(inverse, self._settings.apply_timeout_seconds)
            except FutureTimeoutError:
                self._record_replay_failure(result, inverse, trigger, actor, rollback_id, "Rollback apply timed out")
                continue
            except Exception as e:
                self._record_replay_failure(result, inverse, trigger, actor, rollback_id, f"Rollback apply failed: {e}")
                continue

            try:
                self._audit_log.log_rollback(inverse, AuditResult.SUCCESS, actor=actor, rollback_id=rollback_id)
            except AuditWriteError as e:
                result.outcomes.append(MutationOutcome(
                    mutation=inverse,
                    status=OutcomeStatus.FAILED,
                    result=applied,
                    error=f"[{MutationErrorCode.AUDIT_FAILED}] Rolled back but audit write failed: {e}",
                ))
                record_rollback(trigger, OutcomeStatus.FAILED.value)
                continue

            record_rollback(trigger, OutcomeStatus.SUCCESS.value)
            result.outcomes.append(MutationOutcome(mutation=inverse, status=OutcomeStatus.SUCCESS, result=applied))

        result.success = not result.failed and not result.audit_failed
        result.status = BatchStatus.COMPLETED
        logger.info(
            f"[APPLIER] Rollback replay finished | "
            f"trigger={trigger} | "
            f"rollback_id={rollback_id} | "
            f"summary={result.summary}"
        )
        return result

    def _record_replay_failure(
        self,
        result: MutationResult,
        inverse: Mutation,
        trigger: str,
        actor: str,
        rollback_id: Optional[str],
        error: str,
    ) -> None:
        logger.error(
            f"[{MutationErrorCode.APPLY_FAILED}] {error} | "
            f"mutation_id={inverse.mutation_id} | rollback_id={rollback_id}"
        )
        record_rollback(trigger, OutcomeStatus.FAILED.value)
        result.outcomes.append(MutationOutcome(mutation=inverse, status=OutcomeStatus.FAILED, error=error))
        try:
            self._audit_log.log_rollback(
                inverse, AuditResult.FAILED, actor=actor, error=error, rollback_id=rollback_id
            )
        except AuditWriteError as e:
            result.record_audit_failure(
                f"[{MutationErrorCode.AUDIT_FAILED}] Audit write failed for rollback of {inverse.mutation_id}: {e}"
            )

    def rollback(self, target: Union[str, List[Mutation]], actor: str = "system") -> MutationResult:
        """
        Replay a save point by id, or an explicit list of inverse mutations.

        Raises:
            SavePointNotFoundError: Unknown save point id (MUT-004)
        """
        if isinstance(target, str):
            with self._lock:
                save_point = next((sp for sp in self._save_points if sp.id == target), None)
            if save_point is None:
                logger.error(
                    f"[{MutationErrorCode.SAVE_POINT_NOT_FOUND}] Rollback target not found | id={target}"
                )
                raise SavePointNotFoundError(target)
            plan = list(save_point.inverse_mutations)
            rollback_id = save_point.id
        else:
            plan = [normalize_mutation(m) for m in target]
            rollback_id = None

        logger.info(f"[APPLIER] Starting rollback | rollback_id={rollback_id} | mutations={len(plan)}")
        return self._replay(plan, trigger="manual", actor=actor, rollback_id=rollback_id)

    def _push_save_point(self, prefix: str, inverses: List[Mutation], description: Optional[str]) -> SavePoint:
        now = datetime.now(timezone.utc)
        save_point = SavePoint(
            id=f"{prefix}-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:8]}",
            timestamp=now,
            inverse_mutations=inverses,
            description=description,
        )
        with self._lock:
            self._save_points.append(save_point)
        logger.info(
            f"[APPLIER] Save point created | id={save_point.id} | inverse_mutations={len(inverses)}"
        )
        return save_point

    def create_save_point(self, description: Optional[str] = None) -> str:
        """Mark the current state. The save point carries no inverse mutations."""
        return self._push_save_point("savepoint", [], description).id

    def list_save_points(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [sp.to_dict() for sp in self._save_points]

    def recover_from_save_point(self, save_point_id: str, actor: str = "system") -> RecoveryResult:
        """
        Replay one save point's inverses, then discard it and every newer one.

        The stack is only truncated when every inverse replayed cleanly.
        """
        with self._lock:
            index = next(
                (i for i, sp in enumerate(self._save_points) if sp.id == save_point_id), None
            )
            save_point = self._save_points[index] if index is not None else None

        if save_point is None:
            logger.error(
                f"[{MutationErrorCode.SAVE_POINT_NOT_FOUND}] Recovery target not found | id={save_point_id}"
            )
            return RecoveryResult(success=False, errors=[f"Save point {save_point_id} not found"])

        replay = self._replay(
            list(save_point.inverse_mutations), trigger="recovery", actor=actor, rollback_id=save_point.id
        )
        if not replay.success:
            return RecoveryResult(
                success=False,
                recovered_mutations=len(replay.applied),
                errors=[
                    f"Failed to recover mutation: {o.mutation.resource_type.value} - {o.error}"
                    for o in replay.failed
                ],
            )

        with self._lock:
            current = next(
                (i for i, sp in enumerate(self._save_points) if sp.id == save_point_id), None
            )
            if current is not None:
                self._save_points = self._save_points[:current]

        logger.info(
            f"[APPLIER] Recovered from save point | id={save_point_id} | recovered={len(replay.applied)}"
        )
        return RecoveryResult(success=True, recovered_mutations=len(replay.applied))


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "MutationErrorCode",
    "ConfirmationRequiredError",
    "SavePointNotFoundError",
    "BatchStatus",
    "VALID_BATCH_TRANSITIONS",
    "validate_batch_transition",
    "OutcomeStatus",
    "MutationOutcome",
    "MutationResult",
    "DryRunResult",
    "SavePoint",
    "RecoveryResult",
    "detect_conflicts",
    "order_by_priority",
    "estimate_cost",
    "build_preview",
    "create_rollback_mutation",
    "is_degraded_inverse",
    "MutationApplier",
]
