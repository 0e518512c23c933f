"""
============================================================================
Ads Safety Pipeline - Tamper-Evident Audit Log
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Cost figures are serialized as strings, never floats
Traceability: Every entry carries id, actor and correlation_id

The audit log is the append-only record of every mutation, validation,
rollback, export, configuration change and security event handled by the
pipeline.

STORAGE:
    One JSON line per entry in daily segments named audit-YYYY-MM-DD.jsonl
    (UTC date of the entry timestamp). Appends are serialized by a
    per-directory lock and flushed with os.fsync before returning.

INTEGRITY:
    integrity_hash      = SHA-256 of the canonical JSON of the entry fields
    integrity_signature = HMAC-SHA256(key, integrity_hash)
    A tampered field changes the hash; a forged hash fails the signature.

KNOWN GAP:
    Entries are hashed independently (no chain). Removing whole entries or
    whole segments is NOT detectable by hash inspection.

RETENTION:
    Whole segments older than retention_days are deleted at construction
    and on sweep_retention(). Individual entries are never deleted.

ERROR CODES:
    - AUD-001: Audit write failed
    - AUD-002: Unreadable audit line skipped
    - AUD-003: Integrity verification failed
    - AUD-004: Unsupported export format
============================================================================
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List, Callable, Iterator, Tuple
from dataclasses import dataclass, field, replace
from datetime import datetime, date, timedelta, timezone
from collections import Counter
from enum import Enum
import csv
import hashlib
import hmac
import json
import logging
import os
import re
import threading
import uuid

from ads_safety.mutation_models import (
    Mutation,
    GuardrailResult,
    MutationJSONEncoder,
)
from ads_safety.observability import record_audit_entry, record_audit_failure

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SEGMENT_PATTERN = re.compile(r"^audit-(\d{4}-\d{2}-\d{2})\.jsonl$")

DEFAULT_RETENTION_DAYS = 90

TOP_RESOURCES_LIMIT = 10
ERRORS_LIMIT = 50

CSV_COLUMNS = [
    "id",
    "timestamp",
    "actor",
    "action",
    "resource_type",
    "entity_id",
    "tenant_id",
    "result",
    "error",
    "integrity_hash",
]

# Per-directory append locks shared by every AuditLog in the process
_DIRECTORY_LOCKS: Dict[str, threading.Lock] = {}
_DIRECTORY_LOCKS_GUARD = threading.Lock()


def _directory_lock(path: str) -> threading.Lock:
    key = os.path.abspath(path)
    with _DIRECTORY_LOCKS_GUARD:
        lock = _DIRECTORY_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _DIRECTORY_LOCKS[key] = lock
        return lock


# =============================================================================
# Error Codes
# =============================================================================

class AuditErrorCode:
    """Audit log error codes."""
    WRITE_FAILED = "AUD-001"
    UNREADABLE_LINE = "AUD-002"
    INTEGRITY_FAILED = "AUD-003"
    UNSUPPORTED_FORMAT = "AUD-004"


class AuditWriteError(Exception):
    """
    Raised when an audit entry could not be durably written.

    Callers must treat the operation being audited as NOT successful.
    """

    def __init__(self, message: str, error_code: str = AuditErrorCode.WRITE_FAILED):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# Enums
# =============================================================================

class AuditAction(Enum):
    MUTATION = "mutation"
    VALIDATION = "validation"
    ROLLBACK = "rollback"
    EXPORT = "export"
    CONFIGURATION = "configuration"
    SECURITY = "security"


class AuditResult(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================================
# Data Classes
# =============================================================================

def _jsonable(value: Any) -> Any:
    """Normalize a payload to plain JSON types (Decimal -> str, etc.)."""
    if value is None:
        return None
    return json.loads(json.dumps(value, cls=MutationJSONEncoder))


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class AuditLogEntry:
    """
    Immutable audit record.

    integrity_hash and integrity_signature are filled in by AuditLog.append();
    an entry built by hand carries empty strings until it is sealed.
    """
    actor: str
    action: AuditAction
    result: AuditResult
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resource_type: Optional[str] = None
    entity_id: Optional[str] = None
    tenant_id: Optional[str] = None
    mutation_snapshot: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    before_after_diff: Optional[Dict[str, Any]] = None
    impact: Optional[Dict[str, Any]] = None
    correlation_id: Optional[str] = None
    integrity_hash: str = ""
    integrity_signature: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _utc(self.timestamp).isoformat(),
            "actor": self.actor,
            "action": self.action.value,
            "resource_type": self.resource_type,
            "entity_id": self.entity_id,
            "tenant_id": self.tenant_id,
            "mutation_snapshot": self.mutation_snapshot,
            "result": self.result.value,
            "error": self.error,
            "before_after_diff": self.before_after_diff,
            "impact": self.impact,
            "correlation_id": self.correlation_id,
            "integrity_hash": self.integrity_hash,
            "integrity_signature": self.integrity_signature,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditLogEntry":
        return cls(
            id=data["id"],
            timestamp=_utc(datetime.fromisoformat(data["timestamp"])),
            actor=data["actor"],
            action=AuditAction(data["action"]),
            resource_type=data.get("resource_type"),
            entity_id=data.get("entity_id"),
            tenant_id=data.get("tenant_id"),
            mutation_snapshot=data.get("mutation_snapshot"),
            result=AuditResult(data["result"]),
            error=data.get("error"),
            before_after_diff=data.get("before_after_diff"),
            impact=data.get("impact"),
            correlation_id=data.get("correlation_id"),
            integrity_hash=data.get("integrity_hash", ""),
            integrity_signature=data.get("integrity_signature", ""),
        )


@dataclass
class AuditQuery:
    """Filter for AuditLog.query(). Unset fields match everything."""
    start: Optional[date] = None
    end: Optional[date] = None
    actor: Optional[str] = None
    action: Optional[AuditAction] = None
    resource_type: Optional[str] = None
    tenant_id: Optional[str] = None
    result: Optional[AuditResult] = None

    def matches(self, entry: AuditLogEntry) -> bool:
        entry_day = _utc(entry.timestamp).date()
        if self.start is not None and entry_day < self.start:
            return False
        if self.end is not None and entry_day > self.end:
            return False
        if self.actor is not None and entry.actor != self.actor:
            return False
        if self.action is not None and entry.action != self.action:
            return False
        if self.resource_type is not None and entry.resource_type != self.resource_type:
            return False
        if self.tenant_id is not None and entry.tenant_id != self.tenant_id:
            return False
        if self.result is not None and entry.result != self.result:
            return False
        return True


@dataclass
class AuditSummary:
    start: Optional[date]
    end: Optional[date]
    total_entries: int = 0
    by_action: Dict[str, int] = field(default_factory=dict)
    by_actor: Dict[str, int] = field(default_factory=dict)
    by_result: Dict[str, int] = field(default_factory=dict)
    success_rate: Decimal = Decimal("0.00")
    total_mutations: int = 0
    total_rollbacks: int = 0
    total_cost_change: Decimal = Decimal("0.00")
    active_actors: List[str] = field(default_factory=list)
    top_resources: List[Tuple[str, int]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    security_event_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "total_entries": self.total_entries,
            "by_action": dict(self.by_action),
            "by_actor": dict(self.by_actor),
            "by_result": dict(self.by_result),
            "success_rate": str(self.success_rate),
            "total_mutations": self.total_mutations,
            "total_rollbacks": self.total_rollbacks,
            "total_cost_change": str(self.total_cost_change),
            "active_actors": list(self.active_actors),
            "top_resources": [list(item) for item in self.top_resources],
            "errors": list(self.errors),
            "security_event_count": self.security_event_count,
        }


# =============================================================================
# Integrity Hasher
# =============================================================================

class AuditHasher:
    """
    SHA-256 / HMAC integrity for audit entries.

    ============================================================================
    HASH COMPUTATION:
    ============================================================================
    1. Extract HASHABLE_FIELDS from the entry (to_dict form)
    2. Serialize to canonical JSON (sorted keys, no whitespace)
    3. SHA-256 of the UTF-8 bytes, hex encoded
    4. Signature = HMAC-SHA256(key, hash), hex encoded

    integrity_hash / integrity_signature are NOT part of the hashed payload.
    ============================================================================
    """

    HASHABLE_FIELDS: List[str] = [
        "id",
        "timestamp",
        "actor",
        "action",
        "resource_type",
        "entity_id",
        "tenant_id",
        "mutation_snapshot",
        "result",
        "error",
        "before_after_diff",
        "impact",
        "correlation_id",
    ]

    @staticmethod
    def compute(entry: AuditLogEntry) -> str:
        data = entry.to_dict()
        hash_data = {name: data[name] for name in AuditHasher.HASHABLE_FIELDS}
        canonical = json.dumps(
            hash_data, sort_keys=True, separators=(",", ":"), cls=MutationJSONEncoder
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @staticmethod
    def sign(integrity_hash: str, key: bytes) -> str:
        return hmac.new(key, integrity_hash.encode("utf-8"), hashlib.sha256).hexdigest()


# =============================================================================
# AuditLog Class
# =============================================================================

class AuditLog:
    """
    Append-only, signed JSONL audit log.

    Reliability Level: L6 Critical
    Input Constraints: audit_dir must be writable
    Side Effects: Creates audit_dir, writes and deletes day segments
    """

    def __init__(
        self,
        audit_dir: str,
        hmac_key: Optional[str] = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.audit_dir = audit_dir
        self.retention_days = retention_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = _directory_lock(audit_dir)

        if hmac_key:
            self._key = hmac_key.encode("utf-8")
        else:
            self._key = os.urandom(32)
            logger.warning(
                "[AUDIT] No HMAC key configured | using ephemeral per-process key | "
                "entries will not verify in other processes"
            )

        os.makedirs(self.audit_dir, exist_ok=True)
        self.sweep_retention()

        logger.info(
            f"[AUDIT] Audit log ready | "
            f"audit_dir={self.audit_dir} | "
            f"retention_days={self.retention_days}"
        )

    # -------------------------------------------------------------------------
    # Segments
    # -------------------------------------------------------------------------

    def segment_path(self, day: date) -> str:
        return os.path.join(self.audit_dir, f"audit-{day.isoformat()}.jsonl")

    def _segments(self) -> List[Tuple[date, str]]:
        segments: List[Tuple[date, str]] = []
        try:
            names = os.listdir(self.audit_dir)
        except FileNotFoundError:
            return segments
        for name in names:
            match = SEGMENT_PATTERN.match(name)
            if not match:
                continue
            try:
                day = date.fromisoformat(match.group(1))
            except ValueError:
                continue
            segments.append((day, os.path.join(self.audit_dir, name)))
        segments.sort()
        return segments

    def _write_line(self, path: str, line: str) -> None:
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(line + "\n")
            handle.flush()
            os.fsync(handle.fileno())

    # -------------------------------------------------------------------------
    # Append
    # -------------------------------------------------------------------------

    def seal(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Return a copy of entry with normalized payloads, hash and signature."""
        normalized = replace(
            entry,
            timestamp=_utc(entry.timestamp),
            mutation_snapshot=_jsonable(entry.mutation_snapshot),
            before_after_diff=_jsonable(entry.before_after_diff),
            impact=_jsonable(entry.impact),
            integrity_hash="",
            integrity_signature="",
        )
        integrity_hash = AuditHasher.compute(normalized)
        return replace(
            normalized,
            integrity_hash=integrity_hash,
            integrity_signature=AuditHasher.sign(integrity_hash, self._key),
        )

    def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        """
        Seal and durably append one entry.

        Returns:
            The sealed entry as written

        Raises:
            AuditWriteError: If the entry could not be written (AUD-001)
        """
        try:
            sealed = self.seal(entry)
            line = json.dumps(sealed.to_dict(), sort_keys=True, cls=MutationJSONEncoder)
            path = self.segment_path(sealed.timestamp.date())
            with self._lock:
                self._write_line(path, line)
        except AuditWriteError:
            raise
        except (OSError, TypeError, ValueError) as e:
            record_audit_failure()
            logger.error(
                f"[{AuditErrorCode.WRITE_FAILED}] Audit write failed | "
                f"action={entry.action.value} | "
                f"entity_id={entry.entity_id} | "
                f"error={e}"
            )
            raise AuditWriteError(f"Failed to write audit entry {entry.id}: {e}") from e

        record_audit_entry(sealed.action.value, sealed.result.value)
        logger.debug(
            f"[AUDIT] Entry appended | "
            f"id={sealed.id} | "
            f"action={sealed.action.value} | "
            f"result={sealed.result.value} | "
            f"correlation_id={sealed.correlation_id}"
        )
        return sealed

    # -------------------------------------------------------------------------
    # Convenience writers
    # -------------------------------------------------------------------------

    def _now(self) -> datetime:
        return _utc(self._clock())

    def log_mutation(
        self,
        mutation: Mutation,
        result: AuditResult,
        actor: str = "system",
        error: Optional[str] = None,
        before_after_diff: Optional[Dict[str, Any]] = None,
        impact: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> AuditLogEntry:
        return self.append(AuditLogEntry(
            actor=actor,
            action=AuditAction.MUTATION,
            result=result,
            timestamp=self._now(),
            resource_type=mutation.resource_type.value,
            entity_id=entity_id or mutation.entity_id,
            tenant_id=mutation.tenant_id,
            mutation_snapshot=mutation.to_dict(),
            error=error,
            before_after_diff=before_after_diff,
            impact=impact,
            correlation_id=correlation_id or mutation.mutation_id,
        ))

    def log_validation(
        self,
        mutation: Mutation,
        guardrail_result: GuardrailResult,
        actor: str = "system",
        correlation_id: Optional[str] = None,
    ) -> AuditLogEntry:
        return self.append(AuditLogEntry(
            actor=actor,
            action=AuditAction.VALIDATION,
            result=AuditResult.SUCCESS if guardrail_result.passed else AuditResult.FAILED,
            timestamp=self._now(),
            resource_type=mutation.resource_type.value,
            entity_id=mutation.entity_id,
            tenant_id=mutation.tenant_id,
            mutation_snapshot=mutation.to_dict(),
            error=None if guardrail_result.passed else guardrail_result.summary_message(),
            impact=guardrail_result.to_dict(),
            correlation_id=correlation_id or mutation.mutation_id,
        ))

    def log_rollback(
        self,
        mutation: Mutation,
        result: AuditResult,
        actor: str = "system",
        error: Optional[str] = None,
        rollback_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditLogEntry:
        return self.append(AuditLogEntry(
            actor=actor,
            action=AuditAction.ROLLBACK,
            result=result,
            timestamp=self._now(),
            resource_type=mutation.resource_type.value,
            entity_id=mutation.entity_id,
            tenant_id=mutation.tenant_id,
            mutation_snapshot=mutation.to_dict(),
            error=error,
            impact={"rollback_id": rollback_id} if rollback_id else None,
            correlation_id=correlation_id or mutation.mutation_id,
        ))

    def log_export(
        self,
        fmt: str,
        output_path: str,
        entry_count: int,
        actor: str = "system",
    ) -> AuditLogEntry:
        return self.append(AuditLogEntry(
            actor=actor,
            action=AuditAction.EXPORT,
            result=AuditResult.SUCCESS,
            timestamp=self._now(),
            impact={"format": fmt, "path": output_path, "entries": entry_count},
        ))

    def log_configuration(
        self,
        actor: str,
        before: Dict[str, Any],
        after: Dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> AuditLogEntry:
        return self.append(AuditLogEntry(
            actor=actor,
            action=AuditAction.CONFIGURATION,
            result=AuditResult.SUCCESS,
            timestamp=self._now(),
            resource_type="guardrail_config",
            before_after_diff={"before": before, "after": after},
            correlation_id=correlation_id,
        ))

    def log_security_event(
        self,
        actor: str,
        description: str,
        details: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditLogEntry:
        logger.warning(
            f"[AUDIT] Security event | actor={actor} | tenant={tenant_id} | {description}"
        )
        return self.append(AuditLogEntry(
            actor=actor,
            action=AuditAction.SECURITY,
            result=AuditResult.FAILED,
            timestamp=self._now(),
            tenant_id=tenant_id,
            error=description,
            impact=details,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    def _read_segment(self, path: str) -> Iterator[AuditLogEntry]:
        with open(path, "r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield AuditLogEntry.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(
                        f"[{AuditErrorCode.UNREADABLE_LINE}] Skipping unreadable audit line | "
                        f"path={path} | line={line_number} | error={e}"
                    )

    def query(self, audit_query: Optional[AuditQuery] = None) -> List[AuditLogEntry]:
        """Return matching entries, newest first."""
        audit_query = audit_query or AuditQuery()
        entries: List[AuditLogEntry] = []
        for day, path in self._segments():
            if audit_query.start is not None and day < audit_query.start:
                continue
            if audit_query.end is not None and day > audit_query.end:
                continue
            entries.extend(e for e in self._read_segment(path) if audit_query.matches(e))
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries

    def verify_entry(self, entry: AuditLogEntry) -> bool:
        """Recompute hash and signature; False on any mismatch."""
        expected_hash = AuditHasher.compute(replace(entry, integrity_hash="", integrity_signature=""))
        hash_ok = hmac.compare_digest(expected_hash, entry.integrity_hash or "")
        expected_signature = AuditHasher.sign(entry.integrity_hash or "", self._key)
        signature_ok = hmac.compare_digest(expected_signature, entry.integrity_signature or "")

        if not (hash_ok and signature_ok):
            logger.error(
                f"[{AuditErrorCode.INTEGRITY_FAILED}] Audit entry failed verification | "
                f"id={entry.id} | hash_ok={hash_ok} | signature_ok={signature_ok}"
            )
            return False
        return True

    def summarize(self, start: Optional[date] = None, end: Optional[date] = None) -> AuditSummary:
        entries = self.query(AuditQuery(start=start, end=end))
        summary = AuditSummary(start=start, end=end, total_entries=len(entries))

        summary.by_action = dict(Counter(e.action.value for e in entries))
        summary.by_actor = dict(Counter(e.actor for e in entries))
        summary.by_result = dict(Counter(e.result.value for e in entries))
        summary.active_actors = sorted(summary.by_actor)

        successes = summary.by_result.get(AuditResult.SUCCESS.value, 0)
        if entries:
            summary.success_rate = (
                Decimal(successes) * Decimal("100") / Decimal(len(entries))
            ).quantize(Decimal("0.01"))

        resources: Counter = Counter()
        cost_change = Decimal("0.00")
        security_events = 0
        for entry in entries:
            if entry.action == AuditAction.MUTATION:
                summary.total_mutations += 1
            elif entry.action == AuditAction.ROLLBACK:
                summary.total_rollbacks += 1
            if entry.entity_id:
                resources[f"{entry.resource_type}:{entry.entity_id}"] += 1
            if entry.action == AuditAction.MUTATION and entry.result == AuditResult.SUCCESS:
                cost = (entry.impact or {}).get("cost_change")
                if cost is not None:
                    try:
                        cost_change += Decimal(str(cost))
                    except InvalidOperation:
                        logger.warning(f"[AUDIT] Ignoring non-numeric cost_change | id={entry.id}")
            if entry.action == AuditAction.SECURITY or not self.verify_entry(entry):
                security_events += 1
            if entry.result == AuditResult.FAILED and len(summary.errors) < ERRORS_LIMIT:
                summary.errors.append({
                    "id": entry.id,
                    "timestamp": entry.timestamp.isoformat(),
                    "action": entry.action.value,
                    "entity_id": entry.entity_id,
                    "error": entry.error,
                })

        summary.total_cost_change = cost_change.quantize(Decimal("0.01"))
        summary.top_resources = resources.most_common(TOP_RESOURCES_LIMIT)
        summary.security_event_count = security_events
        return summary

    def export(
        self,
        fmt: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        output_path: Optional[str] = None,
        actor: str = "system",
    ) -> str:
        """
        Export entries in range as json (array) or csv.

        Returns:
            Path of the written export file

        Raises:
            ValueError: Unsupported format (AUD-004)
        """
        fmt = fmt.lower()
        if fmt not in ("json", "csv"):
            raise ValueError(f"[{AuditErrorCode.UNSUPPORTED_FORMAT}] Unsupported export format: {fmt}")

        entries = self.query(AuditQuery(start=start, end=end))
        if output_path is None:
            stamp = self._now().strftime("%Y%m%dT%H%M%S")
            export_dir = os.path.join(self.audit_dir, "exports")
            os.makedirs(export_dir, exist_ok=True)
            output_path = os.path.join(export_dir, f"audit-export-{stamp}.{fmt}")

        if fmt == "json":
            with open(output_path, "w", encoding="utf-8") as handle:
                json.dump([e.to_dict() for e in entries], handle, indent=2, cls=MutationJSONEncoder)
        else:
            with open(output_path, "w", encoding="utf-8", newline="") as handle:
                writer = csv.DictWriter(handle, fieldnames=CSV_COLUMNS, extrasaction="ignore")
                writer.writeheader()
                for entry in entries:
                    row = entry.to_dict()
                    writer.writerow({name: "" if row[name] is None else row[name] for name in CSV_COLUMNS})

        self.log_export(fmt, output_path, len(entries), actor=actor)
        logger.info(
            f"[AUDIT] Export written | format={fmt} | entries={len(entries)} | path={output_path}"
        )
        return output_path

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    def sweep_retention(self, now: Optional[datetime] = None) -> int:
        """Delete whole day segments older than retention_days."""
        today = _utc(now or self._clock()).date()
        cutoff = today - timedelta(days=self.retention_days)
        removed = 0
        with self._lock:
            for day, path in self._segments():
                if day >= cutoff:
                    continue
                try:
                    os.remove(path)
                    removed += 1
                except FileNotFoundError:
                    continue
        if removed:
            logger.info(
                f"[AUDIT] Retention sweep | removed_segments={removed} | cutoff={cutoff.isoformat()}"
            )
        return removed


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "AuditErrorCode",
    "AuditWriteError",
    "AuditAction",
    "AuditResult",
    "AuditLogEntry",
    "AuditQuery",
    "AuditSummary",
    "AuditHasher",
    "AuditLog",
]
