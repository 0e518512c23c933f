"""
Unit Tests for the Signed Audit Log

Reliability Level: L6 Critical

Key Test Cases:
- Entries are durably appended to day segments as JSONL
- Hash + HMAC signature verify; any tamper is detected
- Query filters and newest-first ordering
- Summary aggregates (cost change, security events)
- JSON / CSV export
- Retention sweep removes whole day segments only
- Write failures surface as AuditWriteError (AUD-001)
"""

from dataclasses import replace
from datetime import datetime, date, timedelta, timezone
from decimal import Decimal
import csv
import json
import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from ads_safety.audit_log import (
    AuditLog,
    AuditLogEntry,
    AuditQuery,
    AuditAction,
    AuditResult,
    AuditWriteError,
    AuditErrorCode,
    CSV_COLUMNS,
)
from ads_safety.mutation_models import Mutation, MutationKind, ResourceType, GuardrailResult, Severity


class FakeClock:

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class BrokenAuditLog(AuditLog):
    """Audit log whose disk writes always fail."""

    def _write_line(self, path: str, line: str) -> None:
        raise OSError("disk full")


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def audit_log(tmp_path, clock) -> AuditLog:
    return AuditLog(str(tmp_path / "audit"), hmac_key="test-key", clock=clock)


@pytest.fixture
def mutation() -> Mutation:
    return Mutation(
        kind=MutationKind.UPDATE,
        resource_type=ResourceType.BUDGET,
        tenant_id="t1",
        entity_id="b1",
        changes={"budget": Decimal("12.00")},
    )


# =============================================================================
# Append / integrity
# =============================================================================

class TestAppend:

    def test_entry_written_to_day_segment(self, audit_log, mutation, clock) -> None:
        entry = audit_log.log_mutation(mutation, AuditResult.SUCCESS, actor="alice")

        path = audit_log.segment_path(clock.now.date())
        with open(path, encoding="utf-8") as handle:
            lines = [json.loads(line) for line in handle if line.strip()]

        assert len(lines) == 1
        assert lines[0]["id"] == entry.id
        assert lines[0]["actor"] == "alice"
        assert lines[0]["mutation_snapshot"]["changes"] == {"budget": "12.00"}
        assert lines[0]["correlation_id"] == mutation.mutation_id

    def test_sealed_entry_verifies(self, audit_log, mutation) -> None:
        entry = audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        stored = audit_log.query()[0]
        assert entry.integrity_hash and entry.integrity_signature
        assert audit_log.verify_entry(stored) is True

    def test_tampered_entry_fails_verification(self, audit_log, mutation) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS, actor="alice")
        stored = audit_log.query()[0]
        assert audit_log.verify_entry(replace(stored, actor="mallory")) is False

    def test_other_key_fails_verification(self, tmp_path, audit_log, mutation, clock) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        other = AuditLog(audit_log.audit_dir, hmac_key="other-key", clock=clock)
        assert other.verify_entry(other.query()[0]) is False

    def test_ephemeral_key_when_unset(self, tmp_path, mutation, clock) -> None:
        log = AuditLog(str(tmp_path / "eph"), clock=clock)
        log.log_mutation(mutation, AuditResult.SUCCESS)
        assert log.verify_entry(log.query()[0]) is True

    def test_write_failure_raises(self, tmp_path, mutation, clock) -> None:
        log = BrokenAuditLog(str(tmp_path / "broken"), hmac_key="k", clock=clock)
        with pytest.raises(AuditWriteError) as exc_info:
            log.log_mutation(mutation, AuditResult.SUCCESS)
        assert exc_info.value.error_code == AuditErrorCode.WRITE_FAILED

    def test_validation_entry_records_guardrail_result(self, audit_log, mutation) -> None:
        result = GuardrailResult()
        result.add_violation("bid_limit", Severity.ERROR, "CPC bid exceeds maximum")
        result.passed = False

        entry = audit_log.log_validation(mutation, result)

        assert entry.action == AuditAction.VALIDATION
        assert entry.result == AuditResult.FAILED
        assert entry.error == "CPC bid exceeds maximum"
        assert entry.impact["violations"][0]["type"] == "bid_limit"


# =============================================================================
# Query / summary
# =============================================================================

class TestQuery:

    def test_newest_first_and_filters(self, audit_log, mutation, clock) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS, actor="alice")
        clock.now = clock.now + timedelta(minutes=5)
        audit_log.log_rollback(mutation, AuditResult.FAILED, actor="bob", error="nope")

        everything = audit_log.query()
        assert [e.actor for e in everything] == ["bob", "alice"]

        assert len(audit_log.query(AuditQuery(actor="alice"))) == 1
        assert len(audit_log.query(AuditQuery(action=AuditAction.ROLLBACK))) == 1
        assert len(audit_log.query(AuditQuery(result=AuditResult.SUCCESS))) == 1
        assert audit_log.query(AuditQuery(tenant_id="other")) == []

    def test_date_range(self, audit_log, mutation, clock) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        clock.now = clock.now + timedelta(days=1)
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)

        day_two = clock.now.date()
        assert len(audit_log.query(AuditQuery(start=day_two))) == 1
        assert len(audit_log.query(AuditQuery(end=day_two - timedelta(days=1)))) == 1

    def test_unreadable_lines_are_skipped(self, audit_log, mutation, clock) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        with open(audit_log.segment_path(clock.now.date()), "a", encoding="utf-8") as handle:
            handle.write("{garbage\n")
        assert len(audit_log.query()) == 1

    def test_summary(self, audit_log, mutation) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS, actor="alice", impact={"cost_change": Decimal("4.50")})
        audit_log.log_mutation(mutation, AuditResult.SUCCESS, actor="alice", impact={"cost_change": "1.25"})
        audit_log.log_mutation(mutation, AuditResult.FAILED, actor="bob", error="boom", impact={"cost_change": "99"})
        audit_log.log_rollback(mutation, AuditResult.SUCCESS, actor="bob")
        audit_log.log_security_event("mallory", "Unauthorized apply attempt", tenant_id="t1")

        summary = audit_log.summarize()

        assert summary.total_entries == 5
        assert summary.total_mutations == 3
        assert summary.total_rollbacks == 1
        assert summary.total_cost_change == Decimal("5.75")
        assert summary.security_event_count == 1
        assert summary.active_actors == ["alice", "bob", "mallory"]
        assert summary.success_rate == Decimal("60.00")
        assert summary.top_resources[0] == ("budget:b1", 4)
        assert {e["error"] for e in summary.errors} == {"boom", "Unauthorized apply attempt"}

    def test_summary_counts_unverifiable_entries(self, audit_log, mutation, clock) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        path = audit_log.segment_path(clock.now.date())
        with open(path, encoding="utf-8") as handle:
            data = json.loads(handle.readline())
        data["actor"] = "mallory"
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(data) + "\n")

        assert audit_log.summarize().security_event_count == 1


# =============================================================================
# Export / retention
# =============================================================================

class TestExport:

    def test_json_export(self, audit_log, mutation, tmp_path) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        path = audit_log.export("json", output_path=str(tmp_path / "out.json"))

        with open(path, encoding="utf-8") as handle:
            exported = json.load(handle)

        assert len(exported) == 1
        assert exported[0]["action"] == "mutation"
        assert audit_log.query(AuditQuery(action=AuditAction.EXPORT))[0].impact["entries"] == 1

    def test_csv_export(self, audit_log, mutation) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        audit_log.log_rollback(mutation, AuditResult.SUCCESS)
        path = audit_log.export("CSV")

        with open(path, encoding="utf-8", newline="") as handle:
            rows = list(csv.DictReader(handle))

        assert path.endswith(".csv")
        assert len(rows) == 2
        assert list(rows[0].keys()) == CSV_COLUMNS

    def test_unsupported_format(self, audit_log) -> None:
        with pytest.raises(ValueError):
            audit_log.export("xml")


class TestRetention:

    def test_old_segments_removed(self, audit_log, mutation, clock) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        old_day = clock.now.date()

        clock.now = clock.now + timedelta(days=91)
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)

        removed = audit_log.sweep_retention()

        assert removed == 1
        assert not os.path.exists(audit_log.segment_path(old_day))
        assert len(audit_log.query()) == 1

    def test_segments_inside_window_kept(self, audit_log, mutation, clock) -> None:
        audit_log.log_mutation(mutation, AuditResult.SUCCESS)
        assert audit_log.sweep_retention(now=clock.now + timedelta(days=90)) == 0

    def test_unrelated_files_ignored(self, audit_log, clock) -> None:
        stray = os.path.join(audit_log.audit_dir, "notes.txt")
        with open(stray, "w", encoding="utf-8") as handle:
            handle.write("keep me")
        audit_log.sweep_retention(now=clock.now + timedelta(days=365))
        assert os.path.exists(stray)
