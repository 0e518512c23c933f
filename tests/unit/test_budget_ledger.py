"""
Unit Tests for the Multi-Tenant Budget Ledger

Reliability Level: L6 Critical

Key Test Cases:
- Daily / campaign / account limits and their precedence
- Suggested amount is the smallest remaining headroom
- Emergency stop refuses every spend for the campaign
- Daily rollover happens once per calendar day
- Reservations are atomic under concurrency
- Snapshots survive a restart
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal
import json
import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from ads_safety.budget_ledger import LocalBudgetLedger, LimitScope, TenantLedger
from ads_safety.config import BudgetLimits
from ads_safety.mutation_models import Severity, ACCOUNT_LEVEL_CAMPAIGN


class FakeToday:
    """Mutable date provider."""

    def __init__(self, day: date) -> None:
        self.day = day

    def __call__(self) -> date:
        return self.day


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def today() -> FakeToday:
    return FakeToday(date(2026, 3, 1))


@pytest.fixture
def ledger(today) -> LocalBudgetLedger:
    return LocalBudgetLedger(
        budget_limits=BudgetLimits(daily_max="20", campaign_max="50", account_max="100"),
        today_provider=today,
    )


# =============================================================================
# Limits
# =============================================================================

class TestSpendLimits:

    def test_daily_limit_exceeded_suggests_headroom(self, ledger) -> None:
        assert ledger.reserve_spend("t1", "c1", "18")

        decision = ledger.check_spend("t1", "c1", "5")

        assert decision.allowed is False
        assert decision.limit_scope == LimitScope.DAILY
        assert decision.severity == Severity.ERROR
        assert decision.current_spend == Decimal("18.00")
        assert decision.proposed_spend == Decimal("23.00")
        assert decision.limit == Decimal("20.00")
        assert decision.suggested_amount == Decimal("2.00")

    def test_exactly_at_limit_is_allowed(self, ledger) -> None:
        assert ledger.reserve_spend("t1", "c1", "20") is True
        assert ledger.check_spend("t1", "c1", "0.01").allowed is False

    def test_campaign_limit(self, ledger, today) -> None:
        for offset in range(2):
            today.day = date(2026, 3, 1) + timedelta(days=offset)
            assert ledger.reserve_spend("t1", "c1", "20")
        today.day = date(2026, 3, 3)

        decision = ledger.check_spend("t1", "c1", "15")

        assert decision.allowed is False
        assert decision.limit_scope == LimitScope.CAMPAIGN
        assert decision.severity == Severity.ERROR
        assert decision.suggested_amount == Decimal("10.00")

    def test_account_limit_is_critical(self, ledger, today) -> None:
        ledger.set_account_limit("t1", "30")
        assert ledger.reserve_spend("t1", "c1", "20")

        decision = ledger.check_spend("t1", "c2", "15")

        assert decision.allowed is False
        assert decision.limit_scope == LimitScope.ACCOUNT
        assert decision.severity == Severity.CRITICAL
        assert decision.suggested_amount == Decimal("10.00")

    def test_daily_checked_before_campaign(self, ledger) -> None:
        ledger.set_campaign_limits("t1", "c1", campaign_limit="5")
        decision = ledger.check_spend("t1", "c1", "25")
        assert decision.limit_scope == LimitScope.DAILY
        assert decision.suggested_amount == Decimal("5.00")

    def test_negative_amount_refused(self, ledger) -> None:
        decision = ledger.check_spend("t1", "c1", "-1")
        assert decision.allowed is False
        assert decision.limit_scope == LimitScope.INVALID_AMOUNT
        assert decision.suggested_amount == Decimal("0.00")

    def test_warning_above_eighty_percent(self, ledger) -> None:
        decision = ledger.check_spend("t1", "c1", "17")
        assert decision.allowed is True
        assert any("daily" in w for w in decision.warnings)

    def test_check_does_not_record(self, ledger) -> None:
        ledger.check_spend("t1", "c1", "5")
        status = ledger.get_budget_status("t1")
        assert status["account"]["spent"] == "0.00"

    def test_tenants_are_isolated(self, ledger) -> None:
        assert ledger.reserve_spend("t1", "c1", "20")
        assert ledger.check_spend("t2", "c1", "20").allowed is True

    def test_missing_campaign_uses_account_bucket(self, ledger) -> None:
        assert ledger.reserve_spend("t1", None, "3")
        status = ledger.get_budget_status("t1", ACCOUNT_LEVEL_CAMPAIGN)
        assert status["campaigns"][0]["daily_spend"] == "3.00"

    def test_release_refunds_reservation(self, ledger) -> None:
        assert ledger.reserve_spend("t1", "c1", "20")
        ledger.release_spend("t1", "c1", "20")
        assert ledger.check_spend("t1", "c1", "20").allowed is True

    def test_record_spend_respects_limits(self, ledger) -> None:
        assert ledger.record_spend("t1", "c1", "19").allowed is True
        assert ledger.record_spend("t1", "c1", "2").allowed is False

    def test_default_limits_can_be_replaced(self, ledger) -> None:
        ledger.set_default_limits(BudgetLimits(daily_max="5"))
        assert ledger.check_spend("t1", "c1", "6").allowed is False


# =============================================================================
# Emergency stop
# =============================================================================

class TestEmergencyStop:

    def test_stop_refuses_any_amount(self, ledger) -> None:
        ledger.set_emergency_stop("t1", "c1", "runaway spend", actor="oncall")

        decision = ledger.check_spend("t1", "c1", "0.01")

        assert ledger.is_emergency_stopped("t1", "c1") is True
        assert decision.allowed is False
        assert decision.limit_scope == LimitScope.EMERGENCY_STOP
        assert decision.severity == Severity.CRITICAL
        assert "runaway spend" in decision.reason

    def test_stop_beats_negative_amount(self, ledger) -> None:
        ledger.set_emergency_stop("t1", "c1", "halt")
        assert ledger.check_spend("t1", "c1", "-5").limit_scope == LimitScope.EMERGENCY_STOP

    def test_stop_is_per_campaign(self, ledger) -> None:
        ledger.set_emergency_stop("t1", "c1", "halt")
        assert ledger.check_spend("t1", "c2", "1").allowed is True

    def test_clear(self, ledger) -> None:
        ledger.set_emergency_stop("t1", "c1", "halt")
        assert ledger.clear_emergency_stop("t1", "c1") is True
        assert ledger.clear_emergency_stop("t1", "c1") is False
        assert ledger.check_spend("t1", "c1", "1").allowed is True


# =============================================================================
# Daily reset
# =============================================================================

class TestDailyReset:

    def test_rollover_on_new_day(self, ledger, today) -> None:
        assert ledger.reserve_spend("t1", "c1", "20")
        today.day = date(2026, 3, 2)
        assert ledger.check_spend("t1", "c1", "20").allowed is True

    def test_rollover_keeps_lifetime_totals(self, ledger, today) -> None:
        assert ledger.reserve_spend("t1", "c1", "20")
        today.day = date(2026, 3, 2)
        status = ledger.get_budget_status("t1", "c1")
        assert status["campaigns"][0]["daily_spend"] == "0.00"
        assert status["campaigns"][0]["total_spend"] == "20.00"
        assert status["account"]["spent"] == "20.00"

    def test_reset_is_idempotent_within_a_day(self, ledger, today) -> None:
        assert ledger.reserve_spend("t1", "c1", "5")
        today.day = date(2026, 3, 2)
        assert ledger.reset_daily_budgets() == 1
        assert ledger.reserve_spend("t1", "c1", "5")
        assert ledger.reset_daily_budgets() == 0
        assert ledger.get_budget_status("t1", "c1")["campaigns"][0]["daily_spend"] == "5.00"

    def test_forced_reset(self, ledger) -> None:
        assert ledger.reserve_spend("t1", "c1", "5")
        assert ledger.reset_daily_budgets(force=True) == 1
        assert ledger.get_budget_status("t1", "c1")["campaigns"][0]["daily_spend"] == "0.00"


# =============================================================================
# Concurrency / persistence
# =============================================================================

class TestConcurrency:

    def test_concurrent_reservations_never_overshoot(self, ledger) -> None:
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: ledger.reserve_spend("t1", "c1", "1"), range(50)))

        assert results.count(True) == 20
        status = ledger.get_budget_status("t1", "c1")
        assert status["campaigns"][0]["daily_spend"] == "20.00"


class TestPersistence:

    def test_snapshot_survives_restart(self, tmp_path, today) -> None:
        first = LocalBudgetLedger(ledger_dir=str(tmp_path), today_provider=today)
        assert first.reserve_spend("tenant/1", "c1", "7.25")
        first.set_emergency_stop("tenant/1", "c2", "halt")

        second = LocalBudgetLedger(ledger_dir=str(tmp_path), today_provider=today)
        status = second.get_budget_status("tenant/1")

        assert status["account"]["spent"] == "7.25"
        assert second.is_emergency_stopped("tenant/1", "c2") is True

    def test_snapshot_is_json(self, tmp_path, today) -> None:
        ledger = LocalBudgetLedger(ledger_dir=str(tmp_path), today_provider=today)
        ledger.reserve_spend("t1", "c1", "1")
        with open(os.path.join(str(tmp_path), "t1.json"), encoding="utf-8") as handle:
            restored = TenantLedger.from_dict(json.load(handle))
        assert restored.campaigns["c1"].total_spend == Decimal("1.00")

    def test_unreadable_snapshot_raises(self, tmp_path, today) -> None:
        (tmp_path / "t1.json").write_text("{not json")
        ledger = LocalBudgetLedger(ledger_dir=str(tmp_path), today_provider=today)
        with pytest.raises(ValueError):
            ledger.check_spend("t1", "c1", "1")
