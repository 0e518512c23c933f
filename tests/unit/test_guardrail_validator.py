"""
Unit Tests for the Guardrail Validator

Reliability Level: L6 Critical

Key Test Cases:
- Budget headroom via the ledger (read-only)
- Landing page syntax, HTTPS, health and load time
- Device targeting and modifiers
- Bid ceilings with suggested modifications
- Prohibited terms, quality and relevance for keywords
- Custom rules, soft vs hard enforcement, fail-closed system errors
- Batch conflict detection
"""

from decimal import Decimal
import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from ads_safety.budget_ledger import LocalBudgetLedger
from ads_safety.config import GuardrailConfig, BidLimits, BudgetLimits
from ads_safety.guardrail_validator import GuardrailValidator, CustomRule
from ads_safety.landing_page_probe import StaticLandingPageProbe, LandingPageHealth
from ads_safety.mutation_models import (
    Mutation,
    MutationKind,
    ResourceType,
    Severity,
    RiskLevel,
    EnforcementLevel,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def probe() -> StaticLandingPageProbe:
    return StaticLandingPageProbe()


@pytest.fixture
def ledger() -> LocalBudgetLedger:
    return LocalBudgetLedger(BudgetLimits(daily_max="20"))


@pytest.fixture
def validator(ledger, probe) -> GuardrailValidator:
    return GuardrailValidator(
        config=GuardrailConfig().with_budget_limits(daily_max="20"),
        ledger=ledger,
        probe=probe,
    )


def keyword(text: str, theme: str = None) -> Mutation:
    return Mutation(
        kind=MutationKind.CREATE,
        resource_type=ResourceType.KEYWORD,
        tenant_id="t1",
        changes={"text": text},
        ad_group_theme=theme,
    )


# =============================================================================
# Budget
# =============================================================================

class TestBudgetChecks:

    def test_daily_headroom_exceeded(self, validator, ledger) -> None:
        assert ledger.reserve_spend("t1", "c1", "18")
        mutation = Mutation(
            MutationKind.UPDATE, ResourceType.CAMPAIGN, "t1", entity_id="c1", estimated_cost="5"
        )

        result = validator.validate(mutation)

        assert result.passed is False
        violation = result.violations_of("budget_limit")[0]
        assert violation.severity == Severity.ERROR
        assert violation.suggested_value == Decimal("2.00")

    def test_validation_does_not_record_spend(self, validator, ledger) -> None:
        mutation = Mutation(
            MutationKind.UPDATE, ResourceType.CAMPAIGN, "t1", entity_id="c1", estimated_cost="15"
        )
        assert validator.validate(mutation).passed is True
        assert validator.validate(mutation).passed is True
        assert ledger.get_budget_status("t1")["account"]["spent"] == "0.00"

    def test_emergency_stop_is_critical(self, validator, ledger) -> None:
        ledger.set_emergency_stop("t1", "c1", "halt")
        mutation = Mutation(
            MutationKind.UPDATE, ResourceType.CAMPAIGN, "t1", entity_id="c1", estimated_cost="1"
        )
        result = validator.validate(mutation)
        assert result.violations_of("budget_limit")[0].severity == Severity.CRITICAL

    def test_negative_spend_without_ledger(self, probe) -> None:
        validator = GuardrailValidator(probe=probe)
        mutation = Mutation(MutationKind.UPDATE, ResourceType.BUDGET, "t1", estimated_cost="-3")
        result = validator.validate(mutation)
        assert result.passed is False
        assert result.violations_of("budget_limit")[0].suggested_value == Decimal("0.00")

    def test_large_budget_increase_warns(self, validator) -> None:
        mutation = Mutation(
            MutationKind.UPDATE,
            ResourceType.CAMPAIGN,
            "t1",
            entity_id="c1",
            changes={"budget": "70"},
            previous_budget="10",
        )
        result = validator.validate(mutation)
        assert result.passed is True
        assert any("Large budget increase: 600%" in w for w in result.warnings)


# =============================================================================
# Landing pages
# =============================================================================

class TestLandingPageChecks:

    def ad(self, url: str) -> Mutation:
        return Mutation(MutationKind.UPDATE, ResourceType.AD, "t1", entity_id="a1", changes={"finalUrls": [url]})

    def test_invalid_scheme(self, validator) -> None:
        result = validator.validate(self.ad("ftp://example.com/"))
        assert result.violations_of("landing_page_format")

    def test_https_required(self, validator) -> None:
        result = validator.validate(self.ad("http://example.com/"))
        assert result.passed is False
        assert result.violations_of("landing_page_ssl")

    def test_localhost_exempt_from_https(self, validator) -> None:
        result = validator.validate(self.ad("http://localhost:8080/"))
        assert not result.violations_of("landing_page_ssl")

    def test_404_is_critical(self, validator, probe) -> None:
        url = "https://example.com/gone"
        probe.set_result(url, LandingPageHealth(url=url, reachable=True, http_status=404, is_https=True, load_time_ms=50))

        result = validator.validate(self.ad(url))

        assert result.violations_of("landing_page_health")[0].severity == Severity.CRITICAL

    def test_unreachable(self, validator, probe) -> None:
        url = "https://down.example.com/"
        probe.set_result(url, LandingPageHealth(url=url, reachable=False, error="timeout"))
        assert validator.validate(self.ad(url)).violations_of("landing_page_accessibility")

    def test_slow_page_warning_then_error(self, validator, probe) -> None:
        slow = "https://slow.example.com/"
        glacial = "https://glacial.example.com/"
        probe.set_result(slow, LandingPageHealth(url=slow, reachable=True, http_status=200, is_https=True, load_time_ms=4000))
        probe.set_result(glacial, LandingPageHealth(url=glacial, reachable=True, http_status=200, is_https=True, load_time_ms=6000))

        slow_result = validator.validate(self.ad(slow))
        glacial_result = validator.validate(self.ad(glacial))

        assert slow_result.passed is True
        assert any("Slow load time: 4000ms" in w for w in slow_result.warnings)
        assert glacial_result.passed is False
        assert glacial_result.violations_of("landing_page_health")[0].severity == Severity.ERROR


# =============================================================================
# Devices / bids
# =============================================================================

class TestDeviceAndBidChecks:

    def test_disallowed_device(self, validator) -> None:
        mutation = Mutation(
            MutationKind.UPDATE,
            ResourceType.CAMPAIGN,
            "t1",
            entity_id="c1",
            changes={"deviceTargeting": {"targetedDevices": ["DESKTOP", "MOBILE"]}},
        )
        result = validator.validate(mutation)
        assert result.passed is False
        assert result.modifications["deviceTargeting"] == {"targetedDevices": ["DESKTOP"]}

    def test_device_modifier_range(self, validator) -> None:
        mutation = Mutation(
            MutationKind.UPDATE,
            ResourceType.CAMPAIGN,
            "t1",
            entity_id="c1",
            changes={"deviceModifiers": {"DESKTOP": 3.5}},
        )
        assert validator.validate(mutation).violations_of("device_modifier")

    def test_cpc_ceiling_suggests_modification(self, ledger, probe) -> None:
        config = GuardrailConfig(bid_limits=BidLimits(max_cpc_micros=2_000_000))
        validator = GuardrailValidator(config=config, ledger=ledger, probe=probe)
        mutation = Mutation(
            MutationKind.UPDATE, ResourceType.AD_GROUP, "t1", entity_id="ag1", changes={"cpcBidMicros": "3000000"}
        )

        result = validator.validate(mutation)

        assert result.passed is False
        assert len(result.violations) == 1
        assert result.violations[0].type == "bid_limit"
        assert result.modifications["cpcBidMicros"] == "2000000"

    def test_bid_below_minimum(self, validator) -> None:
        mutation = Mutation(MutationKind.UPDATE, ResourceType.AD_GROUP, "t1", entity_id="ag1", changes={"bid": "0.01"})
        assert validator.validate(mutation).violations_of("bid_range")


# =============================================================================
# Keywords
# =============================================================================

class TestKeywordChecks:

    def test_prohibited_term_blocks(self, validator) -> None:
        result = validator.validate(keyword("free running shoes"))
        assert result.passed is False
        assert result.violations_of("prohibited_keyword")

    def test_prohibited_term_is_case_insensitive(self, validator) -> None:
        assert validator.validate(keyword("Torrent Downloads")).passed is False

    def test_relevance(self, validator) -> None:
        assert validator.validate(keyword("running shoes", theme="shoe store")).passed is True
        irrelevant = validator.validate(keyword("garden hose", theme="shoe store"))
        assert irrelevant.violations_of("keyword_relevance")

    def test_low_quality_warns(self, validator) -> None:
        mutation = Mutation(
            MutationKind.UPDATE, ResourceType.KEYWORD, "t1", entity_id="k1",
            changes={"text": "boots", "qualityScore": 3},
        )
        assert any("quality score" in w for w in validator.validate(mutation).warnings)

    def test_new_campaign_without_shared_list_warns(self, validator) -> None:
        mutation = Mutation(MutationKind.CREATE, ResourceType.CAMPAIGN, "t1", changes={"name": "Spring"})
        result = validator.validate(mutation)
        assert result.passed is True
        assert "Campaign should have a shared negative keyword list attached" in result.warnings


# =============================================================================
# Enforcement / rules / errors
# =============================================================================

class TestDecision:

    def test_soft_enforcement_downgrades_errors(self, ledger, probe) -> None:
        config = GuardrailConfig().with_enforcement_level(EnforcementLevel.SOFT)
        validator = GuardrailValidator(config=config, ledger=ledger, probe=probe)

        result = validator.validate(keyword("free shoes"))

        assert result.passed is True
        assert any(w.startswith("Soft enforcement (not blocking)") for w in result.warnings)

    def test_soft_enforcement_still_blocks_critical(self, ledger, probe) -> None:
        config = GuardrailConfig().with_enforcement_level(EnforcementLevel.SOFT)
        validator = GuardrailValidator(config=config, ledger=ledger, probe=probe)
        ledger.set_emergency_stop("t1", "c1", "halt")
        mutation = Mutation(MutationKind.UPDATE, ResourceType.CAMPAIGN, "t1", entity_id="c1", estimated_cost="1")
        assert validator.validate(mutation).passed is False

    def test_custom_rule(self, validator) -> None:
        validator.add_custom_rule(CustomRule(
            id="no_weekend_launch",
            name="No weekend launches",
            check=lambda m: (m.kind != MutationKind.CREATE, "Launches are frozen"),
        ))
        result = validator.validate(keyword("boots"))
        assert result.violations_of("no_weekend_launch")[0].message == "Launches are frozen"
        assert validator.remove_custom_rule("no_weekend_launch") is True
        assert validator.validate(keyword("boots")).passed is True

    def test_warning_rule_does_not_block(self, validator) -> None:
        validator.add_custom_rule(CustomRule(
            id="fyi", name="Heads up", check=lambda m: (False, None), severity=Severity.WARNING,
        ))
        result = validator.validate(keyword("boots"))
        assert result.passed is True
        assert result.violations_of("fyi")[0].message == "Custom rule violation: Heads up"

    def test_rule_exception_fails_closed(self, validator) -> None:
        def explode(mutation):
            raise RuntimeError("rule crashed")

        validator.add_custom_rule(CustomRule(id="bad", name="Bad", check=explode))
        result = validator.validate(keyword("boots"))

        assert result.passed is False
        assert len(result.violations) == 1
        assert result.violations[0].type == "system_error"
        assert "rule crashed" in result.violations[0].message

    def test_malformed_payload_fails_closed(self, validator) -> None:
        result = validator.validate({"kind": "CREATE", "resource_type": "ad"})
        assert result.passed is False
        assert result.violations[0].type == "system_error"

    def test_risk_level(self, validator) -> None:
        mutation = Mutation(
            MutationKind.REMOVE, ResourceType.CAMPAIGN, "t1", entity_id="c1", estimated_cost="60"
        )
        result = validator.validate(mutation)
        assert result.estimated_impact.risk_level in (RiskLevel.MEDIUM, RiskLevel.HIGH)
        assert result.estimated_impact.cost_increase == Decimal("60.00")

    def test_history(self, validator) -> None:
        validator.validate(keyword("boots"))
        assert len(validator.get_mutation_history()) == 1
        validator.clear_history()
        assert validator.get_mutation_history() == []

    def test_history_is_bounded(self, ledger) -> None:
        validator = GuardrailValidator(ledger=ledger, history_limit=5)
        for n in range(12):
            validator.validate(keyword(f"boots {n}"))

        history = validator.get_mutation_history()
        assert len(history) == 5
        assert [m.changes["text"] for m in history] == [f"boots {n}" for n in range(7, 12)]

    def test_history_limit_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            GuardrailValidator(history_limit=0)

    def test_risk_counts_magnitude_of_budget_cuts(self) -> None:
        validator = GuardrailValidator()
        large_cut = Mutation(MutationKind.UPDATE, ResourceType.BUDGET, "t1", estimated_cost="-200")
        small_cut = Mutation(MutationKind.UPDATE, ResourceType.BUDGET, "t1", estimated_cost="-0.50")

        large = validator.validate(large_cut).estimated_impact.risk_score
        small = validator.validate(small_cut).estimated_impact.risk_score

        assert large - small == 5

    def test_reconfigure_syncs_ledger(self, validator, ledger) -> None:
        validator.reconfigure(validator.config.with_budget_limits(daily_max="3"), actor="ops")
        assert ledger.default_limits.daily_max == Decimal("3.00")
        assert validator.config.budget_limits.daily_max == Decimal("3.00")


class TestBatchValidation:

    def test_conflicts_flagged(self, validator) -> None:
        pause = Mutation(MutationKind.PAUSE, ResourceType.CAMPAIGN, "t1", entity_id="c1")
        enable = Mutation(MutationKind.ENABLE, ResourceType.CAMPAIGN, "t1", entity_id="c1")
        other = Mutation(MutationKind.PAUSE, ResourceType.CAMPAIGN, "t1", entity_id="c2")

        results = validator.validate_mutations([pause, enable, other])

        assert [r.passed for r in results] == [False, False, True]
        assert results[0].violations_of("conflict")

    def test_same_entity_other_tenant_is_not_a_conflict(self, validator) -> None:
        results = validator.validate_mutations([
            Mutation(MutationKind.PAUSE, ResourceType.CAMPAIGN, "t1", entity_id="c1"),
            Mutation(MutationKind.PAUSE, ResourceType.CAMPAIGN, "t2", entity_id="c1"),
        ])
        assert all(r.passed for r in results)
