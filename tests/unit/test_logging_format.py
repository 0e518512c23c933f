"""
============================================================================
Unit Tests - Pipeline Logging Format
============================================================================

Reliability Level: L6 Critical

Tests the pipeline logging format:
- Verify error codes prefix refusal and block logs
- Verify mutation_id appears in validation logs
- Verify configure_logging() installs the line format
============================================================================
"""

import logging
import os
import sys
from decimal import Decimal
from unittest.mock import patch

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from ads_safety.budget_ledger import LocalBudgetLedger
from ads_safety.config import BudgetLimits, GuardrailConfig
from ads_safety.guardrail_validator import GuardrailValidator
from ads_safety.landing_page_probe import StaticLandingPageProbe
from ads_safety.logging_setup import configure_logging, LOG_FORMAT, LOG_DATE_FORMAT
from ads_safety.mutation_models import Mutation, MutationKind, ResourceType


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def ledger() -> LocalBudgetLedger:
    return LocalBudgetLedger(BudgetLimits(
        daily_max=Decimal("10.00"),
        campaign_max=Decimal("50.00"),
        account_max=Decimal("100.00"),
    ))


# =============================================================================
# Error Code Tests
# =============================================================================

class TestErrorCodesInLogs:

    def test_refused_spend_logs_ledger_code(
        self,
        ledger: LocalBudgetLedger,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING):
            assert ledger.reserve_spend("t1", "c1", "15.00") is False

        messages = [record.message for record in caplog.records]
        assert any(msg.startswith("[LED-001] Spend refused") for msg in messages)
        assert any("scope=daily" in msg for msg in messages)

    def test_blocked_mutation_logs_mutation_id(
        self,
        ledger: LocalBudgetLedger,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        validator = GuardrailValidator(
            config=GuardrailConfig(),
            ledger=ledger,
            probe=StaticLandingPageProbe(),
        )
        mutation = Mutation(
            MutationKind.UPDATE,
            ResourceType.CAMPAIGN,
            "t1",
            changes={"budget": "15.00"},
            entity_id="c1",
            estimated_cost=Decimal("15.00"),
        )

        with caplog.at_level(logging.WARNING):
            result = validator.validate(mutation)

        assert result.passed is False
        blocked = [r.message for r in caplog.records if r.message.startswith("[GRD-001]")]
        assert blocked
        assert f"mutation_id={mutation.mutation_id}" in blocked[0]


# =============================================================================
# Bootstrap Tests
# =============================================================================

class TestConfigureLogging:

    def test_installs_line_format(self) -> None:
        with patch("ads_safety.logging_setup.logging.basicConfig") as basic_config:
            configure_logging("debug")

        basic_config.assert_called_once_with(
            level=logging.DEBUG,
            format=LOG_FORMAT,
            datefmt=LOG_DATE_FORMAT,
        )

    def test_unknown_level_falls_back_to_info(self) -> None:
        with patch("ads_safety.logging_setup.logging.basicConfig") as basic_config:
            configure_logging("chatty")

        assert basic_config.call_args.kwargs["level"] == logging.INFO
