"""
============================================================================
Property-Based Tests for Rollback Synthesis
============================================================================

Reliability Level: L6 Critical

Tests create_rollback_mutation using Hypothesis. Minimum 100 iterations
per property.

Properties tested:
- Property 9: Inverting twice yields an equivalent mutation whenever the
  inverse is not degraded
- Property 10: Inverses never carry spend
- Property 11: An Update without previous values always degrades
============================================================================
"""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from ads_safety.ads_client import AppliedMutation
from ads_safety.mutation_applier import create_rollback_mutation, is_degraded_inverse
from ads_safety.mutation_models import (
    Mutation,
    MutationKind,
    ResourceType,
    mutations_equivalent,
    proposed_spend,
)


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

field_strategy = st.sampled_from(["name", "status", "cpcBidMicros", "budgetMicros", "finalUrls", "text"])

value_strategy = st.one_of(
    st.text(min_size=1, max_size=12),
    st.integers(min_value=0, max_value=10_000_000),
    st.lists(st.text(min_size=1, max_size=8), max_size=3),
)

changes_strategy = st.dictionaries(field_strategy, value_strategy, min_size=1, max_size=4)

resource_strategy = st.sampled_from(list(ResourceType))

entity_strategy = st.text(alphabet="0123456789", min_size=1, max_size=8)

cost_strategy = st.one_of(
    st.none(),
    st.decimals(min_value=Decimal("0.01"), max_value=Decimal("500.00"), places=2, allow_nan=False, allow_infinity=False),
)


@st.composite
def reversible_mutation_strategy(draw) -> Mutation:
    kind = draw(st.sampled_from(list(MutationKind)))
    resource_type = draw(resource_strategy)
    changes = draw(changes_strategy)
    entity_id = None if kind == MutationKind.CREATE else draw(entity_strategy)
    previous_values = draw(changes_strategy) if kind == MutationKind.UPDATE else None
    return Mutation(
        kind=kind,
        resource_type=resource_type,
        tenant_id=draw(st.sampled_from(["t1", "t2"])),
        changes=changes,
        entity_id=entity_id,
        estimated_cost=draw(cost_strategy),
        previous_values=previous_values,
    )


# =============================================================================
# PROPERTY 9: Double inversion
# =============================================================================

class TestDoubleInversion:

    @settings(max_examples=100)
    @given(mutation=reversible_mutation_strategy())
    def test_inverse_of_inverse_is_equivalent(self, mutation: Mutation) -> None:
        inverse, warning = create_rollback_mutation(mutation)
        assert warning is None
        assert not is_degraded_inverse(inverse)

        restored, second_warning = create_rollback_mutation(inverse)

        assert second_warning is None
        assert mutations_equivalent(mutation, restored)
        assert restored.mutation_id != mutation.mutation_id

    @settings(max_examples=100)
    @given(resource_type=resource_strategy, changes=changes_strategy, ref=entity_strategy)
    def test_create_inverse_targets_platform_ref(self, resource_type: ResourceType, changes, ref: str) -> None:
        mutation = Mutation(MutationKind.CREATE, resource_type, "t1", changes=changes)

        inverse, _ = create_rollback_mutation(mutation, AppliedMutation(resource_ref=ref))

        assert inverse.kind == MutationKind.REMOVE
        assert inverse.entity_id == ref


# =============================================================================
# PROPERTY 10: Inverses carry no spend
# =============================================================================

class TestInverseSpend:

    @settings(max_examples=100)
    @given(mutation=reversible_mutation_strategy())
    def test_inverse_has_no_estimated_cost(self, mutation: Mutation) -> None:
        inverse, _ = create_rollback_mutation(mutation)

        assert inverse.estimated_cost is None
        assert inverse.previous_budget is None
        if "budgetMicros" not in inverse.changes:
            assert proposed_spend(inverse) == Decimal("0.00")


# =============================================================================
# PROPERTY 11: Degraded updates
# =============================================================================

class TestDegradedUpdate:

    @settings(max_examples=100)
    @given(resource_type=resource_strategy, changes=changes_strategy, entity_id=entity_strategy)
    def test_update_without_previous_values_degrades(self, resource_type: ResourceType, changes, entity_id: str) -> None:
        mutation = Mutation(MutationKind.UPDATE, resource_type, "t1", changes=changes, entity_id=entity_id)

        inverse, warning = create_rollback_mutation(mutation)

        assert warning is not None
        assert is_degraded_inverse(inverse)
        assert inverse.entity_id == entity_id
