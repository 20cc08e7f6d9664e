"""
Monotonicity Conformance Tests

INVARIANT: Prices never fall as supply or batch size grows.

    ∀ s:      price(s) <= price(s + 1)
    ∀ s, a:   batch(s, a) < batch(s, a + 1)
    ∀ s, a:   batch(s, a) <= batch(s + 1, a)

Growth in supply is strict only when the curve term of one step is at
least one unit after truncation; with precision 1 it always is.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from keymarket import (
    PricingMode, FeeSchedule, split,
    price_of_supply, batch_price, batch_price_exact, batch_price_trapezoidal, max_buy_amount,
)

from tests.conformance.strategies import curve_params, supplies, amounts


class TestMonotonicityProperties:

    @given(curve_params(), supplies)
    @settings(max_examples=200)
    def test_marginal_price_never_falls(self, params, supply):
        """
        PROPERTY: price(s) <= price(s + 1)
        """
        assert price_of_supply(params, supply) <= price_of_supply(params, supply + 1)

    @given(curve_params(), supplies)
    @settings(max_examples=200)
    def test_marginal_price_floor_is_base(self, params, supply):
        """
        PROPERTY: price(s) >= base_price
        """
        assert price_of_supply(params, supply) >= params.base_price

    @given(curve_params(), supplies, amounts)
    @settings(max_examples=200)
    def test_more_units_cost_strictly_more(self, params, supply, amount):
        """
        PROPERTY: batch(s, a) < batch(s, a + 1)
        """
        assert batch_price(params, supply, amount) < batch_price(params, supply, amount + 1)

    @given(curve_params(), supplies, amounts)
    @settings(max_examples=200)
    def test_later_batches_never_cheaper(self, params, supply, amount):
        """
        PROPERTY: batch(s, a) <= batch(s + 1, a)
        """
        assert batch_price(params, supply, amount) <= batch_price(params, supply + 1, amount)

    @given(curve_params(precisions=(1,)), supplies, st.integers(min_value=1, max_value=1_000))
    @settings(max_examples=200)
    def test_later_batches_strictly_dearer_at_precision_one(self, params, supply, amount):
        """
        PROPERTY: with precision 1, batch(s, a) < batch(s + 1, a) for a >= 1
        """
        assert batch_price(params, supply, amount) < batch_price(params, supply + 1, amount)

    @given(curve_params(precisions=(1,)), supplies, amounts)
    @settings(max_examples=200)
    def test_trapezoid_overstates_exact_sum(self, params, supply, amount):
        """
        PROPERTY: on the convex curve, trapezoidal >= exact (precision 1).
        """
        exact = batch_price_exact(params, supply, amount)
        assert batch_price_trapezoidal(params, supply, amount) >= exact


class TestAffordability:

    @given(
        curve_params(modes=(PricingMode.EXACT,)),
        st.integers(min_value=0, max_value=10 ** 4),
        st.integers(min_value=0, max_value=10 ** 13),
    )
    @settings(max_examples=100)
    def test_max_buy_amount_is_the_boundary(self, params, supply, budget):
        """
        PROPERTY: max_buy_amount(b) fits b and one more unit does not.
        """
        schedule = FeeSchedule(500, 250, 100)

        def cost(amount):
            return split(batch_price(params, supply, amount), schedule, False).net_amount

        n = max_buy_amount(params, schedule, supply, budget, limit=1_000)
        assert 0 <= n <= 1_000
        assert cost(n) <= budget
        if n < 1_000:
            assert cost(n + 1) > budget
