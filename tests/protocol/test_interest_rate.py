"""Tests for the interest rate strategy."""

import pandas as pd
import pytest

from src.protocol.interest_rate import (
    InterestRateParams,
    InterestRateStrategy,
    RateInputs,
    to_ray,
)

# WETH-like params
WETH_PARAMS = InterestRateParams.from_decimals(
    optimal_usage_ratio="0.92",
    base_variable_borrow_rate="0",
    variable_rate_slope1="0.027",
    variable_rate_slope2="0.40",
)

STABLECOIN_PARAMS = InterestRateParams.from_decimals(
    optimal_usage_ratio="0.90",
    base_variable_borrow_rate="0",
    variable_rate_slope1="0.04",
    variable_rate_slope2="0.60",
    stable_rate_slope1="0.005",
    stable_rate_slope2="0.60",
    base_stable_rate_offset="0.01",
    stable_rate_excess_offset="0.08",
    optimal_stable_to_total_debt_ratio="0.20",
)


@pytest.fixture
def model() -> InterestRateStrategy:
    return InterestRateStrategy(WETH_PARAMS)


@pytest.fixture
def stable_model() -> InterestRateStrategy:
    return InterestRateStrategy(STABLECOIN_PARAMS)


def _inputs(available: int, variable: int, stable: int = 0, **kwargs) -> RateInputs:
    return RateInputs(
        available_liquidity=available,
        total_stable_debt=stable,
        total_variable_debt=variable,
        average_stable_borrow_rate=kwargs.pop("average_stable_borrow_rate", 0),
        reserve_factor=kwargs.pop("reserve_factor", 0),
        **kwargs,
    )


class TestParams:
    def test_from_decimals(self) -> None:
        assert WETH_PARAMS.optimal_usage_ratio == 92 * 10**25
        assert WETH_PARAMS.variable_rate_slope1 == 27 * 10**24

    def test_base_stable_rate_includes_offset(self) -> None:
        assert STABLECOIN_PARAMS.base_stable_borrow_rate == to_ray("0.05")

    def test_max_variable_rate(self) -> None:
        assert WETH_PARAMS.max_variable_borrow_rate == to_ray("0.427")

    @pytest.mark.parametrize("optimal", ["0", "1"])
    def test_optimal_out_of_range(self, optimal: str) -> None:
        with pytest.raises(ValueError):
            InterestRateParams.from_decimals(optimal, "0", "0.04", "0.6")


class TestCalculateInterestRates:
    def test_no_debt(self, model: InterestRateStrategy) -> None:
        rates = model.calculate_interest_rates(_inputs(available=1000, variable=0))
        assert rates.variable_borrow_rate == 0
        assert rates.liquidity_rate == 0

    def test_at_optimal_utilization(self, model: InterestRateStrategy) -> None:
        rates = model.calculate_interest_rates(
            _inputs(available=8, variable=92, reserve_factor=1500)
        )
        assert rates.variable_borrow_rate == to_ray("0.027")
        # 0.027 * 0.92 * (1 - 0.15)
        assert rates.liquidity_rate == to_ray("0.021114")

    def test_above_optimal_utilization(self, model: InterestRateStrategy) -> None:
        rates = model.calculate_interest_rates(_inputs(available=4, variable=96))
        # excess = (0.96 - 0.92) / 0.08 = 0.5
        assert rates.variable_borrow_rate == to_ray("0.227")

    def test_liquidity_taken_raises_rate(self, model: InterestRateStrategy) -> None:
        before = model.calculate_interest_rates(_inputs(available=500, variable=500))
        after = model.calculate_interest_rates(
            _inputs(available=500, variable=500, liquidity_taken=200)
        )
        assert after.variable_borrow_rate > before.variable_borrow_rate

    def test_liquidity_added_lowers_rate(self, model: InterestRateStrategy) -> None:
        before = model.calculate_interest_rates(_inputs(available=500, variable=500))
        after = model.calculate_interest_rates(
            _inputs(available=500, variable=500, liquidity_added=500)
        )
        assert after.variable_borrow_rate < before.variable_borrow_rate

    def test_negative_liquidity_rejected(self, model: InterestRateStrategy) -> None:
        with pytest.raises(ValueError):
            model.calculate_interest_rates(
                _inputs(available=10, variable=90, liquidity_taken=11)
            )

    def test_stable_share_offset(self, stable_model: InterestRateStrategy) -> None:
        variable_only = stable_model.calculate_interest_rates(
            _inputs(available=100, variable=100)
        )
        mixed = stable_model.calculate_interest_rates(
            _inputs(available=100, variable=50, stable=50)
        )
        # stable share 0.5 vs optimal 0.2: 0.08 * (0.3 / 0.8)
        assert mixed.stable_borrow_rate - variable_only.stable_borrow_rate == to_ray("0.03")

    def test_liquidity_rate_below_borrow_rate(self, stable_model: InterestRateStrategy) -> None:
        rates = stable_model.calculate_interest_rates(
            _inputs(
                available=300,
                variable=500,
                stable=200,
                average_stable_borrow_rate=to_ray("0.06"),
                reserve_factor=1000,
            )
        )
        assert 0 < rates.liquidity_rate < rates.variable_borrow_rate


class TestVariableBorrowRate:
    def test_rate_at_zero_utilization(self, model: InterestRateStrategy) -> None:
        assert model.variable_borrow_rate(0.0) == pytest.approx(0.0)

    def test_rate_at_optimal_utilization(self, model: InterestRateStrategy) -> None:
        assert model.variable_borrow_rate(0.92) == pytest.approx(0.027, rel=1e-6)

    def test_rate_below_optimal(self, model: InterestRateStrategy) -> None:
        rate = model.variable_borrow_rate(0.46)
        assert rate == pytest.approx((0.46 / 0.92) * 0.027, rel=1e-6)

    def test_rate_above_optimal(self, model: InterestRateStrategy) -> None:
        rate = model.variable_borrow_rate(0.96)
        excess = (0.96 - 0.92) / (1.0 - 0.92)
        assert rate == pytest.approx(0.027 + excess * 0.40, rel=1e-6)

    def test_rate_is_continuous_at_kink(self, model: InterestRateStrategy) -> None:
        eps = 1e-10
        rate_at = model.variable_borrow_rate(0.92)
        assert model.variable_borrow_rate(0.92 - eps) == pytest.approx(rate_at, abs=1e-6)
        assert model.variable_borrow_rate(0.92 + eps) == pytest.approx(rate_at, abs=1e-6)

    def test_rate_monotonically_increasing(self, model: InterestRateStrategy) -> None:
        rates = [model.variable_borrow_rate(i / 100) for i in range(101)]
        assert rates == sorted(rates)

    def test_float_view_matches_integer_engine(self, model: InterestRateStrategy) -> None:
        rates = model.calculate_interest_rates(_inputs(available=4, variable=96))
        assert model.variable_borrow_rate(0.96) == pytest.approx(
            rates.variable_borrow_rate / 10**27, rel=1e-9
        )


class TestSupplyRate:
    def test_supply_rate_zero_utilization(self, model: InterestRateStrategy) -> None:
        assert model.supply_rate(0.0) == pytest.approx(0.0)

    def test_supply_rate_formula(self, model: InterestRateStrategy) -> None:
        expected = model.variable_borrow_rate(0.8) * 0.8 * (1 - 0.15)
        assert model.supply_rate(0.8, reserve_factor=0.15) == pytest.approx(expected)


class TestRateCurve:
    def test_shape_and_columns(self, model: InterestRateStrategy) -> None:
        curve = model.rate_curve(n_points=50)
        assert isinstance(curve, pd.DataFrame)
        assert len(curve) == 50
        assert list(curve.columns) == [
            "utilization",
            "variable_borrow_rate",
            "stable_borrow_rate",
            "supply_rate",
        ]
        assert curve["utilization"].iloc[0] == 0.0
        assert curve["utilization"].iloc[-1] == 1.0
