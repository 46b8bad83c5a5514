"""Tests for reserve accrual and rate updates."""

import pytest

from src.protocol.errors import NonMonotonicTimestampError
from src.protocol.events import IsolationModeTotalDebtUpdated, ReserveDataUpdated
from src.protocol.fixed_point import RAY, ray_mul
from src.protocol.interest_math import SECONDS_PER_YEAR
from src.protocol.interest_rate import InterestRateParams
from src.protocol.reserve import ReserveConfig, ReserveData

T0 = 1_700_000_000
UNIT = 10**18

PARAMS = InterestRateParams.from_decimals(
    optimal_usage_ratio="0.90",
    base_variable_borrow_rate="0",
    variable_rate_slope1="0.04",
    variable_rate_slope2="0.60",
)


@pytest.fixture
def reserve() -> ReserveData:
    config = ReserveConfig(decimals=18, reserve_factor=1000, borrowing_enabled=True)
    return ReserveData("DAI", 0, config, PARAMS, T0)


@pytest.fixture
def active_reserve(reserve: ReserveData) -> ReserveData:
    """1000 supplied, 500 borrowed at variable rate, at T0."""
    reserve.update_interest_rates(T0, liquidity_added=1_000 * UNIT)
    reserve.a_token.mint_scaled("alice", 1_000 * UNIT, reserve.liquidity_index)
    reserve.variable_debt_token.mint_scaled("bob", 500 * UNIT, reserve.variable_borrow_index)
    reserve.update_interest_rates(T0, liquidity_taken=500 * UNIT)
    return reserve


class TestInitialState:
    def test_indices_start_at_one_ray(self, reserve: ReserveData) -> None:
        assert reserve.liquidity_index == RAY
        assert reserve.variable_borrow_index == RAY
        assert reserve.current_liquidity_rate == 0

    def test_debt_ceiling_units(self) -> None:
        assert ReserveConfig(decimals=18).debt_ceiling_units(UNIT) == 100
        assert ReserveConfig(decimals=6).debt_ceiling_units(2_500_000) == 250
        assert ReserveConfig(decimals=0).debt_ceiling_units(3) == 300

    def test_isolated_flag(self) -> None:
        assert ReserveConfig(decimals=18, debt_ceiling=1).is_isolated
        assert not ReserveConfig(decimals=18).is_isolated


class TestUpdateState:
    def test_same_timestamp_is_noop(self, active_reserve: ReserveData) -> None:
        before = (active_reserve.liquidity_index, active_reserve.variable_borrow_index)
        active_reserve.update_state(T0)
        assert (active_reserve.liquidity_index, active_reserve.variable_borrow_index) == before
        assert active_reserve.accrued_to_treasury == 0

    def test_time_regression_is_fatal(self, active_reserve: ReserveData) -> None:
        active_reserve.update_state(T0 + 100)
        with pytest.raises(NonMonotonicTimestampError):
            active_reserve.update_state(T0 + 99)

    def test_indices_grow(self, active_reserve: ReserveData) -> None:
        active_reserve.update_state(T0 + SECONDS_PER_YEAR)
        assert active_reserve.liquidity_index > RAY
        assert active_reserve.variable_borrow_index > active_reserve.liquidity_index
        assert active_reserve.last_update_timestamp == T0 + SECONDS_PER_YEAR

    def test_indices_monotonic(self, active_reserve: ReserveData) -> None:
        previous = (RAY, RAY)
        for step in (1, 60, 3600, 86_400, 86_400 * 30):
            now = active_reserve.last_update_timestamp + step
            active_reserve.update_state(now)
            active_reserve.update_interest_rates(now)
            current = (active_reserve.liquidity_index, active_reserve.variable_borrow_index)
            assert current[0] >= previous[0]
            assert current[1] >= previous[1]
            previous = current

    def test_no_debt_keeps_borrow_index(self, reserve: ReserveData) -> None:
        reserve.update_interest_rates(T0, liquidity_added=1_000 * UNIT)
        reserve.a_token.mint_scaled("alice", 1_000 * UNIT, RAY)
        reserve.update_state(T0 + SECONDS_PER_YEAR)
        assert reserve.variable_borrow_index == RAY
        assert reserve.liquidity_index == RAY

    def test_normalized_views_match_accrual(self, active_reserve: ReserveData) -> None:
        now = T0 + 12_345
        income = active_reserve.normalized_income(now)
        debt = active_reserve.normalized_debt(now)
        active_reserve.update_state(now)
        assert active_reserve.liquidity_index == income
        assert active_reserve.variable_borrow_index == debt

    def test_treasury_accrues_reserve_factor_share(self, active_reserve: ReserveData) -> None:
        active_reserve.update_state(T0 + SECONDS_PER_YEAR)
        interest = active_reserve.total_variable_debt() - 500 * UNIT
        treasury = ray_mul(active_reserve.accrued_to_treasury, active_reserve.liquidity_index)
        assert treasury == pytest.approx(interest * 0.10, rel=1e-9)


class TestUpdateInterestRates:
    def test_returns_event(self, active_reserve: ReserveData) -> None:
        event = active_reserve.update_interest_rates(T0)
        assert isinstance(event, ReserveDataUpdated)
        assert event.variable_borrow_rate == active_reserve.current_variable_borrow_rate
        assert event.liquidity_index == RAY

    def test_tracks_available_liquidity(self, active_reserve: ReserveData) -> None:
        assert active_reserve.available_liquidity == 500 * UNIT

    def test_utilization_drives_rates(self, active_reserve: ReserveData) -> None:
        # 50% utilization, below the 90% kink: 0.04 * 0.5 / 0.9
        expected = 0.04 * 0.5 / 0.9
        assert active_reserve.current_variable_borrow_rate / RAY == pytest.approx(expected)
        assert 0 < active_reserve.current_liquidity_rate < active_reserve.current_variable_borrow_rate


class TestIsolationModeDebt:
    def test_floors_at_zero(self, reserve: ReserveData) -> None:
        reserve.update_isolation_mode_debt(500)
        event = reserve.update_isolation_mode_debt(-800)
        assert reserve.isolation_mode_total_debt == 0
        assert event == IsolationModeTotalDebtUpdated(asset="DAI", total_debt=0)
