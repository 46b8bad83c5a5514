"""Tests for cross-reserve position aggregation."""

import pytest

from src.data import create_pool
from src.data.constants import AAVE, DAI, USDC, WETH
from src.protocol.clock import ManualClock
from src.protocol.configurator import PoolConfigurator
from src.protocol.fixed_point import RAY
from src.protocol.pool import Pool
from src.protocol.reserve import InterestRateMode
from src.protocol.user import (
    MAX_HEALTH_FACTOR,
    UserAccount,
    UserAccountData,
    calculate_available_borrows,
    calculate_health_factor,
    calculate_user_account_data,
    get_isolation_mode_state,
    get_siloed_borrowing_state,
)

UNIT = 10**18
BASE = 10**8


@pytest.fixture
def pool() -> Pool:
    pool = create_pool("test", clock=ManualClock())
    pool.supply(USDC, 100_000 * 10**6, "lp")
    return pool


def _account_data(pool: Pool, user: str, **hypothetical) -> UserAccountData:
    return calculate_user_account_data(
        pool.reserves,
        pool.users[user],
        user,
        pool.oracle,
        pool.emode_categories,
        pool.clock(),
        **hypothetical,
    )


class TestUserAccount:
    def test_flags(self) -> None:
        account = UserAccount()
        assert account.is_empty()
        account.set_using_as_collateral(DAI, True)
        account.set_borrowing(USDC, True)
        assert account.is_using_as_collateral(DAI)
        assert account.is_borrowing_any()
        account.set_borrowing(USDC, False)
        account.set_borrowing(USDC, False)
        assert not account.is_borrowing_any()
        assert not account.is_empty()


class TestHealthFactor:
    def test_no_debt_is_max(self) -> None:
        assert calculate_health_factor(1_000 * BASE, 0, 8250) == MAX_HEALTH_FACTOR

    def test_exact_value(self) -> None:
        assert calculate_health_factor(1_000 * BASE, 750 * BASE, 8250) == 11 * 10**26

    def test_available_borrows(self) -> None:
        assert calculate_available_borrows(1_000 * BASE, 300 * BASE, 8000) == 500 * BASE
        assert calculate_available_borrows(1_000 * BASE, 900 * BASE, 8000) == 0


class TestCalculateUserAccountData:
    def test_empty_account(self, pool: Pool) -> None:
        data = calculate_user_account_data(
            pool.reserves, UserAccount(), "nobody", pool.oracle, {}, pool.clock()
        )
        assert data.total_collateral_base == 0
        assert data.health_factor == MAX_HEALTH_FACTOR

    def test_weighted_parameters(self, pool: Pool) -> None:
        pool.supply(DAI, 1_000 * UNIT, "alice")
        pool.supply(WETH, 1 * UNIT, "alice")
        data = _account_data(pool, "alice")
        assert data.total_collateral_base == 3_000 * BASE
        assert data.ltv == 8033
        assert data.current_liquidation_threshold == 8283
        assert data.available_borrows_base == 3_000 * BASE * 8033 // 10_000

    def test_debt_valued_at_oracle_price(self, pool: Pool) -> None:
        pool.supply(DAI, 1_000 * UNIT, "alice")
        pool.borrow(USDC, 500 * 10**6, InterestRateMode.VARIABLE, "alice")
        pool.oracle.set_asset_price(USDC, 2 * BASE)
        data = _account_data(pool, "alice")
        assert data.total_debt_base == 1_000 * BASE
        assert data.health_factor < RAY

    def test_hypothetical_withdraw(self, pool: Pool) -> None:
        pool.supply(DAI, 1_000 * UNIT, "alice")
        pool.supply(WETH, 1 * UNIT, "alice")
        data = _account_data(pool, "alice", collateral_removed={DAI: 400 * UNIT})
        assert data.total_collateral_base == 2_600 * BASE
        # nothing was moved
        assert pool.get_user_reserve_data(DAI, "alice").current_a_token_balance == 1_000 * UNIT

    def test_hypothetical_disable(self, pool: Pool) -> None:
        pool.supply(DAI, 1_000 * UNIT, "alice")
        pool.supply(WETH, 1 * UNIT, "alice")
        data = _account_data(pool, "alice", collateral_disabled=frozenset({WETH}))
        assert data.total_collateral_base == 1_000 * BASE
        assert data.ltv == 8000

    def test_disabled_collateral_not_counted(self, pool: Pool) -> None:
        pool.supply(DAI, 1_000 * UNIT, "alice")
        pool.set_user_use_reserve_as_collateral(DAI, False, "alice")
        assert _account_data(pool, "alice").total_collateral_base == 0

    def test_isolated_collateral_ignored_beside_others(self, pool: Pool) -> None:
        pool.supply(DAI, 1_000 * UNIT, "alice")
        pool.supply(AAVE, 10 * UNIT, "alice")
        pool.users["alice"].set_using_as_collateral(AAVE, True)
        assert _account_data(pool, "alice").total_collateral_base == 1_000 * BASE

    def test_zero_ltv_collateral_flagged(self, pool: Pool) -> None:
        pool.supply(DAI, 1_000 * UNIT, "alice")
        pool.supply(WETH, 1 * UNIT, "alice")
        PoolConfigurator(pool).configure_reserve_as_collateral(DAI, 0, 8250, 10500)
        data = _account_data(pool, "alice")
        assert data.has_zero_ltv_collateral
        assert data.total_collateral_base == 3_000 * BASE
        # zero-LTV value still backs the liquidation threshold
        assert data.ltv == 2_000 * 8050 // 3_000
        assert data.current_liquidation_threshold == 8283


class TestModeStates:
    def test_isolation_mode(self, pool: Pool) -> None:
        pool.supply(AAVE, 10 * UNIT, "alice")
        pool.set_user_use_reserve_as_collateral(AAVE, True, "alice")
        assert get_isolation_mode_state(pool.users["alice"], pool.reserves) == (
            True,
            AAVE,
            1_000_000,
        )

    def test_not_isolated(self, pool: Pool) -> None:
        pool.supply(DAI, 10 * UNIT, "alice")
        assert get_isolation_mode_state(pool.users["alice"], pool.reserves) == (
            False,
            None,
            0,
        )

    def test_siloed_borrowing(self, pool: Pool) -> None:
        PoolConfigurator(pool).set_siloed_borrowing(USDC, True)
        pool.supply(DAI, 1_000 * UNIT, "alice")
        pool.borrow(USDC, 10 * 10**6, InterestRateMode.VARIABLE, "alice")
        assert get_siloed_borrowing_state(pool.users["alice"], pool.reserves) == (True, USDC)
