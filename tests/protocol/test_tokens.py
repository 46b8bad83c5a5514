"""Tests for the scaled-balance and stable debt ledgers."""

import pytest

from src.protocol.errors import ErrorKind, ProtocolError
from src.protocol.fixed_point import RAY
from src.protocol.interest_math import SECONDS_PER_YEAR
from src.protocol.tokens import (
    AToken,
    ScaledBalanceToken,
    StableDebtToken,
    TokenKind,
    VariableDebtToken,
)

INDEX = 11 * 10**26  # 1.1 ray
T0 = 1_700_000_000


@pytest.fixture
def a_token() -> AToken:
    return AToken("DAI")


@pytest.fixture
def debt_token() -> VariableDebtToken:
    return VariableDebtToken("DAI")


@pytest.fixture
def stable_token() -> StableDebtToken:
    return StableDebtToken("DAI")


class TestATokenRounding:
    def test_mint_rounds_down(self, a_token: AToken) -> None:
        is_first, scaled = a_token.mint_scaled("alice", 100, INDEX)
        assert is_first
        assert scaled == 90
        assert a_token.balance_of("alice", INDEX) == 99

    def test_second_mint_not_first(self, a_token: AToken) -> None:
        a_token.mint_scaled("alice", 100, INDEX)
        is_first, _ = a_token.mint_scaled("alice", 100, INDEX)
        assert not is_first

    def test_partial_burn_rounds_up(self, a_token: AToken) -> None:
        a_token.mint_scaled("alice", 100, INDEX)
        burned = a_token.burn_scaled("alice", 50, INDEX)
        assert burned == 46
        assert a_token.scaled_balance_of("alice") == 44

    def test_full_burn_clears_dust(self, a_token: AToken) -> None:
        a_token.mint_scaled("alice", 100, INDEX)
        a_token.burn_scaled("alice", a_token.balance_of("alice", INDEX), INDEX)
        assert a_token.scaled_balance_of("alice") == 0
        assert a_token.scaled_total_supply() == 0
        assert a_token.holders() == []

    def test_zero_scaled_mint_rejected(self, a_token: AToken) -> None:
        with pytest.raises(ProtocolError) as exc:
            a_token.mint_scaled("alice", 1, 2 * RAY)
        assert exc.value.kind is ErrorKind.INVALID_MINT_AMOUNT

    def test_zero_burn_rejected(self, a_token: AToken) -> None:
        a_token.mint_scaled("alice", 100, INDEX)
        with pytest.raises(ProtocolError) as exc:
            a_token.burn_scaled("alice", 0, INDEX)
        assert exc.value.kind is ErrorKind.INVALID_BURN_AMOUNT


class TestVariableDebtRounding:
    def test_mint_rounds_up(self, debt_token: VariableDebtToken) -> None:
        _, scaled = debt_token.mint_scaled("bob", 100, INDEX)
        assert scaled == 91
        assert debt_token.balance_of("bob", INDEX) == 101

    def test_partial_burn_rounds_down(self, debt_token: VariableDebtToken) -> None:
        debt_token.mint_scaled("bob", 100, INDEX)
        burned = debt_token.burn_scaled("bob", 50, INDEX)
        assert burned == 45
        assert debt_token.scaled_balance_of("bob") == 46


class TestScaledSumConservation:
    def test_sum_of_balances_equals_total(
        self, a_token: AToken, debt_token: VariableDebtToken
    ) -> None:
        for ledger in (a_token, debt_token):
            ledger.mint_scaled("alice", 1_000, RAY)
            ledger.mint_scaled("bob", 777, INDEX)
            ledger.mint_scaled("carol", 12_345, 13 * 10**26)
            ledger.burn_scaled("bob", 300, INDEX)
            ledger.burn_scaled("alice", 10**30, INDEX)
            total = sum(ledger.scaled_balance_of(user) for user in ledger.holders())
            assert total == ledger.scaled_total_supply()
            assert "alice" not in ledger.holders()


class TestATokenTransfers:
    def test_transfer_scaled(self, a_token: AToken) -> None:
        a_token.mint_scaled("alice", 1_000, RAY)
        moved = a_token.transfer_scaled("alice", "liquidator", 400, RAY)
        assert moved == 400
        assert a_token.scaled_balance_of("alice") == 600
        assert a_token.scaled_balance_of("liquidator") == 400
        assert a_token.scaled_total_supply() == 1_000

    def test_transfer_more_than_balance_moves_everything(self, a_token: AToken) -> None:
        a_token.mint_scaled("alice", 1_000, RAY)
        a_token.transfer_scaled("alice", "liquidator", 5_000, RAY)
        assert a_token.scaled_balance_of("alice") == 0
        assert a_token.scaled_balance_of("liquidator") == 1_000

    def test_transfer_of_empty_balance_is_noop(self, a_token: AToken) -> None:
        assert a_token.transfer_scaled("alice", "liquidator", 100, RAY) == 0
        assert a_token.holders() == []

    def test_debt_ledger_transfer_keeps_total(self, debt_token: VariableDebtToken) -> None:
        debt_token.mint_scaled("alice", 1_000, RAY)
        moved = debt_token.transfer_scaled("alice", "bob", 250, RAY)
        assert moved == 250
        assert debt_token.scaled_total_supply() == 1_000

    def test_mint_to_treasury(self, a_token: AToken) -> None:
        scaled = a_token.mint_to_treasury("treasury", 110, INDEX)
        assert scaled == 100
        assert a_token.scaled_total_supply() == 100
        assert a_token.mint_to_treasury("treasury", 0, INDEX) == 0


class TestScaledBalanceToken:
    def test_rounding_hooks_are_abstract(self) -> None:
        with pytest.raises(TypeError):
            ScaledBalanceToken("DAI")


class TestDelegation:
    def test_generic_token_cannot_delegate(self, a_token: AToken) -> None:
        with pytest.raises(ProtocolError) as exc:
            a_token.delegate_underlying_to("delegatee")
        assert exc.value.kind is ErrorKind.OPERATION_NOT_SUPPORTED

    def test_delegation_aware_token(self) -> None:
        token = AToken("AAVE", TokenKind.DELEGATION_AWARE)
        token.delegate_underlying_to("delegatee")
        assert token.underlying_delegatee == "delegatee"


class TestStableDebt:
    def test_balance_compounds_at_user_rate(self, stable_token: StableDebtToken) -> None:
        stable_token.mint("alice", 1_000 * 10**18, RAY // 10, T0)
        balance = stable_token.balance_of("alice", T0 + SECONDS_PER_YEAR)
        assert balance / 10**18 == pytest.approx(1_105.17, rel=1e-4)

    def test_average_rate_is_debt_weighted(self, stable_token: StableDebtToken) -> None:
        stable_token.mint("alice", 1_000, RAY // 10, T0)
        result = stable_token.mint("bob", 1_000, RAY // 5, T0)
        assert result.is_first_borrow
        assert result.next_supply == 2_000
        assert stable_token.avg_stable_rate == 15 * 10**25

    def test_burn_restores_average(self, stable_token: StableDebtToken) -> None:
        stable_token.mint("alice", 1_000, RAY // 10, T0)
        stable_token.mint("bob", 1_000, RAY // 5, T0)
        supply, avg_rate = stable_token.burn("alice", 1_000, T0)
        assert supply == 1_000
        assert avg_rate == RAY // 5
        assert stable_token.holders() == ["bob"]

    def test_burn_everything_resets(self, stable_token: StableDebtToken) -> None:
        stable_token.mint("alice", 1_000, RAY // 10, T0)
        supply, avg_rate = stable_token.burn("alice", 1_000, T0)
        assert (supply, avg_rate) == (0, 0)
        assert stable_token.total_supply(T0 + 100) == 0

    def test_burn_above_balance_rejected(self, stable_token: StableDebtToken) -> None:
        stable_token.mint("alice", 1_000, RAY // 10, T0)
        with pytest.raises(ProtocolError) as exc:
            stable_token.burn("alice", 1_001, T0)
        assert exc.value.kind is ErrorKind.INVALID_BURN_AMOUNT

    def test_zero_mint_rejected(self, stable_token: StableDebtToken) -> None:
        with pytest.raises(ProtocolError) as exc:
            stable_token.mint("alice", 0, RAY // 10, T0)
        assert exc.value.kind is ErrorKind.INVALID_MINT_AMOUNT
