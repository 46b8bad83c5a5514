"""Per-asset reserve ledger and interest accrual."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from src.protocol.errors import NonMonotonicTimestampError
from src.protocol.events import IsolationModeTotalDebtUpdated, ReserveDataUpdated
from src.protocol.fixed_point import RAY, percent_mul, ray_div, ray_mul
from src.protocol.interest_math import (
    calculate_compounded_interest,
    calculate_linear_interest,
)
from src.protocol.interest_rate import (
    InterestRateParams,
    InterestRateStrategy,
    RateInputs,
)
from src.protocol.tokens import AToken, StableDebtToken, TokenKind, VariableDebtToken

logger = logging.getLogger(__name__)

# Debt ceilings carry two decimals (e.g. 1_000_000_00 = 1M units).
DEBT_CEILING_DECIMALS = 2


class InterestRateMode(Enum):
    STABLE = "stable"
    VARIABLE = "variable"


@dataclass
class ReserveConfig:
    """Risk parameters and switches of a reserve.

    Percentages are basis points; ``liquidation_bonus`` includes the
    principal (10500 = 5% bonus).  Caps are in whole tokens, 0 = no cap.
    """

    decimals: int
    ltv: int = 0
    liquidation_threshold: int = 0
    liquidation_bonus: int = 0
    liquidation_protocol_fee: int = 0
    reserve_factor: int = 0
    active: bool = True
    frozen: bool = False
    paused: bool = False
    borrowing_enabled: bool = False
    stable_borrowing_enabled: bool = False
    borrow_cap: int = 0
    supply_cap: int = 0
    debt_ceiling: int = 0
    borrowable_in_isolation: bool = False
    emode_category: int = 0
    siloed_borrowing: bool = False
    flash_loan_enabled: bool = False
    token_kind: TokenKind = TokenKind.GENERIC

    @property
    def unit(self) -> int:
        return 10**self.decimals

    @property
    def is_isolated(self) -> bool:
        return self.debt_ceiling != 0

    def debt_ceiling_units(self, amount: int) -> int:
        """Express ``amount`` of this asset in debt-ceiling units."""
        shift = self.decimals - DEBT_CEILING_DECIMALS
        if shift >= 0:
            return amount // 10**shift
        return amount * 10**-shift


class ReserveData:
    """Shared liquidity pool for one asset.

    Balances are held in the three ledgers as scaled amounts; real amounts
    are only meaningful against the index current at read time, so every
    operation calls ``update_state`` before touching them.
    """

    def __init__(
        self,
        asset: str,
        reserve_id: int,
        config: ReserveConfig,
        rate_params: InterestRateParams,
        timestamp: int,
    ) -> None:
        self.asset = asset
        self.id = reserve_id
        self.config = config
        self.strategy = InterestRateStrategy(rate_params)

        self.liquidity_index = RAY
        self.variable_borrow_index = RAY
        self.current_liquidity_rate = 0
        self.current_variable_borrow_rate = 0
        self.current_stable_borrow_rate = 0
        self.last_update_timestamp = timestamp

        self.accrued_to_treasury = 0
        self.isolation_mode_total_debt = 0
        self.available_liquidity = 0

        self.a_token = AToken(asset, config.token_kind)
        self.variable_debt_token = VariableDebtToken(asset)
        self.stable_debt_token = StableDebtToken(asset)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def rate_params(self) -> InterestRateParams:
        return self.strategy.params

    def normalized_income(self, now: int) -> int:
        """Liquidity index as of ``now`` without mutating the reserve."""
        if now == self.last_update_timestamp:
            return self.liquidity_index
        factor = calculate_linear_interest(
            self.current_liquidity_rate, self.last_update_timestamp, now
        )
        return ray_mul(factor, self.liquidity_index)

    def normalized_debt(self, now: int) -> int:
        """Variable borrow index as of ``now`` without mutating the reserve."""
        if now == self.last_update_timestamp:
            return self.variable_borrow_index
        factor = calculate_compounded_interest(
            self.current_variable_borrow_rate, self.last_update_timestamp, now
        )
        return ray_mul(factor, self.variable_borrow_index)

    def total_variable_debt(self) -> int:
        return self.variable_debt_token.total_supply(self.variable_borrow_index)

    def total_stable_debt(self, now: int) -> int:
        return self.stable_debt_token.total_supply(now)

    # ------------------------------------------------------------------
    # Accrual
    # ------------------------------------------------------------------

    def update_state(self, now: int) -> None:
        """Accrue interest up to ``now``.

        Grows the liquidity index linearly and the variable borrow index with
        compounding, books the reserve-factor share of new debt interest to
        the treasury, and stamps the reserve.  A call at the current
        timestamp is a no-op.
        """
        if now < self.last_update_timestamp:
            raise NonMonotonicTimestampError(
                f"{self.asset}: {now} precedes last update {self.last_update_timestamp}"
            )
        if now == self.last_update_timestamp:
            return

        scaled_variable_debt = self.variable_debt_token.scaled_total_supply()
        previous_liquidity_index = self.liquidity_index
        previous_borrow_index = self.variable_borrow_index

        next_liquidity_index = previous_liquidity_index
        if self.current_liquidity_rate != 0:
            cumulated = calculate_linear_interest(
                self.current_liquidity_rate, self.last_update_timestamp, now
            )
            next_liquidity_index = ray_mul(cumulated, previous_liquidity_index)

        next_borrow_index = previous_borrow_index
        if scaled_variable_debt != 0:
            cumulated = calculate_compounded_interest(
                self.current_variable_borrow_rate, self.last_update_timestamp, now
            )
            next_borrow_index = ray_mul(cumulated, previous_borrow_index)

        self._accrue_to_treasury(
            scaled_variable_debt,
            previous_borrow_index,
            next_borrow_index,
            next_liquidity_index,
            now,
        )

        self.liquidity_index = next_liquidity_index
        self.variable_borrow_index = next_borrow_index
        self.last_update_timestamp = now
        logger.debug(
            "%s accrued to %d: liquidity_index=%d variable_borrow_index=%d",
            self.asset,
            now,
            next_liquidity_index,
            next_borrow_index,
        )

    def _accrue_to_treasury(
        self,
        scaled_variable_debt: int,
        previous_borrow_index: int,
        next_borrow_index: int,
        next_liquidity_index: int,
        now: int,
    ) -> None:
        reserve_factor = self.config.reserve_factor
        if reserve_factor == 0:
            return

        stable = self.stable_debt_token
        previous_total_stable = 0
        if stable.total_principal != 0:
            previous_total_stable = ray_mul(
                stable.total_principal,
                calculate_compounded_interest(
                    stable.avg_stable_rate,
                    stable.total_supply_timestamp,
                    self.last_update_timestamp,
                ),
            )
        current_total_stable = stable.total_supply(now)

        previous_total_variable = ray_mul(scaled_variable_debt, previous_borrow_index)
        current_total_variable = ray_mul(scaled_variable_debt, next_borrow_index)

        debt_accrued = (
            current_total_variable
            + current_total_stable
            - previous_total_variable
            - previous_total_stable
        )
        if debt_accrued <= 0:
            return
        amount_to_mint = percent_mul(debt_accrued, reserve_factor)
        if amount_to_mint != 0:
            self.accrued_to_treasury += ray_div(amount_to_mint, next_liquidity_index)

    def update_interest_rates(
        self, now: int, liquidity_added: int = 0, liquidity_taken: int = 0
    ) -> ReserveDataUpdated:
        """Recompute current rates from post-operation totals.

        Also moves ``available_liquidity`` by the underlying that entered or
        left the reserve in the operation being applied.
        """
        rates = self.strategy.calculate_interest_rates(
            RateInputs(
                available_liquidity=self.available_liquidity,
                liquidity_added=liquidity_added,
                liquidity_taken=liquidity_taken,
                total_stable_debt=self.stable_debt_token.total_supply(now),
                total_variable_debt=self.total_variable_debt(),
                average_stable_borrow_rate=self.stable_debt_token.avg_stable_rate,
                reserve_factor=self.config.reserve_factor,
            )
        )
        self.current_liquidity_rate = rates.liquidity_rate
        self.current_stable_borrow_rate = rates.stable_borrow_rate
        self.current_variable_borrow_rate = rates.variable_borrow_rate
        self.available_liquidity += liquidity_added - liquidity_taken

        logger.debug(
            "%s rates: liquidity=%d stable=%d variable=%d",
            self.asset,
            rates.liquidity_rate,
            rates.stable_borrow_rate,
            rates.variable_borrow_rate,
        )
        return ReserveDataUpdated(
            asset=self.asset,
            liquidity_rate=rates.liquidity_rate,
            stable_borrow_rate=rates.stable_borrow_rate,
            variable_borrow_rate=rates.variable_borrow_rate,
            liquidity_index=self.liquidity_index,
            variable_borrow_index=self.variable_borrow_index,
        )

    def update_isolation_mode_debt(self, delta: int) -> IsolationModeTotalDebtUpdated:
        """Move the debt backed by this isolated collateral by ``delta`` ceiling
        units, flooring at zero."""
        self.isolation_mode_total_debt = max(0, self.isolation_mode_total_debt + delta)
        return IsolationModeTotalDebtUpdated(
            asset=self.asset, total_debt=self.isolation_mode_total_debt
        )
