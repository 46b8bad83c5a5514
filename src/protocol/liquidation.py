"""Liquidation mechanics: close factor, seizable collateral, protocol fee."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.protocol.emode import is_in_emode_category
from src.protocol.errors import ErrorKind, MathError, require
from src.protocol.events import (
    Event,
    LiquidationCall,
    ReserveUsedAsCollateralDisabled,
    ReserveUsedAsCollateralEnabled,
)
from src.protocol.fixed_point import (
    PERCENTAGE_FACTOR,
    percent_div,
    percent_mul,
    ray_div,
    ray_mul,
)
from src.protocol.reserve import ReserveData
from src.protocol.user import (
    UserAccount,
    get_isolation_mode_state,
    user_collateral_balance,
    user_stable_debt,
    user_variable_debt,
)
from src.protocol.validation import (
    PoolSnapshot,
    validate_automatic_use_as_collateral,
    validate_liquidation_call,
)

logger = logging.getLogger(__name__)

DEFAULT_LIQUIDATION_CLOSE_FACTOR = 5000  # 50%
MAX_LIQUIDATION_CLOSE_FACTOR = PERCENTAGE_FACTOR  # 100%
CLOSE_FACTOR_HF_THRESHOLD = 95 * 10**25  # 0.95 ray


@dataclass(frozen=True)
class LiquidationAmounts:
    """Outcome of the collateral/debt conversion for one liquidation."""

    collateral_to_liquidator: int
    debt_to_cover: int
    protocol_fee: int
    bonus_collateral: int

    @property
    def total_collateral(self) -> int:
        return self.collateral_to_liquidator + self.protocol_fee


@dataclass(frozen=True)
class LiquidationResult:
    collateral_asset: str
    debt_asset: str
    user: str
    liquidator: str
    health_factor_before: int
    debt_covered: int
    variable_debt_burned: int
    stable_debt_burned: int
    collateral_to_liquidator: int
    protocol_fee: int
    receive_a_token: bool


class LiquidationEngine:
    """Computes and applies liquidation calls against accrued reserves."""

    def __init__(self, treasury: str) -> None:
        self.treasury = treasury

    @staticmethod
    def close_factor(health_factor: int) -> int:
        """Share of debt (bps) a single call may repay.

        - HF >= 0.95: 50% (partial liquidation)
        - HF < 0.95: 100% (full liquidation)
        """
        if health_factor >= CLOSE_FACTOR_HF_THRESHOLD:
            return DEFAULT_LIQUIDATION_CLOSE_FACTOR
        return MAX_LIQUIDATION_CLOSE_FACTOR

    def calculate_debt(
        self,
        variable_debt: int,
        stable_debt: int,
        debt_to_cover: int,
        health_factor: int,
    ) -> tuple[int, int]:
        """Return (user total debt, debt actually coverable in this call)."""
        total_debt = variable_debt + stable_debt
        max_liquidatable = percent_mul(total_debt, self.close_factor(health_factor))
        return total_debt, min(debt_to_cover, max_liquidatable)

    @staticmethod
    def calculate_available_collateral_to_liquidate(
        collateral_reserve: ReserveData,
        debt_reserve: ReserveData,
        collateral_price: int,
        debt_price: int,
        debt_to_cover: int,
        user_collateral: int,
        liquidation_bonus: int,
    ) -> LiquidationAmounts:
        """Convert covered debt into seized collateral, bonus included.

        When the bonus-adjusted collateral exceeds what the user holds, the
        whole balance is seized and the debt to cover is recomputed from it,
        so debt and collateral reductions stay proportional.
        """
        if collateral_price <= 0 or debt_price <= 0:
            raise MathError("ZERO_DIVISION")
        collateral_unit = collateral_reserve.config.unit
        debt_unit = debt_reserve.config.unit

        base_collateral = (debt_price * debt_to_cover * collateral_unit) // (
            collateral_price * debt_unit
        )
        max_collateral = percent_mul(base_collateral, liquidation_bonus)

        if max_collateral > user_collateral:
            collateral_amount = user_collateral
            debt_needed = percent_div(
                (collateral_price * collateral_amount * debt_unit)
                // (debt_price * collateral_unit),
                liquidation_bonus,
            )
            debt_needed = min(debt_needed, debt_to_cover)
        else:
            collateral_amount = max_collateral
            debt_needed = debt_to_cover

        bonus_collateral = collateral_amount - percent_div(collateral_amount, liquidation_bonus)
        fee_percentage = collateral_reserve.config.liquidation_protocol_fee
        protocol_fee = 0
        if fee_percentage != 0:
            protocol_fee = percent_mul(bonus_collateral, fee_percentage)

        return LiquidationAmounts(
            collateral_to_liquidator=collateral_amount - protocol_fee,
            debt_to_cover=debt_needed,
            protocol_fee=protocol_fee,
            bonus_collateral=bonus_collateral,
        )

    def _configuration_data(
        self,
        snapshot: PoolSnapshot,
        account: UserAccount,
        collateral_reserve: ReserveData,
        debt_reserve: ReserveData,
    ) -> tuple[int, int, int]:
        """(liquidation bonus, collateral price, debt price) under the user's eMode."""
        oracle = snapshot.oracle
        bonus = collateral_reserve.config.liquidation_bonus
        collateral_source = collateral_reserve.asset
        debt_source = debt_reserve.asset

        category_id = account.emode_category
        if category_id != 0:
            category = snapshot.emode_categories[category_id]
            if is_in_emode_category(category_id, collateral_reserve.config.emode_category):
                bonus = category.liquidation_bonus
                if category.price_source:
                    collateral_source = category.price_source
            if category.price_source and is_in_emode_category(
                category_id, debt_reserve.config.emode_category
            ):
                debt_source = category.price_source

        return (
            bonus,
            oracle.get_asset_price(collateral_source),
            oracle.get_asset_price(debt_source),
        )

    def execute_liquidation_call(
        self,
        snapshot: PoolSnapshot,
        collateral_asset: str,
        debt_asset: str,
        user: str,
        account: UserAccount,
        liquidator: str,
        liquidator_account: UserAccount,
        debt_to_cover: int,
        receive_a_token: bool,
    ) -> tuple[LiquidationResult, list[Event]]:
        """Validate and apply a liquidation.

        Both reserves must already be accrued to ``snapshot.now``.  All checks
        run before the first mutation.
        """
        now = snapshot.now
        collateral_reserve = snapshot.reserve(collateral_asset)
        debt_reserve = snapshot.reserve(debt_asset)

        health_factor = snapshot.account_data(account, user).health_factor
        variable_debt = user_variable_debt(debt_reserve, user, now)
        stable_debt = user_stable_debt(debt_reserve, user, now)
        total_debt, actual_debt = self.calculate_debt(
            variable_debt, stable_debt, debt_to_cover, health_factor
        )

        validate_liquidation_call(
            snapshot, account, collateral_reserve, debt_reserve, total_debt, health_factor
        )

        bonus, collateral_price, debt_price = self._configuration_data(
            snapshot, account, collateral_reserve, debt_reserve
        )
        collateral_balance = user_collateral_balance(collateral_reserve, user, now)
        amounts = self.calculate_available_collateral_to_liquidate(
            collateral_reserve,
            debt_reserve,
            collateral_price,
            debt_price,
            actual_debt,
            collateral_balance,
            bonus,
        )
        require(amounts.debt_to_cover != 0, ErrorKind.INVALID_AMOUNT, "nothing to liquidate")
        if not receive_a_token:
            require(
                amounts.collateral_to_liquidator <= collateral_reserve.available_liquidity,
                ErrorKind.NOT_ENOUGH_LIQUIDITY,
            )
        isolation_active, isolated_asset, _ = get_isolation_mode_state(account, snapshot.reserves)

        # --- apply ---
        events: list[Event] = []
        debt_covered = amounts.debt_to_cover

        if total_debt == debt_covered:
            account.set_borrowing(debt_asset, False)
        if amounts.total_collateral == collateral_balance:
            account.set_using_as_collateral(collateral_asset, False)
            events.append(ReserveUsedAsCollateralDisabled(asset=collateral_asset, user=user))

        variable_burned, stable_burned = self._burn_debt(
            debt_reserve, user, variable_debt, debt_covered, now
        )
        events.append(debt_reserve.update_interest_rates(now, liquidity_added=debt_covered))

        if isolation_active:
            repaid_units = debt_reserve.config.debt_ceiling_units(debt_covered)
            events.append(
                snapshot.reserves[isolated_asset].update_isolation_mode_debt(-repaid_units)
            )

        if receive_a_token:
            events.extend(
                self._liquidate_a_tokens(
                    snapshot,
                    collateral_reserve,
                    user,
                    liquidator,
                    liquidator_account,
                    amounts.collateral_to_liquidator,
                )
            )
        elif amounts.collateral_to_liquidator != 0:
            events.append(
                collateral_reserve.update_interest_rates(
                    now, liquidity_taken=amounts.collateral_to_liquidator
                )
            )
            collateral_reserve.a_token.burn_scaled(
                user, amounts.collateral_to_liquidator, collateral_reserve.liquidity_index
            )

        protocol_fee = amounts.protocol_fee
        if protocol_fee != 0:
            protocol_fee = self._transfer_protocol_fee(collateral_reserve, user, protocol_fee)

        events.append(
            LiquidationCall(
                collateral_asset=collateral_asset,
                debt_asset=debt_asset,
                user=user,
                debt_to_cover=debt_covered,
                liquidated_collateral_amount=amounts.collateral_to_liquidator,
                liquidator=liquidator,
                receive_a_token=receive_a_token,
            )
        )
        logger.info(
            "liquidated %s: covered %d %s, seized %d %s (fee %d), hf_before=%d",
            user,
            debt_covered,
            debt_asset,
            amounts.collateral_to_liquidator,
            collateral_asset,
            protocol_fee,
            health_factor,
        )

        result = LiquidationResult(
            collateral_asset=collateral_asset,
            debt_asset=debt_asset,
            user=user,
            liquidator=liquidator,
            health_factor_before=health_factor,
            debt_covered=debt_covered,
            variable_debt_burned=variable_burned,
            stable_debt_burned=stable_burned,
            collateral_to_liquidator=amounts.collateral_to_liquidator,
            protocol_fee=protocol_fee,
            receive_a_token=receive_a_token,
        )
        return result, events

    @staticmethod
    def _burn_debt(
        debt_reserve: ReserveData,
        user: str,
        variable_debt: int,
        debt_covered: int,
        now: int,
    ) -> tuple[int, int]:
        """Burn variable debt first, the remainder from stable debt."""
        index = debt_reserve.variable_borrow_index
        if variable_debt >= debt_covered:
            debt_reserve.variable_debt_token.burn_scaled(user, debt_covered, index)
            return debt_covered, 0
        if variable_debt != 0:
            debt_reserve.variable_debt_token.burn_scaled(user, variable_debt, index)
        stable_part = debt_covered - variable_debt
        debt_reserve.stable_debt_token.burn(user, stable_part, now)
        return variable_debt, stable_part

    @staticmethod
    def _liquidate_a_tokens(
        snapshot: PoolSnapshot,
        collateral_reserve: ReserveData,
        user: str,
        liquidator: str,
        liquidator_account: UserAccount,
        amount: int,
    ) -> list[Event]:
        a_token = collateral_reserve.a_token
        index = collateral_reserve.liquidity_index
        had_balance = a_token.scaled_balance_of(liquidator) != 0
        a_token.transfer_scaled(user, liquidator, amount, index)
        if had_balance or amount == 0:
            return []
        if validate_automatic_use_as_collateral(
            liquidator_account, snapshot.reserves, collateral_reserve.config
        ):
            liquidator_account.set_using_as_collateral(collateral_reserve.asset, True)
            return [ReserveUsedAsCollateralEnabled(asset=collateral_reserve.asset, user=liquidator)]
        return []

    def _transfer_protocol_fee(
        self, collateral_reserve: ReserveData, user: str, protocol_fee: int
    ) -> int:
        """Move the fee to the treasury, capped at what the user still holds."""
        a_token = collateral_reserve.a_token
        index = collateral_reserve.liquidity_index
        scaled_fee = ray_div(protocol_fee, index)
        scaled_remaining = a_token.scaled_balance_of(user)
        if scaled_fee > scaled_remaining:
            protocol_fee = ray_mul(scaled_remaining, index)
        a_token.transfer_scaled(user, self.treasury, protocol_fee, index)
        return protocol_fee
