"""Reserve listing and risk-parameter administration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from src.protocol.emode import EModeCategory
from src.protocol.errors import ErrorKind, require
from src.protocol.events import (
    EModeCategoryAdded,
    Event,
    ReserveConfigChanged,
    ReserveInitialized,
)
from src.protocol.fixed_point import PERCENTAGE_FACTOR, percent_mul
from src.protocol.interest_rate import InterestRateParams, InterestRateStrategy
from src.protocol.pool import Pool
from src.protocol.reserve import ReserveConfig, ReserveData

logger = logging.getLogger(__name__)

# Bit-width limits of the packed on-chain configuration.
MAX_VALID_PERCENT_PARAM = 2**16 - 1
MAX_BORROW_CAP = 2**36 - 1
MAX_SUPPLY_CAP = 2**36 - 1
MAX_DEBT_CEILING = 2**40 - 1


def _validate_collateral_params(
    ltv: int, liquidation_threshold: int, liquidation_bonus: int
) -> None:
    for value in (ltv, liquidation_threshold, liquidation_bonus):
        require(0 <= value <= MAX_VALID_PERCENT_PARAM, ErrorKind.INVALID_RESERVE_PARAMS)
    require(ltv <= liquidation_threshold, ErrorKind.INVALID_RESERVE_PARAMS, "ltv > threshold")
    if liquidation_threshold != 0:
        # The bonus must be paid out of the collateral, so LT * bonus <= 100%.
        require(liquidation_bonus > PERCENTAGE_FACTOR, ErrorKind.INVALID_RESERVE_PARAMS)
        require(
            percent_mul(liquidation_threshold, liquidation_bonus) <= PERCENTAGE_FACTOR,
            ErrorKind.INVALID_RESERVE_PARAMS,
        )
    else:
        require(liquidation_bonus == 0, ErrorKind.INVALID_RESERVE_PARAMS)


class PoolConfigurator:
    """Admin surface of a ``Pool``.

    Role management is out of scope: every caller is trusted.  Each setter
    runs inside the pool's transaction, checks the new value for internal
    consistency and records a ``ReserveConfigChanged`` event.
    """

    def __init__(self, pool: Pool) -> None:
        self.pool = pool

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def init_reserve(
        self, asset: str, config: ReserveConfig, rate_params: InterestRateParams
    ) -> list[Event]:
        pool = self.pool
        with pool.transaction() as events:
            require(asset not in pool.reserves, ErrorKind.RESERVE_ALREADY_INITIALIZED, asset)
            _validate_collateral_params(
                config.ltv, config.liquidation_threshold, config.liquidation_bonus
            )
            reserve = ReserveData(
                asset,
                reserve_id=len(pool.reserves),
                config=replace(config),
                rate_params=rate_params,
                timestamp=pool.clock(),
            )
            pool.reserves[asset] = reserve
            events.append(ReserveInitialized(asset=asset, token_kind=config.token_kind.value))
            logger.info("listed reserve %s (id=%d)", asset, reserve.id)
        return events

    def set_emode_category(
        self,
        category_id: int,
        ltv: int,
        liquidation_threshold: int,
        liquidation_bonus: int,
        price_source: str | None = None,
        label: str = "",
    ) -> list[Event]:
        pool = self.pool
        with pool.transaction() as events:
            require(category_id != 0, ErrorKind.EMODE_CATEGORY_RESERVED)
            require(0 < category_id <= 255, ErrorKind.INVALID_EMODE_CATEGORY_PARAMS)
            require(
                ltv != 0 and liquidation_threshold != 0,
                ErrorKind.INVALID_EMODE_CATEGORY_PARAMS,
            )
            require(ltv <= liquidation_threshold, ErrorKind.INVALID_EMODE_CATEGORY_PARAMS)
            require(liquidation_bonus > PERCENTAGE_FACTOR, ErrorKind.INVALID_EMODE_CATEGORY_PARAMS)
            require(
                percent_mul(liquidation_threshold, liquidation_bonus) <= PERCENTAGE_FACTOR,
                ErrorKind.INVALID_EMODE_CATEGORY_PARAMS,
            )
            for reserve in pool.reserves.values():
                if reserve.config.emode_category == category_id:
                    require(
                        liquidation_threshold > reserve.config.liquidation_threshold,
                        ErrorKind.INVALID_EMODE_CATEGORY_PARAMS,
                        reserve.asset,
                    )

            pool.emode_categories[category_id] = EModeCategory(
                category_id=category_id,
                label=label,
                ltv=ltv,
                liquidation_threshold=liquidation_threshold,
                liquidation_bonus=liquidation_bonus,
                price_source=price_source,
            )
            events.append(
                EModeCategoryAdded(
                    category_id=category_id,
                    ltv=ltv,
                    liquidation_threshold=liquidation_threshold,
                    liquidation_bonus=liquidation_bonus,
                    price_source=price_source,
                    label=label,
                )
            )
            logger.info("eMode category %d (%s) set", category_id, label)
        return events

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set(self, events: list[Event], reserve: ReserveData, field: str, value: Any) -> None:
        old_value = getattr(reserve.config, field)
        setattr(reserve.config, field, value)
        events.append(
            ReserveConfigChanged(
                asset=reserve.asset, field=field, old_value=old_value, new_value=value
            )
        )
        logger.info("%s.%s: %s -> %s", reserve.asset, field, old_value, value)

    def _update(
        self,
        asset: str,
        check: Callable[[ReserveData], None] | None = None,
        **values: Any,
    ) -> list[Event]:
        pool = self.pool
        with pool.transaction() as events:
            reserve = pool.reserve(asset)
            if check is not None:
                check(reserve)
            for field, value in values.items():
                self._set(events, reserve, field, value)
        return events

    @staticmethod
    def _check_no_suppliers(reserve: ReserveData) -> None:
        require(
            reserve.a_token.scaled_total_supply() == 0 and reserve.accrued_to_treasury == 0,
            ErrorKind.RESERVE_LIQUIDITY_NOT_ZERO,
        )

    @staticmethod
    def _check_no_borrowers(reserve: ReserveData) -> None:
        require(
            reserve.variable_debt_token.scaled_total_supply() == 0
            and reserve.stable_debt_token.total_principal == 0,
            ErrorKind.RESERVE_DEBT_NOT_ZERO,
        )

    # ------------------------------------------------------------------
    # Reserve parameters
    # ------------------------------------------------------------------

    def configure_reserve_as_collateral(
        self, asset: str, ltv: int, liquidation_threshold: int, liquidation_bonus: int
    ) -> list[Event]:
        pool = self.pool
        with pool.transaction() as events:
            reserve = pool.reserve(asset)
            _validate_collateral_params(ltv, liquidation_threshold, liquidation_bonus)
            if liquidation_threshold == 0:
                self._check_no_suppliers(reserve)
            category_id = reserve.config.emode_category
            if category_id != 0:
                category = pool.emode_categories[category_id]
                require(
                    liquidation_threshold < category.liquidation_threshold,
                    ErrorKind.INVALID_EMODE_CATEGORY_ASSIGNMENT,
                )
            self._set(events, reserve, "ltv", ltv)
            self._set(events, reserve, "liquidation_threshold", liquidation_threshold)
            self._set(events, reserve, "liquidation_bonus", liquidation_bonus)
        return events

    def set_reserve_borrowing(self, asset: str, enabled: bool) -> list[Event]:
        return self._update(asset, borrowing_enabled=enabled)

    def set_reserve_stable_rate_borrowing(self, asset: str, enabled: bool) -> list[Event]:
        def check(reserve: ReserveData) -> None:
            require(
                not enabled or reserve.config.borrowing_enabled,
                ErrorKind.BORROWING_NOT_ENABLED,
            )

        return self._update(asset, check, stable_borrowing_enabled=enabled)

    def set_reserve_active(self, asset: str, active: bool) -> list[Event]:
        check = None if active else self._check_no_suppliers
        return self._update(asset, check, active=active)

    def set_reserve_freeze(self, asset: str, frozen: bool) -> list[Event]:
        return self._update(asset, frozen=frozen)

    def set_reserve_pause(self, asset: str, paused: bool) -> list[Event]:
        return self._update(asset, paused=paused)

    def set_reserve_flash_loaning(self, asset: str, enabled: bool) -> list[Event]:
        return self._update(asset, flash_loan_enabled=enabled)

    def set_borrowable_in_isolation(self, asset: str, borrowable: bool) -> list[Event]:
        return self._update(asset, borrowable_in_isolation=borrowable)

    def set_borrow_cap(self, asset: str, borrow_cap: int) -> list[Event]:
        require(0 <= borrow_cap <= MAX_BORROW_CAP, ErrorKind.INVALID_BORROW_CAP)
        return self._update(asset, borrow_cap=borrow_cap)

    def set_supply_cap(self, asset: str, supply_cap: int) -> list[Event]:
        require(0 <= supply_cap <= MAX_SUPPLY_CAP, ErrorKind.INVALID_SUPPLY_CAP)
        return self._update(asset, supply_cap=supply_cap)

    def set_liquidation_protocol_fee(self, asset: str, fee: int) -> list[Event]:
        require(0 <= fee <= PERCENTAGE_FACTOR, ErrorKind.INVALID_LIQUIDATION_PROTOCOL_FEE)
        return self._update(asset, liquidation_protocol_fee=fee)

    def set_reserve_factor(self, asset: str, reserve_factor: int) -> list[Event]:
        """Accrue at the old factor, then switch and refresh rates."""
        require(0 <= reserve_factor <= PERCENTAGE_FACTOR, ErrorKind.INVALID_RESERVE_FACTOR)
        pool = self.pool
        with pool.transaction() as events:
            now = pool.clock()
            reserve = pool.reserve(asset)
            reserve.update_state(now)
            self._set(events, reserve, "reserve_factor", reserve_factor)
            events.append(reserve.update_interest_rates(now))
        return events

    def set_reserve_interest_rate_params(
        self, asset: str, rate_params: InterestRateParams
    ) -> list[Event]:
        pool = self.pool
        with pool.transaction() as events:
            now = pool.clock()
            reserve = pool.reserve(asset)
            reserve.update_state(now)
            old_params = reserve.rate_params
            reserve.strategy = InterestRateStrategy(rate_params)
            events.append(
                ReserveConfigChanged(
                    asset=asset,
                    field="interest_rate_params",
                    old_value=old_params,
                    new_value=rate_params,
                )
            )
            logger.info("%s interest rate params replaced", asset)
            events.append(reserve.update_interest_rates(now))
        return events

    def set_debt_ceiling(self, asset: str, debt_ceiling: int) -> list[Event]:
        """Entering isolation requires an empty reserve; leaving it clears the
        tracked isolated debt."""
        require(0 <= debt_ceiling <= MAX_DEBT_CEILING, ErrorKind.INVALID_DEBT_CEILING)
        pool = self.pool
        with pool.transaction() as events:
            reserve = pool.reserve(asset)
            if reserve.config.debt_ceiling == 0 and debt_ceiling != 0:
                self._check_no_suppliers(reserve)
            self._set(events, reserve, "debt_ceiling", debt_ceiling)
            if debt_ceiling == 0:
                tracked = reserve.isolation_mode_total_debt
                events.append(reserve.update_isolation_mode_debt(-tracked))
        return events

    def set_siloed_borrowing(self, asset: str, siloed: bool) -> list[Event]:
        check = self._check_no_borrowers if siloed else None
        return self._update(asset, check, siloed_borrowing=siloed)

    def set_asset_emode_category(self, asset: str, category_id: int) -> list[Event]:
        pool = self.pool
        with pool.transaction() as events:
            reserve = pool.reserve(asset)
            if category_id != 0:
                category = pool.emode_categories.get(category_id)
                require(
                    category is not None
                    and category.liquidation_threshold > reserve.config.liquidation_threshold,
                    ErrorKind.INVALID_EMODE_CATEGORY_ASSIGNMENT,
                )
            self._set(events, reserve, "emode_category", category_id)
        return events
