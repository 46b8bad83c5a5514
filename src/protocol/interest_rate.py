"""Two-slope reserve interest rate strategy.

Rates are computed in ray from the reserve's liquidity and debt totals.
The float helpers and ``rate_curve`` are for analysis only; the engine uses
``calculate_interest_rates`` exclusively.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import numpy as np
import pandas as pd

from src.protocol.fixed_point import (
    PERCENTAGE_FACTOR,
    RAY,
    percent_mul,
    ray_div,
    ray_mul,
    wad_to_ray,
)


def to_ray(value: float | str | Decimal) -> int:
    """Convert a decimal fraction (e.g. 0.045) to ray without float drift."""
    return int(Decimal(str(value)) * RAY)


@dataclass(frozen=True)
class InterestRateParams:
    """Rate curve parameters, all in ray."""

    optimal_usage_ratio: int
    base_variable_borrow_rate: int
    variable_rate_slope1: int
    variable_rate_slope2: int
    stable_rate_slope1: int = 0
    stable_rate_slope2: int = 0
    base_stable_rate_offset: int = 0
    stable_rate_excess_offset: int = 0
    optimal_stable_to_total_debt_ratio: int = 0

    def __post_init__(self) -> None:
        if not 0 < self.optimal_usage_ratio < RAY:
            raise ValueError("optimal_usage_ratio must be in (0, 1) ray")
        if not 0 <= self.optimal_stable_to_total_debt_ratio < RAY:
            raise ValueError("optimal_stable_to_total_debt_ratio must be in [0, 1) ray")

    @classmethod
    def from_decimals(
        cls,
        optimal_usage_ratio: float | str,
        base_variable_borrow_rate: float | str,
        variable_rate_slope1: float | str,
        variable_rate_slope2: float | str,
        stable_rate_slope1: float | str = 0,
        stable_rate_slope2: float | str = 0,
        base_stable_rate_offset: float | str = 0,
        stable_rate_excess_offset: float | str = 0,
        optimal_stable_to_total_debt_ratio: float | str = 0,
    ) -> InterestRateParams:
        """Build params from human-readable fractions (0.9 = 90%)."""
        return cls(
            optimal_usage_ratio=to_ray(optimal_usage_ratio),
            base_variable_borrow_rate=to_ray(base_variable_borrow_rate),
            variable_rate_slope1=to_ray(variable_rate_slope1),
            variable_rate_slope2=to_ray(variable_rate_slope2),
            stable_rate_slope1=to_ray(stable_rate_slope1),
            stable_rate_slope2=to_ray(stable_rate_slope2),
            base_stable_rate_offset=to_ray(base_stable_rate_offset),
            stable_rate_excess_offset=to_ray(stable_rate_excess_offset),
            optimal_stable_to_total_debt_ratio=to_ray(optimal_stable_to_total_debt_ratio),
        )

    @property
    def max_excess_usage_ratio(self) -> int:
        return RAY - self.optimal_usage_ratio

    @property
    def max_excess_stable_to_total_debt_ratio(self) -> int:
        return RAY - self.optimal_stable_to_total_debt_ratio

    @property
    def base_stable_borrow_rate(self) -> int:
        return self.variable_rate_slope1 + self.base_stable_rate_offset

    @property
    def max_variable_borrow_rate(self) -> int:
        return (
            self.base_variable_borrow_rate
            + self.variable_rate_slope1
            + self.variable_rate_slope2
        )


@dataclass(frozen=True)
class RateInputs:
    """Reserve totals fed to the strategy (amounts in asset units)."""

    available_liquidity: int
    total_stable_debt: int
    total_variable_debt: int
    average_stable_borrow_rate: int
    reserve_factor: int
    liquidity_added: int = 0
    liquidity_taken: int = 0


@dataclass(frozen=True)
class InterestRates:
    liquidity_rate: int
    stable_borrow_rate: int
    variable_borrow_rate: int


class InterestRateStrategy:
    """Kinked utilization curve for variable and stable borrow rates."""

    def __init__(self, params: InterestRateParams) -> None:
        self.params = params

    def calculate_interest_rates(self, inputs: RateInputs) -> InterestRates:
        """Compute (liquidity, stable, variable) rates for the given totals.

        Args:
            inputs: Post-operation reserve totals. ``liquidity_added`` and
                ``liquidity_taken`` adjust ``available_liquidity`` for the
                operation being applied.

        Returns:
            InterestRates in ray.
        """
        p = self.params
        total_debt = inputs.total_stable_debt + inputs.total_variable_debt

        stable_to_total_debt_ratio = 0
        borrow_usage_ratio = 0
        supply_usage_ratio = 0

        if total_debt != 0:
            stable_to_total_debt_ratio = ray_div(inputs.total_stable_debt, total_debt)
            available_liquidity = (
                inputs.available_liquidity
                + inputs.liquidity_added
                - inputs.liquidity_taken
            )
            if available_liquidity < 0:
                raise ValueError("liquidity taken exceeds available liquidity")
            available_liquidity_plus_debt = available_liquidity + total_debt
            borrow_usage_ratio = ray_div(total_debt, available_liquidity_plus_debt)
            supply_usage_ratio = ray_div(total_debt, available_liquidity_plus_debt)

        variable_rate = p.base_variable_borrow_rate
        stable_rate = p.base_stable_borrow_rate

        if borrow_usage_ratio > p.optimal_usage_ratio:
            excess = ray_div(
                borrow_usage_ratio - p.optimal_usage_ratio, p.max_excess_usage_ratio
            )
            stable_rate += p.stable_rate_slope1 + ray_mul(p.stable_rate_slope2, excess)
            variable_rate += p.variable_rate_slope1 + ray_mul(
                p.variable_rate_slope2, excess
            )
        else:
            stable_rate += ray_div(
                ray_mul(p.stable_rate_slope1, borrow_usage_ratio), p.optimal_usage_ratio
            )
            variable_rate += ray_div(
                ray_mul(p.variable_rate_slope1, borrow_usage_ratio),
                p.optimal_usage_ratio,
            )

        if stable_to_total_debt_ratio > p.optimal_stable_to_total_debt_ratio:
            excess_stable = ray_div(
                stable_to_total_debt_ratio - p.optimal_stable_to_total_debt_ratio,
                p.max_excess_stable_to_total_debt_ratio,
            )
            stable_rate += ray_mul(p.stable_rate_excess_offset, excess_stable)

        overall = self._overall_borrow_rate(
            inputs.total_stable_debt,
            inputs.total_variable_debt,
            variable_rate,
            inputs.average_stable_borrow_rate,
        )
        liquidity_rate = percent_mul(
            ray_mul(overall, supply_usage_ratio),
            PERCENTAGE_FACTOR - inputs.reserve_factor,
        )

        return InterestRates(
            liquidity_rate=liquidity_rate,
            stable_borrow_rate=stable_rate,
            variable_borrow_rate=variable_rate,
        )

    @staticmethod
    def _overall_borrow_rate(
        total_stable_debt: int,
        total_variable_debt: int,
        current_variable_borrow_rate: int,
        current_average_stable_borrow_rate: int,
    ) -> int:
        """Debt-weighted average of the variable and stable borrow rates."""
        total_debt = total_stable_debt + total_variable_debt
        if total_debt == 0:
            return 0
        weighted_variable = ray_mul(
            wad_to_ray(total_variable_debt), current_variable_borrow_rate
        )
        weighted_stable = ray_mul(
            wad_to_ray(total_stable_debt), current_average_stable_borrow_rate
        )
        return ray_div(weighted_variable + weighted_stable, wad_to_ray(total_debt))

    # ------------------------------------------------------------------
    # Float views for analysis
    # ------------------------------------------------------------------

    def variable_borrow_rate(self, utilization: float) -> float:
        """Variable borrow rate as a decimal for a utilization in [0, 1]."""
        p = self.params
        utilization = max(0.0, min(1.0, utilization))
        optimal = p.optimal_usage_ratio / RAY
        base = p.base_variable_borrow_rate / RAY
        slope1 = p.variable_rate_slope1 / RAY
        slope2 = p.variable_rate_slope2 / RAY
        if utilization <= optimal:
            return base + (utilization / optimal) * slope1
        excess = (utilization - optimal) / (1.0 - optimal)
        return base + slope1 + excess * slope2

    def stable_borrow_rate(self, utilization: float) -> float:
        """Stable borrow rate as a decimal, ignoring the stable-share offset."""
        p = self.params
        utilization = max(0.0, min(1.0, utilization))
        optimal = p.optimal_usage_ratio / RAY
        base = p.base_stable_borrow_rate / RAY
        slope1 = p.stable_rate_slope1 / RAY
        slope2 = p.stable_rate_slope2 / RAY
        if utilization <= optimal:
            return base + (utilization / optimal) * slope1
        excess = (utilization - optimal) / (1.0 - optimal)
        return base + slope1 + excess * slope2

    def supply_rate(self, utilization: float, reserve_factor: float = 0.0) -> float:
        """Supply rate for an all-variable reserve: R_borrow * U * (1 - rf)."""
        utilization = max(0.0, min(1.0, utilization))
        return self.variable_borrow_rate(utilization) * utilization * (1.0 - reserve_factor)

    def rate_curve(
        self, n_points: int = 200, reserve_factor: float = 0.0
    ) -> pd.DataFrame:
        """Sample the curve over utilization in [0, 1].

        Returns:
            DataFrame with columns: utilization, variable_borrow_rate,
            stable_borrow_rate, supply_rate
        """
        utilizations = np.linspace(0, 1, n_points)
        return pd.DataFrame(
            {
                "utilization": utilizations,
                "variable_borrow_rate": [
                    self.variable_borrow_rate(u) for u in utilizations
                ],
                "stable_borrow_rate": [self.stable_borrow_rate(u) for u in utilizations],
                "supply_rate": [
                    self.supply_rate(u, reserve_factor) for u in utilizations
                ],
            }
        )
