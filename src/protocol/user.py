"""User accounts and cross-reserve position aggregation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from src.protocol.emode import EModeCategory, is_in_emode_category
from src.protocol.fixed_point import (
    MAX_UINT256,
    RAY,
    percent_mul,
    ray_div,
    ray_mul_ceil,
    ray_mul_floor,
)
from src.protocol.oracle import PriceOracle
from src.protocol.reserve import ReserveData

MAX_HEALTH_FACTOR = MAX_UINT256
HEALTH_FACTOR_LIQUIDATION_THRESHOLD = RAY


@dataclass
class UserAccount:
    """Per-user flags. Balances live in the reserve ledgers."""

    collateral: set[str] = field(default_factory=set)
    borrowing: set[str] = field(default_factory=set)
    emode_category: int = 0

    def is_using_as_collateral(self, asset: str) -> bool:
        return asset in self.collateral

    def is_borrowing(self, asset: str) -> bool:
        return asset in self.borrowing

    def is_using_as_collateral_any(self) -> bool:
        return bool(self.collateral)

    def is_borrowing_any(self) -> bool:
        return bool(self.borrowing)

    def is_empty(self) -> bool:
        return not self.collateral and not self.borrowing

    def set_using_as_collateral(self, asset: str, enabled: bool) -> None:
        if enabled:
            self.collateral.add(asset)
        else:
            self.collateral.discard(asset)

    def set_borrowing(self, asset: str, borrowing: bool) -> None:
        if borrowing:
            self.borrowing.add(asset)
        else:
            self.borrowing.discard(asset)


@dataclass(frozen=True)
class UserAccountData:
    """Aggregated position in base currency.

    ``ltv`` and ``current_liquidation_threshold`` are collateral-weighted
    averages in basis points; ``health_factor`` is in ray.
    """

    total_collateral_base: int
    total_debt_base: int
    available_borrows_base: int
    current_liquidation_threshold: int
    ltv: int
    health_factor: int
    has_zero_ltv_collateral: bool = False

    @property
    def is_liquidatable(self) -> bool:
        return self.health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD


def get_isolation_mode_state(
    account: UserAccount, reserves: Mapping[str, ReserveData]
) -> tuple[bool, str | None, int]:
    """(active, isolated collateral asset, its debt ceiling).

    A user is in isolation mode when their only enabled collateral is an
    isolated asset.
    """
    if len(account.collateral) == 1:
        (asset,) = account.collateral
        ceiling = reserves[asset].config.debt_ceiling
        if ceiling != 0:
            return True, asset, ceiling
    return False, None, 0


def get_siloed_borrowing_state(
    account: UserAccount, reserves: Mapping[str, ReserveData]
) -> tuple[bool, str | None]:
    """(active, siloed asset) when the user's single borrow is siloed."""
    if len(account.borrowing) == 1:
        (asset,) = account.borrowing
        if reserves[asset].config.siloed_borrowing:
            return True, asset
    return False, None


def user_collateral_balance(reserve: ReserveData, user: str, now: int) -> int:
    return ray_mul_floor(reserve.a_token.scaled_balance_of(user), reserve.normalized_income(now))


def user_variable_debt(reserve: ReserveData, user: str, now: int) -> int:
    return ray_mul_ceil(
        reserve.variable_debt_token.scaled_balance_of(user), reserve.normalized_debt(now)
    )


def user_stable_debt(reserve: ReserveData, user: str, now: int) -> int:
    return reserve.stable_debt_token.balance_of(user, now)


def user_total_debt(reserve: ReserveData, user: str, now: int) -> int:
    return user_variable_debt(reserve, user, now) + user_stable_debt(reserve, user, now)


def resolve_price(
    oracle: PriceOracle,
    reserve: ReserveData,
    user_emode_category: int,
    category: EModeCategory | None,
) -> int:
    """Asset price, or the eMode override source for category members."""
    if (
        category is not None
        and category.price_source
        and is_in_emode_category(user_emode_category, reserve.config.emode_category)
    ):
        return oracle.get_asset_price(category.price_source)
    return oracle.get_asset_price(reserve.asset)


def calculate_health_factor(
    total_collateral_base: int, total_debt_base: int, liquidation_threshold: int
) -> int:
    if total_debt_base == 0:
        return MAX_HEALTH_FACTOR
    return ray_div(percent_mul(total_collateral_base, liquidation_threshold), total_debt_base)


def calculate_available_borrows(
    total_collateral_base: int, total_debt_base: int, ltv: int
) -> int:
    available = percent_mul(total_collateral_base, ltv)
    if available < total_debt_base:
        return 0
    return available - total_debt_base


def calculate_user_account_data(
    reserves: Mapping[str, ReserveData],
    account: UserAccount,
    user: str,
    oracle: PriceOracle,
    emode_categories: Mapping[int, EModeCategory],
    now: int,
    *,
    emode_category: int | None = None,
    collateral_removed: Mapping[str, int] | None = None,
    collateral_disabled: frozenset[str] = frozenset(),
) -> UserAccountData:
    """Aggregate a user's collateral and debt across reserves.

    The keyword arguments describe a hypothetical change so that validation
    can evaluate the post-operation position without mutating anything:

    Args:
        emode_category: Category to evaluate under instead of the user's.
        collateral_removed: Asset -> amount subtracted from the collateral
            balance (withdrawals).
        collateral_disabled: Assets treated as no longer enabled as
            collateral.

    Returns:
        UserAccountData for the (possibly hypothetical) position.
    """
    category_id = account.emode_category if emode_category is None else emode_category
    enabled = account.collateral - collateral_disabled
    if not enabled and not account.borrowing:
        return UserAccountData(0, 0, 0, 0, 0, MAX_HEALTH_FACTOR)

    category = emode_categories.get(category_id) if category_id != 0 else None
    removed = collateral_removed or {}
    # Isolated collateral only counts when it is the sole enabled collateral.
    exclude_isolated = len(enabled) > 1

    total_collateral = 0
    total_debt = 0
    weighted_ltv = 0
    weighted_threshold = 0
    has_zero_ltv_collateral = False

    for asset, reserve in reserves.items():
        is_collateral = asset in enabled
        is_borrowing = account.is_borrowing(asset)
        if not is_collateral and not is_borrowing:
            continue

        cfg = reserve.config
        price = resolve_price(oracle, reserve, category_id, category)

        counts_as_collateral = (
            is_collateral
            and cfg.liquidation_threshold != 0
            and not (exclude_isolated and cfg.is_isolated)
        )
        if counts_as_collateral:
            balance = user_collateral_balance(reserve, user, now)
            balance = max(0, balance - removed.get(asset, 0))
            value = balance * price // cfg.unit
            total_collateral += value

            in_category = category is not None and is_in_emode_category(
                category_id, cfg.emode_category
            )
            ltv = category.ltv if in_category else cfg.ltv
            threshold = (
                category.liquidation_threshold if in_category else cfg.liquidation_threshold
            )
            if ltv != 0:
                weighted_ltv += value * ltv
            else:
                has_zero_ltv_collateral = True
            weighted_threshold += value * threshold

        if is_borrowing:
            debt = user_total_debt(reserve, user, now)
            total_debt += debt * price // cfg.unit

    avg_ltv = weighted_ltv // total_collateral if total_collateral else 0
    avg_threshold = weighted_threshold // total_collateral if total_collateral else 0

    return UserAccountData(
        total_collateral_base=total_collateral,
        total_debt_base=total_debt,
        available_borrows_base=calculate_available_borrows(total_collateral, total_debt, avg_ltv),
        current_liquidation_threshold=avg_threshold,
        ltv=avg_ltv,
        health_factor=calculate_health_factor(total_collateral, total_debt, avg_threshold),
        has_zero_ltv_collateral=has_zero_ltv_collateral,
    )
