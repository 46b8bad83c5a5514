"""Pre-mutation checks for every pool operation.

All functions here are pure predicates over a read-only snapshot: they raise
``ProtocolError`` on the first failed rule and never modify reserves, users
or ledgers.  Callers accrue the affected reserves first and apply changes
only after validation passed.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from src.protocol.emode import EModeCategory, is_in_emode_category
from src.protocol.errors import ErrorKind, ProtocolError, require
from src.protocol.fixed_point import percent_div, percent_mul, ray_mul
from src.protocol.oracle import PriceOracle, PriceOracleSentinel
from src.protocol.reserve import InterestRateMode, ReserveConfig, ReserveData
from src.protocol.user import (
    HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
    UserAccount,
    UserAccountData,
    calculate_user_account_data,
    get_isolation_mode_state,
    get_siloed_borrowing_state,
    resolve_price,
    user_collateral_balance,
)

# Liquidations of positions below this health factor bypass the sentinel.
MINIMUM_HEALTH_FACTOR_LIQUIDATION_THRESHOLD = 95 * 10**25  # 0.95 ray

# Max share of available liquidity a single stable-rate borrow may take.
MAX_STABLE_RATE_BORROW_SIZE_PERCENT = 2500


@dataclass(frozen=True)
class PoolSnapshot:
    """Read-only view of pool collaborators at a point in time."""

    reserves: Mapping[str, ReserveData]
    emode_categories: Mapping[int, EModeCategory]
    oracle: PriceOracle
    sentinel: PriceOracleSentinel | None
    now: int

    def account_data(
        self, account: UserAccount, user: str, **hypothetical
    ) -> UserAccountData:
        return calculate_user_account_data(
            self.reserves,
            account,
            user,
            self.oracle,
            self.emode_categories,
            self.now,
            **hypothetical,
        )

    def reserve(self, asset: str) -> ReserveData:
        found = self.reserves.get(asset)
        if found is None:
            raise ProtocolError(ErrorKind.ASSET_NOT_LISTED, asset)
        return found


def _require_active_unpaused(cfg: ReserveConfig) -> None:
    require(cfg.active, ErrorKind.RESERVE_INACTIVE)
    require(not cfg.paused, ErrorKind.RESERVE_PAUSED)


def validate_supply(reserve: ReserveData, amount: int, now: int) -> None:
    cfg = reserve.config
    require(amount != 0, ErrorKind.INVALID_AMOUNT)
    _require_active_unpaused(cfg)
    require(not cfg.frozen, ErrorKind.RESERVE_FROZEN)
    if cfg.supply_cap != 0:
        total_supplied = ray_mul(
            reserve.a_token.scaled_total_supply() + reserve.accrued_to_treasury,
            reserve.normalized_income(now),
        )
        require(
            total_supplied + amount <= cfg.supply_cap * cfg.unit,
            ErrorKind.SUPPLY_CAP_EXCEEDED,
        )


def validate_withdraw(reserve: ReserveData, amount: int, user_balance: int) -> None:
    require(amount != 0, ErrorKind.INVALID_AMOUNT)
    require(amount <= user_balance, ErrorKind.NOT_ENOUGH_AVAILABLE_USER_BALANCE)
    _require_active_unpaused(reserve.config)
    require(amount <= reserve.available_liquidity, ErrorKind.NOT_ENOUGH_LIQUIDITY)


def validate_hf_and_ltv(
    snapshot: PoolSnapshot,
    account: UserAccount,
    user: str,
    reserve: ReserveData,
    **hypothetical,
) -> UserAccountData:
    """Position after the change must be healthy and respect zero-LTV rules.

    Users holding zero-LTV collateral may only withdraw or disable that
    zero-LTV collateral.
    """
    data = snapshot.account_data(account, user, **hypothetical)
    require(
        data.health_factor >= HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
        ErrorKind.HEALTH_FACTOR_LOWER_THAN_LIQUIDATION_THRESHOLD,
    )
    require(
        not data.has_zero_ltv_collateral or reserve.config.ltv == 0,
        ErrorKind.LTV_VALIDATION_FAILED,
    )
    return data


def validate_borrow(
    snapshot: PoolSnapshot,
    reserve: ReserveData,
    account: UserAccount,
    user: str,
    amount: int,
    mode: InterestRateMode,
) -> None:
    cfg = reserve.config
    require(amount != 0, ErrorKind.INVALID_AMOUNT)
    _require_active_unpaused(cfg)
    require(not cfg.frozen, ErrorKind.RESERVE_FROZEN)
    require(cfg.borrowing_enabled, ErrorKind.BORROWING_NOT_ENABLED)
    require(amount <= reserve.available_liquidity, ErrorKind.NOT_ENOUGH_LIQUIDITY)

    sentinel = snapshot.sentinel
    require(
        sentinel is None or sentinel.is_borrow_allowed(),
        ErrorKind.PRICE_ORACLE_SENTINEL_CHECK_FAILED,
    )
    require(
        isinstance(mode, InterestRateMode),
        ErrorKind.INVALID_INTEREST_RATE_MODE_SELECTED,
    )

    now = snapshot.now
    if cfg.borrow_cap != 0:
        total_debt = (
            ray_mul(
                reserve.variable_debt_token.scaled_total_supply(),
                reserve.normalized_debt(now),
            )
            + reserve.total_stable_debt(now)
            + amount
        )
        require(total_debt <= cfg.borrow_cap * cfg.unit, ErrorKind.BORROW_CAP_EXCEEDED)

    isolation_active, isolated_asset, debt_ceiling = get_isolation_mode_state(
        account, snapshot.reserves
    )
    if isolation_active:
        require(cfg.borrowable_in_isolation, ErrorKind.ASSET_NOT_BORROWABLE_IN_ISOLATION)
        isolated_total = snapshot.reserves[isolated_asset].isolation_mode_total_debt
        require(
            isolated_total + cfg.debt_ceiling_units(amount) <= debt_ceiling,
            ErrorKind.DEBT_CEILING_EXCEEDED,
        )

    category = None
    if account.emode_category != 0:
        require(
            cfg.emode_category == account.emode_category,
            ErrorKind.INCONSISTENT_EMODE_CATEGORY,
        )
        category = snapshot.emode_categories.get(account.emode_category)

    data = snapshot.account_data(account, user)
    require(data.total_collateral_base != 0, ErrorKind.COLLATERAL_BALANCE_IS_ZERO)
    require(data.ltv != 0, ErrorKind.LTV_VALIDATION_FAILED)
    require(
        data.health_factor > HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
        ErrorKind.HEALTH_FACTOR_LOWER_THAN_LIQUIDATION_THRESHOLD,
    )

    price = resolve_price(snapshot.oracle, reserve, account.emode_category, category)
    amount_in_base = price * amount // cfg.unit
    collateral_needed = percent_div(data.total_debt_base + amount_in_base, data.ltv)
    require(
        collateral_needed <= data.total_collateral_base,
        ErrorKind.COLLATERAL_CANNOT_COVER_NEW_BORROW,
    )

    if mode is InterestRateMode.STABLE:
        require(cfg.stable_borrowing_enabled, ErrorKind.STABLE_BORROWING_NOT_ENABLED)
        own_collateral = user_collateral_balance(reserve, user, now)
        require(
            not account.is_using_as_collateral(reserve.asset)
            or cfg.ltv == 0
            or amount > own_collateral,
            ErrorKind.COLLATERAL_SAME_AS_BORROWING_CURRENCY,
        )
        max_loan = percent_mul(reserve.available_liquidity, MAX_STABLE_RATE_BORROW_SIZE_PERCENT)
        require(amount <= max_loan, ErrorKind.AMOUNT_BIGGER_THAN_MAX_LOAN_SIZE_STABLE)

    if account.is_borrowing_any():
        siloed, siloed_asset = get_siloed_borrowing_state(account, snapshot.reserves)
        if siloed:
            require(siloed_asset == reserve.asset, ErrorKind.SILOED_BORROWING_VIOLATION)
        else:
            require(not cfg.siloed_borrowing, ErrorKind.SILOED_BORROWING_VIOLATION)


def validate_repay(
    reserve: ReserveData,
    amount: int,
    mode: InterestRateMode,
    repayer: str,
    on_behalf_of: str,
    stable_debt: int,
    variable_debt: int,
    is_max: bool,
) -> None:
    require(amount != 0, ErrorKind.INVALID_AMOUNT)
    require(
        not is_max or repayer == on_behalf_of,
        ErrorKind.NO_EXPLICIT_AMOUNT_TO_REPAY_ON_BEHALF,
    )
    _require_active_unpaused(reserve.config)
    require(
        (mode is InterestRateMode.STABLE and stable_debt > 0)
        or (mode is InterestRateMode.VARIABLE and variable_debt > 0),
        ErrorKind.NO_DEBT_OF_SELECTED_TYPE,
    )


def validate_set_use_reserve_as_collateral(reserve: ReserveData, user_balance: int) -> None:
    require(user_balance != 0, ErrorKind.UNDERLYING_BALANCE_ZERO)
    _require_active_unpaused(reserve.config)


def validate_use_as_collateral(
    account: UserAccount,
    reserves: Mapping[str, ReserveData],
    cfg: ReserveConfig,
) -> bool:
    """Whether the asset may be enabled as collateral for this user.

    Zero-LTV assets never qualify.  An isolated asset only qualifies as the
    user's first collateral, and nothing else may join an isolated one.
    """
    if cfg.ltv == 0:
        return False
    if not account.is_using_as_collateral_any():
        return True
    isolation_active, _, _ = get_isolation_mode_state(account, reserves)
    return not isolation_active and cfg.debt_ceiling == 0


def validate_automatic_use_as_collateral(
    account: UserAccount,
    reserves: Mapping[str, ReserveData],
    cfg: ReserveConfig,
) -> bool:
    """Supplies and liquidation transfers never auto-enable isolated assets."""
    if cfg.is_isolated:
        return False
    return validate_use_as_collateral(account, reserves, cfg)


def validate_set_user_emode(
    snapshot: PoolSnapshot,
    account: UserAccount,
    user: str,
    category_id: int,
) -> None:
    """Every borrowed asset must belong to the target category, and the
    position must stay healthy under the new parameters."""
    if category_id != 0:
        category = snapshot.emode_categories.get(category_id)
        require(
            category is not None and category.liquidation_threshold != 0,
            ErrorKind.INCONSISTENT_EMODE_CATEGORY,
        )
    if account.is_empty():
        return
    if category_id != 0:
        for asset in account.borrowing:
            require(
                is_in_emode_category(category_id, snapshot.reserves[asset].config.emode_category),
                ErrorKind.INCONSISTENT_EMODE_CATEGORY,
                asset,
            )
    if account.is_borrowing_any():
        data = snapshot.account_data(account, user, emode_category=category_id)
        require(
            data.health_factor >= HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
            ErrorKind.HEALTH_FACTOR_LOWER_THAN_LIQUIDATION_THRESHOLD,
        )


def validate_liquidation_call(
    snapshot: PoolSnapshot,
    account: UserAccount,
    collateral_reserve: ReserveData,
    debt_reserve: ReserveData,
    total_debt: int,
    health_factor: int,
) -> None:
    collateral_cfg = collateral_reserve.config
    debt_cfg = debt_reserve.config
    require(collateral_cfg.active and debt_cfg.active, ErrorKind.RESERVE_INACTIVE)
    require(not collateral_cfg.paused and not debt_cfg.paused, ErrorKind.RESERVE_PAUSED)

    sentinel = snapshot.sentinel
    require(
        sentinel is None
        or health_factor < MINIMUM_HEALTH_FACTOR_LIQUIDATION_THRESHOLD
        or sentinel.is_liquidation_allowed(),
        ErrorKind.PRICE_ORACLE_SENTINEL_CHECK_FAILED,
    )
    require(
        health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
        ErrorKind.HEALTH_FACTOR_NOT_BELOW_THRESHOLD,
    )
    require(
        collateral_cfg.liquidation_threshold != 0
        and account.is_using_as_collateral(collateral_reserve.asset),
        ErrorKind.COLLATERAL_CANNOT_BE_LIQUIDATED,
    )
    require(total_debt != 0, ErrorKind.SPECIFIED_CURRENCY_NOT_BORROWED_BY_USER)
