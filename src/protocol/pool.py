"""Pool facade: serialized, transactional user operations over the reserves."""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from src.protocol.emode import EModeCategory
from src.protocol.errors import ErrorKind, ProtocolError, require
from src.protocol.events import (
    Borrow,
    Event,
    MintedToTreasury,
    Repay,
    ReserveUsedAsCollateralDisabled,
    ReserveUsedAsCollateralEnabled,
    Supply,
    UnderlyingDelegated,
    UserEModeSet,
    Withdraw,
)
from src.protocol.fixed_point import MAX_UINT256, ray_mul
from src.protocol.liquidation import LiquidationEngine
from src.protocol.oracle import PriceOracle, PriceOracleSentinel
from src.protocol.reserve import InterestRateMode, ReserveData
from src.protocol.user import (
    UserAccount,
    UserAccountData,
    get_isolation_mode_state,
    user_collateral_balance,
    user_stable_debt,
    user_variable_debt,
)
from src.protocol.validation import (
    PoolSnapshot,
    validate_automatic_use_as_collateral,
    validate_borrow,
    validate_hf_and_ltv,
    validate_repay,
    validate_set_use_reserve_as_collateral,
    validate_set_user_emode,
    validate_supply,
    validate_use_as_collateral,
    validate_withdraw,
)

logger = logging.getLogger(__name__)

# Amount meaning "everything" for withdraw and repay.
MAX_AMOUNT = MAX_UINT256


@dataclass(frozen=True)
class UserReserveData:
    current_a_token_balance: int
    current_stable_debt: int
    current_variable_debt: int
    principal_stable_debt: int
    scaled_variable_debt: int
    stable_borrow_rate: int
    liquidity_rate: int
    stable_rate_last_updated: int
    usage_as_collateral_enabled: bool


@dataclass(frozen=True)
class ReserveDataView:
    """Stored reserve state plus current totals."""

    asset: str
    id: int
    liquidity_index: int
    variable_borrow_index: int
    current_liquidity_rate: int
    current_variable_borrow_rate: int
    current_stable_borrow_rate: int
    last_update_timestamp: int
    accrued_to_treasury: int
    isolation_mode_total_debt: int
    available_liquidity: int
    total_a_token: int
    total_stable_debt: int
    total_variable_debt: int


class Pool:
    """Entry point for supply, borrow, repay, withdraw and liquidation.

    Every mutating operation runs under one re-entrant lock inside a
    transaction: reserves, users and eMode categories are snapshotted on
    entry and restored if anything raises, so a failed call leaves no
    partial change.  Each operation returns the events it emitted; committed
    events are also appended to ``event_log``.
    """

    def __init__(
        self,
        clock: Callable[[], int],
        oracle: PriceOracle,
        sentinel: PriceOracleSentinel | None = None,
        treasury: str = "treasury",
    ) -> None:
        self.clock = clock
        self.oracle = oracle
        self.sentinel = sentinel
        self.treasury = treasury
        self.reserves: dict[str, ReserveData] = {}
        self.users: dict[str, UserAccount] = {}
        self.emode_categories: dict[int, EModeCategory] = {}
        self.event_log: list[Event] = []
        self.liquidation_engine = LiquidationEngine(treasury)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[list[Event]]:
        """Run a block atomically; yields the list collecting its events."""
        with self._lock:
            saved = copy.deepcopy((self.reserves, self.users, self.emode_categories))
            events: list[Event] = []
            try:
                yield events
            except Exception:
                reserves, users, categories = saved
                self.reserves.clear()
                self.reserves.update(reserves)
                self.users.clear()
                self.users.update(users)
                self.emode_categories.clear()
                self.emode_categories.update(categories)
                raise
            self.event_log.extend(events)

    def snapshot(self, now: int | None = None) -> PoolSnapshot:
        return PoolSnapshot(
            reserves=self.reserves,
            emode_categories=self.emode_categories,
            oracle=self.oracle,
            sentinel=self.sentinel,
            now=self.clock() if now is None else now,
        )

    def reserve(self, asset: str) -> ReserveData:
        found = self.reserves.get(asset)
        if found is None:
            raise ProtocolError(ErrorKind.ASSET_NOT_LISTED, asset)
        return found

    def _account(self, user: str) -> UserAccount:
        account = self.users.get(user)
        if account is None:
            account = self.users[user] = UserAccount()
        return account

    def _accrued_reserve(self, asset: str, now: int) -> ReserveData:
        reserve = self.reserve(asset)
        reserve.update_state(now)
        return reserve

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def supply(self, asset: str, amount: int, on_behalf_of: str) -> list[Event]:
        with self.transaction() as events:
            now = self.clock()
            reserve = self._accrued_reserve(asset, now)
            validate_supply(reserve, amount, now)

            events.append(reserve.update_interest_rates(now, liquidity_added=amount))
            is_first, _ = reserve.a_token.mint_scaled(
                on_behalf_of, amount, reserve.liquidity_index
            )
            account = self._account(on_behalf_of)
            if is_first and validate_automatic_use_as_collateral(
                account, self.reserves, reserve.config
            ):
                account.set_using_as_collateral(asset, True)
                events.append(ReserveUsedAsCollateralEnabled(asset=asset, user=on_behalf_of))
            events.append(Supply(asset=asset, user=on_behalf_of, amount=amount))
        return events

    def withdraw(self, asset: str, amount: int, user: str) -> list[Event]:
        """Withdraw ``amount`` (or everything with ``MAX_AMOUNT``)."""
        with self.transaction() as events:
            now = self.clock()
            reserve = self._accrued_reserve(asset, now)
            account = self._account(user)
            balance = user_collateral_balance(reserve, user, now)
            amount_to_withdraw = balance if amount == MAX_AMOUNT else amount
            validate_withdraw(reserve, amount_to_withdraw, balance)

            withdraws_all = amount_to_withdraw == balance
            if account.is_using_as_collateral(asset) and account.is_borrowing_any():
                if withdraws_all:
                    hypothetical = {"collateral_disabled": frozenset({asset})}
                else:
                    hypothetical = {"collateral_removed": {asset: amount_to_withdraw}}
                validate_hf_and_ltv(self.snapshot(now), account, user, reserve, **hypothetical)

            events.append(
                reserve.update_interest_rates(now, liquidity_taken=amount_to_withdraw)
            )
            reserve.a_token.burn_scaled(user, amount_to_withdraw, reserve.liquidity_index)
            if withdraws_all and account.is_using_as_collateral(asset):
                account.set_using_as_collateral(asset, False)
                events.append(ReserveUsedAsCollateralDisabled(asset=asset, user=user))
            events.append(Withdraw(asset=asset, user=user, amount=amount_to_withdraw))
        return events

    def borrow(
        self,
        asset: str,
        amount: int,
        interest_rate_mode: InterestRateMode,
        on_behalf_of: str,
    ) -> list[Event]:
        with self.transaction() as events:
            now = self.clock()
            reserve = self._accrued_reserve(asset, now)
            account = self._account(on_behalf_of)
            validate_borrow(
                self.snapshot(now), reserve, account, on_behalf_of, amount, interest_rate_mode
            )
            isolation_active, isolated_asset, _ = get_isolation_mode_state(
                account, self.reserves
            )

            if interest_rate_mode is InterestRateMode.STABLE:
                reserve.stable_debt_token.mint(
                    on_behalf_of, amount, reserve.current_stable_borrow_rate, now
                )
            else:
                reserve.variable_debt_token.mint_scaled(
                    on_behalf_of, amount, reserve.variable_borrow_index
                )
            account.set_borrowing(asset, True)

            if isolation_active:
                events.append(
                    self.reserves[isolated_asset].update_isolation_mode_debt(
                        reserve.config.debt_ceiling_units(amount)
                    )
                )
            events.append(reserve.update_interest_rates(now, liquidity_taken=amount))

            if interest_rate_mode is InterestRateMode.STABLE:
                borrow_rate = reserve.current_stable_borrow_rate
            else:
                borrow_rate = reserve.current_variable_borrow_rate
            events.append(
                Borrow(
                    asset=asset,
                    user=on_behalf_of,
                    amount=amount,
                    interest_rate_mode=interest_rate_mode.value,
                    borrow_rate=borrow_rate,
                )
            )
        return events

    def repay(
        self,
        asset: str,
        amount: int,
        interest_rate_mode: InterestRateMode,
        on_behalf_of: str,
        repayer: str | None = None,
    ) -> list[Event]:
        """Repay ``amount`` (or the whole debt of the mode with ``MAX_AMOUNT``)."""
        return self._repay(
            asset, amount, interest_rate_mode, on_behalf_of, repayer or on_behalf_of, False
        )

    def repay_with_a_tokens(
        self, asset: str, amount: int, interest_rate_mode: InterestRateMode, user: str
    ) -> list[Event]:
        """Repay debt by burning the user's own supply of the same asset."""
        return self._repay(asset, amount, interest_rate_mode, user, user, True)

    def _repay(
        self,
        asset: str,
        amount: int,
        mode: InterestRateMode,
        on_behalf_of: str,
        repayer: str,
        use_a_tokens: bool,
    ) -> list[Event]:
        with self.transaction() as events:
            now = self.clock()
            reserve = self._accrued_reserve(asset, now)
            account = self._account(on_behalf_of)
            stable_debt = user_stable_debt(reserve, on_behalf_of, now)
            variable_debt = user_variable_debt(reserve, on_behalf_of, now)
            is_max = amount == MAX_AMOUNT
            validate_repay(
                reserve, amount, mode, repayer, on_behalf_of, stable_debt, variable_debt, is_max
            )

            debt = stable_debt if mode is InterestRateMode.STABLE else variable_debt
            payback = debt if is_max else min(amount, debt)
            a_token_balance = 0
            if use_a_tokens:
                a_token_balance = user_collateral_balance(reserve, on_behalf_of, now)
                if is_max:
                    payback = min(payback, a_token_balance)
                require(payback != 0, ErrorKind.INVALID_AMOUNT)
                require(
                    payback <= a_token_balance, ErrorKind.NOT_ENOUGH_AVAILABLE_USER_BALANCE
                )

            if mode is InterestRateMode.STABLE:
                reserve.stable_debt_token.burn(on_behalf_of, payback, now)
            else:
                reserve.variable_debt_token.burn_scaled(
                    on_behalf_of, payback, reserve.variable_borrow_index
                )
            events.append(
                reserve.update_interest_rates(
                    now, liquidity_added=0 if use_a_tokens else payback
                )
            )

            if stable_debt + variable_debt == payback:
                account.set_borrowing(asset, False)

            isolation_active, isolated_asset, _ = get_isolation_mode_state(
                account, self.reserves
            )
            if isolation_active:
                events.append(
                    self.reserves[isolated_asset].update_isolation_mode_debt(
                        -reserve.config.debt_ceiling_units(payback)
                    )
                )

            if use_a_tokens:
                reserve.a_token.burn_scaled(on_behalf_of, payback, reserve.liquidity_index)
                if payback == a_token_balance and account.is_using_as_collateral(asset):
                    account.set_using_as_collateral(asset, False)
                    events.append(
                        ReserveUsedAsCollateralDisabled(asset=asset, user=on_behalf_of)
                    )

            events.append(
                Repay(
                    asset=asset,
                    user=on_behalf_of,
                    repayer=repayer,
                    amount=payback,
                    use_a_tokens=use_a_tokens,
                )
            )
        return events

    def set_user_use_reserve_as_collateral(
        self, asset: str, use_as_collateral: bool, user: str
    ) -> list[Event]:
        with self.transaction() as events:
            now = self.clock()
            reserve = self._accrued_reserve(asset, now)
            account = self._account(user)
            validate_set_use_reserve_as_collateral(
                reserve, user_collateral_balance(reserve, user, now)
            )
            if use_as_collateral == account.is_using_as_collateral(asset):
                return events

            if use_as_collateral:
                require(
                    validate_use_as_collateral(account, self.reserves, reserve.config),
                    ErrorKind.USER_IN_ISOLATION_MODE_OR_LTV_ZERO,
                )
                account.set_using_as_collateral(asset, True)
                events.append(ReserveUsedAsCollateralEnabled(asset=asset, user=user))
            else:
                if account.is_borrowing_any():
                    validate_hf_and_ltv(
                        self.snapshot(now),
                        account,
                        user,
                        reserve,
                        collateral_disabled=frozenset({asset}),
                    )
                account.set_using_as_collateral(asset, False)
                events.append(ReserveUsedAsCollateralDisabled(asset=asset, user=user))
        return events

    def set_user_emode(self, category_id: int, user: str) -> list[Event]:
        with self.transaction() as events:
            account = self._account(user)
            validate_set_user_emode(self.snapshot(), account, user, category_id)
            account.emode_category = category_id
            events.append(UserEModeSet(user=user, category_id=category_id))
        return events

    def liquidation_call(
        self,
        collateral_asset: str,
        debt_asset: str,
        user: str,
        debt_to_cover: int,
        receive_a_token: bool,
        liquidator: str,
    ) -> list[Event]:
        """Repay part of an unhealthy position's debt for its collateral plus bonus."""
        with self.transaction() as events:
            now = self.clock()
            self._accrued_reserve(debt_asset, now)
            self._accrued_reserve(collateral_asset, now)
            _, liquidation_events = self.liquidation_engine.execute_liquidation_call(
                self.snapshot(now),
                collateral_asset,
                debt_asset,
                user,
                self._account(user),
                liquidator,
                self._account(liquidator),
                debt_to_cover,
                receive_a_token,
            )
            events.extend(liquidation_events)
        return events

    def mint_to_treasury(self, assets: Iterable[str]) -> list[Event]:
        """Credit the treasury with the reserve-factor income accrued so far."""
        with self.transaction() as events:
            now = self.clock()
            for asset in assets:
                reserve = self.reserve(asset)
                if not reserve.config.active:
                    continue
                reserve.update_state(now)
                accrued = reserve.accrued_to_treasury
                if accrued == 0:
                    continue
                reserve.accrued_to_treasury = 0
                index = reserve.liquidity_index
                amount = ray_mul(accrued, index)
                reserve.a_token.mint_to_treasury(self.treasury, amount, index)
                events.append(MintedToTreasury(asset=asset, amount_minted=amount))
        return events

    def delegate_underlying(self, asset: str, delegatee: str) -> list[Event]:
        with self.transaction() as events:
            self.reserve(asset).a_token.delegate_underlying_to(delegatee)
            events.append(UnderlyingDelegated(asset=asset, delegatee=delegatee))
        return events

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_user_account_data(self, user: str) -> UserAccountData:
        with self._lock:
            account = self.users.get(user) or UserAccount()
            return self.snapshot().account_data(account, user)

    def get_reserve_normalized_income(self, asset: str) -> int:
        with self._lock:
            return self.reserve(asset).normalized_income(self.clock())

    def get_reserve_normalized_variable_debt(self, asset: str) -> int:
        with self._lock:
            return self.reserve(asset).normalized_debt(self.clock())

    def get_user_reserve_data(self, asset: str, user: str) -> UserReserveData:
        with self._lock:
            now = self.clock()
            reserve = self.reserve(asset)
            account = self.users.get(user) or UserAccount()
            stable = reserve.stable_debt_token
            return UserReserveData(
                current_a_token_balance=user_collateral_balance(reserve, user, now),
                current_stable_debt=user_stable_debt(reserve, user, now),
                current_variable_debt=user_variable_debt(reserve, user, now),
                principal_stable_debt=stable.principal_balance_of(user),
                scaled_variable_debt=reserve.variable_debt_token.scaled_balance_of(user),
                stable_borrow_rate=stable.user_rate(user),
                liquidity_rate=reserve.current_liquidity_rate,
                stable_rate_last_updated=stable.user_last_update(user),
                usage_as_collateral_enabled=account.is_using_as_collateral(asset),
            )

    def get_reserve_data(self, asset: str) -> ReserveDataView:
        with self._lock:
            now = self.clock()
            reserve = self.reserve(asset)
            return ReserveDataView(
                asset=asset,
                id=reserve.id,
                liquidity_index=reserve.liquidity_index,
                variable_borrow_index=reserve.variable_borrow_index,
                current_liquidity_rate=reserve.current_liquidity_rate,
                current_variable_borrow_rate=reserve.current_variable_borrow_rate,
                current_stable_borrow_rate=reserve.current_stable_borrow_rate,
                last_update_timestamp=reserve.last_update_timestamp,
                accrued_to_treasury=reserve.accrued_to_treasury,
                isolation_mode_total_debt=reserve.isolation_mode_total_debt,
                available_liquidity=reserve.available_liquidity,
                total_a_token=reserve.a_token.total_supply(reserve.normalized_income(now)),
                total_stable_debt=reserve.total_stable_debt(now),
                total_variable_debt=reserve.variable_debt_token.total_supply(
                    reserve.normalized_debt(now)
                ),
            )
