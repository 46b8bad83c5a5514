"""Typed event records emitted by pool operations.

Every state-changing call returns the events it produced, in emission order,
and appends them to ``Pool.event_log``.  Amounts are in asset units, rates
and indices in ray.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Event:
    """Base class for all emitted events."""


@dataclass(frozen=True)
class ReserveInitialized(Event):
    asset: str
    token_kind: str


@dataclass(frozen=True)
class ReserveDataUpdated(Event):
    asset: str
    liquidity_rate: int
    stable_borrow_rate: int
    variable_borrow_rate: int
    liquidity_index: int
    variable_borrow_index: int


@dataclass(frozen=True)
class Supply(Event):
    asset: str
    user: str
    amount: int


@dataclass(frozen=True)
class Withdraw(Event):
    asset: str
    user: str
    amount: int


@dataclass(frozen=True)
class Borrow(Event):
    asset: str
    user: str
    amount: int
    interest_rate_mode: str
    borrow_rate: int


@dataclass(frozen=True)
class Repay(Event):
    asset: str
    user: str
    repayer: str
    amount: int
    use_a_tokens: bool


@dataclass(frozen=True)
class LiquidationCall(Event):
    collateral_asset: str
    debt_asset: str
    user: str
    debt_to_cover: int
    liquidated_collateral_amount: int
    liquidator: str
    receive_a_token: bool


@dataclass(frozen=True)
class ReserveUsedAsCollateralEnabled(Event):
    asset: str
    user: str


@dataclass(frozen=True)
class ReserveUsedAsCollateralDisabled(Event):
    asset: str
    user: str


@dataclass(frozen=True)
class UserEModeSet(Event):
    user: str
    category_id: int


@dataclass(frozen=True)
class IsolationModeTotalDebtUpdated(Event):
    asset: str
    total_debt: int


@dataclass(frozen=True)
class MintedToTreasury(Event):
    asset: str
    amount_minted: int


@dataclass(frozen=True)
class UnderlyingDelegated(Event):
    asset: str
    delegatee: str


@dataclass(frozen=True)
class ReserveConfigChanged(Event):
    asset: str
    field: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class EModeCategoryAdded(Event):
    category_id: int
    ltv: int
    liquidation_threshold: int
    liquidation_bonus: int
    price_source: str | None
    label: str
