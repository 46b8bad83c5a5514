"""Accounting-token ledgers: scaled supply, scaled variable debt, stable debt.

The engine instructs these ledgers but treats their balances as authoritative.
``ScaledBalanceLedger`` is the collaborator interface; ``ScaledBalanceToken``
holds the dict-backed bookkeeping, and ``AToken`` and
``VariableDebtToken`` are the in-memory implementations shipped with the pool.

Rounding directions for scaled amounts:

    supply mint  -> floor     supply burn -> ceil     supply balance -> floor
    debt mint    -> ceil      debt burn   -> floor    debt balance   -> ceil
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from src.protocol.errors import ErrorKind, MathError, ProtocolError
from src.protocol.fixed_point import (
    ray_div,
    ray_div_ceil,
    ray_div_floor,
    ray_mul,
    ray_mul_ceil,
    ray_mul_floor,
    wad_to_ray,
)
from src.protocol.interest_math import calculate_compounded_interest


class TokenKind(Enum):
    """aToken variant selected when the reserve is listed."""

    GENERIC = "generic"
    DELEGATION_AWARE = "delegation_aware"


class ScaledBalanceLedger(ABC):
    """Interface of a ledger storing balances divided by a growing index."""

    @abstractmethod
    def mint_scaled(self, user: str, amount: int, index: int) -> tuple[bool, int]:
        """Credit ``amount`` at ``index``; return (was_first_balance, scaled)."""

    @abstractmethod
    def burn_scaled(self, user: str, amount: int, index: int) -> int:
        """Debit ``amount`` at ``index``; return the scaled amount burned."""

    @abstractmethod
    def transfer_scaled(self, sender: str, recipient: str, amount: int, index: int) -> int:
        """Move ``amount`` at ``index`` between users; return the scaled amount."""

    @abstractmethod
    def scaled_balance_of(self, user: str) -> int:
        """Scaled balance of ``user``."""

    @abstractmethod
    def scaled_total_supply(self) -> int:
        """Sum of all scaled balances."""

    @abstractmethod
    def balance_of(self, user: str, index: int) -> int:
        """Balance of ``user`` in asset units at ``index``."""


class ScaledBalanceToken(ScaledBalanceLedger):
    """Dict-backed scaled ledger; subclasses fix the rounding direction."""

    def __init__(self, asset: str) -> None:
        self.asset = asset
        self._scaled: dict[str, int] = {}
        self._scaled_total = 0

    # Rounding hooks
    @abstractmethod
    def _scale_for_mint(self, amount: int, index: int) -> int: ...

    @abstractmethod
    def _scale_for_burn(self, amount: int, index: int) -> int: ...

    @abstractmethod
    def _unscale(self, scaled: int, index: int) -> int: ...

    def mint_scaled(self, user: str, amount: int, index: int) -> tuple[bool, int]:
        scaled = self._scale_for_mint(amount, index)
        if scaled == 0:
            raise ProtocolError(ErrorKind.INVALID_MINT_AMOUNT, f"{amount} at index {index}")
        previous = self._scaled.get(user, 0)
        self._scaled[user] = previous + scaled
        self._scaled_total += scaled
        return previous == 0, scaled

    def burn_scaled(self, user: str, amount: int, index: int) -> int:
        current = self._scaled.get(user, 0)
        if amount >= self._unscale(current, index):
            scaled = current
        else:
            scaled = min(self._scale_for_burn(amount, index), current)
        if scaled == 0:
            raise ProtocolError(ErrorKind.INVALID_BURN_AMOUNT, f"{amount} at index {index}")
        self._debit(user, scaled)
        return scaled

    def transfer_scaled(self, sender: str, recipient: str, amount: int, index: int) -> int:
        """Move ``amount`` of balance between users; returns the scaled amount.

        Moving the sender's full balance moves every scaled unit, so no dust is
        left behind.
        """
        current = self._scaled.get(sender, 0)
        if amount >= self._unscale(current, index):
            scaled = current
        else:
            scaled = min(self._scale_for_burn(amount, index), current)
        if scaled == 0:
            return 0
        self._debit(sender, scaled)
        self._scaled[recipient] = self._scaled.get(recipient, 0) + scaled
        self._scaled_total += scaled
        return scaled

    def _debit(self, user: str, scaled: int) -> None:
        current = self._scaled.get(user, 0)
        if scaled > current:
            raise MathError("burn exceeds scaled balance")
        remaining = current - scaled
        if remaining == 0:
            self._scaled.pop(user, None)
        else:
            self._scaled[user] = remaining
        self._scaled_total -= scaled

    def scaled_balance_of(self, user: str) -> int:
        return self._scaled.get(user, 0)

    def scaled_total_supply(self) -> int:
        return self._scaled_total

    def balance_of(self, user: str, index: int) -> int:
        return self._unscale(self._scaled.get(user, 0), index)

    def total_supply(self, index: int) -> int:
        return self._unscale(self._scaled_total, index)

    def holders(self) -> list[str]:
        return list(self._scaled)


class AToken(ScaledBalanceToken):
    """Interest-bearing supply ledger."""

    def __init__(self, asset: str, kind: TokenKind = TokenKind.GENERIC) -> None:
        super().__init__(asset)
        self.kind = kind
        self.underlying_delegatee: str | None = None

    def _scale_for_mint(self, amount: int, index: int) -> int:
        return ray_div_floor(amount, index)

    def _scale_for_burn(self, amount: int, index: int) -> int:
        return ray_div_ceil(amount, index)

    def _unscale(self, scaled: int, index: int) -> int:
        return ray_mul_floor(scaled, index)

    def mint_to_treasury(self, treasury: str, amount: int, index: int) -> int:
        """Credit accrued reserve-factor income; returns the scaled amount."""
        scaled = self._scale_for_mint(amount, index)
        if scaled == 0:
            return 0
        self._scaled[treasury] = self._scaled.get(treasury, 0) + scaled
        self._scaled_total += scaled
        return scaled

    def delegate_underlying_to(self, delegatee: str) -> None:
        if self.kind is not TokenKind.DELEGATION_AWARE:
            raise ProtocolError(ErrorKind.OPERATION_NOT_SUPPORTED, "token is not delegation aware")
        self.underlying_delegatee = delegatee


class VariableDebtToken(ScaledBalanceToken):
    """Scaled variable debt ledger."""

    def _scale_for_mint(self, amount: int, index: int) -> int:
        return ray_div_ceil(amount, index)

    def _scale_for_burn(self, amount: int, index: int) -> int:
        return ray_div_floor(amount, index)

    def _unscale(self, scaled: int, index: int) -> int:
        return ray_mul_ceil(scaled, index)


@dataclass
class StableDebtPosition:
    principal: int
    rate: int
    last_update: int


@dataclass(frozen=True)
class StableMintResult:
    is_first_borrow: bool
    next_supply: int
    next_avg_rate: int


class StableDebtToken:
    """Fixed-rate debt ledger.

    Each user compounds at their own locked-in rate from their last update.
    The total supply compounds at the debt-weighted average rate from the
    last supply update.
    """

    def __init__(self, asset: str) -> None:
        self.asset = asset
        self._positions: dict[str, StableDebtPosition] = {}
        self.total_principal = 0
        self.avg_stable_rate = 0
        self.total_supply_timestamp = 0

    def principal_balance_of(self, user: str) -> int:
        pos = self._positions.get(user)
        return pos.principal if pos else 0

    def user_rate(self, user: str) -> int:
        pos = self._positions.get(user)
        return pos.rate if pos else 0

    def user_last_update(self, user: str) -> int:
        pos = self._positions.get(user)
        return pos.last_update if pos else 0

    def balance_of(self, user: str, now: int) -> int:
        pos = self._positions.get(user)
        if pos is None or pos.principal == 0:
            return 0
        factor = calculate_compounded_interest(pos.rate, pos.last_update, now)
        return ray_mul(pos.principal, factor)

    def total_supply(self, now: int) -> int:
        return self._total_supply_at(self.avg_stable_rate, now)

    def _total_supply_at(self, avg_rate: int, now: int) -> int:
        if self.total_principal == 0:
            return 0
        factor = calculate_compounded_interest(avg_rate, self.total_supply_timestamp, now)
        return ray_mul(self.total_principal, factor)

    def mint(self, user: str, amount: int, rate: int, now: int) -> StableMintResult:
        """Add ``amount`` of debt at ``rate``, blending the user and average rates."""
        if amount == 0:
            raise ProtocolError(ErrorKind.INVALID_MINT_AMOUNT)
        current_balance = self.balance_of(user, now)
        previous_supply = self.total_supply(now)
        next_supply = previous_supply + amount
        amount_in_ray = wad_to_ray(amount)

        current_rate = self.user_rate(user)
        next_user_rate = ray_div(
            ray_mul(current_rate, wad_to_ray(current_balance)) + ray_mul(amount_in_ray, rate),
            wad_to_ray(current_balance + amount),
        )
        self._positions[user] = StableDebtPosition(
            principal=current_balance + amount,
            rate=next_user_rate,
            last_update=now,
        )

        self.avg_stable_rate = ray_div(
            ray_mul(self.avg_stable_rate, wad_to_ray(previous_supply))
            + ray_mul(rate, amount_in_ray),
            wad_to_ray(next_supply),
        )
        self.total_principal = next_supply
        self.total_supply_timestamp = now
        return StableMintResult(
            is_first_borrow=current_balance == 0,
            next_supply=next_supply,
            next_avg_rate=self.avg_stable_rate,
        )

    def burn(self, user: str, amount: int, now: int) -> tuple[int, int]:
        """Remove ``amount`` of debt; returns (next_supply, next_avg_rate)."""
        current_balance = self.balance_of(user, now)
        if amount > current_balance:
            raise ProtocolError(ErrorKind.INVALID_BURN_AMOUNT, "burn exceeds stable debt")
        previous_supply = self.total_supply(now)
        user_rate = self.user_rate(user)

        if previous_supply <= amount:
            self.avg_stable_rate = 0
            self.total_principal = 0
        else:
            next_supply = previous_supply - amount
            first_term = ray_mul(self.avg_stable_rate, wad_to_ray(previous_supply))
            second_term = ray_mul(user_rate, wad_to_ray(amount))
            if second_term >= first_term:
                # Rounding left the user's share above the pool's; clear both.
                self.avg_stable_rate = 0
                self.total_principal = 0
            else:
                self.avg_stable_rate = ray_div(first_term - second_term, wad_to_ray(next_supply))
                self.total_principal = next_supply

        if amount == current_balance:
            self._positions.pop(user, None)
        else:
            self._positions[user] = StableDebtPosition(
                principal=current_balance - amount,
                rate=user_rate,
                last_update=now,
            )
        self.total_supply_timestamp = now
        return self.total_principal, self.avg_stable_rate

    def holders(self) -> list[str]:
        return list(self._positions)
