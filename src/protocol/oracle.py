"""Price oracle and sequencer-uptime sentinel collaborators."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

# Base-currency prices carry 8 decimals.
PRICE_DECIMALS = 8
PRICE_UNIT = 10**PRICE_DECIMALS


class PriceOracle(ABC):
    """Returns the base-currency price of an asset or price source."""

    @abstractmethod
    def get_asset_price(self, asset: str) -> int:
        """Price of one whole unit of ``asset`` in base-currency units."""


class StaticPriceOracle(PriceOracle):
    """In-memory oracle with settable prices."""

    def __init__(self, prices: dict[str, int] | None = None) -> None:
        self._prices: dict[str, int] = dict(prices or {})

    def get_asset_price(self, asset: str) -> int:
        try:
            return self._prices[asset]
        except KeyError:
            raise KeyError(f"no price for {asset}") from None

    def set_asset_price(self, asset: str, price: int) -> None:
        if price < 0:
            raise ValueError("price must be non-negative")
        self._prices[asset] = price


class SequencerOracle(ABC):
    """Reports L2 sequencer (or oracle network) uptime."""

    @abstractmethod
    def is_up(self) -> bool:
        """True while the sequencer is operating."""

    @abstractmethod
    def seconds_since_up(self) -> int:
        """Seconds elapsed since the last down-to-up transition."""


class ManualSequencerOracle(SequencerOracle):
    """Sequencer status flipped explicitly, timed by an injected clock."""

    def __init__(self, clock: Callable[[], int], up: bool = True, since: int | None = None) -> None:
        self._clock = clock
        self._up = up
        self._since = clock() if since is None else since

    def set_up(self, up: bool) -> None:
        if up != self._up:
            self._up = up
            self._since = self._clock()
            logger.info("sequencer %s at %d", "up" if up else "down", self._since)

    def is_up(self) -> bool:
        return self._up

    def seconds_since_up(self) -> int:
        if not self._up:
            return 0
        return self._clock() - self._since


class PriceOracleSentinel:
    """Circuit breaker for borrows and liquidations after sequencer outages.

    Both actions are allowed only while the sequencer is up and more than
    ``grace_period`` seconds have passed since it came back.
    """

    def __init__(self, sequencer_oracle: SequencerOracle, grace_period: int) -> None:
        self.sequencer_oracle = sequencer_oracle
        self.grace_period = grace_period

    def is_borrow_allowed(self) -> bool:
        return self._is_up_and_grace_period_passed()

    def is_liquidation_allowed(self) -> bool:
        return self._is_up_and_grace_period_passed()

    def _is_up_and_grace_period_passed(self) -> bool:
        oracle = self.sequencer_oracle
        return oracle.is_up() and oracle.seconds_since_up() > self.grace_period

    def set_sequencer_oracle(self, sequencer_oracle: SequencerOracle) -> None:
        self.sequencer_oracle = sequencer_oracle

    def set_grace_period(self, grace_period: int) -> None:
        if grace_period < 0:
            raise ValueError("grace period must be non-negative")
        logger.info("sentinel grace period %d -> %d", self.grace_period, grace_period)
        self.grace_period = grace_period
