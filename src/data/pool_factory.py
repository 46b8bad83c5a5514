"""Factory for creating a fully listed Pool from a static market table."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import replace

from src.data.constants import DEFAULT_GRACE_PERIOD, DEFAULT_MARKET, MARKET_ENV_VAR
from src.data.static_params import MARKETS, MarketParams
from src.protocol.clock import SystemClock
from src.protocol.configurator import PoolConfigurator
from src.protocol.oracle import (
    PriceOracle,
    PriceOracleSentinel,
    SequencerOracle,
    StaticPriceOracle,
)
from src.protocol.pool import Pool

logger = logging.getLogger(__name__)


def resolve_market(market: str | None = None) -> MarketParams:
    """Look up a market table, falling back to the default when unknown."""
    name = market or os.environ.get(MARKET_ENV_VAR) or DEFAULT_MARKET
    params = MARKETS.get(name)
    if params is None:
        logger.warning("Unknown market %r; using %r market", name, DEFAULT_MARKET)
        params = MARKETS[DEFAULT_MARKET]
    return params


def create_pool(
    market: str | None = None,
    clock: Callable[[], int] | None = None,
    oracle: PriceOracle | None = None,
    sentinel: PriceOracleSentinel | None = None,
    sequencer_oracle: SequencerOracle | None = None,
) -> Pool:
    """Create a pool with every reserve and eMode category of a market listed.

    Parameters
    ----------
    market : str | None
        Market table name.  Falls back to the ``LENDING_MARKET``
        environment variable, then to ``test``.
    clock : callable | None
        Time source; defaults to wall-clock seconds.
    oracle : PriceOracle | None
        Price oracle.  Defaults to a ``StaticPriceOracle`` seeded with the
        market's reference prices.
    sentinel : PriceOracleSentinel | None
        Optional borrow/liquidation circuit breaker.
    sequencer_oracle : SequencerOracle | None
        When given without ``sentinel``, a sentinel with the default
        one-hour grace period is built around it.

    Returns
    -------
    Pool
        Pool with reserves listed in table order.
    """
    params = resolve_market(market)
    if sentinel is None and sequencer_oracle is not None:
        sentinel = PriceOracleSentinel(sequencer_oracle, DEFAULT_GRACE_PERIOD)
    pool = Pool(
        clock=clock or SystemClock(),
        oracle=oracle or StaticPriceOracle(params.prices),
        sentinel=sentinel,
    )
    configurator = PoolConfigurator(pool)
    for category in params.emode_categories:
        configurator.set_emode_category(
            category.category_id,
            category.ltv,
            category.liquidation_threshold,
            category.liquidation_bonus,
            category.price_source,
            category.label,
        )
    for asset, listing in params.reserves.items():
        configurator.init_reserve(asset, replace(listing.config), listing.rate_params)
    logger.info("created %s market with %d reserves", params.name, len(pool.reserves))
    return pool
