"""Tests for market tables and pool construction."""

from __future__ import annotations

import logging
from unittest.mock import patch

import pytest

from src.data import create_pool
from src.data.constants import AAVE, DAI, EMODE_ETH_CORRELATED, USDC, WETH, WSTETH
from src.data.pool_factory import resolve_market
from src.data.static_params import MARKETS
from src.protocol.clock import ManualClock
from src.protocol.events import EModeCategoryAdded, ReserveInitialized
from src.protocol.fixed_point import PERCENTAGE_FACTOR, percent_mul
from src.protocol.oracle import StaticPriceOracle


class TestMarketTables:
    @pytest.mark.parametrize("name", sorted(MARKETS))
    def test_bonus_paid_from_collateral(self, name: str) -> None:
        for listing in MARKETS[name].reserves.values():
            cfg = listing.config
            assert cfg.ltv <= cfg.liquidation_threshold
            assert percent_mul(cfg.liquidation_threshold, cfg.liquidation_bonus) <= (
                PERCENTAGE_FACTOR
            )

    @pytest.mark.parametrize("name", sorted(MARKETS))
    def test_emode_above_member_thresholds(self, name: str) -> None:
        market = MARKETS[name]
        for category in market.emode_categories:
            for listing in market.reserves.values():
                if listing.config.emode_category == category.category_id:
                    assert category.liquidation_threshold > listing.config.liquidation_threshold

    def test_prices(self) -> None:
        prices = MARKETS["test"].prices
        assert prices[DAI] == 10**8
        assert prices[WETH] == 2000 * 10**8


class TestResolveMarket:
    def test_explicit(self) -> None:
        assert resolve_market("eth").name == "eth"

    @patch.dict("os.environ", {"LENDING_MARKET": "eth"})
    def test_env_var(self) -> None:
        assert resolve_market().name == "eth"

    @patch.dict("os.environ", {}, clear=True)
    def test_default(self) -> None:
        assert resolve_market().name == "test"

    def test_unknown_falls_back(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="src.data.pool_factory"):
            params = resolve_market("nowhere")
        assert params.name == "test"
        assert "nowhere" in caplog.text


class TestCreatePool:
    def test_test_market(self) -> None:
        pool = create_pool("test", clock=ManualClock())
        assert list(pool.reserves) == [DAI, USDC, WETH, WSTETH, AAVE]
        assert [pool.reserve(a).id for a in pool.reserves] == [0, 1, 2, 3, 4]
        assert pool.emode_categories[EMODE_ETH_CORRELATED].liquidation_threshold == 9550

    def test_listing_events_logged(self) -> None:
        pool = create_pool("test", clock=ManualClock())
        assert isinstance(pool.event_log[0], EModeCategoryAdded)
        listed = [e.asset for e in pool.event_log if isinstance(e, ReserveInitialized)]
        assert listed == list(pool.reserves)

    def test_eth_market(self) -> None:
        pool = create_pool("eth", clock=ManualClock())
        assert set(pool.reserves) == {WETH, WSTETH}
        assert pool.reserve(WSTETH).config.supply_cap == 1_200_000
        assert pool.reserve(WETH).config.flash_loan_enabled

    def test_configs_not_shared(self) -> None:
        first = create_pool("test", clock=ManualClock())
        second = create_pool("test", clock=ManualClock())
        first.reserve(DAI).config.frozen = True
        assert not second.reserve(DAI).config.frozen
        assert not MARKETS["test"].reserves[DAI].config.frozen

    def test_custom_oracle(self) -> None:
        oracle = StaticPriceOracle({DAI: 1, USDC: 1, WETH: 1, WSTETH: 1, AAVE: 1})
        pool = create_pool("test", clock=ManualClock(), oracle=oracle)
        assert pool.oracle is oracle
        assert pool.sentinel is None
