"""Static market tables: reserve configs, rate strategies, eMode and prices."""

from dataclasses import dataclass, field

from src.data.constants import (
    AAVE,
    AAVE_DECIMALS,
    DAI,
    DAI_DECIMALS,
    EMODE_ETH_CORRELATED,
    MARKET_ETH,
    MARKET_TEST,
    USDC,
    USDC_DECIMALS,
    WETH,
    WETH_DECIMALS,
    WSTETH,
    WSTETH_DECIMALS,
)
from src.protocol.emode import EModeCategory
from src.protocol.interest_rate import InterestRateParams
from src.protocol.oracle import PRICE_UNIT
from src.protocol.reserve import ReserveConfig


@dataclass(frozen=True)
class ReserveListing:
    """Everything needed to list one reserve."""

    config: ReserveConfig
    rate_params: InterestRateParams
    price: int


@dataclass(frozen=True)
class MarketParams:
    name: str
    reserves: dict[str, ReserveListing] = field(default_factory=dict)
    emode_categories: tuple[EModeCategory, ...] = ()

    @property
    def prices(self) -> dict[str, int]:
        return {asset: listing.price for asset, listing in self.reserves.items()}


# --- Rate strategies ---

_STABLECOIN_RATES = InterestRateParams.from_decimals(
    optimal_usage_ratio="0.90",
    base_variable_borrow_rate="0",
    variable_rate_slope1="0.04",
    variable_rate_slope2="0.60",
    stable_rate_slope1="0.005",
    stable_rate_slope2="0.60",
    base_stable_rate_offset="0.01",
    stable_rate_excess_offset="0.08",
    optimal_stable_to_total_debt_ratio="0.20",
)

_WETH_RATES = InterestRateParams.from_decimals(
    optimal_usage_ratio="0.92",
    base_variable_borrow_rate="0",
    variable_rate_slope1="0.027",
    variable_rate_slope2="0.40",
)

_WSTETH_RATES = InterestRateParams.from_decimals(
    optimal_usage_ratio="0.80",
    base_variable_borrow_rate="0",
    variable_rate_slope1="0.01",
    variable_rate_slope2="0.40",
)

_VOLATILE_RATES = InterestRateParams.from_decimals(
    optimal_usage_ratio="0.45",
    base_variable_borrow_rate="0",
    variable_rate_slope1="0.07",
    variable_rate_slope2="3.00",
)

_ETH_CORRELATED = EModeCategory(
    category_id=EMODE_ETH_CORRELATED,
    label="ETH correlated",
    ltv=9350,
    liquidation_threshold=9550,
    liquidation_bonus=10100,
)

# --- Test market: stablecoins, ETH pair and one isolated asset ---

_TEST_MARKET = MarketParams(
    name=MARKET_TEST,
    reserves={
        DAI: ReserveListing(
            config=ReserveConfig(
                decimals=DAI_DECIMALS,
                ltv=8000,
                liquidation_threshold=8250,
                liquidation_bonus=10500,
                liquidation_protocol_fee=1000,
                reserve_factor=1000,
                borrowing_enabled=True,
                stable_borrowing_enabled=True,
                borrowable_in_isolation=True,
            ),
            rate_params=_STABLECOIN_RATES,
            price=1 * PRICE_UNIT,
        ),
        USDC: ReserveListing(
            config=ReserveConfig(
                decimals=USDC_DECIMALS,
                ltv=8000,
                liquidation_threshold=8250,
                liquidation_bonus=10500,
                liquidation_protocol_fee=1000,
                reserve_factor=1000,
                borrowing_enabled=True,
                stable_borrowing_enabled=True,
                borrowable_in_isolation=True,
            ),
            rate_params=_STABLECOIN_RATES,
            price=1 * PRICE_UNIT,
        ),
        WETH: ReserveListing(
            config=ReserveConfig(
                decimals=WETH_DECIMALS,
                ltv=8050,
                liquidation_threshold=8300,
                liquidation_bonus=10500,
                liquidation_protocol_fee=1000,
                reserve_factor=1500,
                borrowing_enabled=True,
                emode_category=EMODE_ETH_CORRELATED,
            ),
            rate_params=_WETH_RATES,
            price=2000 * PRICE_UNIT,
        ),
        WSTETH: ReserveListing(
            config=ReserveConfig(
                decimals=WSTETH_DECIMALS,
                ltv=7950,
                liquidation_threshold=8100,
                liquidation_bonus=10700,
                liquidation_protocol_fee=1000,
                reserve_factor=3500,
                borrowing_enabled=True,
                emode_category=EMODE_ETH_CORRELATED,
            ),
            rate_params=_WSTETH_RATES,
            price=2360 * PRICE_UNIT,  # ~1.18 ETH incl. staking rewards
        ),
        AAVE: ReserveListing(
            config=ReserveConfig(
                decimals=AAVE_DECIMALS,
                ltv=6000,
                liquidation_threshold=7000,
                liquidation_bonus=10750,
                reserve_factor=2000,
                debt_ceiling=1_000_000,  # $10,000.00
            ),
            rate_params=_VOLATILE_RATES,
            price=100 * PRICE_UNIT,
        ),
    },
    emode_categories=(_ETH_CORRELATED,),
)

# --- ETH market: parameters sourced from Aave V3 mainnet governance ---

_ETH_MARKET = MarketParams(
    name=MARKET_ETH,
    reserves={
        WETH: ReserveListing(
            config=ReserveConfig(
                decimals=WETH_DECIMALS,
                ltv=8050,
                liquidation_threshold=8300,
                liquidation_bonus=10500,
                liquidation_protocol_fee=1000,
                reserve_factor=1500,
                borrowing_enabled=True,
                emode_category=EMODE_ETH_CORRELATED,
                flash_loan_enabled=True,
            ),
            rate_params=_WETH_RATES,
            price=2000 * PRICE_UNIT,
        ),
        WSTETH: ReserveListing(
            config=ReserveConfig(
                decimals=WSTETH_DECIMALS,
                ltv=7950,
                liquidation_threshold=8100,
                liquidation_bonus=10700,
                liquidation_protocol_fee=1000,
                reserve_factor=3500,
                borrowing_enabled=True,
                supply_cap=1_200_000,
                borrow_cap=12_000,
                emode_category=EMODE_ETH_CORRELATED,
                flash_loan_enabled=True,
            ),
            rate_params=_WSTETH_RATES,
            price=2360 * PRICE_UNIT,
        ),
    },
    emode_categories=(_ETH_CORRELATED,),
)

MARKETS: dict[str, MarketParams] = {
    MARKET_TEST: _TEST_MARKET,
    MARKET_ETH: _ETH_MARKET,
}
