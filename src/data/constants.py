"""Asset identifiers and market constants."""

# Asset symbols
WETH = "WETH"
WSTETH = "wstETH"
USDC = "USDC"
DAI = "DAI"
AAVE = "AAVE"

# E-mode category IDs
EMODE_ETH_CORRELATED = 1

# Decimals
WETH_DECIMALS = 18
WSTETH_DECIMALS = 18
USDC_DECIMALS = 6
DAI_DECIMALS = 18
AAVE_DECIMALS = 18

# Market names accepted by create_pool
MARKET_TEST = "test"
MARKET_ETH = "eth"
DEFAULT_MARKET = MARKET_TEST
MARKET_ENV_VAR = "LENDING_MARKET"

# Sentinel grace period applied when a sequencer oracle is wired in (1 hour)
DEFAULT_GRACE_PERIOD = 3600
