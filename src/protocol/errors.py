"""Protocol error kinds and exception types."""

from enum import Enum


class ErrorKind(Enum):
    """Categorical validation failures.

    Each member carries the protocol's numeric error code and a short message.
    """

    INVALID_MINT_AMOUNT = ("24", "Invalid amount to mint")
    INVALID_BURN_AMOUNT = ("25", "Invalid amount to burn")
    INVALID_AMOUNT = ("26", "Amount must be greater than 0")
    RESERVE_INACTIVE = ("27", "Action requires an active reserve")
    RESERVE_FROZEN = ("28", "Action cannot be performed because the reserve is frozen")
    RESERVE_PAUSED = ("29", "Action cannot be performed because the reserve is paused")
    BORROWING_NOT_ENABLED = ("30", "Borrowing is not enabled")
    STABLE_BORROWING_NOT_ENABLED = ("31", "Stable borrowing is not enabled")
    NOT_ENOUGH_AVAILABLE_USER_BALANCE = (
        "32",
        "User cannot withdraw more than the available balance",
    )
    INVALID_INTEREST_RATE_MODE_SELECTED = ("33", "Invalid interest rate mode selected")
    COLLATERAL_BALANCE_IS_ZERO = ("34", "The collateral balance is 0")
    HEALTH_FACTOR_LOWER_THAN_LIQUIDATION_THRESHOLD = (
        "35",
        "Health factor is lesser than the liquidation threshold",
    )
    COLLATERAL_CANNOT_COVER_NEW_BORROW = (
        "36",
        "There is not enough collateral to cover a new borrow",
    )
    COLLATERAL_SAME_AS_BORROWING_CURRENCY = (
        "37",
        "Collateral is (mostly) the same currency that is being borrowed",
    )
    AMOUNT_BIGGER_THAN_MAX_LOAN_SIZE_STABLE = (
        "38",
        "The requested amount is greater than the max loan size in stable rate mode",
    )
    NO_DEBT_OF_SELECTED_TYPE = ("39", "User has no debt of the selected type")
    NO_EXPLICIT_AMOUNT_TO_REPAY_ON_BEHALF = (
        "40",
        "To repay on behalf of a user an explicit amount to repay is needed",
    )
    UNDERLYING_BALANCE_ZERO = ("43", "The underlying balance needs to be greater than 0")
    HEALTH_FACTOR_NOT_BELOW_THRESHOLD = ("45", "Health factor is not below the threshold")
    COLLATERAL_CANNOT_BE_LIQUIDATED = ("46", "The collateral chosen cannot be liquidated")
    SPECIFIED_CURRENCY_NOT_BORROWED_BY_USER = (
        "47",
        "User did not borrow the specified currency",
    )
    BORROW_CAP_EXCEEDED = ("50", "Borrow cap is exceeded")
    SUPPLY_CAP_EXCEEDED = ("51", "Supply cap is exceeded")
    DEBT_CEILING_EXCEEDED = ("53", "Debt ceiling is exceeded")
    LTV_VALIDATION_FAILED = ("57", "Ltv validation failed")
    INCONSISTENT_EMODE_CATEGORY = ("58", "Inconsistent eMode category")
    PRICE_ORACLE_SENTINEL_CHECK_FAILED = ("59", "Price oracle sentinel validation failed")
    ASSET_NOT_BORROWABLE_IN_ISOLATION = ("60", "Asset is not borrowable in isolation mode")
    RESERVE_ALREADY_INITIALIZED = ("61", "Reserve has already been initialized")
    USER_IN_ISOLATION_MODE_OR_LTV_ZERO = ("62", "User is in isolation mode or ltv is zero")
    INVALID_RESERVE_PARAMS = ("20", "Invalid risk parameters for the reserve")
    INVALID_EMODE_CATEGORY_PARAMS = ("21", "Invalid risk parameters for the eMode category")
    EMODE_CATEGORY_RESERVED = (
        "16",
        "Zero eMode category is reserved for volatile heterogeneous assets",
    )
    INVALID_EMODE_CATEGORY_ASSIGNMENT = ("17", "Invalid eMode category assignment to asset")
    RESERVE_LIQUIDITY_NOT_ZERO = ("18", "The liquidity of the reserve needs to be 0")
    INVALID_RESERVE_FACTOR = ("67", "Invalid reserve factor parameter for the reserve")
    INVALID_BORROW_CAP = ("68", "Invalid borrow cap for the reserve")
    INVALID_SUPPLY_CAP = ("69", "Invalid supply cap for the reserve")
    INVALID_LIQUIDATION_PROTOCOL_FEE = (
        "70",
        "Invalid liquidation protocol fee for the reserve",
    )
    INVALID_DEBT_CEILING = ("73", "Invalid debt ceiling for the reserve")
    OPERATION_NOT_SUPPORTED = ("80", "Operation not supported")
    DEBT_CEILING_NOT_ZERO = ("81", "Debt ceiling is not zero")
    ASSET_NOT_LISTED = ("82", "Asset is not listed")
    SILOED_BORROWING_VIOLATION = ("89", "User is trying to borrow multiple assets including a siloed one")
    RESERVE_DEBT_NOT_ZERO = ("90", "The total debt of the reserve needs to be 0")
    NOT_ENOUGH_LIQUIDITY = ("NL", "The reserve does not hold enough underlying liquidity")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def message(self) -> str:
        return self.value[1]


class ProtocolError(Exception):
    """A validation failure raised before any state is mutated."""

    def __init__(self, kind: ErrorKind, detail: str | None = None) -> None:
        self.kind = kind
        self.detail = detail
        text = f"{kind.name} ({kind.code}): {kind.message}"
        if detail:
            text = f"{text} [{detail}]"
        super().__init__(text)


class MathError(ArithmeticError):
    """Fixed-point overflow, underflow or division by zero."""


class NonMonotonicTimestampError(ValueError):
    """Accrual was requested for a timestamp earlier than the last update."""


def require(condition: bool, kind: ErrorKind, detail: str | None = None) -> None:
    """Raise ``ProtocolError(kind)`` unless ``condition`` holds."""
    if not condition:
        raise ProtocolError(kind, detail)
