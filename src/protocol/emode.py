"""E-mode category dataclass."""

from dataclasses import dataclass


@dataclass(frozen=True)
class EModeCategory:
    """Efficiency Mode category parameters.

    Percentages are in basis points; ``liquidation_bonus`` includes the
    principal (10100 = 1% bonus).
    """

    category_id: int
    label: str
    ltv: int  # e.g. 9300
    liquidation_threshold: int  # e.g. 9500
    liquidation_bonus: int  # e.g. 10100
    price_source: str | None = None  # oracle id overriding member asset prices


def is_in_emode_category(user_category_id: int, asset_category_id: int) -> bool:
    """True when the user has a category and the asset belongs to it."""
    return user_category_id != 0 and asset_category_id == user_category_id
