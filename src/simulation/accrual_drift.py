"""Long-horizon precision of the compounded-interest approximation.

The variable borrow index grows by a third-order binomial expansion of
``(1 + r/SECONDS_PER_YEAR) ** dt``.  The truncation always under-estimates
the exact factor, and the gap grows with ``r * dt``.  This module tabulates
that gap over multi-year horizons so the chosen order can be checked against
an acceptable drift.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import pandas as pd

from src.protocol.fixed_point import RAY
from src.protocol.interest_math import SECONDS_PER_YEAR, calculate_compounded_interest
from src.protocol.interest_rate import to_ray

DEFAULT_HORIZONS_YEARS = (1 / 365, 30 / 365, 1.0, 2.0, 5.0, 10.0)


def compounding_drift(
    rate: float,
    horizons: Sequence[float] = DEFAULT_HORIZONS_YEARS,
) -> pd.DataFrame:
    """Compare the approximated compounded factor with exact compounding.

    Args:
        rate: Annual borrow rate as a decimal fraction (0.05 = 5%).
        horizons: Accrual horizons in years; each is applied as a single
            accrual step, the worst case for the approximation.

    Returns:
        DataFrame indexed by ``years`` with columns ``seconds``,
        ``approximated``, ``per_second`` (exact per-second compounding),
        ``continuous`` (``exp(rate * years)``), ``drift_per_second`` and
        ``drift_continuous`` (relative error ``approximated / exact - 1``).
    """
    if rate < 0:
        raise ValueError("rate must be non-negative")

    rate_ray = to_ray(rate)
    years = np.asarray(horizons, dtype=float)
    seconds = np.round(years * SECONDS_PER_YEAR).astype(np.int64)

    approximated = np.array(
        [calculate_compounded_interest(rate_ray, 0, int(s)) / RAY for s in seconds]
    )
    per_second = np.exp(seconds * np.log1p(rate / SECONDS_PER_YEAR))
    continuous = np.exp(rate * years)

    return pd.DataFrame(
        {
            "seconds": seconds,
            "approximated": approximated,
            "per_second": per_second,
            "continuous": continuous,
            "drift_per_second": approximated / per_second - 1.0,
            "drift_continuous": approximated / continuous - 1.0,
        },
        index=pd.Index(years, name="years"),
    )


def drift_by_rate(
    rates: Sequence[float],
    horizons: Sequence[float] = DEFAULT_HORIZONS_YEARS,
) -> pd.DataFrame:
    """Per-second drift for several rates; rows are horizons, columns rates."""
    return pd.DataFrame(
        {rate: compounding_drift(rate, horizons)["drift_per_second"] for rate in rates}
    )
