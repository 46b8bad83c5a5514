"""Interest accumulation factors for liquidity and borrow indices."""

from src.protocol.errors import NonMonotonicTimestampError
from src.protocol.fixed_point import RAY, ray_mul

SECONDS_PER_YEAR = 365 * 24 * 3600


def _elapsed(last_update_timestamp: int, current_timestamp: int) -> int:
    if current_timestamp < last_update_timestamp:
        raise NonMonotonicTimestampError(
            f"timestamp {current_timestamp} precedes last update {last_update_timestamp}"
        )
    return current_timestamp - last_update_timestamp


def calculate_linear_interest(
    rate: int, last_update_timestamp: int, current_timestamp: int
) -> int:
    """Simple interest factor in ray: RAY + rate * dt / year."""
    dt = _elapsed(last_update_timestamp, current_timestamp)
    return RAY + rate * dt // SECONDS_PER_YEAR


def calculate_compounded_interest(
    rate: int, last_update_timestamp: int, current_timestamp: int
) -> int:
    """Per-second compounded interest factor in ray.

    Approximates (1 + rate / year) ** dt with the binomial expansion
    truncated after the cubic term:

        1 + dt*x + dt*(dt-1)/2 * x**2 + dt*(dt-1)*(dt-2)/6 * x**3,  x = rate/year

    The truncation under-estimates the exact factor, so borrowers are never
    overcharged; the drift is quantified in ``src.simulation.accrual_drift``.
    """
    exp = _elapsed(last_update_timestamp, current_timestamp)
    if exp == 0:
        return RAY

    exp_minus_one = exp - 1
    exp_minus_two = exp - 2 if exp > 2 else 0

    base_power_two = ray_mul(rate, rate) // (SECONDS_PER_YEAR * SECONDS_PER_YEAR)
    base_power_three = ray_mul(base_power_two, rate) // SECONDS_PER_YEAR

    second_term = exp * exp_minus_one * base_power_two // 2
    third_term = exp * exp_minus_one * exp_minus_two * base_power_three // 6

    return RAY + rate * exp // SECONDS_PER_YEAR + second_term + third_term
