"""Ray, wad and percentage fixed-point arithmetic.

All operands are non-negative Python integers bounded by the 256-bit unsigned
range. Results that would leave that range raise ``MathError`` instead of
wrapping or saturating.

Rounding:
    The plain variants (``ray_mul``, ``ray_div``, ``wad_mul``, ``wad_div``,
    ``percent_mul``, ``percent_div``) round half up.  The ``_floor`` and
    ``_ceil`` variants are used where the direction must favour the protocol,
    e.g. minting supply shares rounds down while minting debt shares rounds up.
"""

from src.protocol.errors import MathError

MAX_UINT256 = 2**256 - 1

WAD = 10**18
HALF_WAD = WAD // 2

RAY = 10**27
HALF_RAY = RAY // 2

WAD_RAY_RATIO = 10**9

PERCENTAGE_FACTOR = 10_000
HALF_PERCENTAGE_FACTOR = PERCENTAGE_FACTOR // 2


def _check_operand(value: int) -> None:
    if value < 0:
        raise MathError("negative operand")
    if value > MAX_UINT256:
        raise MathError("operand exceeds uint256")


def _check_result(value: int) -> int:
    if value > MAX_UINT256:
        raise MathError("MUL_OVERFLOW")
    return value


def ray_mul(a: int, b: int) -> int:
    _check_operand(a)
    _check_operand(b)
    if b != 0 and a > (MAX_UINT256 - HALF_RAY) // b:
        raise MathError("MUL_OVERFLOW")
    return (a * b + HALF_RAY) // RAY


def ray_mul_floor(a: int, b: int) -> int:
    _check_operand(a)
    _check_operand(b)
    return _check_result(a * b) // RAY


def ray_mul_ceil(a: int, b: int) -> int:
    _check_operand(a)
    _check_operand(b)
    product = _check_result(a * b)
    return product // RAY + (1 if product % RAY else 0)


def ray_div(a: int, b: int) -> int:
    _check_operand(a)
    _check_operand(b)
    if b == 0:
        raise MathError("ZERO_DIVISION")
    if a > (MAX_UINT256 - b // 2) // RAY:
        raise MathError("DIV_INTERNAL")
    return (a * RAY + b // 2) // b


def ray_div_floor(a: int, b: int) -> int:
    _check_operand(a)
    _check_operand(b)
    if b == 0:
        raise MathError("ZERO_DIVISION")
    return _check_result(a * RAY) // b


def ray_div_ceil(a: int, b: int) -> int:
    _check_operand(a)
    _check_operand(b)
    if b == 0:
        raise MathError("ZERO_DIVISION")
    numerator = _check_result(a * RAY)
    return numerator // b + (1 if numerator % b else 0)


def wad_mul(a: int, b: int) -> int:
    _check_operand(a)
    _check_operand(b)
    if b != 0 and a > (MAX_UINT256 - HALF_WAD) // b:
        raise MathError("MUL_OVERFLOW")
    return (a * b + HALF_WAD) // WAD


def wad_div(a: int, b: int) -> int:
    _check_operand(a)
    _check_operand(b)
    if b == 0:
        raise MathError("ZERO_DIVISION")
    if a > (MAX_UINT256 - b // 2) // WAD:
        raise MathError("DIV_INTERNAL")
    return (a * WAD + b // 2) // b


def wad_to_ray(a: int) -> int:
    _check_operand(a)
    return _check_result(a * WAD_RAY_RATIO)


def ray_to_wad(a: int) -> int:
    _check_operand(a)
    result, remainder = divmod(a, WAD_RAY_RATIO)
    if remainder >= WAD_RAY_RATIO // 2:
        result += 1
    return result


def percent_mul(value: int, percentage: int) -> int:
    """Multiply ``value`` by a basis-point percentage, rounding half up."""
    _check_operand(value)
    _check_operand(percentage)
    if percentage != 0 and value > (MAX_UINT256 - HALF_PERCENTAGE_FACTOR) // percentage:
        raise MathError("MUL_OVERFLOW")
    return (value * percentage + HALF_PERCENTAGE_FACTOR) // PERCENTAGE_FACTOR


def percent_div(value: int, percentage: int) -> int:
    """Divide ``value`` by a basis-point percentage, rounding half up."""
    _check_operand(value)
    _check_operand(percentage)
    if percentage == 0:
        raise MathError("ZERO_DIVISION")
    if value > (MAX_UINT256 - percentage // 2) // PERCENTAGE_FACTOR:
        raise MathError("DIV_INTERNAL")
    return (value * PERCENTAGE_FACTOR + percentage // 2) // percentage


def sub(a: int, b: int) -> int:
    """Checked subtraction; underflow is fatal."""
    if b > a:
        raise MathError("SUB_UNDERFLOW")
    return a - b
