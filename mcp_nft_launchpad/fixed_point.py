"""
Overflow-Checked Fixed-Point Arithmetic

Every quantity handled by the engine is a non-negative integer in the smallest unit of its asset.
This module provides the arithmetic primitives the curve, bridge and sequencer are built from.
Each primitive rejects results outside ``[0, U128_MAX]`` and zero divisors with a typed error
instead of wrapping around or producing a silently wrong value.

Rounding Policy:
- Divisions truncate (``Rounding.down``) unless ``Rounding.up`` is requested
- Quotes always round in the protocol's favour: amounts paid out round down, fees collected
  round up, and the post-trade reserve of the asset handed to the user rounds up

Scaling:
- Rates are basis points over ``BPS_DENOMINATOR``
- Prices are integers scaled by ``PRICE_SCALE`` (base units per NFT unit)
"""
import math
from enum import Enum

from mcp_nft_launchpad.errors import DivideByZeroError, InvalidInputError, MathOverflowError

U128_MAX = 2**128 - 1
BPS_DENOMINATOR = 10_000
PRICE_DECIMALS = 9
PRICE_SCALE = 10**PRICE_DECIMALS


class Rounding(str, Enum):
    down = "down"
    up = "up"


class RoundingBias(str, Enum):
    """Which party a rounded quote field favours."""

    protocol = "protocol"
    user = "user"


def _checked(value: int, operation: str) -> int:
    if value < 0:
        raise MathOverflowError(f"{operation} underflow: result {value} is negative")
    if value > U128_MAX:
        raise MathOverflowError(f"{operation} overflow: result exceeds 2**128 - 1")
    return value


def require_amount(value: int, name: str, allow_zero: bool = False) -> int:
    """Validate that ``value`` is an integer amount (positive unless ``allow_zero``)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "non-negative" if allow_zero else "positive"
        raise InvalidInputError(f"{name} must be {qualifier}, got {value}")
    if value > U128_MAX:
        raise MathOverflowError(f"{name} exceeds 2**128 - 1")
    return value


def checked_add(a: int, b: int) -> int:
    return _checked(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    return _checked(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    return _checked(a * b, "mul")


def checked_div(numerator: int, denominator: int, rounding: Rounding = Rounding.down) -> int:
    """Divide two non-negative integers, truncating unless ``rounding`` is ``up``."""
    if denominator == 0:
        raise DivideByZeroError(f"division of {numerator} by zero")
    _checked(numerator, "div")
    _checked(denominator, "div")
    quotient, remainder = divmod(numerator, denominator)
    if rounding == Rounding.up and remainder:
        quotient += 1
    return quotient


def mul_div(a: int, b: int, denominator: int, rounding: Rounding = Rounding.down) -> int:
    """Compute ``a * b / denominator`` with a single final rounding step."""
    return checked_div(checked_mul(a, b), denominator, rounding)


def apply_bps(amount: int, bps: int, rounding: Rounding = Rounding.down) -> int:
    """Take ``bps`` basis points of ``amount``."""
    return mul_div(amount, bps, BPS_DENOMINATOR, rounding)


def ratio_bps(numerator: int, denominator: int, rounding: Rounding = Rounding.down) -> int:
    """Express ``numerator / denominator`` in basis points."""
    return mul_div(numerator, BPS_DENOMINATOR, denominator, rounding)


def scaled_price(reserve: int, supply: int, rounding: Rounding = Rounding.down) -> int:
    """Marginal price ``reserve / supply`` scaled by ``PRICE_SCALE``."""
    return mul_div(reserve, PRICE_SCALE, supply, rounding)


def checked_isqrt(value: int) -> int:
    """Integer square root, truncated."""
    return math.isqrt(_checked(value, "isqrt"))
