import pytest

from mcp_nft_launchpad.errors import DivideByZeroError, InvalidInputError, MathOverflowError
from mcp_nft_launchpad.fixed_point import (
    PRICE_SCALE,
    U128_MAX,
    Rounding,
    apply_bps,
    checked_add,
    checked_div,
    checked_isqrt,
    checked_mul,
    checked_sub,
    mul_div,
    ratio_bps,
    require_amount,
    scaled_price,
)


def test_checked_add_rejects_overflow():
    assert checked_add(U128_MAX - 1, 1) == U128_MAX
    with pytest.raises(MathOverflowError):
        checked_add(U128_MAX, 1)


def test_checked_sub_rejects_underflow():
    assert checked_sub(5, 5) == 0
    with pytest.raises(MathOverflowError):
        checked_sub(1, 2)


def test_checked_mul_rejects_overflow():
    with pytest.raises(MathOverflowError):
        checked_mul(2**64, 2**64)


def test_checked_div_rounding():
    assert checked_div(7, 2) == 3
    assert checked_div(7, 2, Rounding.up) == 4
    # Exact divisions are never bumped
    assert checked_div(6, 2, Rounding.up) == 3


def test_divide_by_zero_is_an_overflow_error():
    with pytest.raises(DivideByZeroError) as excinfo:
        checked_div(1, 0)
    assert isinstance(excinfo.value, MathOverflowError)
    assert excinfo.value.code == "Overflow"


def test_mul_div_rounds_once():
    # 10 * 10 / 3 = 33.33, intermediate product kept exact
    assert mul_div(10, 10, 3) == 33
    assert mul_div(10, 10, 3, Rounding.up) == 34


def test_apply_bps():
    assert apply_bps(1_000_000, 100) == 10_000
    assert apply_bps(1, 100) == 0
    assert apply_bps(1, 100, Rounding.up) == 1


def test_ratio_bps():
    assert ratio_bps(1, 3) == 3333
    assert ratio_bps(1, 3, Rounding.up) == 3334
    assert ratio_bps(5, 5) == 10_000


def test_scaled_price():
    assert scaled_price(30_000_000, 1_000_000_000) == 30_000_000
    assert scaled_price(1, 1) == PRICE_SCALE
    assert scaled_price(1, 3) == 333_333_333
    assert scaled_price(1, 3, Rounding.up) == 333_333_334


@pytest.mark.parametrize("value", [0, -1, True, 1.5, "10"])
def test_require_amount_rejects_non_positive_and_non_integers(value):
    with pytest.raises(InvalidInputError):
        require_amount(value, "amount")


def test_require_amount_allows_zero_when_asked():
    assert require_amount(0, "amount", allow_zero=True) == 0
    with pytest.raises(InvalidInputError):
        require_amount(-1, "amount", allow_zero=True)


def test_require_amount_rejects_values_past_u128():
    with pytest.raises(MathOverflowError):
        require_amount(U128_MAX + 1, "amount")


def test_checked_isqrt_truncates():
    assert checked_isqrt(10_000) == 100
    assert checked_isqrt(99) == 9
    assert checked_isqrt(0) == 0
