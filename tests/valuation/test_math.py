"""Tests for price and amount math."""

from __future__ import annotations

from decimal import Decimal

import pytest

from uniswap_pool_tracker.valuation.math import (
    Q96,
    SwapDirection,
    classify_swap_direction,
    combine_usd_values,
    inverse_price,
    price_from_sqrt_price,
    readable_amount,
)


class TestPriceFromSqrtPrice:
    def test_unit_price(self) -> None:
        assert price_from_sqrt_price(Q96) == 1.0

    def test_squares_the_ratio(self) -> None:
        assert price_from_sqrt_price(2 * Q96) == 4.0
        assert price_from_sqrt_price(Q96 // 2) == 0.25

    def test_zero(self) -> None:
        assert price_from_sqrt_price(0) == 0.0

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError):
            price_from_sqrt_price(-1)


class TestInversePrice:
    def test_inverse(self) -> None:
        assert inverse_price(4.0) == 0.25

    @pytest.mark.parametrize("sqrt_price_x96", [2**64, 2**96, 2**120, 2**159])
    def test_price_times_inverse_is_one(self, sqrt_price_x96: int) -> None:
        price = price_from_sqrt_price(sqrt_price_x96)
        inverse = inverse_price(price)
        assert inverse is not None
        assert price * inverse == pytest.approx(1.0)

    def test_zero_has_no_inverse(self) -> None:
        assert inverse_price(0.0) is None


class TestReadableAmount:
    def test_scales_by_decimals(self) -> None:
        assert readable_amount(2_000_000, 6) == Decimal("2")

    def test_takes_absolute_value(self) -> None:
        assert readable_amount(-10**18, 18) == Decimal("1")

    def test_zero_decimals(self) -> None:
        assert readable_amount(7, 0) == Decimal(7)

    def test_negative_decimals_rejected(self) -> None:
        with pytest.raises(ValueError):
            readable_amount(1, -1)


class TestClassifySwapDirection:
    def test_pool_receives_token0_is_sell(self) -> None:
        assert classify_swap_direction(10) == SwapDirection.SELL

    def test_pool_pays_token0_is_buy(self) -> None:
        assert classify_swap_direction(-10) == SwapDirection.BUY

    def test_zero_is_buy(self) -> None:
        assert classify_swap_direction(0) == SwapDirection.BUY


class TestCombineUsdValues:
    def test_swap_averages_both_sides(self) -> None:
        value = combine_usd_values(Decimal("1"), Decimal("2000"), 2000.0, 1.0, use_sum=False)
        assert value == Decimal("2000")

    def test_liquidity_sums_both_sides(self) -> None:
        value = combine_usd_values(Decimal("1"), Decimal("2000"), 2000.0, 1.0, use_sum=True)
        assert value == Decimal("4000")

    def test_one_side_only(self) -> None:
        assert combine_usd_values(Decimal("2"), Decimal("5"), None, 3.0, use_sum=False) == Decimal("15")
        assert combine_usd_values(Decimal("2"), Decimal("5"), 3.0, None, use_sum=True) == Decimal("6")

    def test_no_prices(self) -> None:
        assert combine_usd_values(Decimal("1"), Decimal("1"), None, None, use_sum=False) is None

    def test_negative_amounts_use_magnitude(self) -> None:
        value = combine_usd_values(Decimal("-1"), Decimal("0"), 10.0, None, use_sum=False)
        assert value == Decimal("10")
