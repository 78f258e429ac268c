"""
Unit tests for Uniswap V2 price math (dex/adapters/v2.py).
"""

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from arbites.exceptions import InsufficientLiquidityError
from conftest import USDC, WGLMR
from dex.adapters.v2 import (
    calculate_price,
    canonical_order,
    orient_reserves,
    pair_key,
    pool_prices,
    swap_out,
)
from dex.types import PoolReserves, Token

addresses = st.binary(min_size=20, max_size=20).map(lambda b: "0x" + b.hex())
reserves = st.integers(min_value=1, max_value=10**30)
decimals = st.integers(min_value=0, max_value=24)


class TestCalculatePrice:
    def test_equal_decimals(self):
        assert calculate_price(1000, 2000, 18, 18) == pytest.approx(2.0)

    def test_decimal_adjustment(self):
        # 1,000,000 USDC (6 dec) against 50,000 WGLMR (18 dec)
        price = calculate_price(10**12, 50_000 * 10**18, 6, 18)
        assert price == pytest.approx(0.05)

    @pytest.mark.parametrize("r0, r1", [(0, 100), (100, 0), (-1, 100)])
    def test_empty_reserve_raises(self, r0, r1):
        with pytest.raises(InsufficientLiquidityError):
            calculate_price(r0, r1, 18, 18)

    @given(r0=reserves, r1=reserves, d0=decimals, d1=decimals)
    def test_directional_prices_are_inverse(self, r0, r1, d0, d1):
        forward = calculate_price(r0, r1, d0, d1)
        backward = calculate_price(r1, r0, d1, d0)
        assert math.isclose(forward * backward, 1.0, rel_tol=1e-9)


class TestPairKey:
    @given(a=addresses, b=addresses)
    def test_order_independent(self, a, b):
        token_a = Token(a, "A", 18, 1284)
        token_b = Token(b, "B", 18, 1284)
        assert pair_key(token_a, token_b) == pair_key(token_b, token_a)

    def test_lowercase_sorted(self):
        key = pair_key(WGLMR, USDC)
        assert key == f"{USDC.address}-{WGLMR.address}"
        assert key == key.lower()

    def test_canonical_order(self):
        assert canonical_order(WGLMR, USDC) == (USDC, WGLMR)


class TestOrientation:
    def test_already_canonical(self):
        snapshot = PoolReserves(USDC, WGLMR, 1, 2)
        assert orient_reserves(snapshot) == (USDC, WGLMR, 1, 2)

    def test_reversed_contract_order(self):
        snapshot = PoolReserves(WGLMR, USDC, 2, 1)
        assert orient_reserves(snapshot) == (USDC, WGLMR, 1, 2)

    def test_pool_prices_independent(self):
        snapshot = PoolReserves(USDC, WGLMR, 10**12, 50_000 * 10**18)
        price0to1, price1to0 = pool_prices(snapshot)
        assert price0to1 == pytest.approx(0.05)
        assert price1to0 == pytest.approx(20.0)


class TestSwapOut:
    def test_no_fee(self):
        # out = 100 * 1000 / (1000 + 100) = 90.9 -> 90
        assert swap_out(100, 1000, 1000, fee_bps=0) == 90

    def test_with_30bps_fee(self):
        # in_with_fee = 100 * 9970; out = 997000 * 1000 / (1000 * 10000 + 997000)
        expected = (100 * 9970 * 1000) // (1000 * 10_000 + 100 * 9970)
        assert swap_out(100, 1000, 1000) == expected == 90

    def test_large_trade_bounded_by_reserve(self):
        assert swap_out(10**30, 10**18, 10**18) < 10**18

    def test_non_positive_amount(self):
        with pytest.raises(ValueError):
            swap_out(0, 1000, 1000)

    def test_invalid_fee(self):
        with pytest.raises(ValueError):
            swap_out(100, 1000, 1000, fee_bps=10_000)

    def test_empty_reserves(self):
        with pytest.raises(InsufficientLiquidityError):
            swap_out(100, 0, 1000)

    def test_output_rounds_to_zero(self):
        with pytest.raises(InsufficientLiquidityError):
            swap_out(1, 10**18, 10)

    @given(
        amount=st.integers(min_value=1, max_value=10**24),
        r_in=st.integers(min_value=10**6, max_value=10**30),
        r_out=st.integers(min_value=10**6, max_value=10**30),
    )
    def test_output_below_reserve(self, amount, r_in, r_out):
        try:
            out = swap_out(amount, r_in, r_out)
        except InsufficientLiquidityError:
            return
        assert 0 < out < r_out
