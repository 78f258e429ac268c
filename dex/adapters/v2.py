"""
Uniswap V2 style price math for constant-product pools.

Prices are computed in Decimal from raw integer reserves; swap quotes use the
router's integer getAmountOut formula so they match what the chain returns.
"""

from decimal import Decimal, localcontext
from typing import Tuple

from arbites.exceptions import InsufficientLiquidityError

from ..types import PoolReserves, Token

BPS_DENOMINATOR = 10_000


def calculate_price(reserve0: int, reserve1: int, decimals0: int, decimals1: int) -> float:
    """
    Price of token0 expressed in token1.

    Formula:
        price0to1 = (reserve1 / 10^decimals1) / (reserve0 / 10^decimals0)

    The reverse price must be obtained by calling this again with the
    arguments swapped, not by inverting the returned float.

    Args:
        reserve0: Raw reserve of token0
        reserve1: Raw reserve of token1
        decimals0: Decimals of token0
        decimals1: Decimals of token1

    Returns:
        Units of token1 per unit of token0

    Raises:
        InsufficientLiquidityError: If either reserve is zero or negative
    """
    if reserve0 <= 0 or reserve1 <= 0:
        raise InsufficientLiquidityError(
            f"Reserves must be positive: r0={reserve0}, r1={reserve1}"
        )

    with localcontext() as ctx:
        ctx.prec = 50
        adjusted0 = Decimal(reserve0) / (Decimal(10) ** decimals0)
        adjusted1 = Decimal(reserve1) / (Decimal(10) ** decimals1)
        return float(adjusted1 / adjusted0)


def pair_key(token_a: Token, token_b: Token) -> str:
    """
    Canonical, order-independent identifier for a token pair.

    Sorts by (already lowercase) address, so the key does not depend on
    registration order or on the pair contract's token0/token1 orientation.
    """
    first, second = canonical_order(token_a, token_b)
    return f"{first.address}-{second.address}"


def canonical_order(token_a: Token, token_b: Token) -> Tuple[Token, Token]:
    """Return the two tokens sorted by address."""
    if token_a.address <= token_b.address:
        return token_a, token_b
    return token_b, token_a


def orient_reserves(reserves: PoolReserves) -> Tuple[Token, Token, int, int]:
    """
    Re-orient a reserve snapshot into canonical token order.

    Returns:
        Tuple of (token_a, token_b, reserve_a, reserve_b)
    """
    token_a, _ = canonical_order(reserves.token0, reserves.token1)
    if token_a == reserves.token0:
        return reserves.token0, reserves.token1, reserves.reserve0, reserves.reserve1
    return reserves.token1, reserves.token0, reserves.reserve1, reserves.reserve0


def pool_prices(reserves: PoolReserves) -> Tuple[float, float]:
    """
    Both directional prices of a snapshot in its contract orientation.

    Returns:
        Tuple of (price0to1, price1to0)
    """
    price0to1 = calculate_price(
        reserves.reserve0,
        reserves.reserve1,
        reserves.token0.decimals,
        reserves.token1.decimals,
    )
    price1to0 = calculate_price(
        reserves.reserve1,
        reserves.reserve0,
        reserves.token1.decimals,
        reserves.token0.decimals,
    )
    return price0to1, price1to0


def swap_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = 30) -> int:
    """
    Output amount for a V2 swap using the constant-product formula.

    Formula (router getAmountOut, integer math):
        amountInWithFee = amountIn * (10000 - fee_bps)
        amountOut = amountInWithFee * reserveOut / (reserveIn * 10000 + amountInWithFee)

    Args:
        amount_in: Input amount (raw units)
        reserve_in: Reserve of the input token
        reserve_out: Reserve of the output token
        fee_bps: Pool fee in basis points

    Returns:
        Output amount (raw units), rounded down

    Raises:
        ValueError: If amount_in is not positive or the fee is out of range
        InsufficientLiquidityError: If reserves are empty or the quote rounds to zero
    """
    if amount_in <= 0:
        raise ValueError(f"amount_in must be positive: {amount_in}")
    if fee_bps < 0 or fee_bps >= BPS_DENOMINATOR:
        raise ValueError(f"Fee must be in [0, 10000) bps: {fee_bps}")
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidityError(
            f"Reserves must be positive: in={reserve_in}, out={reserve_out}",
            requested_amount=amount_in,
        )

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee
    amount_out = numerator // denominator

    if amount_out == 0:
        raise InsufficientLiquidityError(
            f"Quote for {amount_in} rounds to zero output",
            requested_amount=amount_in,
        )
    return amount_out
