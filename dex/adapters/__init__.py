"""
DEX adapter modules for different AMM types.
"""

from .v2 import (
    calculate_price,
    canonical_order,
    orient_reserves,
    pair_key,
    pool_prices,
    swap_out,
)

__all__ = [
    "calculate_price",
    "canonical_order",
    "orient_reserves",
    "pair_key",
    "pool_prices",
    "swap_out",
]
