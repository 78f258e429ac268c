"""
Arbites - cross-DEX spread arbitrage bot.

Monitors Uniswap-V2 style pools on several DEXes of one EVM chain, detects
price divergences for the same token pair and optionally trades the spread.
The shared infrastructure (errors, logging helpers, metrics) lives here; the
trading pipeline lives in the ``dex`` package.
"""

from arbites.version import __version__

PROJECT_NAME = "Arbites"
VERSION = __version__

from arbites.exceptions import (  # noqa: E402
    ArbitesError,
    ConfigError,
    ConnectivityError,
    ContractReadError,
    ExecutionError,
    InsufficientLiquidityError,
    error_kind,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "ArbitesError",
    "ConfigError",
    "ConnectivityError",
    "ContractReadError",
    "ExecutionError",
    "InsufficientLiquidityError",
    "error_kind",
]
