"""
Exception hierarchy for the Arbites arbitrage bot.

The taxonomy is closed: every failure the pipeline reports is one of the
classes below. Boundaries (pool refresh, trade execution, startup) use
``error_kind`` to name whatever they caught.
"""

import asyncio
from typing import Any, Dict, Optional


class ArbitesError(Exception):
    """Base exception for all arbitrage bot errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConnectivityError(ArbitesError):
    """Raised when the RPC endpoint or network cannot be reached."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint


class ContractReadError(ArbitesError):
    """Raised when a contract call returns a malformed or unexpected response."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        method: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.address = address
        self.method = method


class InsufficientLiquidityError(ArbitesError):
    """Raised when a pool cannot quote a viable output for the requested amount."""

    def __init__(
        self,
        message: str,
        token_in: Optional[str] = None,
        token_out: Optional[str] = None,
        requested_amount: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.token_in = token_in
        self.token_out = token_out
        self.requested_amount = requested_amount


class ExecutionError(ArbitesError):
    """Raised when a transaction reverts or fails to confirm."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        tx_hash: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.stage = stage
        self.tx_hash = tx_hash


class ConfigError(ArbitesError):
    """Raised when startup configuration is invalid. Always fatal."""

    pass


def error_kind(exc: BaseException) -> str:
    """
    Name the taxonomy class of an exception.

    Timeouts count as connectivity failures. Anything outside the taxonomy is
    reported as ``"unexpected"``.
    """
    if isinstance(exc, ConnectivityError):
        return "connectivity"
    if isinstance(exc, ContractReadError):
        return "contract_read"
    if isinstance(exc, InsufficientLiquidityError):
        return "insufficient_liquidity"
    if isinstance(exc, ExecutionError):
        return "execution"
    if isinstance(exc, ConfigError):
        return "config"
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "connectivity"
    return "unexpected"
