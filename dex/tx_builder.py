"""
Transaction descriptors for ERC-20 approvals and V2 router swaps.

Pure functions of their inputs plus an injected clock: no network access,
no signing. Calldata is a 4-byte selector followed by ABI-encoded arguments.
"""

import time
from typing import Callable, List

from eth_abi import encode
from web3 import Web3

from .abi import (
    ERC20_APPROVE_SIGNATURE,
    ERC20_APPROVE_TYPES,
    SWAP_EXACT_TOKENS_SIGNATURE,
    SWAP_EXACT_TOKENS_TYPES,
)
from .adapters.v2 import BPS_DENOMINATOR
from .types import ArbitrageOpportunity, Token, TxDescriptor

APPROVAL_GAS_LIMIT = 100_000
SWAP_GAS_LIMIT = 300_000
DEFAULT_DEADLINE_SECONDS = 1200


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256(signature)."""
    return bytes(Web3.keccak(text=signature)[:4])


def encode_call(signature: str, types: List[str], args: list) -> str:
    """0x-prefixed calldata for a function call."""
    return Web3.to_hex(function_selector(signature) + encode(types, args))


def min_amount_out(expected_output: int, slippage_bps: int) -> int:
    """
    Lower bound on swap output after slippage.

    Formula:
        amountOutMin = expected_output * (10000 - slippage_bps) // 10000

    Raises:
        ValueError: If slippage_bps is outside [0, 10000]
    """
    if slippage_bps < 0 or slippage_bps > BPS_DENOMINATOR:
        raise ValueError(f"slippage_bps must be in [0, 10000]: {slippage_bps}")
    return expected_output * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


class TransactionBuilder:
    """
    Builds unsigned transactions for the execution engine.

    Args:
        clock: Unix time source used for swap deadlines
        deadline_seconds: How long a swap stays valid after building
        approval_gas_limit: Gas limit for approve()
        swap_gas_limit: Gas limit for swapExactTokensForTokens()
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        deadline_seconds: int = DEFAULT_DEADLINE_SECONDS,
        approval_gas_limit: int = APPROVAL_GAS_LIMIT,
        swap_gas_limit: int = SWAP_GAS_LIMIT,
    ):
        self.clock = clock
        self.deadline_seconds = deadline_seconds
        self.approval_gas_limit = approval_gas_limit
        self.swap_gas_limit = swap_gas_limit

    def build_approval(self, token: Token, spender: str, amount: int) -> TxDescriptor:
        """ERC-20 approve(spender, amount) sent to the token contract."""
        if amount < 0:
            raise ValueError(f"Approval amount must be non-negative: {amount}")
        data = encode_call(
            ERC20_APPROVE_SIGNATURE,
            ERC20_APPROVE_TYPES,
            [Web3.to_checksum_address(spender), amount],
        )
        return TxDescriptor(
            to=token.checksum_address,
            data=data,
            value=0,
            gas_limit=self.approval_gas_limit,
        )

    def build_swap(
        self,
        opportunity: ArbitrageOpportunity,
        router: str,
        recipient: str,
        slippage_bps: int,
    ) -> TxDescriptor:
        """
        swapExactTokensForTokens(amount_in, amountOutMin, [in, out], recipient, deadline)
        sent to the router.

        Raises:
            ValueError: If slippage_bps is outside [0, 10000]
        """
        amount_out_min = min_amount_out(opportunity.expected_output, slippage_bps)
        deadline = int(self.clock()) + self.deadline_seconds
        path = [
            opportunity.token_in.checksum_address,
            opportunity.token_out.checksum_address,
        ]
        data = encode_call(
            SWAP_EXACT_TOKENS_SIGNATURE,
            SWAP_EXACT_TOKENS_TYPES,
            [
                opportunity.amount_in,
                amount_out_min,
                path,
                Web3.to_checksum_address(recipient),
                deadline,
            ],
        )
        return TxDescriptor(
            to=Web3.to_checksum_address(router),
            data=data,
            value=0,
            gas_limit=self.swap_gas_limit,
        )
