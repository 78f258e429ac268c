"""
Shared fixtures: Moonbeam tokens and an in-memory ChainClient.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest

from arbites.exceptions import ContractReadError
from dex.types import PoolRecord, PoolReserves, PriceQuote, Token, TxDescriptor, TxReceipt

CHAIN_ID = 1284

USDC = Token("0x818ec0A7Fe18Ff94269904fCED6AE3DaE6d6dC0b", "USDC", 6, CHAIN_ID)
USDT = Token("0xeFAeeE334F0Fd1712f9a8cc375f427D9Cdd40d73", "USDT", 6, CHAIN_ID)
DAI = Token("0x765277EebeCA2e31912C9946eAe1021199B39C61", "DAI", 18, CHAIN_ID)
WGLMR = Token("0xAcc15dC74880C9944775448304B263D191c6077F", "WGLMR", 18, CHAIN_ID)

POOL_A = "0x" + "a1" * 20
POOL_B = "0x" + "b2" * 20
POOL_C = "0x" + "c3" * 20

SIGNER_KEY = "0x" + "11" * 32


def usdc_wglmr_reserves(price: float, usdc_liquidity: int = 1_000_000) -> PoolReserves:
    """USDC/WGLMR reserves whose USDC price in WGLMR is ``price``."""
    reserve_usdc = usdc_liquidity * 10**6
    reserve_wglmr = int(usdc_liquidity * price * 10**6) * 10**12
    return PoolReserves(USDC, WGLMR, reserve_usdc, reserve_wglmr)


def snapshot_record(address: str, dex_name: str, reserves: PoolReserves) -> PoolRecord:
    return PoolRecord(address=address, dex_name=dex_name).with_snapshot(reserves, 1000.0)


class FakeChainClient:
    """
    In-memory ChainClient.

    ``reserves`` maps lowercase pool address to a PoolReserves or to an
    exception to raise. Every call is appended to ``calls``.
    """

    def __init__(
        self,
        reserves: Optional[Dict[str, Union[PoolReserves, Exception]]] = None,
        gas_price: int = 10**9,
        allowance: int = 0,
        block_number: int = 100,
        gas_used: int = 150_000,
    ):
        self.reserves = {k.lower(): v for k, v in (reserves or {}).items()}
        self.gas_price = gas_price
        self.allowance = allowance
        self.block_number: Union[int, Exception] = block_number
        self.gas_used = gas_used
        self.effective_gas_price: Optional[int] = None
        self.balances: Dict[str, int] = {}
        self.read_delay = 0.0
        self.on_read: Optional[Callable[[str], None]] = None
        self.send_errors: List[Optional[Exception]] = []
        self.receipt_statuses: List[str] = []
        self.calls: List[Tuple] = []
        self.sent: List[TxDescriptor] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def get_pool_reserves(self, address: str) -> PoolReserves:
        self.calls.append(("get_pool_reserves", address))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_read is not None:
                self.on_read(address)
            if self.read_delay:
                await asyncio.sleep(self.read_delay)
            value = self.reserves.get(address.lower())
            if value is None:
                raise ContractReadError("no such pair", address=address, method="getReserves")
            if isinstance(value, Exception):
                raise value
            return value
        finally:
            self.in_flight -= 1

    async def get_allowance(self, token: Token, owner: str, spender: str) -> int:
        self.calls.append(("get_allowance", token.address, owner, spender))
        return self.allowance

    async def get_balance(self, address: str, token: Optional[Token] = None) -> int:
        self.calls.append(("get_balance", address, token.address if token else None))
        return self.balances.get(token.address if token else "native", 0)

    async def get_price_quote(
        self, token_in: Token, token_out: Token, amount_in: int, router: str
    ) -> PriceQuote:
        self.calls.append(("get_price_quote", token_in.address, token_out.address, router))
        return PriceQuote(amount_in, amount_in, 0.0, (token_in.address, token_out.address))

    async def get_gas_price(self) -> int:
        self.calls.append(("get_gas_price",))
        return self.gas_price

    async def estimate_gas(self, tx: TxDescriptor) -> int:
        self.calls.append(("estimate_gas", tx.to))
        return tx.gas_limit

    async def send_transaction(self, tx: TxDescriptor, signer) -> str:
        self.calls.append(("send_transaction", tx.to))
        error = self.send_errors.pop(0) if self.send_errors else None
        if error is not None:
            raise error
        self.sent.append(tx)
        return "0x" + f"{len(self.sent):064x}"

    async def wait_for_transaction(self, tx_hash: str, confirmations: int = 1) -> TxReceipt:
        self.calls.append(("wait_for_transaction", tx_hash, confirmations))
        status = self.receipt_statuses.pop(0) if self.receipt_statuses else "success"
        return TxReceipt(
            tx_hash=tx_hash,
            block_number=self.block_number if isinstance(self.block_number, int) else 0,
            gas_used=self.gas_used,
            status=status,
            effective_gas_price=self.effective_gas_price,
        )

    async def get_block_number(self) -> int:
        self.calls.append(("get_block_number",))
        if isinstance(self.block_number, Exception):
            raise self.block_number
        return self.block_number

    async def close(self) -> None:
        self.closed = True

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_chain():
    return FakeChainClient()
