"""
Async chain access for the arbitrage pipeline.

``ChainClient`` is the boundary every core component talks to.
``Web3ChainClient`` implements it on top of the synchronous web3 HTTP
provider, running each RPC call in the default thread pool so the event loop
never blocks.

Reads are retried with exponential backoff; sends are never retried.
"""

import asyncio
import functools
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Protocol

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, TimeExhausted

from arbites.exceptions import (
    ConnectivityError,
    ContractReadError,
    ExecutionError,
    InsufficientLiquidityError,
)
from arbites.utils import get_logger

from .abi import ERC20_ABI, UNISWAP_V2_PAIR_ABI, UNISWAP_V2_ROUTER_ABI
from .types import PoolReserves, PriceQuote, Token, TxDescriptor, TxReceipt

logger = get_logger(__name__)


class ChainClient(Protocol):
    """Async interface to one EVM chain."""

    async def get_pool_reserves(self, address: str) -> PoolReserves:
        """Read token0, token1 and getReserves() of a V2 pair."""
        ...

    async def get_allowance(self, token: Token, owner: str, spender: str) -> int:
        """ERC-20 allowance of ``spender`` over ``owner``'s tokens."""
        ...

    async def get_balance(self, address: str, token: Optional[Token] = None) -> int:
        """Native balance in wei, or the ERC-20 balance of ``token``."""
        ...

    async def get_price_quote(
        self, token_in: Token, token_out: Token, amount_in: int, router: str
    ) -> PriceQuote:
        """Router getAmountsOut quote for a direct token_in -> token_out swap."""
        ...

    async def get_gas_price(self) -> int:
        """Current gas price in wei."""
        ...

    async def estimate_gas(self, tx: TxDescriptor) -> int:
        ...

    async def send_transaction(self, tx: TxDescriptor, signer: LocalAccount) -> str:
        """Sign and broadcast; returns the 0x-prefixed transaction hash."""
        ...

    async def wait_for_transaction(self, tx_hash: str, confirmations: int = 1) -> TxReceipt:
        """Block until the transaction is mined with enough confirmations."""
        ...

    async def get_block_number(self) -> int:
        ...

    async def close(self) -> None:
        ...


class Web3ChainClient:
    """
    ChainClient backed by ``web3.Web3`` over HTTP.

    Token metadata (symbol, decimals) is cached per address for the lifetime
    of the client. Tokens known from configuration can be seeded with
    ``register_token`` so they never cost an RPC round trip.
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        receipt_timeout: float = 120.0,
        web3: Optional[Web3] = None,
    ):
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.receipt_timeout = receipt_timeout
        self.web3 = web3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        )
        self._tokens: Dict[str, Token] = {}
        self._closed = False

    def register_token(self, token: Token) -> None:
        self._tokens[token.address] = token

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run one blocking web3 call in the thread pool with a timeout."""
        if self._closed:
            raise ConnectivityError("Chain client is closed", endpoint=self.rpc_url)
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(None, functools.partial(fn, *args)),
            timeout=self.timeout,
        )

    async def _read(
        self,
        fn: Callable[..., Any],
        *args: Any,
        address: Optional[str] = None,
        method: Optional[str] = None,
    ) -> Any:
        """
        Run a read call with bounded exponential backoff.

        Contract-level failures (revert, empty return data) are deterministic
        and are raised immediately as ContractReadError. Everything else is
        treated as transport trouble and retried.

        Raises:
            ContractReadError: If the contract rejected or garbled the call
            ConnectivityError: If the endpoint stayed unreachable
        """
        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries):
            try:
                return await self._call(fn, *args)
            except (ContractLogicError, BadFunctionCallOutput) as e:
                raise ContractReadError(
                    f"Contract call {method} failed on {address}: {e}",
                    address=address,
                    method=method,
                ) from e
            except ConnectivityError:
                raise
            except Exception as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    wait_time = self.retry_backoff * (2**attempt)
                    logger.debug(
                        f"RPC {method} failed (attempt {attempt + 1}/{self.max_retries}), "
                        f"retrying in {wait_time:.1f}s: {e}"
                    )
                    await asyncio.sleep(wait_time)

        raise ConnectivityError(
            f"RPC {method} failed after {self.max_retries} attempts: {last_error}",
            endpoint=self.rpc_url,
            details={"address": address, "method": method},
        ) from last_error

    async def _get_token(self, address: str) -> Token:
        key = address.lower()
        cached = self._tokens.get(key)
        if cached is not None:
            return cached

        checksum = Web3.to_checksum_address(address)
        erc20 = self.web3.eth.contract(address=checksum, abi=ERC20_ABI)
        decimals = await self._read(
            erc20.functions.decimals().call, address=key, method="decimals"
        )
        try:
            symbol = await self._read(
                erc20.functions.symbol().call, address=key, method="symbol"
            )
        except ContractReadError:
            # Some tokens return bytes32 symbols
            symbol = checksum[:8]

        token = Token(
            address=key, symbol=str(symbol), decimals=int(decimals), chain_id=self.chain_id
        )
        self._tokens[key] = token
        return token

    async def get_pool_reserves(self, address: str) -> PoolReserves:
        checksum = Web3.to_checksum_address(address)
        pair = self.web3.eth.contract(address=checksum, abi=UNISWAP_V2_PAIR_ABI)
        key = address.lower()

        token0_addr, token1_addr, reserves = await asyncio.gather(
            self._read(pair.functions.token0().call, address=key, method="token0"),
            self._read(pair.functions.token1().call, address=key, method="token1"),
            self._read(pair.functions.getReserves().call, address=key, method="getReserves"),
        )

        if not isinstance(reserves, (list, tuple)) or len(reserves) < 2:
            raise ContractReadError(
                f"Malformed getReserves() response from {key}: {reserves!r}",
                address=key,
                method="getReserves",
            )

        token0, token1 = await asyncio.gather(
            self._get_token(token0_addr), self._get_token(token1_addr)
        )
        return PoolReserves(
            token0=token0,
            token1=token1,
            reserve0=int(reserves[0]),
            reserve1=int(reserves[1]),
        )

    async def get_allowance(self, token: Token, owner: str, spender: str) -> int:
        erc20 = self.web3.eth.contract(address=token.checksum_address, abi=ERC20_ABI)
        call = erc20.functions.allowance(
            Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
        ).call
        return int(await self._read(call, address=token.address, method="allowance"))

    async def get_balance(self, address: str, token: Optional[Token] = None) -> int:
        owner = Web3.to_checksum_address(address)
        if token is None:
            return int(await self._read(self.web3.eth.get_balance, owner, method="eth_getBalance"))
        erc20 = self.web3.eth.contract(address=token.checksum_address, abi=ERC20_ABI)
        call = erc20.functions.balanceOf(owner).call
        return int(await self._read(call, address=token.address, method="balanceOf"))

    async def get_price_quote(
        self, token_in: Token, token_out: Token, amount_in: int, router: str
    ) -> PriceQuote:
        """
        Quote a direct swap through a V2 router.

        Price impact compares the quoted rate with the rate of a reference
        trade one thousandth the size, read in the same way.

        Raises:
            InsufficientLiquidityError: If the router quotes no output
            ContractReadError: If the router rejects the path
        """
        router_contract = self.web3.eth.contract(
            address=Web3.to_checksum_address(router), abi=UNISWAP_V2_ROUTER_ABI
        )
        path = [token_in.checksum_address, token_out.checksum_address]
        reference_in = max(amount_in // 1000, 1)

        amounts, reference_amounts = await asyncio.gather(
            self._read(
                router_contract.functions.getAmountsOut(amount_in, path).call,
                address=router.lower(),
                method="getAmountsOut",
            ),
            self._read(
                router_contract.functions.getAmountsOut(reference_in, path).call,
                address=router.lower(),
                method="getAmountsOut",
            ),
        )

        if len(amounts) < 2 or amounts[1] == 0:
            raise InsufficientLiquidityError(
                f"Router {router} quotes no {token_out.symbol} for "
                f"{amount_in} {token_in.symbol}",
                token_in=token_in.address,
                token_out=token_out.address,
                requested_amount=amount_in,
            )

        output_amount = int(amounts[1])
        price_impact = 0.0
        if len(reference_amounts) >= 2 and reference_amounts[1] > 0:
            rate = Decimal(output_amount) / Decimal(amount_in)
            reference_rate = Decimal(int(reference_amounts[1])) / Decimal(reference_in)
            price_impact = max(float((1 - rate / reference_rate) * 100), 0.0)

        return PriceQuote(
            input_amount=amount_in,
            output_amount=output_amount,
            price_impact=price_impact,
            route=tuple(path),
        )

    async def get_gas_price(self) -> int:
        return int(
            await self._read(lambda: self.web3.eth.gas_price, method="eth_gasPrice")
        )

    async def get_block_number(self) -> int:
        return int(
            await self._read(lambda: self.web3.eth.block_number, method="eth_blockNumber")
        )

    async def estimate_gas(self, tx: TxDescriptor, sender: Optional[str] = None) -> int:
        params: Dict[str, Any] = {"to": tx.to, "data": tx.data, "value": tx.value}
        if sender:
            params["from"] = Web3.to_checksum_address(sender)
        return int(
            await self._read(self.web3.eth.estimate_gas, params, method="eth_estimateGas")
        )

    async def send_transaction(self, tx: TxDescriptor, signer: LocalAccount) -> str:
        """
        Sign a descriptor with the signer's key and broadcast it.

        The nonce is read at send time. A descriptor with ``gas_price`` set is
        signed at exactly that price; otherwise the current price is read. A
        failed broadcast is not retried; resubmitting could double-spend the
        nonce window.

        Raises:
            ExecutionError: If signing or broadcasting fails
        """
        nonce = await self._read(
            self.web3.eth.get_transaction_count,
            signer.address,
            "pending",
            method="eth_getTransactionCount",
        )
        gas_price = tx.gas_price if tx.gas_price is not None else await self.get_gas_price()
        gas_limit = tx.gas_limit or await self.estimate_gas(tx, sender=signer.address)

        params = {
            "to": tx.to,
            "data": tx.data,
            "value": tx.value,
            "gas": gas_limit,
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": self.chain_id,
        }

        try:
            signed = signer.sign_transaction(params)
            tx_hash = await self._call(
                self.web3.eth.send_raw_transaction, signed.raw_transaction
            )
        except ConnectivityError:
            raise
        except Exception as e:
            raise ExecutionError(
                f"Failed to broadcast transaction to {tx.to}: {e}", stage="send"
            ) from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Broadcast tx {tx_hash_hex} (nonce {nonce}, gas {gas_limit})")
        return tx_hash_hex

    async def wait_for_transaction(self, tx_hash: str, confirmations: int = 1) -> TxReceipt:
        """
        Wait for a receipt, then for ``confirmations - 1`` further blocks.

        Raises:
            ExecutionError: If the receipt does not arrive in time
        """
        loop = asyncio.get_running_loop()
        wait = functools.partial(
            self.web3.eth.wait_for_transaction_receipt,
            tx_hash,
            timeout=self.receipt_timeout,
        )
        try:
            receipt = await loop.run_in_executor(None, wait)
        except TimeExhausted as e:
            raise ExecutionError(
                f"Transaction {tx_hash} not mined after {self.receipt_timeout}s",
                stage="confirm",
                tx_hash=tx_hash,
            ) from e

        block_number = int(receipt["blockNumber"])
        while confirmations > 1:
            current = await self.get_block_number()
            if current - block_number + 1 >= confirmations:
                break
            await asyncio.sleep(1)

        return TxReceipt(
            tx_hash=tx_hash,
            block_number=block_number,
            gas_used=int(receipt["gasUsed"]),
            status="success" if receipt["status"] == 1 else "reverted",
            effective_gas_price=receipt.get("effectiveGasPrice"),
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Chain client for {self.rpc_url} closed")
