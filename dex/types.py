"""
Core data types for cross-DEX arbitrage.

All types are frozen values. The pool cache replaces records instead of
mutating them, so a snapshot handed to a reader never changes underneath it.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Literal, Optional, Tuple

from web3 import Web3

DexKind = Literal["uniswap-v2"]


@dataclass(frozen=True)
class Token:
    """
    An ERC-20 token on a given chain.

    The address is lowercased once here, so equality and hashing are plain
    field comparisons. Only ``address`` and ``chain_id`` take part in equality.

    Attributes:
        address: Token contract address (stored lowercase)
        symbol: Token symbol (e.g., "USDC")
        decimals: Token decimals (e.g., 6 for USDC, 18 for WGLMR)
        chain_id: EVM chain id (1284 for Moonbeam)
    """

    address: str
    symbol: str = field(compare=False)
    decimals: int = field(compare=False)
    chain_id: int

    def __post_init__(self):
        object.__setattr__(self, "address", self.address.lower())

    @property
    def checksum_address(self) -> str:
        """EIP-55 form for RPC calls and calldata."""
        return Web3.to_checksum_address(self.address)


@dataclass(frozen=True)
class PoolReserves:
    """
    A single atomic read of a pair contract.

    Attributes:
        token0: Token the contract reports as token0
        token1: Token the contract reports as token1
        reserve0: Raw on-chain reserve of token0
        reserve1: Raw on-chain reserve of token1
        fee_bps: Swap fee in basis points (30 = 0.3%)
    """

    token0: Token
    token1: Token
    reserve0: int
    reserve1: int
    fee_bps: int = 30


@dataclass(frozen=True)
class PoolRecord:
    """
    A registered pool and its latest reserve snapshot.

    ``reserves`` and ``updated_at`` are None until the first successful refresh;
    such records are excluded from scans.
    """

    address: str
    dex_name: str
    reserves: Optional[PoolReserves] = None
    updated_at: Optional[float] = None

    @property
    def has_reserves(self) -> bool:
        return self.reserves is not None

    def with_snapshot(self, reserves: PoolReserves, timestamp: float) -> "PoolRecord":
        """Return a copy carrying a new snapshot."""
        return replace(self, reserves=reserves, updated_at=timestamp)


@dataclass(frozen=True)
class PriceData:
    """Prices of one pool oriented to a caller-chosen (token0, token1) order."""

    token0: Token
    token1: Token
    price0to1: float
    price1to0: float
    dex_name: str
    pool_address: str


@dataclass(frozen=True)
class PriceQuote:
    """
    A router quote for swapping an exact input along a path.

    Attributes:
        input_amount: Raw input amount
        output_amount: Raw output amount the router would pay
        price_impact: Execution rate shortfall versus a small reference trade (%)
        route: Token addresses of the swap path
    """

    input_amount: int
    output_amount: int
    price_impact: float
    route: Tuple[str, ...]


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    A price divergence between two pools quoting the same pair.

    Produced fresh on every scan pass and never persisted. Both prices behind
    ``profit_percentage`` come from the same monitor snapshot.

    Attributes:
        buy_dex: DEX with the lower price (where token_in is acquired)
        sell_dex: DEX with the higher price
        token_in: Canonical first token of the pair
        token_out: Canonical second token of the pair
        amount_in: Probe trade size in raw token_in units
        expected_profit: Estimated profit in raw token_in units
        profit_percentage: Price divergence in percent
        gas_estimate: Gas units assumed for the swap
        net_profit: Estimated profit after costs, used for ranking
        expected_output: Constant-product quote of amount_in on the buy pool
        buy_pool: Address of the buy-side pool
        sell_pool: Address of the sell-side pool
        pair_key: Canonical pair identifier
    """

    buy_dex: str
    sell_dex: str
    token_in: Token
    token_out: Token
    amount_in: int
    expected_profit: int
    profit_percentage: float
    gas_estimate: int
    net_profit: int
    expected_output: int = 0
    buy_pool: str = ""
    sell_pool: str = ""
    pair_key: str = ""

    @property
    def route(self) -> str:
        return (
            f"{self.token_in.symbol} -> {self.token_out.symbol} "
            f"(buy {self.buy_dex}, sell {self.sell_dex})"
        )


@dataclass(frozen=True)
class TxDescriptor:
    """
    An unsigned transaction.

    Attributes:
        to: Checksummed destination address
        data: 0x-prefixed calldata
        value: Native value in wei
        gas_limit: Gas limit
        gas_price: Gas price in wei to sign with; None means read it at send time
    """

    to: str
    data: str
    value: int = 0
    gas_limit: int = 0
    gas_price: Optional[int] = None


@dataclass(frozen=True)
class TxReceipt:
    """Mined transaction receipt, trimmed to what settlement needs."""

    tx_hash: str
    block_number: int
    gas_used: int
    status: Literal["success", "reverted"]
    effective_gas_price: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class ExecutionStatus(str, Enum):
    """Terminal state of one execution attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ExecutionResult:
    """
    Outcome of attempting one opportunity. Created once, never modified.

    Attributes:
        opportunity: The opportunity that was attempted
        status: success, failed or skipped
        approval_receipt: Receipt of the approval transaction, if one was sent
        swap_receipt: Receipt of the swap transaction, if it was mined
        actual_profit: expected_profit minus gas cost, on success
        reason: Why the attempt was skipped or failed
    """

    opportunity: ArbitrageOpportunity
    status: ExecutionStatus
    approval_receipt: Optional[TxReceipt] = None
    swap_receipt: Optional[TxReceipt] = None
    actual_profit: Optional[int] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class DexInfo:
    """
    Static metadata for one DEX deployment.

    Attributes:
        name: Display name, also the registry key (e.g., "StellaSwap")
        kind: AMM family
        router_address: Router contract used for swaps and approvals
        factory_address: Pair factory used for CREATE2 derivation
        chain_id: Chain the DEX is deployed on
        fee_bps: Swap fee in basis points
        init_code_hash: Pair init code hash for CREATE2 derivation
    """

    name: str
    kind: DexKind
    router_address: str
    factory_address: str
    chain_id: int
    fee_bps: int = 30
    init_code_hash: Optional[str] = None
