"""
Pool state cache for cross-DEX arbitrage.

Holds one ``PoolRecord`` per registered pool and refreshes all of them
concurrently. Readers always see a complete snapshot: the cache dict is
rebuilt after the whole batch has joined and swapped in with one assignment.
"""

import asyncio
import time
from dataclasses import replace
from itertools import combinations
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from arbites.exceptions import InsufficientLiquidityError, error_kind
from arbites.utils import get_logger, shorten_address

from .adapters.v2 import pair_key, pool_prices
from .chain_client import ChainClient
from .pool_address import compute_pool_address
from .registry import DexRegistry
from .types import PoolRecord, PoolReserves, PriceData, Token

logger = get_logger(__name__)


class RefreshResult(NamedTuple):
    """Outcome of one refresh pass."""

    updated: List[PoolRecord]
    failed: List[str]


class PoolMonitor:
    """
    Tracks reserves for a set of registered pools.

    Only the scheduler's cycle runner mutates the registration set and calls
    ``refresh``; everything else reads snapshots.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        registry: Optional[DexRegistry] = None,
        max_concurrent_reads: int = 5,
        read_timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize monitor.

        Args:
            chain_client: Source of pool reserves
            registry: DEX registry, used for per-DEX fees and pool discovery
            max_concurrent_reads: Upper bound on in-flight reserve reads
            read_timeout: Seconds allowed for a single pool read
            clock: Timestamp source for ``updated_at``
        """
        if max_concurrent_reads < 1:
            raise ValueError("max_concurrent_reads must be at least 1")
        self.chain_client = chain_client
        self.registry = registry
        self.max_concurrent_reads = max_concurrent_reads
        self.read_timeout = read_timeout
        self._clock = clock
        self._pools: Dict[str, PoolRecord] = {}

    # Registration

    def register_pool(self, address: str, dex_name: str) -> PoolRecord:
        """
        Start tracking a pool. Registering a known address is a no-op.

        Returns:
            The (existing or new) record
        """
        key = address.lower()
        existing = self._pools.get(key)
        if existing is not None:
            return existing
        record = PoolRecord(address=key, dex_name=dex_name)
        self._pools = {**self._pools, key: record}
        logger.debug(f"Registered {dex_name} pool {shorten_address(key)}")
        return record

    def deregister_pool(self, address: str) -> bool:
        """Stop tracking a pool. Returns False if it was not registered."""
        key = address.lower()
        if key not in self._pools:
            return False
        self._pools = {addr: rec for addr, rec in self._pools.items() if addr != key}
        logger.debug(f"Deregistered pool {shorten_address(key)}")
        return True

    def discover_pools(
        self, tokens: Iterable[Token], registry: Optional[DexRegistry] = None
    ) -> int:
        """
        Register the CREATE2 pair address of every token pair on every V2 DEX.

        Derived addresses are not checked for deployment here; pairs that do
        not exist fail their first refresh.

        Returns:
            Number of newly registered pools
        """
        registry = registry or self.registry
        if registry is None:
            raise ValueError("discover_pools needs a DexRegistry")

        token_list = list(tokens)
        added = 0
        for dex in registry.get_all_dexes():
            if dex.kind != "uniswap-v2":
                continue
            for token_a, token_b in combinations(token_list, 2):
                if token_a == token_b:
                    continue
                address = compute_pool_address(
                    dex.factory_address, token_a, token_b, dex.init_code_hash
                )
                if address.lower() not in self._pools:
                    self.register_pool(address, dex.name)
                    added += 1

        logger.info(
            f"Discovered {added} candidate pools across "
            f"{len(registry)} DEXes and {len(token_list)} tokens"
        )
        return added

    # Refresh

    async def _fetch_one(
        self, record: PoolRecord, semaphore: asyncio.Semaphore
    ) -> Tuple[PoolRecord, Optional[PoolReserves], Optional[Exception]]:
        async with semaphore:
            try:
                reserves = await asyncio.wait_for(
                    self.chain_client.get_pool_reserves(record.address),
                    timeout=self.read_timeout,
                )
                return record, reserves, None
            except Exception as e:
                return record, None, e

    async def refresh(self) -> RefreshResult:
        """
        Re-read reserves for every registered pool.

        A failing pool keeps its previous snapshot and is listed in
        ``failed``; it never aborts the rest of the batch.

        Returns:
            RefreshResult(updated records, failed addresses)
        """
        targets = list(self._pools.values())
        if not targets:
            return RefreshResult([], [])

        semaphore = asyncio.Semaphore(self.max_concurrent_reads)
        results = await asyncio.gather(
            *[self._fetch_one(record, semaphore) for record in targets]
        )

        now = self._clock()
        fresh: Dict[str, PoolRecord] = {}
        failed: List[str] = []
        for record, reserves, error in results:
            if error is not None:
                failed.append(record.address)
                logger.warning(
                    f"Failed to refresh {record.dex_name} pool "
                    f"{shorten_address(record.address)} [{error_kind(error)}]: {error}"
                )
                continue
            fresh[record.address] = record.with_snapshot(
                self._apply_dex_fee(record, reserves), now
            )

        # Pools deregistered while the batch was in flight are dropped here
        self._pools = {addr: fresh.get(addr, rec) for addr, rec in self._pools.items()}

        updated = [rec for addr, rec in fresh.items() if addr in self._pools]
        if failed:
            logger.debug(f"Refreshed {len(updated)}/{len(targets)} pools")
        return RefreshResult(updated, failed)

    def _apply_dex_fee(self, record: PoolRecord, reserves: PoolReserves) -> PoolReserves:
        if self.registry is None:
            return reserves
        dex = self.registry.get_dex(record.dex_name)
        if dex is None or dex.fee_bps == reserves.fee_bps:
            return reserves
        return replace(reserves, fee_bps=dex.fee_bps)

    # Reads

    def get_snapshot(self) -> List[PoolRecord]:
        return list(self._pools.values())

    def get_pool(self, address: str) -> Optional[PoolRecord]:
        return self._pools.get(address.lower())

    def get_prices(self, token_a: Token, token_b: Token) -> List[PriceData]:
        """
        Prices of every pool quoting (token_a, token_b), oriented to that order.

        Pools without reserves or with an empty side are left out.
        """
        key = pair_key(token_a, token_b)
        prices = []
        for record in self._pools.values():
            reserves = record.reserves
            if reserves is None or pair_key(reserves.token0, reserves.token1) != key:
                continue
            try:
                price0to1, price1to0 = pool_prices(reserves)
            except InsufficientLiquidityError:
                continue
            if reserves.token0 != token_a:
                price0to1, price1to0 = price1to0, price0to1
            prices.append(
                PriceData(
                    token0=token_a,
                    token1=token_b,
                    price0to1=price0to1,
                    price1to0=price1to0,
                    dex_name=record.dex_name,
                    pool_address=record.address,
                )
            )
        return prices

    @property
    def pool_count(self) -> int:
        return len(self._pools)

    @property
    def snapshot_count(self) -> int:
        """Registered pools holding reserves, stale ones included."""
        return sum(1 for record in self._pools.values() if record.has_reserves)

    def __len__(self) -> int:
        return len(self._pools)

    def __contains__(self, address: str) -> bool:
        return address.lower() in self._pools
