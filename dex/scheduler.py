"""
Periodic cycle runner for the arbitrage pipeline.

One cycle is refresh -> scan -> (optionally) execute. Cycles run strictly one
after another on a fixed period measured from each cycle's start. Nothing
that goes wrong inside a cycle stops the loop; only startup failures are
fatal.
"""

import asyncio
import time
from enum import Enum
from typing import Callable, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from arbites.exceptions import ConnectivityError, error_kind
from arbites.metrics import ArbitrageMetrics
from arbites.utils import get_logger

from .chain_client import ChainClient, Web3ChainClient
from .config import BotConfig
from .events import (
    CompositeObserver,
    CycleCompleted,
    CycleFailed,
    Event,
    ExecutionCompleted,
    LoggingObserver,
    MetricsObserver,
    Observer,
    OpportunityFound,
    PoolsUpdated,
)
from .executor import ExecutionConfig, ExecutionEngine
from .monitor import PoolMonitor
from .registry import DexRegistry
from .scanner import OpportunityScanner

logger = get_logger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Scheduler:
    """
    Owns the monitor and engine for the process lifetime and drives cycles.

    Args:
        chain_client: Chain access, closed when the loop ends
        monitor: Pool cache to refresh each cycle
        scanner: Opportunity detector
        engine: Execution engine; None means detection only
        observer: Event sink (default: LoggingObserver)
        interval: Seconds between cycle starts
        dry_run: Report opportunities without executing them
        clock: Monotonic time source for cycle timing
    """

    def __init__(
        self,
        chain_client: ChainClient,
        monitor: PoolMonitor,
        scanner: OpportunityScanner,
        engine: Optional[ExecutionEngine] = None,
        observer: Optional[Observer] = None,
        interval: float = 30.0,
        dry_run: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive: {interval}")
        self.chain_client = chain_client
        self.monitor = monitor
        self.scanner = scanner
        self.engine = engine
        self.observer = observer or LoggingObserver()
        self.interval = interval
        self.dry_run = dry_run
        self._clock = clock

        self._state = SchedulerState.IDLE
        self._started = False
        self._paused = False
        self._cycle = 0
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def cycle_count(self) -> int:
        return self._cycle

    def _emit(self, event: Event) -> None:
        try:
            self.observer.notify(event)
        except Exception as e:
            logger.error(f"Observer failed on {type(event).__name__}: {e}")

    async def start(self) -> None:
        """
        Verify the chain is reachable and load the first snapshot.

        Pools that fail this first read are deregistered; derived addresses
        for pairs that were never created end up here.

        Raises:
            ConnectivityError: If the chain is unreachable, no pools are
                registered, or no pool could be read
        """
        self._state = SchedulerState.STARTING
        try:
            block = await self.chain_client.get_block_number()
        except Exception as e:
            self._state = SchedulerState.STOPPED
            raise ConnectivityError(f"Chain unreachable at startup: {e}") from e
        logger.info(f"Connected to chain at block {block}")

        if self.monitor.pool_count == 0:
            self._state = SchedulerState.STOPPED
            raise ConnectivityError("No pools registered")

        updated, failed = await self.monitor.refresh()
        if not updated:
            self._state = SchedulerState.STOPPED
            raise ConnectivityError(
                f"Initial refresh failed for all {len(failed)} registered pools"
            )

        for address in failed:
            self.monitor.deregister_pool(address)
        if failed:
            logger.info(f"Dropped {len(failed)} pools that could not be read at startup")

        self._emit(
            PoolsUpdated(
                records=updated,
                failed_addresses=list(failed),
                tracked=self.monitor.snapshot_count,
            )
        )
        logger.info(f"Monitoring {self.monitor.pool_count} pools")
        self._started = True

    async def run_cycle(self) -> Optional[CycleCompleted]:
        """
        Run one refresh/scan/execute cycle.

        Returns:
            The CycleCompleted event, or None if the cycle failed
        """
        async with self._cycle_lock:
            self._cycle += 1
            cycle = self._cycle
            started = self._clock()
            try:
                updated, failed = await self.monitor.refresh()
                self._emit(
                    PoolsUpdated(
                        records=updated,
                        failed_addresses=failed,
                        tracked=self.monitor.snapshot_count,
                    )
                )

                opportunities = self.scanner.scan(self.monitor.get_snapshot())
                for opportunity in opportunities:
                    self._emit(OpportunityFound(opportunity=opportunity))

                results = []
                if opportunities and not self.dry_run and self.engine is not None:
                    results = await self.engine.execute_opportunities(opportunities)
                    for result in results:
                        self._emit(ExecutionCompleted(result=result))

                completed = CycleCompleted(
                    cycle=cycle,
                    duration_seconds=self._clock() - started,
                    opportunities=len(opportunities),
                    executions=len(results),
                )
                self._emit(completed)
                return completed

            except Exception as e:
                logger.exception(f"Cycle {cycle} failed")
                self._emit(CycleFailed(cycle=cycle, error_kind=error_kind(e), message=str(e)))
                return None

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """
        Run cycles until stopped (or until ``max_cycles`` have run).

        Starts the scheduler first if ``start`` was not called. The chain
        client is closed on exit.
        """
        try:
            if not self._started:
                await self.start()
            self._state = SchedulerState.PAUSED if self._paused else SchedulerState.RUNNING

            cycles_run = 0
            while not self._stop_event.is_set():
                if self._paused:
                    await self._wake_event.wait()
                    continue

                started = self._clock()
                await self.run_cycle()
                cycles_run += 1
                if max_cycles is not None and cycles_run >= max_cycles:
                    break

                remaining = self.interval - (self._clock() - started)
                if remaining > 0:
                    await self._sleep(remaining)
        finally:
            self._state = SchedulerState.STOPPED
            await self.chain_client.close()
            logger.info(f"Scheduler stopped after {self._cycle} cycles")

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early if stop is requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def pause(self) -> None:
        """Hold the loop before its next cycle. An in-flight cycle finishes."""
        if self._stop_event.is_set():
            return
        self._paused = True
        self._wake_event.clear()
        self._state = SchedulerState.PAUSED
        logger.info("Scheduler paused")

    def resume(self) -> None:
        if self._stop_event.is_set() or not self._paused:
            return
        self._paused = False
        self._wake_event.set()
        self._state = SchedulerState.RUNNING
        logger.info("Scheduler resumed")

    def stop(self) -> None:
        """Request shutdown; wakes a sleeping or paused loop."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        self._wake_event.set()
        if self._state != SchedulerState.STOPPED:
            self._state = SchedulerState.STOPPING
        logger.info("Scheduler stopping")


def build_scheduler(
    config: BotConfig,
    chain_client: Optional[ChainClient] = None,
    signer: Optional[LocalAccount] = None,
    metrics: Optional[ArbitrageMetrics] = None,
) -> Scheduler:
    """
    Wire every component from a validated config.

    Args:
        config: Bot configuration
        chain_client: Chain access (default: Web3ChainClient on config.rpc_url)
        signer: Signing account for live runs (default: from config.private_key)
        metrics: Metrics collector to feed from events

    Returns:
        A Scheduler ready for ``run``
    """
    registry = DexRegistry(config.dexes)

    if chain_client is None:
        web3_client = Web3ChainClient(
            config.rpc_url,
            config.chain_id,
            timeout=config.rpc_timeout_seconds,
            receipt_timeout=config.receipt_timeout_seconds,
        )
        for token in config.tokens.values():
            web3_client.register_token(token)
        chain_client = web3_client

    monitor = PoolMonitor(
        chain_client,
        registry=registry,
        max_concurrent_reads=config.max_concurrent_reads,
        # Room for the client's own retries
        read_timeout=config.rpc_timeout_seconds * 3,
    )
    for pool in config.pools:
        monitor.register_pool(pool["address"], pool["dex"])
    if config.discover_pools and len(config.tokens) >= 2:
        monitor.discover_pools(config.tokens.values(), registry)

    scanner = OpportunityScanner(
        min_profit_percentage=config.min_profit_percentage,
        probe_amount=config.probe_amount,
        gas_estimate=config.gas_estimate,
    )

    engine = None
    if not config.dry_run:
        signer = signer or Account.from_key(config.private_key)
        logger.info(f"Loaded account: {signer.address}")
        engine = ExecutionEngine(
            chain_client,
            registry,
            signer,
            config=ExecutionConfig(
                max_gas_price=config.max_gas_price,
                slippage_bps=config.slippage_tolerance_bps,
                confirmations=config.confirmations,
                call_timeout=config.rpc_timeout_seconds * 3,
                receipt_timeout=config.receipt_timeout_seconds + config.rpc_timeout_seconds,
            ),
        )

    observers: List[Observer] = [LoggingObserver()]
    if metrics is not None:
        observers.append(MetricsObserver(metrics))

    return Scheduler(
        chain_client,
        monitor,
        scanner,
        engine=engine,
        observer=CompositeObserver(observers),
        interval=config.update_interval_seconds,
        dry_run=config.dry_run,
    )
