"""
Tests for the Scheduler: startup checks, cycle contents, fault containment
and run-loop controls.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from arbites.exceptions import ConnectivityError
from conftest import POOL_A, POOL_B, POOL_C, FakeChainClient, usdc_wglmr_reserves
from dex.config import BotConfig
from dex.events import (
    CycleCompleted,
    CycleFailed,
    ExecutionCompleted,
    OpportunityFound,
    PoolsUpdated,
)
from dex.monitor import PoolMonitor
from dex.scanner import OpportunityScanner
from dex.scheduler import Scheduler, SchedulerState, build_scheduler
from dex.types import ExecutionResult, ExecutionStatus


class RecordingObserver:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]


def diverging_chain() -> FakeChainClient:
    return FakeChainClient(
        reserves={POOL_A: usdc_wglmr_reserves(0.050), POOL_B: usdc_wglmr_reserves(0.045)}
    )


def make_scheduler(chain, engine=None, dry_run=True, interval=30.0, pools=(POOL_A, POOL_B)):
    monitor = PoolMonitor(chain)
    dex_names = ["StellaSwap", "BeamSwap", "Solarflare"]
    for address, dex_name in zip(pools, dex_names):
        monitor.register_pool(address, dex_name)
    observer = RecordingObserver()
    scheduler = Scheduler(
        chain,
        monitor,
        OpportunityScanner(min_profit_percentage=1.0),
        engine=engine,
        observer=observer,
        interval=interval,
        dry_run=dry_run,
    )
    return scheduler, observer


def mock_engine():
    engine = MagicMock()

    async def execute(opportunities):
        return [ExecutionResult(opportunity=opportunities[0], status=ExecutionStatus.SKIPPED)]

    engine.execute_opportunities = AsyncMock(side_effect=execute)
    return engine


class TestStartup:
    @pytest.mark.asyncio
    async def test_unreachable_chain_is_fatal(self):
        chain = diverging_chain()
        chain.block_number = ConnectivityError("refused")
        scheduler, _ = make_scheduler(chain)

        with pytest.raises(ConnectivityError, match="unreachable"):
            await scheduler.start()
        assert scheduler.state == SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_no_pools_is_fatal(self):
        scheduler, _ = make_scheduler(diverging_chain(), pools=())
        with pytest.raises(ConnectivityError, match="No pools"):
            await scheduler.start()

    @pytest.mark.asyncio
    async def test_no_readable_pools_is_fatal(self):
        chain = FakeChainClient(reserves={})
        scheduler, _ = make_scheduler(chain)
        with pytest.raises(ConnectivityError, match="Initial refresh failed"):
            await scheduler.start()

    @pytest.mark.asyncio
    async def test_unreadable_pools_are_dropped(self):
        chain = diverging_chain()
        scheduler, observer = make_scheduler(chain, pools=(POOL_A, POOL_B, POOL_C))

        await scheduler.start()

        assert POOL_C not in scheduler.monitor
        assert len(scheduler.monitor) == 2
        assert len(observer.of_type(PoolsUpdated)) == 1
        assert observer.of_type(PoolsUpdated)[0].failed_addresses == [POOL_C]

    @pytest.mark.asyncio
    async def test_run_propagates_startup_failure_and_closes_client(self):
        chain = FakeChainClient(reserves={})
        scheduler, _ = make_scheduler(chain)
        with pytest.raises(ConnectivityError):
            await scheduler.run(max_cycles=1)
        assert chain.closed


class TestCycle:
    @pytest.mark.asyncio
    async def test_event_order_in_dry_run(self):
        engine = mock_engine()
        scheduler, observer = make_scheduler(diverging_chain(), engine=engine, dry_run=True)

        completed = await scheduler.run_cycle()

        assert [type(e) for e in observer.events] == [
            PoolsUpdated,
            OpportunityFound,
            CycleCompleted,
        ]
        assert completed.opportunities == 1
        assert completed.executions == 0
        engine.execute_opportunities.assert_not_called()

    @pytest.mark.asyncio
    async def test_live_cycle_executes(self):
        engine = mock_engine()
        scheduler, observer = make_scheduler(diverging_chain(), engine=engine, dry_run=False)

        completed = await scheduler.run_cycle()

        engine.execute_opportunities.assert_awaited_once()
        assert [type(e) for e in observer.events] == [
            PoolsUpdated,
            OpportunityFound,
            ExecutionCompleted,
            CycleCompleted,
        ]
        assert completed.executions == 1

    @pytest.mark.asyncio
    async def test_no_opportunities_no_execution(self):
        chain = FakeChainClient(
            reserves={POOL_A: usdc_wglmr_reserves(0.05), POOL_B: usdc_wglmr_reserves(0.05)}
        )
        engine = mock_engine()
        scheduler, _ = make_scheduler(chain, engine=engine, dry_run=False)

        await scheduler.run_cycle()

        engine.execute_opportunities.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_pools_still_count_as_tracked(self):
        chain = diverging_chain()
        scheduler, observer = make_scheduler(chain)
        await scheduler.start()
        chain.reserves[POOL_B] = OSError("connection reset")

        await scheduler.run_cycle()

        refresh = observer.of_type(PoolsUpdated)[-1]
        assert [r.address for r in refresh.records] == [POOL_A]
        assert refresh.failed_addresses == [POOL_B]
        assert refresh.tracked == 2

    @pytest.mark.asyncio
    async def test_failing_cycle_is_contained(self):
        scheduler, observer = make_scheduler(diverging_chain())
        scheduler.scanner.scan = MagicMock(side_effect=RuntimeError("scan exploded"))

        assert await scheduler.run_cycle() is None

        failures = observer.of_type(CycleFailed)
        assert len(failures) == 1
        assert failures[0].error_kind == "unexpected"
        assert failures[0].message == "scan exploded"

    @pytest.mark.asyncio
    async def test_observer_failure_does_not_break_cycle(self):
        scheduler, _ = make_scheduler(diverging_chain())
        scheduler.observer = MagicMock()
        scheduler.observer.notify.side_effect = RuntimeError("observer down")

        completed = await scheduler.run_cycle()

        assert completed is not None
        assert completed.opportunities == 1

    @pytest.mark.asyncio
    async def test_cycles_never_overlap(self):
        scheduler, _ = make_scheduler(diverging_chain())
        in_flight = 0
        max_in_flight = 0

        async def slow_refresh():
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return [], []

        scheduler.monitor.refresh = slow_refresh
        await asyncio.gather(scheduler.run_cycle(), scheduler.run_cycle(), scheduler.run_cycle())

        assert max_in_flight == 1
        assert scheduler.cycle_count == 3


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_max_cycles(self):
        chain = diverging_chain()
        scheduler, observer = make_scheduler(chain, interval=0.01)

        await scheduler.run(max_cycles=3)

        assert len(observer.of_type(CycleCompleted)) == 3
        assert scheduler.state == SchedulerState.STOPPED
        assert chain.closed

    @pytest.mark.asyncio
    async def test_keeps_running_after_failed_cycle(self):
        scheduler, observer = make_scheduler(diverging_chain(), interval=0.01)
        real_scan = scheduler.scanner.scan
        scheduler.scanner.scan = MagicMock(side_effect=[RuntimeError("once"), real_scan([])])

        await scheduler.run(max_cycles=2)

        assert len(observer.of_type(CycleFailed)) == 1
        assert len(observer.of_type(CycleCompleted)) == 1

    @pytest.mark.asyncio
    async def test_stop_wakes_sleeping_loop(self):
        chain = diverging_chain()
        scheduler, observer = make_scheduler(chain, interval=60)

        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)
        assert len(observer.of_type(CycleCompleted)) == 1

        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert scheduler.state == SchedulerState.STOPPED
        assert chain.closed

    @pytest.mark.asyncio
    async def test_pause_and_resume(self):
        scheduler, observer = make_scheduler(diverging_chain(), interval=0.01)
        await scheduler.start()
        scheduler.pause()
        assert scheduler.state == SchedulerState.PAUSED

        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)
        assert observer.of_type(CycleCompleted) == []

        scheduler.resume()
        assert scheduler.state == SchedulerState.RUNNING
        await asyncio.sleep(0.05)
        assert len(observer.of_type(CycleCompleted)) >= 1

        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

    @pytest.mark.asyncio
    async def test_stop_wakes_paused_loop(self):
        scheduler, _ = make_scheduler(diverging_chain(), interval=0.01)
        await scheduler.start()
        scheduler.pause()

        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.02)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.cycle_count == 0

    def test_invalid_interval(self, fake_chain):
        with pytest.raises(ValueError):
            Scheduler(fake_chain, PoolMonitor(fake_chain), OpportunityScanner(), interval=0)


class TestBuildScheduler:
    def config(self, **overrides):
        values = {
            "rpc_url": "https://rpc.api.moonbeam.network",
            "tokens": {
                "USDC": {"address": "0x818ec0A7Fe18Ff94269904fCED6AE3DaE6d6dC0b", "decimals": 6},
                "WGLMR": {"address": "0xAcc15dC74880C9944775448304B263D191c6077F", "decimals": 18},
            },
            "update_interval_seconds": 7,
        }
        values.update(overrides)
        return BotConfig(values)

    def test_dry_run_wiring(self, fake_chain):
        scheduler = build_scheduler(self.config(), chain_client=fake_chain)

        assert scheduler.engine is None
        assert scheduler.dry_run is True
        assert scheduler.interval == 7
        # One derived USDC/WGLMR pool per default DEX
        assert len(scheduler.monitor) == 3
        assert scheduler.scanner.min_profit_percentage == 0.5

    def test_static_pools_only(self, fake_chain):
        config = self.config(
            discover_pools=False,
            pools=[{"address": POOL_A, "dex": "StellaSwap"}, {"address": POOL_B, "dex": "BeamSwap"}],
        )
        scheduler = build_scheduler(config, chain_client=fake_chain)
        assert {r.address for r in scheduler.monitor.get_snapshot()} == {POOL_A, POOL_B}

    def test_live_wiring(self, fake_chain, monkeypatch):
        monkeypatch.setenv("ARBITES_PRIVATE_KEY", "0x" + "11" * 32)
        scheduler = build_scheduler(
            self.config(dry_run=False, slippage_tolerance_bps=25), chain_client=fake_chain
        )

        assert scheduler.engine is not None
        assert scheduler.engine.config.slippage_bps == 25
        assert scheduler.engine.signer.address.startswith("0x")
