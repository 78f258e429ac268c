"""
Pipeline events and the observers that consume them.

The scheduler emits one event per step of a cycle. Observers are plain
objects with a ``notify(event)`` method; a failing observer is logged by the
scheduler and never interrupts the cycle.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, Union

from arbites.metrics import ArbitrageMetrics
from arbites.utils import format_duration, get_logger, shorten_address

from .types import ArbitrageOpportunity, ExecutionResult, ExecutionStatus, PoolRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class PoolsUpdated:
    """
    One refresh batch.

    ``tracked`` counts every registered pool holding a snapshot, including
    pools that kept an older one after a failed read. None means
    ``len(records)``.
    """

    records: List[PoolRecord]
    failed_addresses: List[str]
    tracked: Optional[int] = None


@dataclass(frozen=True)
class OpportunityFound:
    opportunity: ArbitrageOpportunity


@dataclass(frozen=True)
class ExecutionCompleted:
    result: ExecutionResult


@dataclass(frozen=True)
class CycleCompleted:
    cycle: int
    duration_seconds: float
    opportunities: int
    executions: int


@dataclass(frozen=True)
class CycleFailed:
    cycle: int
    error_kind: str
    message: str


Event = Union[PoolsUpdated, OpportunityFound, ExecutionCompleted, CycleCompleted, CycleFailed]


class Observer(Protocol):
    def notify(self, event: Event) -> None:
        ...


class LoggingObserver:
    """Renders events as log lines."""

    def notify(self, event: Event) -> None:
        if isinstance(event, PoolsUpdated):
            logger.info(
                f"Pools updated: {len(event.records)} fresh, "
                f"{len(event.failed_addresses)} failed"
            )
            for address in event.failed_addresses:
                logger.warning(f"Pool {shorten_address(address)} kept its previous snapshot")

        elif isinstance(event, OpportunityFound):
            opp = event.opportunity
            logger.info(
                f"Arbitrage opportunity found: {opp.route} "
                f"divergence={opp.profit_percentage:.2f}% "
                f"expected_profit={opp.expected_profit} "
                f"gas_estimate={opp.gas_estimate} net_profit={opp.net_profit}"
            )

        elif isinstance(event, ExecutionCompleted):
            result = event.result
            details = (
                f"approval_tx={result.approval_receipt.tx_hash if result.approval_receipt else None} "
                f"swap_tx={result.swap_receipt.tx_hash if result.swap_receipt else None} "
                f"actual_profit={result.actual_profit}"
            )
            message = (
                f"Execution {result.status.value}: {result.opportunity.route} "
                f"{details} reason={result.reason}"
            )
            if result.status == ExecutionStatus.SUCCESS:
                logger.info(message)
            elif result.status == ExecutionStatus.SKIPPED:
                logger.warning(message)
            else:
                logger.error(message)

        elif isinstance(event, CycleCompleted):
            logger.info(
                f"Cycle {event.cycle} completed in {format_duration(event.duration_seconds)}: "
                f"{event.opportunities} opportunities, {event.executions} executions"
            )

        elif isinstance(event, CycleFailed):
            logger.error(f"Cycle {event.cycle} failed [{event.error_kind}]: {event.message}")


class MetricsObserver:
    """Feeds Prometheus collectors from events."""

    def __init__(self, metrics: ArbitrageMetrics):
        self.metrics = metrics

    def notify(self, event: Event) -> None:
        if isinstance(event, PoolsUpdated):
            self.metrics.record_pool_refresh(
                tracked=len(event.records) if event.tracked is None else event.tracked,
                failed=len(event.failed_addresses),
            )
        elif isinstance(event, OpportunityFound):
            opp = event.opportunity
            self.metrics.record_opportunity(opp.buy_dex, opp.sell_dex, opp.profit_percentage)
        elif isinstance(event, ExecutionCompleted):
            self.metrics.record_execution(
                event.result.status.value, event.result.actual_profit
            )
        elif isinstance(event, CycleCompleted):
            self.metrics.record_cycle("success", event.duration_seconds)
        elif isinstance(event, CycleFailed):
            self.metrics.record_cycle("failed")


@dataclass
class CompositeObserver:
    """Fans one event out to several observers, isolating their failures."""

    observers: Sequence[Observer] = field(default_factory=list)

    def notify(self, event: Event) -> None:
        for observer in self.observers:
            try:
                observer.notify(event)
            except Exception as e:
                logger.error(
                    f"Observer {type(observer).__name__} failed on "
                    f"{type(event).__name__}: {e}"
                )
