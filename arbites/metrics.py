"""
Prometheus Metrics for the cross-DEX arbitrage bot

Exposes scheduling, pool refresh, detection and execution metrics, with an
optional aiohttp endpoint for scraping.
"""

import logging
import threading
from typing import Any, Dict, Optional

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


class ArbitrageMetrics:
    """
    Prometheus metrics collection and exposure

    Provides metrics for:
    - Check-and-act cycles (outcome, duration)
    - Pool refresh health
    - Opportunities found per DEX pair
    - Execution outcomes and realized profit
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._initialize_metrics()

        # Server components
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

        self._lock = threading.RLock()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""

        # === CYCLE METRICS ===
        self.cycles_total = Counter(
            "arbites_cycles_total",
            "Total number of check-and-act cycles by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.cycle_duration_seconds = Histogram(
            "arbites_cycle_duration_seconds",
            "Duration of a full refresh/scan/execute cycle",
            buckets=[0.5, 1, 2, 5, 10, 30, 60, 120],
            registry=self.registry,
        )

        self.last_cycle_timestamp = Gauge(
            "arbites_last_cycle_timestamp_seconds",
            "Unix time of the last completed cycle",
            registry=self.registry,
        )

        # === POOL METRICS ===
        self.pools_tracked = Gauge(
            "arbites_pools_tracked",
            "Number of pools with a reserve snapshot",
            registry=self.registry,
        )

        self.pool_refresh_failures_total = Counter(
            "arbites_pool_refresh_failures_total",
            "Total per-pool refresh failures",
            registry=self.registry,
        )

        # === OPPORTUNITY METRICS ===
        self.opportunities_found_total = Counter(
            "arbites_opportunities_found_total",
            "Total opportunities emitted by the scanner",
            ["buy_dex", "sell_dex"],
            registry=self.registry,
        )

        self.opportunity_divergence_pct = Histogram(
            "arbites_opportunity_divergence_percent",
            "Price divergence of emitted opportunities in percent",
            buckets=[0.1, 0.25, 0.5, 1, 2, 5, 10, 25],
            registry=self.registry,
        )

        # === EXECUTION METRICS ===
        self.executions_total = Counter(
            "arbites_executions_total",
            "Total execution attempts by final status",
            ["status"],
            registry=self.registry,
        )

        self.realized_profit_raw = Gauge(
            "arbites_realized_profit_raw_units",
            "Cumulative approximate realized profit in raw token units",
            registry=self.registry,
        )

    def record_cycle(self, outcome: str, duration_seconds: Optional[float] = None):
        """Record a finished cycle"""
        with self._lock:
            self.cycles_total.labels(outcome=outcome).inc()
            if duration_seconds is not None:
                self.cycle_duration_seconds.observe(duration_seconds)
                self.last_cycle_timestamp.set_to_current_time()

    def record_pool_refresh(self, tracked: int, failed: int):
        """Record the outcome of a pool refresh batch"""
        with self._lock:
            self.pools_tracked.set(tracked)
            if failed:
                self.pool_refresh_failures_total.inc(failed)

    def record_opportunity(self, buy_dex: str, sell_dex: str, divergence_pct: float):
        """Record an emitted opportunity"""
        with self._lock:
            self.opportunities_found_total.labels(
                buy_dex=buy_dex, sell_dex=sell_dex
            ).inc()
            self.opportunity_divergence_pct.observe(divergence_pct)

    def record_execution(self, status: str, actual_profit: Optional[int] = None):
        """Record an execution result"""
        with self._lock:
            self.executions_total.labels(status=status).inc()
            if actual_profit is not None:
                self.realized_profit_raw.inc(actual_profit)

    async def start_server(self, host: str = "0.0.0.0", port: int = 8000) -> bool:
        """Start the metrics HTTP server"""
        try:
            app = web.Application()
            app.router.add_get("/metrics", self._metrics_handler)
            app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"📊 Metrics server started on http://{host}:{port}/metrics")
            return True
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def stop_server(self):
        """Stop the metrics server"""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
        logger.info("📊 Metrics server stopped")

    async def _metrics_handler(self, request):
        """Handle metrics endpoint requests"""
        metrics_output = generate_latest(self.registry)
        # Strip charset from content type to avoid conflicts with aiohttp
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(text=metrics_output.decode("utf-8"), content_type=content_type)

    async def _health_handler(self, request):
        """Handle health check endpoint"""
        return web.json_response({"status": "healthy", "service": "arbites_metrics"})

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get a small summary of the current counters"""
        sample = self.registry.get_sample_value
        with self._lock:
            return {
                "pools_tracked": sample("arbites_pools_tracked") or 0.0,
                "pool_refresh_failures": sample("arbites_pool_refresh_failures_total")
                or 0.0,
                "realized_profit_raw": sample("arbites_realized_profit_raw_units")
                or 0.0,
            }
