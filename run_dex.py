#!/usr/bin/env python3
"""
Run the cross-DEX arbitrage monitor.

MODES:
  1. Dry run (default): monitor pools and report opportunities
  2. Live: execute the best opportunity each cycle (REQUIRES PRIVATE KEY)

Usage:
  # Dry run
  python run_dex.py --config configs/moonbeam.yaml

  # Single cycle, then exit
  python run_dex.py --config configs/moonbeam.yaml --once

  # Live execution (sends real transactions)
  export ARBITES_PRIVATE_KEY="0x..."
  python run_dex.py --config configs/moonbeam.yaml --live

Signals:
  SIGINT/SIGTERM stop after the current cycle, SIGUSR1 pauses, SIGUSR2 resumes.
"""

import argparse
import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv

import logging_config
from arbites import ArbitesError, ConfigError
from arbites.metrics import ArbitrageMetrics
from arbites.utils import get_logger
from dex.config import load_config
from dex.scheduler import Scheduler, build_scheduler

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Cross-DEX arbitrage monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        default="configs/moonbeam.yaml",
        help="Path to YAML config (default: configs/moonbeam.yaml)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument(
        "--live",
        action="store_true",
        help="Execute trades (disables dry run; needs a private key)",
    )
    parser.add_argument(
        "--interval", type=int, help="Seconds between cycles (overrides config)"
    )
    parser.add_argument(
        "--min-profit",
        type=float,
        help="Minimum price divergence in percent (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    return parser.parse_args(argv)


def install_signal_handlers(scheduler: Scheduler) -> None:
    """Route process signals to scheduler controls."""
    loop = asyncio.get_running_loop()
    handlers = {
        signal.SIGINT: scheduler.stop,
        signal.SIGTERM: scheduler.stop,
    }
    if hasattr(signal, "SIGUSR1"):
        handlers[signal.SIGUSR1] = scheduler.pause
        handlers[signal.SIGUSR2] = scheduler.resume

    for sig, handler in handlers.items():
        try:
            loop.add_signal_handler(sig, handler)
        except NotImplementedError:
            # Windows event loops have no signal support
            logger.debug(f"Signal {sig.name} not supported on this platform")


async def run(args: argparse.Namespace) -> int:
    overrides = {
        "update_interval_seconds": args.interval,
        "min_profit_percentage": args.min_profit,
    }
    if args.live:
        overrides["dry_run"] = False

    try:
        logger.info(f"Loading config from {args.config}...")
        config = load_config(args.config, overrides=overrides)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(
        f"Mode: {'DRY RUN' if config.dry_run else 'LIVE'} | "
        f"interval {config.update_interval_seconds}s | "
        f"min divergence {config.min_profit_percentage}% | "
        f"max gas {config.max_gas_price} wei"
    )

    metrics = None
    if config.metrics_enabled:
        metrics = ArbitrageMetrics()
        await metrics.start_server(config.metrics_host, config.metrics_port)

    try:
        scheduler = build_scheduler(config, metrics=metrics)
        install_signal_handlers(scheduler)
        await scheduler.run(max_cycles=1 if args.once else None)
    except (ArbitesError, ValueError) as e:
        # ValueError: malformed private key
        logger.error(f"Fatal error: {e}")
        return 1
    finally:
        if metrics is not None:
            await metrics.stop_server()

    if scheduler.engine is not None:
        stats = scheduler.engine.get_stats()
        logger.info(
            f"Executions: {stats['executions_attempted']} attempted, "
            f"{stats['executions_successful']} successful"
        )
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    load_dotenv()
    if args.log_level == "DEBUG":
        logging_config.setup_debug()
    else:
        logging_config.setup(getattr(logging, args.log_level))
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
