"""
Logging configuration for cleaner output.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys

APP_LOGGERS = ("__main__", "run_dex", "dex", "arbites")


def setup(level=logging.INFO):
    """
    Configure logging for cleaner, more readable output.

    - Suppresses per-request logs from web3, urllib3 and the metrics server
    - Uses shorter timestamp format (HH:MM:SS instead of full datetime)
    """

    # Root logger - minimal format
    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)

    # Minimal format: time + level + message
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    # Suppress noisy loggers
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    # Application loggers already created by get_logger() carry their own
    # handler; route them through the root handler at the requested level
    for name, obj in list(logging.root.manager.loggerDict.items()):
        if isinstance(obj, logging.Logger) and name.split(".")[0] in APP_LOGGERS:
            obj.handlers.clear()
            obj.setLevel(level)


def setup_debug():
    """
    Verbose logging for debugging.
    Shows RPC traffic as well.
    """
    setup(level=logging.DEBUG)
    logging.getLogger("web3").setLevel(logging.DEBUG)
