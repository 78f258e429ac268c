"""
Common utilities and helper functions for the arbitrage bot.

Log formatting helpers and the structured logger factory every module uses.
"""

import logging
from typing import Union


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def shorten_address(address: str, chars: int = 6) -> str:
    """Shorten a hex address for log lines (0x818ec0...dc0b)."""
    if not address or len(address) <= 2 + chars * 2:
        return address
    return f"{address[:2 + chars]}...{address[-4:]}"


# Logging utilities
def get_logger(name: str, level: Union[str, int] = logging.INFO) -> logging.Logger:
    """
    Get a structured logger with consistent formatting.

    Args:
        name: Logger name (typically __name__)
        level: Logging level

    Returns:
        Configured logger with structured output
    """
    logger = logging.getLogger(name)

    # Set level if not already set
    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        format_str = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
        formatter = logging.Formatter(format_str, datefmt="%H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
