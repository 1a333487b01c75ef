"""
Common utilities for the network test runner.

This module provides shared utility functions like logging setup using loguru
and the millisecond clocks the measurement loops are driven by.
"""

import sys
import time
from collections.abc import Callable

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

Clock = Callable[[], float]

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds, used for elapsed-time bookkeeping."""
    return time.perf_counter() * 1000


def wall_clock_ms() -> float:
    """Wall clock in milliseconds, embedded in probes that cross process boundaries."""
    return time.time() * 1000


def setup_logging(
    level: str = "INFO",
    format_string: str | None = None,
    use_rich: bool = False,
) -> None:
    """
    Configure logging using loguru.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string (default: loguru's default with timestamp)
        use_rich: Whether to route records through rich for terminal output
    """
    logger.remove()

    if use_rich:
        console = Console(force_terminal=True, width=120)
        logger.add(
            RichHandler(
                console=console,
                rich_tracebacks=True,
                markup=False,
                show_time=False,
                show_path=False,
            ),
            format="{message}",
            level=level.upper(),
        )
    else:
        logger.add(
            sys.stdout,
            format=format_string or DEFAULT_FORMAT,
            level=level.upper(),
            colorize=True,
        )
