"""Centralized logging configuration for lunalint client hosts."""

import logging
import os
import sys
import time
from contextlib import contextmanager
from typing import Generator, Optional

# Log format constants
SIMPLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
)

# Environment variable names
LOG_LEVEL_ENV = "LUNALINT_LOG_LEVEL"

# Default values
DEFAULT_LOG_LEVEL = "INFO"

# Logger receiving window/logMessage output from the server
SERVER_LOGGER_NAME = "lunalint.server"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure logging for the entire application.

    Logs go to stderr so stdout stays free for diagnostics output.

    Args:
        level: Log level override. If not provided, uses LUNALINT_LOG_LEVEL env var or INFO.
    """
    level_name = (level or os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    # Use simple format for INFO+, detailed format with line numbers for DEBUG
    fmt = DETAILED_FORMAT if log_level == logging.DEBUG else SIMPLE_FORMAT

    logging.basicConfig(
        level=log_level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )

    # Quiet noisy third-party libraries
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


@contextmanager
def log_timing(
    logger: logging.Logger, operation: str, level: int = logging.DEBUG
) -> Generator[None, None, None]:
    """Context manager for timing operations.

    Args:
        logger: Logger instance to use.
        operation: Name of the operation being timed.
        level: Log level for the timing message (default: DEBUG).

    Example:
        with log_timing(logger, "Server shutdown"):
            await client.stop()
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.log(level, "%s completed in %.1fms", operation, duration_ms)
