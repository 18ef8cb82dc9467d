"""Observability module for gphoto2-mcp.

Provides structured logging and command statistics for monitoring the
gphoto2 command session.

Example:
    from gphoto2_mcp.observability import get_logger, LogContext

    logger = get_logger(__name__)

    logger.info("Camera opened")

    with LogContext(camera="Canon EOS 700D", port="usb:001,004"):
        logger.info("Command dispatched", command="list-config")

Statistics Example:
    from gphoto2_mcp.observability import CommandStats

    stats = CommandStats()
    session = CommandSession(one_shot, interactive, stats=stats)

    summary = stats.get_summary("interactive")
    print(f"Success rate: {summary.success_rate:.1%}")
"""

from gphoto2_mcp.observability.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from gphoto2_mcp.observability.stats import (
    CommandStats,
    StatsSummary,
)

__all__ = [
    # Logging
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "CommandStats",
    "StatsSummary",
]
