"""Command statistics collection and reporting.

Tracks the outcome and duration of every command the session worker
dispatches to gphoto2, separately per transport ("one_shot" and
"interactive"). Spawning a process per command costs far more than a line
written to the shell, so keeping the two apart makes the numbers useful.

Thread-safe: the session worker records while MCP tools read summaries.

Example:
    stats = CommandStats()
    stats.record_command("interactive", duration_ms=12.5, success=True)
    stats.record_command(
        "one_shot", duration_ms=480.0, success=False, error_type="DeviceError"
    )

    summary = stats.get_summary("interactive")
    print(f"{summary.success_rate:.0%} ok, p95={summary.p95_duration_ms:.1f}ms")
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# =============================================================================
# Constants
# =============================================================================

#: Default number of command records to retain per transport.
DEFAULT_STATS_WINDOW_SIZE: int = 1000


# =============================================================================
# Helpers
# =============================================================================


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class StatsSummary:
    """Summary statistics for one transport.

    Attributes:
        transport: Transport name ("one_shot" or "interactive").
        total_commands: All-time commands dispatched.
        successful_commands: Commands that resolved with output.
        failed_commands: Commands that resolved with an error.
        success_rate: successful / total, 0.0 with no commands.
        min_duration_ms: Fastest successful command in the window.
        max_duration_ms: Slowest successful command in the window.
        avg_duration_ms: Mean successful duration in the window.
        p95_duration_ms: 95th percentile successful duration.
        error_counts: Failure count per error type name.
        last_command_time: UTC time of the most recent command.
        uptime_seconds: Seconds since the collector was created or reset.
    """

    transport: str
    total_commands: int = 0
    successful_commands: int = 0
    failed_commands: int = 0
    success_rate: float = 0.0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    avg_duration_ms: float = 0.0
    p95_duration_ms: float = 0.0
    error_counts: dict[str, int] = field(default_factory=dict)
    last_command_time: datetime | None = None
    uptime_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert the summary to a JSON-serializable dict.

        Returns:
            Dict with every field; last_command_time as ISO string or None.
        """
        return {
            "transport": self.transport,
            "total_commands": self.total_commands,
            "successful_commands": self.successful_commands,
            "failed_commands": self.failed_commands,
            "success_rate": self.success_rate,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
            "p95_duration_ms": self.p95_duration_ms,
            "error_counts": self.error_counts.copy(),
            "last_command_time": (
                self.last_command_time.isoformat() if self.last_command_time else None
            ),
            "uptime_seconds": self.uptime_seconds,
        }


@dataclass
class CommandRecord:
    """Single command record for statistics."""

    timestamp: float  # monotonic time
    duration_ms: float
    success: bool
    error_type: str | None = None


class TransportStatsCollector:
    """Rolling-window statistics for a single transport."""

    def __init__(
        self,
        transport: str,
        window_size: int = DEFAULT_STATS_WINDOW_SIZE,
    ) -> None:
        """Create a collector.

        Args:
            transport: Transport name used to label the summary.
            window_size: Records kept for duration statistics. Totals and
                error counts are cumulative regardless of the window.
        """
        self.transport = transport
        self._window_size = window_size
        self._records: deque[CommandRecord] = deque(maxlen=window_size)
        self._error_counts: dict[str, int] = {}
        self._total_commands = 0
        self._successful_commands = 0
        self._start_time = time.monotonic()
        self._last_command_time: datetime | None = None
        self._lock = threading.Lock()

    def record(
        self,
        duration_ms: float,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """Record one dispatched command.

        Args:
            duration_ms: Wall time from dispatch to resolution.
            success: True when the command resolved with output.
            error_type: Exception class name for failures, else None.
        """
        record = CommandRecord(
            timestamp=time.monotonic(),
            duration_ms=duration_ms,
            success=success,
            error_type=error_type,
        )

        with self._lock:
            self._records.append(record)
            self._total_commands += 1
            if success:
                self._successful_commands += 1
            elif error_type:
                self._error_counts[error_type] = (
                    self._error_counts.get(error_type, 0) + 1
                )
            self._last_command_time = _utc_now()

    def get_summary(self) -> StatsSummary:
        """Compute the current summary.

        Duration statistics use successful commands in the window only.

        Returns:
            StatsSummary snapshot.
        """
        # Copy under lock, sort outside it
        with self._lock:
            total = self._total_commands
            successful = self._successful_commands
            error_counts = self._error_counts.copy()
            last_command_time = self._last_command_time
            start_time = self._start_time
            durations = [
                r.duration_ms for r in self._records if r.success and r.duration_ms > 0
            ]

        if durations:
            min_dur = min(durations)
            max_dur = max(durations)
            avg_dur = sum(durations) / len(durations)
            p95_dur = _percentile(sorted(durations), 95)
        else:
            min_dur = max_dur = avg_dur = p95_dur = 0.0

        return StatsSummary(
            transport=self.transport,
            total_commands=total,
            successful_commands=successful,
            failed_commands=total - successful,
            success_rate=successful / total if total > 0 else 0.0,
            min_duration_ms=min_dur,
            max_duration_ms=max_dur,
            avg_duration_ms=avg_dur,
            p95_duration_ms=p95_dur,
            error_counts=error_counts,
            last_command_time=last_command_time,
            uptime_seconds=time.monotonic() - start_time,
        )

    def reset(self) -> None:
        """Clear all records and counters and restart the uptime clock."""
        with self._lock:
            self._records.clear()
            self._error_counts.clear()
            self._total_commands = 0
            self._successful_commands = 0
            self._start_time = time.monotonic()
            self._last_command_time = None


class CommandStats:
    """Per-transport command statistics for one command session.

    Collectors are created lazily on first record for a transport.

    Usage:
        stats = CommandStats()
        stats.record_command("interactive", duration_ms=8.1, success=True)
        stats.get_summary("interactive").total_commands  # 1
        stats.to_dict()  # {"transports": {...}, "timestamp": "..."}
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        """Create an empty statistics manager.

        Args:
            window_size: Window passed to every per-transport collector.
        """
        self._window_size = window_size
        self._collectors: dict[str, TransportStatsCollector] = {}
        self._lock = threading.Lock()

    def _get_collector(self, transport: str) -> TransportStatsCollector:
        """Get or lazily create the collector for a transport."""
        with self._lock:
            if transport not in self._collectors:
                self._collectors[transport] = TransportStatsCollector(
                    transport, self._window_size
                )
            return self._collectors[transport]

    def record_command(
        self,
        transport: str,
        duration_ms: float,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """Record one dispatched command.

        Args:
            transport: "one_shot" or "interactive".
            duration_ms: Dispatch-to-resolution time in milliseconds.
            success: True when the command resolved with output.
            error_type: Exception class name for failures.

        Example:
            >>> stats = CommandStats()
            >>> stats.record_command("one_shot", 350.0, False, "ProcessError")
            >>> stats.get_summary("one_shot").error_counts
            {'ProcessError': 1}
        """
        self._get_collector(transport).record(duration_ms, success, error_type)

    def get_summary(self, transport: str) -> StatsSummary:
        """Get the summary for one transport (empty if never used)."""
        return self._get_collector(transport).get_summary()

    def get_all_summaries(self) -> dict[str, StatsSummary]:
        """Get summaries for every transport seen so far."""
        with self._lock:
            collectors = list(self._collectors.items())
        return {name: collector.get_summary() for name, collector in collectors}

    def reset(self, transport: str | None = None) -> None:
        """Reset one transport, or all when transport is None."""
        with self._lock:
            if transport is not None:
                if transport in self._collectors:
                    self._collectors[transport].reset()
            else:
                for collector in self._collectors.values():
                    collector.reset()

    def to_dict(self) -> dict[str, Any]:
        """Export all summaries as a JSON-serializable dict."""
        summaries = self.get_all_summaries()
        return {
            "transports": {
                name: summary.to_dict() for name, summary in summaries.items()
            },
            "timestamp": _utc_now().isoformat(),
        }


def _percentile(sorted_data: list[float], p: float) -> float:
    """Linear-interpolated percentile of pre-sorted data.

    Args:
        sorted_data: Ascending values.
        p: Percentile in [0, 100].

    Returns:
        Interpolated value, 0.0 for empty data.

    Raises:
        ValueError: If p is outside [0, 100].

    Example:
        >>> _percentile([10.0, 20.0, 30.0, 40.0], 50)
        25.0
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")
    if not sorted_data:
        return 0.0

    k = (len(sorted_data) - 1) * (p / 100)
    floor_idx = int(k)
    ceil_idx = min(floor_idx + 1, len(sorted_data) - 1)

    if floor_idx == ceil_idx:
        return sorted_data[floor_idx]

    fraction = k - floor_idx
    return sorted_data[floor_idx] + fraction * (
        sorted_data[ceil_idx] - sorted_data[floor_idx]
    )
