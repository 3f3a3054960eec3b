"""Timing of provider discovery, clones, reconciliations and whole runs."""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional


SLOW_OPERATION_SECONDS = 300.0


@dataclass
class PerformanceMetrics:
    """One timed operation."""
    operation: str
    duration: float
    started_at: float
    context: Optional[Dict[str, Any]] = None
    success: bool = True


@dataclass
class OperationStats:
    """Aggregated timings for every run of one operation name."""
    count: int = 0
    failures: int = 0
    total_duration: float = 0.0
    max_duration: float = 0.0

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.count if self.count else 0.0


class PerformanceLogger:
    """
    Collects operation timings from any number of worker threads.

    Use time_operation() around a block; the measurement is recorded even
    when the block raises, in which case it counts as a failure.
    """

    def __init__(self, logger_name: str = 'scsync.performance'):
        self.logger = logging.getLogger(logger_name)
        self._metrics: List[PerformanceMetrics] = []
        self._lock = threading.Lock()

    @contextmanager
    def time_operation(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        log_level: int = logging.DEBUG
    ) -> Generator[None, None, None]:
        """
        Time the enclosed block.

        Args:
            operation: Name the measurement is grouped under
            context: Extra key/value details logged at debug level
            log_level: Level for the start and completion messages
        """
        started_at = time.time()
        start = time.perf_counter()
        self.logger.log(log_level, f"Starting {operation}")

        success = False
        try:
            yield
            success = True
        finally:
            duration = time.perf_counter() - start
            with self._lock:
                self._metrics.append(PerformanceMetrics(operation, duration, started_at, context, success))

            if success:
                self.logger.log(log_level, f"{operation} took {format_duration(duration)}")
            else:
                self.logger.warning(f"{operation} failed after {format_duration(duration)}")
            if context:
                details = ", ".join(f"{k}={v}" for k, v in context.items())
                self.logger.debug(f"{operation} context: {details}")
            if duration > SLOW_OPERATION_SECONDS:
                self.logger.warning(f"Slow operation detected: '{operation}' took {format_duration(duration)}")

    def stats_by_operation(self) -> Dict[str, OperationStats]:
        with self._lock:
            metrics = list(self._metrics)

        stats: Dict[str, OperationStats] = {}
        for m in metrics:
            entry = stats.setdefault(m.operation, OperationStats())
            entry.count += 1
            entry.total_duration += m.duration
            entry.max_duration = max(entry.max_duration, m.duration)
            if not m.success:
                entry.failures += 1
        return stats

    def log_performance_summary(self) -> None:
        stats = self.stats_by_operation()
        if not stats:
            self.logger.info("No performance metrics available")
            return

        for operation, entry in sorted(stats.items()):
            failed = f", {entry.failures} failed" if entry.failures else ""
            self.logger.info(
                f"{operation}: {entry.count} runs{failed}, total {format_duration(entry.total_duration)}, "
                f"avg {entry.average_duration:.3f}s, max {entry.max_duration:.3f}s"
            )

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()


def format_duration(seconds: float) -> str:
    """Render seconds as '12.345s (00:12 mm:ss)'."""
    minutes, remainder = divmod(int(seconds), 60)
    return f"{seconds:.3f}s ({minutes:02d}:{remainder:02d} mm:ss)"


_performance_logger: Optional[PerformanceLogger] = None
_performance_logger_lock = threading.Lock()


def get_performance_logger() -> PerformanceLogger:
    """Return the process-wide PerformanceLogger, creating it on first use."""
    global _performance_logger
    with _performance_logger_lock:
        if _performance_logger is None:
            _performance_logger = PerformanceLogger()
        return _performance_logger
