"""
Operation Performance Tracking Module

Bounded, insertion-ordered log of instrumented operations:
    - PerformanceLog: keeps at most `max_size` samples, oldest dropped first
    - PerformanceLog.track(): context manager that times a block and records it
    - PerformanceLog.insights(): digest used by the health surface

Reads return snapshots; mutating a returned list never affects the log.
"""

import time
from collections import deque
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from dashsync.core.logging_config import get_logger
from dashsync.domain.validation import PerformanceDigest, PerformanceSample
from dashsync.utils.datetime_utils import round_half_up, utc_now

logger = get_logger(__name__)

DEFAULT_MAX_SAMPLES = 100
RECENT_OPERATIONS = 10


class PerformanceLog:
    """
    Bounded sequence of PerformanceSample.

    Attributes:
        max_size: Maximum number of retained samples

    Example:
        >>> log = PerformanceLog(max_size=100)
        >>> log.record("validateSprintDates", 42.0, success=True)
        >>> len(log)
        1
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SAMPLES, clock: Callable[[], datetime] = utc_now):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._clock = clock
        self._samples: deque[PerformanceSample] = deque(maxlen=max_size)

    def __len__(self) -> int:
        return len(self._samples)

    def record(self, operation: str, duration_ms: float, success: bool, **details: Any) -> PerformanceSample:
        """Append a sample, evicting the oldest when full."""
        sample = PerformanceSample(
            operation=operation,
            duration_ms=duration_ms,
            success=success,
            timestamp=self._clock(),
            details=details,
        )
        self._samples.append(sample)
        logger.debug(
            f"Recorded performance sample: {operation}",
            extra={"operation": operation, "duration_ms": round(duration_ms, 2), "success": success},
        )
        return sample

    def samples(self) -> list[PerformanceSample]:
        """Snapshot of retained samples, oldest first."""
        return list(self._samples)

    def insights(self) -> PerformanceDigest:
        """
        Average duration, success rate and the last 10 operations.

        Returns an all-zero digest when nothing has been recorded.
        """
        samples = self.samples()
        if not samples:
            return PerformanceDigest()

        total_duration = sum(s.duration_ms for s in samples)
        successful = sum(1 for s in samples if s.success)

        return PerformanceDigest(
            average_duration=round_half_up(total_duration / len(samples)),
            operations=len(samples),
            success_rate=round_half_up(successful / len(samples) * 100),
            recent_operations=tuple(samples[-RECENT_OPERATIONS:]),
        )

    @contextmanager
    def track(self, operation: str) -> Generator[dict[str, Any], None, None]:
        """
        Time a block and record it.

        The block marks its outcome through the yielded context; an exception
        records a failed sample and propagates.

        Example:
            with performance_log.track("validateSprintDates") as ctx:
                verdict = run_validation()
                ctx["success"] = verdict.passed
        """
        context: dict[str, Any] = {"success": True}
        start_time = time.perf_counter()
        try:
            yield context
        except Exception:
            context["success"] = False
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            success = bool(context.pop("success"))
            self.record(operation, duration_ms, success, **context)
