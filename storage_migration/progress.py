"""Progress reporting for long upload runs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from time import perf_counter
from typing import Callable


def _format_duration(seconds: float) -> str:
    """Return a compact human-readable duration string."""
    total_seconds = int(round(seconds))
    if total_seconds <= 0:
        return "<1s"
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds_remaining = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes:02d}m{seconds_remaining:02d}s"
    if minutes:
        return f"{minutes}m{seconds_remaining:02d}s"
    return f"{seconds_remaining}s"


def eta_string(elapsed: float, completed: int, total: int) -> str:
    """Format an ETA string given elapsed time and progress counters."""
    if completed <= 0 or total <= 0 or completed > total or elapsed <= 0.0:
        return "ETA estimating"

    remaining = max(0.0, elapsed / (completed / total) - elapsed)
    finish_time = datetime.now() + timedelta(seconds=remaining)
    return f"ETA {_format_duration(remaining)} (finish {finish_time.strftime('%H:%M:%S')})"


class ProgressReporter:
    """Log a progress line every ``interval`` items and once at completion."""

    def __init__(
        self,
        total: int,
        logger: logging.Logger,
        *,
        interval: int = 50,
        clock: Callable[[], float] = perf_counter,
    ) -> None:
        self.total = total
        self.logger = logger
        self.interval = max(1, interval)
        self._clock = clock
        self._started = clock()
        self.processed = 0

    def advance(self, uploaded: int, skipped: int) -> bool:
        """Record one processed item; return ``True`` when a line was logged."""
        self.processed += 1
        if self.processed % self.interval and self.processed != self.total:
            return False
        elapsed = self._clock() - self._started
        self.logger.info(
            "processed %d/%d (uploaded=%d, skipped=%d, %s)",
            self.processed,
            self.total,
            uploaded,
            skipped,
            eta_string(elapsed, self.processed, self.total),
        )
        return True


__all__ = ["ProgressReporter", "eta_string"]
