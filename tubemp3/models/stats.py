"""
Dataclass for tracking service-wide job statistics.
"""

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field


@dataclass
class ServiceStats:
    """Tracks job outcomes and transfer volume, including real-time speed."""

    jobs_started: int = 0
    jobs_completed: int = 0
    jobs_failed: int = 0
    failures_by_kind: Counter = field(default_factory=Counter)
    total_bytes_acquired: int = 0
    total_bytes_delivered: int = 0
    active_jobs: int = 0
    peak_active_jobs: int = 0

    # Real-time speed calculation fields
    current_speed_bps: float = 0.0
    peak_speed_bps: float = 0.0
    _speed_samples: list[float] = field(default_factory=list, repr=False)
    _last_progress_time: float = field(default=0.0, repr=False)
    _last_progress_bytes: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self):
        self._last_progress_time = time.monotonic()

    def job_started(self) -> None:
        self.jobs_started += 1
        self.active_jobs += 1
        self.peak_active_jobs = max(self.peak_active_jobs, self.active_jobs)

    def job_finished(self, failure_kind: str | None = None) -> None:
        self.active_jobs = max(0, self.active_jobs - 1)
        if failure_kind is None:
            self.jobs_completed += 1
        else:
            self.jobs_failed += 1
            self.failures_by_kind[failure_kind] += 1

    async def add_acquired_bytes(self, count: int) -> None:
        """
        Adds freshly written bytes and refreshes the rolling speed.

        Speed is derived only from bytes actually written to disk.
        """
        async with self._lock:
            self.total_bytes_acquired += count
            now = time.monotonic()
            elapsed = now - self._last_progress_time

            # Update speed roughly twice per second
            if elapsed > 0.5:
                bytes_diff = self.total_bytes_acquired - self._last_progress_bytes
                if bytes_diff > 0:
                    self._speed_samples.append(bytes_diff / elapsed)
                    # Keep a sliding window of the last 10 speed samples
                    if len(self._speed_samples) > 10:
                        self._speed_samples.pop(0)
                    self.current_speed_bps = sum(self._speed_samples) / len(
                        self._speed_samples
                    )
                    self.peak_speed_bps = max(
                        self.peak_speed_bps, self.current_speed_bps
                    )

                self._last_progress_time = now
                self._last_progress_bytes = self.total_bytes_acquired

    def to_dict(self) -> dict:
        return {
            "jobs_started": self.jobs_started,
            "jobs_completed": self.jobs_completed,
            "jobs_failed": self.jobs_failed,
            "failures_by_kind": dict(self.failures_by_kind),
            "active_jobs": self.active_jobs,
            "peak_active_jobs": self.peak_active_jobs,
            "total_bytes_acquired": self.total_bytes_acquired,
            "total_bytes_delivered": self.total_bytes_delivered,
            "current_speed_bps": round(self.current_speed_bps, 1),
            "peak_speed_bps": round(self.peak_speed_bps, 1),
        }
