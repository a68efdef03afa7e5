"""Periodic expiration of metrics for devices that stopped reporting."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from .registry import SensorMetrics
from .tracker import StaleDevice, UpdateTracker

logger = logging.getLogger(__name__)


class StalenessReaper:
    """Removes sensor gauges once a device is silent for ``2 × interval``.

    Runs a full sweep of the tracker every ``interval`` seconds on its own
    daemon thread. The last-update gauge is left in place.
    """

    def __init__(
        self,
        tracker: UpdateTracker,
        metrics: SensorMetrics,
        interval: float,
        clock: Callable[[], float] = time.time,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._tracker = tracker
        self._metrics = metrics
        self._interval = float(interval)
        self._clock = clock

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._total_reaped = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def max_age(self) -> float:
        # Expire metrics after 2x the update interval
        return self._interval * 2

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="staleness-reaper", daemon=True)
        self._thread.start()
        logger.info(
            "[REAPER] Started: sweep every %.0fs, expire after %.0fs",
            self._interval,
            self.max_age,
        )

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        logger.info("[REAPER] Stopped. Devices reaped: %d", self._total_reaped)

    def run_once(self, now: Optional[float] = None) -> List[StaleDevice]:
        """Sweep the tracker once and drop the gauges of stale devices."""
        if now is None:
            now = self._clock()

        expired = self._tracker.sweep(now, self.max_age, on_expire=self._metrics.remove)
        for stale in expired:
            logger.warning(
                "[REAPER] Device '%s' has not responded in %.0fs, removed stale metrics",
                stale.device,
                stale.silent_for,
            )
        self._total_reaped += len(expired)
        return expired

    def _loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self.run_once()
            except Exception as e:
                logger.exception("[REAPER] Sweep failed: %s", e)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def total_reaped(self) -> int:
        return self._total_reaped
