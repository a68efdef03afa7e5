"""Last-update table shared by the reading path and the staleness reaper.

An entry exists for a device if and only if that device currently has
exported sensor gauges. The whole table is guarded by one lock: a reading
that refreshes a device and a sweep that expires it can never interleave.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaleDevice:
    """A device removed from the table by a sweep."""

    device: str
    last_update: float
    silent_for: float


class UpdateTracker:
    """Thread-safe map of device identity -> timestamp of last accepted reading.

    Callbacks passed to ``record`` and ``sweep`` run while the lock is held,
    which is how registry writes stay consistent with the table. They must
    not call back into the tracker.
    """

    def __init__(self):
        self._last_update: Dict[str, float] = {}
        self._lock = threading.Lock()

    def record(
        self,
        device: str,
        at: float,
        on_record: Optional[Callable[[], None]] = None,
    ) -> bool:
        """Insert or refresh ``device``.

        Args:
            device: Device identity
            at: Unix timestamp of the accepted reading
            on_record: Optional callback run inside the critical section

        Returns:
            True if the device was not tracked before (first contact or
            first reading after being reaped)
        """
        with self._lock:
            if on_record is not None:
                on_record()
            is_new = device not in self._last_update
            self._last_update[device] = at
            return is_new

    def sweep(
        self,
        now: float,
        max_age: float,
        on_expire: Optional[Callable[[str], None]] = None,
    ) -> List[StaleDevice]:
        """Remove every device silent for at least ``max_age`` seconds.

        Read and delete happen under a single lock acquisition.
        """
        expired: List[StaleDevice] = []
        with self._lock:
            for device, last in list(self._last_update.items()):
                silent_for = now - last
                if silent_for < max_age:
                    continue
                if on_expire is not None:
                    on_expire(device)
                del self._last_update[device]
                expired.append(StaleDevice(device=device, last_update=last, silent_for=silent_for))
        return expired

    def last_update(self, device: str) -> Optional[float]:
        with self._lock:
            return self._last_update.get(device)

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._last_update)

    def __contains__(self, device: object) -> bool:
        with self._lock:
            return device in self._last_update

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_update)
