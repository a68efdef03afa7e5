"""Statistics for the Qingping message pipeline.

Counters for received, processed, ignored and failed /up messages.
"""

from __future__ import annotations

import threading


class ReceiverStats:
    """Estadísticas del pipeline de lecturas."""

    def __init__(self):
        self.received = 0
        self.processed = 0
        self.ignored = 0
        self.failed = 0
        self.last_message_at: float = 0
        self._lock = threading.Lock()

    def incr(self, counter: str, at: float | None = None) -> int:
        with self._lock:
            value = getattr(self, counter) + 1
            setattr(self, counter, value)
            if at is not None:
                self.last_message_at = at
            return value

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} processed={self.processed} "
            f"ignored={self.ignored} failed={self.failed}"
        )

    def to_dict(self) -> dict:
        """Convert stats to dictionary."""
        return {
            "received": self.received,
            "processed": self.processed,
            "ignored": self.ignored,
            "failed": self.failed,
            "last_message_at": self.last_message_at,
        }
