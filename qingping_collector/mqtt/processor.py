"""Procesamiento de lecturas Qingping.

Flujo:
  MQTT topic qingping/{mac}/up
  → decode_message (validators.py)
  → plan_update (puro, sin efectos)
  → SensorMetrics + UpdateTracker (atómico respecto al reaper)
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..metrics.registry import MetricUpdate, SensorMetrics
from ..metrics.tracker import UpdateTracker
from .receiver_stats import ReceiverStats
from .validators import DecodeResult, DecodeStatus, SensorReading, decode_message

logger = logging.getLogger(__name__)


def plan_update(reading: SensorReading, device: str, now: float) -> MetricUpdate:
    """Traduce una lectura a las mutaciones del registry.

    Solo aparecen los campos presentes en la lectura; los ausentes no se
    tocan (ni a cero ni borrados).
    """
    values = {name: float(value) for name, value in reading.present_fields().items()}
    return MetricUpdate(device=device, values=values, last_update=float(int(now)))


class ReadingProcessor:
    """Aplica las lecturas de un dispositivo al registry y al tracker.

    ``handle`` es el handler de mensajes del topic ``/up``; se ejecuta en el
    thread de red de paho y nunca propaga excepciones.
    """

    def __init__(
        self,
        device: str,
        metrics: SensorMetrics,
        tracker: UpdateTracker,
        clock: Callable[[], float] = time.time,
    ):
        self.device = device
        self._metrics = metrics
        self._tracker = tracker
        self._clock = clock
        self._stats = ReceiverStats()

    def handle(self, topic: str, payload: bytes) -> Optional[DecodeResult]:
        """Callback de mensaje recibido."""
        now = self._clock()
        self._stats.incr("received", at=now)

        try:
            result = decode_message(payload, received_at=now)
            self._dispatch(topic, result, now)
            return result
        except Exception as e:
            logger.exception("[PROCESSOR] Processing error: %s (topic=%s)", e, topic)
            self._stats.incr("failed")
            return None

    def _dispatch(self, topic: str, result: DecodeResult, now: float) -> None:
        if result.status is DecodeStatus.INVALID:
            logger.warning("[PROCESSOR] Failed to decode message: %s (topic=%s)", result.error, topic)
            self._stats.incr("failed")
            return

        if result.status is DecodeStatus.ACK:
            logger.debug("[PROCESSOR] Ignoring type %s config response", result.message_type)
            self._stats.incr("ignored")
            return

        if result.status is DecodeStatus.EMPTY:
            logger.debug("[PROCESSOR] No sensor data in message (type=%s)", result.message_type)
            self._stats.incr("ignored")
            return

        for warning in result.warnings:
            logger.info("[PROCESSOR] %s (topic=%s)", warning, topic)

        self.apply(result.reading, now)

    def apply(self, reading: SensorReading, now: float) -> MetricUpdate:
        """Publica la lectura y registra el timestamp bajo el lock del tracker."""
        update = plan_update(reading, self.device, now)
        is_new = self._tracker.record(
            self.device,
            now,
            on_record=lambda: self._metrics.apply(update),
        )
        processed = self._stats.incr("processed")

        if is_new:
            logger.info("[PROCESSOR] Device '%s' is reporting", self.device)
        logger.info("[PROCESSOR] [%s] %s", self.device, reading.summary())

        if processed % 100 == 0:
            logger.info("[PROCESSOR] %s", self._stats)
        return update

    @property
    def stats(self) -> ReceiverStats:
        return self._stats
