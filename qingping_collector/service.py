"""Wiring of the collector: MQTT receiver, keepalive, processor and reaper.

Every shared object is constructed here and passed explicitly; nothing is
module-level state.
"""

from __future__ import annotations

import logging
from typing import Optional

from prometheus_client import CollectorRegistry

from common.config import Settings

from .metrics.reaper import StalenessReaper
from .metrics.registry import SensorMetrics
from .metrics.tracker import UpdateTracker
from .mqtt.keepalive import KeepaliveCommand, KeepaliveController
from .mqtt.processor import ReadingProcessor
from .mqtt.receiver import MQTTReceiver

logger = logging.getLogger(__name__)


class CollectorService:
    """Owns the collector components and their lifecycle.

    Usage:
        service = CollectorService(settings)
        service.start()
        ...
        service.stop()
    """

    def __init__(
        self,
        settings: Settings,
        registry: Optional[CollectorRegistry] = None,
        receiver: Optional[MQTTReceiver] = None,
    ):
        self.settings = settings
        self.metrics = SensorMetrics(registry)
        self.tracker = UpdateTracker()
        self.processor = ReadingProcessor(settings.device_name, self.metrics, self.tracker)
        self.keepalive = KeepaliveController(
            command=KeepaliveCommand(interval=settings.update_interval, duration=settings.duration),
            up_topic=settings.up_topic,
            down_topic=settings.down_topic,
            handler=self.processor.handle,
        )
        self.reaper = StalenessReaper(self.tracker, self.metrics, interval=settings.update_interval)
        self.receiver = receiver or MQTTReceiver(
            broker_host=settings.mqtt_broker,
            broker_port=settings.mqtt_port,
            username=settings.mqtt_username or None,
            password=settings.mqtt_password or None,
            client_id=settings.mqtt_client_id,
            keepalive=settings.mqtt_keepalive,
            reconnect_max_delay=settings.mqtt_reconnect_max_delay,
            publish_timeout=settings.mqtt_publish_timeout,
            on_connected=self.keepalive.on_connected,
            on_connection_lost=self.keepalive.on_connection_lost,
        )
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self.receiver.start()
        self.keepalive.start()
        self.reaper.start()
        self._started = True

        logger.info("Qingping CGDN1 collector started (device=%s)", self.settings.device_name)
        logger.info(
            "Requesting data every %d seconds for duration of %d seconds (%d hours)",
            self.settings.update_interval,
            self.settings.duration,
            self.settings.duration // 3600,
        )

    def stop(self) -> None:
        """Best-effort shutdown: timers first, then MQTT. In-flight messages are not awaited."""
        if not self._started:
            return
        logger.info("Shutting down...")
        self.keepalive.stop()
        self.reaper.stop()
        self.receiver.stop()
        self._started = False
        logger.info("[PROCESSOR] %s", self.processor.stats)

    def health_check(self) -> dict:
        return {
            "healthy": self.receiver.is_connected,
            "running": self._started,
            "mqtt": self.receiver.stats,
            "keepalive": self.keepalive.stats,
            "messages": self.processor.stats.to_dict(),
            "tracked_devices": self.tracker.snapshot(),
            "devices_reaped": self.reaper.total_reaped,
        }
