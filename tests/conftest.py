from __future__ import annotations

from typing import Any, Dict

import orjson
import pytest
from prometheus_client import CollectorRegistry

from common.config import Settings
from qingping_collector.metrics import SensorMetrics, UpdateTracker
from qingping_collector.mqtt import ReadingProcessor

DEVICE = "living_room"
MAC = "582D34123456"


class FakeClock:
    """Reloj controlable para tests de expiración."""

    def __init__(self, now: float = 1_760_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def up_message(entry: Dict[str, Any] | None = None, type_: str = "12", **extra) -> bytes:
    """Construye un payload ``/up`` con una entrada de sensorData."""
    body: Dict[str, Any] = {"type": type_, "sensorData": [] if entry is None else [entry]}
    body.update(extra)
    return orjson.dumps(body)


def fields(**values: float) -> Dict[str, Any]:
    return {name: {"value": value} for name, value in values.items()}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics() -> SensorMetrics:
    return SensorMetrics(CollectorRegistry())


@pytest.fixture
def tracker() -> UpdateTracker:
    return UpdateTracker()


@pytest.fixture
def processor(metrics, tracker, clock) -> ReadingProcessor:
    return ReadingProcessor(DEVICE, metrics, tracker, clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        mqtt_broker="localhost",
        mqtt_port=1883,
        mqtt_username="",
        mqtt_password="",
        mqtt_client_id="qingping_collector",
        mqtt_topic_prefix="qingping",
        mqtt_keepalive=60,
        mqtt_reconnect_max_delay=5,
        mqtt_publish_timeout=1.0,
        device_mac=MAC,
        device_name=DEVICE,
        update_interval=60,
        duration=21600,
        metrics_port=9273,
        log_level="INFO",
    )
