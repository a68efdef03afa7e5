"""Prometheus gauges exported for each Qingping device.

Every gauge carries a single ``device`` label (the configured device name,
not the MAC address). The gauges live in an explicitly constructed
``CollectorRegistry`` so tests and multiple collectors never share state.

prometheus_client guards each metric family with its own lock, so
``set``/``remove`` are safe from the MQTT loop thread and the reaper thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Gauge, generate_latest

logger = logging.getLogger(__name__)

LABELS = ["device"]

# Attribute name -> (metric name, help text)
SENSOR_GAUGES: Dict[str, tuple[str, str]] = {
    "temperature": ("qingping_temperature_celsius", "Temperature in Celsius"),
    "humidity": ("qingping_humidity_percent", "Humidity percentage"),
    "co2": ("qingping_co2_ppm", "CO2 level in parts per million"),
    "pm25": ("qingping_pm25_ugm3", "PM2.5 in micrograms per cubic meter"),
    "pm10": ("qingping_pm10_ugm3", "PM10 in micrograms per cubic meter"),
    "tvoc": ("qingping_tvoc_ppb", "TVOC in parts per billion"),
    "battery": ("qingping_battery_percent", "Battery percentage"),
}

LAST_UPDATE_GAUGE = ("qingping_last_update_timestamp", "Timestamp of last sensor update")


@dataclass(frozen=True)
class MetricUpdate:
    """Registry mutations derived from one accepted reading."""

    device: str
    values: Dict[str, float] = field(default_factory=dict)
    last_update: Optional[float] = None


class SensorMetrics:
    """Labeled gauges for the air monitor attributes.

    Usage:
        metrics = SensorMetrics()
        metrics.set("living_room", "temperature", 21.5)
        metrics.remove("living_room")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._gauges: Dict[str, Gauge] = {
            attr: Gauge(name, help_text, LABELS, registry=self.registry)
            for attr, (name, help_text) in SENSOR_GAUGES.items()
        }
        name, help_text = LAST_UPDATE_GAUGE
        self._last_update = Gauge(name, help_text, LABELS, registry=self.registry)

    def set(self, device: str, attribute: str, value: float) -> None:
        try:
            gauge = self._gauges[attribute]
        except KeyError:
            raise ValueError(f"Unknown sensor attribute: {attribute}") from None
        gauge.labels(device=device).set(value)

    def set_last_update(self, device: str, timestamp: float) -> None:
        self._last_update.labels(device=device).set(timestamp)

    def apply(self, update: MetricUpdate) -> None:
        """Set every gauge present in ``update``; absent attributes are untouched."""
        for attribute, value in update.values.items():
            self.set(update.device, attribute, value)
        if update.last_update is not None:
            self.set_last_update(update.device, update.last_update)

    def remove(self, device: str) -> int:
        """Delete the sensor gauges of ``device``.

        The last-update gauge is kept on purpose as a marker of when the
        device was last heard from.

        Returns:
            Number of gauge children actually removed
        """
        removed = 0
        for attribute, gauge in self._gauges.items():
            if self.get(device, attribute) is None:
                continue
            _remove_child(gauge, SENSOR_GAUGES[attribute][0], device)
            removed += 1
        return removed

    def get(self, device: str, attribute: str) -> Optional[float]:
        if attribute == "last_update":
            name = LAST_UPDATE_GAUGE[0]
        else:
            name = SENSOR_GAUGES[attribute][0]
        return self.registry.get_sample_value(name, {"device": device})

    def exposition(self) -> bytes:
        return generate_latest(self.registry)


def _remove_child(gauge: Gauge, name: str, device: str) -> None:
    # Older prometheus_client releases raise KeyError for unknown label values.
    try:
        gauge.remove(device)
    except KeyError:
        logger.debug("Gauge %s already had no child for device=%s", name, device)
