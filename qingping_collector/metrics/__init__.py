"""Prometheus registry, last-update tracking and stale metric expiration."""

from .registry import MetricUpdate, SensorMetrics, SENSOR_GAUGES
from .tracker import StaleDevice, UpdateTracker
from .reaper import StalenessReaper

__all__ = [
    "MetricUpdate",
    "SensorMetrics",
    "SENSOR_GAUGES",
    "StaleDevice",
    "UpdateTracker",
    "StalenessReaper",
]
