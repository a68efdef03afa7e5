from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Configuración inválida: el proceso no debe arrancar."""


@dataclass(frozen=True)
class Settings:
    mqtt_broker: str
    mqtt_port: int
    mqtt_username: str
    mqtt_password: str
    mqtt_client_id: str
    mqtt_topic_prefix: str
    mqtt_keepalive: int
    mqtt_reconnect_max_delay: int
    mqtt_publish_timeout: float

    device_mac: str
    device_name: str

    # Seconds between readings requested from the device (Type 12 up_itvl)
    update_interval: int
    # How long the device keeps reporting after each command
    duration: int

    metrics_port: int
    log_level: str

    @property
    def up_topic(self) -> str:
        return f"{self.mqtt_topic_prefix}/{self.device_mac}/up"

    @property
    def down_topic(self) -> str:
        return f"{self.mqtt_topic_prefix}/{self.device_mac}/down"


def _read_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        logger.warning("[CONFIG] %s=%r is not an integer, using %d", name, value, default)
        return default
    if parsed <= 0:
        logger.warning("[CONFIG] %s=%d must be positive, using %d", name, parsed, default)
        return default
    return parsed


def _read_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        logger.warning("[CONFIG] %s=%r is not a number, using %.1f", name, value, default)
        return default
    if parsed <= 0:
        logger.warning("[CONFIG] %s=%s must be positive, using %.1f", name, parsed, default)
        return default
    return parsed


_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _read_log_level(name: str, default: str) -> str:
    value = os.getenv(name, default).strip().upper()
    if value not in _LOG_LEVELS:
        logger.warning("[CONFIG] %s=%r is not a log level, using %s", name, value, default)
        return default
    return value


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("COLLECTOR_ENV_FILE", ".env")
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    # MAC address of the CGDN1, e.g. "582D34123456"
    device_mac = os.getenv("DEVICE_MAC", "").strip()
    if not device_mac:
        raise ConfigError("DEVICE_MAC environment variable is required")

    return Settings(
        mqtt_broker=os.getenv("MQTT_BROKER", "mosquitto"),
        mqtt_port=_read_int_env("MQTT_PORT", 1883),
        mqtt_username=os.getenv("MQTT_USERNAME", ""),
        mqtt_password=os.getenv("MQTT_PASSWORD", ""),
        mqtt_client_id=os.getenv("MQTT_CLIENT_ID", "qingping_collector"),
        mqtt_topic_prefix=os.getenv("MQTT_TOPIC_PREFIX", "qingping").strip("/") or "qingping",
        mqtt_keepalive=_read_int_env("MQTT_KEEPALIVE", 60),
        mqtt_reconnect_max_delay=_read_int_env("MQTT_RECONNECT_MAX_DELAY", 5),
        mqtt_publish_timeout=_read_float_env("MQTT_PUBLISH_TIMEOUT", 5.0),
        device_mac=device_mac,
        device_name=os.getenv("DEVICE_NAME", "living_room"),
        update_interval=_read_int_env("UPDATE_INTERVAL", 60),
        duration=_read_int_env("DURATION", 21600),
        metrics_port=_read_int_env("METRICS_PORT", 9273),
        log_level=_read_log_level("LOG_LEVEL", "INFO"),
    )
