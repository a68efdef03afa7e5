import os

import pytest

from common.config import ConfigError, get_settings

ENV_VARS = (
    "MQTT_BROKER",
    "MQTT_PORT",
    "MQTT_USERNAME",
    "MQTT_PASSWORD",
    "MQTT_CLIENT_ID",
    "MQTT_TOPIC_PREFIX",
    "DEVICE_MAC",
    "DEVICE_NAME",
    "UPDATE_INTERVAL",
    "DURATION",
    "METRICS_PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # load_dotenv writes straight into os.environ
    monkeypatch.setattr(os, "environ", os.environ.copy())
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("COLLECTOR_ENV_FILE", str(tmp_path / "missing.env"))


def test_device_mac_is_required():
    with pytest.raises(ConfigError, match="DEVICE_MAC"):
        get_settings()


def test_blank_device_mac_is_rejected(monkeypatch):
    monkeypatch.setenv("DEVICE_MAC", "   ")

    with pytest.raises(ConfigError):
        get_settings()


def test_defaults(monkeypatch):
    monkeypatch.setenv("DEVICE_MAC", "582D34123456")

    settings = get_settings()

    assert settings.mqtt_broker == "mosquitto"
    assert settings.mqtt_port == 1883
    assert settings.mqtt_client_id == "qingping_collector"
    assert settings.device_name == "living_room"
    assert settings.update_interval == 60
    assert settings.duration == 21600
    assert settings.metrics_port == 9273
    assert settings.log_level == "INFO"
    assert settings.up_topic == "qingping/582D34123456/up"
    assert settings.down_topic == "qingping/582D34123456/down"


def test_overrides(monkeypatch):
    monkeypatch.setenv("DEVICE_MAC", "AABBCC")
    monkeypatch.setenv("DEVICE_NAME", "office")
    monkeypatch.setenv("UPDATE_INTERVAL", "30")
    monkeypatch.setenv("MQTT_TOPIC_PREFIX", "/air/")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.device_name == "office"
    assert settings.update_interval == 30
    assert settings.down_topic == "air/AABBCC/down"
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("raw", ["abc", "0", "-5", ""])
def test_bad_integers_fall_back(monkeypatch, raw):
    monkeypatch.setenv("DEVICE_MAC", "AABBCC")
    monkeypatch.setenv("UPDATE_INTERVAL", raw)

    assert get_settings().update_interval == 60


def test_unknown_log_level(monkeypatch):
    monkeypatch.setenv("DEVICE_MAC", "AABBCC")
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    assert get_settings().log_level == "INFO"


def test_env_file_is_loaded_without_overriding(monkeypatch, tmp_path):
    env_file = tmp_path / "collector.env"
    env_file.write_text("DEVICE_MAC=FROMFILE\nDEVICE_NAME=bedroom\n")
    monkeypatch.setenv("COLLECTOR_ENV_FILE", str(env_file))
    monkeypatch.setenv("DEVICE_NAME", "kitchen")

    settings = get_settings()

    assert settings.device_mac == "FROMFILE"
    assert settings.device_name == "kitchen"


@pytest.mark.parametrize("raw", ["0", "-1.5"])
def test_non_positive_publish_timeout_warns(monkeypatch, caplog, raw):
    monkeypatch.setenv("DEVICE_MAC", "AABBCC")
    monkeypatch.setenv("MQTT_PUBLISH_TIMEOUT", raw)

    with caplog.at_level("WARNING", logger="common.config"):
        settings = get_settings()

    assert settings.mqtt_publish_timeout == 5.0
    assert "MQTT_PUBLISH_TIMEOUT" in caplog.text
