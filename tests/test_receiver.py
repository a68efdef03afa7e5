"""Tests del cliente MQTT (paho mockeado)."""

import threading
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from qingping_collector.mqtt.receiver import MQTTReceiver

UP = "qingping/582D34123456/up"


def _reason(failure: bool = False):
    reason_code = MagicMock()
    reason_code.is_failure = failure
    return reason_code


@pytest.fixture
def paho_client():
    client = MagicMock()
    client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
    return client


@pytest.fixture
def hooks():
    return MagicMock()


@pytest.fixture
def receiver(paho_client, hooks) -> MQTTReceiver:
    receiver = MQTTReceiver(
        broker_host="broker",
        broker_port=1883,
        username="user",
        password="secret",
        on_connected=hooks.on_connected,
        on_connection_lost=hooks.on_connection_lost,
        client_factory=lambda: paho_client,
    )
    receiver.start(wait_seconds=0)
    return receiver


# =============================================================================
# CONEXIÓN
# =============================================================================

class TestConnection:

    def test_start_configures_client(self, receiver, paho_client):
        paho_client.username_pw_set.assert_called_once_with("user", "secret")
        paho_client.reconnect_delay_set.assert_called_once_with(min_delay=1, max_delay=5)
        paho_client.connect_async.assert_called_once_with("broker", 1883, keepalive=60)
        paho_client.loop_start.assert_called_once()
        assert receiver.is_running is True
        assert receiver.is_connected is False

    def test_no_credentials(self, paho_client):
        receiver = MQTTReceiver(client_factory=lambda: paho_client)
        receiver.start(wait_seconds=0)

        paho_client.username_pw_set.assert_not_called()

    def test_on_connect_runs_hook_off_the_network_thread(self, receiver, paho_client, hooks):
        called = threading.Event()
        threads = []

        def on_connected(channel):
            threads.append(threading.current_thread())
            called.set()

        hooks.on_connected.side_effect = on_connected

        receiver._on_connect(paho_client, None, {}, _reason(), None)

        assert called.wait(2.0)
        assert receiver.is_connected is True
        hooks.on_connected.assert_called_once_with(receiver)
        assert threads[0] is not threading.current_thread()

    def test_failed_connect(self, receiver, paho_client, hooks):
        receiver._on_connect(paho_client, None, {}, _reason(failure=True), None)

        assert receiver.is_connected is False
        hooks.on_connected.assert_not_called()

    def test_connection_lost_notifies(self, receiver, paho_client, hooks):
        reason = _reason(failure=True)
        receiver._on_disconnect(paho_client, None, {}, reason, None)

        hooks.on_connection_lost.assert_called_once_with(reason)

    def test_stop_disconnects(self, receiver, paho_client, hooks):
        receiver.stop()
        receiver._on_disconnect(paho_client, None, {}, _reason(), None)

        paho_client.disconnect.assert_called_once()
        paho_client.loop_stop.assert_called_once()
        hooks.on_connection_lost.assert_not_called()
        assert receiver.is_running is False


# =============================================================================
# PUB/SUB
# =============================================================================

class TestPubSub:

    def test_subscribe_routes_messages(self, receiver, paho_client):
        handler = MagicMock()

        assert receiver.subscribe(UP, handler) is True
        paho_client.subscribe.assert_called_once_with(UP, qos=0)

        msg = MagicMock(topic=UP, payload=b"{}")
        receiver._on_message(paho_client, None, msg)

        handler.assert_called_once_with(UP, b"{}")

    def test_message_without_handler_is_dropped(self, receiver, paho_client):
        handler = MagicMock()
        receiver.subscribe(UP, handler)

        receiver._on_message(paho_client, None, MagicMock(topic="qingping/OTHER/up", payload=b"{}"))

        handler.assert_not_called()

    def test_handler_error_does_not_escape(self, receiver, paho_client):
        handler = MagicMock(side_effect=RuntimeError("boom"))
        receiver.subscribe(UP, handler)

        receiver._on_message(paho_client, None, MagicMock(topic=UP, payload=b"{}"))

        handler.assert_called_once()

    def test_subscribe_failure(self, receiver, paho_client):
        paho_client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)

        assert receiver.subscribe(UP, MagicMock()) is False

    def test_publish_waits_for_broker(self, receiver, paho_client):
        info = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
        info.is_published.return_value = True
        paho_client.publish.return_value = info

        assert receiver.publish("qingping/582D34123456/down", b"x") is True
        paho_client.publish.assert_called_once_with("qingping/582D34123456/down", b"x", qos=0, retain=False)
        info.wait_for_publish.assert_called_once_with(timeout=5.0)

    def test_publish_not_connected(self, receiver, paho_client):
        paho_client.publish.return_value = MagicMock(rc=mqtt.MQTT_ERR_NO_CONN)

        assert receiver.publish("t", b"x") is False

    def test_publish_timeout(self, receiver, paho_client):
        info = MagicMock(rc=mqtt.MQTT_ERR_SUCCESS)
        info.is_published.return_value = False
        paho_client.publish.return_value = info

        assert receiver.publish("t", b"x") is False

    def test_publish_before_start(self):
        assert MQTTReceiver().publish("t", b"x") is False

    def test_stats(self, receiver):
        receiver.subscribe(UP, MagicMock())

        stats = receiver.stats

        assert stats["broker"] == "broker:1883"
        assert stats["subscriptions"] == [UP]
        assert stats["connected"] is False

    def test_hook_skipped_when_connection_dropped_first(self, receiver, paho_client, hooks):
        """Si la conexión cae antes de que corra el hook, no se activa nada."""
        receiver._connected = True
        receiver._on_disconnect(paho_client, None, {}, _reason(failure=True), None)

        receiver._run_connected_hook()

        hooks.on_connected.assert_not_called()
        hooks.on_connection_lost.assert_called_once()
