"""Cliente MQTT del collector.

Usa paho-mqtt con reconexión automática (``connect_async`` + ``loop_start``)
e implementa ``MessageChannel`` para el keepalive.

Threads:
- Loop de red de paho: callbacks de conexión y entrega de mensajes
- Un thread corto por conexión para ``on_connected`` (subscribe + publish),
  así las esperas al broker nunca bloquean la entrega de mensajes
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional

import paho.mqtt.client as mqtt

from .channel import MessageChannel, MessageHandler

logger = logging.getLogger(__name__)


class MQTTReceiver:
    """Cliente MQTT: conexión, suscripciones y publicación.

    Responsabilidades:
    - Conexión/desconexión al broker con reintentos indefinidos
    - Enrutar cada mensaje al handler de su topic
    - Notificar conexión y pérdida de conexión
    """

    def __init__(
        self,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "qingping_collector",
        keepalive: int = 60,
        reconnect_max_delay: int = 5,
        publish_timeout: float = 5.0,
        on_connected: Optional[Callable[[MessageChannel], None]] = None,
        on_connection_lost: Optional[Callable[[object], None]] = None,
        client_factory: Optional[Callable[[], mqtt.Client]] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.client_id = client_id
        self.keepalive = keepalive
        self.reconnect_max_delay = reconnect_max_delay
        self.publish_timeout = publish_timeout

        self._on_connected = on_connected
        self._on_connection_lost = on_connection_lost
        self._client_factory = client_factory or self._default_client

        self._client: Optional[mqtt.Client] = None
        self._handlers: Dict[str, MessageHandler] = {}
        self._handlers_lock = threading.Lock()
        self._running = False
        self._connected = False
        self._connect_count = 0

    def _default_client(self) -> mqtt.Client:
        return mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )

    def start(self, wait_seconds: float = 5.0) -> bool:
        """Inicia el cliente y el loop de red.

        La conexión inicial se reintenta en segundo plano; un timeout aquí
        solo se loggea.

        Returns:
            True si quedó conectado dentro de ``wait_seconds``
        """
        self._client = self._client_factory()
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.on_subscribe = self._on_subscribe

        if self.username:
            self._client.username_pw_set(self.username, self.password or None)
        self._client.reconnect_delay_set(min_delay=1, max_delay=self.reconnect_max_delay)

        logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
        self._running = True
        try:
            self._client.connect_async(self.broker_host, self.broker_port, keepalive=self.keepalive)
            self._client.loop_start()
        except Exception as e:
            self._running = False
            logger.exception("[MQTT] Start failed: %s", e)
            return False

        # Esperar conexión
        deadline = time.monotonic() + wait_seconds
        while time.monotonic() < deadline:
            if self._connected:
                return True
            time.sleep(0.1)

        logger.warning("[MQTT] Not connected yet, retrying in background")
        return False

    def stop(self) -> None:
        """Desconecta del broker y detiene el loop de red."""
        self._running = False

        if self._client:
            try:
                self._client.disconnect()
                self._client.loop_stop()
            except Exception as e:
                logger.warning("[MQTT] Error stopping: %s", e)
        self._connected = False
        logger.info("[MQTT] Stopped")

    def subscribe(self, topic: str, handler: MessageHandler) -> bool:
        with self._handlers_lock:
            self._handlers[topic] = handler

        if self._client is None:
            return False
        rc, _mid = self._client.subscribe(topic, qos=0)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error("[MQTT] Subscribe to %s failed: %s", topic, mqtt.error_string(rc))
            return False
        return True

    def publish(self, topic: str, payload: bytes) -> bool:
        if self._client is None:
            return False

        info = self._client.publish(topic, payload, qos=0, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error("[MQTT] Publish to %s failed: %s", topic, mqtt.error_string(info.rc))
            return False

        try:
            info.wait_for_publish(timeout=self.publish_timeout)
        except (RuntimeError, ValueError) as e:
            logger.error("[MQTT] Publish to %s failed: %s", topic, e)
            return False

        if not info.is_published():
            logger.error("[MQTT] Publish to %s timed out after %.1fs", topic, self.publish_timeout)
            return False
        return True

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback de conexión."""
        if reason_code.is_failure:
            self._connected = False
            logger.error("[MQTT] Connection failed: %s", reason_code)
            return

        self._connected = True
        self._connect_count += 1
        logger.info("[MQTT] Connected to MQTT broker")

        if self._on_connected is not None:
            # Fuera del loop de red: subscribe/publish pueden esperar al broker
            threading.Thread(
                target=self._run_connected_hook,
                name="mqtt-on-connected",
                daemon=True,
            ).start()

    def _run_connected_hook(self) -> None:
        # La conexión pudo caer antes de que arrancara este thread
        if not self._connected:
            logger.info("[MQTT] Connection dropped before on_connected ran, skipping")
            return
        try:
            self._on_connected(self)
        except Exception as e:
            logger.exception("[MQTT] on_connected hook failed: %s", e)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback de desconexión."""
        self._connected = False
        if not self._running:
            logger.info("[MQTT] Disconnected")
            return

        logger.warning("[MQTT] Connection lost: %s", reason_code)
        if self._on_connection_lost is not None:
            try:
                self._on_connection_lost(reason_code)
            except Exception as e:
                logger.exception("[MQTT] on_connection_lost hook failed: %s", e)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        for reason_code in reason_code_list:
            if reason_code.is_failure:
                logger.error("[MQTT] Subscription mid=%d rejected: %s", mid, reason_code)

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje - delega al handler del topic."""
        with self._handlers_lock:
            handlers = [
                handler
                for sub, handler in self._handlers.items()
                if mqtt.topic_matches_sub(sub, msg.topic)
            ]

        if not handlers:
            logger.debug("[MQTT] No handler for topic=%s", msg.topic)
            return

        for handler in handlers:
            try:
                handler(msg.topic, msg.payload)
            except Exception as e:
                logger.exception("[MQTT] Handler error: %s (topic=%s)", e, msg.topic)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "connected": self._connected,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "client_id": self.client_id,
            "connect_count": self._connect_count,
            "subscriptions": sorted(self._handlers),
        }
