"""Keepalive del dispositivo (mensaje Type 12).

El CGDN1 solo publica lecturas durante ``duration`` segundos después de
recibir un Type 12. Este módulo implementa la máquina de estados:

- DISCONNECTED: sin conexión al broker
- ACTIVE: conectado, suscrito a ``/up`` y refrescando el comando

Transiciones:
- DISCONNECTED → ACTIVE en ``on_connected`` (también tras cada reconexión
  automática de paho)
- ACTIVE → DISCONNECTED en ``on_connection_lost`` (solo se loggea)

Mientras está ACTIVE, un timer reenvía el mismo comando cada
``2 × interval`` segundos, sin mirar si el dispositivo sigue reportando.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import orjson

from .channel import MessageChannel, MessageHandler

logger = logging.getLogger(__name__)

COMMAND_TYPE = "12"


class KeepaliveState(Enum):
    """Estados del controlador."""

    DISCONNECTED = "DISCONNECTED"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class KeepaliveCommand:
    """Pide reportar cada ``interval`` segundos durante ``duration`` segundos."""

    interval: int
    duration: int

    def to_payload(self) -> bytes:
        # up_itvl y duration viajan como strings, no como números
        return orjson.dumps(
            {
                "type": COMMAND_TYPE,
                "up_itvl": str(self.interval),
                "duration": str(self.duration),
            }
        )


class KeepaliveController:
    """Mantiene al dispositivo reportando.

    Uso:
        controller = KeepaliveController(command, up_topic, down_topic, processor.handle)
        receiver = MQTTReceiver(..., on_connected=controller.on_connected,
                                on_connection_lost=controller.on_connection_lost)
        controller.start()
    """

    def __init__(
        self,
        command: KeepaliveCommand,
        up_topic: str,
        down_topic: str,
        handler: MessageHandler,
    ):
        self.command = command
        self.up_topic = up_topic
        self.down_topic = down_topic
        self._handler = handler

        self._state = KeepaliveState.DISCONNECTED
        self._channel: Optional[MessageChannel] = None
        self._state_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._commands_sent = 0
        self._commands_failed = 0

    @property
    def refresh_interval(self) -> int:
        return 2 * self.command.interval

    @property
    def state(self) -> KeepaliveState:
        return self._state

    def on_connected(self, channel: MessageChannel) -> None:
        """DISCONNECTED → ACTIVE: suscribe a ``/up`` y envía el comando inicial."""
        with self._state_lock:
            self._channel = channel
            self._state = KeepaliveState.ACTIVE
        logger.info("[KEEPALIVE] Connected, subscribing to %s", self.up_topic)

        try:
            if channel.subscribe(self.up_topic, self._handler):
                logger.info("[KEEPALIVE] Subscribed to: %s", self.up_topic)
            else:
                logger.error("[KEEPALIVE] Failed to subscribe to %s", self.up_topic)
        except Exception as e:
            logger.exception("[KEEPALIVE] Failed to subscribe to %s: %s", self.up_topic, e)

        self.send_command()

    def on_connection_lost(self, reason: object = None) -> None:
        """ACTIVE → DISCONNECTED. La reconexión la hace el transporte."""
        with self._state_lock:
            self._state = KeepaliveState.DISCONNECTED
        logger.warning("[KEEPALIVE] Connection lost: %s", reason)

    def send_command(self) -> bool:
        """Publica el Type 12 en ``/down``. Los fallos se loggean sin reintento."""
        channel = self._channel
        if channel is None:
            logger.warning("[KEEPALIVE] No channel yet, command to %s not sent", self.down_topic)
            return False

        try:
            ok = channel.publish(self.down_topic, self.command.to_payload())
        except Exception as e:
            self._commands_failed += 1
            logger.exception("[KEEPALIVE] Failed to publish config to %s: %s", self.down_topic, e)
            return False

        if not ok:
            self._commands_failed += 1
            logger.error("[KEEPALIVE] Failed to publish config to %s", self.down_topic)
            return False

        self._commands_sent += 1
        logger.info(
            "[KEEPALIVE] Sent Type 12 config to %s (interval: %ds, duration: %ds)",
            self.down_topic,
            self.command.interval,
            self.command.duration,
        )
        return True

    def refresh(self) -> bool:
        """Tick del timer: reenvía el comando si está ACTIVE."""
        if self._state is not KeepaliveState.ACTIVE:
            logger.debug("[KEEPALIVE] Disconnected, skipping refresh")
            return False
        logger.info("[KEEPALIVE] Refreshing device configuration...")
        return self.send_command()

    def start(self) -> None:
        """Inicia el timer de refresco."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="keepalive-refresh", daemon=True)
        self._thread.start()
        logger.info("[KEEPALIVE] Refresh timer started (every %ds)", self.refresh_interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        logger.info(
            "[KEEPALIVE] Stopped. Commands: sent=%d failed=%d",
            self._commands_sent,
            self._commands_failed,
        )

    def _loop(self) -> None:
        while not self._stop_event.wait(self.refresh_interval):
            try:
                self.refresh()
            except Exception as e:
                logger.exception("[KEEPALIVE] Refresh failed: %s", e)

    @property
    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "up_topic": self.up_topic,
            "down_topic": self.down_topic,
            "refresh_interval": self.refresh_interval,
            "commands_sent": self._commands_sent,
            "commands_failed": self._commands_failed,
        }
