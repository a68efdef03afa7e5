from __future__ import annotations

from typing import Callable, Protocol

MessageHandler = Callable[[str, bytes], object]


class MessageChannel(Protocol):
    """Interfaz mínima del transporte pub/sub.

    El keepalive solo depende de esta interfaz, no de paho. ``MQTTReceiver``
    es la implementación concreta; los tests usan un ``MagicMock``.
    """

    def subscribe(self, topic: str, handler: MessageHandler) -> bool:
        """Suscribe ``handler(topic, payload)`` al topic.

        Returns:
            True si la suscripción fue aceptada por el cliente
        """

        ...

    def publish(self, topic: str, payload: bytes) -> bool:
        """Publica ``payload`` en el topic.

        Puede bloquear brevemente esperando al broker.

        Returns:
            True si el mensaje fue entregado al broker
        """

        ...
