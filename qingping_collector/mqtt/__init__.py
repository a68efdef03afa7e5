"""MQTT del collector Qingping.

Este módulo proporciona:
- Cliente MQTT con reconexión automática
- Keepalive (Type 12) que mantiene al dispositivo reportando
- Validación y decodificación de payloads ``/up``
- Procesamiento de lecturas hacia Prometheus

Estructura modular:
- channel.py: Interfaz pub/sub usada por el keepalive
- receiver.py: Cliente paho-mqtt
- keepalive.py: Máquina de estados del keepalive
- validators.py: Decodificación de payloads
- processor.py: Lecturas → registry + tracker
"""

from .channel import MessageChannel
from .keepalive import KeepaliveCommand, KeepaliveController, KeepaliveState
from .processor import ReadingProcessor, plan_update
from .receiver import MQTTReceiver
from .validators import DecodeResult, DecodeStatus, SensorReading, decode_message

__all__ = [
    "MessageChannel",
    "KeepaliveCommand",
    "KeepaliveController",
    "KeepaliveState",
    "ReadingProcessor",
    "plan_update",
    "MQTTReceiver",
    "DecodeResult",
    "DecodeStatus",
    "SensorReading",
    "decode_message",
]
