"""Validadores de payloads MQTT del Qingping CGDN1.

Decodifica los mensajes del topic ``qingping/{mac}/up`` al formato interno.

Formato esperado:
{
    "type": "12",
    "sensorData": [
        {
            "temperature": {"value": 23.4},
            "humidity": {"value": 41.2},
            "co2": {"value": 650},
            "timestamp": {"value": 1760000000}
        }
    ]
}

NOTA: los tipos "13" y "17" son respuestas de configuración sin datos, pero
la documentación del fabricante también muestra "17" con ``sensorData``.
El tag de tipo no es fiable: un ``sensorData`` no vacío manda.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Respuestas de configuración (no traen lecturas)
ACK_TYPES = frozenset({"13", "17"})

FLOAT_FIELDS = ("temperature", "humidity", "pm25", "pm10", "tvoc")
INT_FIELDS = ("co2", "battery")
SENSOR_FIELDS = ("temperature", "humidity", "co2", "pm25", "pm10", "tvoc", "battery")


class SensorValue(BaseModel):
    """Valor individual dentro de una entrada de ``sensorData``."""

    model_config = ConfigDict(extra="ignore")

    value: float = Field(strict=True)

    @field_validator("value", mode="before")
    @classmethod
    def reject_bool(cls, v):
        if isinstance(v, bool):
            raise ValueError("value must be a number, got bool")
        return v

    @field_validator("value")
    @classmethod
    def validate_finite(cls, v):
        if math.isnan(v):
            raise ValueError("Value is NaN")
        if math.isinf(v):
            raise ValueError("Value is infinite")
        return v


class UpMessage(BaseModel):
    """Envelope publicado por el dispositivo en el topic ``/up``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = ""
    # Solo se valida la primera entrada; las demás se ignoran
    sensor_data: List[Any] = Field(default_factory=list, alias="sensorData")

    @field_validator("sensor_data", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return [] if v is None else v

    @property
    def is_ack(self) -> bool:
        return self.type in ACK_TYPES


@dataclass(frozen=True)
class SensorReading:
    """Lectura decodificada. Los campos ausentes quedan en ``None``."""

    timestamp: float
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    co2: Optional[int] = None
    pm25: Optional[float] = None
    pm10: Optional[float] = None
    tvoc: Optional[float] = None
    battery: Optional[int] = None
    device_timestamp: Optional[float] = None

    def present_fields(self) -> Dict[str, float]:
        """Campos presentes en el payload original, en orden estable."""
        values: Dict[str, float] = {}
        for name in SENSOR_FIELDS:
            value = getattr(self, name)
            if value is not None:
                values[name] = value
        return values

    def summary(self) -> str:
        parts = []
        labels = (
            ("temperature", "Temp", "%.1f°C"),
            ("humidity", "Humidity", "%.1f%%"),
            ("co2", "CO2", "%d ppm"),
            ("pm25", "PM2.5", "%.1f μg/m³"),
            ("pm10", "PM10", "%.1f μg/m³"),
            ("tvoc", "TVOC", "%.0f ppb"),
            ("battery", "Battery", "%d%%"),
        )
        for name, label, fmt in labels:
            value = getattr(self, name)
            if value is not None:
                parts.append(f"{label}: {fmt % value}")
        return ", ".join(parts) if parts else "no sensor fields"


class DecodeStatus(Enum):
    """Resultado de decodificar un mensaje ``/up``."""

    DATA = "data"          # Lectura válida
    ACK = "ack"            # Respuesta de configuración (13/17), se ignora
    EMPTY = "empty"        # Envelope válido sin sensorData
    INVALID = "invalid"    # JSON inválido o estructura inesperada


@dataclass
class DecodeResult:
    """Resultado de decodificación."""

    status: DecodeStatus
    message_type: Optional[str] = None
    reading: Optional[SensorReading] = None
    error: Optional[str] = None
    # Lectura con sensorData pero tipo 13/17
    ack_tagged: bool = False
    ignored_entries: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def is_data(self) -> bool:
        return self.status is DecodeStatus.DATA


def _truncate(value: float) -> int:
    # int() trunca hacia cero: 650.9 -> 650, -1.7 -> -1
    return int(value)


def _device_timestamp(entry: Dict[str, Any]) -> Optional[float]:
    raw = entry.get("timestamp")
    if not isinstance(raw, dict):
        return None
    try:
        return SensorValue.model_validate(raw).value
    except ValidationError:
        return None


def decode_entry(entry: Dict[str, Any], received_at: float) -> SensorReading:
    """Extrae cada campo conocido de forma independiente.

    Raises:
        ValueError: si un campo conocido no trae ``{"value": <número>}``
    """
    values: Dict[str, Any] = {}
    for name in SENSOR_FIELDS:
        if name not in entry:
            continue
        try:
            sensor_value = SensorValue.model_validate(entry[name])
        except ValidationError as e:
            raise ValueError(f"Invalid '{name}' field: {e.errors()[0]['msg']}") from e

        if name in INT_FIELDS:
            values[name] = _truncate(sensor_value.value)
        else:
            values[name] = sensor_value.value

    return SensorReading(
        timestamp=received_at,
        device_timestamp=_device_timestamp(entry),
        **values,
    )


def decode_message(body: bytes, received_at: Optional[float] = None) -> DecodeResult:
    """Decodifica el cuerpo crudo de un mensaje MQTT.

    Args:
        body: Payload del mensaje (JSON UTF-8)
        received_at: Timestamp de recepción; por defecto ``time.time()``

    Returns:
        DecodeResult con la lectura o el motivo por el que se ignora
    """
    if received_at is None:
        received_at = time.time()

    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        return DecodeResult(status=DecodeStatus.INVALID, error=f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        return DecodeResult(
            status=DecodeStatus.INVALID,
            error=f"Expected JSON object, got {type(data).__name__}",
        )

    try:
        message = UpMessage.model_validate(data)
    except ValidationError as e:
        return DecodeResult(status=DecodeStatus.INVALID, error=f"Unexpected envelope: {e}")

    if not message.sensor_data:
        status = DecodeStatus.ACK if message.is_ack else DecodeStatus.EMPTY
        return DecodeResult(status=status, message_type=message.type)

    entry = message.sensor_data[0]
    if not isinstance(entry, dict):
        return DecodeResult(
            status=DecodeStatus.INVALID,
            message_type=message.type,
            error=f"Expected sensorData entry object, got {type(entry).__name__}",
        )

    result = DecodeResult(
        status=DecodeStatus.DATA,
        message_type=message.type,
        ack_tagged=message.is_ack,
        ignored_entries=len(message.sensor_data) - 1,
    )
    if result.ack_tagged:
        result.warnings.append(
            f"type {message.type} is tagged as a config response but carries sensorData"
        )
    if result.ignored_entries:
        result.warnings.append(f"{result.ignored_entries} extra sensorData entries ignored")

    try:
        result.reading = decode_entry(entry, received_at)
    except ValueError as e:
        return DecodeResult(
            status=DecodeStatus.INVALID,
            message_type=message.type,
            error=str(e),
        )

    return result
