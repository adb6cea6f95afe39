from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_DB_PATH_ENV = "SENSOR_DB_PATH"
_MQTT_ENABLED_ENV = "MQTT_ENABLED"
_MQTT_HOST_ENV = "MQTT_HOST"
_MQTT_PORT_ENV = "MQTT_PORT"
_MQTT_USERNAME_ENV = "MQTT_USERNAME"
_MQTT_PASSWORD_ENV = "MQTT_PASSWORD"
_MQTT_CLIENT_ID_ENV = "MQTT_CLIENT_ID"
_TOPIC_TEMPERATURE_ENV = "TOPIC_TEMPERATURE"
_TOPIC_HUMIDITY_ENV = "TOPIC_HUMIDITY"
_TOPIC_AIR_QUALITY_ENV = "TOPIC_AIR_QUALITY"
_TOPIC_STATUS_ENV = "TOPIC_STATUS"
_RESET_AFTER_EMIT_ENV = "CORRELATION_RESET_AFTER_EMIT"
_QUEUE_SIZE_ENV = "DISPATCHER_QUEUE_SIZE"
_DASHBOARD_REFRESH_ENV = "DASHBOARD_REFRESH_SECONDS"
_AIR_QUALITY_THRESHOLD_ENV = "AIR_QUALITY_THRESHOLD"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class TopicSettings:
    temperature: str
    humidity: str
    air_quality: str
    status: str


@dataclass(frozen=True)
class Settings:
    database_path: Optional[str]
    mqtt_enabled: bool
    mqtt_host: str
    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_client_id: str
    topics: TopicSettings
    reset_after_emit: bool
    dispatcher_queue_size: int
    dashboard_refresh_seconds: int
    air_quality_threshold: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if math.isfinite(parsed) and parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_path=_read_optional_env(_DB_PATH_ENV, "./tmp/sensor_data.db"),
        mqtt_enabled=_read_bool(_MQTT_ENABLED_ENV, True),
        mqtt_host=_read_str_env(_MQTT_HOST_ENV, "localhost"),
        mqtt_port=_read_positive_int(_MQTT_PORT_ENV, 1883),
        mqtt_username=_read_optional_env(_MQTT_USERNAME_ENV, None),
        mqtt_password=_read_optional_env(_MQTT_PASSWORD_ENV, None),
        mqtt_client_id=_read_str_env(_MQTT_CLIENT_ID_ENV, "sensor-hub"),
        topics=TopicSettings(
            temperature=_read_str_env(_TOPIC_TEMPERATURE_ENV, "iot/sensor/temperature"),
            humidity=_read_str_env(_TOPIC_HUMIDITY_ENV, "iot/sensor/humidity"),
            air_quality=_read_str_env(_TOPIC_AIR_QUALITY_ENV, "iot/sensor/airquality"),
            status=_read_str_env(_TOPIC_STATUS_ENV, "iot/device/status"),
        ),
        reset_after_emit=_read_bool(_RESET_AFTER_EMIT_ENV, False),
        dispatcher_queue_size=_read_positive_int(_QUEUE_SIZE_ENV, 256),
        dashboard_refresh_seconds=_read_positive_int(_DASHBOARD_REFRESH_ENV, 10),
        air_quality_threshold=_read_positive_float(_AIR_QUALITY_THRESHOLD_ENV, 1.9),
        log_level=_read_log_level("INFO"),
    )
