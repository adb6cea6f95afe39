"""MQTT subscription feeding sensor messages to the ingestion dispatcher."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from threading import Event
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

from models.records import ChannelEvent
from services.dispatcher import build_default_dispatcher
from settings import Settings, TopicSettings, get_settings

logger = logging.getLogger(__name__)

EventSink = Callable[[ChannelEvent], Any]


class MqttChannel:
    """Delivers messages from the configured sensor topics to ``sink``.

    Reconnection is left to paho's network loop; the channel only tracks
    whether the broker connection is currently up.
    """

    def __init__(
        self,
        sink: EventSink,
        topics: TopicSettings,
        host: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "sensor-hub",
        qos: int = 0,
    ) -> None:
        self.sink = sink
        self.topics = topics
        self.host = host
        self.port = port
        self.qos = qos
        self._connected = Event()
        self._started = False

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
        )
        if username:
            self.client.username_pw_set(username, password)
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def subscriptions(self) -> list[tuple[str, int]]:
        return [
            (self.topics.temperature, self.qos),
            (self.topics.humidity, self.qos),
            (self.topics.air_quality, self.qos),
            (self.topics.status, self.qos),
        ]

    def start(self) -> None:
        """Begin connecting in the background; never blocks on the broker."""
        if self._started:
            return
        broker = f"{self.host}:{self.port}"
        logger.info("Connecting to MQTT broker", extra={"broker": broker})
        try:
            self.client.connect_async(self.host, self.port, keepalive=60)
        except (OSError, ValueError) as exc:
            logger.error(
                "MQTT connection setup failed",
                extra={"broker": broker, "reason": str(exc)},
            )
        self.client.loop_start()
        self._started = True

    def stop(self) -> None:
        """Stop delivering messages and close the broker connection."""
        if not self._started:
            return
        self.client.disconnect()
        self.client.loop_stop()
        self._connected.clear()
        self._started = False
        logger.info("MQTT channel stopped")

    def _on_connect(
        self, client: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any
    ) -> None:
        if reason_code.is_failure:
            self._connected.clear()
            logger.error("MQTT connection refused", extra={"reason": str(reason_code)})
            return
        self._connected.set()
        logger.info("Connected to MQTT broker", extra={"broker": f"{self.host}:{self.port}"})
        # Subscriptions are not persistent across clean sessions.
        client.subscribe(self.subscriptions)
        for topic, _qos in self.subscriptions:
            logger.info("Subscribed", extra={"topic": topic})

    def _on_disconnect(
        self, _client: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any
    ) -> None:
        self._connected.clear()
        if reason_code.is_failure:
            logger.warning("MQTT connection lost", extra={"reason": str(reason_code)})
        else:
            logger.info("Disconnected from MQTT broker")

    def _on_message(self, _client: mqtt.Client, _userdata: Any, message: mqtt.MQTTMessage) -> None:
        event = ChannelEvent(
            topic=message.topic,
            payload=bytes(message.payload),
            received_at=datetime.now(timezone.utc),
        )
        self.sink(event)


def build_channel(settings: Settings, sink: EventSink) -> MqttChannel:
    return MqttChannel(
        sink=sink,
        topics=settings.topics,
        host=settings.mqtt_host,
        port=settings.mqtt_port,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
        client_id=settings.mqtt_client_id,
    )


@lru_cache
def build_default_channel() -> MqttChannel:
    return build_channel(get_settings(), build_default_dispatcher().submit)
