from __future__ import annotations

from dataclasses import dataclass
from typing import List

from datastore.sqlite_store import ReadingStore
from channel.mqtt_channel import MqttChannel
from models.records import ChannelEvent
from services.correlator import ReadingCorrelator
from services.dispatcher import IngestionDispatcher
from settings import TopicSettings

TOPICS = TopicSettings(
    temperature="iot/sensor/temperature",
    humidity="iot/sensor/humidity",
    air_quality="iot/sensor/airquality",
    status="iot/device/status",
)


@dataclass
class FakeMessage:
    topic: str
    payload: bytes


@dataclass
class FakeReasonCode:
    is_failure: bool
    name: str = "Success"

    def __str__(self) -> str:
        return self.name


class FakeClient:
    def __init__(self) -> None:
        self.subscribed: List[object] = []

    def subscribe(self, topics) -> None:
        self.subscribed.append(topics)


def test_messages_are_forwarded_as_channel_events() -> None:
    events: List[ChannelEvent] = []
    channel = MqttChannel(sink=events.append, topics=TOPICS)

    channel._on_message(None, None, FakeMessage("iot/sensor/temperature", b"21.5"))  # type: ignore[arg-type]

    assert len(events) == 1
    assert events[0].topic == "iot/sensor/temperature"
    assert events[0].payload == b"21.5"
    assert events[0].received_at.tzinfo is not None


def test_connect_subscribes_to_every_sensor_topic() -> None:
    channel = MqttChannel(sink=lambda _event: None, topics=TOPICS, qos=1)
    client = FakeClient()

    channel._on_connect(client, None, None, FakeReasonCode(is_failure=False), None)  # type: ignore[arg-type]

    assert channel.is_connected is True
    assert client.subscribed == [
        [
            ("iot/sensor/temperature", 1),
            ("iot/sensor/humidity", 1),
            ("iot/sensor/airquality", 1),
            ("iot/device/status", 1),
        ]
    ]


def test_refused_connection_and_disconnect_clear_status() -> None:
    channel = MqttChannel(sink=lambda _event: None, topics=TOPICS)
    client = FakeClient()

    channel._on_connect(client, None, None, FakeReasonCode(True, "Not authorized"), None)  # type: ignore[arg-type]
    assert channel.is_connected is False
    assert client.subscribed == []

    channel._on_connect(client, None, None, FakeReasonCode(False), None)  # type: ignore[arg-type]
    channel._on_disconnect(client, None, None, FakeReasonCode(True, "Keep alive timeout"), None)  # type: ignore[arg-type]
    assert channel.is_connected is False


def test_channel_feeds_dispatcher_end_to_end() -> None:
    store = ReadingStore()
    dispatcher = IngestionDispatcher(store=store, correlator=ReadingCorrelator(), topics=TOPICS)
    channel = MqttChannel(sink=dispatcher.submit, topics=TOPICS)
    try:
        for topic, payload in (
            ("iot/sensor/airquality", b"0.7"),
            ("iot/sensor/light", b"120"),
            ("iot/sensor/temperature", b"19.5"),
            ("iot/sensor/humidity", b"63"),
        ):
            channel._on_message(None, None, FakeMessage(topic, payload))  # type: ignore[arg-type]
        dispatcher.shutdown()

        latest = store.latest().unwrap()
        assert latest is not None
        assert (latest.temperature, latest.humidity, latest.air_quality) == (19.5, 63.0, 0.7)
        assert dispatcher.stats.ignored == 1
    finally:
        store.close()
