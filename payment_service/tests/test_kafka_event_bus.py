from __future__ import annotations

import json
import time
from dataclasses import asdict

import pytest
from confluent_kafka import TIMESTAMP_CREATE_TIME

from common.eventbus import kafka
from common.eventbus.core import Event, NonRetryableEventError, Topic
from common.eventbus.kafka import KafkaEventBus


TOPIC = Topic("payment.webhook")


class FakeMessage:
    def __init__(
        self,
        topic: str,
        value: bytes,
        *,
        offset: int = 0,
        partition: int = 0,
        sent_at: float | None = None,
    ) -> None:
        self._topic = topic
        self._value = value
        self._offset = offset
        self._partition = partition
        self._sent_at = time.time() if sent_at is None else sent_at

    def topic(self) -> str:
        return self._topic

    def partition(self) -> int:
        return self._partition

    def offset(self) -> int:
        return self._offset

    def value(self) -> bytes:
        return self._value

    def error(self) -> None:
        return None

    def timestamp(self) -> tuple[int, int]:
        return TIMESTAMP_CREATE_TIME, int(self._sent_at * 1000)


class FakeConsumer:
    instances: list["FakeConsumer"] = []
    messages: list[FakeMessage] = []
    stop_flag: list[bool] = [False]

    def __init__(self, config: dict) -> None:
        self.config = config
        self.subscribed: list[str] = []
        self.committed: list[FakeMessage] = []
        self.paused: list[tuple[str, int, int]] = []
        self.resumed: list[tuple[str, int]] = []
        self.seeks: list[tuple[str, int, int]] = []
        self.closed = False
        self._queue = list(self.__class__.messages)
        self.__class__.instances.append(self)

    def subscribe(self, topics: list[str]) -> None:
        self.subscribed = topics

    def poll(self, timeout: float) -> FakeMessage | None:
        if not self._queue:
            self.__class__.stop_flag[0] = True
            return None
        return self._queue.pop(0)

    def commit(self, *, message: FakeMessage, asynchronous: bool) -> None:
        self.committed.append(message)

    def pause(self, partitions) -> None:  # type: ignore[no-untyped-def]
        self.paused.extend((tp.topic, tp.partition, tp.offset) for tp in partitions)

    def resume(self, partitions) -> None:  # type: ignore[no-untyped-def]
        self.resumed.extend((tp.topic, tp.partition) for tp in partitions)

    def seek(self, partition) -> None:  # type: ignore[no-untyped-def]
        self.seeks.append((partition.topic, partition.partition, partition.offset))

    def close(self) -> None:
        self.closed = True


class FakeProducer:
    instances: list["FakeProducer"] = []
    produce_error: Exception | None = None

    def __init__(self, config: dict) -> None:
        self.config = config
        self.produced: list[tuple[str, dict]] = []
        self.flushed = False
        self.__class__.instances.append(self)

    def produce(self, *, topic: str, value: bytes, key: bytes, callback) -> None:  # type: ignore[no-untyped-def]
        if self.__class__.produce_error is not None:
            raise self.__class__.produce_error
        self.produced.append((topic, json.loads(value)))

    def poll(self, timeout: float) -> int:
        return 0

    def flush(self) -> int:
        self.flushed = True
        return 0


@pytest.fixture(autouse=True)
def fake_kafka_clients(monkeypatch: pytest.MonkeyPatch) -> None:
    FakeConsumer.instances = []
    FakeConsumer.messages = []
    FakeConsumer.stop_flag = [False]
    FakeProducer.instances = []
    FakeProducer.produce_error = None
    monkeypatch.setattr(kafka, "Consumer", FakeConsumer)
    monkeypatch.setattr(kafka, "Producer", FakeProducer)


def _encode(event: Event) -> bytes:
    return json.dumps(asdict(event)).encode("utf-8")


def _run(handler, *messages: FakeMessage) -> tuple[FakeConsumer, FakeProducer]:  # type: ignore[no-untyped-def]
    FakeConsumer.messages = list(messages)
    bus = KafkaEventBus("kafka:9092")
    bus.subscribe(
        "payment-group",
        TOPIC,
        handler,
        poll_timeout=0,
        stop_flag=FakeConsumer.stop_flag,
    )
    bus.close()
    return FakeConsumer.instances[-1], FakeProducer.instances[-1]


def test_subscribes_to_base_and_retry_topics() -> None:
    consumer, producer = _run(lambda evt: None)

    assert consumer.subscribed == [
        "payment.webhook",
        "payment.webhook.retry.1",
        "payment.webhook.retry.2",
        "payment.webhook.retry.3",
        "payment.webhook.retry.4",
        "payment.webhook.retry.5",
    ]
    assert consumer.config["enable.auto.commit"] is False
    assert consumer.closed is True
    assert producer.flushed is True


def test_successful_handler_commits_offset() -> None:
    handled: list[Event] = []
    msg = FakeMessage("payment.webhook", _encode(Event(id="evt-1", payload={"k": "v"})))

    consumer, producer = _run(handled.append, msg)

    assert [evt.id for evt in handled] == ["evt-1"]
    assert handled[0].payload == {"k": "v"}
    assert consumer.committed == [msg]
    assert producer.produced == []


def test_non_retryable_error_goes_straight_to_dlq() -> None:
    def handler(evt: Event) -> None:
        raise NonRetryableEventError("signature invalid")

    msg = FakeMessage("payment.webhook", _encode(Event(id="evt-1", payload={})))

    consumer, producer = _run(handler, msg)

    assert len(producer.produced) == 1
    topic, published = producer.produced[0]
    assert topic == "payment.webhook.dlq"
    assert published["retry"] == 0
    assert published["last_error"] == "signature invalid"
    assert consumer.committed == [msg]


def test_handler_error_is_scheduled_on_first_retry_topic() -> None:
    def handler(evt: Event) -> None:
        raise RuntimeError("order not yet stored")

    msg = FakeMessage("payment.webhook", _encode(Event(id="evt-1", payload={})))

    consumer, producer = _run(handler, msg)

    topic, published = producer.produced[0]
    assert topic == "payment.webhook.retry.1"
    assert published["retry"] == 1
    assert published["last_error"] == "order not yet stored"
    assert consumer.committed == [msg]


def test_exhausted_retries_go_to_dlq() -> None:
    def handler(evt: Event) -> None:
        raise RuntimeError("still failing")

    msg = FakeMessage(
        "payment.webhook.retry.5",
        _encode(Event(id="evt-1", payload={}, retry=5)),
        sent_at=time.time() - 7200,
    )

    consumer, producer = _run(handler, msg)

    assert [topic for topic, _ in producer.produced] == ["payment.webhook.dlq"]
    assert producer.produced[0][1]["retry"] == 5
    assert consumer.committed == [msg]


def test_publish_failure_leaves_offset_uncommitted() -> None:
    def handler(evt: Event) -> None:
        raise RuntimeError("order not yet stored")

    FakeProducer.produce_error = BufferError("local queue full")
    msg = FakeMessage("payment.webhook", _encode(Event(id="evt-1", payload={})), offset=42)

    consumer, producer = _run(handler, msg)

    assert producer.produced == []
    assert consumer.committed == []
    assert consumer.seeks == [("payment.webhook", 0, 42)]


def test_undecodable_payload_is_skipped() -> None:
    handled: list[Event] = []
    msg = FakeMessage("payment.webhook", b"{not json")

    consumer, producer = _run(handled.append, msg)

    assert handled == []
    assert producer.produced == []
    assert consumer.committed == [msg]


def test_retry_message_waits_for_its_delay() -> None:
    handled: list[Event] = []
    msg = FakeMessage(
        "payment.webhook.retry.2",
        _encode(Event(id="evt-1", payload={}, retry=2)),
        offset=7,
        partition=1,
        sent_at=time.time() - 10,
    )

    consumer, producer = _run(handled.append, msg)

    assert handled == []
    assert consumer.committed == []
    assert consumer.paused == [("payment.webhook.retry.2", 1, 7)]
    assert consumer.seeks == [("payment.webhook.retry.2", 1, 7)]


def test_failed_event_is_redelivered_from_retry_topic_after_delay() -> None:
    attempts: list[int] = []

    def handler(evt: Event) -> None:
        attempts.append(evt.retry)
        if evt.retry == 0:
            raise RuntimeError("order not yet stored")

    first = FakeMessage("payment.webhook", _encode(Event(id="evt-1", payload={"n": 1})))
    _, producer = _run(handler, first)
    retry_topic, retried = producer.produced[0]

    # retry.1 지연(60초)이 지난 뒤 도착한 것처럼 다시 소비한다.
    redelivered = FakeMessage(
        retry_topic, json.dumps(retried).encode("utf-8"), sent_at=time.time() - 61
    )
    FakeConsumer.stop_flag[0] = False
    consumer, producer = _run(handler, redelivered)

    assert attempts == [0, 1]
    assert consumer.paused == []
    assert consumer.committed == [redelivered]
    assert producer.produced == []


def test_resume_due_releases_only_expired_partitions() -> None:
    consumer = FakeConsumer({})
    now = time.monotonic()
    paused = {
        ("payment.webhook.retry.1", 0): now - 1,
        ("payment.webhook.retry.5", 2): now + 3600,
    }

    KafkaEventBus._resume_due(consumer, paused)  # type: ignore[arg-type]

    assert consumer.resumed == [("payment.webhook.retry.1", 0)]
    assert list(paused) == [("payment.webhook.retry.5", 2)]


@pytest.mark.parametrize(
    ("topic_name", "expected"),
    [
        ("payment.webhook", 0),
        ("payment.webhook.retry.1", 1),
        ("payment.webhook.retry.5", 5),
        ("payment.webhook.retry.6", 0),
        ("payment.webhook.dlq", 0),
        ("other.retry.1", 0),
    ],
)
def test_retry_index(topic_name: str, expected: int) -> None:
    assert TOPIC.retry_index(topic_name) == expected
