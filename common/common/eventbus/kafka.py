from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict
from typing import Callable

from confluent_kafka import (
    TIMESTAMP_NOT_AVAILABLE,
    Consumer,
    KafkaError,
    KafkaException,
    Message,
    Producer,
    TopicPartition,
)

from .core import Event, MaxRetryExceededError, NonRetryableEventError, RetryDelays, Topic

logger = logging.getLogger(__name__)


class KafkaEventBus:
    """Kafka 기반 at-least-once 이벤트 버스.

    - 오프셋은 핸들러 성공 또는 재시도/DLQ 발행 성공 후에만 수동 커밋한다.
    - 핸들러 실패는 retry.N 토픽으로, 재시도 소진 또는 NonRetryableEventError 는 DLQ 로 보낸다.
    - 재시도/DLQ 발행마저 실패하면 커밋하지 않아 같은 메시지를 다시 처리하게 된다.
    - retry.N 토픽도 직접 소비하며, RetryDelays[N-1] 만큼 지난 뒤에 핸들러를 다시 호출한다.
    """

    def __init__(self, brokers: str) -> None:
        self._producer = Producer({"bootstrap.servers": brokers})
        self._brokers = brokers

    def close(self) -> None:
        self._producer.flush()

    # 발행 -----------------------------------------------------------------
    def publish(self, topic: str, event: Event) -> None:
        payload = json.dumps(asdict(event), ensure_ascii=False).encode("utf-8")

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=payload,
            key=event.id.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)

    # 구독 -----------------------------------------------------------------
    def subscribe(
        self,
        group_id: str,
        topic: Topic,
        handler: Callable[[Event], None],
        *,
        poll_timeout: float = 0.1,
        stop_flag: list[bool] | None = None,
    ) -> None:
        consumer = Consumer(
            {
                "bootstrap.servers": self._brokers,
                "group.id": group_id,
                "auto.offset.reset": "earliest",
                "enable.auto.commit": False,
            }
        )
        # base 토픽과 retry.N 토픽을 같은 컨슈머가 소비한다.
        # retry.N 메시지는 발행 시각 + RetryDelays[N-1] 이 지나기 전까지 파티션을 멈춰 둔다.
        consumer.subscribe([topic.base, *topic.get_retry_topics()])
        paused: dict[tuple[str, int], float] = {}

        try:
            logger.info(
                "Kafka consumer started. group_id=%s topic=%s", group_id, topic.base
            )
            while not (stop_flag and stop_flag[0]):
                self._resume_due(consumer, paused)

                msg = consumer.poll(poll_timeout)
                if msg is None:
                    continue
                if msg.error():
                    if msg.error().code() != KafkaError._PARTITION_EOF:
                        logger.error("consumer error: %s", msg.error())
                    continue

                wait = self._remaining_delay(msg, topic)
                if wait > 0:
                    self._hold(consumer, msg)
                    paused[(msg.topic(), msg.partition())] = time.monotonic() + wait
                    continue

                if not self._dispatch(msg, topic, handler):
                    # 커밋하지 않고 같은 오프셋부터 다시 읽는다.
                    consumer.seek(
                        TopicPartition(msg.topic(), msg.partition(), msg.offset())
                    )
                    continue

                try:
                    consumer.commit(message=msg, asynchronous=False)
                except Exception as exc:  # noqa: BLE001
                    logger.error("offset commit error: %s", exc)
        finally:
            consumer.close()

    @staticmethod
    def _remaining_delay(msg: Message, topic: Topic) -> float:
        """retry.N 메시지가 처리 가능해질 때까지 남은 시간(초). base 토픽은 0."""

        retry_index = topic.retry_index(msg.topic())
        if retry_index == 0:
            return 0.0
        ts_type, ts_ms = msg.timestamp()
        if ts_type == TIMESTAMP_NOT_AVAILABLE:
            return 0.0
        due_at = ts_ms / 1000.0 + RetryDelays[retry_index - 1]
        return max(0.0, due_at - time.time())

    @staticmethod
    def _hold(consumer: Consumer, msg: Message) -> None:
        partition = TopicPartition(msg.topic(), msg.partition(), msg.offset())
        consumer.pause([partition])
        consumer.seek(partition)

    @staticmethod
    def _resume_due(consumer: Consumer, paused: dict[tuple[str, int], float]) -> None:
        now = time.monotonic()
        for key, due in list(paused.items()):
            if due > now:
                continue
            del paused[key]
            try:
                consumer.resume([TopicPartition(key[0], key[1])])
            except KafkaException as exc:
                # 리밸런스로 파티션이 회수되었으면 새 소유자가 처음부터 다시 읽는다.
                logger.warning("failed to resume partition %s[%d]: %s", key[0], key[1], exc)

    def _dispatch(
        self, msg: Message, topic: Topic, handler: Callable[[Event], None]
    ) -> bool:
        """메시지 한 건을 처리하고 오프셋을 커밋해도 되는지 반환한다."""

        try:
            raw = json.loads(msg.value())
        except Exception as exc:  # noqa: BLE001
            # 디코딩 불가 메시지는 재처리해도 같으므로 건너뛴다.
            logger.error("invalid event payload on topic %s: %s", msg.topic(), exc)
            return True

        evt = Event.from_dict(raw if isinstance(raw, dict) else {"payload": raw})

        try:
            handler(evt)
        except NonRetryableEventError as exc:
            evt.last_error = str(exc)
            logger.error(
                "event %s is not retryable, sending to DLQ %s: %s",
                evt.id,
                topic.dlq(),
                exc,
            )
            return self._publish_or_hold(topic.dlq(), evt)
        except Exception as exc:  # noqa: BLE001
            evt.last_error = str(exc)
            return self._route_retry(evt, topic, exc)

        return True

    def _route_retry(self, evt: Event, topic: Topic, exc: Exception) -> bool:
        next_retry = evt.retry + 1
        try:
            if next_retry > evt.max_retry:
                raise MaxRetryExceededError()
            next_topic = topic.get_retry_topic(next_retry)
        except MaxRetryExceededError:
            logger.error(
                "event %s exceeded max retry, sending to DLQ %s: %s",
                evt.id,
                topic.dlq(),
                exc,
            )
            return self._publish_or_hold(topic.dlq(), evt)

        evt.retry = next_retry
        logger.warning(
            "event %s failed, scheduling retry %d/%d to %s: %s",
            evt.id,
            evt.retry,
            evt.max_retry,
            next_topic,
            exc,
        )
        return self._publish_or_hold(next_topic, evt)

    def _publish_or_hold(self, topic_name: str, evt: Event) -> bool:
        try:
            self.publish(topic_name, evt)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "failed to publish event %s to %s: %s", evt.id, topic_name, exc
            )
            return False
        return True
