"""Kafka 로 중계된 webhook 원문을 소비해서 정산한다.

HTTP webhook 과 같은 SettlementService.process 를 타므로 서명 검증/멱등성은 동일하다.
단, retry.N 토픽을 거쳐 늦게 처리될 수 있으므로 서명 timestamp 허용 오차는
WebhookConsumerConfig.signature_tolerance (재시도 지연 총합 이상)를 쓴다.
"""

from __future__ import annotations

import logging

from common.eventbus.core import Event, NonRetryableEventError
from common.eventbus.kafka import KafkaEventBus
from common.eventbus.topics import TOPIC_PAYMENT_WEBHOOK
from common.events.payment import PaymentEventType, PaymentWebhookReceivedEvent

from ..config import WebhookConsumerConfig
from ..exceptions import PaymentServiceError
from ..services.settlement_service import SettlementService


logger = logging.getLogger(__name__)


def _handle_event(
    evt: Event, *, service: SettlementService, tolerance: int | None = None
) -> None:
    payload = evt.payload
    if not isinstance(payload, dict):
        raise NonRetryableEventError(
            f"unexpected payload type for event {evt.id}: {type(payload).__name__}"
        )

    event_type = str(payload.get("type", ""))
    if event_type != PaymentEventType.WEBHOOK_RECEIVED:
        # 다른 타입의 이벤트는 이 컨슈머의 책임이 아니므로 무시한다.
        logger.debug("ignoring event type=%s id=%s", event_type, evt.id)
        return

    try:
        received = PaymentWebhookReceivedEvent.from_dict(payload)
    except (KeyError, TypeError) as exc:
        raise NonRetryableEventError(
            f"malformed webhook relay event {evt.id}: missing {exc}"
        ) from exc

    try:
        result = service.process(
            received.body.encode("utf-8"), received.signature, tolerance=tolerance
        )
    except PaymentServiceError as exc:
        if not exc.retryable:
            raise NonRetryableEventError(f"{exc.code}: {exc.message}") from exc
        raise

    logger.info(
        "relayed webhook processed id=%s",
        received.id,
        extra={
            "order_id": result.order_id,
            "notification_id": result.notification_id,
            "outcome": result.outcome.value,
        },
    )


def run_webhook_consumer(
    stop_flag: list[bool],
    service: SettlementService,
    config: WebhookConsumerConfig,
) -> None:
    logger.info("payment-webhook-consumer starting up")

    bus = KafkaEventBus(config.brokers)

    try:
        logger.info(
            "subscribing to topic=%s group_id=%s",
            TOPIC_PAYMENT_WEBHOOK.base,
            config.group_id,
        )
        bus.subscribe(
            group_id=config.group_id,
            topic=TOPIC_PAYMENT_WEBHOOK,
            handler=lambda evt: _handle_event(
                evt, service=service, tolerance=config.signature_tolerance
            ),
            stop_flag=stop_flag,
        )
    finally:
        bus.close()
        logger.info("payment-webhook-consumer stopped")
