from __future__ import annotations

import time

import pytest

from common.eventbus.core import Event, NonRetryableEventError
from common.eventbus.topics import TOPIC_PAYMENT_WEBHOOK
from common.events.payment import PaymentEventType
from payment_service.app.config import (
    DEFAULT_RELAY_TOLERANCE,
    StripeConfig,
    WebhookConsumerConfig,
)
from payment_service.app.event_handlers import webhook_consumer
from payment_service.app.exceptions import (
    InvalidCurrency,
    InvalidNotification,
    OrderNotFound,
)
from payment_service.app.gateway.stripe_gateway import StripePaymentGateway
from payment_service.app.services.orders_service import OrdersService
from payment_service.app.services.settlement_service import (
    SettlementOutcome,
    SettlementResult,
    SettlementService,
)
from payment_service.tests.fakes import (
    FakePaymentGateway,
    InMemoryOrderRepository,
    build_gateway_event,
    sign_payload,
)


class FakeSettlementService:
    def __init__(self) -> None:
        self.received: list[tuple[bytes, str | None]] = []
        self.tolerances: list[int | None] = []
        self.raise_error: Exception | None = None

    def process(
        self, payload: bytes, signature: str | None, *, tolerance: int | None = None
    ) -> SettlementResult:
        self.received.append((payload, signature))
        self.tolerances.append(tolerance)
        if self.raise_error is not None:
            raise self.raise_error
        return SettlementResult(
            outcome=SettlementOutcome.SETTLED,
            notification_id="evt_1",
            order_id="pi_1",
        )


class FakeKafkaEventBus:
    instances: list["FakeKafkaEventBus"] = []
    next_event: Event | None = None

    def __init__(self, brokers: str) -> None:
        self.brokers = brokers
        self.subscribe_calls: list[dict] = []
        self.closed = False
        self.__class__.instances.append(self)

    def subscribe(self, *, group_id, topic, handler, stop_flag) -> None:
        self.subscribe_calls.append(
            {
                "group_id": group_id,
                "topic": topic,
                "handler": handler,
                "stop_flag": stop_flag,
            }
        )
        if self.__class__.next_event is not None:
            handler(self.__class__.next_event)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_fake_kafka_event_bus_state() -> None:
    FakeKafkaEventBus.instances = []
    FakeKafkaEventBus.next_event = None


def _relay_payload(**overrides) -> dict:
    payload = {
        "id": "relay-1",
        "type": PaymentEventType.WEBHOOK_RECEIVED,
        "timestamp": "2026-10-01T00:00:00Z",
        "source": "webhook-receiver",
        "version": "1.0",
        "body": '{"id": "evt_1"}',
        "signature": "t=1,v1=abc",
    }
    payload.update(overrides)
    return payload


def test_run_webhook_consumer_subscribes_and_processes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(webhook_consumer, "KafkaEventBus", FakeKafkaEventBus)
    FakeKafkaEventBus.next_event = Event(id="relay-1", payload=_relay_payload())
    service = FakeSettlementService()
    stop_flag = [False]

    webhook_consumer.run_webhook_consumer(
        stop_flag,
        service,  # type: ignore[arg-type]
        WebhookConsumerConfig(enabled=True, brokers="kafka:9092", group_id="payment-group", signature_tolerance=7200),
    )

    assert len(FakeKafkaEventBus.instances) == 1
    bus = FakeKafkaEventBus.instances[0]
    assert bus.brokers == "kafka:9092"
    assert bus.closed is True
    call = bus.subscribe_calls[0]
    assert call["group_id"] == "payment-group"
    assert call["topic"] == TOPIC_PAYMENT_WEBHOOK
    assert call["stop_flag"] is stop_flag
    assert service.received == [(b'{"id": "evt_1"}', "t=1,v1=abc")]
    assert service.tolerances == [7200]


def test_handle_event_ignores_other_event_types() -> None:
    service = FakeSettlementService()
    evt = Event(id="other-1", payload=_relay_payload(type="post.summarized"))

    webhook_consumer._handle_event(evt, service=service)  # type: ignore[arg-type]

    assert service.received == []


@pytest.mark.parametrize(
    "error",
    [
        InvalidNotification("bad signature"),
        InvalidCurrency("eur not supported"),
    ],
)
def test_handle_event_sends_permanent_failures_to_dlq(error: Exception) -> None:
    service = FakeSettlementService()
    service.raise_error = error
    evt = Event(id="relay-1", payload=_relay_payload())

    with pytest.raises(NonRetryableEventError):
        webhook_consumer._handle_event(evt, service=service)  # type: ignore[arg-type]


def test_handle_event_propagates_retryable_failures() -> None:
    service = FakeSettlementService()
    service.raise_error = OrderNotFound("order not yet stored")
    evt = Event(id="relay-1", payload=_relay_payload())

    with pytest.raises(OrderNotFound):
        webhook_consumer._handle_event(evt, service=service)  # type: ignore[arg-type]


def test_handle_event_rejects_malformed_envelope() -> None:
    service = FakeSettlementService()
    payload = _relay_payload()
    del payload["signature"]

    with pytest.raises(NonRetryableEventError):
        webhook_consumer._handle_event(
            Event(id="relay-1", payload=payload), service=service  # type: ignore[arg-type]
        )

    with pytest.raises(NonRetryableEventError):
        webhook_consumer._handle_event(
            Event(id="relay-2", payload="not-a-dict"), service=service  # type: ignore[arg-type]
        )

    assert service.received == []


def test_relayed_capture_retried_after_http_tolerance_still_settles(
    repo: InMemoryOrderRepository,
    gateway: FakePaymentGateway,
    stripe_config: StripeConfig,
) -> None:
    repo.balances["user-1"] = 0
    order_id = OrdersService(repo, gateway, currency="usd").create("user-1", 5).order_id
    service = SettlementService(repo, StripePaymentGateway(stripe_config), currency="usd")

    # retry.2 까지 밀려서 webhook 수신 후 6분이 지난 뒤에 처리되는 상황
    body = build_gateway_event(order_id=order_id)
    signature = sign_payload(body, timestamp=int(time.time()) - 360)
    evt = Event(
        id="relay-1",
        payload=_relay_payload(body=body, signature=signature),
        retry=2,
    )

    with pytest.raises(NonRetryableEventError):
        webhook_consumer._handle_event(evt, service=service)
    assert repo.balances["user-1"] == 0

    webhook_consumer._handle_event(evt, service=service, tolerance=DEFAULT_RELAY_TOLERANCE)

    assert repo.balances["user-1"] == 5
    assert repo.orders[order_id].complete is True

    # 같은 중계 이벤트가 다시 와도 크레딧은 한 번만 반영된다.
    webhook_consumer._handle_event(evt, service=service, tolerance=DEFAULT_RELAY_TOLERANCE)
    assert repo.balances["user-1"] == 5
