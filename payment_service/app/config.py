from __future__ import annotations

import os
from dataclasses import dataclass, field

from common.eventbus.core import RetryDelays
from common.mongo.config import MongoConfig, load_mongo_config


STRIPE_SECRET_KEY = "STRIPE_SECRET_KEY"
STRIPE_WEBHOOK_SECRET = "STRIPE_WEBHOOK_SECRET"
STRIPE_WEBHOOK_TOLERANCE = "STRIPE_WEBHOOK_TOLERANCE"
PAYMENT_CURRENCY = "PAYMENT_CURRENCY"
PAYMENT_DESCRIPTION = "PAYMENT_DESCRIPTION"
PAYMENT_ORDERS_COLLECTION = "PAYMENT_ORDERS_COLLECTION"
USERS_COLLECTION = "USERS_COLLECTION"
WEBHOOK_CONSUMER_ENABLED = "WEBHOOK_CONSUMER_ENABLED"
KAFKA_BOOTSTRAP_SERVERS = "KAFKA_BOOTSTRAP_SERVERS"
KAFKA_GROUP_ID = "KAFKA_GROUP_ID"
WEBHOOK_RELAY_TOLERANCE = "WEBHOOK_RELAY_TOLERANCE"

DEFAULT_CURRENCY = "usd"
DEFAULT_DESCRIPTION = "Add credits to your account"
DEFAULT_WEBHOOK_TOLERANCE = 300
# 중계 경로는 재시도 지연 총합 + 컨슈머 지연 여유(1시간)까지 서명 timestamp 를 허용한다.
RELAY_LAG_MARGIN = 3600
DEFAULT_RELAY_TOLERANCE = DEFAULT_WEBHOOK_TOLERANCE + int(sum(RetryDelays)) + RELAY_LAG_MARGIN


@dataclass(slots=True)
class StripeConfig:
    """Stripe 결제 게이트웨이 설정."""

    secret_key: str
    webhook_secret: str
    webhook_tolerance: int = DEFAULT_WEBHOOK_TOLERANCE  # 서명 timestamp 허용 오차(초)
    currency: str = DEFAULT_CURRENCY  # 지원하는 유일한 통화
    description: str = DEFAULT_DESCRIPTION


@dataclass(slots=True)
class StoreConfig:
    """주문/유저 컬렉션 이름."""

    orders_collection: str = "payment_orders"
    users_collection: str = "users"


@dataclass(slots=True)
class WebhookConsumerConfig:
    """Kafka webhook 중계 컨슈머 설정. enabled=False 면 brokers/group_id 는 비어 있다."""

    enabled: bool = False
    brokers: str = ""
    group_id: str = ""
    signature_tolerance: int = DEFAULT_RELAY_TOLERANCE  # 중계 webhook 서명 timestamp 허용 오차(초)


@dataclass(slots=True)
class AppConfig:
    """payment-service 전체 설정.

    프로세스 시작 시 한 번 로드하고, 각 컴포넌트 생성자에 명시적으로 넘긴다.
    """

    stripe: StripeConfig
    mongo: MongoConfig
    store: StoreConfig = field(default_factory=StoreConfig)
    webhook_consumer: WebhookConsumerConfig = field(
        default_factory=WebhookConsumerConfig
    )


def _require(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(f"{name} environment variable is required for payment-service")
    return value


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer if set, got: {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0, got: {value}")
    return value


def load_stripe_config() -> StripeConfig:
    secret_key = _require(STRIPE_SECRET_KEY)
    webhook_secret = _require(STRIPE_WEBHOOK_SECRET)

    tolerance = _positive_int(STRIPE_WEBHOOK_TOLERANCE, DEFAULT_WEBHOOK_TOLERANCE)

    currency = (os.getenv(PAYMENT_CURRENCY) or DEFAULT_CURRENCY).strip().lower()
    description = os.getenv(PAYMENT_DESCRIPTION) or DEFAULT_DESCRIPTION

    return StripeConfig(
        secret_key=secret_key,
        webhook_secret=webhook_secret,
        webhook_tolerance=tolerance,
        currency=currency,
        description=description,
    )


def load_store_config() -> StoreConfig:
    return StoreConfig(
        orders_collection=os.getenv(PAYMENT_ORDERS_COLLECTION) or "payment_orders",
        users_collection=os.getenv(USERS_COLLECTION) or "users",
    )


def load_webhook_consumer_config() -> WebhookConsumerConfig:
    enabled_raw = os.getenv(WEBHOOK_CONSUMER_ENABLED, "").strip().lower()
    if enabled_raw not in {"1", "true", "yes"}:
        return WebhookConsumerConfig(enabled=False)

    return WebhookConsumerConfig(
        enabled=True,
        brokers=_require(KAFKA_BOOTSTRAP_SERVERS),
        group_id=_require(KAFKA_GROUP_ID),
        signature_tolerance=_positive_int(WEBHOOK_RELAY_TOLERANCE, DEFAULT_RELAY_TOLERANCE),
    )


def load_config() -> AppConfig:
    """payment-service 설정을 로드하여 AppConfig 로 반환한다."""

    return AppConfig(
        stripe=load_stripe_config(),
        mongo=load_mongo_config(),
        store=load_store_config(),
        webhook_consumer=load_webhook_consumer_config(),
    )
