"""결제 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class PaymentEventType:
    """결제 이벤트 타입 상수."""

    WEBHOOK_RECEIVED = "payment.webhook.received"


@dataclass(slots=True)
class PaymentWebhookReceivedEvent:
    """결제 게이트웨이 webhook 중계 이벤트.

    앞단 수신기가 webhook 요청을 검증 없이 원문 그대로 싣는다.
    서명 검증은 이 이벤트를 소비하는 쪽에서 body/signature 로 수행한다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    body: str  # 서명 대상 원문 (변형 금지)
    signature: str  # Stripe-Signature 헤더 값

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data.get("timestamp", "")),
            source=str(data.get("source", "")),
            version=str(data.get("version", "1.0")),
            body=str(data["body"]),
            signature=str(data["signature"]),
        )
