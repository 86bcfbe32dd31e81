"""결제 게이트웨이 알림(webhook) 도메인 모델.

게이트웨이 이벤트 타입 문자열을 닫힌 enum 으로 변환해서 다룬다.
모르는 타입은 UNKNOWN 으로 떨어지고, 정산 경로에서는 무시(no-op)된다.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Self

from pydantic import BaseModel


class NotificationKind(str, Enum):
    PAYMENT_CAPTURED = "payment_captured"
    PAYMENT_CANCELED = "payment_canceled"
    PAYMENT_FAILED = "payment_failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_gateway_type(cls, event_type: str) -> Self:
        return _GATEWAY_EVENT_KINDS.get(event_type, cls.UNKNOWN)


_GATEWAY_EVENT_KINDS: dict[str, NotificationKind] = {
    "payment_intent.succeeded": NotificationKind.PAYMENT_CAPTURED,
    "payment_intent.canceled": NotificationKind.PAYMENT_CANCELED,
    "payment_intent.payment_failed": NotificationKind.PAYMENT_FAILED,
}


class PaymentNotification(BaseModel):
    """서명 검증을 통과한 게이트웨이 알림."""

    id: str
    kind: NotificationKind
    event_type: str  # 원본 이벤트 타입 (로그용)
    order_id: str | None = None
    amount: int | None = None
    currency: str | None = None

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> Self:
        """게이트웨이 이벤트 JSON(dict)에서 알림을 만든다.

        data.object 가 PaymentIntent 가 아니면 order_id 등은 None 으로 둔다.
        """

        event_type = str(event.get("type", ""))
        data = event.get("data") or {}
        obj = data.get("object") if isinstance(data, Mapping) else None

        order_id: str | None = None
        amount: int | None = None
        currency: str | None = None
        if isinstance(obj, Mapping) and obj.get("object") == "payment_intent":
            order_id = str(obj["id"]) if obj.get("id") else None
            raw_amount = obj.get("amount_received") or obj.get("amount")
            amount = int(raw_amount) if raw_amount is not None else None
            currency = str(obj["currency"]).lower() if obj.get("currency") else None

        return cls(
            id=str(event.get("id", "")),
            kind=NotificationKind.from_gateway_type(event_type),
            event_type=event_type,
            order_id=order_id,
            amount=amount,
            currency=currency,
        )
