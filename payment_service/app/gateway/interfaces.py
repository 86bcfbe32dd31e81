from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel

from ..models.notification import PaymentNotification


class Authorization(BaseModel):
    """게이트웨이 쪽 결제 승인(PaymentIntent) 요약."""

    id: str
    client_secret: str | None = None
    amount: int
    currency: str


class PaymentGatewayInterface(Protocol):
    """결제 게이트웨이가 따라야 할 최소한의 계약.

    - 호출 실패는 GatewayError 로 감싸서 던진다.
    - 알림 서명 검증 실패는 InvalidNotification 으로 던진다.
    """

    def create_authorization(
        self,
        amount: int,
        currency: str,
        *,
        description: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Authorization:  # pragma: no cover - Protocol
        ...

    def update_authorization(
        self, authorization_id: str, amount: int, currency: str
    ) -> Authorization:  # pragma: no cover - Protocol
        ...

    def cancel_authorization(self, authorization_id: str) -> None:  # pragma: no cover - Protocol
        ...

    def construct_notification(
        self,
        payload: bytes,
        signature: str | None,
        *,
        tolerance: int | None = None,
    ) -> PaymentNotification:  # pragma: no cover - Protocol
        """tolerance 가 None 이면 설정된 기본 허용 오차(초)로 서명 timestamp 를 검사한다."""
        ...
