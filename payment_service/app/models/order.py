"""크레딧 구매 주문 도메인 모델.

주문 id 는 결제 게이트웨이가 발급한 승인(PaymentIntent) id 를 그대로 쓴다 (1:1 조인).
상태 전이: Created -> {Updated}* -> {Completed | Canceled}
  - Completed: complete=True, 레코드 보존
  - Canceled : 레코드 삭제
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class PaymentOrder(BaseModel):
    """payment_orders 컬렉션과 1:1 로 매핑되는 주문 모델."""

    order_id: str
    owner_id: str
    credits: int
    amount: int  # 최소 통화 단위 (센트)
    complete: bool = False
    created_at: datetime
    updated_at: datetime


class SettleOutcome(str, Enum):
    """정산 트랜잭션 결과."""

    APPLIED = "applied"  # 잔액 증가 + complete=True 가 함께 반영됨
    ALREADY_COMPLETE = "already_complete"  # 다른 호출이 먼저 정산함, 아무것도 반영되지 않음


class CreateOrderResult(BaseModel):
    order_id: str
    client_secret: str
    amount: int


class UpdateOrderResult(BaseModel):
    order_id: str
    amount: int


class CancelOrderResult(BaseModel):
    order_id: str
    authorization_canceled: bool
