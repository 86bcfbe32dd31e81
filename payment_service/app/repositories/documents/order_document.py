"""주문 MongoDB 도큐먼트.

_id 는 게이트웨이 승인 id(예: "pi_...") 문자열이다.
"""

from __future__ import annotations

from common.mongo.types import BaseDocument

from ...models.order import PaymentOrder


class OrderDocument(BaseDocument):
    """MongoDB payment_orders 컬렉션 도큐먼트 모델."""

    owner_id: str
    credits: int
    amount: int
    complete: bool = False

    @classmethod
    def from_domain(cls, order: PaymentOrder) -> "OrderDocument":
        return cls(
            _id=order.order_id,
            owner_id=order.owner_id,
            credits=order.credits,
            amount=order.amount,
            complete=order.complete,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    def to_domain(self) -> PaymentOrder:
        return PaymentOrder(
            order_id=str(self.id),
            owner_id=self.owner_id,
            credits=self.credits,
            amount=self.amount,
            complete=self.complete,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
