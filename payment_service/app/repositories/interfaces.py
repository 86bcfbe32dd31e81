from __future__ import annotations

from typing import Protocol

from ..models.order import PaymentOrder, SettleOutcome


class OrderRepositoryInterface(Protocol):
    """주문 저장소(Order Store)가 따라야 할 최소한의 계약.

    - 모든 쓰기는 단일 도큐먼트 조건부 연산이거나 단일 트랜잭션이어야 한다.
    - 저장소 호출 실패는 PersistenceError 로 감싸서 던진다.
    - 유저 잔액(User Store)은 settle 트랜잭션 안에서만 변경된다.
    """

    def insert(self, order: PaymentOrder) -> PaymentOrder:  # pragma: no cover - Protocol
        """같은 order_id 가 없을 때만 저장한다 (put-if-absent)."""
        ...

    def find_by_id(self, order_id: str) -> PaymentOrder | None:  # pragma: no cover - Protocol
        ...

    def update_if_owner(
        self, order_id: str, owner_id: str, credits: int, amount: int
    ) -> bool:  # pragma: no cover - Protocol
        """owner_id 가 일치하고 아직 정산되지 않은 주문만 갱신한다. 조건 불일치 시 False."""
        ...

    def delete_if_owner(
        self, order_id: str, owner_id: str
    ) -> bool:  # pragma: no cover - Protocol
        """owner_id 가 일치하고 아직 정산되지 않은 주문만 삭제한다. 조건 불일치 시 False."""
        ...

    def settle(
        self, order_id: str, user_id: str, credits: int
    ) -> SettleOutcome:  # pragma: no cover - Protocol
        """유저 잔액 += credits, 주문 complete=True 를 all-or-nothing 으로 반영한다.

        주문이 이미 complete 이면 아무것도 반영하지 않고 ALREADY_COMPLETE 를 반환한다.
        """
        ...
