"""결제 완료 알림 -> 크레딧 정산.

같은 알림이 몇 번 도착하든 크레딧은 정확히 한 번만 반영된다.
  1) 서명 검증 (실패 시 저장소를 건드리지 않음)
  2) 결제 완료(captured) 외 알림은 무시
  3) 통화 검사
  4) 주문 조회, 이미 complete 면 멱등 성공
  5) 잔액 증가 + complete=True 를 한 트랜잭션으로 반영
"""

from __future__ import annotations

import logging
from enum import Enum

from fastapi import Depends
from pydantic import BaseModel

from ..config import AppConfig
from ..dependencies import get_app_config, get_order_repository, get_payment_gateway
from ..exceptions import InvalidCurrency, OrderNotFound
from ..gateway.interfaces import PaymentGatewayInterface
from ..models.notification import NotificationKind
from ..models.order import SettleOutcome
from ..repositories.interfaces import OrderRepositoryInterface


logger = logging.getLogger(__name__)


class SettlementOutcome(str, Enum):
    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"
    IGNORED = "ignored"


class SettlementResult(BaseModel):
    outcome: SettlementOutcome
    notification_id: str
    order_id: str | None = None


class SettlementService:
    def __init__(
        self,
        repo: OrderRepositoryInterface,
        gateway: PaymentGatewayInterface,
        *,
        currency: str = "usd",
    ) -> None:
        self._repo = repo
        self._gateway = gateway
        self._currency = currency.lower()

    def process(
        self,
        payload: bytes,
        signature: str | None,
        *,
        tolerance: int | None = None,
    ) -> SettlementResult:
        """알림 한 건을 정산한다.

        tolerance 는 서명 timestamp 허용 오차(초)다. Kafka 재시도처럼 늦게 처리되는 경로는
        재시도 일정을 덮는 값을 넘긴다. None 이면 게이트웨이 기본값을 쓴다.
        """

        notification = self._gateway.construct_notification(
            payload, signature, tolerance=tolerance
        )

        if notification.kind is not NotificationKind.PAYMENT_CAPTURED or not notification.order_id:
            logger.info(
                "notification ignored (type=%s)",
                notification.event_type,
                extra={
                    "notification_id": notification.id,
                    "outcome": SettlementOutcome.IGNORED.value,
                },
            )
            return SettlementResult(
                outcome=SettlementOutcome.IGNORED,
                notification_id=notification.id,
                order_id=notification.order_id,
            )

        order_id = notification.order_id
        if notification.currency != self._currency:
            raise InvalidCurrency(
                f"unsupported currency {notification.currency!r}, expected {self._currency!r}",
                reason="currency_unsupported",
            )

        order = self._repo.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"order not found (order_id={order_id})")

        if order.complete:
            return self._already_settled(notification.id, order_id)

        if notification.amount is not None and notification.amount != order.amount:
            # 주문 변경 시 게이트웨이가 먼저 갱신되고 저장소 갱신이 실패한 경우에 생긴다.
            logger.warning(
                "captured amount differs from order amount (captured=%s, order=%s)",
                notification.amount,
                order.amount,
                extra={"order_id": order_id, "notification_id": notification.id},
            )

        if self._repo.settle(order_id, order.owner_id, order.credits) is SettleOutcome.ALREADY_COMPLETE:
            return self._already_settled(notification.id, order_id)

        logger.info(
            "credits settled (credits=%s)",
            order.credits,
            extra={
                "order_id": order_id,
                "user_id": order.owner_id,
                "notification_id": notification.id,
                "outcome": SettlementOutcome.SETTLED.value,
            },
        )
        return SettlementResult(
            outcome=SettlementOutcome.SETTLED,
            notification_id=notification.id,
            order_id=order_id,
        )

    def _already_settled(self, notification_id: str, order_id: str) -> SettlementResult:
        logger.info(
            "duplicate notification for settled order",
            extra={
                "order_id": order_id,
                "notification_id": notification_id,
                "outcome": SettlementOutcome.ALREADY_SETTLED.value,
            },
        )
        return SettlementResult(
            outcome=SettlementOutcome.ALREADY_SETTLED,
            notification_id=notification_id,
            order_id=order_id,
        )


def get_settlement_service(
    repo: OrderRepositoryInterface = Depends(get_order_repository),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
    config: AppConfig = Depends(get_app_config),
) -> SettlementService:
    """FastAPI DI용 SettlementService 팩토리."""

    return SettlementService(repo, gateway, currency=config.stripe.currency)
