from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import Depends

from ..config import AppConfig
from ..dependencies import get_app_config, get_order_repository, get_payment_gateway
from ..exceptions import (
    GatewayError,
    InvalidInput,
    OrderCompleted,
    OrderNotFound,
    OwnershipMismatch,
    PaymentServiceError,
    PersistenceError,
)
from ..gateway.interfaces import PaymentGatewayInterface
from ..models.order import (
    CancelOrderResult,
    CreateOrderResult,
    PaymentOrder,
    UpdateOrderResult,
)
from ..pricing import compute_credit_amount, validate_credits
from ..repositories.interfaces import OrderRepositoryInterface


logger = logging.getLogger(__name__)


def _require_text(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidInput(f"{field} is required", reason=f"{field}_required")
    return str(value).strip()


class OrdersService:
    """크레딧 구매 주문 생성/변경/취소.

    - 게이트웨이 승인과 주문 레코드는 두 단계로 기록되며, 둘 사이 실패는
      로그로 남기는 허용된 불일치 구간이다 (고아 승인은 metadata 로 대조 가능).
    - 소유자 검사는 게이트웨이 호출 전에 한 번, 저장소 조건부 쓰기에서 한 번 더 한다.
    """

    def __init__(
        self,
        repo: OrderRepositoryInterface,
        gateway: PaymentGatewayInterface,
        *,
        currency: str = "usd",
        description: str | None = None,
    ) -> None:
        self._repo = repo
        self._gateway = gateway
        self._currency = currency
        self._description = description

    def create(self, user_id: str | None, credits: object) -> CreateOrderResult:
        owner_id = _require_text(user_id, "user")
        credits = validate_credits(credits)
        amount = compute_credit_amount(credits)

        authorization = self._gateway.create_authorization(
            amount,
            self._currency,
            description=self._description,
            metadata={"user_id": owner_id, "credits": str(credits)},
        )
        if not authorization.client_secret:
            raise GatewayError(
                "gateway returned an authorization without client secret",
                reason="client_secret_missing",
            )

        now = datetime.now(timezone.utc)
        order = PaymentOrder(
            order_id=authorization.id,
            owner_id=owner_id,
            credits=credits,
            amount=amount,
            complete=False,
            created_at=now,
            updated_at=now,
        )
        try:
            self._repo.insert(order)
        except PaymentServiceError:
            logger.error(
                "order persist failed after authorization was created",
                extra={"order_id": order.order_id, "user_id": owner_id},
            )
            raise

        logger.info(
            "payment order created (credits=%s, amount=%s)",
            credits,
            amount,
            extra={"order_id": order.order_id, "user_id": owner_id},
        )
        return CreateOrderResult(
            order_id=order.order_id,
            client_secret=authorization.client_secret,
            amount=amount,
        )

    def update(
        self, order_id: str | None, credits: object, owner_id: str | None
    ) -> UpdateOrderResult:
        order_id = _require_text(order_id, "order")
        owner_id = _require_text(owner_id, "user")
        credits = validate_credits(credits)

        self._load_mutable(order_id, owner_id)
        amount = compute_credit_amount(credits)

        self._gateway.update_authorization(order_id, amount, self._currency)
        if not self._repo.update_if_owner(order_id, owner_id, credits, amount):
            self._raise_rejected(order_id, owner_id)

        logger.info(
            "payment order updated (credits=%s, amount=%s)",
            credits,
            amount,
            extra={"order_id": order_id, "user_id": owner_id},
        )
        return UpdateOrderResult(order_id=order_id, amount=amount)

    def cancel(self, order_id: str | None, owner_id: str | None) -> CancelOrderResult:
        order_id = _require_text(order_id, "order")
        owner_id = _require_text(owner_id, "user")

        if not self._repo.delete_if_owner(order_id, owner_id):
            self._raise_rejected(order_id, owner_id)

        authorization_canceled = True
        try:
            self._gateway.cancel_authorization(order_id)
        except GatewayError as exc:
            # 레코드는 이미 지워졌으므로 취소 자체는 성공으로 본다.
            authorization_canceled = False
            logger.warning(
                "authorization cancel failed after order delete: %s",
                exc.message,
                extra={"order_id": order_id, "user_id": owner_id},
            )

        logger.info(
            "payment order canceled",
            extra={"order_id": order_id, "user_id": owner_id},
        )
        return CancelOrderResult(
            order_id=order_id, authorization_canceled=authorization_canceled
        )

    def _load_mutable(self, order_id: str, owner_id: str) -> PaymentOrder:
        order = self._repo.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"order not found (order_id={order_id})")
        if order.owner_id != owner_id:
            raise OwnershipMismatch("order does not belong to the requesting user")
        if order.complete:
            raise OrderCompleted(f"order is already complete (order_id={order_id})")
        return order

    def _raise_rejected(self, order_id: str, owner_id: str) -> None:
        """조건부 쓰기가 거부된 이유를 재조회로 판별해서 던진다."""

        self._load_mutable(order_id, owner_id)
        # 재조회에서 조건을 만족하면 그 사이 다른 쓰기가 끼어든 것이다.
        raise PersistenceError(
            "order changed concurrently, write was rejected",
            reason="concurrent_modification",
        )


def get_orders_service(
    repo: OrderRepositoryInterface = Depends(get_order_repository),
    gateway: PaymentGatewayInterface = Depends(get_payment_gateway),
    config: AppConfig = Depends(get_app_config),
) -> OrdersService:
    """FastAPI DI용 OrdersService 팩토리."""

    return OrdersService(
        repo,
        gateway,
        currency=config.stripe.currency,
        description=config.stripe.description,
    )
