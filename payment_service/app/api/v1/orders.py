"""크레딧 구매 주문 API 라우터.

Gateway 에서 인증을 마친 뒤 user_id 를 채워서 호출하는 내부 API.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ...services.orders_service import OrdersService, get_orders_service
from ..schemas.orders import (
    CancelOrderRequest,
    CancelOrderResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    UpdateOrderRequest,
    UpdateOrderResponse,
)


router = APIRouter()


@router.post("", summary="주문 생성")
def create_order(
    req: CreateOrderRequest,
    orders_service: Annotated[OrdersService, Depends(get_orders_service)],
) -> CreateOrderResponse:
    result = orders_service.create(req.user_id, req.credits)
    return CreateOrderResponse(
        order_id=result.order_id,
        client_secret=result.client_secret,
        amount=result.amount,
    )


@router.put("/{order_id}", summary="주문 수량 변경")
def update_order(
    order_id: str,
    req: UpdateOrderRequest,
    orders_service: Annotated[OrdersService, Depends(get_orders_service)],
) -> UpdateOrderResponse:
    result = orders_service.update(order_id, req.credits, req.user_id)
    return UpdateOrderResponse(order_id=result.order_id, amount=result.amount)


@router.post("/{order_id}/cancel", summary="주문 취소")
def cancel_order(
    order_id: str,
    req: CancelOrderRequest,
    orders_service: Annotated[OrdersService, Depends(get_orders_service)],
) -> CancelOrderResponse:
    """미정산 주문을 삭제하고 게이트웨이 승인을 취소한다 (취소 실패는 best-effort)."""
    result = orders_service.cancel(order_id, req.user_id)
    return CancelOrderResponse(
        order_id=result.order_id,
        authorization_canceled=result.authorization_canceled,
    )
