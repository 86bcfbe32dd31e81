from __future__ import annotations

from pydantic import BaseModel


class CreateOrderRequest(BaseModel):
    """크레딧 구매 주문 생성 요청.

    필드 누락은 서비스 레이어에서 reason 과 함께 InvalidInput 으로 거른다.
    """

    user_id: str | None = None
    credits: int | None = None


class CreateOrderResponse(BaseModel):
    order_id: str
    client_secret: str
    amount: int


class UpdateOrderRequest(BaseModel):
    user_id: str | None = None
    credits: int | None = None


class UpdateOrderResponse(BaseModel):
    order_id: str
    amount: int


class CancelOrderRequest(BaseModel):
    user_id: str | None = None


class CancelOrderResponse(BaseModel):
    success: bool = True
    order_id: str
    authorization_canceled: bool


class WebhookResponse(BaseModel):
    received: bool = True
    outcome: str
