"""FastAPI DI용 공용 팩토리.

설정과 DB 핸들은 lifespan 에서 app.state 에 한 번 올려두고 여기서 꺼내 쓴다.
"""

from __future__ import annotations

from fastapi import Depends, Request
from pymongo.database import Database

from .config import AppConfig
from .gateway.interfaces import PaymentGatewayInterface
from .gateway.stripe_gateway import StripePaymentGateway
from .repositories.interfaces import OrderRepositoryInterface
from .repositories.order_repository import OrderRepository


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_order_repository(
    db: Database = Depends(get_database),
    config: AppConfig = Depends(get_app_config),
) -> OrderRepositoryInterface:
    """FastAPI DI용 OrderRepository 팩토리."""

    return OrderRepository(db, config.store)


def get_payment_gateway(
    config: AppConfig = Depends(get_app_config),
) -> PaymentGatewayInterface:
    """FastAPI DI용 StripePaymentGateway 팩토리."""

    return StripePaymentGateway(config.stripe)
