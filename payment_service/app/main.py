from __future__ import annotations

import logging
import os
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import create_client, resolve_database

from .api.health import router as health_router
from .api.v1 import api_router
from .config import load_config
from .event_handlers import run_webhook_consumer
from .exceptions import (
    GatewayError,
    InvalidCurrency,
    InvalidInput,
    InvalidNotification,
    OrderCompleted,
    OrderNotFound,
    OwnershipMismatch,
    PaymentServiceError,
    PersistenceError,
)
from .gateway.stripe_gateway import StripePaymentGateway
from .repositories.order_repository import OrderRepository, ensure_indexes
from .services.settlement_service import SettlementService


logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[PaymentServiceError], int] = {
    InvalidInput: 400,
    InvalidNotification: 400,
    InvalidCurrency: 400,
    OwnershipMismatch: 403,
    OrderNotFound: 404,
    OrderCompleted: 409,
    GatewayError: 502,
    PersistenceError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    """설정 로드, MongoDB 연결, (선택) webhook 중계 컨슈머 스레드를 관리한다."""

    config = load_config()
    client = create_client(config.mongo)
    db = resolve_database(client, config.mongo)
    ensure_indexes(db, config.store)

    app.state.config = config
    app.state.db = db

    consumer_stop_flag = [False]
    consumer_thread: threading.Thread | None = None
    if config.webhook_consumer.enabled:
        service = SettlementService(
            OrderRepository(db, config.store),
            StripePaymentGateway(config.stripe),
            currency=config.stripe.currency,
        )
        consumer_thread = threading.Thread(
            target=run_webhook_consumer,
            args=(consumer_stop_flag, service, config.webhook_consumer),
            name="payment-webhook-consumer",
            daemon=True,
        )
        consumer_thread.start()

    try:
        yield
    finally:
        consumer_stop_flag[0] = True
        if consumer_thread is not None:
            consumer_thread.join(timeout=10.0)
        client.close()


async def handle_payment_service_error(
    request: Request, exc: PaymentServiceError
) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "request rejected (code=%s, reason=%s): %s",
        exc.code,
        exc.reason,
        exc.message,
        extra={"path": request.url.path, "status": status_code},
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = InvalidInput("request body is invalid", reason="request_invalid")
    return JSONResponse(status_code=400, content=error.to_dict())


def create_app() -> FastAPI:
    setup_logger(name="payment-service")
    app = FastAPI(
        title="Credit Payments Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)

    app.add_exception_handler(PaymentServiceError, handle_payment_service_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    port = int(os.getenv("PAYMENT_SERVICE_PORT", "8003"))
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
