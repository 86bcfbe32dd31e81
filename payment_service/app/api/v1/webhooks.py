"""결제 게이트웨이 webhook 수신 라우터.

서명 검증에 원본 바이트가 필요하므로 body 를 모델로 파싱하지 않는다.
2xx 가 아니면 게이트웨이가 재전송한다.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from ...services.settlement_service import SettlementService, get_settlement_service
from ..schemas.orders import WebhookResponse


router = APIRouter()


@router.post("/stripe", summary="Stripe webhook 수신")
async def receive_stripe_webhook(
    request: Request,
    settlement_service: Annotated[SettlementService, Depends(get_settlement_service)],
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> WebhookResponse:
    payload = await request.body()
    result = await run_in_threadpool(settlement_service.process, payload, stripe_signature)
    return WebhookResponse(outcome=result.outcome.value)
