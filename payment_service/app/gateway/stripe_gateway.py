"""Stripe 결제 게이트웨이 어댑터.

- 전역 stripe.api_key 를 쓰지 않고 호출마다 api_key 를 넘긴다 (설정 명시 주입).
- webhook 은 서명 헤더만 stripe 로 검증하고, 본문은 직접 PaymentNotification 으로 변환한다.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import stripe

from ..config import StripeConfig
from ..exceptions import GatewayError, InvalidNotification
from ..models.notification import PaymentNotification
from .interfaces import Authorization, PaymentGatewayInterface


logger = logging.getLogger(__name__)


def _to_authorization(intent: Any) -> Authorization:
    return Authorization(
        id=intent.id,
        client_secret=getattr(intent, "client_secret", None),
        amount=intent.amount,
        currency=intent.currency,
    )


class StripePaymentGateway(PaymentGatewayInterface):
    """PaymentIntent 기반 결제 승인 생성/변경/취소 + webhook 검증."""

    def __init__(self, config: StripeConfig) -> None:
        self._config = config

    def create_authorization(
        self,
        amount: int,
        currency: str,
        *,
        description: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Authorization:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                description=description or self._config.description,
                metadata=metadata or {},
                api_key=self._config.secret_key,
            )
        except stripe.StripeError as exc:
            logger.error("stripe payment intent create failed: %s", exc)
            raise GatewayError(
                f"failed to create payment authorization: {exc}",
                reason="authorization_create_failed",
            ) from exc

        return _to_authorization(intent)

    def update_authorization(
        self, authorization_id: str, amount: int, currency: str
    ) -> Authorization:
        try:
            intent = stripe.PaymentIntent.modify(
                authorization_id,
                amount=amount,
                currency=currency,
                api_key=self._config.secret_key,
            )
        except stripe.StripeError as exc:
            logger.error(
                "stripe payment intent modify failed (id=%s): %s", authorization_id, exc
            )
            raise GatewayError(
                f"failed to update payment authorization: {exc}",
                reason="authorization_update_failed",
            ) from exc

        return _to_authorization(intent)

    def cancel_authorization(self, authorization_id: str) -> None:
        try:
            stripe.PaymentIntent.cancel(
                authorization_id,
                api_key=self._config.secret_key,
            )
        except stripe.StripeError as exc:
            raise GatewayError(
                f"failed to cancel payment authorization: {exc}",
                reason="authorization_cancel_failed",
            ) from exc

    def construct_notification(
        self,
        payload: bytes,
        signature: str | None,
        *,
        tolerance: int | None = None,
    ) -> PaymentNotification:
        """서명 헤더를 검증하고 알림으로 변환한다.

        검증에 실패하면 본문은 전혀 해석하지 않는다.
        """

        if not signature:
            raise InvalidNotification(
                "missing webhook signature header", reason="signature_missing"
            )

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidNotification(
                "webhook payload is not valid utf-8", reason="payload_invalid"
            ) from exc

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._config.webhook_secret,
                tolerance=tolerance if tolerance is not None else self._config.webhook_tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            raise InvalidNotification(
                f"webhook signature verification failed: {exc}",
                reason="signature_invalid",
            ) from exc

        try:
            event = json.loads(body)
        except json.JSONDecodeError as exc:
            raise InvalidNotification(
                "webhook payload is not valid json", reason="payload_invalid"
            ) from exc
        if not isinstance(event, dict) or not event.get("id"):
            raise InvalidNotification(
                "webhook payload is not a gateway event", reason="payload_invalid"
            )

        return PaymentNotification.from_event(event)
