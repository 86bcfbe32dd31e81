from __future__ import annotations

from .core import Topic


# 결제 게이트웨이 webhook 원문을 중계(relay)하는 토픽
TOPIC_PAYMENT_WEBHOOK = Topic("credit-payments.payment.webhook")
