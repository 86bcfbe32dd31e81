"""이벤트 핸들러 패키지."""

from .webhook_consumer import run_webhook_consumer

__all__ = ["run_webhook_consumer"]
