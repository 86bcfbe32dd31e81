from __future__ import annotations


class PaymentServiceError(Exception):
    """payment-service 에러의 공통 베이스.

    - code: 호출자가 분기할 수 있는 고정 문자열
    - reason: 같은 code 안에서의 세부 사유 (예: credits_out_of_bounds)
    - retryable: 같은 입력으로 다시 호출했을 때 결과가 달라질 수 있는지 여부
    """

    code: str = "payment_service_error"
    retryable: bool = False

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self) -> dict[str, str | None]:
        return {"code": self.code, "reason": self.reason, "message": self.message}


class InvalidInput(PaymentServiceError):
    """요청 필드 누락/형식 오류, credits 범위 초과."""

    code = "invalid_input"


class OwnershipMismatch(PaymentServiceError):
    """소유자 조건부 쓰기가 거부됨."""

    code = "ownership_mismatch"


class OrderNotFound(PaymentServiceError):
    """주문이 존재하지 않음.

    webhook 이 주문 저장보다 먼저 도착했을 수 있으므로 재시도 대상이다.
    """

    code = "order_not_found"
    retryable = True


class OrderCompleted(PaymentServiceError):
    """정산이 끝난(terminal) 주문을 변경/취소하려 함."""

    code = "order_completed"


class InvalidNotification(PaymentServiceError):
    """webhook 서명/진위 검증 실패. 같은 페이로드로는 절대 재시도하지 않는다."""

    code = "invalid_notification"


class InvalidCurrency(PaymentServiceError):
    """지원하지 않는 통화로 결제가 완료됨."""

    code = "invalid_currency"


class GatewayError(PaymentServiceError):
    """결제 게이트웨이 호출 실패."""

    code = "gateway_error"
    retryable = True


class PersistenceError(PaymentServiceError):
    """저장소 호출 실패 또는 트랜잭션 중단."""

    code = "persistence_error"
    retryable = True
