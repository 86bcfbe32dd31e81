"""크레딧 수량 -> 결제 금액(최소 통화 단위) 계산.

대량 구매 할인을 룩업 테이블 없이 곡선 하나로 표현한다.

    amount = 100 * (round(9 * credits ** 0.725) / 4)

round 는 0 에서 먼 쪽으로 반올림(round-half-away-from-zero)한다.
Python 내장 round() 는 banker's rounding 이므로 사용하지 않는다.

반올림은 4 로 나누기 전에 한다. round(9 * credits ** 0.725 / 4) * 100 처럼 나눈 뒤에
반올림하면 credits=5 에서 700 이 되어 기존 청구 금액 725 와 어긋난다.
기존 서비스가 실제로 청구해 온 값(5 -> 725, 10 -> 1200, 250 -> 12325)이 기준이다.
클라이언트에 표시되는 금액과 게이트웨이 청구 금액이 일치해야 하므로 공식을 바꾸면 안 된다.
"""

from __future__ import annotations

import math

from .exceptions import InvalidInput


MIN_CREDITS = 5
MAX_CREDITS = 250

PRICE_MULTIPLIER = 9
PRICE_EXPONENT = 0.725
PRICE_DIVISOR = 4


def _round_half_away_from_zero(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def compute_credit_amount(credits: int) -> int:
    """credits 에 대한 결제 금액(센트)을 반환한다.

    범위 검사는 하지 않는다. 호출자가 validate_credits 로 먼저 검증해야 한다.
    """

    rounded = _round_half_away_from_zero(PRICE_MULTIPLIER * math.pow(credits, PRICE_EXPONENT))
    return int(100 * (rounded / PRICE_DIVISOR))


def validate_credits(credits: object) -> int:
    """credits 값이 [MIN_CREDITS, MAX_CREDITS] 범위의 정수인지 검증한다."""

    if credits is None:
        raise InvalidInput("credits is required", reason="credits_required")
    # bool 은 int 의 서브클래스이므로 명시적으로 거른다.
    if isinstance(credits, bool) or not isinstance(credits, int):
        raise InvalidInput("credits must be an integer", reason="credits_invalid")
    if credits < MIN_CREDITS or credits > MAX_CREDITS:
        raise InvalidInput(
            f"credits must be between {MIN_CREDITS} and {MAX_CREDITS}, got {credits}",
            reason="credits_out_of_bounds",
        )
    return credits
