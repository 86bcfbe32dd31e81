from __future__ import annotations

from dataclasses import dataclass
from typing import Any


# 재시도 토픽 단계별 지연(초). 단계 수가 곧 최대 재시도 횟수다.
RetryDelays: list[float] = [
    60.0,
    300.0,
    600.0,
    1800.0,
    3600.0,
]


class MaxRetryExceededError(Exception):
    """최대 재시도 횟수를 초과한 경우 사용되는 예외."""


class NonRetryableEventError(Exception):
    """재시도해도 결과가 바뀌지 않는 이벤트 처리 실패.

    핸들러가 이 예외를 던지면 재시도 토픽을 건너뛰고 곧바로 DLQ 로 보낸다.
    """


@dataclass(slots=True)
class Event:
    """Kafka 메시지 한 건의 메타데이터와 페이로드.

    payload 는 JSON 디코딩이 끝난 값(dict 등)이며, 인코딩/디코딩은 KafkaEventBus 가 담당한다.
    """

    id: str
    payload: Any
    retry: int = 0
    max_retry: int = 0
    last_error: str | None = None

    def __post_init__(self) -> None:
        if self.max_retry <= 0 or self.max_retry > len(RetryDelays):
            self.max_retry = len(RetryDelays)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Event":
        return cls(
            id=str(raw.get("id", "")),
            payload=raw.get("payload"),
            retry=int(raw.get("retry", 0)),
            max_retry=int(raw.get("max_retry", 0)),
            last_error=raw.get("last_error"),
        )


@dataclass(frozen=True, slots=True)
class Topic:
    base: str

    def dlq(self) -> str:
        return f"{self.base}.dlq"

    def get_retry_topic(self, retry_count: int) -> str:
        if retry_count <= 0 or retry_count > len(RetryDelays):
            raise MaxRetryExceededError()
        return f"{self.base}.retry.{retry_count}"

    def get_retry_topics(self) -> list[str]:
        return [
            f"{self.base}.retry.{index}" for index in range(1, len(RetryDelays) + 1)
        ]

    def retry_index(self, topic_name: str) -> int:
        """retry.N 토픽이면 N, base 토픽(또는 모르는 토픽)이면 0 을 반환한다."""

        prefix = f"{self.base}.retry."
        if not topic_name.startswith(prefix):
            return 0
        suffix = topic_name[len(prefix):]
        if not suffix.isdigit():
            return 0
        index = int(suffix)
        return index if 1 <= index <= len(RetryDelays) else 0
