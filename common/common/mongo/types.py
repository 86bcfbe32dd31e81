from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


def ensure_utc_datetime(value: datetime) -> datetime:
    """datetime 값을 UTC 기준으로 정규화한다.

    pymongo 는 기본 설정에서 tz 정보가 없는 datetime 을 돌려주므로 UTC 로 간주한다.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


MongoDateTime = Annotated[datetime, BeforeValidator(ensure_utc_datetime)]


class BaseDocument(BaseModel):
    """문자열 _id 를 쓰는 MongoDB 도큐먼트 공통 베이스.

    - 외부 시스템이 발급한 식별자(예: 결제 게이트웨이 id)를 그대로 _id 로 사용한다.
    - alias 기반 직렬화로 id <-> _id 를 맞춘다.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    created_at: MongoDateTime
    updated_at: MongoDateTime

    def to_mongo_record(self) -> dict[str, Any]:
        """MongoDB 저장용 dict 로 직렬화한다 (by_alias, None 제외)."""

        return self.model_dump(by_alias=True, exclude_none=True)
