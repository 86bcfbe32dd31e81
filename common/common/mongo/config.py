from __future__ import annotations

import os
from dataclasses import dataclass


MONGO_URI_ENV = "MONGO_URI"
MONGO_DB_NAME_ENV = "MONGO_DB_NAME"
MONGO_TIMEOUT_MS_ENV = "MONGO_SERVER_SELECTION_TIMEOUT_MS"


@dataclass(slots=True)
class MongoConfig:
    """MongoDB 접속 설정.

    - db_name 이 None 이면 URI 에 포함된 기본 DB 를 사용한다.
    """

    uri: str
    db_name: str | None = None
    server_selection_timeout_ms: int = 5000


def load_mongo_config() -> MongoConfig:
    """환경 변수에서 MongoDB 설정을 읽는다.

    MONGO_URI 가 없으면 애플리케이션이 바로 실패하도록 RuntimeError 를 발생시킨다.
    """

    uri = os.getenv(MONGO_URI_ENV)
    if not uri:
        raise RuntimeError(
            f"{MONGO_URI_ENV} environment variable is required for MongoDB",
        )

    db_name = os.getenv(MONGO_DB_NAME_ENV, "").strip() or None

    timeout_raw = os.getenv(MONGO_TIMEOUT_MS_ENV, "").strip()
    if not timeout_raw:
        timeout_ms = 5000
    else:
        try:
            timeout_ms = int(timeout_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{MONGO_TIMEOUT_MS_ENV} must be an integer if set, got: {timeout_raw!r}"
            ) from exc
        if timeout_ms <= 0:
            raise RuntimeError(
                f"{MONGO_TIMEOUT_MS_ENV} must be > 0, got: {timeout_ms}"
            )

    return MongoConfig(
        uri=uri,
        db_name=db_name,
        server_selection_timeout_ms=timeout_ms,
    )
