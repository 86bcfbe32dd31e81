from __future__ import annotations

import logging

from pymongo import MongoClient
from pymongo.database import Database

from .config import MongoConfig


logger = logging.getLogger(__name__)


def create_client(config: MongoConfig) -> MongoClient:
    """MongoClient 를 생성하고 ping 으로 연결을 검증한다.

    - 멀티 도큐먼트 트랜잭션을 사용하므로 replica set(또는 sharded cluster) 배포를 전제로 한다.
    - 연결에 실패하면 클라이언트를 닫고 RuntimeError 를 발생시킨다.
    """

    client: MongoClient = MongoClient(
        config.uri,
        serverSelectionTimeoutMS=config.server_selection_timeout_ms,
    )

    try:
        client.admin.command("ping")
    except Exception as exc:  # noqa: BLE001
        client.close()
        raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

    return client


def resolve_database(client: MongoClient, config: MongoConfig) -> Database:
    """사용할 Database 를 결정한다.

    MONGO_DB_NAME 을 우선 사용하고, 없으면 URI 의 기본 DB 를 사용한다.
    """

    try:
        if config.db_name:
            db = client[config.db_name]
        else:
            db = client.get_default_database()
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
        ) from exc

    logger.info("MongoDB connected (db=%s)", db.name)
    return db
