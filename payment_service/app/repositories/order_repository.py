"""주문 레포지토리 구현체 (MongoDB).

- payment_orders: 주문 도큐먼트 (_id = 게이트웨이 승인 id)
- users: 온보딩 쪽이 소유하는 유저 도큐먼트. 여기서는 credits 필드 $inc 만 한다.

정산은 두 컬렉션에 걸친 멀티 도큐먼트 트랜잭션이므로 replica set 이 필요하다.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pymongo import ASCENDING, IndexModel
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..config import StoreConfig
from ..exceptions import PersistenceError
from ..models.order import PaymentOrder, SettleOutcome
from .documents.order_document import OrderDocument
from .interfaces import OrderRepositoryInterface


logger = logging.getLogger(__name__)


class _OrderAlreadyComplete(Exception):
    """트랜잭션을 중단시키기 위한 내부 신호: 주문이 이미 정산됨."""


class _UserAccountMissing(Exception):
    """트랜잭션을 중단시키기 위한 내부 신호: 잔액을 올릴 유저가 없음."""


def ensure_indexes(database: Database, store_config: StoreConfig) -> None:
    """payment_orders 인덱스를 생성한다. 중복 생성해도 MongoDB 가 무시한다."""

    database[store_config.orders_collection].create_indexes(
        [
            IndexModel([("owner_id", ASCENDING)], name="idx_owner_id"),
            IndexModel(
                [("complete", ASCENDING), ("created_at", ASCENDING)],
                name="idx_complete_created_at",
            ),
        ]
    )


class OrderRepository(OrderRepositoryInterface):
    """payment_orders / users 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database, store_config: StoreConfig) -> None:
        self._db = database
        self._orders = database[store_config.orders_collection]
        self._users = database[store_config.users_collection]

    def insert(self, order: PaymentOrder) -> PaymentOrder:
        payload = OrderDocument.from_domain(order).to_mongo_record()
        try:
            self._orders.insert_one(payload)
        except DuplicateKeyError as exc:
            raise PersistenceError(
                f"order already exists (order_id={order.order_id})",
                reason="order_exists",
            ) from exc
        except PyMongoError as exc:
            raise PersistenceError(
                f"failed to insert order (order_id={order.order_id}): {exc}"
            ) from exc
        return order

    def find_by_id(self, order_id: str) -> PaymentOrder | None:
        try:
            doc = self._orders.find_one({"_id": order_id})
        except PyMongoError as exc:
            raise PersistenceError(
                f"failed to load order (order_id={order_id}): {exc}"
            ) from exc
        if not doc:
            return None
        return OrderDocument.model_validate(doc).to_domain()

    def update_if_owner(
        self, order_id: str, owner_id: str, credits: int, amount: int
    ) -> bool:
        now = datetime.now(timezone.utc)
        try:
            result = self._orders.update_one(
                {"_id": order_id, "owner_id": owner_id, "complete": False},
                {"$set": {"credits": credits, "amount": amount, "updated_at": now}},
            )
        except PyMongoError as exc:
            raise PersistenceError(
                f"failed to update order (order_id={order_id}): {exc}"
            ) from exc
        # 같은 값으로 다시 갱신해도 updated_at 이 바뀌므로 matched 로 판단한다.
        return result.matched_count == 1

    def delete_if_owner(self, order_id: str, owner_id: str) -> bool:
        try:
            result = self._orders.delete_one(
                {"_id": order_id, "owner_id": owner_id, "complete": False}
            )
        except PyMongoError as exc:
            raise PersistenceError(
                f"failed to delete order (order_id={order_id}): {exc}"
            ) from exc
        return result.deleted_count == 1

    def settle(self, order_id: str, user_id: str, credits: int) -> SettleOutcome:
        now = datetime.now(timezone.utc)

        def _apply(session: ClientSession) -> None:
            # (a) 유저 잔액 증가
            user_result = self._users.update_one(
                {"user_id": user_id},
                {"$inc": {"credits": credits}},
                session=session,
            )
            if user_result.matched_count != 1:
                raise _UserAccountMissing(user_id)

            # (b) 주문 완료 표시. complete=False 조건이 동시 중복 정산을 막는다.
            order_result = self._orders.update_one(
                {"_id": order_id, "complete": False},
                {"$set": {"complete": True, "updated_at": now}},
                session=session,
            )
            if order_result.matched_count != 1:
                raise _OrderAlreadyComplete(order_id)

        try:
            with self._db.client.start_session() as session:
                session.with_transaction(_apply)
        except _OrderAlreadyComplete:
            logger.info(
                "settlement transaction aborted, order already complete (order_id=%s)",
                order_id,
            )
            return SettleOutcome.ALREADY_COMPLETE
        except _UserAccountMissing as exc:
            raise PersistenceError(
                f"user account not found for settlement (user_id={user_id})",
                reason="user_account_missing",
            ) from exc
        except PyMongoError as exc:
            raise PersistenceError(
                f"settlement transaction failed (order_id={order_id}): {exc}",
                reason="transaction_aborted",
            ) from exc

        return SettleOutcome.APPLIED
