"""
Order Repository

Data access layer for completed checkout orders (stripe_user_orders).
"""

import logging
from typing import List
from uuid import uuid4

from sqlmodel import select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from app.domain.subscription import OrderRecord
from app.infrastructure.db.database import DatabaseManager
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.order import OrderModel
from app.infrastructure.db.repositories.base_repository import IOrderStore


logger = logging.getLogger(__name__)


def build_order_insert(order: OrderRecord):
    """INSERT the order; ON CONFLICT (order_id) DO NOTHING."""
    stmt = pg_insert(OrderModel).values(
        id=uuid4(),
        user_id=order.user_id,
        order_id=order.order_id,
        payment_intent_id=order.payment_intent_id,
        amount_total=order.amount_total,
        currency=order.currency,
        payment_status=order.payment_status,
        order_date=order.order_date or utcnow(),
    )
    return stmt.on_conflict_do_nothing(index_elements=["order_id"]).returning(OrderModel.id)


class OrderRepository(IOrderStore):
    """Repository for order records. Rows are never updated or deleted."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    async def insert_once(self, order: OrderRecord) -> bool:
        """
        Record a completed checkout.

        Returns:
            True if a row was written, False if the order already existed
        """
        async with self._db.session() as session:
            result = await session.execute(build_order_insert(order))
            inserted = result.scalar_one_or_none() is not None

        if inserted:
            logger.info(f"Recorded order {order.order_id} for user {order.user_id}")
        else:
            logger.info(f"Order {order.order_id} already recorded, skipping")
        return inserted

    async def list_for_user(self, user_id: str, limit: int = 100) -> List[OrderRecord]:
        async with self._db.session() as session:
            statement = (
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.order_date.desc())
                .limit(limit)
            )
            result = await session.execute(statement)
            return [self._to_domain(model) for model in result.scalars().all()]

    def _to_domain(self, model: OrderModel) -> OrderRecord:
        """Convert database model to domain entity."""
        return OrderRecord(
            id=str(model.id),
            user_id=model.user_id,
            order_id=model.order_id,
            payment_intent_id=model.payment_intent_id,
            amount_total=model.amount_total,
            currency=model.currency,
            payment_status=model.payment_status,
            order_date=model.order_date,
        )
