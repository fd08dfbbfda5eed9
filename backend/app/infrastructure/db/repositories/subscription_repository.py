"""
Subscription Repository

Data access layer for Stripe subscription records.
Every lifecycle event is written with a PostgreSQL upsert keyed by the
Stripe subscription id.
"""

import logging
from typing import Optional

from sqlmodel import select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from app.domain.subscription import SubscriptionRecord
from app.infrastructure.db.database import DatabaseManager
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.subscription import SubscriptionRecordModel
from app.infrastructure.db.repositories.base_repository import ISubscriptionStore


logger = logging.getLogger(__name__)


def build_subscription_upsert(record: SubscriptionRecord):
    """INSERT the record or overwrite every column with the event payload."""
    now = utcnow()
    values = {
        "subscription_id": record.subscription_id,
        "customer_id": record.customer_id,
        "user_id": record.user_id,
        "status": record.status,
        "price_id": record.price_id,
        "current_period_start": record.current_period_start,
        "current_period_end": record.current_period_end,
        "cancel_at_period_end": record.cancel_at_period_end,
        "updated_at": now,
    }

    stmt = pg_insert(SubscriptionRecordModel).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["subscription_id"],
        set_={
            "customer_id": stmt.excluded.customer_id,
            "user_id": stmt.excluded.user_id,
            "status": stmt.excluded.status,
            "price_id": stmt.excluded.price_id,
            "current_period_start": stmt.excluded.current_period_start,
            "current_period_end": stmt.excluded.current_period_end,
            "cancel_at_period_end": stmt.excluded.cancel_at_period_end,
            "updated_at": now,
        },
    )


class SubscriptionRepository(ISubscriptionStore):
    """Repository for Stripe subscription records."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    async def get(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        """
        Get a subscription record by Stripe subscription ID.

        Args:
            subscription_id: Stripe subscription ID

        Returns:
            SubscriptionRecord or None
        """
        async with self._db.session() as session:
            statement = select(SubscriptionRecordModel).where(
                SubscriptionRecordModel.subscription_id == subscription_id
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()

            return self._to_domain(model) if model else None

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        async with self._db.session() as session:
            await session.execute(build_subscription_upsert(record))

        logger.info(
            f"Upserted subscription {record.subscription_id} "
            f"status={record.status} customer={record.customer_id}"
        )
        return await self.get(record.subscription_id)

    def _to_domain(self, model: SubscriptionRecordModel) -> SubscriptionRecord:
        """Convert database model to domain entity."""
        return SubscriptionRecord(
            subscription_id=model.subscription_id,
            customer_id=model.customer_id,
            user_id=model.user_id,
            status=model.status,
            price_id=model.price_id,
            current_period_start=model.current_period_start,
            current_period_end=model.current_period_end,
            cancel_at_period_end=model.cancel_at_period_end or False,
            updated_at=model.updated_at,
        )
