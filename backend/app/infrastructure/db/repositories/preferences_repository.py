"""
Preferences Repository

Data access layer for the user_preferences table.
All writes are PostgreSQL upserts that only touch the caller's columns.
"""

import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from sqlmodel import select
from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from app.domain.subscription import PlanTier, UserPreferences
from app.infrastructure.db.database import DatabaseManager
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.user_preferences import UserPreferencesModel
from app.infrastructure.db.repositories.base_repository import (
    BILLING_COLUMNS,
    DISPLAY_COLUMNS,
    IPreferencesStore,
    check_columns,
)
from app.infrastructure.realtime.change_feed import PreferencesChangeFeed


logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def build_merge_upsert(
    user_id: str,
    values: Mapping[str, Any],
    defaults: Mapping[str, Any],
):
    """
    INSERT the row with defaults, or on conflict SET only `values` columns.

    Columns not named in `values` keep whatever another writer stored.
    """
    now = utcnow()
    columns = {key: _plain(value) for key, value in values.items()}

    insert_values: Dict[str, Any] = {
        "user_id": user_id,
        "plan_tier": PlanTier.FREE.value,
        **defaults,
        **columns,
        "created_at": now,
        "updated_at": now,
    }

    stmt = pg_insert(UserPreferencesModel).values(**insert_values)
    set_ = {column: stmt.excluded[column] for column in columns}
    set_["updated_at"] = now
    return stmt.on_conflict_do_update(index_elements=["user_id"], set_=set_)


def build_customer_release(user_id: str, customer_id: str):
    """
    UPDATE that detaches a Stripe customer from every row but `user_id`.

    Stripe customers are found by email, so a customer can move to another
    account. stripe_customer_id is unique; the previous holder must let go
    before the new owner's row is written.
    """
    return (
        update(UserPreferencesModel)
        .where(UserPreferencesModel.stripe_customer_id == customer_id)
        .where(UserPreferencesModel.user_id != user_id)
        .values(stripe_customer_id=None, updated_at=utcnow())
        .returning(UserPreferencesModel.user_id)
    )


class PreferencesRepository(IPreferencesStore):
    """
    Repository for user preferences.

    Publishes every committed write to the change feed so SSE subscribers
    converge without polling.
    """

    def __init__(
        self,
        db: DatabaseManager,
        change_feed: Optional[PreferencesChangeFeed] = None,
        default_currency: str = "₹",
        default_locale: str = "en-IN",
    ):
        self._db = db
        self._change_feed = change_feed
        self._defaults = {"currency": default_currency, "locale": default_locale}

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get(self, user_id: str) -> Optional[UserPreferences]:
        async with self._db.session() as session:
            statement = select(UserPreferencesModel).where(
                UserPreferencesModel.user_id == user_id
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()

            return self._to_domain(model) if model else None

    async def get_by_stripe_customer_id(
        self,
        customer_id: str,
    ) -> Optional[UserPreferences]:
        async with self._db.session() as session:
            statement = select(UserPreferencesModel).where(
                UserPreferencesModel.stripe_customer_id == customer_id
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()

            return self._to_domain(model) if model else None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def get_or_create(self, user_id: str) -> UserPreferences:
        """
        Get existing preferences or create the default free-tier row.

        Uses ON CONFLICT DO NOTHING so concurrent first reads are safe.
        """
        existing = await self.get(user_id)
        if existing:
            return existing

        async with self._db.session() as session:
            now = utcnow()
            stmt = pg_insert(UserPreferencesModel).values(
                user_id=user_id,
                plan_tier=PlanTier.FREE.value,
                created_at=now,
                updated_at=now,
                **self._defaults,
            ).on_conflict_do_nothing(index_elements=["user_id"])
            await session.execute(stmt)

        logger.info(f"Initialized preferences for user {user_id}")
        return await self.get(user_id)

    async def upsert_billing(
        self,
        user_id: str,
        values: Mapping[str, Any],
    ) -> UserPreferences:
        """
        Merge billing columns (plan_tier, stripe ids) into the user's row.

        Args:
            user_id: Internal user ID
            values: Billing columns to set; None clears a column

        Returns:
            The row as stored after the write
        """
        check_columns(values, BILLING_COLUMNS)
        return await self._merge(user_id, values)

    async def update_display(
        self,
        user_id: str,
        values: Mapping[str, Any],
    ) -> UserPreferences:
        """Merge user-editable columns (currency, locale) into the user's row."""
        check_columns(values, DISPLAY_COLUMNS)
        if not values:
            return await self.get_or_create(user_id)
        return await self._merge(user_id, values)

    async def _merge(self, user_id: str, values: Mapping[str, Any]) -> UserPreferences:
        released = []
        customer_id = values.get("stripe_customer_id")

        async with self._db.session() as session:
            if customer_id:
                result = await session.execute(build_customer_release(user_id, customer_id))
                released = list(result.scalars().all())
            await session.execute(build_merge_upsert(user_id, values, self._defaults))

        for previous in released:
            logger.warning(
                f"Stripe customer {customer_id} moved from user {previous} to user {user_id}"
            )
            self._publish(await self.get(previous))

        preferences = await self.get(user_id)
        logger.info(f"Updated preferences {sorted(values)} for user {user_id}")
        self._publish(preferences)

        return preferences

    def _publish(self, preferences: Optional[UserPreferences]) -> None:
        if self._change_feed is not None and preferences is not None:
            self._change_feed.publish(preferences)

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: UserPreferencesModel) -> UserPreferences:
        """Convert database model to domain entity."""
        return UserPreferences(
            user_id=model.user_id,
            plan_tier=PlanTier(model.plan_tier) if model.plan_tier else PlanTier.FREE,
            currency=model.currency,
            locale=model.locale,
            stripe_customer_id=model.stripe_customer_id,
            stripe_subscription_id=model.stripe_subscription_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
