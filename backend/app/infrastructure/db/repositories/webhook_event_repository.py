"""
Webhook Event Repository

DB-backed record of processed Stripe event ids (survives restarts).
"""

from sqlmodel import select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from app.infrastructure.db.database import DatabaseManager
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.processed_event import ProcessedWebhookEventModel
from app.infrastructure.db.repositories.base_repository import IWebhookEventLedger


class WebhookEventRepository(IWebhookEventLedger):
    """Processed-event ledger backed by processed_webhook_events."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    async def is_processed(self, event_id: str) -> bool:
        """Check if a webhook event has already been processed."""
        async with self._db.session() as session:
            result = await session.execute(
                select(ProcessedWebhookEventModel.event_id).where(
                    ProcessedWebhookEventModel.event_id == event_id
                )
            )
            return result.scalar_one_or_none() is not None

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        """Record a processed webhook event."""
        async with self._db.session() as session:
            await session.execute(
                pg_insert(ProcessedWebhookEventModel)
                .values(
                    event_id=event_id,
                    event_type=event_type,
                    processed_at=utcnow(),
                )
                .on_conflict_do_nothing(index_elements=["event_id"])
            )
