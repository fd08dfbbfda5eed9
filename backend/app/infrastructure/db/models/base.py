"""
Base Model Mixins for SQLModel ORM

Common timestamp and UUID fields shared by the billing tables.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware current time (UTC)."""
    return datetime.now(timezone.utc)


class TimestampMixin(SQLModel):
    """Mixin providing timestamp fields for models."""

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
        description="Record creation timestamp (UTC)"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
        description="Last update timestamp (UTC)"
    )


class UUIDMixin(SQLModel):
    """Mixin providing UUID primary key."""

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
        description="Unique identifier (UUID v4)"
    )
