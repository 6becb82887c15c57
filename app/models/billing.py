"""Billing event audit log."""

import uuid as uuid_pkg
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import Column, DateTime, ForeignKey, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.organization import Organization
    from app.models.user import User


class BillingEventType(str, Enum):
    """Types of billing events for audit logging."""

    CHECKOUT_STARTED = "checkout.started"
    SEATS_CHANGED = "seats.changed"
    CANCEL_SCHEDULED = "subscription.cancel_scheduled"
    REACTIVATED = "subscription.reactivated"


class BillingEvent(SQLModel, table=True):
    """
    Billing event audit log.

    Tracks every billing-affecting change (seat counts, cancellation) with
    before/after values and the user who triggered it.
    """

    __tablename__ = "billing_events"

    id: uuid_pkg.UUID = Field(
        default_factory=uuid_pkg.uuid4,
        primary_key=True,
        nullable=False,
        sa_column_kwargs={"server_default": text("gen_random_uuid()")},
    )
    organization_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )

    event_type: str = Field(
        sa_column=Column(String(50), nullable=False, index=True),
    )
    description: str | None = Field(default=None, max_length=500, nullable=True)

    # Change tracking
    previous_value: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSONB, nullable=True),
    )
    new_value: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSONB, nullable=True),
    )

    # Actor (which user triggered this, if applicable)
    actor_user_id: uuid_pkg.UUID | None = Field(
        default=None,
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )

    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )

    # Relationships
    organization: Optional["Organization"] = Relationship()
    actor: Optional["User"] = Relationship()
