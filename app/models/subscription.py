"""Subscription model - organization seat billing state."""

import uuid as uuid_pkg
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Column, DateTime, ForeignKey, String, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.organization import Organization


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states (mirrors Stripe's subscription statuses)."""

    INCOMPLETE = "incomplete"  # Checkout started, first payment pending
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"


# Terminal states: Stripe rejects item changes on these subscriptions
ENDED_STATUSES = frozenset(
    {SubscriptionStatus.CANCELED.value, SubscriptionStatus.INCOMPLETE_EXPIRED.value}
)


class Subscription(SQLModel, table=True):
    """
    Subscription model - tracks an organization's seat billing.

    Each organization has at most one subscription. The row is created when
    checkout starts; `quantity` is the seat count last billed to Stripe and is
    what seat synchronization compares the live member count against.
    """

    __tablename__ = "subscriptions"

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
            unique=True,
        ),
    )

    status: str = Field(
        default=SubscriptionStatus.INCOMPLETE.value,
        sa_column=Column(
            String(20),
            nullable=False,
            server_default=SubscriptionStatus.INCOMPLETE.value,
        ),
    )

    # Seats last billed to Stripe
    quantity: int = Field(
        default=1,
        nullable=False,
        sa_column_kwargs={"server_default": text("1")},
    )

    # Billing period
    current_period_end: datetime | None = Field(  # type: ignore[call-overload]
        default=None, nullable=True, sa_type=DateTime(timezone=True)
    )
    cancel_at_period_end: bool = Field(
        default=False,
        nullable=False,
        sa_column_kwargs={"server_default": text("false")},
    )
    canceled_at: datetime | None = Field(  # type: ignore[call-overload]
        default=None, nullable=True, sa_type=DateTime(timezone=True)
    )
    trial_end: datetime | None = Field(  # type: ignore[call-overload]
        default=None, nullable=True, sa_type=DateTime(timezone=True)
    )

    # Stripe references (subscription ID is set once checkout completes)
    stripe_customer_id: str | None = Field(default=None, max_length=255, nullable=True, index=True)
    stripe_subscription_id: str | None = Field(
        default=None, max_length=255, nullable=True, unique=True
    )

    # Timestamps
    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )
    updated_at: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": text("now()")},
    )

    # Relationships
    organization: Optional["Organization"] = Relationship(back_populates="subscription")

    @property
    def is_active(self) -> bool:
        """Check if Stripe is currently billing this subscription."""
        return bool(self.stripe_subscription_id) and self.status in (
            SubscriptionStatus.ACTIVE.value,
            SubscriptionStatus.TRIALING.value,
            SubscriptionStatus.PAST_DUE.value,
        )
