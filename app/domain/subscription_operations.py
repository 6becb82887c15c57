"""Domain operations for Subscription model."""

import uuid as uuid_pkg
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.billing import BillingEvent, BillingEventType
from app.models.subscription import Subscription, SubscriptionStatus


class SubscriptionOperations:
    """CRUD operations for Subscription model plus the billing audit log."""

    async def get_by_org(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
    ) -> Subscription | None:
        """Get subscription for an organization."""
        statement = select(Subscription).where(Subscription.organization_id == organization_id)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def create(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
        stripe_customer_id: str | None = None,
        quantity: int = 1,
    ) -> Subscription:
        """
        Create the subscription row for an organization.

        Starts as INCOMPLETE until Stripe confirms the first payment.
        """
        subscription = Subscription(
            organization_id=organization_id,
            status=SubscriptionStatus.INCOMPLETE.value,
            stripe_customer_id=stripe_customer_id,
            quantity=quantity,
        )
        db.add(subscription)
        await db.flush()
        await db.refresh(subscription)
        return subscription

    async def update(
        self,
        db: AsyncSession,
        subscription: Subscription,
        updates: dict[str, Any],
    ) -> Subscription:
        """Update a subscription. None values are skipped."""
        for field, value in updates.items():
            if value is not None:
                setattr(subscription, field, value)
        db.add(subscription)
        await db.flush()
        await db.refresh(subscription)
        return subscription

    async def log_event(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
        event_type: BillingEventType,
        previous_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        description: str | None = None,
        actor_user_id: uuid_pkg.UUID | None = None,
    ) -> BillingEvent:
        """Log a billing event for audit trail."""
        event = BillingEvent(
            organization_id=organization_id,
            event_type=event_type.value,
            previous_value=previous_value,
            new_value=new_value,
            description=description,
            actor_user_id=actor_user_id,
        )
        db.add(event)
        await db.flush()
        return event

    async def get_events(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[BillingEvent]:
        """Get billing events for an organization, newest first."""
        statement = (
            select(BillingEvent)
            .where(BillingEvent.organization_id == organization_id)
            .order_by(BillingEvent.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())


subscription_ops = SubscriptionOperations()
