"""Keep an organization's Stripe subscription in step with its member count."""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing import resolve_tier
from app.core.locks import acquire_xact_lock, lock_key
from app.domain.org_member_operations import org_member_ops
from app.domain.subscription_operations import subscription_ops
from app.models.billing import BillingEventType
from app.models.subscription import ENDED_STATUSES
from app.services.line_items import LineItemChange
from app.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)

SEAT_LOCK_NAMESPACE = "seat-billing"


async def lock_seats(db: AsyncSession, organization_id: uuid_pkg.UUID) -> None:
    """Serialize seat and ownership changes for an organization until the transaction ends."""
    await acquire_xact_lock(db, lock_key(SEAT_LOCK_NAMESPACE, organization_id))


@dataclass
class SeatSyncResult:
    """Outcome of a seat synchronization that changed billing."""

    organization_id: uuid_pkg.UUID
    previous_seats: int
    new_seats: int
    previous_tier: str
    new_tier: str
    changes: list[LineItemChange]

    @property
    def tier_changed(self) -> bool:
        return self.previous_tier != self.new_tier


async def sync_seat_count(
    db: AsyncSession,
    organization_id: uuid_pkg.UUID,
    actor_user_id: uuid_pkg.UUID | None = None,
) -> SeatSyncResult | None:
    """
    Bill the organization's current member count to Stripe.

    Call after adding or removing members (and after a checkout is
    confirmed), inside the same transaction. Holds a per-organization
    advisory lock until that transaction ends, so concurrent seat changes
    are billed one after another against fresh counts.

    Returns None when nothing was billed: there is no Stripe subscription,
    it has ended, or the billed quantity already matches. If Stripe reports
    the subscription as ended, the local status is updated to match.

    Any pricing or Stripe error propagates; the caller's transaction must
    roll back so the membership change is not kept without being billed.
    """
    await lock_seats(db, organization_id)

    subscription = await subscription_ops.get_by_org(db, organization_id)
    if not subscription or not subscription.stripe_subscription_id:
        return None
    if subscription.status in ENDED_STATUSES:
        return None

    seats = await org_member_ops.count_by_org(db, organization_id)
    previous_seats = subscription.quantity
    if seats == previous_seats:
        return None

    previous_tier = resolve_tier(previous_seats).label
    new_tier = resolve_tier(seats).label

    update = stripe_service.update_seat_quantity(subscription.stripe_subscription_id, seats)

    if not update.applied:
        await subscription_ops.update(db, subscription, {"status": update.status})
        logger.warning(
            f"Subscription for org {organization_id} is {update.status} in Stripe; "
            f"seats left unbilled at {seats}"
        )
        return None

    await subscription_ops.update(db, subscription, {"quantity": seats})

    await subscription_ops.log_event(
        db,
        organization_id=organization_id,
        event_type=BillingEventType.SEATS_CHANGED,
        previous_value={"seats": previous_seats, "tier": previous_tier},
        new_value={"seats": seats, "tier": new_tier},
        description=f"Seats changed from {previous_seats} to {seats}",
        actor_user_id=actor_user_id,
    )

    logger.info(
        f"Synced seats for org {organization_id}: {previous_seats} -> {seats} "
        f"({previous_tier} -> {new_tier})"
    )

    return SeatSyncResult(
        organization_id=organization_id,
        previous_seats=previous_seats,
        new_seats=seats,
        previous_tier=previous_tier,
        new_tier=new_tier,
        changes=update.changes,
    )
