"""Shared helpers for organization and billing endpoints."""

import logging
import uuid as uuid_pkg

from sqlalchemy.ext.asyncio import AsyncSession
from stripe import StripeError

from app.api.v1.organizations.schemas import MemberResponse, SeatChangeInfo
from app.config.pricing import PricingError
from app.core.exceptions import BillingUnavailableError, PaymentProviderError
from app.models.organization import OrganizationMember
from app.models.user import User
from app.services.seat_billing import sync_seat_count

logger = logging.getLogger(__name__)


def member_response(member: OrganizationMember, user: User | None) -> MemberResponse:
    return MemberResponse(
        id=str(member.id),
        user_id=str(member.user_id),
        email=(user.email if user else None) or "",
        display_name=user.display_name if user else None,
        role=member.role,
        joined_at=member.joined_at.isoformat(),
        invited_by=str(member.invited_by) if member.invited_by else None,
        invited_at=member.invited_at.isoformat() if member.invited_at else None,
    )


async def sync_seats(
    db: AsyncSession,
    org_id: uuid_pkg.UUID,
    actor: User,
) -> SeatChangeInfo | None:
    """
    Re-bill the organization's seats, turning billing failures into HTTP errors.

    The request session rolls back on either error, so the change that
    triggered the sync is not committed unbilled.
    """
    try:
        result = await sync_seat_count(db, org_id, actor_user_id=actor.id)
    except PricingError as e:
        logger.error(f"Seat pricing failed for org {org_id}: {e}")
        raise BillingUnavailableError("Billing price configuration incomplete") from e
    except StripeError as e:
        raise PaymentProviderError("Could not update billing for this seat change") from e

    if result is None:
        return None
    return SeatChangeInfo(
        previous_seats=result.previous_seats,
        new_seats=result.new_seats,
        previous_tier=result.previous_tier,
        new_tier=result.new_tier,
    )
