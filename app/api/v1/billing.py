"""Billing API endpoints - seat pricing and subscription management via Stripe."""

import logging
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel
from stripe import StripeError

from app.api.deps import CurrentUser, DbSession, require_org_access
from app.api.v1.organizations.helpers import sync_seats
from app.config import settings
from app.config.pricing import (
    PRICING,
    InvalidSeatCount,
    PriceConfigurationMissing,
    format_price,
    get_price_catalog,
    get_pricing_summary,
    resolve_tier,
    seat_breakdown,
)
from app.core.exceptions import (
    BillingUnavailableError,
    ConflictError,
    NotFoundError,
    PaymentProviderError,
    ValidationError,
)
from app.domain.org_member_operations import org_member_ops
from app.domain.subscription_operations import subscription_ops
from app.models.billing import BillingEvent, BillingEventType
from app.models.organization import MemberRole
from app.models.subscription import Subscription
from app.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


# ─────────────────────────────────────────────────────────────────────────────
# Request/Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


class TierInfo(BaseModel):
    """Public information about one pricing tier."""

    label: str
    min_seats: int
    max_seats: int | None
    price_per_paid_seat: int  # cents
    range: str
    price_display: str
    monthly_min: str
    monthly_max: str


class PricingResponse(BaseModel):
    """Complete public pricing table."""

    flat_fee: int  # cents
    flat_fee_display: str
    free_seats_threshold: int
    tiers: list[TierInfo]


class QuoteLineItem(BaseModel):
    """Preview of one subscription line item (no Stripe IDs)."""

    label: str
    quantity: int
    unit_amount: int  # cents


class QuoteResponse(BaseModel):
    """Monthly cost breakdown for a seat count."""

    total_seats: int
    free_seats: int
    paid_seats: int
    tier: str
    price_per_paid_seat: int
    flat_fee: int
    variable_cost: int
    total_cost: int
    total_display: str
    line_items: list[QuoteLineItem]


class SubscriptionInfo(BaseModel):
    """Stored subscription state."""

    status: str
    quantity: int
    current_period_end: str | None
    cancel_at_period_end: bool
    canceled_at: str | None
    trial_end: str | None
    has_stripe_subscription: bool


class SubscriptionDetailsResponse(BaseModel):
    """Subscription plus what the organization's current seats cost."""

    organization_id: str
    member_count: int
    subscription: SubscriptionInfo | None
    breakdown: QuoteResponse


class CheckoutRequest(BaseModel):
    """Request to create a checkout session."""

    organization_id: UUID
    seats: int | None = None  # Defaults to the current member count


class CheckoutResponse(BaseModel):
    checkout_url: str


class ConfirmCheckoutRequest(BaseModel):
    """Checkout session returned to the success URL."""

    organization_id: UUID
    session_id: str


class OrganizationRequest(BaseModel):
    """Request targeting an organization's subscription (portal, cancel, reactivate)."""

    organization_id: UUID


class PortalResponse(BaseModel):
    portal_url: str


class CancelResponse(BaseModel):
    """Response after scheduling cancellation."""

    message: str
    cancel_at: str  # ISO date when subscription ends


class MessageResponse(BaseModel):
    message: str


class BillingEventResponse(BaseModel):
    """One entry in an organization's billing history."""

    id: str
    event_type: str
    description: str | None
    previous_value: dict | None
    new_value: dict | None
    actor_user_id: str | None
    created_at: str


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _quote(total_seats: int) -> QuoteResponse:
    """Build a cost breakdown; raises InvalidSeatCount for negative counts."""
    breakdown = seat_breakdown(total_seats)
    line_items = [QuoteLineItem(label="Base fee", quantity=1, unit_amount=breakdown.flat_fee)]
    if breakdown.paid_seats > 0 and breakdown.price_per_paid_seat > 0:
        line_items.append(
            QuoteLineItem(
                label=f"{breakdown.tier_label} seats",
                quantity=breakdown.paid_seats,
                unit_amount=breakdown.price_per_paid_seat,
            )
        )

    return QuoteResponse(
        total_seats=breakdown.total_seats,
        free_seats=breakdown.free_seats,
        paid_seats=breakdown.paid_seats,
        tier=breakdown.tier_label,
        price_per_paid_seat=breakdown.price_per_paid_seat,
        flat_fee=breakdown.flat_fee,
        variable_cost=breakdown.variable_cost,
        total_cost=breakdown.total_cost,
        total_display=format_price(breakdown.total_cost),
        line_items=line_items,
    )


def _require_billing() -> None:
    """Fail with 503 unless Stripe and every price ID are configured."""
    if not settings.stripe_enabled:
        raise BillingUnavailableError("Payments not configured")
    try:
        get_price_catalog()
    except PriceConfigurationMissing as e:
        logger.error(f"Billing price configuration incomplete: {e}")
        raise BillingUnavailableError("Billing price configuration incomplete") from e


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _subscription_info(subscription: Subscription) -> SubscriptionInfo:
    return SubscriptionInfo(
        status=subscription.status,
        quantity=subscription.quantity,
        current_period_end=_iso(subscription.current_period_end),
        cancel_at_period_end=subscription.cancel_at_period_end,
        canceled_at=_iso(subscription.canceled_at),
        trial_end=_iso(subscription.trial_end),
        has_stripe_subscription=bool(subscription.stripe_subscription_id),
    )


def _event_response(event: BillingEvent) -> BillingEventResponse:
    return BillingEventResponse(
        id=str(event.id),
        event_type=event.event_type,
        description=event.description,
        previous_value=event.previous_value,
        new_value=event.new_value,
        actor_user_id=str(event.actor_user_id) if event.actor_user_id else None,
        created_at=event.created_at.isoformat(),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Public Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/pricing", response_model=PricingResponse)
async def get_pricing() -> PricingResponse:
    """
    Get the seat pricing table (public endpoint).

    No authentication required.
    """
    summaries = get_pricing_summary()
    return PricingResponse(
        flat_fee=PRICING.flat_fee_cents,
        flat_fee_display=format_price(PRICING.flat_fee_cents),
        free_seats_threshold=PRICING.free_seats_threshold,
        tiers=[
            TierInfo(
                label=tier.label,
                min_seats=tier.min_seats,
                max_seats=tier.max_seats,
                price_per_paid_seat=tier.price_per_paid_seat,
                range=summary.range,
                price_display=summary.price_per_paid_seat,
                monthly_min=summary.monthly_min,
                monthly_max=summary.monthly_max,
            )
            for tier, summary in zip(PRICING.tiers, summaries)
        ],
    )


@router.get("/quote", response_model=QuoteResponse)
async def get_quote(seats: int) -> QuoteResponse:
    """Get the monthly cost breakdown for a seat count (public endpoint)."""
    try:
        return _quote(seats)
    except InvalidSeatCount as e:
        raise ValidationError(str(e)) from e


# ─────────────────────────────────────────────────────────────────────────────
# Authenticated Endpoints
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/subscription/{organization_id}", response_model=SubscriptionDetailsResponse)
async def get_subscription(
    organization_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> SubscriptionDetailsResponse:
    """
    Get subscription details for an organization.

    User must be a member of the organization. `subscription` is null until
    the owner starts checkout.
    """
    await require_org_access(db, organization_id, current_user)

    member_count = await org_member_ops.count_by_org(db, organization_id)
    subscription = await subscription_ops.get_by_org(db, organization_id)

    return SubscriptionDetailsResponse(
        organization_id=str(organization_id),
        member_count=member_count,
        subscription=_subscription_info(subscription) if subscription else None,
        breakdown=_quote(member_count),
    )


@router.get("/events/{organization_id}", response_model=list[BillingEventResponse])
async def list_billing_events(
    organization_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
    skip: int = 0,
    limit: int = Query(50, ge=1, le=200),
) -> list[BillingEventResponse]:
    """
    Get an organization's billing history, newest first.

    Requires admin or owner role.
    """
    await require_org_access(db, organization_id, current_user, min_role=MemberRole.ADMIN)

    events = await subscription_ops.get_events(db, organization_id, skip=skip, limit=limit)
    return [_event_response(event) for event in events]


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> CheckoutResponse:
    """
    Create a Stripe Checkout session for a seat subscription.

    Owner only. Seats default to the organization's member count and can
    never be fewer than it. Returns a URL to redirect the user to Stripe
    Checkout.
    """
    _require_billing()

    access = await require_org_access(
        db, request.organization_id, current_user, min_role=MemberRole.OWNER
    )
    org = access.organization

    member_count = await org_member_ops.count_by_org(db, org.id)
    seats = request.seats if request.seats is not None else member_count
    min_seats = max(1, member_count)
    if seats < min_seats:
        raise ValidationError(f"Checkout must cover every member ({min_seats} seats)")

    subscription = await subscription_ops.get_by_org(db, org.id)
    if subscription and subscription.is_active:
        raise ConflictError("Organization already has an active subscription")

    try:
        if subscription is None:
            customer_id = stripe_service.create_customer(org, current_user)
            subscription = await subscription_ops.create(
                db, org.id, stripe_customer_id=customer_id, quantity=seats
            )
        else:
            customer_id = subscription.stripe_customer_id or stripe_service.create_customer(
                org, current_user
            )
            await subscription_ops.update(
                db, subscription, {"stripe_customer_id": customer_id, "quantity": seats}
            )
        # Keep the customer even if the session call below fails
        await db.commit()

        checkout_url = stripe_service.create_checkout_session(
            customer_id=customer_id,
            organization_id=org.id,
            user_id=current_user.id,
            total_seats=seats,
            success_url=(
                f"{settings.frontend_url}/settings/billing?success=true"
                "&session_id={CHECKOUT_SESSION_ID}"
            ),
            cancel_url=f"{settings.frontend_url}/settings/billing?canceled=true",
        )
    except StripeError as e:
        raise PaymentProviderError() from e

    await subscription_ops.log_event(
        db,
        organization_id=org.id,
        event_type=BillingEventType.CHECKOUT_STARTED,
        new_value={"seats": seats, "tier": resolve_tier(seats).label},
        actor_user_id=current_user.id,
        description=f"Checkout started for {seats} seats",
    )

    return CheckoutResponse(checkout_url=checkout_url)


@router.post("/checkout/confirm", response_model=SubscriptionInfo)
async def confirm_checkout(
    request: ConfirmCheckoutRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> SubscriptionInfo:
    """
    Record the subscription created by a completed Checkout session.

    Owner only. Called by the frontend when Stripe redirects back to the
    success URL with the session ID. Members added while checkout was open
    are billed before returning.
    """
    _require_billing()
    await require_org_access(db, request.organization_id, current_user, min_role=MemberRole.OWNER)

    subscription = await subscription_ops.get_by_org(db, request.organization_id)
    if not subscription:
        raise NotFoundError("Subscription")

    try:
        result = stripe_service.get_checkout_subscription(request.session_id)
    except StripeError as e:
        raise PaymentProviderError() from e
    except ValueError as e:
        raise ValidationError(str(e)) from e

    if result.organization_id != str(request.organization_id):
        raise ValidationError("Checkout session belongs to another organization")

    subscription = await subscription_ops.update(
        db,
        subscription,
        {
            "stripe_subscription_id": result.stripe_subscription_id,
            "stripe_customer_id": result.stripe_customer_id,
            "status": result.status,
            "cancel_at_period_end": result.cancel_at_period_end,
            "current_period_end": result.current_period_end,
            "trial_end": result.trial_end,
        },
    )

    logger.info(
        f"Confirmed subscription {result.stripe_subscription_id} "
        f"for org {request.organization_id} ({result.status})"
    )

    # Members may have joined while checkout was open
    await sync_seats(db, request.organization_id, current_user)

    return _subscription_info(subscription)


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    request: OrganizationRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> PortalResponse:
    """
    Create a Stripe Customer Portal session for self-service billing.

    Owner only. Returns a URL to redirect the user to Stripe Portal.
    """
    if not settings.stripe_enabled:
        raise BillingUnavailableError("Payments not configured")

    await require_org_access(db, request.organization_id, current_user, min_role=MemberRole.OWNER)

    subscription = await subscription_ops.get_by_org(db, request.organization_id)
    if not subscription or not subscription.stripe_customer_id:
        raise ValidationError("No Stripe customer - subscribe first")

    try:
        portal_url = stripe_service.create_portal_session(
            customer_id=subscription.stripe_customer_id,
            return_url=f"{settings.frontend_url}/settings/billing",
        )
    except StripeError as e:
        raise PaymentProviderError() from e

    return PortalResponse(portal_url=portal_url)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_subscription(
    request: OrganizationRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> CancelResponse:
    """
    Cancel a subscription at the end of the current billing period.

    Owner only. The subscription stays active until the period ends.
    """
    if not settings.stripe_enabled:
        raise BillingUnavailableError("Payments not configured")

    await require_org_access(db, request.organization_id, current_user, min_role=MemberRole.OWNER)

    subscription = await subscription_ops.get_by_org(db, request.organization_id)
    if not subscription:
        raise NotFoundError("Subscription")
    if subscription.cancel_at_period_end:
        raise ValidationError("Subscription is already scheduled for cancellation")
    if not subscription.stripe_subscription_id:
        raise ValidationError("No active Stripe subscription to cancel")

    try:
        stripe_service.cancel_subscription(subscription.stripe_subscription_id)
    except StripeError as e:
        raise PaymentProviderError() from e

    await subscription_ops.update(
        db,
        subscription,
        {"cancel_at_period_end": True, "canceled_at": datetime.now(UTC)},
    )
    await subscription_ops.log_event(
        db,
        organization_id=subscription.organization_id,
        event_type=BillingEventType.CANCEL_SCHEDULED,
        new_value={"cancel_at_period_end": True},
        description="Subscription scheduled for cancellation at period end",
        actor_user_id=current_user.id,
    )

    cancel_at = _iso(subscription.current_period_end) or datetime.now(UTC).isoformat()
    logger.info(f"Subscription canceled for org {subscription.organization_id}, ends {cancel_at}")

    return CancelResponse(
        message="Subscription will be canceled at the end of the billing period",
        cancel_at=cancel_at,
    )


@router.post("/reactivate", response_model=MessageResponse)
async def reactivate_subscription(
    request: OrganizationRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> MessageResponse:
    """
    Reactivate a subscription that was set to cancel at period end.

    Owner only.
    """
    if not settings.stripe_enabled:
        raise BillingUnavailableError("Payments not configured")

    await require_org_access(db, request.organization_id, current_user, min_role=MemberRole.OWNER)

    subscription = await subscription_ops.get_by_org(db, request.organization_id)
    if not subscription:
        raise NotFoundError("Subscription")
    if not subscription.cancel_at_period_end:
        raise ValidationError("Subscription is not scheduled for cancellation")
    if not subscription.stripe_subscription_id:
        raise ValidationError("No active Stripe subscription")

    try:
        stripe_service.reactivate_subscription(subscription.stripe_subscription_id)
    except StripeError as e:
        raise PaymentProviderError() from e

    subscription.canceled_at = None
    await subscription_ops.update(db, subscription, {"cancel_at_period_end": False})
    await subscription_ops.log_event(
        db,
        organization_id=subscription.organization_id,
        event_type=BillingEventType.REACTIVATED,
        new_value={"cancel_at_period_end": False},
        description="Subscription reactivated (cancellation removed)",
        actor_user_id=current_user.id,
    )

    logger.info(f"Subscription reactivated for org {subscription.organization_id}")

    return MessageResponse(message="Subscription reactivated successfully")
