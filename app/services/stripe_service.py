"""Stripe payment service for seat-based subscription management."""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import stripe
from stripe import StripeError

from app.config import settings
from app.config.pricing import get_price_catalog
from app.models.organization import Organization
from app.models.subscription import ENDED_STATUSES
from app.models.user import User
from app.services.line_items import (
    ExistingLineItem,
    LineItemChange,
    build_line_items,
    reconcile_line_items,
)

logger = logging.getLogger(__name__)

# Initialize Stripe with secret key
stripe.api_key = settings.stripe_secret_key

# Seat changes are invoiced immediately instead of waiting for the next cycle
SEAT_CHANGE_PRORATION = "always_invoice"


@dataclass
class CheckoutSubscription:
    """Subscription fields read back from a completed Checkout session."""

    organization_id: str | None
    stripe_customer_id: str | None
    stripe_subscription_id: str
    status: str
    cancel_at_period_end: bool
    current_period_end: datetime | None
    trial_end: datetime | None


@dataclass
class RemoteSubscription:
    """Status and items of a subscription as Stripe currently has it."""

    status: str
    items: list[ExistingLineItem]


@dataclass
class SeatUpdate:
    """Result of update_seat_quantity: the remote status and the item changes sent."""

    status: str
    changes: list[LineItemChange]

    @property
    def applied(self) -> bool:
        return self.status not in ENDED_STATUSES


def _from_timestamp(value: int | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=UTC) if value else None


def _period_end(sub: Any) -> datetime | None:
    # Newer API versions report the period on each subscription item
    if sub.get("current_period_end"):
        return _from_timestamp(sub["current_period_end"])
    items = (sub.get("items") or {}).get("data") or []
    return _from_timestamp(items[0].get("current_period_end")) if items else None


class StripeService:
    """
    Handles all Stripe API interactions.

    All methods are static and stateless. Stripe SDK handles connection pooling.

    Pricing model (see app.config.pricing):
    - $19.99/mo flat fee, first 50 seats free
    - Every seat above 50 billed at the current tier rate
      (Growth $9.99, Thrive $7.99, Enterprise $5.99)
    """

    @staticmethod
    def create_customer(org: Organization, user: User) -> str:
        """
        Create a Stripe customer for an organization.

        Returns the Stripe customer ID (cus_...).
        """
        try:
            customer = stripe.Customer.create(
                email=user.email or "",
                name=org.name,
                metadata={
                    "organization_id": str(org.id),
                    "owner_user_id": str(user.id),
                },
            )
            logger.info(f"Created Stripe customer {customer.id} for org {org.id}")
            return customer.id
        except StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise

    @staticmethod
    def create_checkout_session(
        customer_id: str,
        organization_id: uuid_pkg.UUID,
        user_id: uuid_pkg.UUID,
        total_seats: int,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a Stripe Checkout session for a seat subscription.

        Line items come from build_line_items(total_seats). Returns the
        checkout session URL.
        """
        line_items = build_line_items(total_seats, get_price_catalog())
        metadata = {
            "organization_id": str(organization_id),
            "user_id": str(user_id),
            "total_seats": str(total_seats),
        }

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="subscription",
                line_items=[item.to_stripe() for item in line_items],  # type: ignore[misc]
                success_url=success_url,
                cancel_url=cancel_url,
                subscription_data={"metadata": metadata},
                metadata=metadata,
            )
            logger.info(
                f"Created checkout session for customer {customer_id}, "
                f"org {organization_id}, {total_seats} seats"
            )
            return session.url or ""
        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise

    @staticmethod
    def get_checkout_subscription(session_id: str) -> CheckoutSubscription:
        """
        Get the subscription a completed Checkout session created.

        Raises ValueError if the session has not produced a subscription yet.
        """
        try:
            session = stripe.checkout.Session.retrieve(session_id, expand=["subscription"])
        except StripeError as e:
            logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise

        sub = session.get("subscription")
        if not sub or isinstance(sub, str):
            raise ValueError("Checkout session has no subscription yet")

        metadata = session.get("metadata") or {}
        return CheckoutSubscription(
            organization_id=metadata.get("organization_id"),
            stripe_customer_id=session.get("customer"),
            stripe_subscription_id=sub["id"],
            status=sub["status"],
            cancel_at_period_end=bool(sub.get("cancel_at_period_end")),
            current_period_end=_period_end(sub),
            trial_end=_from_timestamp(sub.get("trial_end")),
        )

    @staticmethod
    def create_portal_session(customer_id: str, return_url: str) -> str:
        """
        Create a Stripe Customer Portal session for self-service billing.

        Returns the portal session URL.
        """
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )
            return session.url
        except StripeError as e:
            logger.error(f"Failed to create portal session: {e}")
            raise

    @staticmethod
    def cancel_subscription(stripe_subscription_id: str) -> None:
        """Cancel a Stripe subscription at period end."""
        try:
            stripe.Subscription.modify(
                stripe_subscription_id,
                cancel_at_period_end=True,
            )
            logger.info(f"Marked subscription {stripe_subscription_id} for cancellation")
        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise

    @staticmethod
    def reactivate_subscription(stripe_subscription_id: str) -> None:
        """Reactivate a subscription that was set to cancel at period end."""
        try:
            stripe.Subscription.modify(
                stripe_subscription_id,
                cancel_at_period_end=False,
            )
            logger.info(f"Reactivated subscription {stripe_subscription_id}")
        except StripeError as e:
            logger.error(f"Failed to reactivate subscription: {e}")
            raise

    @staticmethod
    def get_subscription(stripe_subscription_id: str) -> RemoteSubscription:
        """Get a Stripe subscription's status and current items."""
        try:
            sub = stripe.Subscription.retrieve(stripe_subscription_id)
        except StripeError as e:
            logger.error(f"Failed to retrieve subscription {stripe_subscription_id}: {e}")
            raise
        return RemoteSubscription(
            status=sub["status"],
            items=[ExistingLineItem.from_stripe(item) for item in sub["items"]["data"]],
        )

    @staticmethod
    def update_seat_quantity(
        stripe_subscription_id: str,
        total_seats: int,
    ) -> SeatUpdate:
        """
        Bring a subscription's items in line with a new seat count.

        Fetches the current items, computes the desired ones and sends every
        update/insert/delete in a single Subscription.modify call so Stripe
        never sees a partial tier change.

        Pricing errors are raised before anything is sent to Stripe. A
        subscription that has already ended is left untouched; the returned
        status tells the caller so.
        """
        desired = build_line_items(total_seats, get_price_catalog())
        remote = StripeService.get_subscription(stripe_subscription_id)

        if remote.status in ENDED_STATUSES:
            logger.warning(
                f"Subscription {stripe_subscription_id} is {remote.status}, "
                f"not billing {total_seats} seats"
            )
            return SeatUpdate(status=remote.status, changes=[])

        changes = reconcile_line_items(desired, remote.items)

        try:
            stripe.Subscription.modify(
                stripe_subscription_id,
                items=[change.to_stripe() for change in changes],  # type: ignore[misc]
                proration_behavior=SEAT_CHANGE_PRORATION,
                metadata={"total_seats": str(total_seats)},
            )
        except StripeError as e:
            logger.error(
                f"Failed to update seats on subscription {stripe_subscription_id} "
                f"to {total_seats}: {e}"
            )
            raise

        logger.info(
            f"Updated subscription {stripe_subscription_id} to {total_seats} seats "
            f"({', '.join(change.action for change in changes)})"
        )
        return SeatUpdate(status=remote.status, changes=changes)


# Singleton instance
stripe_service = StripeService()
