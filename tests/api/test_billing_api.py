"""Billing API endpoint tests."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient
from stripe import StripeError

from app.api.deps.organization import OrgAccess
from app.api.v1.organizations.helpers import sync_seats
from app.config.pricing import PriceConfigurationMissing
from app.core.exceptions import ForbiddenError, PaymentProviderError
from app.models.billing import BillingEvent, BillingEventType
from app.services.stripe_service import CheckoutSubscription, SeatUpdate

from tests.helpers.mock_factories import (
    TEST_PRICES,
    make_mock_organization,
    make_mock_subscription,
)

MODULE = "app.api.v1.billing"


@pytest.fixture
def org():
    return make_mock_organization(name="Grace Chapel")


@pytest.fixture
def billing(org):
    """Patch settings, org access and domain operations used by the billing API."""
    with (
        patch(f"{MODULE}.settings") as mock_settings,
        patch(f"{MODULE}.get_price_catalog", return_value=TEST_PRICES) as mock_catalog,
        patch(f"{MODULE}.require_org_access", new_callable=AsyncMock) as mock_access,
        patch(f"{MODULE}.subscription_ops") as mock_sub_ops,
        patch(f"{MODULE}.org_member_ops") as mock_member_ops,
        patch(f"{MODULE}.sync_seats", new_callable=AsyncMock) as mock_sync,
    ):
        mock_settings.stripe_enabled = True
        mock_settings.frontend_url = "http://test"
        mock_access.return_value = OrgAccess(organization=org, role="owner")

        mock_sub_ops.get_by_org = AsyncMock(return_value=None)
        mock_sub_ops.create = AsyncMock(side_effect=lambda db, org_id, **kw: make_mock_subscription(
            organization_id=org_id, status="incomplete", **kw
        ))
        mock_sub_ops.update = AsyncMock(side_effect=lambda db, sub, updates: sub)
        mock_sub_ops.log_event = AsyncMock()
        mock_member_ops.count_by_org = AsyncMock(return_value=60)
        mock_sub_ops.get_events = AsyncMock(return_value=[])
        mock_sync.return_value = None

        yield MagicMock(
            settings=mock_settings,
            catalog=mock_catalog,
            access=mock_access,
            sub_ops=mock_sub_ops,
            member_ops=mock_member_ops,
            sync=mock_sync,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Public pricing
# ─────────────────────────────────────────────────────────────────────────────


async def test_get_pricing(api_client: AsyncClient):
    """GET /api/v1/billing/pricing returns the tier table."""
    resp = await api_client.get("/api/v1/billing/pricing")
    assert resp.status_code == 200
    data = resp.json()
    assert data["flat_fee"] == 1999
    assert data["flat_fee_display"] == "$19.99"
    assert data["free_seats_threshold"] == 50
    assert [t["label"] for t in data["tiers"]] == ["Freemium", "Growth", "Thrive", "Enterprise"]
    enterprise = data["tiers"][-1]
    assert enterprise["max_seats"] is None
    assert enterprise["monthly_max"] == "Custom"
    assert data["tiers"][1]["price_display"] == "$9.99"


@pytest.mark.parametrize(
    ("seats", "total", "tier"),
    [(0, 1999, "Freemium"), (60, 11989, "Growth"), (76, 22773, "Thrive"), (201, 92448, "Enterprise")],
)
async def test_get_quote(api_client: AsyncClient, seats, total, tier):
    """GET /api/v1/billing/quote prices a seat count."""
    resp = await api_client.get("/api/v1/billing/quote", params={"seats": seats})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total_cost"] == total
    assert data["tier"] == tier


async def test_quote_line_items(api_client: AsyncClient):
    resp = await api_client.get("/api/v1/billing/quote", params={"seats": 100})
    data = resp.json()
    assert data["total_display"] == "$419.49"
    assert data["line_items"] == [
        {"label": "Base fee", "quantity": 1, "unit_amount": 1999},
        {"label": "Thrive seats", "quantity": 50, "unit_amount": 799},
    ]


async def test_quote_rejects_negative_seats(api_client: AsyncClient):
    resp = await api_client.get("/api/v1/billing/quote", params={"seats": -1})
    assert resp.status_code == 400


# ─────────────────────────────────────────────────────────────────────────────
# Subscription details
# ─────────────────────────────────────────────────────────────────────────────


async def test_get_subscription_before_checkout(api_client: AsyncClient, billing, org):
    """Members see the current seat cost even without a subscription."""
    billing.access.return_value = OrgAccess(organization=org, role="member")

    resp = await api_client.get(f"/api/v1/billing/subscription/{org.id}")

    assert resp.status_code == 200
    data = resp.json()
    assert data["subscription"] is None
    assert data["member_count"] == 60
    assert data["breakdown"]["total_cost"] == 11989


async def test_get_subscription_active(api_client: AsyncClient, billing, org):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(
        organization_id=org.id,
        stripe_subscription_id="sub_1",
        quantity=60,
        current_period_end=datetime(2026, 11, 1, tzinfo=UTC),
    )

    resp = await api_client.get(f"/api/v1/billing/subscription/{org.id}")

    data = resp.json()["subscription"]
    assert data["status"] == "active"
    assert data["quantity"] == 60
    assert data["has_stripe_subscription"] is True
    assert data["current_period_end"].startswith("2026-11-01")
    assert data["canceled_at"] is None


async def test_get_subscription_non_member(api_client: AsyncClient, billing, org):
    billing.access.side_effect = ForbiddenError("You are not a member of this organization")
    resp = await api_client.get(f"/api/v1/billing/subscription/{org.id}")
    assert resp.status_code == 403


# ─────────────────────────────────────────────────────────────────────────────
# Checkout
# ─────────────────────────────────────────────────────────────────────────────


async def test_create_checkout(
    api_client: AsyncClient, billing, org, test_user, mock_db, mock_external_services
):
    """POST /api/v1/billing/checkout bills the current member count."""
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id)}
    )

    assert resp.status_code == 200
    assert resp.json()["checkout_url"] == "https://checkout.stripe.com/test"

    stripe = mock_external_services["stripe"]
    stripe.create_customer.assert_called_once_with(org, test_user)
    billing.sub_ops.create.assert_awaited_once_with(
        mock_db, org.id, stripe_customer_id="cus_test", quantity=60
    )
    kwargs = stripe.create_checkout_session.call_args.kwargs
    assert kwargs["total_seats"] == 60
    assert kwargs["customer_id"] == "cus_test"
    assert kwargs["success_url"] == (
        "http://test/settings/billing?success=true&session_id={CHECKOUT_SESSION_ID}"
    )
    event = billing.sub_ops.log_event.call_args.kwargs
    assert event["event_type"] == BillingEventType.CHECKOUT_STARTED
    assert event["new_value"] == {"seats": 60, "tier": "Growth"}


async def test_checkout_explicit_seats(api_client: AsyncClient, billing, org, mock_external_services):
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id), "seats": 250}
    )
    assert resp.status_code == 200
    assert mock_external_services["stripe"].create_checkout_session.call_args.kwargs[
        "total_seats"
    ] == 250


async def test_checkout_reuses_existing_customer(
    api_client: AsyncClient, billing, org, mock_external_services
):
    sub = make_mock_subscription(
        organization_id=org.id, status="incomplete", stripe_customer_id="cus_existing"
    )
    billing.sub_ops.get_by_org.return_value = sub

    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id)}
    )

    assert resp.status_code == 200
    mock_external_services["stripe"].create_customer.assert_not_called()
    billing.sub_ops.update.assert_awaited_once()
    assert billing.sub_ops.update.call_args.args[2] == {
        "stripe_customer_id": "cus_existing",
        "quantity": 60,
    }


async def test_checkout_rejects_active_subscription(api_client: AsyncClient, billing, org):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(stripe_subscription_id="sub_1")
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id)}
    )
    assert resp.status_code == 409


async def test_checkout_requires_a_seat(api_client: AsyncClient, billing, org):
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id), "seats": 0}
    )
    assert resp.status_code == 400


async def test_checkout_stripe_disabled(api_client: AsyncClient, billing, org):
    billing.settings.stripe_enabled = False
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id)}
    )
    assert resp.status_code == 503


async def test_checkout_missing_price_ids(api_client: AsyncClient, billing, org, mock_external_services):
    billing.catalog.side_effect = PriceConfigurationMissing("STRIPE_PRICE_ID_GROWTH")
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id)}
    )
    assert resp.status_code == 503
    mock_external_services["stripe"].create_customer.assert_not_called()


async def test_checkout_stripe_error(api_client: AsyncClient, billing, org, mock_external_services):
    mock_external_services["stripe"].create_checkout_session.side_effect = StripeError("down")
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id)}
    )
    assert resp.status_code == 502


async def test_checkout_owner_only(api_client: AsyncClient, billing, org):
    billing.access.side_effect = ForbiddenError("Requires owner role")
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id)}
    )
    assert resp.status_code == 403


# ─────────────────────────────────────────────────────────────────────────────
# Checkout confirmation
# ─────────────────────────────────────────────────────────────────────────────


def _checkout_result(org_id, **overrides) -> CheckoutSubscription:
    values = {
        "organization_id": str(org_id),
        "stripe_customer_id": "cus_test",
        "stripe_subscription_id": "sub_new",
        "status": "active",
        "cancel_at_period_end": False,
        "current_period_end": datetime(2026, 11, 18, tzinfo=UTC),
        "trial_end": None,
    }
    values.update(overrides)
    return CheckoutSubscription(**values)


async def test_confirm_checkout(
    api_client: AsyncClient, billing, org, test_user, mock_db, mock_external_services
):
    sub = make_mock_subscription(organization_id=org.id, status="incomplete", quantity=60)
    billing.sub_ops.get_by_org.return_value = sub
    mock_external_services["stripe"].get_checkout_subscription.return_value = _checkout_result(
        org.id
    )

    def apply(db, subscription, updates):
        for field, value in updates.items():
            if value is not None:
                setattr(subscription, field, value)
        return subscription

    billing.sub_ops.update.side_effect = apply

    resp = await api_client.post(
        "/api/v1/billing/checkout/confirm",
        json={"organization_id": str(org.id), "session_id": "cs_test"},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "active"
    assert data["has_stripe_subscription"] is True
    assert sub.stripe_subscription_id == "sub_new"
    mock_external_services["stripe"].get_checkout_subscription.assert_called_once_with("cs_test")
    billing.sync.assert_awaited_once_with(mock_db, org.id, test_user)


async def test_confirm_checkout_other_org(api_client: AsyncClient, billing, org, mock_external_services):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(organization_id=org.id)
    mock_external_services["stripe"].get_checkout_subscription.return_value = _checkout_result(
        uuid.uuid4()
    )

    resp = await api_client.post(
        "/api/v1/billing/checkout/confirm",
        json={"organization_id": str(org.id), "session_id": "cs_test"},
    )

    assert resp.status_code == 400
    billing.sub_ops.update.assert_not_awaited()


async def test_confirm_checkout_unfinished(api_client: AsyncClient, billing, org, mock_external_services):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(organization_id=org.id)
    mock_external_services["stripe"].get_checkout_subscription.side_effect = ValueError(
        "Checkout session has no subscription yet"
    )

    resp = await api_client.post(
        "/api/v1/billing/checkout/confirm",
        json={"organization_id": str(org.id), "session_id": "cs_test"},
    )

    assert resp.status_code == 400


async def test_confirm_checkout_without_subscription_row(api_client: AsyncClient, billing, org):
    resp = await api_client.post(
        "/api/v1/billing/checkout/confirm",
        json={"organization_id": str(org.id), "session_id": "cs_test"},
    )
    assert resp.status_code == 404


# ─────────────────────────────────────────────────────────────────────────────
# Portal / cancel / reactivate
# ─────────────────────────────────────────────────────────────────────────────


async def test_create_portal(api_client: AsyncClient, billing, org, mock_external_services):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(stripe_customer_id="cus_1")
    resp = await api_client.post("/api/v1/billing/portal", json={"organization_id": str(org.id)})
    assert resp.status_code == 200
    assert resp.json()["portal_url"] == "https://billing.stripe.com/test"
    mock_external_services["stripe"].create_portal_session.assert_called_once_with(
        customer_id="cus_1", return_url="http://test/settings/billing"
    )


async def test_portal_without_customer(api_client: AsyncClient, billing, org):
    resp = await api_client.post("/api/v1/billing/portal", json={"organization_id": str(org.id)})
    assert resp.status_code == 400


async def test_cancel_subscription(api_client: AsyncClient, billing, org, mock_external_services):
    """POST /api/v1/billing/cancel schedules cancellation."""
    sub = make_mock_subscription(
        organization_id=org.id,
        stripe_subscription_id="sub_1",
        current_period_end=datetime(2026, 11, 1, tzinfo=UTC),
    )
    billing.sub_ops.get_by_org.return_value = sub

    resp = await api_client.post("/api/v1/billing/cancel", json={"organization_id": str(org.id)})

    assert resp.status_code == 200
    assert resp.json()["cancel_at"].startswith("2026-11-01")
    mock_external_services["stripe"].cancel_subscription.assert_called_once_with("sub_1")
    billing.sub_ops.update.assert_awaited_once()
    updates = billing.sub_ops.update.call_args.args[2]
    assert updates["cancel_at_period_end"] is True
    assert isinstance(updates["canceled_at"], datetime)
    assert billing.sub_ops.log_event.call_args.kwargs["event_type"] == (
        BillingEventType.CANCEL_SCHEDULED
    )


async def test_cancel_twice(api_client: AsyncClient, billing, org):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(
        stripe_subscription_id="sub_1", cancel_at_period_end=True
    )
    resp = await api_client.post("/api/v1/billing/cancel", json={"organization_id": str(org.id)})
    assert resp.status_code == 400


async def test_cancel_without_subscription(api_client: AsyncClient, billing, org):
    resp = await api_client.post("/api/v1/billing/cancel", json={"organization_id": str(org.id)})
    assert resp.status_code == 404


async def test_reactivate_subscription(api_client: AsyncClient, billing, org, mock_external_services):
    sub = make_mock_subscription(
        stripe_subscription_id="sub_1",
        cancel_at_period_end=True,
        canceled_at=datetime(2026, 10, 1, tzinfo=UTC),
    )
    billing.sub_ops.get_by_org.return_value = sub

    resp = await api_client.post(
        "/api/v1/billing/reactivate", json={"organization_id": str(org.id)}
    )

    assert resp.status_code == 200
    mock_external_services["stripe"].reactivate_subscription.assert_called_once_with("sub_1")
    assert sub.canceled_at is None
    assert billing.sub_ops.update.call_args.args[2] == {"cancel_at_period_end": False}
    assert billing.sub_ops.log_event.call_args.kwargs["event_type"] == BillingEventType.REACTIVATED


async def test_reactivate_not_canceled(api_client: AsyncClient, billing, org):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(stripe_subscription_id="sub_1")
    resp = await api_client.post(
        "/api/v1/billing/reactivate", json={"organization_id": str(org.id)}
    )
    assert resp.status_code == 400


async def test_get_subscription_shows_scheduled_cancellation(api_client: AsyncClient, billing, org):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(
        organization_id=org.id,
        stripe_subscription_id="sub_1",
        cancel_at_period_end=True,
        canceled_at=datetime(2026, 10, 15, tzinfo=UTC),
    )

    resp = await api_client.get(f"/api/v1/billing/subscription/{org.id}")

    data = resp.json()["subscription"]
    assert data["cancel_at_period_end"] is True
    assert data["canceled_at"].startswith("2026-10-15")


# ─────────────────────────────────────────────────────────────────────────────
# Seats must cover every member
# ─────────────────────────────────────────────────────────────────────────────


async def test_checkout_rejects_fewer_seats_than_members(
    api_client: AsyncClient, billing, org, mock_external_services
):
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id), "seats": 1}
    )

    assert resp.status_code == 400
    assert "60 seats" in resp.json()["detail"]
    mock_external_services["stripe"].create_customer.assert_not_called()
    mock_external_services["stripe"].create_checkout_session.assert_not_called()
    billing.sub_ops.create.assert_not_awaited()


async def test_checkout_seats_equal_to_members(
    api_client: AsyncClient, billing, org, mock_external_services
):
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id), "seats": 60}
    )
    assert resp.status_code == 200


async def test_checkout_empty_org_needs_one_seat(api_client: AsyncClient, billing, org):
    billing.member_ops.count_by_org.return_value = 0
    resp = await api_client.post(
        "/api/v1/billing/checkout", json={"organization_id": str(org.id)}
    )
    assert resp.status_code == 400


async def test_confirm_checkout_bills_members_added_during_checkout(
    api_client: AsyncClient, billing, org, mock_external_services
):
    """Members who joined while checkout was open are billed on confirmation."""
    sub = make_mock_subscription(organization_id=org.id, status="incomplete", quantity=50)
    billing.sub_ops.get_by_org.return_value = sub
    stripe = mock_external_services["stripe"]
    stripe.get_checkout_subscription.return_value = _checkout_result(org.id)
    stripe.update_seat_quantity.return_value = SeatUpdate(status="active", changes=[])

    def apply(db, subscription, updates):
        for field, value in updates.items():
            if value is not None:
                setattr(subscription, field, value)
        return subscription

    billing.sub_ops.update.side_effect = apply
    billing.sync.side_effect = sync_seats

    with (
        patch("app.services.seat_billing.subscription_ops") as seat_sub_ops,
        patch("app.services.seat_billing.org_member_ops") as seat_member_ops,
        patch("app.services.seat_billing.acquire_xact_lock", new_callable=AsyncMock),
    ):
        seat_sub_ops.get_by_org = AsyncMock(return_value=sub)
        seat_sub_ops.update = AsyncMock(side_effect=apply)
        seat_sub_ops.log_event = AsyncMock()
        seat_member_ops.count_by_org = AsyncMock(return_value=60)

        resp = await api_client.post(
            "/api/v1/billing/checkout/confirm",
            json={"organization_id": str(org.id), "session_id": "cs_test"},
        )

    assert resp.status_code == 200
    assert resp.json()["quantity"] == 60
    stripe.update_seat_quantity.assert_called_once_with("sub_new", 60)


async def test_confirm_checkout_billing_failure(
    api_client: AsyncClient, billing, org, mock_db, mock_external_services
):
    billing.sub_ops.get_by_org.return_value = make_mock_subscription(organization_id=org.id)
    mock_external_services["stripe"].get_checkout_subscription.return_value = _checkout_result(
        org.id
    )
    billing.sync.side_effect = PaymentProviderError("Could not update billing for this seat change")

    resp = await api_client.post(
        "/api/v1/billing/checkout/confirm",
        json={"organization_id": str(org.id), "session_id": "cs_test"},
    )

    assert resp.status_code == 502
    mock_db.commit.assert_not_awaited()


# ─────────────────────────────────────────────────────────────────────────────
# Billing history
# ─────────────────────────────────────────────────────────────────────────────


async def test_list_billing_events(api_client: AsyncClient, billing, org, test_user, mock_db):
    """GET /api/v1/billing/events/{id} returns the org's billing history."""
    event = BillingEvent(
        organization_id=org.id,
        event_type=BillingEventType.SEATS_CHANGED.value,
        description="Seats changed from 75 to 76",
        previous_value={"seats": 75, "tier": "Growth"},
        new_value={"seats": 76, "tier": "Thrive"},
        actor_user_id=test_user.id,
    )
    billing.sub_ops.get_events.return_value = [event]

    resp = await api_client.get(
        f"/api/v1/billing/events/{org.id}", params={"skip": 10, "limit": 5}
    )

    assert resp.status_code == 200
    [data] = resp.json()
    assert data["event_type"] == "seats.changed"
    assert data["new_value"] == {"seats": 76, "tier": "Thrive"}
    assert data["actor_user_id"] == str(test_user.id)
    billing.sub_ops.get_events.assert_awaited_once_with(mock_db, org.id, skip=10, limit=5)
    assert billing.access.call_args.kwargs["min_role"] == "admin"


async def test_list_billing_events_defaults(api_client: AsyncClient, billing, org, mock_db):
    resp = await api_client.get(f"/api/v1/billing/events/{org.id}")
    assert resp.status_code == 200
    assert resp.json() == []
    billing.sub_ops.get_events.assert_awaited_once_with(mock_db, org.id, skip=0, limit=50)


async def test_list_billing_events_limit_bounds(api_client: AsyncClient, billing, org):
    resp = await api_client.get(f"/api/v1/billing/events/{org.id}", params={"limit": 0})
    assert resp.status_code == 422


async def test_list_billing_events_members_forbidden(api_client: AsyncClient, billing, org):
    billing.access.side_effect = ForbiddenError("Requires admin role")
    resp = await api_client.get(f"/api/v1/billing/events/{org.id}")
    assert resp.status_code == 403
    billing.sub_ops.get_events.assert_not_awaited()
