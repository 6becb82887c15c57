"""Root conftest - test infrastructure for all backend tests.

Provides:
- Mocked AsyncSession (no live database needed)
- Test user fixtures
- API client with dependency overrides
- Autouse mock for Stripe so no test can reach the real API
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from app.services.stripe_service import SeatUpdate

from tests.helpers.mock_factories import make_mock_db, make_mock_user

# ─────────────────────────────────────────────────────────────────────────────
# Database / User Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_db() -> AsyncMock:
    """AsyncSession stand-in; configure db.execute per test."""
    return make_mock_db()


@pytest.fixture
def test_user() -> MagicMock:
    return make_mock_user(email="owner@example.com", display_name="Owner")


# ─────────────────────────────────────────────────────────────────────────────
# API Client
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
async def api_client(mock_db: AsyncMock, test_user: MagicMock):
    """HTTP client that bypasses JWT auth and uses the mocked DB session.

    Overrides: get_current_user, get_db
    """
    from app.api.deps.auth import get_current_user
    from app.core.database import get_db
    from app.main import app

    app.dependency_overrides[get_current_user] = lambda: test_user

    async def override_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def anon_client():
    """HTTP client with no dependency overrides (unauthenticated)."""
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# External Service Mocks (autouse)
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def mock_external_services():
    """SAFETY: Always mock Stripe where the API layer and seat billing use it.

    Prevents accidental Stripe customers, sessions or subscription changes.
    Tests of StripeService itself patch the `stripe` module directly.
    """
    mock_stripe = MagicMock()
    mock_stripe.create_customer = MagicMock(return_value="cus_test")
    mock_stripe.create_checkout_session = MagicMock(
        return_value="https://checkout.stripe.com/test"
    )
    mock_stripe.create_portal_session = MagicMock(return_value="https://billing.stripe.com/test")
    mock_stripe.update_seat_quantity = MagicMock(
        return_value=SeatUpdate(status="active", changes=[])
    )

    with (
        patch("app.api.v1.billing.stripe_service", mock_stripe),
        patch("app.services.seat_billing.stripe_service", mock_stripe),
    ):
        yield {"stripe": mock_stripe}
