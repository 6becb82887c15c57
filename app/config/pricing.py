"""Seat pricing configuration - hybrid model (flat fee + free seats + graduated rate).

Pricing logic:
- Flat fee: $19.99/month for every organization.
- Seats 1-50: free.
- Above 50 seats, *every* seat above 50 is charged at the rate of the tier
  the organization's total seat count falls in:
    51-75 seats   -> $9.99/seat
    76-200 seats  -> $7.99/seat
    201+ seats    -> $5.99/seat

Crossing a tier boundary re-prices all paid seats, so the monthly total
drops when an organization grows from 75 to 76 seats and from 200 to 201.

All amounts are integer cents.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from app.config.settings import settings

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────


class PricingError(Exception):
    """Base class for seat pricing failures."""


class InvalidSeatCount(PricingError, ValueError):
    """Raised when a seat count is negative or not an integer."""


class NoMatchingTier(PricingError):
    """Raised when no tier covers a seat count. Means the tier table is corrupt."""


class PricingConfigurationError(PricingError):
    """Raised when a tier table violates its ordering/coverage invariants."""


class PriceConfigurationMissing(PricingError):
    """Raised when a Stripe price ID needed for billing is not configured."""


# ─────────────────────────────────────────────────────────────────────────────
# Tier table
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PricingTier:
    """A contiguous range of total seat counts sharing one per-seat rate."""

    min_seats: int
    max_seats: int | None  # None means unbounded
    price_per_paid_seat: int  # cents, applied to every seat above the free threshold
    label: str

    def contains(self, seats: int) -> bool:
        """Check if a total seat count falls inside this tier (bounds inclusive)."""
        return seats >= self.min_seats and (self.max_seats is None or seats <= self.max_seats)

    @property
    def range_label(self) -> str:
        if self.max_seats is None:
            return f"{self.min_seats}+ seats"
        return f"{self.min_seats}-{self.max_seats} seats"


@dataclass(frozen=True)
class PricingConfig:
    """
    Complete pricing configuration.

    Validated on construction; an instance is immutable and safe to share
    between requests and threads.
    """

    flat_fee_cents: int
    free_seats_threshold: int
    tiers: tuple[PricingTier, ...]

    def __post_init__(self) -> None:
        _validate_config(self)

    @property
    def billable_tiers(self) -> tuple[PricingTier, ...]:
        """Tiers with a non-zero rate - each needs its own Stripe price."""
        return tuple(tier for tier in self.tiers if tier.price_per_paid_seat > 0)


def _validate_config(config: PricingConfig) -> None:
    if config.flat_fee_cents < 0:
        raise PricingConfigurationError("Flat fee cannot be negative")
    if config.free_seats_threshold < 0:
        raise PricingConfigurationError("Free seats threshold cannot be negative")

    tiers = config.tiers
    if not tiers:
        raise PricingConfigurationError("At least one pricing tier is required")
    if tiers[0].min_seats != 1:
        raise PricingConfigurationError("First pricing tier must start at 1 seat")

    labels = [tier.label for tier in tiers]
    if len(set(labels)) != len(labels):
        raise PricingConfigurationError(f"Pricing tier labels must be unique: {labels}")

    for tier in tiers:
        if tier.price_per_paid_seat < 0:
            raise PricingConfigurationError(f"Tier {tier.label} has a negative price")
        if tier.max_seats is not None and tier.max_seats < tier.min_seats:
            raise PricingConfigurationError(f"Tier {tier.label} ends before it starts")

    for current, following in zip(tiers, tiers[1:]):
        if current.max_seats is None:
            raise PricingConfigurationError(
                f"Only the last tier may be unbounded (found {current.label})"
            )
        if current.max_seats + 1 != following.min_seats:
            raise PricingConfigurationError(
                f"Tiers {current.label} and {following.label} are not contiguous"
            )

    if tiers[-1].max_seats is not None:
        raise PricingConfigurationError("Last pricing tier must be unbounded")


# Flat monthly platform fee for every organization
FLAT_FEE_CENTS = 1999  # $19.99

# Seats included before per-seat pricing kicks in
FREE_SEATS_THRESHOLD = 50

PRICING_TIERS: tuple[PricingTier, ...] = (
    PricingTier(min_seats=1, max_seats=50, price_per_paid_seat=0, label="Freemium"),
    PricingTier(min_seats=51, max_seats=75, price_per_paid_seat=999, label="Growth"),
    PricingTier(min_seats=76, max_seats=200, price_per_paid_seat=799, label="Thrive"),
    PricingTier(min_seats=201, max_seats=None, price_per_paid_seat=599, label="Enterprise"),
)

PRICING = PricingConfig(
    flat_fee_cents=FLAT_FEE_CENTS,
    free_seats_threshold=FREE_SEATS_THRESHOLD,
    tiers=PRICING_TIERS,
)


# ─────────────────────────────────────────────────────────────────────────────
# Tier lookup and cost calculation
# ─────────────────────────────────────────────────────────────────────────────


def _check_seats(seats: int) -> None:
    if isinstance(seats, bool) or not isinstance(seats, int):
        raise InvalidSeatCount(f"Seat count must be an integer, got {seats!r}")
    if seats < 0:
        raise InvalidSeatCount(f"Seat count cannot be negative, got {seats}")


def resolve_tier(total_seats: int, config: PricingConfig = PRICING) -> PricingTier:
    """
    Get the pricing tier for a total seat count.

    An organization with zero seats is priced like the first tier.
    Raises NoMatchingTier instead of guessing if the table has a gap.

    Example:
        resolve_tier(25).label   # "Freemium"
        resolve_tier(60).label   # "Growth"
    """
    _check_seats(total_seats)

    if total_seats == 0:
        return config.tiers[0]

    for tier in config.tiers:
        if tier.contains(total_seats):
            return tier

    raise NoMatchingTier(f"No pricing tier covers {total_seats} seats")


def paid_seats(total_seats: int, config: PricingConfig = PRICING) -> int:
    """Number of seats above the free threshold."""
    _check_seats(total_seats)
    return max(0, total_seats - config.free_seats_threshold)


def free_seats(total_seats: int, config: PricingConfig = PRICING) -> int:
    """Number of seats covered by the free threshold."""
    _check_seats(total_seats)
    return min(total_seats, config.free_seats_threshold)


def calculate_variable_cost(total_seats: int, config: PricingConfig = PRICING) -> int:
    """Per-seat portion of the monthly cost in cents (flat fee excluded)."""
    tier = resolve_tier(total_seats, config)
    return paid_seats(total_seats, config) * tier.price_per_paid_seat


def calculate_total_cost(total_seats: int, config: PricingConfig = PRICING) -> int:
    """
    Total monthly cost in cents: flat fee + paid seats x current tier rate.

    Example:
        calculate_total_cost(50)   # 1999   ($19.99 flat fee only)
        calculate_total_cost(60)   # 11989  ($19.99 + 10 x $9.99)
        calculate_total_cost(100)  # 41949  ($19.99 + 50 x $7.99)
    """
    return config.flat_fee_cents + calculate_variable_cost(total_seats, config)


# ─────────────────────────────────────────────────────────────────────────────
# Display helpers
# ─────────────────────────────────────────────────────────────────────────────


def format_price(price_in_cents: int) -> str:
    """Format cents as US dollars, e.g. 999 -> "$9.99", 121849 -> "$1,218.49"."""
    sign = "-" if price_in_cents < 0 else ""
    dollars, cents = divmod(abs(price_in_cents), 100)
    return f"{sign}${dollars:,}.{cents:02d}"


@dataclass(frozen=True)
class TierSummary:
    """Human-facing description of one pricing tier."""

    label: str
    range: str
    price_per_paid_seat: str
    monthly_min: str
    monthly_max: str
    flat_fee: str


def get_pricing_summary(config: PricingConfig = PRICING) -> list[TierSummary]:
    """Summarize every tier for pricing pages."""
    summaries = []
    for tier in config.tiers:
        min_paid = max(0, tier.min_seats - config.free_seats_threshold)
        monthly_min = config.flat_fee_cents + min_paid * tier.price_per_paid_seat

        if tier.max_seats is None:
            monthly_max = "Custom"
        else:
            max_paid = max(0, tier.max_seats - config.free_seats_threshold)
            monthly_max = format_price(config.flat_fee_cents + max_paid * tier.price_per_paid_seat)

        summaries.append(
            TierSummary(
                label=tier.label,
                range=tier.range_label,
                price_per_paid_seat=(
                    "Free" if tier.price_per_paid_seat == 0 else format_price(tier.price_per_paid_seat)
                ),
                monthly_min=format_price(monthly_min),
                monthly_max=monthly_max,
                flat_fee=format_price(config.flat_fee_cents),
            )
        )
    return summaries


@dataclass(frozen=True)
class SeatBreakdown:
    """Cost components for a seat count (all amounts in cents)."""

    total_seats: int
    free_seats: int
    paid_seats: int
    tier_label: str
    price_per_paid_seat: int
    flat_fee: int
    variable_cost: int
    total_cost: int


def seat_breakdown(total_seats: int, config: PricingConfig = PRICING) -> SeatBreakdown:
    """Break a seat count down into the components shown on billing pages."""
    tier = resolve_tier(total_seats, config)
    variable_cost = calculate_variable_cost(total_seats, config)
    return SeatBreakdown(
        total_seats=total_seats,
        free_seats=free_seats(total_seats, config),
        paid_seats=paid_seats(total_seats, config),
        tier_label=tier.label,
        price_per_paid_seat=tier.price_per_paid_seat,
        flat_fee=config.flat_fee_cents,
        variable_cost=variable_cost,
        total_cost=config.flat_fee_cents + variable_cost,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Stripe price IDs
# ─────────────────────────────────────────────────────────────────────────────

# Settings attribute holding the Stripe price ID for each billable tier label
TIER_PRICE_SETTINGS: dict[str, str] = {
    "Growth": "stripe_price_id_growth",
    "Thrive": "stripe_price_id_thrive",
    "Enterprise": "stripe_price_id_enterprise",
}
BASE_FEE_PRICE_SETTING = "stripe_price_id_base_fee"


@dataclass(frozen=True)
class PriceCatalog:
    """
    Stripe price IDs for every billable component.

    Built once from settings. Every required ID is checked up front, so a
    catalog that exists can always price any seat count.
    """

    base_fee: str
    tier_prices: Mapping[str, str]  # tier label -> Stripe price ID

    def for_tier(self, tier: PricingTier) -> str:
        """Get the Stripe price ID for a tier."""
        price_id = self.tier_prices.get(tier.label)
        if not price_id:
            raise PriceConfigurationMissing(f"No Stripe price configured for tier {tier.label}")
        return price_id

    @classmethod
    def from_settings(cls, source: Any, config: PricingConfig = PRICING) -> "PriceCatalog":
        """
        Build the catalog from settings.

        Raises PriceConfigurationMissing listing every missing environment
        variable (base fee plus one per non-free tier).
        """
        missing: list[str] = []

        base_fee = getattr(source, BASE_FEE_PRICE_SETTING, "") or ""
        if not base_fee:
            missing.append(BASE_FEE_PRICE_SETTING.upper())

        tier_prices: dict[str, str] = {}
        for tier in config.billable_tiers:
            setting_name = TIER_PRICE_SETTINGS.get(tier.label)
            price_id = getattr(source, setting_name, "") if setting_name else ""
            if price_id:
                tier_prices[tier.label] = price_id
            else:
                missing.append(
                    setting_name.upper() if setting_name else f"<no setting for tier {tier.label}>"
                )

        if missing:
            raise PriceConfigurationMissing(
                f"Missing Stripe price configuration: {', '.join(missing)}"
            )

        return cls(base_fee=base_fee, tier_prices=MappingProxyType(tier_prices))


@lru_cache(maxsize=1)
def get_price_catalog() -> PriceCatalog:
    """Get the process-wide price catalog (validated on first call)."""
    catalog = PriceCatalog.from_settings(settings)
    logger.info(f"Loaded Stripe price catalog ({len(catalog.tier_prices)} tier prices)")
    return catalog
