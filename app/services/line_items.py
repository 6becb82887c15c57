"""
Stripe subscription line items for seat-based billing.

A subscription carries at most two items:
- the flat platform fee (quantity 1)
- one tier item holding every paid seat at the current tier's price

When the seat count moves into another tier, the old tier item is removed
and the new one added in the same Subscription.modify call.
"""

from dataclasses import dataclass
from typing import Any

from app.config.pricing import PRICING, PriceCatalog, PricingConfig, paid_seats, resolve_tier


@dataclass(frozen=True)
class BillingLineItem:
    """A desired subscription item: Stripe price ID + quantity (>= 1)."""

    price: str
    quantity: int

    def to_stripe(self) -> dict[str, Any]:
        return {"price": self.price, "quantity": self.quantity}


@dataclass(frozen=True)
class ExistingLineItem:
    """An item currently on a Stripe subscription."""

    item_id: str
    price: str
    quantity: int | None = None

    @classmethod
    def from_stripe(cls, item: Any) -> "ExistingLineItem":
        """Build from a Stripe SubscriptionItem (or the equivalent dict)."""
        return cls(
            item_id=item["id"],
            price=item["price"]["id"],
            quantity=item.get("quantity"),
        )


@dataclass(frozen=True)
class LineItemChange:
    """
    One entry of a Subscription.modify `items` payload.

    - update: item_id + price + quantity (item kept, quantity replaced)
    - insert: price + quantity, no item_id
    - delete: item_id + deleted=True
    """

    price: str
    item_id: str | None = None
    quantity: int | None = None
    deleted: bool = False

    @property
    def action(self) -> str:
        if self.deleted:
            return "delete"
        return "update" if self.item_id else "insert"

    def to_stripe(self) -> dict[str, Any]:
        if self.deleted:
            return {"id": self.item_id, "deleted": True}
        payload: dict[str, Any] = {"price": self.price, "quantity": self.quantity}
        if self.item_id:
            payload["id"] = self.item_id
        return payload


def build_line_items(
    total_seats: int,
    prices: PriceCatalog,
    config: PricingConfig = PRICING,
) -> list[BillingLineItem]:
    """
    Build the desired subscription items for a seat count.

    Example (default pricing):
        build_line_items(30, prices)   # [base_fee x1]
        build_line_items(60, prices)   # [base_fee x1, growth x10]
        build_line_items(250, prices)  # [base_fee x1, enterprise x200]
    """
    tier = resolve_tier(total_seats, config)
    items = [BillingLineItem(price=prices.base_fee, quantity=1)]

    billable = paid_seats(total_seats, config)
    # Zero-rate tiers have no Stripe price; their seats are covered by the flat fee
    if billable > 0 and tier.price_per_paid_seat > 0:
        items.append(BillingLineItem(price=prices.for_tier(tier), quantity=billable))

    return items


def reconcile_line_items(
    desired: list[BillingLineItem],
    existing: list[ExistingLineItem],
) -> list[LineItemChange]:
    """
    Compute the changes that turn the existing items into the desired ones.

    Items are matched by price ID. Matched items are updated in place (keeping
    their Stripe item ID), unmatched desired items are inserted, and existing
    items whose price is no longer wanted are deleted. Updates and inserts
    follow the order of `desired`; deletions come last.
    """
    existing_by_price: dict[str, ExistingLineItem] = {}
    for item in existing:
        existing_by_price.setdefault(item.price, item)

    changes: list[LineItemChange] = []
    for item in desired:
        match = existing_by_price.get(item.price)
        changes.append(
            LineItemChange(
                price=item.price,
                item_id=match.item_id if match else None,
                quantity=item.quantity,
            )
        )

    kept_ids = {change.item_id for change in changes if change.item_id}
    for item in existing:
        # Also drops duplicate items sharing a price with a kept item
        if item.item_id not in kept_ids:
            changes.append(LineItemChange(price=item.price, item_id=item.item_id, deleted=True))

    return changes
