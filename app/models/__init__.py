from app.models.billing import BillingEvent, BillingEventType
from app.models.organization import (
    MemberRole,
    Organization,
    OrganizationCreate,
    OrganizationMember,
    OrganizationMemberCreate,
    OrganizationMemberUpdate,
)
from app.models.subscription import ENDED_STATUSES, Subscription, SubscriptionStatus
from app.models.user import User

__all__ = [
    "User",
    "Organization",
    "OrganizationCreate",
    "OrganizationMember",
    "OrganizationMemberCreate",
    "OrganizationMemberUpdate",
    "MemberRole",
    "Subscription",
    "SubscriptionStatus",
    "ENDED_STATUSES",
    "BillingEvent",
    "BillingEventType",
]
