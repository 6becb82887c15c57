from app.domain.org_member_operations import org_member_ops
from app.domain.organization_operations import organization_ops
from app.domain.subscription_operations import subscription_ops

__all__ = [
    "organization_ops",
    "org_member_ops",
    "subscription_ops",
]
