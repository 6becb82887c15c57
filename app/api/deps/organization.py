"""Organization access control helpers."""

import uuid as uuid_pkg
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.roles import has_minimum_role
from app.domain.organization_operations import organization_ops
from app.models.organization import MemberRole, Organization
from app.models.user import User


@dataclass
class OrgAccess:
    """An organization plus the caller's role in it."""

    organization: Organization
    role: str

    @property
    def is_owner(self) -> bool:
        return self.role == MemberRole.OWNER.value


async def require_org_access(
    db: AsyncSession,
    org_id: uuid_pkg.UUID,
    user: User,
    min_role: MemberRole | None = None,
) -> OrgAccess:
    """
    Check that the user belongs to the organization (with at least `min_role`).

    Raises 404 if the organization does not exist, 403 if the user is not a
    member or their role is too low.
    """
    org = await organization_ops.get(db, org_id)
    if not org:
        raise NotFoundError("Organization")

    role = await organization_ops.get_member_role(db, org_id, user.id)
    if role is None:
        raise ForbiddenError("You are not a member of this organization")

    if min_role and not has_minimum_role(role, min_role):
        raise ForbiddenError(f"Requires {min_role.value} role")

    return OrgAccess(organization=org, role=role)
