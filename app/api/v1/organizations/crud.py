"""Organization CRUD endpoints."""

import uuid as uuid_pkg

from app.api.deps import CurrentUser, DbSession, require_org_access
from app.api.v1.organizations.schemas import OrganizationResponse
from app.domain import org_member_ops, organization_ops
from app.models.organization import MemberRole, Organization, OrganizationCreate


def _to_response(org: Organization, role: str, member_count: int) -> OrganizationResponse:
    return OrganizationResponse(
        id=str(org.id),
        name=org.name,
        slug=org.slug,
        owner_id=str(org.owner_id),
        max_members=org.max_members,
        created_at=org.created_at.isoformat(),
        updated_at=org.updated_at.isoformat() if org.updated_at else None,
        role=role,
        member_count=member_count,
    )


async def create_organization(
    data: OrganizationCreate,
    user: CurrentUser,
    db: DbSession,
) -> OrganizationResponse:
    """
    Create a new organization.

    The creating user becomes the owner and first member.
    """
    org = await organization_ops.create(
        db,
        name=data.name,
        owner_id=user.id,
        slug=data.slug,
        max_members=data.max_members,
    )
    await db.commit()

    return _to_response(org, MemberRole.OWNER.value, member_count=1)


async def get_organization(
    org_id: uuid_pkg.UUID,
    user: CurrentUser,
    db: DbSession,
) -> OrganizationResponse:
    """
    Get an organization with its member count.

    Requires membership in the organization.
    """
    access = await require_org_access(db, org_id, user)
    member_count = await org_member_ops.count_by_org(db, org_id)
    return _to_response(access.organization, access.role, member_count)
