"""Organization member management endpoints.

Every member is a billable seat, so adding or removing one re-bills the
organization's Stripe subscription in the same transaction. If Stripe
rejects the change the request fails and the membership change is rolled
back.
"""

import logging
import uuid as uuid_pkg

from fastapi import HTTPException, status

from app.api.deps import CurrentUser, DbSession, require_org_access
from app.api.v1.organizations.helpers import member_response, sync_seats
from app.api.v1.organizations.schemas import AddMemberResponse, MemberResponse
from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.domain import org_member_ops
from app.domain.org_member_operations import InvalidEmailError, SupabaseInviteError
from app.models.organization import MemberRole, OrganizationMemberCreate, OrganizationMemberUpdate
from app.services.seat_billing import lock_seats

logger = logging.getLogger(__name__)

VALID_ROLES = {role.value for role in MemberRole}


async def list_members(
    org_id: uuid_pkg.UUID,
    user: CurrentUser,
    db: DbSession,
) -> list[MemberResponse]:
    """
    List all members of an organization.

    Requires membership in the organization.
    """
    await require_org_access(db, org_id, user)
    members = await org_member_ops.get_by_org(db, org_id)
    return [member_response(m, m.user) for m in members]


async def add_member(
    org_id: uuid_pkg.UUID,
    data: OrganizationMemberCreate,
    user: CurrentUser,
    db: DbSession,
) -> AddMemberResponse:
    """
    Add a member to an organization (owner only).

    Unknown emails are invited through Supabase. The new seat is billed
    before the membership is committed.
    """
    access = await require_org_access(db, org_id, user, min_role=MemberRole.OWNER)
    org = access.organization

    if data.role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {data.role}")

    # Hold the seat lock across the cap check and the insert
    await lock_seats(db, org_id)

    if org.max_members is not None:
        member_count = await org_member_ops.count_by_org(db, org_id)
        if member_count >= org.max_members:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Organization has reached its member limit ({org.max_members})",
            )

    target_user = await org_member_ops.find_user_by_email(db, data.email)
    if not target_user:
        try:
            target_user = await org_member_ops.create_user_via_supabase(db, data.email)
        except InvalidEmailError as e:
            raise ValidationError("Invalid email address format") from e
        except SupabaseInviteError as e:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=str(e),
            ) from e

    existing = await org_member_ops.get_by_org_and_user(db, org_id, target_user.id)
    if existing:
        raise ConflictError("User is already a member of this organization")

    member = await org_member_ops.add_member(
        db,
        organization_id=org_id,
        user_id=target_user.id,
        role=data.role,
        invited_by=user.id,
    )

    seat_change = await sync_seats(db, org_id, user)
    await db.commit()

    logger.info(f"Added {target_user.email} to org {org_id} as {member.role}")

    return AddMemberResponse(
        member=member_response(member, target_user),
        seat_change=seat_change,
    )


async def update_member_role(
    org_id: uuid_pkg.UUID,
    member_id: uuid_pkg.UUID,
    data: OrganizationMemberUpdate,
    user: CurrentUser,
    db: DbSession,
) -> MemberResponse:
    """
    Change a member's role (admin or owner).

    Only owners can grant or revoke the owner role, nobody can change their
    own role, and the last owner can never be demoted.
    """
    access = await require_org_access(db, org_id, user, min_role=MemberRole.ADMIN)

    if data.role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {data.role}")

    # Ownership checks read the same rows a concurrent removal would change
    await lock_seats(db, org_id)

    member = await org_member_ops.get(db, member_id)
    if not member or member.organization_id != org_id:
        raise NotFoundError("Member")

    if member.user_id == user.id:
        raise ValidationError("You cannot change your own role")

    touches_owner = MemberRole.OWNER.value in (member.role, data.role)
    if touches_owner and not access.is_owner:
        raise ForbiddenError("Only owners can grant or revoke the owner role")

    if (
        member.role == MemberRole.OWNER.value
        and data.role != MemberRole.OWNER.value
        and await org_member_ops.is_only_owner(db, org_id, member.user_id)
    ):
        raise ValidationError("Cannot demote the only owner of the organization")

    previous_role = member.role
    member = await org_member_ops.update_role(db, member, data.role)
    await db.commit()

    logger.info(f"Changed member {member_id} in org {org_id} from {previous_role} to {data.role}")

    return member_response(member, member.user)


async def remove_member(
    org_id: uuid_pkg.UUID,
    member_id: uuid_pkg.UUID,
    user: CurrentUser,
    db: DbSession,
) -> None:
    """
    Remove a member from an organization (owner only).

    Owners cannot remove themselves, and the last owner can never be removed.
    """
    await require_org_access(db, org_id, user, min_role=MemberRole.OWNER)

    # Hold the seat lock across the owner check and the delete
    await lock_seats(db, org_id)

    member = await org_member_ops.get(db, member_id)
    if not member or member.organization_id != org_id:
        raise NotFoundError("Member")

    if member.user_id == user.id:
        raise ValidationError("You cannot remove yourself from the organization")

    if member.role == MemberRole.OWNER.value and await org_member_ops.is_only_owner(
        db, org_id, member.user_id
    ):
        raise ValidationError("Cannot remove the only owner of the organization")

    await org_member_ops.remove_member(db, member)
    await sync_seats(db, org_id, user)
    await db.commit()

    logger.info(f"Removed member {member_id} from org {org_id}")
