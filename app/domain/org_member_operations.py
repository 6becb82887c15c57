"""Domain operations for OrganizationMember model."""

import asyncio
import logging
import re
import uuid as uuid_pkg
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config.settings import settings
from app.models.organization import MemberRole, OrganizationMember
from app.models.user import User
from app.services.supabase import get_supabase_admin_client

logger = logging.getLogger(__name__)

# Simple email validation pattern (RFC 5322 simplified)
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class InvalidEmailError(Exception):
    """Raised when email format is invalid."""


class SupabaseInviteError(Exception):
    """Raised when the Supabase invite fails."""


class OrgMemberOperations:
    """CRUD operations for OrganizationMember model. Each membership is one seat."""

    async def get(
        self,
        db: AsyncSession,
        id: uuid_pkg.UUID,
    ) -> OrganizationMember | None:
        """Get a membership by ID."""
        statement = (
            select(OrganizationMember)
            .where(OrganizationMember.id == id)
            .options(selectinload(OrganizationMember.user))
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_org_and_user(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
        user_id: uuid_pkg.UUID,
    ) -> OrganizationMember | None:
        """Get a specific membership by org and user."""
        statement = select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_org(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
    ) -> list[OrganizationMember]:
        """Get all members of an organization, oldest first."""
        statement = (
            select(OrganizationMember)
            .where(OrganizationMember.organization_id == organization_id)
            .options(selectinload(OrganizationMember.user))
            .order_by(OrganizationMember.joined_at.asc())
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def count_by_org(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
    ) -> int:
        """Count members (billable seats) in an organization."""
        statement = (
            select(func.count())
            .select_from(OrganizationMember)
            .where(OrganizationMember.organization_id == organization_id)
        )
        result = await db.execute(statement)
        return result.scalar() or 0

    async def add_member(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
        user_id: uuid_pkg.UUID,
        role: str = MemberRole.MEMBER.value,
        invited_by: uuid_pkg.UUID | None = None,
    ) -> OrganizationMember:
        """Add a user to an organization."""
        member = OrganizationMember(
            organization_id=organization_id,
            user_id=user_id,
            role=role,
            invited_by=invited_by,
            invited_at=datetime.now(UTC) if invited_by else None,
        )
        db.add(member)
        await db.flush()
        await db.refresh(member)
        return member

    async def remove_member(
        self,
        db: AsyncSession,
        member: OrganizationMember,
    ) -> None:
        """Delete a membership row."""
        await db.delete(member)
        await db.flush()

    async def update_role(
        self,
        db: AsyncSession,
        member: OrganizationMember,
        role: str,
    ) -> OrganizationMember:
        """Change a member's role."""
        member.role = role
        db.add(member)
        await db.flush()
        return member

    async def find_user_by_email(
        self,
        db: AsyncSession,
        email: str,
    ) -> User | None:
        """Find a user by email (case-insensitive) for invitations."""
        statement = select(User).where(func.lower(User.email) == email.lower())
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def create_user_via_supabase(
        self,
        db: AsyncSession,
        email: str,
    ) -> User:
        """
        Create a user via the Supabase Admin API.

        Supabase creates the auth.users record and sends the invite email.
        Returns the newly created public.users record.

        Raises:
            InvalidEmailError: If email format is invalid.
            SupabaseInviteError: If the Supabase API call fails.
        """
        if not EMAIL_PATTERN.match(email):
            raise InvalidEmailError(f"Invalid email format: {email}")

        try:
            supabase = get_supabase_admin_client()
            invite_options = {"redirect_to": f"{settings.frontend_url}/auth/callback"}

            # Supabase client is sync - keep it off the event loop
            response = await asyncio.to_thread(
                supabase.auth.admin.invite_user_by_email, email, invite_options
            )
            supabase_user_id = uuid_pkg.UUID(response.user.id)
        except Exception as e:
            error_msg = str(e).lower()
            if "already been registered" in error_msg or "already exists" in error_msg:
                logger.info(f"User {email} already exists in Supabase")
                existing_user = await self.find_user_by_email(db, email)
                if existing_user:
                    return existing_user
                raise SupabaseInviteError(
                    "User exists in auth system but not locally. Please try again."
                ) from e

            logger.error(f"Supabase invite failed for {email}: {e}")
            raise SupabaseInviteError("Failed to send invite email. Please try again later.") from e

        user = User(id=supabase_user_id, email=email)
        db.add(user)
        await db.flush()
        await db.refresh(user)
        logger.info(f"Invited new user {email} ({supabase_user_id})")
        return user

    async def get_owners(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
    ) -> list[OrganizationMember]:
        """Get all owners of an organization."""
        statement = select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.role == MemberRole.OWNER.value,
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def is_only_owner(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
        user_id: uuid_pkg.UUID,
    ) -> bool:
        """Check if a user is the only owner of an organization."""
        owners = await self.get_owners(db, organization_id)
        return len(owners) == 1 and owners[0].user_id == user_id


org_member_ops = OrgMemberOperations()
