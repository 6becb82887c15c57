"""Domain operations for Organization model."""

import re
import secrets
import uuid as uuid_pkg

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.organization import MemberRole, Organization, OrganizationMember


def generate_slug(name: str) -> str:
    """Generate a URL-friendly slug with a random suffix, e.g. "grace-chapel-3fa2c1"."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "organization"
    return f"{slug}-{secrets.token_hex(3)}"


class OrganizationOperations:
    """CRUD operations for Organization model."""

    async def get(
        self,
        db: AsyncSession,
        id: uuid_pkg.UUID,
    ) -> Organization | None:
        """Get an organization by ID."""
        statement = select(Organization).where(Organization.id == id)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_slug(
        self,
        db: AsyncSession,
        slug: str,
    ) -> Organization | None:
        statement = select(Organization).where(Organization.slug == slug)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def create(
        self,
        db: AsyncSession,
        name: str,
        owner_id: uuid_pkg.UUID,
        slug: str | None = None,
        max_members: int | None = None,
    ) -> Organization:
        """
        Create a new organization with the creator as its first (owner) member.

        No subscription row is created here; one is added when the owner
        starts checkout.
        """
        if not slug or await self.get_by_slug(db, slug):
            slug = generate_slug(name)

        org = Organization(
            name=name,
            slug=slug,
            owner_id=owner_id,
            max_members=max_members,
        )
        db.add(org)
        await db.flush()

        member = OrganizationMember(
            organization_id=org.id,
            user_id=owner_id,
            role=MemberRole.OWNER.value,
        )
        db.add(member)

        await db.flush()
        await db.refresh(org)
        return org

    async def get_member_role(
        self,
        db: AsyncSession,
        organization_id: uuid_pkg.UUID,
        user_id: uuid_pkg.UUID,
    ) -> str | None:
        """Get a user's role in an organization (None if not a member)."""
        statement = select(OrganizationMember.role).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()


organization_ops = OrganizationOperations()
