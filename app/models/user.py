import uuid as uuid_pkg
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, text
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.organization import Organization, OrganizationMember


class User(SQLModel, table=True):
    """
    User model - mirrors Supabase auth.users.

    The id comes from Supabase Auth. User records are created on first API
    call after authentication, or when an owner invites them by email.
    """

    __tablename__ = "users"

    id: uuid_pkg.UUID = Field(
        primary_key=True,
        index=True,
        nullable=False,
        description="UUID from Supabase auth.users",
    )
    email: str | None = Field(default=None, max_length=255, index=True)
    display_name: str | None = Field(default=None, max_length=100)

    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=lambda: datetime.now(UTC),
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )
    updated_at: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": text("now()")},
    )

    # Organization relationships
    owned_organizations: list["Organization"] = Relationship(
        back_populates="owner",
        sa_relationship_kwargs={"foreign_keys": "[Organization.owner_id]"},
    )
    organization_memberships: list["OrganizationMember"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"foreign_keys": "[OrganizationMember.user_id]"},
    )
