"""Response schemas for organization API endpoints."""

from pydantic import BaseModel


class OrganizationResponse(BaseModel):
    """Organization with the caller's role and current seat count."""

    id: str
    name: str
    slug: str
    owner_id: str
    max_members: int | None
    created_at: str
    updated_at: str | None
    role: str  # User's role in this org
    member_count: int


class MemberResponse(BaseModel):
    """Organization member response."""

    id: str
    user_id: str
    email: str
    display_name: str | None
    role: str
    joined_at: str
    invited_by: str | None
    invited_at: str | None


class SeatChangeInfo(BaseModel):
    """Billing change caused by adding or removing a member."""

    previous_seats: int
    new_seats: int
    previous_tier: str
    new_tier: str


class AddMemberResponse(BaseModel):
    member: MemberResponse
    seat_change: SeatChangeInfo | None  # None when nothing was billed
