"""Organizations API package.

Modules:
- schemas.py - Response schemas
- crud.py - Organization create/read
- helpers.py - Member response building and seat re-billing shared with billing
- members.py - Member management endpoints (seat changes re-bill Stripe)
"""

from fastapi import APIRouter

from app.api.v1.organizations.crud import create_organization, get_organization
from app.api.v1.organizations.members import (
    add_member,
    list_members,
    remove_member,
    update_member_role,
)

router = APIRouter(prefix="/organizations", tags=["organizations"])

# Organization routes
router.add_api_route("", create_organization, methods=["POST"], status_code=201)
router.add_api_route("/{org_id}", get_organization, methods=["GET"])

# Member management routes
router.add_api_route("/{org_id}/members", list_members, methods=["GET"])
router.add_api_route("/{org_id}/members", add_member, methods=["POST"], status_code=201)
router.add_api_route("/{org_id}/members/{member_id}", update_member_role, methods=["PATCH"])
router.add_api_route(
    "/{org_id}/members/{member_id}", remove_member, methods=["DELETE"], status_code=204
)

__all__ = ["router"]
