"""API dependencies."""

from .auth import (
    CurrentUser,
    DbSession,
    get_current_user,
    get_jwks,
    get_signing_key,
    security,
)
from .organization import OrgAccess, require_org_access

__all__ = [
    # Auth
    "security",
    "get_jwks",
    "get_signing_key",
    "get_current_user",
    "DbSession",
    "CurrentUser",
    # Organization
    "OrgAccess",
    "require_org_access",
]
