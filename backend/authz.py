"""
backend/authz.py

Role and ownership checks over a Principal and a target resource.

Single source of truth for who may do what; every mutating project/user
operation passes through require_role() and/or require_owner_or_admin()
before it touches the store.

Roles: field (submits projects), verifier (reviews), admin (everything).

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

from typing import Iterable, Optional

from backend.config import IS_DEV
from backend.errors import ForbiddenError, UnauthenticatedError
from backend.models import Principal, Project, Role

REVIEWER_ROLES = {Role.admin.value, Role.verifier.value}
ADMIN_ONLY = {Role.admin.value}
FIELD_ONLY = {Role.field.value}


def require_principal(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise UnauthenticatedError()
    return principal


def require_role(principal: Optional[Principal], allowed_roles: Iterable[str]) -> Principal:
    """
    Require the principal's role to be one of allowed_roles.

    Raises:
        UnauthenticatedError: no principal
        ForbiddenError: role not allowed
    """
    principal = require_principal(principal)
    allowed = {str(r.value if isinstance(r, Role) else r) for r in allowed_roles}
    if principal.role not in allowed:
        if IS_DEV:
            print(f"[AUTHZ] Role denied: user_id={principal.id}, role={principal.role}, "
                  f"allowed={sorted(allowed)}")
        raise ForbiddenError(f"Access denied. Required role: {' or '.join(sorted(allowed))}")
    return principal


def is_owner_or_admin(principal: Optional[Principal], owner_id: Optional[str]) -> bool:
    if principal is None:
        return False
    if principal.is_admin:
        return True
    return owner_id is not None and principal.id == str(owner_id)


def require_owner_or_admin(principal: Optional[Principal], owner_id: Optional[str]) -> Principal:
    """
    Admins pass; everyone else must own the resource.

    Raises:
        UnauthenticatedError: no principal
        ForbiddenError: not the owner
    """
    principal = require_principal(principal)
    if not is_owner_or_admin(principal, owner_id):
        if IS_DEV:
            print(f"[AUTHZ] Ownership denied: user_id={principal.id}, owner_id={owner_id}")
        raise ForbiddenError("Access denied. You can only access your own resources.")
    return principal


def can_view_project(principal: Optional[Principal], project: Project) -> bool:
    """Public projects are visible to all; private ones to the owner and admins."""
    if project.is_public:
        return True
    return is_owner_or_admin(principal, project.submitted_by)


def require_view_project(principal: Optional[Principal], project: Project) -> None:
    if not can_view_project(principal, project):
        raise ForbiddenError("Access denied")
