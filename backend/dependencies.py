"""
backend/dependencies.py

Reusable FastAPI dependencies: database handle, evidence store, the
authenticated principal and service objects.

Credentials are read from the Authorization bearer header first and the
"token" cookie second.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from backend.auth_context import authenticate, authenticate_optional
from backend.authz import require_role
from backend.db import get_database
from backend.models import Principal
from backend.modules.projects import ProjectService
from backend.modules.users import AuthService, UserService
from backend.repositories import UserRepository
from backend.storage import CloudinaryEvidenceStore, EvidenceStore

# auto_error=False so the cookie fallback and anonymous reads still work
security = HTTPBearer(auto_error=False)

TOKEN_COOKIE = "token"

_store: Optional[EvidenceStore] = None


def get_db() -> Database:
    return get_database()


def get_evidence_store() -> EvidenceStore:
    """Process-wide Cloudinary store; tests override this dependency."""
    global _store
    if _store is None:
        _store = CloudinaryEvidenceStore()
    return _store


def get_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(TOKEN_COOKIE)


def require_principal(
    token: Optional[str] = Depends(get_token),
    db: Database = Depends(get_db),
) -> Principal:
    """
    Authenticated principal for protected endpoints.

    Raises (rendered by main.py):
        UnauthenticatedError / InvalidTokenError / AccountDeactivatedError (401)
        AccountLockedError (423)
    """
    return authenticate(token, UserRepository(db))


def optional_principal(
    token: Optional[str] = Depends(get_token),
    db: Database = Depends(get_db),
) -> Optional[Principal]:
    """Principal when a valid credential is present, else None."""
    return authenticate_optional(token, UserRepository(db))


def require_roles(*roles: str) -> Callable:
    """
    Dependency factory enforcing that the principal holds one of roles.

    Usage in routes:
        @router.get("/admin", dependencies=[Depends(require_roles("admin"))])
    """
    def _check_role(principal: Principal = Depends(require_principal)) -> Principal:
        return require_role(principal, roles)

    return _check_role


def get_project_service(
    db: Database = Depends(get_db),
    store: EvidenceStore = Depends(get_evidence_store),
) -> ProjectService:
    return ProjectService(db, store)


def get_user_service(
    db: Database = Depends(get_db),
    store: EvidenceStore = Depends(get_evidence_store),
) -> UserService:
    return UserService(db, store)


def get_auth_service(db: Database = Depends(get_db)) -> AuthService:
    return AuthService(db)
