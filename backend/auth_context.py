"""
backend/auth_context.py

Identity primitives: token issue/verify, password hashing and the mapping
from a bearer credential to a Principal.

Contains:
- ADMIN_PRINCIPAL: the reserved admin identity, never stored
- create_access_token / verify_token: JWT handling
- hash_password / verify_password, hash_token: credential hashing
- authenticate / authenticate_optional: token -> Principal

The reserved "admin" subject is resolved before any store access in both
authenticate paths.

This module MUST NOT import FastAPI; request plumbing lives in
backend/dependencies.py.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from backend.config import (
    ACCESS_TOKEN_DAYS,
    ADMIN_EMAIL,
    ALGORITHM,
    IS_DEV,
    SECRET_KEY,
)
from backend.errors import (
    AccountDeactivatedError,
    AccountLockedError,
    InvalidTokenError,
    MRVError,
    UnauthenticatedError,
)
from backend.models import Principal, Role, User
from backend.repositories import UserRepository

ADMIN_SUBJECT = "admin"

ADMIN_PRINCIPAL = Principal(
    id=ADMIN_SUBJECT,
    role=Role.admin,
    email=ADMIN_EMAIL,
    full_name="Admin User",
)

PBKDF2_ITERATIONS = 100_000


# ---------------------------------------------------------
# Password + token hashing
# ---------------------------------------------------------
def hash_password(password: str) -> str:
    """Salted PBKDF2-SHA256, stored as "salt$hexdigest"."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash or "$" not in password_hash:
        return False
    salt, expected = password_hash.split("$", 1)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return hmac.compare_digest(digest.hex(), expected)


def generate_reset_token() -> str:
    """High-entropy reset token (not logged)."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Hash a token for secure storage (SHA-256)."""
    return hashlib.sha256(token.encode()).hexdigest()


# ---------------------------------------------------------
# JWT
# ---------------------------------------------------------
def create_access_token(subject: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + timedelta(days=ACCESS_TOKEN_DAYS),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify a JWT access token and return the decoded payload.

    Raises:
        InvalidTokenError: expired, badly signed or malformed token
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError("Token expired")
    except jwt.InvalidTokenError:
        raise InvalidTokenError("Invalid token")


# ---------------------------------------------------------
# Principal resolution
# ---------------------------------------------------------
def principal_for(user: User) -> Principal:
    return Principal(
        id=user.id,
        role=user.role,
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
        is_locked=user.is_locked(),
    )


def authenticate(token: Optional[str], users: UserRepository) -> Principal:
    """
    Resolve a bearer credential to a Principal.

    Raises:
        UnauthenticatedError: no token
        InvalidTokenError: bad signature/expiry, missing subject, unknown user
        AccountDeactivatedError: user is deactivated
        AccountLockedError: user is inside a lockout window
    """
    if not token:
        raise UnauthenticatedError()

    payload = verify_token(token)
    subject = payload.get("sub")
    if not subject:
        print("[AUTH] Missing subject in token payload")
        raise InvalidTokenError("Invalid token payload")

    if subject == ADMIN_SUBJECT:
        return ADMIN_PRINCIPAL

    user = users.get(str(subject))
    if user is None:
        print(f"[AUTH] User not found: user_id={subject}")
        raise InvalidTokenError("Invalid token. User not found.")

    if not user.is_active:
        print(f"[AUTH] Deactivated user attempted access: user_id={user.id}")
        raise AccountDeactivatedError()

    if user.is_locked():
        print(f"[AUTH] Locked user attempted access: user_id={user.id}")
        raise AccountLockedError()

    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={user.id}, role={user.role}")
    return principal_for(user)


def authenticate_optional(token: Optional[str], users: UserRepository) -> Optional[Principal]:
    """Like authenticate(), but any failure yields None (anonymous)."""
    if not token:
        return None
    try:
        return authenticate(token, users)
    except MRVError as e:
        if IS_DEV:
            print(f"[AUTH] Optional auth ignored: {e.kind}")
        return None
