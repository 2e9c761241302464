"""
backend/modules/users.py

Accounts and user administration.

AuthService covers registration, login (with lockout), profile and
password changes and the reset-token flow. UserService covers the admin
and self-service user endpoints. Users are never hard-deleted: deletion
flips status to deactivated and records the email in historical_email.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from backend.auth_context import (
    ADMIN_PRINCIPAL,
    ADMIN_SUBJECT,
    create_access_token,
    generate_reset_token,
    hash_password,
    hash_token,
    verify_password,
)
from backend.authz import ADMIN_ONLY, require_owner_or_admin, require_role
from backend.config import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    IS_DEV,
    LOCK_MINUTES,
    MAX_LOGIN_ATTEMPTS,
    RESET_TOKEN_MINUTES,
)
from backend.errors import (
    AccountDeactivatedError,
    AccountLockedError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StorageError,
    UnauthenticatedError,
    ValidationError,
)
from backend.models import EvidenceRef, Principal, ProjectStatus, Role, User, UserStatus, utcnow
from backend.modules import reporting
from backend.modules.projects import clamp_page, contains, paginate
from backend.repositories import ProjectRepository, UserRepository
from backend.storage import EvidenceStore, UploadPayload, validate_upload

PROFILE_FIELDS = ("full_name", "organization", "phone", "location", "user_role")
ADMIN_USER_FIELDS = ("role", "is_active", "is_verified")
BULK_FIELDS = ("is_active", "is_verified", "role")
ACTIVE_PROJECT_STATUSES = [
    ProjectStatus.pending.value,
    ProjectStatus.approved.value,
    ProjectStatus.under_review.value,
]


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def admin_user() -> Dict[str, Any]:
    """Public view of the reserved admin identity."""
    return {
        "id": ADMIN_SUBJECT,
        "email": ADMIN_PRINCIPAL.email,
        "role": Role.admin.value,
        "full_name": ADMIN_PRINCIPAL.full_name,
    }


class AuthService:
    def __init__(self, db: Database):
        self.users = UserRepository(db)

    def register(self, full_name: str, email: str, password: str, **profile) -> Dict[str, Any]:
        """Register a field user and return {"token", "user"}."""
        email_norm = normalize_email(email)
        if email_norm == ADMIN_EMAIL or self.users.email_taken(email_norm):
            print("[AUTH] Registration rejected: email already registered")
            raise ConflictError("User already exists with this email")

        user = User(
            full_name=full_name,
            email=email_norm,
            password_hash=hash_password(password),
            role=Role.field,
            **{k: v for k, v in profile.items() if k in PROFILE_FIELDS and v is not None},
        )
        self.users.insert(user)
        print(f"[AUTH] Registered: user_id={user.id}")
        return {"token": create_access_token(user.id, user.role), "user": user.public()}

    def login(self, email: str, password: str, role: str = Role.field.value) -> Dict[str, Any]:
        email_norm = normalize_email(email)

        if role == Role.admin.value:
            if email_norm == ADMIN_EMAIL and password == ADMIN_PASSWORD:
                print("[AUTH] Reserved admin login")
                return {"token": create_access_token(ADMIN_SUBJECT, Role.admin.value), "user": admin_user()}
            print("[AUTH] Reserved admin login failed")
            raise UnauthenticatedError("Invalid admin credentials")

        user = self.users.find_active_by_email(email_norm)
        if user is None:
            if self.users.find_by_email(email_norm) is not None:
                print("[AUTH] Login blocked, account deactivated")
                raise AccountDeactivatedError()
            print("[AUTH] Login failed: user not found by email")
            raise UnauthenticatedError("Invalid credentials")

        now = utcnow()
        if user.is_locked(now):
            print(f"[AUTH] Login blocked, account locked: user_id={user.id}")
            raise AccountLockedError()
        if user.lock_until is not None:
            # Lock window has passed; start counting afresh
            user = self.users.update_fields(user.id, {"lock_until": None, "login_attempts": 0})

        if not verify_password(password, user.password_hash):
            attempts = self.users.increment_login_attempts(user.id)
            if attempts >= MAX_LOGIN_ATTEMPTS:
                self.users.update_fields(user.id, {"lock_until": now + timedelta(minutes=LOCK_MINUTES)})
                print(f"[AUTH] Account locked after {attempts} failed attempts: user_id={user.id}")
            else:
                print(f"[AUTH] Login failed: user_id={user.id}, attempts={attempts}")
            raise UnauthenticatedError("Invalid credentials")

        user = self.users.update_fields(user.id, {"login_attempts": 0, "lock_until": None, "last_login": now})
        if IS_DEV:
            print(f"[AUTH] Login ok: user_id={user.id}")
        return {"token": create_access_token(user.id, user.role), "user": user.public()}

    def me(self, principal: Principal) -> Dict[str, Any]:
        if principal.id == ADMIN_SUBJECT:
            return admin_user()
        user = self.users.get(principal.id)
        if user is None:
            raise NotFoundError("User not found")
        return user.public()

    def update_profile(self, principal: Principal, changes: Dict[str, Any]) -> Dict[str, Any]:
        if principal.id == ADMIN_SUBJECT:
            raise ForbiddenError("The reserved admin profile cannot be changed")
        fields = {k: v for k, v in changes.items() if k in PROFILE_FIELDS and v is not None}
        if not fields:
            return self.me(principal)
        return self.users.update_fields(principal.id, fields).public()

    def change_password(self, principal: Principal, current_password: str, new_password: str) -> None:
        if principal.id == ADMIN_SUBJECT:
            raise ForbiddenError("The reserved admin password cannot be changed")
        user = self.users.get(principal.id)
        if user is None:
            raise NotFoundError("User not found")
        if not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")
        self.users.update_fields(user.id, {"password_hash": hash_password(new_password)})
        print(f"[AUTH] Password changed: user_id={user.id}")

    def forgot_password(self, email: str) -> Optional[str]:
        """
        Issue a reset token for an active user. Returns the raw token (callers
        decide whether to expose it) or None when no such user exists.
        """
        user = self.users.find_active_by_email(normalize_email(email))
        if user is None:
            print("[AUTH] Reset requested for unknown email")
            return None
        token = generate_reset_token()
        self.users.update_fields(user.id, {
            "reset_password_token": hash_token(token),
            "reset_password_expires": utcnow() + timedelta(minutes=RESET_TOKEN_MINUTES),
        })
        print(f"[AUTH] Reset token issued: user_id={user.id}")
        return token

    def reset_password(self, token: str, new_password: str) -> None:
        user = self.users.find_by_reset_token(hash_token(token), utcnow())
        if user is None:
            raise ValidationError("Invalid or expired reset token")
        self.users.update_fields(user.id, {
            "password_hash": hash_password(new_password),
            "reset_password_token": None,
            "reset_password_expires": None,
            "login_attempts": 0,
            "lock_until": None,
        })
        print(f"[AUTH] Password reset: user_id={user.id}")


class UserService:
    def __init__(self, db: Database, store: EvidenceStore):
        self.db = db
        self.users = UserRepository(db)
        self.projects = ProjectRepository(db)
        self.store = store

    def load(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _activation_fields(self, user: User, is_active: bool) -> Dict[str, Any]:
        if is_active:
            email = user.historical_email or user.email
            if self.users.email_taken(email, exclude_id=user.id):
                raise ConflictError("Another active user already uses this email")
            return {"status": UserStatus.active.value, "email": email, "deleted_at": None}
        return {"status": UserStatus.deactivated.value}

    def list_users(self, principal: Principal, page: Optional[int] = None, limit: Optional[int] = None,
                   role: Optional[str] = None, is_active: Optional[bool] = None,
                   search: Optional[str] = None) -> Dict[str, Any]:
        require_role(principal, ADMIN_ONLY)
        page, limit = clamp_page(page, limit)
        query: Dict[str, Any] = {}
        if role:
            query["role"] = role
        if is_active is not None:
            query["status"] = UserStatus.active.value if is_active else UserStatus.deactivated.value
        if search:
            query["$or"] = [{f: contains(search)} for f in ("full_name", "email", "organization")]

        total = self.users.count(query)
        users = self.users.find(query, skip=(page - 1) * limit, limit=limit)
        return {"users": [u.public() for u in users], "pagination": paginate(total, page, limit)}

    def get_user(self, principal: Principal, user_id: str) -> Dict[str, Any]:
        require_owner_or_admin(principal, user_id)
        user = self.load(user_id)
        projects = [
            {"id": p.id, "name": p.name, "status": p.status, "credits": p.credits,
             "area": p.area, "created_at": p.created_at}
            for p in self.projects.find({"_id": {"$in": user.projects}})
        ]
        data = user.public()
        data["projects"] = projects
        return {"user": data, "statistics": reporting.status_breakdown(self.db, {"submitted_by": user.id})}

    def update_user(self, principal: Principal, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        require_owner_or_admin(principal, user_id)
        user = self.load(user_id)

        allowed = PROFILE_FIELDS + (ADMIN_USER_FIELDS if principal.is_admin else ())
        fields = {k: v for k, v in changes.items() if k in allowed and v is not None}
        if "is_active" in fields:
            fields.update(self._activation_fields(user, fields.pop("is_active")))
        if not fields:
            return user.public()

        updated = self.users.update_fields(user.id, fields)
        print(f"[USERS] Updated: user_id={user.id}, fields={sorted(fields)}, by={principal.id}")
        return updated.public()

    def set_active(self, principal: Principal, user_id: str, is_active: bool) -> Dict[str, Any]:
        require_role(principal, ADMIN_ONLY)
        user = self.load(user_id)
        updated = self.users.update_fields(user.id, self._activation_fields(user, is_active))
        print(f"[USERS] Active flag set: user_id={user.id}, is_active={is_active}")
        return updated.public()

    def delete_user(self, principal: Principal, user_id: str) -> None:
        """Soft delete: deactivate and keep the email in historical_email."""
        require_role(principal, ADMIN_ONLY)
        user = self.load(user_id)
        if user.role == Role.admin.value:
            raise ForbiddenError("Cannot delete admin users")

        active = self.projects.count({"submitted_by": user.id, "status": {"$in": ACTIVE_PROJECT_STATUSES}})
        if active > 0:
            raise ValidationError(
                f"Cannot delete user with {active} active projects. Please resolve or transfer projects first."
            )

        if user.profile_image is not None:
            try:
                self.store.delete(user.profile_image.public_id, "image")
            except StorageError as e:
                print(f"[USERS] Profile image release failed, continuing: user_id={user.id}, error={e}")

        self.users.update_fields(user.id, {
            "status": UserStatus.deactivated.value,
            "deleted_at": utcnow(),
            "historical_email": user.historical_email or user.email,
        })
        print(f"[USERS] Deactivated (deleted): user_id={user.id}, by={principal.id}")

    def user_stats(self, principal: Principal, user_id: str) -> Dict[str, Any]:
        require_owner_or_admin(principal, user_id)
        return reporting.user_statistics(self.db, user_id)

    def bulk_update(self, principal: Principal, user_ids: List[str], updates: Dict[str, Any]) -> Dict[str, int]:
        require_role(principal, ADMIN_ONLY)
        valid = {k: v for k, v in updates.items() if k in BULK_FIELDS}
        if not valid:
            raise ValidationError("No valid updates provided")
        if "role" in valid and valid["role"] not in {r.value for r in Role}:
            raise ValidationError(f"Invalid role: {valid['role']}")

        matched = 0
        modified = 0
        for user in self.users.find({"_id": {"$in": list(user_ids)}}):
            matched += 1
            fields = dict(valid)
            if "is_active" in fields:
                fields.update(self._activation_fields(user, fields.pop("is_active")))
            current = user.model_dump()
            if any(current.get(k) != v for k, v in fields.items()):
                self.users.update_fields(user.id, fields)
                modified += 1

        print(f"[USERS] Bulk update: matched={matched}, modified={modified}, by={principal.id}")
        return {"matched_count": matched, "modified_count": modified}

    def upload_profile_image(self, principal: Principal, user_id: str, file: UploadPayload) -> Dict[str, Any]:
        require_owner_or_admin(principal, user_id)
        user = self.load(user_id)
        validate_upload("image", file.content_type, file.size)

        stored = self.store.upload(file.data, "profiles", "image")
        if user.profile_image is not None:
            try:
                self.store.delete(user.profile_image.public_id, "image")
            except StorageError as e:
                print(f"[USERS] Old profile image release failed: user_id={user.id}, error={e}")

        image = EvidenceRef(**stored)
        updated = self.users.update_fields(user.id, {"profile_image": image.model_dump()})
        return updated.public()
