"""
backend/routes_auth.py

Session endpoints: register, login, profile, password and reset flow, plus
the admin user listing/activation endpoints that live under /api/auth.

Security guarantees:
- Registration always creates a field user
- The reserved admin logs in with the fixed credential pair only and is
  never written to the users collection
- Tokens and passwords are never logged
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response

from backend.config import IS_DEV
from backend.dependencies import get_auth_service, get_user_service, require_principal
from backend.models import Principal
from backend.modules.users import AuthService, UserService
from backend.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserStatusRequest,
)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


@router.post("/register", status_code=201)
def register(req: RegisterRequest, auth: AuthService = Depends(get_auth_service)) -> Dict[str, Any]:
    result = auth.register(
        req.full_name,
        req.email,
        req.password,
        organization=req.organization,
        phone=req.phone,
        location=req.location,
        user_role=req.user_role,
    )
    return {"message": "User registered successfully", **result}


@router.post("/login")
def login(req: LoginRequest, auth: AuthService = Depends(get_auth_service)) -> Dict[str, Any]:
    result = auth.login(req.email, req.password, req.role)
    return {"message": "Login successful", **result}


@router.get("/me")
def me(
    principal: Principal = Depends(require_principal),
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    return {"user": auth.me(principal)}


@router.put("/profile")
def update_profile(
    req: ProfileUpdateRequest,
    principal: Principal = Depends(require_principal),
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, Any]:
    user = auth.update_profile(principal, req.model_dump(exclude_none=True))
    return {"message": "Profile updated successfully", "user": user}


@router.put("/password")
def change_password(
    req: PasswordChangeRequest,
    principal: Principal = Depends(require_principal),
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, str]:
    auth.change_password(principal, req.current_password, req.new_password)
    return {"message": "Password updated successfully"}


@router.post("/logout")
def logout(response: Response, principal: Principal = Depends(require_principal)) -> Dict[str, str]:
    # Tokens are stateless; clearing the cookie is all the server can do
    response.delete_cookie("token")
    return {"message": "Logged out successfully"}


@router.post("/forgot-password")
def forgot_password(req: ForgotPasswordRequest, auth: AuthService = Depends(get_auth_service)) -> Dict[str, Any]:
    token = auth.forgot_password(req.email)
    body: Dict[str, Any] = {"message": "If the email is registered, reset instructions have been sent"}
    if IS_DEV and token:
        # No mail delivery yet; dev builds hand the token back directly
        body["reset_token"] = token
    return body


@router.put("/reset-password/{reset_token}")
def reset_password(
    reset_token: str,
    req: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> Dict[str, str]:
    auth.reset_password(reset_token, req.password)
    return {"message": "Password reset successful"}


@router.get("/verify")
def verify(principal: Principal = Depends(require_principal)) -> Dict[str, Any]:
    return {"message": "Token is valid", "user": principal.model_dump()}


@router.get("/users")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    principal: Principal = Depends(require_principal),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    return users.list_users(principal, page, limit, role=role, is_active=is_active, search=search)


@router.put("/users/{user_id}/status")
def set_user_status(
    user_id: str,
    req: UserStatusRequest,
    principal: Principal = Depends(require_principal),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    user = users.set_active(principal, user_id, req.is_active)
    state = "activated" if req.is_active else "deactivated"
    return {"message": f"User {state} successfully", "user": user}
