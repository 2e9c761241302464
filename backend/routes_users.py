"""
backend/routes_users.py

User administration and self-service endpoints.

Security guarantees:
- Listing, deletion and bulk updates are admin only
- Reads, updates, stats and profile images need self or admin
- Role/active/verified changes are honoured for admins only
- /bulk is declared before /{user_id}
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from backend.dependencies import get_user_service, require_principal
from backend.models import Principal
from backend.modules.users import UserService
from backend.schemas import BulkUserUpdateRequest, UserUpdateRequest
from backend.storage import UploadPayload

router = APIRouter(
    prefix="/api/users",
    tags=["users"],
)


@router.get("")
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


@router.put("/bulk")
def bulk_update(
    req: BulkUserUpdateRequest,
    principal: Principal = Depends(require_principal),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    result = users.bulk_update(principal, req.user_ids, req.updates.model_dump(exclude_none=True))
    return {"message": f"{result['modified_count']} users updated successfully", **result}


@router.get("/{user_id}")
def get_user(
    user_id: str,
    principal: Principal = Depends(require_principal),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    return users.get_user(principal, user_id)


@router.put("/{user_id}")
def update_user(
    user_id: str,
    req: UserUpdateRequest,
    principal: Principal = Depends(require_principal),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    user = users.update_user(principal, user_id, req.model_dump(exclude_none=True))
    return {"message": "User updated successfully", "user": user}


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    principal: Principal = Depends(require_principal),
    users: UserService = Depends(get_user_service),
) -> Dict[str, str]:
    users.delete_user(principal, user_id)
    return {"message": "User deactivated successfully"}


@router.get("/{user_id}/stats")
def user_stats(
    user_id: str,
    principal: Principal = Depends(require_principal),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    return users.user_stats(principal, user_id)


@router.post("/{user_id}/profile-image")
def upload_profile_image(
    user_id: str,
    profile_image: UploadFile = File(...),
    principal: Principal = Depends(require_principal),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    payload = UploadPayload(
        data=profile_image.file.read(),
        content_type=profile_image.content_type or "",
        filename=profile_image.filename or "",
    )
    user = users.upload_profile_image(principal, user_id, payload)
    return {"message": "Profile image updated successfully", "user": user}
