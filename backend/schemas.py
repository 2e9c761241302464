"""
backend/schemas.py

Pydantic request schemas for the auth, project, user and milestone endpoints.
All string inputs are stripped of HTML tags and surrounding whitespace
before length checks run.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from backend.models import MilestoneStatus, ProjectMethod, Role, VerificationMethod

TAG_PATTERN = re.compile(r"<[^>]*>?")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^[0-9]{10}$")


def clean_text(value: Any) -> Any:
    """Strip HTML tags and surrounding whitespace from strings; pass others through."""
    if isinstance(value, str):
        return TAG_PATTERN.sub("", value).strip()
    return value


def _check_email(v: str) -> str:
    v = v.lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Please enter a valid email")
    return v


def _check_phone(v: str) -> str:
    if v and not PHONE_PATTERN.match(v):
        raise ValueError("Please enter a valid 10-digit phone number")
    return v


Email = Annotated[str, AfterValidator(_check_email)]
Phone = Annotated[str, AfterValidator(_check_phone)]


class CleanModel(BaseModel):
    """Base for request bodies: strings are cleaned, unknown keys ignored."""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    @field_validator("*", mode="before")
    @classmethod
    def strip_markup(cls, v):
        if isinstance(v, list):
            return [clean_text(item) for item in v]
        return clean_text(v)


# ========================================================================
# AUTH
# ========================================================================

class RegisterRequest(CleanModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: Email
    password: str = Field(..., min_length=6)
    confirm_password: str
    organization: Optional[str] = Field(None, max_length=200)
    phone: Optional[Phone] = None
    location: Optional[str] = Field(None, max_length=200)
    user_role: Optional[str] = Field(None, max_length=100)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v, info):
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("Passwords do not match")
        return v


class LoginRequest(CleanModel):
    email: Email
    password: str = Field(..., min_length=1)
    role: Literal["field", "verifier", "admin"] = "field"


class ProfileUpdateRequest(CleanModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    organization: Optional[str] = Field(None, max_length=200)
    phone: Optional[Phone] = None
    location: Optional[str] = Field(None, max_length=200)
    user_role: Optional[str] = Field(None, max_length=100)


class PasswordChangeRequest(CleanModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class ForgotPasswordRequest(CleanModel):
    email: Email


class ResetPasswordRequest(CleanModel):
    password: str = Field(..., min_length=6)


# ========================================================================
# PROJECTS
# ========================================================================

class SpeciesShareIn(CleanModel):
    species: str = Field(..., min_length=1, max_length=200)
    percentage: float = Field(..., ge=0, le=100)


class ProjectCreateRequest(CleanModel):
    """
    New project submission.

    area/vintage bounds are re-checked by the lifecycle rules (the vintage
    ceiling moves with the calendar year). coordinates are [lng, lat].
    """
    name: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    organization: str = Field(..., min_length=2, max_length=200)
    region: str = Field(..., min_length=2, max_length=100)
    area: float = Field(..., ge=0.1, le=10000)
    method: ProjectMethod
    vintage: int = Field(..., ge=2000)
    coordinates: Optional[List[float]] = None
    geo_data: Optional[Dict[str, Any]] = None
    species_mix: Optional[List[SpeciesShareIn]] = None
    tags: Optional[List[str]] = None
    image_base64: Optional[str] = None

    @field_validator("coordinates")
    @classmethod
    def lng_lat(cls, v):
        if v is None:
            return v
        if len(v) != 2:
            raise ValueError("Coordinates must be [longitude, latitude]")
        lng, lat = v
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            raise ValueError("Coordinates out of range")
        return v

    @field_validator("geo_data")
    @classmethod
    def geojson(cls, v):
        if v is not None and v.get("type") not in ("Feature", "FeatureCollection"):
            raise ValueError("geo_data must be a GeoJSON Feature or FeatureCollection")
        return v


class ProjectUpdateRequest(CleanModel):
    name: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, min_length=10, max_length=2000)
    organization: Optional[str] = Field(None, min_length=2, max_length=200)
    region: Optional[str] = Field(None, min_length=2, max_length=100)
    area: Optional[float] = None
    species_mix: Optional[List[SpeciesShareIn]] = None
    tags: Optional[List[str]] = None


class VerificationIn(CleanModel):
    verification_method: Optional[VerificationMethod] = None
    verification_report: Optional[str] = Field(None, max_length=5000)
    confidence: Optional[float] = Field(None, ge=0, le=100)


class StatusUpdateRequest(CleanModel):
    # Plain str: unknown values must reach the lifecycle check as an invalid status
    status: str
    comment: Optional[str] = Field(None, max_length=1000)
    credits: Optional[int] = Field(None, ge=0, le=100000)
    verification: Optional[VerificationIn] = None


class EvidenceIn(CleanModel):
    url: str
    public_id: str
    description: Optional[str] = Field(None, max_length=500)


class MilestoneCreateRequest(CleanModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    target_date: Optional[datetime] = None

    @field_validator("target_date")
    @classmethod
    def naive_utc(cls, v):
        if v is not None and v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class MilestoneStatusRequest(CleanModel):
    status: MilestoneStatus
    evidence: Optional[List[EvidenceIn]] = None


# ========================================================================
# USERS
# ========================================================================

class UserUpdateRequest(ProfileUpdateRequest):
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None


class UserStatusRequest(CleanModel):
    is_active: bool


class BulkUpdates(CleanModel):
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None


class BulkUserUpdateRequest(CleanModel):
    user_ids: List[str] = Field(..., min_length=1)
    updates: BulkUpdates
