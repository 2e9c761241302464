from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid


def utcnow() -> datetime:
    """Naive UTC timestamp (the form MongoDB hands back)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


# Enums
class Role(str, Enum):
    field = "field"
    verifier = "verifier"
    admin = "admin"


class UserStatus(str, Enum):
    active = "active"
    deactivated = "deactivated"


class ProjectStatus(str, Enum):
    pending = "pending"
    under_review = "under_review"
    approved = "approved"
    rejected = "rejected"
    verified = "verified"


class ProjectMethod(str, Enum):
    plantation = "plantation"
    natural_regeneration = "natural_regeneration"
    mixed = "mixed"


class MilestoneStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    delayed = "delayed"


class ReviewType(str, Enum):
    approval = "approval"
    rejection = "rejection"
    revision_request = "revision_request"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class VerificationMethod(str, Enum):
    satellite = "satellite"
    drone = "drone"
    ground_survey = "ground_survey"
    mixed = "mixed"


class _Document(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True, extra="ignore")

    def to_document(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["_id"] = data.pop("id")
        return data

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]):
        if doc is None:
            return None
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return cls(**data)


# Embedded values
class EvidenceRef(BaseModel):
    url: str
    public_id: str
    description: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=utcnow)


class GeoPoint(BaseModel):
    type: str = "Point"
    coordinates: List[float]  # [lng, lat]


class SpeciesShare(BaseModel):
    species: str
    percentage: float


class Milestone(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=new_id)
    title: str
    description: Optional[str] = None
    target_date: Optional[datetime] = None
    status: MilestoneStatus = MilestoneStatus.pending
    completed_date: Optional[datetime] = None
    evidence: List[EvidenceRef] = Field(default_factory=list)


class ReviewComment(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    comment: str
    reviewed_by: str
    reviewed_at: datetime = Field(default_factory=utcnow)
    type: ReviewType


class VerificationData(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    verification_method: Optional[VerificationMethod] = None
    verification_report: Optional[str] = None
    confidence: Optional[float] = None


class CarbonData(BaseModel):
    soil_carbon: Optional[float] = None
    biomass_carbon: Optional[float] = None
    total_carbon: Optional[float] = None
    carbon_per_hectare: Optional[float] = None
    measurement_date: Optional[datetime] = None
    measurement_method: Optional[str] = None


class BiodiversityMetrics(BaseModel):
    species_count: Optional[int] = None
    endemic_species: Optional[int] = None
    threatened_species: Optional[int] = None
    survey_date: Optional[datetime] = None


class GenderDistribution(BaseModel):
    male: int = 0
    female: int = 0
    other: int = 0


class SocialImpact(BaseModel):
    communities_involved: Optional[int] = None
    jobs_created: Optional[int] = None
    beneficiaries: Optional[int] = None
    gender_distribution: Optional[GenderDistribution] = None


# Principal: resolved identity for a single request
class Principal(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True)

    id: str
    role: Role
    email: str
    full_name: Optional[str] = None
    is_active: bool = True
    is_locked: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin


# Stored documents
class User(_Document):
    id: str = Field(default_factory=new_id)
    full_name: str
    email: str
    password_hash: str
    role: Role = Role.field
    status: UserStatus = UserStatus.active
    historical_email: Optional[str] = None
    deleted_at: Optional[datetime] = None
    login_attempts: int = 0
    lock_until: Optional[datetime] = None
    organization: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    user_role: Optional[str] = None
    is_verified: bool = False
    profile_image: Optional[EvidenceRef] = None
    last_login: Optional[datetime] = None
    total_credits: int = 0
    total_area: float = 0.0
    projects: List[str] = Field(default_factory=list)
    reset_password_token: Optional[str] = None
    reset_password_expires: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.active

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        return bool(self.lock_until and self.lock_until > (now or utcnow()))

    def public(self) -> Dict[str, Any]:
        """User fields safe to return over the API."""
        data = self.model_dump(exclude={"password_hash", "reset_password_token", "reset_password_expires"})
        data["is_active"] = self.is_active
        return data


class Project(_Document):
    id: str = Field(default_factory=new_id)
    name: str
    description: str
    organization: str
    region: str
    area: float
    method: ProjectMethod
    vintage: int
    status: ProjectStatus = ProjectStatus.pending
    credits: int = 0
    estimated_credits: int = 0
    submitted_by: str
    location: Optional[GeoPoint] = None
    geo_data: Optional[Dict[str, Any]] = None
    species_mix: List[SpeciesShare] = Field(default_factory=list)
    milestones: List[Milestone] = Field(default_factory=list)
    review_comments: List[ReviewComment] = Field(default_factory=list)
    images: List[EvidenceRef] = Field(default_factory=list)
    documents: List[EvidenceRef] = Field(default_factory=list)
    verification_data: Optional[VerificationData] = None
    carbon_data: Optional[CarbonData] = None
    biodiversity_metrics: Optional[BiodiversityMetrics] = None
    social_impact: Optional[SocialImpact] = None
    is_public: bool = True
    priority: Priority = Priority.medium
    tags: List[str] = Field(default_factory=list)
    last_updated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def credits_per_hectare(self) -> float:
        if not self.area or not self.credits:
            return 0
        return round(self.credits / self.area, 2)

    def completion_percentage(self) -> int:
        if not self.milestones:
            return 0
        done = sum(1 for m in self.milestones if m.status == MilestoneStatus.completed)
        return round(done / len(self.milestones) * 100)

    def age_in_days(self, now: Optional[datetime] = None) -> int:
        return ((now or utcnow()) - self.created_at).days

    def public(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["credits_per_hectare"] = self.credits_per_hectare()
        data["completion_percentage"] = self.completion_percentage()
        data["age_in_days"] = self.age_in_days()
        return data


class CreditGrant(BaseModel):
    """One ledger row per project: the credits currently granted to its owner."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    project_id: str
    user_id: str
    credits: int
    area: float
    status: ProjectStatus
    granted_by: str
    granted_at: datetime = Field(default_factory=utcnow)
