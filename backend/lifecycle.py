"""
backend/lifecycle.py

Project lifecycle rules: status transitions, credit issuance, field edits,
deletion guard, milestones and the credit estimate.

States: pending (initial), under_review, approved, rejected, verified.
Transitions are permissive (any state to any state) except that nothing
leaves verified. Credits only change inside a transition into approved or
verified, and that transition yields a CreditGrant for the ledger.

Functions here mutate the Project model they are handed and never touch the
store; backend/modules/projects.py persists the result.

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from backend.authz import FIELD_ONLY, REVIEWER_ROLES, require_owner_or_admin, require_role
from backend.errors import ForbiddenError, InvalidStatusError, NotFoundError, ValidationError
from backend.models import (
    CreditGrant,
    EvidenceRef,
    Milestone,
    MilestoneStatus,
    Principal,
    Project,
    ProjectMethod,
    ProjectStatus,
    ReviewComment,
    ReviewType,
    SpeciesShare,
    VerificationData,
    utcnow,
)

PROJECT_STATUSES = [s.value for s in ProjectStatus]
MILESTONE_STATUSES = [s.value for s in MilestoneStatus]
TERMINAL_STATUSES = {ProjectStatus.verified.value}
CREDIT_STATUSES = {ProjectStatus.approved.value, ProjectStatus.verified.value}

# Credits per hectare by restoration method
METHOD_RATES = {
    ProjectMethod.plantation.value: 15,
    ProjectMethod.natural_regeneration.value: 12,
    ProjectMethod.mixed.value: 13.5,
}

EDITABLE_FIELDS = ("name", "description", "area", "region", "organization", "species_mix", "tags")

MIN_AREA = 0.1
MAX_AREA = 10000
MIN_VINTAGE = 2000
MAX_VINTAGE_AHEAD = 5
SPECIES_TOTAL = 100
SPECIES_TOLERANCE = 0.1
MILESTONE_TITLE_MIN = 3
MILESTONE_TITLE_MAX = 200


# ============================================================================
# Invariants + estimate
# ============================================================================

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_credits(area: float, method: str, vintage: int, current_year: Optional[int] = None) -> int:
    """
    Estimated credits = round(area * method rate * vintage multiplier).

    The multiplier is min(1, 0.7 + 0.1 * (current_year - vintage)). It is only
    clamped from above, so far-future vintages push it below 0.7.

    Example:
        estimate_credits(50, "plantation", 2026, 2026) -> 525
    """
    if method not in METHOD_RATES:
        raise ValidationError(f"Invalid method: {method}")
    year = current_year if current_year is not None else utcnow().year
    base = area * METHOD_RATES[method]
    multiplier = min(1, 0.7 + 0.1 * (year - vintage))
    return round_half_up(base * multiplier)


def validate_area(area: float) -> None:
    if area is None or not (MIN_AREA <= area <= MAX_AREA):
        raise ValidationError(f"Area must be between {MIN_AREA} and {MAX_AREA} hectares")


def validate_vintage(vintage: int, current_year: Optional[int] = None) -> None:
    year = current_year if current_year is not None else utcnow().year
    if not (MIN_VINTAGE <= vintage <= year + MAX_VINTAGE_AHEAD):
        raise ValidationError(f"Vintage must be between {MIN_VINTAGE} and {year + MAX_VINTAGE_AHEAD}")


def validate_species_mix(species_mix: Iterable[Any]) -> List[SpeciesShare]:
    """
    Coerce and check a species list: each share in [0, 100], total 100 +/- 0.1.
    An empty list is valid.
    """
    shares = [s if isinstance(s, SpeciesShare) else SpeciesShare(**s) for s in (species_mix or [])]
    if not shares:
        return shares
    for share in shares:
        if not share.species or not share.species.strip():
            raise ValidationError("Species name is required")
        if not (0 <= share.percentage <= 100):
            raise ValidationError("Species percentage must be between 0 and 100")
    total = sum(s.percentage for s in shares)
    if abs(total - SPECIES_TOTAL) > SPECIES_TOLERANCE:
        raise ValidationError("Species mix percentages must total 100%")
    return shares


# ============================================================================
# Status transitions
# ============================================================================

def can_transition(current: str, new: str) -> bool:
    """Permissive state machine: any status may move anywhere except out of verified."""
    if new not in PROJECT_STATUSES:
        return False
    return current not in TERMINAL_STATUSES


def review_type_for(status: str) -> str:
    if status == ProjectStatus.approved.value:
        return ReviewType.approval.value
    if status == ProjectStatus.rejected.value:
        return ReviewType.rejection.value
    return ReviewType.revision_request.value


def apply_status(
    project: Project,
    new_status: str,
    principal: Principal,
    comment: Optional[str] = None,
    credits: Optional[int] = None,
    verification: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Optional[CreditGrant]:
    """
    Move a project to new_status on behalf of an admin/verifier.

    Returns the CreditGrant to record when credits were issued, else None.

    Raises:
        ForbiddenError: principal is not admin/verifier
        InvalidStatusError: unknown status, or project already verified
        ValidationError: negative credits
    """
    require_role(principal, REVIEWER_ROLES)

    if new_status not in PROJECT_STATUSES:
        raise InvalidStatusError(f"Invalid status: {new_status}")
    if not can_transition(project.status, new_status):
        raise InvalidStatusError(f"Cannot change status of a {project.status} project")

    now = now or utcnow()
    grant = None

    if credits is not None and new_status in CREDIT_STATUSES:
        if credits < 0:
            raise ValidationError("Credits must be a non-negative integer")
        project.credits = int(credits)
        grant = CreditGrant(
            project_id=project.id,
            user_id=project.submitted_by,
            credits=project.credits,
            area=project.area,
            status=new_status,
            granted_by=principal.id,
            granted_at=now,
        )

    if comment:
        project.review_comments.append(ReviewComment(
            comment=comment,
            reviewed_by=principal.id,
            reviewed_at=now,
            type=review_type_for(new_status),
        ))

    if new_status == ProjectStatus.verified.value and verification is not None:
        data = dict(verification)
        data["verified_by"] = principal.id
        data["verified_at"] = now
        project.verification_data = VerificationData(**data)

    project.status = new_status
    project.last_updated_by = principal.id
    return grant


# ============================================================================
# Field edits + deletion guard
# ============================================================================

def apply_field_patch(project: Project, patch: Dict[str, Any], principal: Principal,
                      current_year: Optional[int] = None) -> List[str]:
    """
    Apply owner/admin edits from the allow-list; other keys are ignored.

    Returns the names of the fields that were changed.
    """
    require_owner_or_admin(principal, project.submitted_by)
    if project.status == ProjectStatus.verified.value and not principal.is_admin:
        raise ForbiddenError("Verified projects cannot be edited")

    changed = []
    for key in EDITABLE_FIELDS:
        if key not in patch or patch[key] is None:
            continue
        value = patch[key]
        if key == "area":
            validate_area(value)
        elif key == "species_mix":
            value = validate_species_mix(value)
        setattr(project, key, value)
        changed.append(key)

    if "area" in changed:
        project.estimated_credits = estimate_credits(project.area, project.method, project.vintage, current_year)

    project.last_updated_by = principal.id
    return changed


def check_deletable(project: Project, principal: Principal) -> None:
    """Owner or admin may delete, but nobody deletes a verified project."""
    require_owner_or_admin(principal, project.submitted_by)
    if project.status == ProjectStatus.verified.value:
        raise ForbiddenError("Verified projects cannot be deleted")


def check_creatable(principal: Principal) -> None:
    require_role(principal, FIELD_ONLY)


# ============================================================================
# Milestones
# ============================================================================

def add_milestone(
    project: Project,
    principal: Principal,
    title: str,
    description: Optional[str] = None,
    target_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Milestone:
    require_owner_or_admin(principal, project.submitted_by)

    title = (title or "").strip()
    if not (MILESTONE_TITLE_MIN <= len(title) <= MILESTONE_TITLE_MAX):
        raise ValidationError(
            f"Milestone title must be between {MILESTONE_TITLE_MIN} and {MILESTONE_TITLE_MAX} characters"
        )
    now = now or utcnow()
    if target_date is not None and target_date < now:
        raise ValidationError("Target date must be in the future")

    milestone = Milestone(title=title, description=description, target_date=target_date)
    project.milestones.append(milestone)
    project.last_updated_by = principal.id
    return milestone


def update_milestone_status(
    project: Project,
    milestone_id: str,
    new_status: str,
    principal: Principal,
    evidence: Optional[List[EvidenceRef]] = None,
    now: Optional[datetime] = None,
) -> Milestone:
    """
    Set a milestone's status. completed_date is stamped on a move to completed
    and is left in place by any later status.
    """
    require_owner_or_admin(principal, project.submitted_by)
    if new_status not in MILESTONE_STATUSES:
        raise ValidationError(f"Invalid milestone status: {new_status}")

    milestone = next((m for m in project.milestones if m.id == milestone_id), None)
    if milestone is None:
        raise NotFoundError("Milestone not found")

    milestone.status = new_status
    if new_status == MilestoneStatus.completed.value:
        milestone.completed_date = now or utcnow()
    if evidence:
        milestone.evidence.extend(evidence)

    project.last_updated_by = principal.id
    return milestone
