"""
backend/modules/projects.py

Project operations: create, read/list, status changes with credit
issuance, field edits, deletion, evidence uploads and milestones.

Each operation loads the project, runs the matching rule in
backend/lifecycle.py (which performs the role/ownership checks) and then
persists. Credits go through the CreditLedger so repeated approvals adjust
user totals by the difference only.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database

from backend import lifecycle
from backend.authz import REVIEWER_ROLES, require_owner_or_admin, require_role, require_view_project
from backend.config import IS_DEV, MAX_FILES_PER_UPLOAD
from backend.errors import InvalidStatusError, NotFoundError, StorageError, ValidationError
from backend.models import (
    CreditGrant,
    EvidenceRef,
    GeoPoint,
    Milestone,
    Principal,
    Project,
    utcnow,
)
from backend.repositories import CreditLedger, ProjectRepository, UserRepository
from backend.storage import EvidenceStore, UploadPayload, parse_data_uri, validate_upload

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
REVIEW_PAGE_SIZE = 20

SUBMITTER_FIELDS = ("full_name", "email", "organization", "location")


def paginate(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_count": total,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def clamp_page(page: Optional[int], limit: Optional[int], default_limit: int = DEFAULT_PAGE_SIZE) -> Tuple[int, int]:
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else default_limit
    return page, min(limit, MAX_PAGE_SIZE)


def contains(text: str) -> Dict[str, Any]:
    """Case-insensitive substring match with user input escaped."""
    return {"$regex": re.escape(text), "$options": "i"}


class ProjectService:
    def __init__(self, db: Database, store: EvidenceStore):
        self.projects = ProjectRepository(db)
        self.users = UserRepository(db)
        self.ledger = CreditLedger(db)
        self.store = store

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def load(self, project_id: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    def submitters(self, user_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Owner summaries keyed by user id, for list and detail views."""
        summaries = {}
        for user in self.users.find({"_id": {"$in": list(set(user_ids))}}):
            summary = {"id": user.id}
            summary.update({f: getattr(user, f) for f in SUBMITTER_FIELDS})
            summaries[user.id] = summary
        return summaries

    def present(self, projects: List[Project]) -> List[Dict[str, Any]]:
        owners = self.submitters([p.submitted_by for p in projects])
        items = []
        for project in projects:
            data = project.public()
            data["submitter"] = owners.get(project.submitted_by)
            items.append(data)
        return items

    def _upload_many(self, files: List[UploadPayload], kind: str, folder: str) -> List[Dict[str, str]]:
        if not files:
            raise ValidationError(f"No {kind}s provided")
        if len(files) > MAX_FILES_PER_UPLOAD:
            raise ValidationError(f"At most {MAX_FILES_PER_UPLOAD} files per upload")
        for f in files:
            validate_upload(kind, f.content_type, f.size)

        stored: List[Dict[str, str]] = []
        try:
            for f in files:
                stored.append(self.store.upload(f.data, folder, kind))
        except StorageError:
            # Earlier files in the batch are never attached to the project
            self._release([EvidenceRef(**s) for s in stored], kind)
            raise
        return stored

    def _release(self, refs: List[EvidenceRef], kind: str) -> int:
        """Best-effort delete of stored evidence; returns how many failed."""
        failed = 0
        for ref in refs:
            try:
                self.store.delete(ref.public_id, kind)
            except StorageError as e:
                failed += 1
                print(f"[PROJECTS] Evidence release failed, continuing: public_id={ref.public_id}, error={e}")
        return failed

    # ------------------------------------------------------------------
    # Create + read
    # ------------------------------------------------------------------
    def create_project(self, principal: Principal, fields: Dict[str, Any],
                       image_base64: Optional[str] = None) -> Project:
        """
        Create a pending project for a field user.

        fields carries the validated request body: name, description,
        organization, region, area, method, vintage and optionally
        coordinates [lng, lat], geo_data, species_mix, tags.
        """
        lifecycle.check_creatable(principal)
        lifecycle.validate_area(fields["area"])
        lifecycle.validate_vintage(fields["vintage"])
        species_mix = lifecycle.validate_species_mix(fields.get("species_mix") or [])

        images = []
        if image_base64:
            content_type, size = parse_data_uri(image_base64)
            validate_upload("image", content_type, size)
            stored = self.store.upload(image_base64, "projects", "image")
            images.append(EvidenceRef(description="Project baseline image", **stored))

        coordinates = fields.get("coordinates")
        project = Project(
            name=fields["name"],
            description=fields["description"],
            organization=fields["organization"],
            region=fields["region"],
            area=fields["area"],
            method=fields["method"],
            vintage=fields["vintage"],
            submitted_by=principal.id,
            location=GeoPoint(coordinates=list(coordinates)) if coordinates else None,
            geo_data=fields.get("geo_data"),
            species_mix=species_mix,
            tags=fields.get("tags") or [],
            images=images,
            estimated_credits=lifecycle.estimate_credits(fields["area"], fields["method"], fields["vintage"]),
        )
        self.projects.insert(project)
        self.users.push_project(principal.id, project.id)

        print(f"[PROJECTS] Created: project_id={project.id}, user_id={principal.id}")
        return project

    def get_project(self, project_id: str, principal: Optional[Principal]) -> Dict[str, Any]:
        project = self.load(project_id)
        require_view_project(principal, project)
        return self.present([project])[0]

    def list_public(self, page: Optional[int] = None, limit: Optional[int] = None,
                    status: Optional[str] = None, region: Optional[str] = None,
                    organization: Optional[str] = None, method: Optional[str] = None,
                    search: Optional[str] = None) -> Dict[str, Any]:
        page, limit = clamp_page(page, limit)
        query: Dict[str, Any] = {"is_public": True}
        if status:
            query["status"] = status
        if method:
            query["method"] = method
        if region:
            query["region"] = contains(region)
        if organization:
            query["organization"] = contains(organization)
        if search:
            query["$or"] = [{f: contains(search)} for f in ("name", "description", "organization", "region")]

        total = self.projects.count(query)
        projects = self.projects.find(query, skip=(page - 1) * limit, limit=limit)
        return {"projects": self.present(projects), "pagination": paginate(total, page, limit)}

    def list_mine(self, principal: Principal, page: Optional[int] = None,
                  limit: Optional[int] = None) -> Dict[str, Any]:
        page, limit = clamp_page(page, limit)
        query = {"submitted_by": principal.id}
        total = self.projects.count(query)
        projects = self.projects.find(query, skip=(page - 1) * limit, limit=limit)
        return {"projects": [p.public() for p in projects], "pagination": paginate(total, page, limit)}

    def list_by_status(self, principal: Principal, status: str, page: Optional[int] = None,
                       limit: Optional[int] = None) -> Dict[str, Any]:
        require_role(principal, REVIEWER_ROLES)
        if status not in lifecycle.PROJECT_STATUSES:
            raise InvalidStatusError(f"Invalid status: {status}")
        page, limit = clamp_page(page, limit, REVIEW_PAGE_SIZE)
        query = {"status": status}
        total = self.projects.count(query)
        projects = self.projects.find(query, skip=(page - 1) * limit, limit=limit)
        return {"projects": self.present(projects), "pagination": paginate(total, page, limit)}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def set_status(self, project_id: str, principal: Principal, status: str,
                   comment: Optional[str] = None, credits: Optional[int] = None,
                   verification: Optional[Dict[str, Any]] = None) -> Project:
        project = self.load(project_id)
        previous_status = project.status
        grant = lifecycle.apply_status(project, status, principal, comment=comment,
                                       credits=credits, verification=verification)
        if grant is not None:
            self.record_grant(grant)
        self.projects.save(project)

        print(f"[PROJECTS] Status changed: project_id={project.id}, "
              f"{previous_status} -> {project.status}, by={principal.id}")
        return project

    def record_grant(self, grant: CreditGrant) -> None:
        """Swap in the project's grant and move owner totals by the difference."""
        previous = self.ledger.grant(grant)
        delta_credits = grant.credits - (previous.credits if previous else 0)
        delta_area = grant.area - (previous.area if previous else 0.0)
        if delta_credits or delta_area:
            self.users.increment_totals(grant.user_id, delta_credits, delta_area)
        if IS_DEV:
            print(f"[PROJECTS] Credit grant: project_id={grant.project_id}, credits={grant.credits}, "
                  f"delta_credits={delta_credits}, delta_area={delta_area}")

    def update_fields(self, project_id: str, principal: Principal, patch: Dict[str, Any]) -> Project:
        project = self.load(project_id)
        changed = lifecycle.apply_field_patch(project, patch, principal)
        self.projects.save(project)
        if IS_DEV:
            print(f"[PROJECTS] Updated: project_id={project.id}, fields={changed}")
        return project

    def delete_project(self, project_id: str, principal: Principal) -> None:
        """
        Delete a non-verified project.

        Evidence is released best-effort. The owner's reference is pulled
        before the record is removed; a crash in between leaves a dangling
        reference that backend/reconcile.py reports and repairs.
        """
        project = self.load(project_id)
        lifecycle.check_deletable(project, principal)

        failed = self._release(project.images, "image") + self._release(project.documents, "document")

        self.users.pull_project(project.submitted_by, project.id)
        self.projects.delete(project.id)
        print(f"[PROJECTS] Deleted: project_id={project.id}, by={principal.id}, release_failures={failed}")

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------
    def add_images(self, project_id: str, principal: Principal, files: List[UploadPayload],
                   description: Optional[str] = None) -> Project:
        project = self.load(project_id)
        require_owner_or_admin(principal, project.submitted_by)

        for stored in self._upload_many(files, "image", "projects"):
            project.images.append(EvidenceRef(description=description, **stored))
        project.last_updated_by = principal.id
        self.projects.save(project)
        return project

    def add_documents(self, project_id: str, principal: Principal, files: List[UploadPayload]) -> Project:
        project = self.load(project_id)
        require_owner_or_admin(principal, project.submitted_by)

        for f, stored in zip(files, self._upload_many(files, "document", "documents")):
            project.documents.append(EvidenceRef(file_name=f.filename, file_type=f.content_type, **stored))
        project.last_updated_by = principal.id
        self.projects.save(project)
        return project

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------
    def add_milestone(self, project_id: str, principal: Principal, title: str,
                      description: Optional[str] = None, target_date=None) -> Milestone:
        project = self.load(project_id)
        milestone = lifecycle.add_milestone(project, principal, title, description, target_date, now=utcnow())
        self.projects.save(project)
        return milestone

    def update_milestone_status(self, project_id: str, milestone_id: str, principal: Principal,
                                status: str, evidence: Optional[List[Dict[str, Any]]] = None) -> Milestone:
        project = self.load(project_id)
        refs = [EvidenceRef(**e) for e in (evidence or [])]
        milestone = lifecycle.update_milestone_status(project, milestone_id, status, principal, evidence=refs)
        self.projects.save(project)
        return milestone
