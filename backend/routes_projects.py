"""
backend/routes_projects.py

Project endpoints: public listing, owner/admin CRUD, review status changes,
evidence uploads and milestones.

Security guarantees:
- Public reads use optional auth; private projects need owner or admin
- Create requires the field role; status changes require admin/verifier
- Ownership and verified-lock checks live in backend/lifecycle.py
- Static paths are declared before /{project_id}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from backend.dependencies import get_db, get_project_service, optional_principal, require_principal
from backend.models import Principal
from backend.modules import reporting
from backend.modules.projects import ProjectService
from backend.schemas import (
    MilestoneCreateRequest,
    MilestoneStatusRequest,
    ProjectCreateRequest,
    ProjectUpdateRequest,
    StatusUpdateRequest,
)
from backend.storage import UploadPayload

router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
)


def to_payloads(files: List[UploadFile]) -> List[UploadPayload]:
    return [
        UploadPayload(data=f.file.read(), content_type=f.content_type or "", filename=f.filename or "")
        for f in files
    ]


@router.get("")
def list_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    region: Optional[str] = None,
    organization: Optional[str] = None,
    method: Optional[str] = None,
    search: Optional[str] = None,
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    return projects.list_public(page, limit, status=status, region=region,
                                organization=organization, method=method, search=search)


@router.get("/stats")
def project_stats(db=Depends(get_db)) -> Dict[str, Any]:
    return reporting.project_stats(db)


@router.get("/user/my-projects")
def my_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    return projects.list_mine(principal, page, limit)


@router.get("/admin/by-status/{status}")
def projects_by_status(
    status: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    return projects.list_by_status(principal, status, page, limit)


@router.post("", status_code=201)
def create_project(
    req: ProjectCreateRequest,
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    fields = req.model_dump(exclude={"image_base64"})
    project = projects.create_project(principal, fields, image_base64=req.image_base64)
    return {"message": "Project created successfully", "project": project.public()}


@router.get("/{project_id}")
def get_project(
    project_id: str,
    principal: Optional[Principal] = Depends(optional_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    return {"project": projects.get_project(project_id, principal)}


@router.post("/{project_id}/images")
def upload_images(
    project_id: str,
    images: List[UploadFile] = File(...),
    description: Optional[str] = Form(None),
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    project = projects.add_images(project_id, principal, to_payloads(images), description)
    return {"message": "Images uploaded successfully", "images": [i.model_dump() for i in project.images]}


@router.post("/{project_id}/documents")
def upload_documents(
    project_id: str,
    documents: List[UploadFile] = File(...),
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    project = projects.add_documents(project_id, principal, to_payloads(documents))
    return {"message": "Documents uploaded successfully", "documents": [d.model_dump() for d in project.documents]}


@router.put("/{project_id}/status")
def update_status(
    project_id: str,
    req: StatusUpdateRequest,
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    verification = req.verification.model_dump(exclude_none=True) if req.verification else None
    project = projects.set_status(project_id, principal, req.status, comment=req.comment,
                                  credits=req.credits, verification=verification)
    return {"message": f"Project status updated to {project.status}", "project": project.public()}


@router.put("/{project_id}")
def update_project(
    project_id: str,
    req: ProjectUpdateRequest,
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    project = projects.update_fields(project_id, principal, req.model_dump(exclude_none=True))
    return {"message": "Project updated successfully", "project": project.public()}


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, str]:
    projects.delete_project(project_id, principal)
    return {"message": "Project deleted successfully"}


@router.post("/{project_id}/milestones", status_code=201)
def add_milestone(
    project_id: str,
    req: MilestoneCreateRequest,
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    milestone = projects.add_milestone(project_id, principal, req.title, req.description, req.target_date)
    return {"message": "Milestone added successfully", "milestone": milestone.model_dump()}


@router.put("/{project_id}/milestones/{milestone_id}")
def update_milestone(
    project_id: str,
    milestone_id: str,
    req: MilestoneStatusRequest,
    principal: Principal = Depends(require_principal),
    projects: ProjectService = Depends(get_project_service),
) -> Dict[str, Any]:
    evidence = [e.model_dump() for e in req.evidence] if req.evidence else None
    milestone = projects.update_milestone_status(project_id, milestone_id, principal, req.status, evidence)
    return {"message": "Milestone updated successfully", "milestone": milestone.model_dump()}
