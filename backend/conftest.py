"""
Shared pytest fixtures for the backend suite.

Every test gets a fresh mongomock database and an in-memory evidence store,
both swapped in behind the FastAPI dependencies the routers use.
"""

from typing import Any, Dict, List, Optional

import mongomock
import pytest

from backend.auth_context import ADMIN_SUBJECT, create_access_token, hash_password
from backend.db import set_database
from backend.dependencies import get_evidence_store
from backend.errors import StorageError
from backend.main import app
from backend.models import Project, Role, User
from backend.repositories import ProjectRepository, UserRepository
from backend.storage import EvidenceStore


class FakeEvidenceStore(EvidenceStore):
    """Records uploads/deletes; flip fail_uploads/fail_deletes to simulate outages."""

    def __init__(self):
        self.uploads: List[Dict[str, str]] = []
        self.deleted: List[str] = []
        self.fail_uploads = False
        self.fail_deletes = False
        # Fail once this many uploads have succeeded
        self.fail_after: Optional[int] = None

    def upload(self, data, folder, kind="image"):
        if self.fail_uploads or (self.fail_after is not None and len(self.uploads) >= self.fail_after):
            raise StorageError("Failed to upload evidence")
        public_id = f"{folder}/{kind}-{len(self.uploads) + 1}"
        self.uploads.append({"folder": folder, "kind": kind, "public_id": public_id})
        return {"url": f"https://evidence.test/{public_id}", "public_id": public_id}

    def delete(self, public_id, kind="image"):
        if self.fail_deletes:
            raise StorageError("Failed to delete evidence")
        self.deleted.append(public_id)


@pytest.fixture(autouse=True)
def db():
    database = mongomock.MongoClient()["test_bluecarbon"]
    set_database(database)
    yield database
    set_database(None)


@pytest.fixture(autouse=True)
def store():
    fake = FakeEvidenceStore()
    app.dependency_overrides[get_evidence_store] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_evidence_store, None)


@pytest.fixture
def make_user(db):
    """Factory: insert a user straight into the store and return it."""
    counter = {"n": 0}

    def _make(role: str = Role.field.value, email: str = None, password: str = "password123",
              **fields: Any) -> User:
        counter["n"] += 1
        user = User(
            full_name=fields.pop("full_name", f"Test User {counter['n']}"),
            email=email or f"user{counter['n']}@example.org",
            password_hash=hash_password(password),
            role=role,
            **fields,
        )
        return UserRepository(db).insert(user)

    return _make


@pytest.fixture
def make_project(db):
    """Factory: insert a project (and owner reference) without going through the API."""

    def _make(owner: User, **fields: Any) -> Project:
        data = {
            "name": "Mangrove Restoration A",
            "description": "Community-led mangrove plantation in coastal zone A.",
            "organization": owner.organization or "Green Earth NGO",
            "region": "Chennai Coast",
            "area": 50,
            "method": "plantation",
            "vintage": 2023,
        }
        data.update(fields)
        project = Project(submitted_by=owner.id, **data)
        ProjectRepository(db).insert(project)
        UserRepository(db).push_project(owner.id, project.id)
        return project

    return _make


@pytest.fixture
def headers_for():
    """Bearer headers for a stored user, or for the reserved admin when passed "admin"."""

    def _headers(user) -> Dict[str, str]:
        if user == ADMIN_SUBJECT:
            token = create_access_token(ADMIN_SUBJECT, Role.admin.value)
        else:
            token = create_access_token(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
