"""
Project endpoint tests: submission, visibility, review status changes and
credit accounting, field edits, deletion, evidence uploads and milestones.

Run: pytest backend/test_projects_api.py -v
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from backend.main import app
from backend.models import utcnow
from backend.repositories import CreditLedger, ProjectRepository, UserRepository

client = TestClient(app)

PNG_DATA_URI = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR4nGNgYGBgAAAABQABpfZFQAAAAABJRU5ErkJggg=="


def project_payload(**overrides):
    payload = {
        "name": "Mangrove Restoration A",
        "description": "Community-led mangrove plantation in coastal zone A.",
        "organization": "Green Earth NGO",
        "region": "Chennai Coast",
        "area": 50,
        "method": "plantation",
        "vintage": utcnow().year - 3,
        "coordinates": [80.2707, 13.0827],
        "species_mix": [
            {"species": "Rhizophora mucronata", "percentage": 60},
            {"species": "Avicennia marina", "percentage": 25},
            {"species": "Bruguiera gymnorhiza", "percentage": 15},
        ],
        "tags": ["mangrove", "coastal"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def field_user(make_user):
    return make_user(email="john@greenearthngo.org", organization="Green Earth NGO")


@pytest.fixture
def verifier(make_user):
    return make_user(role="verifier", email="verifier@example.org")


@pytest.fixture
def created(field_user, headers_for):
    resp = client.post("/api/projects", json=project_payload(), headers=headers_for(field_user))
    assert resp.status_code == 201
    return resp.json()["project"]


def set_status(project_id, headers, status, **extra):
    return client.put(f"/api/projects/{project_id}/status", headers=headers, json={"status": status, **extra})


# ============================================================================
# Create + read
# ============================================================================

class TestCreate:
    def test_field_user_creates_pending_project(self, db, field_user, created):
        assert created["status"] == "pending"
        assert created["credits"] == 0
        assert created["estimated_credits"] == 750
        assert created["submitted_by"] == field_user.id
        assert created["location"]["coordinates"] == [80.2707, 13.0827]
        assert UserRepository(db).get(field_user.id).projects == [created["id"]]

    def test_requires_authentication(self):
        assert client.post("/api/projects", json=project_payload()).status_code == 401

    @pytest.mark.parametrize("role", ["verifier", "admin"])
    def test_reviewers_cannot_create(self, role, make_user, headers_for):
        resp = client.post("/api/projects", json=project_payload(), headers=headers_for(make_user(role=role)))
        assert resp.status_code == 403

    def test_reserved_admin_cannot_create(self, headers_for):
        resp = client.post("/api/projects", json=project_payload(), headers=headers_for("admin"))
        assert resp.status_code == 403

    def test_species_mix_must_total_100(self, field_user, headers_for):
        payload = project_payload(species_mix=[
            {"species": "Rhizophora mucronata", "percentage": 60},
            {"species": "Avicennia marina", "percentage": 30},
        ])
        resp = client.post("/api/projects", json=payload, headers=headers_for(field_user))
        assert resp.status_code == 400

    @pytest.mark.parametrize("area", [0.05, 10001])
    def test_area_bounds(self, area, field_user, headers_for):
        resp = client.post("/api/projects", json=project_payload(area=area), headers=headers_for(field_user))
        assert resp.status_code == 400

    def test_vintage_too_far_ahead(self, field_user, headers_for):
        payload = project_payload(vintage=utcnow().year + 6)
        assert client.post("/api/projects", json=payload, headers=headers_for(field_user)).status_code == 400

    def test_bad_coordinates(self, field_user, headers_for):
        payload = project_payload(coordinates=[200, 13])
        assert client.post("/api/projects", json=payload, headers=headers_for(field_user)).status_code == 400

    def test_baseline_image_uploaded(self, store, field_user, headers_for):
        resp = client.post("/api/projects", json=project_payload(image_base64=PNG_DATA_URI),
                           headers=headers_for(field_user))
        assert resp.status_code == 201
        images = resp.json()["project"]["images"]
        assert len(images) == 1
        assert images[0]["public_id"] == store.uploads[0]["public_id"]

    def test_baseline_image_must_be_image(self, store, field_user, headers_for):
        payload = project_payload(image_base64="data:text/plain;base64,aGVsbG8=")
        assert client.post("/api/projects", json=payload, headers=headers_for(field_user)).status_code == 400
        assert store.uploads == []

    def test_storage_failure_on_create(self, store, field_user, headers_for):
        store.fail_uploads = True
        resp = client.post("/api/projects", json=project_payload(image_base64=PNG_DATA_URI),
                           headers=headers_for(field_user))
        assert resp.status_code == 502
        assert resp.json()["error"] == "storage_failure"


class TestRead:
    def test_public_project_visible_anonymously(self, created):
        resp = client.get(f"/api/projects/{created['id']}")
        assert resp.status_code == 200
        project = resp.json()["project"]
        assert project["submitter"]["email"] == "john@greenearthngo.org"
        assert "password_hash" not in project["submitter"]

    def test_private_project(self, db, created, field_user, verifier, headers_for):
        db["projects"].update_one({"_id": created["id"]}, {"$set": {"is_public": False}})
        path = f"/api/projects/{created['id']}"
        assert client.get(path).status_code == 403
        assert client.get(path, headers=headers_for(verifier)).status_code == 403
        assert client.get(path, headers=headers_for(field_user)).status_code == 200
        assert client.get(path, headers=headers_for("admin")).status_code == 200

    def test_missing_project(self):
        resp = client.get("/api/projects/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_list_filters_and_pagination(self, field_user, make_project):
        make_project(field_user, name="Coastal Cleanup B", region="Marina Beach", method="natural_regeneration")
        make_project(field_user, name="Salt Marsh Protection E", region="Sundarbans")
        make_project(field_user, name="Hidden site", region="Sundarbans", is_public=False)

        everything = client.get("/api/projects").json()
        assert everything["pagination"]["total_count"] == 2

        by_region = client.get("/api/projects", params={"region": "sundar"}).json()
        assert [p["name"] for p in by_region["projects"]] == ["Salt Marsh Protection E"]

        by_search = client.get("/api/projects", params={"search": "CLEANUP"}).json()
        assert [p["name"] for p in by_search["projects"]] == ["Coastal Cleanup B"]

        paged = client.get("/api/projects", params={"limit": 1, "page": 2}).json()
        assert len(paged["projects"]) == 1
        assert paged["pagination"]["has_prev"] is True
        assert paged["pagination"]["has_next"] is False

    def test_search_input_is_not_a_regex(self, field_user, make_project):
        make_project(field_user, name="Mangrove (phase 1)")
        resp = client.get("/api/projects", params={"search": "(phase"})
        assert resp.status_code == 200
        assert resp.json()["pagination"]["total_count"] == 1

    def test_my_projects(self, field_user, make_user, make_project, headers_for):
        make_project(field_user)
        make_project(make_user())
        resp = client.get("/api/projects/user/my-projects", headers=headers_for(field_user))
        assert resp.status_code == 200
        assert resp.json()["pagination"]["total_count"] == 1

    def test_by_status_for_reviewers(self, field_user, verifier, make_project, headers_for):
        make_project(field_user, status="rejected")
        make_project(field_user)

        assert client.get("/api/projects/admin/by-status/pending", headers=headers_for(field_user)).status_code == 403

        resp = client.get("/api/projects/admin/by-status/rejected", headers=headers_for(verifier))
        assert resp.status_code == 200
        assert [p["status"] for p in resp.json()["projects"]] == ["rejected"]

        bad = client.get("/api/projects/admin/by-status/archived", headers=headers_for(verifier))
        assert bad.status_code == 400
        assert bad.json()["error"] == "invalid_status"

    def test_project_stats(self, field_user, make_project):
        make_project(field_user, status="approved", credits=800)
        make_project(field_user)
        stats = client.get("/api/projects/stats").json()
        assert stats["overview"]["overall"]["total_projects"] == 2
        assert stats["overview"]["by_status"]["approved"]["total_credits"] == 800
        assert len(stats["recent_projects"]) == 2


# ============================================================================
# Review + credits
# ============================================================================

class TestStatusAndCredits:
    def test_field_user_cannot_change_status(self, created, field_user, headers_for):
        resp = set_status(created["id"], headers_for(field_user), "approved", credits=800)
        assert resp.status_code == 403

    def test_approval_credits_owner_once(self, db, created, field_user, verifier, headers_for):
        headers = headers_for(verifier)
        resp = set_status(created["id"], headers, "approved", credits=800, comment="Baseline accepted")
        assert resp.status_code == 200
        assert resp.json()["project"]["credits"] == 800
        assert resp.json()["project"]["review_comments"][0]["type"] == "approval"

        owner = UserRepository(db).get(field_user.id)
        assert owner.total_credits == 800
        assert owner.total_area == 50

        # Same approval again: no double counting
        assert set_status(created["id"], headers, "approved", credits=800).status_code == 200
        owner = UserRepository(db).get(field_user.id)
        assert owner.total_credits == 800
        assert owner.total_area == 50

        # Revised amount moves totals by the difference only
        set_status(created["id"], headers, "approved", credits=1000)
        owner = UserRepository(db).get(field_user.id)
        assert owner.total_credits == 1000
        assert owner.total_area == 50
        assert CreditLedger(db).get(created["id"]).credits == 1000

    def test_verify_then_locked(self, db, created, field_user, verifier, headers_for):
        headers = headers_for(verifier)
        resp = set_status(created["id"], headers, "verified", credits=900,
                          verification={"verification_method": "satellite", "confidence": 88})
        assert resp.status_code == 200
        assert resp.json()["project"]["verification_data"]["verified_by"] == verifier.id

        again = set_status(created["id"], headers_for("admin"), "approved", credits=5)
        assert again.status_code == 400
        assert again.json()["error"] == "invalid_status"
        assert UserRepository(db).get(field_user.id).total_credits == 900

        owner_headers = headers_for(field_user)
        assert client.put(f"/api/projects/{created['id']}", headers=owner_headers,
                          json={"name": "Renamed site"}).status_code == 403
        assert client.delete(f"/api/projects/{created['id']}", headers=owner_headers).status_code == 403
        assert client.delete(f"/api/projects/{created['id']}", headers=headers_for("admin")).status_code == 403

    def test_unknown_status(self, created, verifier, headers_for):
        resp = set_status(created["id"], headers_for(verifier), "archived")
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_status"

    def test_negative_credits_rejected(self, created, verifier, headers_for):
        assert set_status(created["id"], headers_for(verifier), "approved", credits=-1).status_code == 400

    def test_status_on_missing_project(self, verifier, headers_for):
        assert set_status("nope", headers_for(verifier), "approved").status_code == 404


# ============================================================================
# Edits + deletion
# ============================================================================

class TestEditAndDelete:
    def test_owner_edit_recomputes_estimate(self, created, field_user, headers_for):
        resp = client.put(f"/api/projects/{created['id']}", headers=headers_for(field_user),
                          json={"area": 100, "tags": ["expanded"]})
        assert resp.status_code == 200
        project = resp.json()["project"]
        assert project["area"] == 100
        assert project["estimated_credits"] == 1500
        assert project["tags"] == ["expanded"]

    def test_other_user_cannot_edit(self, created, make_user, headers_for):
        resp = client.put(f"/api/projects/{created['id']}", headers=headers_for(make_user()),
                          json={"name": "Hijacked"})
        assert resp.status_code == 403

    def test_delete_releases_evidence_and_reference(self, db, store, field_user, headers_for):
        headers = headers_for(field_user)
        project = client.post("/api/projects", json=project_payload(image_base64=PNG_DATA_URI),
                              headers=headers).json()["project"]

        resp = client.delete(f"/api/projects/{project['id']}", headers=headers)
        assert resp.status_code == 200
        assert store.deleted == [project["images"][0]["public_id"]]
        assert ProjectRepository(db).get(project["id"]) is None
        assert UserRepository(db).get(field_user.id).projects == []

    def test_delete_survives_storage_failure(self, db, store, field_user, headers_for):
        headers = headers_for(field_user)
        project = client.post("/api/projects", json=project_payload(image_base64=PNG_DATA_URI),
                              headers=headers).json()["project"]
        store.fail_deletes = True

        assert client.delete(f"/api/projects/{project['id']}", headers=headers).status_code == 200
        assert ProjectRepository(db).get(project["id"]) is None

    def test_delete_by_other_user(self, created, make_user, headers_for):
        assert client.delete(f"/api/projects/{created['id']}", headers=headers_for(make_user())).status_code == 403


# ============================================================================
# Evidence uploads
# ============================================================================

class TestEvidence:
    def test_upload_images(self, store, created, field_user, headers_for):
        files = [
            ("images", ("site-1.png", b"\x89PNG fake", "image/png")),
            ("images", ("site-2.jpg", b"\xff\xd8 fake", "image/jpeg")),
        ]
        resp = client.post(f"/api/projects/{created['id']}/images", headers=headers_for(field_user),
                           files=files, data={"description": "Drone pass"})
        assert resp.status_code == 200
        images = resp.json()["images"]
        assert len(images) == 2
        assert all(i["description"] == "Drone pass" for i in images)
        assert [u["kind"] for u in store.uploads] == ["image", "image"]

    def test_upload_rejects_wrong_type(self, store, created, field_user, headers_for):
        files = [("images", ("notes.txt", b"hello", "text/plain"))]
        resp = client.post(f"/api/projects/{created['id']}/images", headers=headers_for(field_user), files=files)
        assert resp.status_code == 400
        assert store.uploads == []

    def test_upload_storage_failure(self, store, created, field_user, headers_for):
        store.fail_uploads = True
        files = [("images", ("site-1.png", b"\x89PNG fake", "image/png"))]
        resp = client.post(f"/api/projects/{created['id']}/images", headers=headers_for(field_user), files=files)
        assert resp.status_code == 502

    def test_partial_batch_failure_releases_stored_files(self, store, created, field_user, headers_for):
        store.fail_after = 2
        files = [
            ("documents", (f"report-{n}.pdf", b"%PDF fake", "application/pdf")) for n in range(3)
        ]
        resp = client.post(f"/api/projects/{created['id']}/documents", headers=headers_for(field_user),
                           files=files)
        assert resp.status_code == 502
        assert store.deleted == [u["public_id"] for u in store.uploads]
        assert len(store.deleted) == 2
        project = client.get(f"/api/projects/{created['id']}", headers=headers_for(field_user)).json()["project"]
        assert project["documents"] == []

    def test_upload_by_non_owner(self, created, verifier, headers_for):
        files = [("images", ("site-1.png", b"\x89PNG fake", "image/png"))]
        resp = client.post(f"/api/projects/{created['id']}/images", headers=headers_for(verifier), files=files)
        assert resp.status_code == 403

    def test_upload_documents(self, store, created, field_user, headers_for):
        files = [("documents", ("survey.pdf", b"%PDF-1.4 fake", "application/pdf"))]
        resp = client.post(f"/api/projects/{created['id']}/documents", headers=headers_for(field_user), files=files)
        assert resp.status_code == 200
        document = resp.json()["documents"][0]
        assert document["file_name"] == "survey.pdf"
        assert document["file_type"] == "application/pdf"
        assert store.uploads[0]["kind"] == "document"


# ============================================================================
# Milestones
# ============================================================================

class TestMilestones:
    def test_milestone_flow(self, created, field_user, headers_for):
        headers = headers_for(field_user)
        target = (utcnow() + timedelta(days=30)).isoformat()
        resp = client.post(f"/api/projects/{created['id']}/milestones", headers=headers,
                           json={"title": "Community Engagement", "target_date": target})
        assert resp.status_code == 201
        milestone = resp.json()["milestone"]
        assert milestone["status"] == "pending"

        path = f"/api/projects/{created['id']}/milestones/{milestone['id']}"
        done = client.put(path, headers=headers, json={
            "status": "completed",
            "evidence": [{"url": "https://evidence.test/m1", "public_id": "m1", "description": "Attendance"}],
        })
        assert done.status_code == 200
        completed_date = done.json()["milestone"]["completed_date"]
        assert completed_date is not None
        assert done.json()["milestone"]["evidence"][0]["public_id"] == "m1"

        reopened = client.put(path, headers=headers, json={"status": "in_progress"})
        assert reopened.json()["milestone"]["status"] == "in_progress"
        # Stored datetimes keep millisecond precision only
        assert reopened.json()["milestone"]["completed_date"][:19] == completed_date[:19]

        project = client.get(f"/api/projects/{created['id']}").json()["project"]
        assert project["completion_percentage"] == 0

    def test_past_target_date(self, created, field_user, headers_for):
        target = (utcnow() - timedelta(days=2)).isoformat()
        resp = client.post(f"/api/projects/{created['id']}/milestones", headers=headers_for(field_user),
                           json={"title": "Nursery setup", "target_date": target})
        assert resp.status_code == 400

    def test_unknown_milestone(self, created, field_user, headers_for):
        resp = client.put(f"/api/projects/{created['id']}/milestones/missing", headers=headers_for(field_user),
                          json={"status": "completed"})
        assert resp.status_code == 404

    def test_invalid_milestone_status(self, created, field_user, headers_for):
        headers = headers_for(field_user)
        milestone = client.post(f"/api/projects/{created['id']}/milestones", headers=headers,
                                json={"title": "Nursery setup"}).json()["milestone"]
        resp = client.put(f"/api/projects/{created['id']}/milestones/{milestone['id']}", headers=headers,
                          json={"status": "abandoned"})
        assert resp.status_code == 400
