#!/usr/bin/env python3
"""
Seed script: sample field users and projects for local development.

Projects go through the same service calls the API uses, so estimates,
owner project lists and the credit ledger all line up.

DEV-ONLY: refuses to run unless ENV=dev.

Run: python -m backend.seed
"""

from datetime import timedelta

from backend.auth_context import ADMIN_PRINCIPAL, principal_for
from backend.config import IS_DEV
from backend.db import get_database, init_indexes
from backend.models import utcnow
from backend.modules.projects import ProjectService
from backend.modules.users import AuthService
from backend.repositories import UserRepository
from backend.storage import CloudinaryEvidenceStore

SAMPLE_PASSWORD = "password123"

SAMPLE_USERS = [
    {"full_name": "John Doe", "email": "john@greenearthngo.org", "organization": "Green Earth NGO",
     "phone": "9876543210", "location": "Chennai, Tamil Nadu", "user_role": "Project Manager"},
    {"full_name": "Sarah Wilson", "email": "sarah@blueoceantrust.org", "organization": "Blue Ocean Trust",
     "phone": "8765432109", "location": "Mumbai, Maharashtra", "user_role": "Environmental Coordinator"},
    {"full_name": "Ravi Kumar", "email": "ravi@ecocare.org", "organization": "EcoCare Foundation",
     "phone": "7654321098", "location": "Kochi, Kerala", "user_role": "Marine Biologist"},
    {"full_name": "Priya Sharma", "email": "priya@oceancare.org", "organization": "OceanCare Foundation",
     "phone": "6543210987", "location": "Port Blair, Andaman", "user_role": "Conservation Officer"},
]

# (owner index, project fields, review status, credits, review comment)
SAMPLE_PROJECTS = [
    (0, {"name": "Mangrove Restoration A", "region": "Chennai Coast", "area": 50, "method": "plantation",
         "vintage": 2023, "coordinates": [80.2707, 13.0827], "tags": ["mangrove", "coastal", "plantation"],
         "description": "Community-led mangrove plantation in coastal zone A with Rhizophora and Avicennia.",
         "species_mix": [{"species": "Rhizophora mucronata", "percentage": 60},
                         {"species": "Avicennia marina", "percentage": 25},
                         {"species": "Bruguiera gymnorhiza", "percentage": 15}]},
     None, None, None),
    (1, {"name": "Coastal Cleanup B", "region": "Marina Beach", "area": 30, "method": "natural_regeneration",
         "vintage": 2022, "coordinates": [80.2785, 13.0475], "tags": ["cleanup", "community", "regeneration"],
         "description": "Plastic waste cleanup initiative with local schools and natural regeneration support."},
     "approved", 800, "Baseline and community plan accepted."),
    (2, {"name": "Wetland Protection C", "region": "Delta Zone", "area": 20, "method": "mixed",
         "vintage": 2021, "coordinates": [76.2673, 9.9312], "tags": ["wetland", "delta", "biodiversity"],
         "description": "Protecting and restoring wetlands in the delta region with biodiversity monitoring."},
     "rejected", None, "Insufficient baseline data provided. Please submit a detailed species survey."),
    (3, {"name": "Coral Reef Revival D", "region": "Andaman Islands", "area": 80, "method": "mixed",
         "vintage": 2022, "coordinates": [92.7265, 11.7401], "tags": ["coral", "reef", "marine", "islands"],
         "description": "Revival of coral reefs using artificial reef blocks and mangrove buffers."},
     "verified", 2200, "Drone survey confirms restoration extent."),
    (2, {"name": "Salt Marsh Protection E", "region": "Sundarbans", "area": 100, "method": "natural_regeneration",
         "vintage": 2021, "coordinates": [88.8644, 21.9497], "tags": ["salt-marsh", "delta"],
         "description": "Community-driven effort to conserve salt marshes and restore delta biodiversity."},
     "approved", 950, None),
]


def seed() -> None:
    db = get_database()
    init_indexes(db)

    auth = AuthService(db)
    users = UserRepository(db)
    projects = ProjectService(db, CloudinaryEvidenceStore())

    owners = []
    for sample in SAMPLE_USERS:
        existing = users.find_active_by_email(sample["email"])
        if existing is None:
            fields = dict(sample)
            result = auth.register(fields.pop("full_name"), fields.pop("email"), SAMPLE_PASSWORD, **fields)
            existing = users.update_fields(result["user"]["id"], {"is_verified": True})
            print(f"[SEED] Created user {sample['email']}")
        owners.append(existing)

    for owner_index, fields, status, credits, comment in SAMPLE_PROJECTS:
        owner = owners[owner_index]
        if projects.projects.count({"name": fields["name"], "submitted_by": owner.id}):
            continue
        fields = dict(fields, organization=owner.organization)
        project = projects.create_project(principal_for(owner), fields)
        if fields["name"].startswith("Coastal Cleanup"):
            projects.add_milestone(project.id, principal_for(owner), "Community Engagement",
                                   "Engage local communities and schools", utcnow() + timedelta(days=30))
        if status:
            verification = {"verification_method": "drone", "confidence": 95} if status == "verified" else None
            projects.set_status(project.id, ADMIN_PRINCIPAL, status, comment=comment,
                                credits=credits, verification=verification)
        print(f"[SEED] Created project {fields['name']} ({status or 'pending'})")

    print(f"[SEED] Done. Sample users log in with password '{SAMPLE_PASSWORD}'")


if __name__ == "__main__":
    if not IS_DEV:
        print("[PROD/STAGING] Refusing to seed outside dev")
    else:
        seed()
