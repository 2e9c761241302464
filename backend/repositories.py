"""
backend/repositories.py

Collection wrappers for users, projects and the credit ledger.

Each repository takes a pymongo Database (tests hand in a mongomock one) and
converts between stored documents and the pydantic models in backend.models.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from backend.db import CREDIT_GRANTS, PROJECTS, USERS
from backend.models import CreditGrant, Project, User, UserStatus, utcnow


class UserRepository:
    def __init__(self, db: Database):
        self.collection = db[USERS]

    def get(self, user_id: str) -> Optional[User]:
        return User.from_document(self.collection.find_one({"_id": user_id}))

    def find_active_by_email(self, email: str) -> Optional[User]:
        doc = self.collection.find_one({"email": email, "status": UserStatus.active.value})
        return User.from_document(doc)

    def find_by_email(self, email: str) -> Optional[User]:
        """Any user with this email, active or not."""
        return User.from_document(self.collection.find_one({"email": email}))

    def find_by_reset_token(self, token_hash: str, now) -> Optional[User]:
        doc = self.collection.find_one({
            "reset_password_token": token_hash,
            "reset_password_expires": {"$gt": now},
        })
        return User.from_document(doc)

    def email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        """Email uniqueness is only enforced among active users."""
        query: Dict[str, Any] = {"email": email, "status": UserStatus.active.value}
        if exclude_id:
            query["_id"] = {"$ne": exclude_id}
        return self.collection.count_documents(query) > 0

    def insert(self, user: User) -> User:
        self.collection.insert_one(user.to_document())
        return user

    def update_fields(self, user_id: str, fields: Dict[str, Any]) -> Optional[User]:
        fields = dict(fields)
        fields["updated_at"] = utcnow()
        doc = self.collection.find_one_and_update(
            {"_id": user_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return User.from_document(doc)

    def increment_login_attempts(self, user_id: str) -> int:
        doc = self.collection.find_one_and_update(
            {"_id": user_id},
            {"$inc": {"login_attempts": 1}},
            return_document=ReturnDocument.AFTER,
        )
        return doc["login_attempts"] if doc else 0

    def increment_totals(self, user_id: str, credits: int, area: float) -> None:
        self.collection.update_one(
            {"_id": user_id},
            {"$inc": {"total_credits": credits, "total_area": area}, "$set": {"updated_at": utcnow()}},
        )

    def push_project(self, user_id: str, project_id: str) -> None:
        self.collection.update_one({"_id": user_id}, {"$addToSet": {"projects": project_id}})

    def pull_project(self, user_id: str, project_id: str) -> None:
        self.collection.update_one({"_id": user_id}, {"$pull": {"projects": project_id}})

    def find(
        self,
        query: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[User]:
        cursor = self.collection.find(query).sort(sort or [("created_at", DESCENDING)])
        if skip > 0:
            cursor = cursor.skip(skip)
        if limit > 0:
            cursor = cursor.limit(limit)
        return [User.from_document(doc) for doc in cursor]

    def count(self, query: Dict[str, Any]) -> int:
        return self.collection.count_documents(query)

    def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return list(self.collection.aggregate(pipeline))


class ProjectRepository:
    def __init__(self, db: Database):
        self.collection = db[PROJECTS]

    def get(self, project_id: str) -> Optional[Project]:
        return Project.from_document(self.collection.find_one({"_id": project_id}))

    def insert(self, project: Project) -> Project:
        self.collection.insert_one(project.to_document())
        return project

    def save(self, project: Project) -> Project:
        """Write the whole project back; last write wins."""
        project.updated_at = utcnow()
        self.collection.replace_one({"_id": project.id}, project.to_document())
        return project

    def delete(self, project_id: str) -> bool:
        return self.collection.delete_one({"_id": project_id}).deleted_count == 1

    def find(
        self,
        query: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Project]:
        cursor = self.collection.find(query).sort(sort or [("created_at", DESCENDING)])
        if skip > 0:
            cursor = cursor.skip(skip)
        if limit > 0:
            cursor = cursor.limit(limit)
        return [Project.from_document(doc) for doc in cursor]

    def find_raw(self, query: Dict[str, Any], projection: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return list(self.collection.find(query, projection))

    def count(self, query: Dict[str, Any]) -> int:
        return self.collection.count_documents(query)

    def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return list(self.collection.aggregate(pipeline))


class CreditLedger:
    """
    Idempotent credit grants: one document per project.

    grant() swaps in the new grant atomically and hands back the one it
    replaced, so callers can adjust user totals by the difference only.
    """

    def __init__(self, db: Database):
        self.collection = db[CREDIT_GRANTS]

    def grant(self, grant: CreditGrant) -> Optional[CreditGrant]:
        data = grant.model_dump()
        previous = self.collection.find_one_and_update(
            {"project_id": grant.project_id},
            {"$set": data},
            upsert=True,
            return_document=ReturnDocument.BEFORE,
        )
        if previous is None:
            return None
        previous.pop("_id", None)
        return CreditGrant(**previous)

    def get(self, project_id: str) -> Optional[CreditGrant]:
        doc = self.collection.find_one({"project_id": project_id})
        if doc is None:
            return None
        doc.pop("_id", None)
        return CreditGrant(**doc)

    def all(self) -> List[CreditGrant]:
        grants = []
        for doc in self.collection.find({}):
            doc.pop("_id", None)
            grants.append(CreditGrant(**doc))
        return grants

    def totals_for_user(self, user_id: str) -> Tuple[int, float]:
        credits = 0
        area = 0.0
        for doc in self.collection.find({"user_id": user_id}):
            credits += doc.get("credits", 0)
            area += doc.get("area", 0.0)
        return credits, area
