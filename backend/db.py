# backend/db.py
# MongoDB access layer: lazily created client, swappable database handle, indexes

from typing import Optional

from pymongo import ASCENDING, DESCENDING, GEOSPHERE, MongoClient
from pymongo.database import Database

from backend.config import MONGODB_URI, MONGODB_DB, IS_DEV

USERS = "users"
PROJECTS = "projects"
CREDIT_GRANTS = "credit_grants"

# Global client/database, created on first use
_client: Optional[MongoClient] = None
_database: Optional[Database] = None


def init_client() -> None:
    """Create the MongoClient from MONGODB_URI."""
    global _client, _database

    _client = MongoClient(MONGODB_URI)
    _database = _client[MONGODB_DB]
    print(f"[DB] Using MongoDB database '{MONGODB_DB}'")


def get_database() -> Database:
    """Return the active database, connecting on first call."""
    if _database is None:
        init_client()
    return _database


def set_database(database: Optional[Database]) -> None:
    """
    Replace the active database handle.

    Tests pass a mongomock database here; passing None drops the handle so the
    next get_database() call reconnects from config.
    """
    global _database
    _database = database
    if IS_DEV and database is not None:
        print(f"[DB] Database handle replaced: {database.name}")


def init_indexes(database: Optional[Database] = None) -> None:
    """Create the indexes the query paths rely on. Safe to call repeatedly."""
    db = database if database is not None else get_database()

    projects = db[PROJECTS]
    projects.create_index([("status", ASCENDING)])
    projects.create_index([("submitted_by", ASCENDING)])
    projects.create_index([("region", ASCENDING)])
    projects.create_index([("vintage", ASCENDING)])
    projects.create_index([("created_at", DESCENDING)])
    projects.create_index([("tags", ASCENDING)])
    projects.create_index([("is_public", ASCENDING)])
    projects.create_index([("location", GEOSPHERE)])

    users = db[USERS]
    users.create_index([("email", ASCENDING)])
    users.create_index([("status", ASCENDING)])
    users.create_index([("role", ASCENDING)])

    db[CREDIT_GRANTS].create_index([("project_id", ASCENDING)], unique=True)
    db[CREDIT_GRANTS].create_index([("user_id", ASCENDING)])

    print("[DB] Indexes ensured")
