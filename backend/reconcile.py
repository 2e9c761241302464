#!/usr/bin/env python3
"""
Reconciliation pass for user/project bookkeeping.

Project deletion pulls the owner's reference and then removes the record
without a transaction, and user totals are maintained incrementally from the
credit ledger. This script finds what can drift:

- dangling references: ids in a user's project list with no project record
- missing references: projects absent from their owner's project list
- total mismatches: total_credits/total_area differing from the ledger sum
- credit mismatches: a project's credits differing from its ledger grant
  (reported, never repaired)

Run: python -m backend.reconcile          (report only)
     python -m backend.reconcile --fix    (report and repair)
"""

import argparse
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from backend.db import get_database
from backend.repositories import CreditLedger, ProjectRepository, UserRepository

AREA_TOLERANCE = 1e-6


def find_issues(db: Database) -> Dict[str, List[Dict[str, Any]]]:
    users = UserRepository(db)
    projects = ProjectRepository(db)
    ledger = CreditLedger(db)

    project_docs = projects.find_raw({}, {"submitted_by": 1, "credits": 1})
    project_owners = {str(doc["_id"]): doc["submitted_by"] for doc in project_docs}
    granted = {g.project_id: g.credits for g in ledger.all()}

    dangling = []
    missing = []
    totals = []

    for user in users.find({}):
        listed = set(user.projects)
        for project_id in listed:
            if project_id not in project_owners:
                dangling.append({"user_id": user.id, "project_id": project_id})

        credits, area = ledger.totals_for_user(user.id)
        if user.total_credits != credits or abs(user.total_area - area) > AREA_TOLERANCE:
            totals.append({
                "user_id": user.id,
                "total_credits": user.total_credits,
                "ledger_credits": credits,
                "total_area": user.total_area,
                "ledger_area": area,
            })

    listed_by_user = {u.id: set(u.projects) for u in users.find({})}
    for project_id, owner_id in project_owners.items():
        if project_id not in listed_by_user.get(owner_id, set()):
            missing.append({"user_id": owner_id, "project_id": project_id})

    # Report only: which side is right depends on where a status change stopped
    credit_mismatches = [
        {"project_id": str(doc["_id"]), "project_credits": doc.get("credits", 0),
         "ledger_credits": granted.get(str(doc["_id"]), 0)}
        for doc in project_docs
        if doc.get("credits", 0) != granted.get(str(doc["_id"]), 0)
    ]

    return {"dangling_references": dangling, "missing_references": missing, "total_mismatches": totals,
            "credit_mismatches": credit_mismatches}


def repair(db: Database, issues: Dict[str, List[Dict[str, Any]]]) -> int:
    users = UserRepository(db)
    fixed = 0

    for issue in issues["dangling_references"]:
        users.pull_project(issue["user_id"], issue["project_id"])
        fixed += 1

    for issue in issues["missing_references"]:
        if users.get(issue["user_id"]) is not None:
            users.push_project(issue["user_id"], issue["project_id"])
            fixed += 1

    for issue in issues["total_mismatches"]:
        users.update_fields(issue["user_id"], {
            "total_credits": issue["ledger_credits"],
            "total_area": issue["ledger_area"],
        })
        fixed += 1

    return fixed


def run(db: Optional[Database] = None, fix: bool = False) -> Dict[str, List[Dict[str, Any]]]:
    db = db if db is not None else get_database()
    issues = find_issues(db)

    for kind, items in issues.items():
        print(f"[RECONCILE] {kind}: {len(items)}")
        for item in items:
            print(f"[RECONCILE]   {item}")

    if fix:
        fixed = repair(db, issues)
        print(f"[RECONCILE] Repaired {fixed} issue(s)")
    return issues


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check and repair user/project bookkeeping")
    parser.add_argument("--fix", action="store_true", help="apply repairs after reporting")
    args = parser.parse_args()
    run(fix=args.fix)
