"""
backend/modules/reporting.py

Read-only dashboard projections over the projects and users collections.

Every function recomputes from the current store; nothing is cached and
nothing is written. Simple group-bys run as aggregation pipelines; date
bucketing and per-hectare averages are finished in Python.

Some projections deliberately include every status (overview, by-status
breakdowns); credits-issued figures only count approved and verified
projects.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from backend.db import PROJECTS, USERS
from backend.errors import ValidationError
from backend.models import MilestoneStatus, Project, ProjectStatus, UserStatus, utcnow

ISSUED_STATUSES = [ProjectStatus.approved.value, ProjectStatus.verified.value]
TOP_N = 10
RECENT_N = 5
ACTIVITY_N = 10

TIME_SERIES_PERIODS = {
    "30days": (30, "day"),
    "6months": (6 * 30, "month"),
    "12months": (12 * 30, "month"),
}


def _group(db: Database, field: Optional[str], match: Optional[Dict[str, Any]] = None,
           extra: Optional[Dict[str, Any]] = None, sort: Optional[Dict[str, int]] = None,
           limit: int = 0) -> List[Dict[str, Any]]:
    group: Dict[str, Any] = {
        "_id": f"${field}" if field else None,
        "count": {"$sum": 1},
        "total_credits": {"$sum": "$credits"},
        "total_area": {"$sum": "$area"},
    }
    group.update(extra or {})
    pipeline: List[Dict[str, Any]] = []
    if match:
        pipeline.append({"$match": match})
    pipeline.append({"$group": group})
    if sort:
        pipeline.append({"$sort": sort})
    if limit:
        pipeline.append({"$limit": limit})
    return list(db[PROJECTS].aggregate(pipeline))


def _rename(rows: List[Dict[str, Any]], key: str) -> List[Dict[str, Any]]:
    out = []
    for row in rows:
        row = dict(row)
        row[key] = row.pop("_id")
        out.append(row)
    return out


def _avg_credits_per_hectare(rows: List[Dict[str, Any]]) -> float:
    ratios = [r.get("credits", 0) / r["area"] for r in rows if r.get("area")]
    return round(sum(ratios) / len(ratios), 2) if ratios else 0


def status_breakdown(db: Database, match: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
    """{status: {count, total_credits, total_area}} over the matched projects."""
    return {
        row["_id"]: {"count": row["count"], "total_credits": row["total_credits"], "total_area": row["total_area"]}
        for row in _group(db, "status", match)
    }


def dashboard_stats(db: Database) -> Dict[str, Any]:
    """By-status buckets plus overall totals; bucket counts sum to total_projects."""
    rows = list(db[PROJECTS].find({}, {"credits": 1, "area": 1}))
    overall = {
        "total_projects": len(rows),
        "total_credits": sum(r.get("credits", 0) for r in rows),
        "total_area": sum(r.get("area", 0) for r in rows),
        "average_credits_per_hectare": _avg_credits_per_hectare(rows),
    }
    return {"by_status": status_breakdown(db), "overall": overall}


def project_stats(db: Database) -> Dict[str, Any]:
    recent = [
        {"id": str(doc["_id"]), "name": doc["name"], "status": doc["status"],
         "organization": doc["organization"], "created_at": doc["created_at"]}
        for doc in db[PROJECTS].find({}).sort("created_at", -1).limit(RECENT_N)
    ]
    top_regions = _rename(_group(db, "region", sort={"count": -1}, limit=TOP_N), "region")
    return {"overview": dashboard_stats(db), "recent_projects": recent, "top_regions": top_regions}


def _month_buckets(now: datetime, months: int) -> "OrderedDict[str, Dict[str, Any]]":
    buckets: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    year, month = now.year, now.month
    keys = []
    for _ in range(months):
        keys.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    for y, m in reversed(keys):
        buckets[f"{y:04d}-{m:02d}"] = {"period": f"{y:04d}-{m:02d}", "count": 0, "credits": 0, "area": 0.0}
    return buckets


def _bucket_rows(rows: List[Dict[str, Any]], buckets: Dict[str, Dict[str, Any]], fmt: str) -> List[Dict[str, Any]]:
    for row in rows:
        key = row["created_at"].strftime(fmt)
        if key in buckets:
            buckets[key]["count"] += 1
            buckets[key]["credits"] += row.get("credits", 0)
            buckets[key]["area"] += row.get("area", 0)
    return list(buckets.values())


def monthly_trend(db: Database, match: Optional[Dict[str, Any]] = None, months: int = 12,
                  now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Project creations per calendar month, oldest first, empty months included."""
    now = now or utcnow()
    buckets = _month_buckets(now, months)
    rows = db[PROJECTS].find(match or {}, {"created_at": 1, "credits": 1, "area": 1})
    return _bucket_rows(list(rows), buckets, "%Y-%m")


def method_distribution(db: Database, match: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    rows = _group(db, "method", match, extra={"avg_area": {"$avg": "$area"}})
    return _rename(rows, "method")


def overview(db: Database, now: Optional[datetime] = None) -> Dict[str, Any]:
    rows = list(db[PROJECTS].find({}, {"credits": 1, "area": 1}))
    count = len(rows)
    total_credits = sum(r.get("credits", 0) for r in rows)
    total_area = sum(r.get("area", 0) for r in rows)
    top_regions = _group(db, "region", {"status": {"$in": ISSUED_STATUSES}},
                         sort={"total_credits": -1}, limit=TOP_N)
    return {
        "overview": {
            "total_projects": count,
            "total_credits": total_credits,
            "total_area": total_area,
            "avg_area": total_area / count if count else 0,
            "avg_credits": total_credits / count if count else 0,
            "by_status": status_breakdown(db),
        },
        "trends": {
            "monthly": monthly_trend(db, now=now),
            "regions": _rename(top_regions, "region"),
            "methods": method_distribution(db),
        },
    }


def carbon_stats(db: Database) -> Dict[str, Any]:
    credited = {"credits": {"$gt": 0}}
    by_status = _rename(_group(db, "status", extra={"avg_credits": {"$avg": "$credits"}}), "status")
    by_vintage = _rename(_group(db, "vintage", credited, sort={"_id": 1}), "vintage")

    by_method = []
    for row in _rename(_group(db, "method", credited), "method"):
        docs = list(db[PROJECTS].find(dict(credited, method=row["method"]), {"credits": 1, "area": 1}))
        row["avg_credits_per_hectare"] = _avg_credits_per_hectare(docs)
        by_method.append(row)

    top_orgs = _rename(_group(db, "organization", credited, sort={"total_credits": -1}, limit=TOP_N),
                       "organization")
    return {"by_status": by_status, "by_vintage": by_vintage, "by_method": by_method,
            "top_organizations": top_orgs}


def regional_stats(db: Database) -> List[Dict[str, Any]]:
    regions: Dict[str, Dict[str, Any]] = {}
    for doc in db[PROJECTS].find({}, {"region": 1, "status": 1, "credits": 1, "area": 1}):
        entry = regions.setdefault(doc["region"], {
            "region": doc["region"], "project_count": 0, "total_area": 0.0, "total_credits": 0,
            "approved": 0, "verified": 0, "pending": 0,
        })
        entry["project_count"] += 1
        entry["total_area"] += doc.get("area", 0)
        entry["total_credits"] += doc.get("credits", 0)
        if doc["status"] in ("approved", "verified", "pending"):
            entry[doc["status"]] += 1
    for entry in regions.values():
        entry["avg_credits"] = entry["total_credits"] / entry["project_count"]
    return sorted(regions.values(), key=lambda e: e["total_credits"], reverse=True)


def time_series(db: Database, period: str = "12months", now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Daily buckets for 30days, monthly for 6months/12months; oldest first."""
    if period not in TIME_SERIES_PERIODS:
        raise ValidationError(f"Invalid period: {period}")
    now = now or utcnow()
    days, unit = TIME_SERIES_PERIODS[period]
    since = now - timedelta(days=days)
    rows = list(db[PROJECTS].find({"created_at": {"$gte": since}}, {"created_at": 1, "credits": 1, "area": 1}))

    if unit == "day":
        buckets: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for offset in range(days, -1, -1):
            key = (now - timedelta(days=offset)).strftime("%Y-%m-%d")
            buckets[key] = {"period": key, "count": 0, "credits": 0, "area": 0.0}
        return _bucket_rows(rows, buckets, "%Y-%m-%d")

    months = days // 30 + 1
    return _bucket_rows(rows, _month_buckets(now, months), "%Y-%m")


def user_dashboard(db: Database, user_id: str) -> Dict[str, Any]:
    projects = [Project.from_document(d) for d in db[PROJECTS].find({"submitted_by": user_id}).sort("created_at", -1)]

    by_status: Dict[str, int] = {}
    for p in projects:
        by_status[p.status] = by_status.get(p.status, 0) + 1
    total_credits = sum(p.credits for p in projects)
    total_area = sum(p.area for p in projects)

    activity = []
    tasks = []
    for p in projects:
        activity.append({"type": "project_created", "date": p.created_at, "project_id": p.id,
                         "project_name": p.name, "description": f"Created project: {p.name}"})
        if p.review_comments:
            latest = p.review_comments[-1]
            activity.append({"type": "status_change", "date": latest.reviewed_at, "project_id": p.id,
                             "project_name": p.name, "status": p.status,
                             "description": f"Project {p.name} status changed to {p.status}"})
        for m in p.milestones:
            if m.status == MilestoneStatus.completed.value and m.completed_date:
                activity.append({"type": "milestone_completed", "date": m.completed_date, "project_id": p.id,
                                 "project_name": p.name, "description": f"Completed milestone: {m.title}"})
            if m.status in (MilestoneStatus.pending.value, MilestoneStatus.in_progress.value):
                tasks.append({"milestone_id": m.id, "title": m.title, "status": m.status,
                              "target_date": m.target_date, "project_id": p.id, "project_name": p.name})

    activity.sort(key=lambda a: a["date"], reverse=True)
    return {
        "statistics": {
            "total_projects": len(projects),
            "projects_by_status": by_status,
            "total_credits": total_credits,
            "total_area": total_area,
            "avg_credits_per_hectare": total_credits / total_area if total_area else 0,
        },
        "projects": [p.public() for p in projects],
        "recent_activity": activity[:ACTIVITY_N],
        "pending_tasks": tasks,
    }


def admin_dashboard(db: Database) -> Dict[str, Any]:
    pending = [Project.from_document(d) for d in
               db[PROJECTS].find({"status": ProjectStatus.pending.value}).sort("created_at", 1)]
    delayed = [Project.from_document(d) for d in
               db[PROJECTS].find({"milestones.status": MilestoneStatus.delayed.value})]

    issued = sum(d.get("credits", 0) for d in
                 db[PROJECTS].find({"status": {"$in": ISSUED_STATUSES}}, {"credits": 1}))
    users_by_role = [
        {"role": row["_id"], "count": row["count"]}
        for row in db[USERS].aggregate([{"$group": {"_id": "$role", "count": {"$sum": 1}}}])
    ]
    recent_users = [
        {"id": str(d["_id"]), "full_name": d.get("full_name"), "email": d.get("email"),
         "organization": d.get("organization"), "role": d.get("role"), "created_at": d.get("created_at")}
        for d in db[USERS].find({}).sort("created_at", -1).limit(TOP_N)
    ]
    return {
        "system_health": {
            "total_users": db[USERS].count_documents({}),
            "active_users": db[USERS].count_documents({"status": UserStatus.active.value}),
            "total_projects": db[PROJECTS].count_documents({}),
            "pending_reviews": len(pending),
            "verified_projects": db[PROJECTS].count_documents({"status": ProjectStatus.verified.value}),
            "total_credits_issued": issued,
        },
        "pending_reviews": [p.public() for p in pending],
        "user_stats": users_by_role,
        "recent_users": recent_users,
        "delayed_projects": [p.public() for p in delayed],
    }


def user_statistics(db: Database, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    match = {"submitted_by": user_id}
    return {
        "projects_by_status": status_breakdown(db, match),
        "monthly_trend": monthly_trend(db, match, now=now),
        "method_distribution": method_distribution(db, match),
    }
