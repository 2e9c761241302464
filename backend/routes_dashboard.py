"""
backend/routes_dashboard.py

Dashboard read endpoints. overview, carbon-stats, regional-stats and
time-series are public; /user needs a principal and /admin the admin role.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from backend.dependencies import get_db, require_principal, require_roles
from backend.models import Principal
from backend.modules import reporting

router = APIRouter(
    prefix="/api/dashboard",
    tags=["dashboard"],
)


@router.get("/overview")
def overview(db=Depends(get_db)) -> Dict[str, Any]:
    return reporting.overview(db)


@router.get("/carbon-stats")
def carbon_stats(db=Depends(get_db)) -> Dict[str, Any]:
    return reporting.carbon_stats(db)


@router.get("/user")
def user_dashboard(principal: Principal = Depends(require_principal), db=Depends(get_db)) -> Dict[str, Any]:
    return reporting.user_dashboard(db, principal.id)


@router.get("/admin", dependencies=[Depends(require_roles("admin"))])
def admin_dashboard(db=Depends(get_db)) -> Dict[str, Any]:
    return reporting.admin_dashboard(db)


@router.get("/regional-stats")
def regional_stats(db=Depends(get_db)) -> Dict[str, Any]:
    return {"regional_stats": reporting.regional_stats(db)}


@router.get("/time-series")
def time_series(period: str = Query("12months"), db=Depends(get_db)) -> Dict[str, Any]:
    return {"period": period, "time_series": reporting.time_series(db, period)}
