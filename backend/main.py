# ---------------------------------------------------------
# backend/main.py
# Blue Carbon MRV - Monitoring, Reporting & Verification Backend
#
# Run: uvicorn backend.main:app --reload (from repo root)
#
# - FastAPI + MongoDB
# - /api/auth       : register, login, profile, password reset
# - /api/projects   : project submission, review, evidence, milestones
# - /api/users      : user administration
# - /api/dashboard  : public and role dashboards
# ---------------------------------------------------------

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import CORS_ORIGINS, ENV, IS_DEV, IS_PROD
from backend.db import init_indexes
from backend.errors import MRVError
from backend.routes_auth import router as auth_router
from backend.routes_dashboard import router as dashboard_router
from backend.routes_projects import router as projects_router
from backend.routes_users import router as users_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_indexes()
    yield


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="Blue Carbon MRV Backend", version="0.1", lifespan=lifespan)

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------
# Error rendering
# ---------------------------------------------------------
@app.exception_handler(MRVError)
def handle_mrv_error(request: Request, exc: MRVError) -> JSONResponse:
    if IS_DEV or exc.status_code >= 500:
        print(f"[API] {request.method} {request.url.path} -> {exc.status_code} {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", [])[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"detail": "Validation failed", "error": "validation", "errors": errors}),
    )


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    print(f"[API] Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "error": "internal"})


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(users_router)
app.include_router(dashboard_router)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "env": ENV}
