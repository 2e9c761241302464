# backend/config.py
# Environment-aware configuration for the Blue Carbon MRV backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT and session configuration
SECRET_KEY = os.environ.get("SECRET_KEY", "bluecarbon-dev-secret")
ALGORITHM = "HS256"

# Token lifetimes
ACCESS_TOKEN_DAYS = int(os.environ.get("ACCESS_TOKEN_DAYS", "7"))
RESET_TOKEN_MINUTES = int(os.environ.get("RESET_TOKEN_MINUTES", "10"))

# Login lockout
MAX_LOGIN_ATTEMPTS = int(os.environ.get("MAX_LOGIN_ATTEMPTS", "5"))
LOCK_MINUTES = int(os.environ.get("LOCK_MINUTES", "120"))

# Reserved admin credential pair (never stored in the users collection)
ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@example.com").strip().lower()
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin123")

# Database configuration
MONGODB_URI = os.environ.get("MONGODB_URI", "mongodb://localhost:27017").strip()
MONGODB_DB = os.environ.get("MONGODB_DB", "bluecarbon")

# Evidence storage (Cloudinary)
CLOUDINARY_CLOUD_NAME = os.environ.get("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.environ.get("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.environ.get("CLOUDINARY_API_SECRET", "")
UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "blue-carbon")

# Upload limits
MAX_IMAGE_BYTES = int(os.environ.get("MAX_IMAGE_BYTES", str(10 * 1024 * 1024)))
MAX_DOCUMENT_BYTES = int(os.environ.get("MAX_DOCUMENT_BYTES", str(25 * 1024 * 1024)))
MAX_FILES_PER_UPLOAD = 5

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:8501",  # Streamlit default
    "http://127.0.0.1:8501",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {MONGODB_DB} ({'local' if 'localhost' in MONGODB_URI else 'remote'})")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_DAYS} days")
print(f"[CONFIG] Lockout: {MAX_LOGIN_ATTEMPTS} attempts / {LOCK_MINUTES} minutes")
print(f"[CONFIG] Evidence storage: {'cloudinary' if CLOUDINARY_CLOUD_NAME else 'unconfigured'}")
