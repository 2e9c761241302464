# frontend/config.py
# Environment-aware configuration for the Blue Carbon MRV frontend

import os
from typing import Literal, Optional

# Environment detection - normalize to lowercase, same names as the backend
_raw_env = os.environ.get("ENV", "dev").lower()
ENV: Literal["dev", "staging", "prod"] = _raw_env if _raw_env in ("dev", "staging", "prod") else "prod"  # type: ignore

IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# All backend routes live under this prefix
API_PREFIX = "/api"

LOCAL_BACKEND_URL = "http://127.0.0.1:8000"


def validate_api_url(url: str, env: str) -> None:
    """
    Validate the backend URL against the environment's rules.

    Raises:
        ValueError: empty URL, or plain HTTP / localhost outside dev
    """
    if not url:
        raise ValueError("API base URL cannot be empty")

    if env in ("staging", "prod"):
        if not url.startswith("https://"):
            raise ValueError(f"Production/staging must use HTTPS. Got: {url}")
        if "127.0.0.1" in url or "localhost" in url:
            raise ValueError(f"Production/staging cannot use localhost URLs. Got: {url}")


def get_api_base_url(env: Optional[str] = None) -> str:
    """
    Resolve the backend base URL.

    Priority:
    1. BACKEND_URL environment variable
    2. Local default (http://127.0.0.1:8000) in dev only

    Raises:
        RuntimeError: staging/prod with no BACKEND_URL configured
    """
    env = env or ENV
    backend_url = os.environ.get("BACKEND_URL", "").strip()
    if backend_url:
        url = backend_url.rstrip("/")
        validate_api_url(url, env)
        return url

    if env == "dev":
        return LOCAL_BACKEND_URL

    raise RuntimeError(
        f"Backend URL not configured for {env.upper()} environment. "
        f"Set BACKEND_URL to the backend service URL (HTTPS)."
    )


try:
    BACKEND_URL = get_api_base_url()
except (RuntimeError, ValueError) as e:
    print(f"[CONFIG] CRITICAL: {e}")
    BACKEND_URL = ""  # API calls will surface the configuration error

# Dashboard refresh (seconds) for cached public data
PUBLIC_CACHE_SECONDS = int(os.environ.get("PUBLIC_CACHE_SECONDS", "60"))

ENABLE_DEBUG_UI = IS_DEV

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Backend URL: {BACKEND_URL or 'unset'}")
