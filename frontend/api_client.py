"""
frontend/api_client.py
Centralized API client for all backend requests.

This module ensures:
1. Protected calls carry the Authorization header when signed in
2. 401 responses end the session and send the user back to Login
3. 403 responses show one consistent permission message
4. Connection problems never leak tokens into messages or logs
"""

from typing import Any, Dict, List, Literal, Optional, Tuple

import requests
import streamlit as st

# Import config (robust fallback for different run contexts)
try:
    from frontend.config import API_PREFIX, IS_DEV, get_api_base_url
except ModuleNotFoundError:
    from config import API_PREFIX, IS_DEV, get_api_base_url

try:
    from frontend.auth import clear_auth, get_auth_header
except ModuleNotFoundError:
    from auth import clear_auth, get_auth_header


__all__ = ["api_request", "error_detail", "is_public_endpoint"]

# (method, path) pairs that never need a token
PUBLIC_ENDPOINTS = {
    ("POST", "/auth/login"),
    ("POST", "/auth/register"),
    ("POST", "/auth/forgot-password"),
    ("GET", "/projects"),
    ("GET", "/projects/stats"),
    ("GET", "/dashboard/overview"),
    ("GET", "/dashboard/carbon-stats"),
    ("GET", "/dashboard/regional-stats"),
    ("GET", "/dashboard/time-series"),
}

# Files for multipart uploads: [(field, (filename, bytes, content_type)), ...]
Files = List[Tuple[str, Tuple[str, bytes, str]]]


def is_public_endpoint(method: str, path: str) -> bool:
    if path.startswith("/auth/reset-password/"):
        return True
    return (method, path) in PUBLIC_ENDPOINTS


def build_url(base_url: str, path: str) -> str:
    return f"{base_url}{API_PREFIX}{path}"


def error_detail(resp: Optional[requests.Response], default: str = "Request failed") -> str:
    """Human-readable message from an error response body."""
    if resp is None:
        return default
    try:
        body = resp.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    detail = body.get("detail") or default
    errors = body.get("errors")
    if errors:
        fields = "; ".join(f"{e.get('field')}: {e.get('message')}" for e in errors)
        detail = f"{detail} ({fields})"
    return detail


def api_request(
    method: Literal["GET", "POST", "PUT", "DELETE"],
    path: str,
    json: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
    files: Optional[Files] = None,
    data: Optional[Dict[str, Any]] = None,
    timeout: int = 20,
) -> Optional[requests.Response]:
    """
    Make an API request with auth header attachment and error handling.

    This is the ONLY function that should make backend API calls.

    Args:
        method: HTTP method
        path: path below /api (e.g. "/projects")
        json: JSON body for POST/PUT
        params: query parameters
        files: multipart files for evidence uploads
        data: multipart form fields sent with files
        timeout: seconds

    Returns:
        The response (callers check status_code), or None when the request
        could not be made or the session expired.
    """
    try:
        base_url = get_api_base_url()
    except (RuntimeError, ValueError) as e:
        st.error(f"Configuration error: {e}")
        return None

    url = build_url(base_url, path)
    headers = {"Accept": "application/json"}

    public = is_public_endpoint(method, path)
    if not public:
        auth_headers = get_auth_header()
        if not auth_headers:
            st.error("Authentication required. Please log in.")
            return None
        headers.update(auth_headers)
    else:
        # Public reads still identify the user so private projects resolve
        headers.update(get_auth_header())

    try:
        if method == "GET":
            resp = requests.get(url, headers=headers, params=params, timeout=timeout)
        elif method == "POST":
            if files:
                resp = requests.post(url, files=files, data=data, headers=headers, params=params, timeout=timeout)
            else:
                resp = requests.post(url, json=json, headers=headers, params=params, timeout=timeout)
        elif method == "PUT":
            resp = requests.put(url, json=json, headers=headers, params=params, timeout=timeout)
        elif method == "DELETE":
            resp = requests.delete(url, headers=headers, params=params, timeout=timeout)
        else:
            raise ValueError(f"Unsupported HTTP method: {method}")
    except requests.exceptions.Timeout:
        if IS_DEV:
            print(f"[API] Timeout on {method} {path}")
        st.error(f"Request timed out after {timeout}s. Please try again.")
        return None
    except requests.exceptions.ConnectionError:
        if IS_DEV:
            print(f"[API] Connection error on {method} {path}")
        st.error(f"Cannot connect to backend at {base_url}. Please check your connection.")
        return None

    if resp.status_code == 401 and not public:
        if IS_DEV:
            print(f"[API] 401 on {path}, session ended")
        _handle_session_expired(error_detail(resp, "Your session has expired."))
        return None

    if resp.status_code == 403:
        if IS_DEV:
            print(f"[API] 403 Forbidden on {path}")
        st.error(f"You don't have permission to perform this action. {error_detail(resp, '')}".strip())

    return resp


def _handle_session_expired(message: str) -> None:
    """Clear auth and route to Login on the next run."""
    st.warning(f"{message} Please log in again.")
    clear_auth()
    st.session_state["nav_page"] = "Login"
    st.rerun()
