"""
frontend/auth.py
Session-state helpers for the signed-in user.

Every Streamlit interaction reruns the script from the top, so auth state
lives in st.session_state and init_auth_state() must run at the start of
main() on each rerun. The backend issues a single bearer token (no refresh
token); when it stops working the user logs in again.
"""

from typing import Any, Dict, Optional

import streamlit as st


def init_auth_state() -> None:
    """Ensure auth keys exist. Idempotent."""
    ss = st.session_state
    ss.setdefault("auth_token", None)
    ss.setdefault("current_user", None)
    ss.setdefault("is_authenticated", False)
    ss.setdefault("role", None)

    # Keep the flag in sync with the token
    ss["is_authenticated"] = bool(ss["auth_token"])


def set_auth(auth_token: str, current_user: Dict[str, Any]) -> None:
    """Store the token and user after login or registration."""
    ss = st.session_state
    ss["auth_token"] = auth_token
    ss["current_user"] = current_user
    ss["is_authenticated"] = True
    ss["role"] = current_user.get("role") if isinstance(current_user, dict) else None


def update_current_user(current_user: Dict[str, Any]) -> None:
    """Replace the cached user (after a profile edit) without touching the token."""
    st.session_state["current_user"] = current_user


def clear_auth() -> None:
    """Forget the session. Safe to call repeatedly."""
    ss = st.session_state
    ss["auth_token"] = None
    ss["current_user"] = None
    ss["is_authenticated"] = False
    ss["role"] = None


def is_authenticated() -> bool:
    return bool(st.session_state.get("auth_token"))


def get_current_user() -> Optional[Dict[str, Any]]:
    return st.session_state.get("current_user")


def get_role() -> Optional[str]:
    user = get_current_user()
    if user and isinstance(user, dict):
        return user.get("role")
    return st.session_state.get("role")


def has_role(*roles: str) -> bool:
    return get_role() in roles


def get_auth_header() -> Dict[str, str]:
    """{"Authorization": "Bearer <token>"} when signed in, else {}."""
    token = st.session_state.get("auth_token")
    if token:
        return {"Authorization": f"Bearer {token}"}
    return {}


def require_auth(*roles: str) -> bool:
    """
    Guard for protected pages. Returns False (after showing a message) when
    the user is signed out or, if roles are given, holds none of them.

    Usage:
        if not require_auth("verifier", "admin"):
            return
    """
    if not is_authenticated():
        st.warning("You must be logged in to access this page.")
        if st.button("Go to Login", type="primary"):
            st.session_state["nav_page"] = "Login"
            st.rerun()
        return False

    if roles and not has_role(*roles):
        st.error(f"This page is only available to: {', '.join(roles)}")
        return False

    return True
