# frontend/app.py
# Blue Carbon MRV – field portal, review panel and public transparency dashboard
#
# Run from repo root: streamlit run frontend/app.py
# Or from frontend folder: streamlit run app.py

from __future__ import annotations

import base64
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# Import environment config (robust fallback for different run contexts)
try:
    from frontend.config import ENABLE_DEBUG_UI, IS_DEV, PUBLIC_CACHE_SECONDS, get_api_base_url
except ModuleNotFoundError:
    from config import ENABLE_DEBUG_UI, IS_DEV, PUBLIC_CACHE_SECONDS, get_api_base_url

try:
    from frontend.auth import (
        clear_auth, get_current_user, get_role, init_auth_state,
        is_authenticated, require_auth, set_auth, update_current_user,
    )
except ModuleNotFoundError:
    from auth import (
        clear_auth, get_current_user, get_role, init_auth_state,
        is_authenticated, require_auth, set_auth, update_current_user,
    )

try:
    from frontend.api_client import api_request, error_detail
except ModuleNotFoundError:
    from api_client import api_request, error_detail

st.set_page_config(page_title="Blue Carbon MRV", page_icon="🌊", layout="wide")

# --------------------------------------------------------------------
# Constants
# --------------------------------------------------------------------

PROJECT_STATUSES = ["pending", "under_review", "approved", "rejected", "verified"]
METHODS = ["plantation", "natural_regeneration", "mixed"]
MILESTONE_STATUSES = ["pending", "in_progress", "completed", "delayed"]
VERIFICATION_METHODS = ["satellite", "drone", "ground_survey", "mixed"]
ROLES = ["field", "verifier", "admin"]

STATUS_BADGES = {
    "pending": "🕓 pending",
    "under_review": "🔎 under review",
    "approved": "✅ approved",
    "rejected": "❌ rejected",
    "verified": "🏅 verified",
}

IMAGE_TYPES = ["png", "jpg", "jpeg", "gif", "webp"]
DOCUMENT_TYPES = ["pdf", "doc", "docx", "txt", "geojson"]

# Pages per role; public pages first
PUBLIC_PAGES = ["Transparency", "Projects"]
ROLE_PAGES = {
    "field": ["My Projects", "Account"],
    "verifier": ["Review", "Account"],
    "admin": ["Review", "Users", "Admin", "Account"],
}

# --------------------------------------------------------------------
# State helpers
# --------------------------------------------------------------------


def init_state() -> None:
    ss = st.session_state
    init_auth_state()
    ss.setdefault("nav_page", None)
    ss.setdefault("selected_project_id", None)
    ss.setdefault("_flash", None)


init_state()

ss = st.session_state


def go_to(page: str) -> None:
    ss["nav_page"] = page
    st.rerun()


def flash(message: str) -> None:
    """Show a success message after the next rerun."""
    ss["_flash"] = message


def show_flash() -> None:
    message = ss.pop("_flash", None)
    if message:
        st.success(message)


def handle_api_error(resp: Optional[requests.Response], operation: str = "operation") -> None:
    """Show the backend's error detail; 401/403 are already handled by api_request."""
    if resp is None or resp.status_code in (401, 403):
        return
    if resp.status_code == 423:
        st.error("🔒 Account temporarily locked after too many failed logins. Try again later.")
    elif resp.status_code == 409:
        st.error(f"Conflict: {error_detail(resp)}")
    elif resp.status_code == 502:
        st.error("Evidence storage is unavailable right now. Please retry the upload.")
    else:
        st.error(f"{operation.capitalize()} failed: {error_detail(resp)}")


def fetch_json(path: str, params: Optional[Dict[str, Any]] = None, operation: str = "load") -> Optional[Dict[str, Any]]:
    resp = api_request("GET", path, params=params)
    if resp is None:
        return None
    if resp.status_code != 200:
        handle_api_error(resp, operation)
        return None
    return resp.json()


@st.cache_data(ttl=PUBLIC_CACHE_SECONDS, show_spinner=False)
def fetch_public(path: str, period: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Public dashboard data; cached because it is identical for every visitor."""
    try:
        resp = requests.get(f"{get_api_base_url()}/api{path}", params={"period": period} if period else None,
                            timeout=20)
    except (requests.exceptions.RequestException, RuntimeError, ValueError) as e:
        print(f"[DASHBOARD] Public fetch failed for {path}: {type(e).__name__}")
        return None
    if resp.status_code != 200:
        return None
    return resp.json()


# --------------------------------------------------------------------
# Formatting
# --------------------------------------------------------------------


def format_credits(value: Optional[float]) -> str:
    if value is None:
        return "–"
    return f"{int(value):,}"


def format_area(value: Optional[float]) -> str:
    if value is None:
        return "–"
    return f"{value:,.1f} ha"


def projects_frame(projects: List[Dict[str, Any]]) -> pd.DataFrame:
    if not projects:
        return pd.DataFrame()
    df = pd.DataFrame(projects)
    df["status"] = df["status"].map(lambda s: STATUS_BADGES.get(s, s))
    if "submitter" in df:
        df["submitter"] = df["submitter"].map(lambda s: (s or {}).get("full_name"))
    columns = ["name", "organization", "region", "method", "vintage", "area",
               "estimated_credits", "credits", "status", "submitter", "created_at", "id"]
    return df[[c for c in columns if c in df.columns]]


def species_frame(species_mix: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(species_mix or [], columns=["species", "percentage"])


def to_upload(files) -> List:
    return [(f.name, f.getvalue(), f.type or "application/octet-stream") for f in files]


# --------------------------------------------------------------------
# Sidebar + header
# --------------------------------------------------------------------


def available_pages() -> List[str]:
    if not is_authenticated():
        return PUBLIC_PAGES + ["Login"]
    return PUBLIC_PAGES + ROLE_PAGES.get(get_role(), [])


def render_sidebar() -> None:
    with st.sidebar:
        st.markdown("## 🌊 Blue Carbon MRV")

        user = get_current_user()
        if user:
            st.caption(f"Signed in as **{user.get('full_name') or user.get('email')}** ({user.get('role')})")
        else:
            st.caption("Browsing as a guest")

        pages = available_pages()
        current = ss.get("nav_page")
        index = pages.index(current) if current in pages else 0
        choice = st.radio("Navigate", pages, index=index, key="nav_radio")
        if choice != current:
            ss["nav_page"] = choice
            st.rerun()

        if is_authenticated():
            st.markdown("---")
            if st.button("Log out", use_container_width=True):
                api_request("POST", "/auth/logout")
                clear_auth()
                go_to("Transparency")

        if ENABLE_DEBUG_UI:
            with st.expander("Debug", expanded=False):
                try:
                    st.text(f"API: {get_api_base_url()}")
                except (RuntimeError, ValueError) as e:
                    st.text(f"API: misconfigured ({e})")
                st.text(f"nav_page: {ss.get('nav_page')}")
                st.text(f"role: {get_role()}")
                st.text(f"token_present: {bool(ss.get('auth_token'))}")


# --------------------------------------------------------------------
# Login / registration / password reset
# --------------------------------------------------------------------


def render_login() -> None:
    st.header("Login")

    with st.form("login_form"):
        email = st.text_input("Email", key="login_email")
        password = st.text_input("Password", type="password", key="login_password")
        role = st.selectbox("Sign in as", ROLES, key="login_role")
        submitted = st.form_submit_button("Login")

    if submitted:
        if not email or not password:
            st.error("Please enter email and password.")
            return
        resp = api_request("POST", "/auth/login", json={"email": email, "password": password, "role": role},
                           timeout=10)
        if resp is None:
            return
        if resp.status_code == 200:
            data = resp.json()
            set_auth(data["token"], data["user"])
            flash("Welcome back!")
            go_to(ROLE_PAGES.get(data["user"].get("role"), PUBLIC_PAGES)[0])
        elif resp.status_code == 401:
            st.error(error_detail(resp, "Invalid credentials"))
        else:
            handle_api_error(resp, "login")

    st.divider()
    st.subheader("Register as a field user")

    with st.form("register_form"):
        col1, col2 = st.columns(2)
        with col1:
            full_name = st.text_input("Full name")
            reg_email = st.text_input("Email", key="register_email")
            reg_password = st.text_input("Password", type="password", key="register_password")
            confirm = st.text_input("Confirm password", type="password")
        with col2:
            organization = st.text_input("Organization")
            phone = st.text_input("Phone (10 digits)")
            location = st.text_input("Location")
            user_role = st.text_input("Your role (e.g. Project Manager)")
        reg_submitted = st.form_submit_button("Register")

    if reg_submitted:
        payload = {
            "full_name": full_name,
            "email": reg_email,
            "password": reg_password,
            "confirm_password": confirm,
            "organization": organization or None,
            "phone": phone or None,
            "location": location or None,
            "user_role": user_role or None,
        }
        resp = api_request("POST", "/auth/register", json=payload, timeout=10)
        if resp is None:
            return
        if resp.status_code == 201:
            data = resp.json()
            set_auth(data["token"], data["user"])
            flash("Registration successful!")
            go_to("My Projects")
        else:
            handle_api_error(resp, "registration")

    with st.expander("Forgot password?"):
        with st.form("forgot_form"):
            forgot_email = st.text_input("Account email")
            forgot_submitted = st.form_submit_button("Send reset instructions")
        if forgot_submitted and forgot_email:
            resp = api_request("POST", "/auth/forgot-password", json={"email": forgot_email})
            if resp is not None and resp.status_code == 200:
                data = resp.json()
                st.info(data.get("message"))
                if IS_DEV and data.get("reset_token"):
                    ss["_reset_token"] = data["reset_token"]
            else:
                handle_api_error(resp, "reset request")

        with st.form("reset_form"):
            token = st.text_input("Reset token", value=ss.get("_reset_token") or "")
            new_password = st.text_input("New password", type="password")
            reset_submitted = st.form_submit_button("Reset password")
        if reset_submitted:
            resp = api_request("PUT", f"/auth/reset-password/{token}", json={"password": new_password})
            if resp is not None and resp.status_code == 200:
                ss.pop("_reset_token", None)
                st.success("Password reset. You can log in now.")
            else:
                handle_api_error(resp, "password reset")


# --------------------------------------------------------------------
# Public transparency dashboard
# --------------------------------------------------------------------


def render_transparency() -> None:
    st.header("Transparency dashboard")
    st.caption("Live figures across every submitted blue carbon project.")

    data = fetch_public("/dashboard/overview")
    if data is None:
        st.warning("Dashboard data is unavailable right now.")
        return

    overview = data["overview"]
    cols = st.columns(4)
    cols[0].metric("Projects", overview["total_projects"])
    cols[1].metric("Credits", format_credits(overview["total_credits"]))
    cols[2].metric("Area restored", format_area(overview["total_area"]))
    cols[3].metric("Avg credits / project", format_credits(overview["avg_credits"]))

    by_status = pd.DataFrame.from_dict(overview.get("by_status") or {}, orient="index")
    if not by_status.empty:
        st.subheader("Projects by status")
        st.bar_chart(by_status["count"])

    monthly = pd.DataFrame(data["trends"]["monthly"])
    if not monthly.empty:
        st.subheader("Submissions per month")
        st.line_chart(monthly.set_index("period")[["count", "credits"]])

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Top regions (issued credits)")
        regions = pd.DataFrame(data["trends"]["regions"])
        if regions.empty:
            st.info("No credits issued yet.")
        else:
            st.dataframe(regions[["region", "count", "total_credits", "total_area"]], hide_index=True)
    with col2:
        st.subheader("Restoration methods")
        methods = pd.DataFrame(data["trends"]["methods"])
        if not methods.empty:
            st.dataframe(methods[["method", "count", "total_area", "avg_area"]], hide_index=True)

    regional = fetch_public("/dashboard/regional-stats")
    if regional and regional["regional_stats"]:
        st.subheader("Regional breakdown")
        st.dataframe(pd.DataFrame(regional["regional_stats"]), hide_index=True)

    st.subheader("Activity over time")
    period = st.selectbox("Period", ["30days", "6months", "12months"], index=2)
    series = fetch_public("/dashboard/time-series", period=period)
    if series:
        frame = pd.DataFrame(series["time_series"])
        if not frame.empty:
            st.area_chart(frame.set_index("period")[["count"]])

    carbon = fetch_public("/dashboard/carbon-stats")
    if carbon and carbon["by_vintage"]:
        st.subheader("Credits by vintage")
        st.bar_chart(pd.DataFrame(carbon["by_vintage"]).set_index("vintage")["total_credits"])


# --------------------------------------------------------------------
# Public project browser
# --------------------------------------------------------------------


def render_project_detail(project_id: str) -> None:
    data = fetch_json(f"/projects/{project_id}", operation="load project")
    if data is None:
        return
    project = data["project"]

    st.subheader(project["name"])
    st.caption(f"{project['organization']} · {project['region']} · {STATUS_BADGES.get(project['status'])}")
    st.write(project["description"])

    cols = st.columns(4)
    cols[0].metric("Area", format_area(project["area"]))
    cols[1].metric("Estimated credits", format_credits(project["estimated_credits"]))
    cols[2].metric("Issued credits", format_credits(project["credits"]))
    cols[3].metric("Milestones done", f"{project['completion_percentage']}%")

    location = project.get("location")
    if location:
        lng, lat = location["coordinates"]
        st.map(pd.DataFrame({"lat": [lat], "lon": [lng]}), zoom=8)

    if project.get("species_mix"):
        st.markdown("**Species mix**")
        st.dataframe(species_frame(project["species_mix"]), hide_index=True)

    if project.get("images"):
        st.markdown("**Images**")
        st.image([i["url"] for i in project["images"]], width=200,
                 caption=[i.get("description") or "" for i in project["images"]])

    if project.get("documents"):
        st.markdown("**Documents**")
        for d in project["documents"]:
            st.markdown(f"- [{d.get('file_name') or d['public_id']}]({d['url']})")

    if project.get("milestones"):
        st.markdown("**Milestones**")
        st.dataframe(pd.DataFrame(project["milestones"])[["title", "status", "target_date", "completed_date"]],
                     hide_index=True)

    if project.get("review_comments"):
        st.markdown("**Review history**")
        st.dataframe(pd.DataFrame(project["review_comments"])[["reviewed_at", "type", "comment"]], hide_index=True)

    verification = project.get("verification_data")
    if verification:
        st.info(f"Verified {verification.get('verified_at', '')[:10]} via "
                f"{verification.get('verification_method') or 'n/a'} "
                f"(confidence {verification.get('confidence') or 'n/a'})")


def render_projects() -> None:
    st.header("Projects")

    with st.expander("Filters", expanded=False):
        col1, col2, col3 = st.columns(3)
        search = col1.text_input("Search")
        region = col2.text_input("Region")
        organization = col3.text_input("Organization")
        status = col1.selectbox("Status", ["any"] + PROJECT_STATUSES)
        method = col2.selectbox("Method", ["any"] + METHODS)
        page = col3.number_input("Page", min_value=1, value=1, step=1)

    params = {"page": int(page), "limit": 20}
    for key, value in (("search", search), ("region", region), ("organization", organization)):
        if value:
            params[key] = value
    if status != "any":
        params["status"] = status
    if method != "any":
        params["method"] = method

    data = fetch_json("/projects", params=params, operation="load projects")
    if data is None:
        return
    pagination = data["pagination"]
    st.caption(f"{pagination['total_count']} projects · page {pagination['current_page']} of "
               f"{max(pagination['total_pages'], 1)}")

    df = projects_frame(data["projects"])
    if df.empty:
        st.info("No projects match these filters.")
        return
    st.dataframe(df.drop(columns=["id"]), hide_index=True)

    names = {p["name"]: p["id"] for p in data["projects"]}
    selected = st.selectbox("Open project", ["–"] + list(names))
    if selected != "–":
        render_project_detail(names[selected])


# --------------------------------------------------------------------
# Field portal
# --------------------------------------------------------------------


def render_submit_project() -> None:
    with st.form("submit_project"):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Project name")
            organization = st.text_input("Organization", value=(get_current_user() or {}).get("organization") or "")
            region = st.text_input("Region")
            method = st.selectbox("Restoration method", METHODS)
        with col2:
            area = st.number_input("Area (hectares)", min_value=0.1, max_value=10000.0, value=1.0, step=0.5)
            vintage = st.number_input("Vintage year", min_value=2000, max_value=date.today().year + 5,
                                      value=date.today().year, step=1)
            lng = st.number_input("Longitude", min_value=-180.0, max_value=180.0, value=0.0, format="%.4f")
            lat = st.number_input("Latitude", min_value=-90.0, max_value=90.0, value=0.0, format="%.4f")
        description = st.text_area("Description")
        tags = st.text_input("Tags (comma separated)")
        st.markdown("Species mix (percentages must total 100)")
        species = st.data_editor(species_frame([]), num_rows="dynamic", key="new_species_mix")
        image = st.file_uploader("Baseline image (optional)", type=IMAGE_TYPES)
        submitted = st.form_submit_button("Submit project")

    if not submitted:
        return

    species_mix = [
        {"species": str(row["species"]), "percentage": float(row["percentage"])}
        for _, row in species.dropna().iterrows()
    ]
    payload = {
        "name": name,
        "description": description,
        "organization": organization,
        "region": region,
        "area": area,
        "method": method,
        "vintage": int(vintage),
        "species_mix": species_mix or None,
        "tags": [t.strip() for t in tags.split(",") if t.strip()] or None,
    }
    if lng or lat:
        payload["coordinates"] = [lng, lat]
    if image is not None:
        payload["image_base64"] = f"data:{image.type};base64,{base64.b64encode(image.getvalue()).decode()}"

    resp = api_request("POST", "/projects", json=payload, timeout=60)
    if resp is not None and resp.status_code == 201:
        project = resp.json()["project"]
        flash(f"Submitted {project['name']} (estimated {format_credits(project['estimated_credits'])} credits)")
        st.rerun()
    else:
        handle_api_error(resp, "project submission")


def render_evidence_tools(project: Dict[str, Any]) -> None:
    pid = project["id"]

    st.markdown("**Upload evidence**")
    col1, col2 = st.columns(2)
    with col1:
        images = st.file_uploader("Images", type=IMAGE_TYPES, accept_multiple_files=True, key=f"img_{pid}")
        caption = st.text_input("Caption", key=f"caption_{pid}")
        if st.button("Upload images", key=f"upload_img_{pid}", disabled=not images):
            files = [("images", f) for f in to_upload(images)]
            resp = api_request("POST", f"/projects/{pid}/images", files=files,
                               data={"description": caption} if caption else None, timeout=120)
            if resp is not None and resp.status_code == 200:
                flash("Images uploaded")
                st.rerun()
            else:
                handle_api_error(resp, "image upload")
    with col2:
        documents = st.file_uploader("Documents", type=DOCUMENT_TYPES, accept_multiple_files=True, key=f"doc_{pid}")
        if st.button("Upload documents", key=f"upload_doc_{pid}", disabled=not documents):
            files = [("documents", f) for f in to_upload(documents)]
            resp = api_request("POST", f"/projects/{pid}/documents", files=files, timeout=120)
            if resp is not None and resp.status_code == 200:
                flash("Documents uploaded")
                st.rerun()
            else:
                handle_api_error(resp, "document upload")


def render_milestone_tools(project: Dict[str, Any]) -> None:
    pid = project["id"]
    st.markdown("**Milestones**")

    for m in project.get("milestones") or []:
        col1, col2, col3 = st.columns([3, 2, 1])
        col1.write(f"{m['title']} (target {str(m.get('target_date') or '–')[:10]})")
        new_status = col2.selectbox("Status", MILESTONE_STATUSES, index=MILESTONE_STATUSES.index(m["status"]),
                                    key=f"ms_{m['id']}", label_visibility="collapsed")
        if col3.button("Save", key=f"ms_save_{m['id']}") and new_status != m["status"]:
            resp = api_request("PUT", f"/projects/{pid}/milestones/{m['id']}", json={"status": new_status})
            if resp is not None and resp.status_code == 200:
                flash(f"Milestone '{m['title']}' is now {new_status}")
                st.rerun()
            else:
                handle_api_error(resp, "milestone update")

    with st.form(f"milestone_{pid}"):
        title = st.text_input("New milestone title", key=f"ms_title_{pid}")
        description = st.text_input("Description", key=f"ms_desc_{pid}")
        target = st.date_input("Target date", value=None, min_value=date.today(), key=f"ms_target_{pid}")
        added = st.form_submit_button("Add milestone")
    if added:
        payload = {"title": title, "description": description or None}
        if target:
            payload["target_date"] = datetime.combine(target, time(23, 59)).isoformat()
        resp = api_request("POST", f"/projects/{pid}/milestones", json=payload)
        if resp is not None and resp.status_code == 201:
            flash("Milestone added")
            st.rerun()
        else:
            handle_api_error(resp, "milestone creation")


def render_edit_project(project: Dict[str, Any]) -> None:
    pid = project["id"]
    if project["status"] == "verified":
        st.info("Verified projects are locked.")
        return

    with st.form(f"edit_{pid}"):
        name = st.text_input("Name", value=project["name"], key=f"edit_name_{pid}")
        description = st.text_area("Description", value=project["description"], key=f"edit_desc_{pid}")
        area = st.number_input("Area (hectares)", min_value=0.1, max_value=10000.0, value=float(project["area"]),
                               key=f"edit_area_{pid}")
        tags = st.text_input("Tags", value=", ".join(project.get("tags") or []), key=f"edit_tags_{pid}")
        saved = st.form_submit_button("Save changes")
    if saved:
        payload = {"name": name, "description": description, "area": area,
                   "tags": [t.strip() for t in tags.split(",") if t.strip()]}
        resp = api_request("PUT", f"/projects/{pid}", json=payload)
        if resp is not None and resp.status_code == 200:
            flash("Project updated")
            st.rerun()
        else:
            handle_api_error(resp, "project update")

    if st.button("Delete project", key=f"delete_{pid}", type="secondary"):
        resp = api_request("DELETE", f"/projects/{pid}")
        if resp is not None and resp.status_code == 200:
            flash("Project deleted")
            st.rerun()
        else:
            handle_api_error(resp, "project deletion")


def render_my_projects() -> None:
    if not require_auth("field"):
        return
    st.header("My projects")
    show_flash()

    dashboard = fetch_json("/dashboard/user", operation="load dashboard")
    if dashboard:
        stats = dashboard["statistics"]
        cols = st.columns(4)
        cols[0].metric("Projects", stats["total_projects"])
        cols[1].metric("Credits issued", format_credits(stats["total_credits"]))
        cols[2].metric("Area", format_area(stats["total_area"]))
        cols[3].metric("Credits / ha", f"{stats['avg_credits_per_hectare']:.1f}")

        if dashboard["pending_tasks"]:
            st.markdown("**Open milestones**")
            st.dataframe(pd.DataFrame(dashboard["pending_tasks"])[["project_name", "title", "status", "target_date"]],
                         hide_index=True)

    with st.expander("Submit a new project", expanded=False):
        render_submit_project()

    data = fetch_json("/projects/user/my-projects", params={"limit": 100}, operation="load projects")
    if not data or not data["projects"]:
        st.info("You have not submitted any projects yet.")
        return

    for project in data["projects"]:
        with st.expander(f"{project['name']} · {STATUS_BADGES.get(project['status'])}"):
            st.write(project["description"])
            cols = st.columns(3)
            cols[0].metric("Estimated credits", format_credits(project["estimated_credits"]))
            cols[1].metric("Issued credits", format_credits(project["credits"]))
            cols[2].metric("Milestones done", f"{project['completion_percentage']}%")
            for comment in project.get("review_comments") or []:
                st.caption(f"Reviewer ({comment['type']}): {comment['comment']}")
            render_milestone_tools(project)
            render_evidence_tools(project)
            render_edit_project(project)


# --------------------------------------------------------------------
# Review panel (verifier/admin)
# --------------------------------------------------------------------


def render_review() -> None:
    if not require_auth("verifier", "admin"):
        return
    st.header("Review queue")
    show_flash()

    status = st.selectbox("Show projects with status", PROJECT_STATUSES, index=0)
    data = fetch_json(f"/projects/admin/by-status/{status}", params={"limit": 50}, operation="load queue")
    if data is None:
        return
    if not data["projects"]:
        st.info(f"No {status} projects.")
        return

    st.dataframe(projects_frame(data["projects"]).drop(columns=["id"]), hide_index=True)

    for project in data["projects"]:
        pid = project["id"]
        with st.expander(f"{project['name']} · {project['organization']} · {format_area(project['area'])}"):
            render_project_detail(pid)
            if project["status"] == "verified":
                st.info("Verified projects are final.")
                continue

            with st.form(f"review_{pid}"):
                new_status = st.selectbox("New status", PROJECT_STATUSES, index=PROJECT_STATUSES.index("approved"),
                                          key=f"status_{pid}")
                credits = st.number_input("Credits to issue (approved/verified only)", min_value=0,
                                          max_value=100000, value=min(int(project["estimated_credits"]), 100000), step=10,
                                          key=f"credits_{pid}")
                comment = st.text_area("Comment for the submitter", key=f"comment_{pid}")
                method = st.selectbox("Verification method", ["–"] + VERIFICATION_METHODS, key=f"vmethod_{pid}")
                confidence = st.slider("Confidence (%)", 0, 100, 90, key=f"confidence_{pid}")
                report = st.text_area("Verification report", key=f"report_{pid}")
                submitted = st.form_submit_button("Apply")
            if submitted:
                payload: Dict[str, Any] = {"status": new_status, "comment": comment or None}
                if new_status in ("approved", "verified"):
                    payload["credits"] = int(credits)
                if new_status == "verified":
                    payload["verification"] = {
                        "verification_method": None if method == "–" else method,
                        "confidence": confidence,
                        "verification_report": report or None,
                    }
                resp = api_request("PUT", f"/projects/{pid}/status", json=payload)
                if resp is not None and resp.status_code == 200:
                    flash(resp.json()["message"])
                    st.rerun()
                else:
                    handle_api_error(resp, "status update")


# --------------------------------------------------------------------
# User administration (admin)
# --------------------------------------------------------------------


def render_users() -> None:
    if not require_auth("admin"):
        return
    st.header("Users")
    show_flash()

    col1, col2, col3 = st.columns(3)
    search = col1.text_input("Search name, email or organization")
    role = col2.selectbox("Role", ["any"] + ROLES)
    active = col3.selectbox("State", ["any", "active", "deactivated"])

    params: Dict[str, Any] = {"limit": 100}
    if search:
        params["search"] = search
    if role != "any":
        params["role"] = role
    if active != "any":
        params["is_active"] = active == "active"

    data = fetch_json("/users", params=params, operation="load users")
    if data is None:
        return
    users = data["users"]
    if not users:
        st.info("No users match.")
        return

    df = pd.DataFrame(users)
    columns = ["full_name", "email", "role", "organization", "is_active", "is_verified",
               "total_credits", "total_area", "last_login"]
    st.dataframe(df[[c for c in columns if c in df.columns]], hide_index=True)

    labels = {f"{u['full_name']} <{u['email']}>": u for u in users}

    st.subheader("Bulk update")
    with st.form("bulk_users"):
        chosen = st.multiselect("Users", list(labels))
        verify = st.checkbox("Mark as verified", value=True)
        submitted = st.form_submit_button("Apply")
    if submitted and chosen:
        resp = api_request("PUT", "/users/bulk",
                           json={"user_ids": [labels[c]["id"] for c in chosen], "updates": {"is_verified": verify}})
        if resp is not None and resp.status_code == 200:
            flash(resp.json()["message"])
            st.rerun()
        else:
            handle_api_error(resp, "bulk update")

    st.subheader("Manage a user")
    selected = st.selectbox("User", ["–"] + list(labels))
    if selected == "–":
        return
    user = labels[selected]

    detail = fetch_json(f"/users/{user['id']}", operation="load user")
    if detail:
        stats = pd.DataFrame.from_dict(detail["statistics"], orient="index")
        if not stats.empty:
            st.dataframe(stats, hide_index=False)

    col1, col2, col3 = st.columns(3)
    new_role = col1.selectbox("Role", ROLES, index=ROLES.index(user["role"]), key=f"role_{user['id']}")
    if col1.button("Change role", key=f"role_btn_{user['id']}"):
        resp = api_request("PUT", f"/users/{user['id']}", json={"role": new_role})
        if resp is not None and resp.status_code == 200:
            flash(f"Role set to {new_role}")
            st.rerun()
        else:
            handle_api_error(resp, "role change")

    label = "Deactivate" if user["is_active"] else "Reactivate"
    if col2.button(label, key=f"active_{user['id']}"):
        resp = api_request("PUT", f"/auth/users/{user['id']}/status", json={"is_active": not user["is_active"]})
        if resp is not None and resp.status_code == 200:
            flash(resp.json()["message"])
            st.rerun()
        else:
            handle_api_error(resp, "status change")

    if col3.button("Delete (soft)", key=f"delete_{user['id']}"):
        resp = api_request("DELETE", f"/users/{user['id']}")
        if resp is not None and resp.status_code == 200:
            flash(resp.json()["message"])
            st.rerun()
        else:
            handle_api_error(resp, "user deletion")


def render_admin() -> None:
    if not require_auth("admin"):
        return
    st.header("System overview")

    data = fetch_json("/dashboard/admin", operation="load admin dashboard")
    if data is None:
        return
    health = data["system_health"]
    cols = st.columns(6)
    cols[0].metric("Users", health["total_users"])
    cols[1].metric("Active users", health["active_users"])
    cols[2].metric("Projects", health["total_projects"])
    cols[3].metric("Pending reviews", health["pending_reviews"])
    cols[4].metric("Verified", health["verified_projects"])
    cols[5].metric("Credits issued", format_credits(health["total_credits_issued"]))

    if data["user_stats"]:
        st.subheader("Users by role")
        st.bar_chart(pd.DataFrame(data["user_stats"]).set_index("role")["count"])

    st.subheader("Oldest pending reviews")
    pending = projects_frame(data["pending_reviews"])
    if pending.empty:
        st.info("Nothing waiting for review.")
    else:
        st.dataframe(pending.drop(columns=["id"]), hide_index=True)

    if data["delayed_projects"]:
        st.subheader("Projects with delayed milestones")
        st.dataframe(projects_frame(data["delayed_projects"]).drop(columns=["id"]), hide_index=True)

    st.subheader("Newest users")
    st.dataframe(pd.DataFrame(data["recent_users"]), hide_index=True)


# --------------------------------------------------------------------
# Account
# --------------------------------------------------------------------


def render_account() -> None:
    if not require_auth():
        return
    st.header("Account")
    show_flash()

    user = get_current_user() or {}
    if user.get("id") == "admin":
        st.info("The reserved administrator account cannot be edited here.")
        return

    with st.form("profile_form"):
        full_name = st.text_input("Full name", value=user.get("full_name") or "")
        organization = st.text_input("Organization", value=user.get("organization") or "")
        phone = st.text_input("Phone", value=user.get("phone") or "")
        location = st.text_input("Location", value=user.get("location") or "")
        saved = st.form_submit_button("Save profile")
    if saved:
        payload = {"full_name": full_name, "organization": organization or None,
                   "phone": phone or None, "location": location or None}
        resp = api_request("PUT", "/auth/profile", json=payload)
        if resp is not None and resp.status_code == 200:
            update_current_user(resp.json()["user"])
            flash("Profile updated")
            st.rerun()
        else:
            handle_api_error(resp, "profile update")

    picture = st.file_uploader("Profile image", type=IMAGE_TYPES)
    if picture is not None and st.button("Upload profile image"):
        resp = api_request("POST", f"/users/{user['id']}/profile-image",
                           files=[("profile_image", to_upload([picture])[0])])
        if resp is not None and resp.status_code == 200:
            update_current_user(resp.json()["user"])
            flash("Profile image updated")
            st.rerun()
        else:
            handle_api_error(resp, "profile image upload")

    with st.form("password_form"):
        current = st.text_input("Current password", type="password")
        new = st.text_input("New password", type="password")
        changed = st.form_submit_button("Change password")
    if changed:
        resp = api_request("PUT", "/auth/password", json={"current_password": current, "new_password": new})
        if resp is not None and resp.status_code == 200:
            st.success("Password updated")
        else:
            handle_api_error(resp, "password change")


# --------------------------------------------------------------------
# Main
# --------------------------------------------------------------------

PAGES = {
    "Login": render_login,
    "Transparency": render_transparency,
    "Projects": render_projects,
    "My Projects": render_my_projects,
    "Review": render_review,
    "Users": render_users,
    "Admin": render_admin,
    "Account": render_account,
}


def main() -> None:
    # Auth keys must exist before any widget on every rerun
    init_auth_state()

    if not ss.get("nav_page") or ss["nav_page"] not in available_pages():
        ss["nav_page"] = "Transparency"

    print(f"[ROUTING] page={ss['nav_page']} | token_present={is_authenticated()} | role={get_role()}")

    render_sidebar()
    PAGES.get(ss["nav_page"], render_transparency)()


if __name__ == "__main__":
    main()
