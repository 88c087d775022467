"""
web/routes.py -- Server-rendered pages for Foundry Admin.

The public site and the admin panel are presentation only: each admin page is
a placeholder shell that loads its data from /api/*. These routes exist so the
edge route guard (web/guard.py) has real pages to protect, and so operators
have a login form and a first-run bootstrap page.

Route registration order matters: GET /admin/users must be registered before
GET /admin/{section} or FastAPI captures "users" as a section name.

Routes:
  GET  /                  -- public landing page
  GET  /login             -- login form (?redirect=<path>, ?error=<code>)
  POST /login             -- handle password login (rate-limited), redirect to ?redirect=
  POST /logout            -- clear the cookie pair, redirect /login
  GET  /bootstrap         -- first-run form; posts to /api/bootstrap
  GET  /admin             -- redirect to /admin/dashboard
  GET  /admin/dashboard   -- panel home (editor or higher)
  GET  /admin/users       -- user management shell (admin or higher)
  GET  /admin/{section}   -- team, programs, resources, events, about, contacts,
                             audit and settings shells
  GET  /robots.txt        -- crawl policy; keeps admin and API paths out of indexes
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from api.limiter import limiter
from auth.dependencies import try_get_current_session
from auth.store import UserStore
from auth.tokens import authenticate_user, clear_session_cookies, start_session
from core.config import get_settings
from core.roles import ROLE_LABELS, Role, can_access_admin, can_manage_users, meets_minimum

logger = logging.getLogger("foundry.web")

_settings = get_settings()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.globals["ROLE_LABELS"] = ROLE_LABELS
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= on /login. The raw query param is never
# rendered, only the message from this dict.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "session_expired": "Your session has expired. Please sign in again.",
}

# Admin sections and the minimum role that may open them.
_SECTIONS: dict[str, tuple[str, Role]] = {
    "team": ("Team", Role.editor),
    "programs": ("Programs", Role.editor),
    "resources": ("Resources", Role.editor),
    "events": ("Events", Role.editor),
    "about": ("About Page", Role.editor),
    "contacts": ("Contact Messages", Role.admin),
    "audit": ("Audit Log", Role.admin),
    "settings": ("Site Settings", Role.admin),
}

_ROBOTS_DISALLOW = ("/admin/", "/api/", "/login", "/bootstrap")


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only relative, same-site paths pass.

    Rejects absolute URLs and protocol-relative ("//host") targets, which would
    send the browser off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/admin/dashboard"


def _login_redirect(request: Request, error: Optional[str] = None) -> RedirectResponse:
    params = {"redirect": request.url.path}
    if error:
        params["error"] = error
    return RedirectResponse("/login?" + urlencode(params, safe="/"), status_code=302)


def _render_admin(request: Request, title: str, section: str, minimum: Role) -> HTMLResponse:
    """Re-verify the session and render a panel shell.

    The route guard only saw the role hint cookie; this checks the stored role.
    """
    session = try_get_current_session(request)
    if session is None:
        resp = _login_redirect(request, "session_expired")
        clear_session_cookies(resp)
        return resp
    if not can_access_admin(session.role):
        return RedirectResponse("/", status_code=302)
    if not meets_minimum(session.role, minimum):
        return RedirectResponse("/admin/dashboard", status_code=302)
    return templates.TemplateResponse(
        request,
        "admin.html",
        {
            "title": title,
            "section": section,
            "session": session,
            "can_manage_users": can_manage_users(session.role),
        },
    )


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "home.html", {"session": try_get_current_session(request)})


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots_txt() -> PlainTextResponse:
    lines = ["User-agent: *", "Allow: /"]
    lines += [f"Disallow: {path}" for path in _ROBOTS_DISALLOW]
    if _settings.site_url:
        lines += ["", f"Sitemap: {_settings.site_url.rstrip('/')}/sitemap.xml"]
    return PlainTextResponse("\n".join(lines) + "\n")


# ---------------------------------------------------------------------------
# Login / logout / bootstrap
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login form. Signed-in users go straight to their target."""
    redirect = _safe_next(request.query_params.get("redirect"))
    if try_get_current_session(request) is not None:
        return RedirectResponse(redirect, status_code=302)

    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return templates.TemplateResponse(request, "login.html", {"error_msg": error_msg, "redirect": redirect})


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(_settings.login_rate_limit)
def login_post(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    redirect: str = Form(""),
) -> RedirectResponse:
    """Handle the login form. Uses authenticate_user() for timing equalization."""
    target = _safe_next(redirect or request.query_params.get("redirect"))
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, email.strip(), password)
    if user is None:
        query = urlencode({"error": "bad_credentials", "redirect": target}, safe="/")
        return RedirectResponse(f"/login?{query}", status_code=302)

    user_store.update_last_login(user.uid)
    resp = RedirectResponse(target, status_code=302)
    start_session(resp, user)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout")
def logout() -> RedirectResponse:
    resp = RedirectResponse("/login", status_code=302)
    clear_session_cookies(resp)
    return resp


@router.get("/bootstrap", response_class=HTMLResponse)
def bootstrap_form(request: Request) -> HTMLResponse:
    """Render the first-run form. 404 once a super admin exists or when disabled."""
    user_store: UserStore = request.app.state.user_store
    if not _settings.bootstrap_secret or user_store.has_super_admin():
        raise HTTPException(status_code=404)
    return templates.TemplateResponse(request, "bootstrap.html", {})


# ---------------------------------------------------------------------------
# Admin panel shells
# ---------------------------------------------------------------------------


@router.get("/admin")
def admin_root() -> RedirectResponse:
    return RedirectResponse("/admin/dashboard", status_code=302)


@router.get("/admin/dashboard", response_class=HTMLResponse)
def admin_dashboard(request: Request) -> HTMLResponse:
    return _render_admin(request, "Dashboard", "dashboard", Role.editor)


@router.get("/admin/users", response_class=HTMLResponse)
def admin_users(request: Request) -> HTMLResponse:
    return _render_admin(request, "Users", "users", Role.admin)


@router.get("/admin/{section}", response_class=HTMLResponse)
def admin_section(request: Request, section: str) -> HTMLResponse:
    if section not in _SECTIONS:
        raise HTTPException(status_code=404)
    title, minimum = _SECTIONS[section]
    return _render_admin(request, title, section, minimum)
