"""
api/routes/auth.py -- Session and first-run bootstrap endpoints.

Routes:
  POST   /api/auth/session  -- email/password login; sets the cookie pair
  DELETE /api/auth/session  -- clears the cookie pair
  GET    /api/auth/me       -- identity of the verified session
  POST   /api/bootstrap     -- creates the first super_admin (secret required)

Security:
  Login and bootstrap are rate-limited per client IP (Settings.login_rate_limit,
  Settings.bootstrap_rate_limit).
  authenticate_user() provides timing equalization -- use it, never inline
  get_by_email() + verify_password().
  Cache-Control: no-store on every response that sets a session cookie.
  The bootstrap secret is compared with secrets.compare_digest, and the
  endpoint is disabled (403) while BOOTSTRAP_SECRET is empty.
"""

from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import BootstrapRequest, LoginRequest, MeResponse, MessageResponse, SessionResponse
from audit.logger import AuditLogger
from auth.dependencies import get_current_session
from auth.models import SessionUser
from auth.store import UserStore
from auth.tokens import authenticate_user, bootstrap_super_admin, clear_session_cookies, start_session
from core.config import get_settings
from core.errors import conflict, insufficient_permission, unauthenticated

_settings = get_settings()

# Auth policy:
# - POST   /api/auth/session: public -- the login endpoint must be unauthenticated
# - DELETE /api/auth/session: public -- clearing cookies needs no prior auth
# - GET    /api/auth/me:      requires a verified session (get_current_session)
# - POST   /api/bootstrap:    public, gated by BOOTSTRAP_SECRET and "no super_admin yet"
router = APIRouter()


def _session_response(user) -> JSONResponse:
    resp = JSONResponse(
        content=SessionResponse(uid=user.uid, name=user.name, role=user.role.value).model_dump(),
    )
    start_session(resp, user)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.post("/auth/session", response_model=SessionResponse)
@limiter.limit(_settings.login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie pair.

    Wrong email, wrong password and deactivated account all return the same
    401 so the response does not reveal which addresses are registered.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        raise unauthenticated("Invalid email or password.")

    user_store.update_last_login(user.uid)
    return _session_response(user)


@router.delete("/auth/session", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the session cookie pair."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_session_cookies(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(session: SessionUser = Depends(get_current_session)) -> MeResponse:
    return MeResponse(uid=session.uid, name=session.name, email=session.email, role=session.role.value)


# ---------------------------------------------------------------------------
# First-run bootstrap
# ---------------------------------------------------------------------------


@router.post("/bootstrap", response_model=SessionResponse)
@limiter.limit(_settings.bootstrap_rate_limit)
async def bootstrap(request: Request, body: BootstrapRequest) -> JSONResponse:
    """Create the first super_admin and sign them in.

    Only works while no super_admin exists. If an account with the given
    email already exists it is promoted instead of duplicated.
    """
    expected = _settings.bootstrap_secret
    if not expected or not secrets.compare_digest(body.bootstrap_secret.encode(), expected.encode()):
        raise insufficient_permission("Invalid bootstrap secret.")

    user_store: UserStore = request.app.state.user_store
    if await run_in_threadpool(user_store.has_super_admin):
        raise conflict("A super admin already exists. Bootstrap is disabled.")

    user = await run_in_threadpool(bootstrap_super_admin, user_store, body.email, body.name, body.password)

    audit: AuditLogger = request.app.state.audit
    await audit.log(user.uid, user.name, "bootstrap", f"super_admin {user.email}")
    return _session_response(user)
