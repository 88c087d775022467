"""
auth/dependencies.py -- FastAPI Depends() helpers that form the API guard.

Every protected handler declares one of these as a dependency, so the session
is re-verified server-side on every call -- the admin route guard only looks at
a client-supplied hint cookie and is never trusted for authorization.

  get_current_session()  -- 401 if the request has no valid session.
  require_minimum(role)  -- factory: 401 if unauthenticated, 403 if below role.
  require_exact(*roles)  -- factory: 401 if unauthenticated, 403 unless the
                            caller holds one of the listed roles exactly.

Errors are raised as core.errors.AppError; api/main.py maps them to statuses.

Layer rule: no imports from web/, audit/, content/, or cache/.
  This module may import from fastapi/starlette because it is part of the
  FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Request

from auth.models import SessionUser
from auth.session import SessionVerifier, require_role
from core.errors import AppError, insufficient_permission
from core.roles import ROLE_LABELS, Role


def _verifier(request: Request) -> SessionVerifier:
    return request.app.state.session_verifier


def try_get_current_session(request: Request) -> SessionUser | None:
    """Soft variant: return the verified session or None. Never raises."""
    try:
        return _verifier(request).verify(request)
    except AppError:
        return None


def get_current_session(request: Request) -> SessionUser:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(session: SessionUser = Depends(get_current_session)): ...
    """
    return _verifier(request).verify(request)


def require_minimum(minimum: Role) -> Callable[[Request], SessionUser]:
    """Build a dependency that requires a role of at least `minimum`.

    Use as a FastAPI dependency:
        @router.patch("/reorder")
        async def route(session: SessionUser = Depends(require_minimum(Role.editor))): ...
    """

    def dependency(request: Request) -> SessionUser:
        session = get_current_session(request)
        require_role(session.role, minimum)
        return session

    return dependency


def require_exact(*roles: Role, message: str | None = None) -> Callable[[Request], SessionUser]:
    """Build a dependency for exact-role rules (e.g. super_admin only)."""
    allowed = frozenset(roles)
    default_message = "Insufficient permissions. Only {} may do this.".format(
        " or ".join(ROLE_LABELS[r] for r in roles)
    )

    def dependency(request: Request) -> SessionUser:
        session = get_current_session(request)
        if session.role not in allowed:
            raise insufficient_permission(message or default_message)
        return session

    return dependency


require_editor = require_minimum(Role.editor)
require_admin = require_minimum(Role.admin)
require_super_admin = require_exact(Role.super_admin)
