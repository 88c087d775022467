"""
web/guard.py -- Edge route guard for the admin panel pages.

Runs as an HTTP middleware in front of every request but only acts on /admin
and /admin/*. It reads two cookies and never touches the database:

  no "__session" cookie                    -> 302 /login?redirect=<path>
  "__role" missing or not a panel role      -> 302 /
  editor under /admin/users                 -> 302 /admin/dashboard
  anything else                             -> pass through

The role cookie is a client-supplied hint, so this guard only decides where
to send the browser. Every API call behind the pages is re-authorized by
auth.dependencies; /api/* is never handled here.

guard_decision() is a pure function of (path, cookies) so it can be tested
without an app.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse

from auth.tokens import ROLE_COOKIE, SESSION_COOKIE
from core.roles import ADMIN_PANEL_ROLES, Role

logger = logging.getLogger("foundry.web")

ADMIN_PREFIX = "/admin"
ADMIN_HOME = "/admin/dashboard"
USERS_PREFIX = "/admin/users"


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def _role_hint(value: Optional[str]) -> Optional[Role]:
    try:
        return Role(value) if value else None
    except ValueError:
        return None


def guard_decision(path: str, session_cookie: Optional[str], role_cookie: Optional[str]) -> Optional[str]:
    """Return the redirect target for path, or None to let the request through."""
    if not _under(path, ADMIN_PREFIX):
        return None
    if not session_cookie:
        return "/login?" + urlencode({"redirect": path}, safe="/")
    role = _role_hint(role_cookie)
    if role not in ADMIN_PANEL_ROLES:
        return "/"
    if role is Role.editor and _under(path, USERS_PREFIX):
        return ADMIN_HOME
    return None


async def admin_route_guard(request: Request, call_next):
    """HTTP middleware wrapper around guard_decision(). Registered in asgi.py."""
    target = guard_decision(
        request.url.path,
        request.cookies.get(SESSION_COOKIE),
        request.cookies.get(ROLE_COOKIE),
    )
    if target is not None:
        logger.debug("Route guard redirect %s -> %s", request.url.path, target)
        return RedirectResponse(target, status_code=302)
    return await call_next(request)
