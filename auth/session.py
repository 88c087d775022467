"""
auth/session.py -- Server-side session verification.

SessionVerifier is the authoritative answer to "who is calling, and with what
role?". It validates the signed session token and then loads the user record,
so the returned role is the stored role -- never the token's role claim and
never the "__role" hint cookie.

A verifier is constructed once in the FastAPI lifespan (api/main.py), stored
on app.state.session_verifier, and replaced by a fake or a test-scoped
instance in tests.

Layer rule: no imports from api/, web/, audit/, content/, or cache/.
"""

from __future__ import annotations

import logging

from starlette.requests import HTTPConnection

from auth.models import SessionUser
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE, decode_session_token
from core.errors import insufficient_permission, unauthenticated
from core.roles import Role, meets_minimum

logger = logging.getLogger("foundry.auth")


def extract_token(request: HTTPConnection) -> str | None:
    """Return the session token from the __session cookie or a Bearer header."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:] or None
    return None


class SessionVerifier:
    """Validate session tokens against the user store."""

    def __init__(self, user_store: UserStore) -> None:
        self._users = user_store

    def verify_token(self, token: str | None) -> SessionUser:
        """Return the SessionUser for token or raise an unauthenticated AppError."""
        if not token:
            raise unauthenticated("Not authenticated.")
        payload = decode_session_token(token)
        if payload is None:
            raise unauthenticated("Not authenticated. Session is invalid or expired.")

        user = self._users.get_by_uid(payload["sub"])
        if user is None:
            raise unauthenticated("Not authenticated. User profile not found.")
        # Super admins can never be locked out.
        if not user.active and user.role is not Role.super_admin:
            logger.info("Rejected session for deactivated uid=%s", user.uid)
            raise unauthenticated("Not authenticated. Account has been deactivated.")

        return SessionUser(uid=user.uid, name=user.name, email=user.email, role=user.role)

    def verify(self, request: HTTPConnection) -> SessionUser:
        return self.verify_token(extract_token(request))


def require_role(actual: Role, minimum: Role) -> None:
    """Raise an insufficient_permission AppError unless actual meets minimum."""
    if not meets_minimum(actual, minimum):
        raise insufficient_permission(f"Insufficient permissions. Requires {minimum.value} or higher.")
