"""
auth/tokens.py -- Session tokens, password hashing, and the session cookie pair.

Security design decisions:
  Session token: python-jose JWT with HS256, signed with SECRET_KEY. Carries
       sub (uid), name, role and expiry. The role claim is informational; the
       SessionVerifier re-reads the role from the user store on every request.
       decode_session_token() returns None on any failure.

  Cookie pair: "__session" holds the signed token (httpOnly). "__role" is a
       readable role hint used only by the admin route guard for redirects.
       It is never used for an authorization decision.

  Passwords: bcrypt directly (no passlib wrapper). _DUMMY_HASH lets
       authenticate_user() spend the same bcrypt time whether or not the
       email exists, so response time does not reveal registered addresses.

Layer rule: no imports from api/, web/, audit/, content/, or cache/. Import from
core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import User
from core.config import get_settings
from core.roles import Role

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("foundry.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

SESSION_COOKIE = "__session"
ROLE_COOKIE = "__role"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("foundry_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Returns the User on success, None on any failure. Deactivated users are
    rejected here too, except super_admins.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.active and user.role is not Role.super_admin:
        return None
    return user


def bootstrap_super_admin(store: UserStore, email: str, name: str, password: str) -> User:
    """Create the first super_admin, or promote an existing account with that email.

    Callers check store.has_super_admin() first; this function does not.
    The password is (re)set either way so the operator can log in immediately.
    """
    hashed = hash_password(password)
    existing = store.get_by_email(email)
    if existing is not None:
        store.update_user(existing.uid, role=Role.super_admin, active=True, hashed_password=hashed)
        if name and name != existing.name:
            store.update_user(existing.uid, name=name)
        uid = existing.uid
    else:
        uid = store.create_user(
            User(email=email, name=name or email.split("@")[0], role=Role.super_admin, hashed_password=hashed)
        )
    logger.warning("Super admin bootstrapped for uid=%s", uid)
    return store.get_by_uid(uid)


# ---------------------------------------------------------------------------
# Session token encode / decode
# ---------------------------------------------------------------------------


def create_session_token(uid: str, name: str, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed session token.

    Args:
        uid:            Stored user id, used as the subject claim.
        name:           Display name at issue time.
        role:           Role at issue time (a hint; not trusted on verify).
        expire_seconds: Lifetime in seconds. 0 uses Settings.session_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": uid,
        "name": name,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict | None:
    """Decode and verify a session token. Returns the payload or None."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookies(response, token: str, role: str, expire_seconds: int = 0) -> None:
    """Write the session cookie pair on the response.

    __session: httpOnly so scripts cannot read the token.
    __role:    readable by the browser; a routing hint for the admin guard.
    Both use samesite="lax", secure when SECURE_COOKIES=true, and share the
    token's lifetime so they expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_expire_seconds
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
        path="/",
    )
    response.set_cookie(
        ROLE_COOKIE,
        value=role,
        httponly=False,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
        path="/",
    )


def clear_session_cookies(response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(ROLE_COOKIE, path="/")


def start_session(response, user: User) -> str:
    """Issue a token for user, attach the cookie pair, and return the token."""
    token = create_session_token(user.uid, user.name, user.role.value)
    set_session_cookies(response, token, user.role.value)
    logger.info("Session started for uid=%s role=%s", user.uid, user.role.value)
    return token
