"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work.

Layer rule: no imports from api/, web/, audit/, content/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.roles import Role


@dataclass
class User:
    """A person who can sign in to the admin panel.

    uid is an opaque string id assigned by the store on insert.
    hashed_password is None for accounts that have not set a password yet
    (they cannot log in until an operator sets one).
    active=False blocks every session except for super_admin accounts, which
    can never be locked out.
    """

    email: str
    name: str
    role: Role = Role.member
    uid: str | None = None
    hashed_password: str | None = None
    active: bool = True
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class SessionUser:
    """The authoritative identity behind a verified session.

    Built by SessionVerifier from the user store -- never from request
    headers or cookies -- so role is always the stored role.
    """

    uid: str
    name: str
    email: str
    role: Role
