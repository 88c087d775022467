"""
core/roles.py -- The closed role set and its numeric hierarchy.

Roles are totally ordered by privilege:

    member (0) < editor (1) < admin (2) < super_admin (3)

Every "at least X" decision goes through meets_minimum(), which compares
ranks from ROLE_HIERARCHY. String comparison is reserved for the few
exact-role rules (e.g. only super_admin may delete users), and even those
compare Role members, never raw strings.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, audit/,
content/, or cache/.
"""

from __future__ import annotations

from enum import Enum

from core.errors import validation_error


class Role(str, Enum):
    member = "member"
    editor = "editor"
    admin = "admin"
    super_admin = "super_admin"


ROLE_HIERARCHY: dict[Role, int] = {
    Role.member: 0,
    Role.editor: 1,
    Role.admin: 2,
    Role.super_admin: 3,
}

ROLE_LABELS: dict[Role, str] = {
    Role.member: "Member",
    Role.editor: "Editor",
    Role.admin: "Admin",
    Role.super_admin: "Super Admin",
}

# Roles a super_admin may assign to others.
ASSIGNABLE_ROLES: tuple[Role, ...] = (Role.member, Role.editor, Role.admin, Role.super_admin)

# Roles an admin may assign: never a peer or a super_admin.
ADMIN_ASSIGNABLE_ROLES: tuple[Role, ...] = (Role.member, Role.editor)

# Roles allowed past the admin route guard.
ADMIN_PANEL_ROLES: frozenset[Role] = frozenset({Role.editor, Role.admin, Role.super_admin})


def parse_role(value: object) -> Role:
    """Convert untrusted input to a Role. Raises a validation AppError on anything else."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise validation_error("Invalid role specified.") from None


def rank(role: Role) -> int:
    return ROLE_HIERARCHY[role]


def meets_minimum(role: Role, min_role: Role) -> bool:
    """Return True if role is at least as privileged as min_role."""
    return rank(role) >= rank(min_role)


def can_access_admin(role: Role) -> bool:
    return meets_minimum(role, Role.editor)


def can_manage_content(role: Role) -> bool:
    return meets_minimum(role, Role.editor)


def can_manage_users(role: Role) -> bool:
    return meets_minimum(role, Role.admin)


def can_change_roles(role: Role) -> bool:
    return role in (Role.admin, Role.super_admin)


def assignable_roles(actor: Role) -> tuple[Role, ...]:
    """Return the roles the actor may grant to another user.

    super_admin -> all four roles
    admin       -> member, editor
    anyone else -> nothing
    """
    if actor is Role.super_admin:
        return ASSIGNABLE_ROLES
    if actor is Role.admin:
        return ADMIN_ASSIGNABLE_ROLES
    return ()
