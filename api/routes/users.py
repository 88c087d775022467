"""
api/routes/users.py -- User management REST endpoints.

Routes:
  GET    /api/users              -- list all users, newest first
  POST   /api/users              -- create a user with an assignable role
  PUT    /api/users/update-role  -- change another user's role
  PATCH  /api/users              -- activate / deactivate a user
  DELETE /api/users              -- permanently delete a user
  POST   /api/users/transfer     -- hand super_admin over to another user

Role-change rules (update-role is the authoritative enforcement point):
  - Caller must be exactly admin or super_admin.
  - The new role must be one the caller may assign (core.roles.assignable_roles):
    admins may grant member or editor only.
  - Admins cannot change the role of another admin or a super_admin.
  - Nobody changes their own role.
  - The last active super_admin can never be demoted, deactivated or deleted.

Every successful mutation writes an audit entry after the write commits.
Store calls and bcrypt hashing run in the thread pool. The last-super-admin
check runs inside the same transaction as the write (UserStore).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool

from api.models import (
    ActiveToggleRequest,
    MessageResponse,
    RoleChangeRequest,
    TransferRequest,
    UserCreate,
    UserDeleteRequest,
    UserResponse,
)
from audit.logger import AuditLogger
from auth.dependencies import require_admin, require_exact, require_super_admin
from auth.models import SessionUser, User
from auth.store import LastSuperAdminError, UserStore
from auth.tokens import hash_password
from core.errors import conflict, insufficient_permission, not_found, validation_error
from core.roles import ROLE_LABELS, Role, assignable_roles, can_change_roles, parse_role
from core.sanitize import is_valid_email, sanitize

logger = logging.getLogger("foundry.api")

# Auth policy:
# - GET    /api/users:              requires admin or higher (require_admin)
# - POST   /api/users:              requires admin or higher + assignable-role check
# - PUT    /api/users/update-role:  requires exactly admin or super_admin
# - PATCH  /api/users:              requires super_admin (require_super_admin)
# - DELETE /api/users:              requires super_admin (require_super_admin)
# - POST   /api/users/transfer:     requires super_admin (require_super_admin)
router = APIRouter()

_require_role_changer = require_exact(
    Role.admin,
    Role.super_admin,
    message="Insufficient permissions. Only Admin or Super Admin may change roles.",
)


def _store(request: Request) -> UserStore:
    return request.app.state.user_store


def _audit(request: Request) -> AuditLogger:
    return request.app.state.audit


async def _get_target(store: UserStore, uid: str) -> User:
    target = await run_in_threadpool(store.get_by_uid, uid)
    if target is None:
        raise not_found("User not found.")
    return target


async def _guarded(action: str, func, *args, **kwargs):
    """Run a guarded store write in the thread pool; map LastSuperAdminError to 400."""
    try:
        return await run_in_threadpool(func, *args, guard_last_super_admin=True, **kwargs)
    except LastSuperAdminError as exc:
        raise validation_error(f"Cannot {action} the last active Super Admin.") from exc


def _check_assignable(actor: Role, role: Role) -> None:
    if role not in assignable_roles(actor):
        raise insufficient_permission(f"{ROLE_LABELS[actor]} cannot assign the {ROLE_LABELS[role]} role.")


def _insert_user(store: UserStore, email: str, name: str, role: Role, password: str | None) -> User:
    """Hash, insert and read back a new user. Blocking; run in the thread pool."""
    user = User(
        email=email,
        name=name,
        role=role,
        hashed_password=hash_password(password) if password else None,
    )
    try:
        uid = store.create_user(user)
    except IntegrityError as exc:
        raise conflict("A user with that email already exists.") from exc
    return store.get_by_uid(uid)


# ---------------------------------------------------------------------------
# Listing and creation (admin)
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    request: Request,
    session: SessionUser = Depends(require_admin),
) -> list[UserResponse]:
    users = await run_in_threadpool(_store(request).list_users)
    return [UserResponse.from_user(u) for u in users]


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user(
    request: Request,
    body: UserCreate,
    session: SessionUser = Depends(require_admin),
) -> UserResponse:
    """Create a user. Admins may only create members and editors."""
    role = parse_role(body.role)
    _check_assignable(session.role, role)

    email = sanitize(body.email, 254).lower()
    if not is_valid_email(email):
        raise validation_error("Invalid email address.")
    name = sanitize(body.name, 200) or email.split("@")[0]

    store = _store(request)
    if await run_in_threadpool(store.get_by_email, email) is not None:
        raise conflict("A user with that email already exists.")

    created = await run_in_threadpool(_insert_user, store, email, name, role, body.password)
    await _audit(request).log(session.uid, session.name, "create", f"user {email}", f"role: {role.value}")
    return UserResponse.from_user(created)


# ---------------------------------------------------------------------------
# Role change (admin or super_admin, exact)
# ---------------------------------------------------------------------------


@router.put("/users/update-role", response_model=MessageResponse)
async def update_role(
    request: Request,
    body: RoleChangeRequest,
    session: SessionUser = Depends(_require_role_changer),
) -> MessageResponse:
    """Change another user's role, enforcing the assignable-role rules."""
    if not can_change_roles(session.role):
        raise insufficient_permission("Insufficient permissions to change roles.")

    new_role = parse_role(body.new_role)
    _check_assignable(session.role, new_role)

    if body.uid == session.uid:
        raise validation_error("You cannot change your own role.")

    store = _store(request)
    target = await _get_target(store, body.uid)

    if session.role is Role.admin and target.role in (Role.admin, Role.super_admin):
        raise insufficient_permission("Admins cannot change the role of an Admin or Super Admin.")

    old_role = target.role
    if new_role is Role.super_admin:
        await run_in_threadpool(store.update_user, target.uid, role=new_role)
    else:
        await _guarded("demote", store.update_user, target.uid, role=new_role)
    logger.info("Role change uid=%s %s -> %s by uid=%s", target.uid, old_role.value, new_role.value, session.uid)

    await _audit(request).log(
        session.uid,
        session.name,
        "role_change",
        f"user {target.email}",
        f"{old_role.value} -> {new_role.value}",
    )
    return MessageResponse(message=f"Role updated to {ROLE_LABELS[new_role]}.")


# ---------------------------------------------------------------------------
# Account lifecycle (super_admin only)
# ---------------------------------------------------------------------------


@router.patch("/users", response_model=MessageResponse)
async def set_active(
    request: Request,
    body: ActiveToggleRequest,
    session: SessionUser = Depends(require_super_admin),
) -> MessageResponse:
    """Activate or deactivate an account."""
    if body.uid == session.uid:
        raise validation_error("You cannot change your own account status.")

    store = _store(request)
    target = await _get_target(store, body.uid)
    if body.active:
        await run_in_threadpool(store.update_user, target.uid, active=True)
    else:
        await _guarded("deactivate", store.update_user, target.uid, active=False)

    action = "activate" if body.active else "deactivate"
    await _audit(request).log(session.uid, session.name, action, f"user {target.email}")
    return MessageResponse(message=f"User {'activated' if body.active else 'deactivated'}.")


@router.delete("/users", response_model=MessageResponse)
async def delete_user(
    request: Request,
    body: UserDeleteRequest,
    session: SessionUser = Depends(require_super_admin),
) -> MessageResponse:
    """Permanently delete an account."""
    if body.uid == session.uid:
        raise validation_error("You cannot delete your own account.")

    store = _store(request)
    target = await _get_target(store, body.uid)
    await _guarded("delete", store.delete_user, target.uid)

    await _audit(request).log(session.uid, session.name, "delete", f"user {target.email}", f"role: {target.role.value}")
    return MessageResponse(message="User deleted.")


@router.post("/users/transfer", response_model=MessageResponse)
async def transfer_super_admin(
    request: Request,
    body: TransferRequest,
    session: SessionUser = Depends(require_super_admin),
) -> MessageResponse:
    """Promote the target to super_admin and demote the caller to admin, atomically."""
    if body.target_uid == session.uid:
        raise validation_error("You already hold the Super Admin role.")

    store = _store(request)
    target = await _get_target(store, body.target_uid)
    if not target.active:
        raise validation_error("Cannot transfer Super Admin to a deactivated account.")

    try:
        await run_in_threadpool(store.transfer_super_admin, session.uid, target.uid)
    except LookupError as exc:
        raise not_found("User not found.") from exc

    logger.warning("Super admin transferred from uid=%s to uid=%s", session.uid, target.uid)
    await _audit(request).log(session.uid, session.name, "transfer", f"user {target.email}", "super_admin")
    return MessageResponse(message=f"Super Admin transferred to {target.name}.")
