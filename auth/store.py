"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper (same as content/store.py and audit/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Roles are stored as their string value and mapped back to core.roles.Role
  on read. A row holding an unknown role string is read as "member" so a bad
  write can never widen anyone's access.

Layer rule: no imports from api/, web/, audit/, content/, or cache/.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import User
from core.roles import Role

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("uid", String(40), primary_key=True),
    Column("email", String(254), nullable=False, unique=True),
    Column("name", String(200), nullable=False, server_default=""),
    Column("hashed_password", Text),  # NULL until a password is set
    Column("role", String(20), nullable=False, server_default="member"),
    Column("active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)


class LastSuperAdminError(Exception):
    """The write would leave no active super_admin."""


def _check_not_last_super_admin(conn, uid: str) -> None:
    """Raise LastSuperAdminError if uid is the only active super_admin.

    The active super_admin rows are locked (FOR UPDATE where the backend
    supports it) so two concurrent demotions cannot both pass.
    """
    rows = conn.execute(
        select(_users.c.uid)
        .where((_users.c.role == Role.super_admin.value) & (_users.c.active == 1))
        .with_for_update()
    ).fetchall()
    active = {row.uid for row in rows}
    if uid in active and len(active) <= 1:
        raise LastSuperAdminError(uid)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_uid() -> str:
    return secrets.token_hex(14)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///foundry.db")
        uid = store.create_user(User(email="a@b.org", name="Ada", role=Role.editor))
        user = store.get_by_uid(uid)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its uid.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        uid = user.uid or _new_uid()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    uid=uid,
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    role=user.role.value,
                    active=1 if user.active else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return uid

    def get_by_uid(self, uid: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.uid == uid)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, case-insensitively."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.created_at.desc())).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, uid: str, *, guard_last_super_admin: bool = False, **fields) -> bool:
        """Update mutable fields (name, role, active, hashed_password).

        role may be passed as a Role; active as bool. Returns True if a row
        was updated, False if uid was not found. With guard_last_super_admin
        the check and the write share one transaction, and LastSuperAdminError
        is raised if uid is the only active super_admin.
        """
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        if "active" in fields:
            fields["active"] = 1 if fields["active"] else 0
        with self.engine.begin() as conn:
            if guard_last_super_admin:
                _check_not_last_super_admin(conn, uid)
            result = conn.execute(_users.update().where(_users.c.uid == uid).values(**fields))
        return result.rowcount > 0

    def delete_user(self, uid: str, *, guard_last_super_admin: bool = False) -> bool:
        """Permanently delete a user. See update_user() for guard_last_super_admin."""
        with self.engine.begin() as conn:
            if guard_last_super_admin:
                _check_not_last_super_admin(conn, uid)
            result = conn.execute(_users.delete().where(_users.c.uid == uid))
        return result.rowcount > 0

    def count_active_super_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == Role.super_admin.value) & (_users.c.active == 1))
            ).scalar()
        return result or 0

    def has_super_admin(self) -> bool:
        """True if any super_admin exists, active or not."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.role == Role.super_admin.value)
            ).scalar()
        return (result or 0) > 0

    def transfer_super_admin(self, from_uid: str, to_uid: str) -> None:
        """Promote to_uid to super_admin and demote from_uid to admin in one transaction.

        Raises LookupError (and writes nothing) if either user is missing.
        """
        with self.engine.begin() as conn:
            for uid, role in ((to_uid, Role.super_admin), (from_uid, Role.admin)):
                result = conn.execute(_users.update().where(_users.c.uid == uid).values(role=role.value))
                if result.rowcount == 0:
                    raise LookupError(f"User {uid} not found.")

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /api/health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def update_last_login(self, uid: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.uid == uid).values(last_login=_now_iso()))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    try:
        role = Role(row.role)
    except ValueError:
        role = Role.member
    return User(
        uid=row.uid,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=role,
        active=bool(row.active),
        created_at=row.created_at,
        last_login=row.last_login,
    )
