"""
audit/store.py -- SQLAlchemy Core persistence for the audit_log table.

Pattern: Repository + Data Mapper. The store only ever inserts and reads;
there is no update or delete method on purpose.

Timestamps are written by the store (server time, UTC ISO 8601) and
normalized on read by normalize_timestamp(), which never raises: a missing or
malformed value becomes None.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from audit.models import AuditEntry

RECENT_LIMIT = 200

_metadata = MetaData()

_audit_log = Table(
    "audit_log",
    _metadata,
    Column("id", String(40), primary_key=True),
    Column("user_id", String(40), nullable=False),
    Column("user_name", String(200), nullable=False, server_default=""),
    Column("action", String(40), nullable=False),
    Column("target", Text, nullable=False),
    Column("details", Text, nullable=False, server_default=""),
    Column("timestamp", String(40), index=True),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def normalize_timestamp(value) -> str | None:
    """Return value as an ISO 8601 string, or None if absent or unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.isoformat()
    return None


class AuditStore:
    """Append-only repository for AuditEntry records.

    Usage:
        store = AuditStore("sqlite:///foundry.db")
        store.add(AuditEntry(user_id="u1", user_name="Ada", action="update", target="..."))
        entries = store.recent()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def add(self, entry: AuditEntry) -> str:
        """Insert entry with a fresh id and server timestamp. Returns the id."""
        entry_id = secrets.token_hex(10)
        with self.engine.connect() as conn:
            conn.execute(
                _audit_log.insert().values(
                    id=entry_id,
                    user_id=entry.user_id,
                    user_name=entry.user_name,
                    action=entry.action,
                    target=entry.target,
                    details=entry.details or "",
                    timestamp=datetime.now(timezone.utc).isoformat(),
                )
            )
            conn.commit()
        return entry_id

    def recent(self, limit: int = RECENT_LIMIT) -> list[AuditEntry]:
        """Return up to `limit` entries, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _audit_log.select().order_by(_audit_log.c.timestamp.desc()).limit(limit)
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


def _row_to_entry(row) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        user_id=row.user_id,
        user_name=row.user_name,
        action=row.action,
        target=row.target,
        details=row.details or "",
        timestamp=normalize_timestamp(row.timestamp),
    )
