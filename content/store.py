"""
content/store.py -- SQLAlchemy Core document store for admin-edited collections.

Pattern: Repository + Data Mapper. Each record is a JSON document keyed by
(collection, id), with a separate integer sort_order column.

Supported operations mirror what the admin handlers need from a document
database: get-by-id, query with ordering and limit, count, add, update, upsert,
delete, and an atomic batch rewrite of the order field.

Atomicity:
  batch_update_order() runs every UPDATE inside a single engine.begin()
  transaction. If any id does not exist the transaction is rolled back and
  DocumentNotFoundError is raised, so a partial reorder is never visible.
  Duplicate ids are applied in sequence, so the last position wins.
"""

from __future__ import annotations

import json
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from content.models import Document

_metadata = MetaData()

_documents = Table(
    "documents",
    _metadata,
    Column("collection", String(64), primary_key=True),
    Column("id", String(64), primary_key=True),
    Column("data", Text, nullable=False),  # JSON object
    Column("sort_order", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_ORDER_COLUMNS = {
    "order": _documents.c.sort_order,
    "created_at": _documents.c.created_at,
    "updated_at": _documents.c.updated_at,
}


class DocumentNotFoundError(LookupError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {doc_id!r} not found in {collection!r}.")
        self.collection = collection
        self.doc_id = doc_id


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentStore:
    """Repository for Document records.

    Usage:
        store = DocumentStore("sqlite:///foundry.db")
        doc_id = store.add("team", {"name": "Ada"}, order=0)
        store.batch_update_order("team", [doc_id])
        docs = store.query("team", order_by="order")
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
    # Reads
    # ------------------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _documents.select().where((_documents.c.collection == collection) & (_documents.c.id == doc_id))
            ).fetchone()
        return _row_to_document(row) if row is not None else None

    def query(
        self,
        collection: str,
        order_by: str = "order",
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """List a collection sorted by order, created_at or updated_at.

        Documents without an order sort after those with one.
        """
        column = _ORDER_COLUMNS[order_by]
        stmt = _documents.select().where(_documents.c.collection == collection)
        sort = column.desc() if descending else column.asc()
        if order_by == "order":
            stmt = stmt.order_by(column.is_(None), sort, _documents.c.created_at.asc())
        else:
            stmt = stmt.order_by(sort)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_document(r) for r in rows]

    def count(self, collection: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_documents).where(_documents.c.collection == collection)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, collection: str, data: dict[str, Any], order: Optional[int] = None) -> str:
        """Insert a new document with a generated id. Returns the id."""
        doc_id = secrets.token_hex(10)
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _documents.insert().values(
                    collection=collection,
                    id=doc_id,
                    data=json.dumps(data),
                    sort_order=order,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> bool:
        """Merge fields into an existing document. Returns False if it does not exist.

        An "order" key is routed to the sort_order column.
        """
        fields = dict(fields)
        values: dict[str, Any] = {"updated_at": _now_iso()}
        if "order" in fields:
            values["sort_order"] = fields.pop("order")
        where = (_documents.c.collection == collection) & (_documents.c.id == doc_id)
        with self.engine.begin() as conn:
            row = conn.execute(select(_documents.c.data).where(where)).fetchone()
            if row is None:
                return False
            merged = json.loads(row.data)
            merged.update(fields)
            values["data"] = json.dumps(merged)
            conn.execute(_documents.update().where(where).values(**values))
        return True

    def upsert(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge fields into a document with a fixed id, creating it if absent."""
        now = _now_iso()
        where = (_documents.c.collection == collection) & (_documents.c.id == doc_id)
        with self.engine.begin() as conn:
            row = conn.execute(select(_documents.c.data).where(where)).fetchone()
            if row is None:
                conn.execute(
                    _documents.insert().values(
                        collection=collection,
                        id=doc_id,
                        data=json.dumps(fields),
                        created_at=now,
                        updated_at=now,
                    )
                )
                return
            merged = json.loads(row.data)
            merged.update(fields)
            conn.execute(_documents.update().where(where).values(data=json.dumps(merged), updated_at=now))

    def delete(self, collection: str, doc_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _documents.delete().where((_documents.c.collection == collection) & (_documents.c.id == doc_id))
            )
            conn.commit()
        return result.rowcount > 0

    def batch_update_order(self, collection: str, ordered_ids: list[str]) -> None:
        """Set order = index for every id, all or nothing.

        Raises DocumentNotFoundError (after rolling back) if any id is missing.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            for index, doc_id in enumerate(ordered_ids):
                result = conn.execute(
                    _documents.update()
                    .where((_documents.c.collection == collection) & (_documents.c.id == doc_id))
                    .values(sort_order=index, updated_at=now)
                )
                if result.rowcount == 0:
                    raise DocumentNotFoundError(collection, doc_id)

    def close(self) -> None:
        self.engine.dispose()


def _row_to_document(row) -> Document:
    return Document(
        collection=row.collection,
        id=row.id,
        data=json.loads(row.data),
        order=row.sort_order,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
