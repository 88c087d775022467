"""
api/routes/reorder.py -- Batch reorder for the sortable admin lists.

Routes:
  PATCH /api/reorder -- body {collection, orderedIds}; sets each document's
                        order to its index in orderedIds.

Handler sequence:
  1. require_editor re-verifies the session and role server-side.
  2. collection must be one of team, programs, resources (400 otherwise);
     orderedIds must be a non-empty array of ids (400, via ReorderRequest).
  3. All order writes commit in one transaction. An unknown id rolls the
     whole batch back (404) so a partial reorder is never visible.
  4. Audit entry and cache invalidation are best-effort; once the write has
     committed the response is 200 regardless of either.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from api.models import MessageResponse, ReorderRequest
from audit.logger import AuditLogger
from auth.dependencies import require_editor
from auth.models import SessionUser
from cache.store import ResponseCache
from content.models import REORDERABLE_COLLECTIONS
from content.store import DocumentNotFoundError, DocumentStore
from core.effects import best_effort
from core.errors import not_found, validation_error

# Auth policy:
# - PATCH /api/reorder: requires editor or higher (require_editor)
router = APIRouter()


@router.patch("/reorder", response_model=MessageResponse)
async def reorder(
    request: Request,
    body: ReorderRequest,
    session: SessionUser = Depends(require_editor),
) -> MessageResponse:
    """Rewrite the order field of a collection in one atomic batch."""
    if body.collection not in REORDERABLE_COLLECTIONS:
        raise validation_error(f"Invalid collection. Allowed: {', '.join(REORDERABLE_COLLECTIONS)}")

    documents: DocumentStore = request.app.state.documents
    try:
        await run_in_threadpool(documents.batch_update_order, body.collection, body.ordered_ids)
    except DocumentNotFoundError as exc:
        raise not_found(f"Document {exc.doc_id} not found in {exc.collection}. No order was changed.") from exc

    audit: AuditLogger = request.app.state.audit
    cache: ResponseCache = request.app.state.cache
    await audit.log(
        session.uid,
        session.name,
        "update",
        f"reordered {body.collection} ({len(body.ordered_ids)} items)",
    )
    await best_effort("cache invalidation", cache.invalidate, body.collection)

    return MessageResponse(message="Order updated!")
