"""
api/routes/audit.py -- Read-only audit trail endpoint.

Routes:
  GET /api/audit -- the 200 most recent audit entries, newest first.

Timestamps are ISO 8601 strings, or null for entries without one. The store
normalizes them on read, so a malformed stored value can never make this
endpoint fail.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from api.models import AuditEntryResponse
from audit.store import RECENT_LIMIT, AuditStore
from auth.dependencies import require_admin
from auth.models import SessionUser

# Auth policy:
# - GET /api/audit: requires admin or higher (require_admin)
router = APIRouter()


@router.get("/audit", response_model=list[AuditEntryResponse])
async def list_audit_entries(
    request: Request,
    session: SessionUser = Depends(require_admin),
) -> list[AuditEntryResponse]:
    """Return the most recent audit entries. Admin and above only."""
    store: AuditStore = request.app.state.audit_store
    entries = await run_in_threadpool(store.recent, RECENT_LIMIT)
    return [AuditEntryResponse.from_entry(e) for e in entries]
