"""
api/routes/site.py -- Single-document site content: the about page and site settings.

Routes:
  GET /api/about     -- public; {} until the page has been written once (cached)
  PUT /api/about     -- editor or higher; merges the given fields
  GET /api/settings  -- public; {} until settings have been saved (cached)
  PUT /api/settings  -- admin or higher; merges the given fields

Each page is one document with a fixed id (content.models.SINGLETON_DOCUMENTS).
PUT merges, so fields the client does not send keep their stored values.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from starlette.concurrency import run_in_threadpool

from api.models import MessageResponse, SiteSettingsUpdate
from audit.logger import AuditLogger
from auth.dependencies import require_admin, require_editor
from auth.models import SessionUser
from cache.store import ResponseCache
from content.models import SINGLETON_DOCUMENTS
from content.store import DocumentStore
from core.effects import best_effort
from core.errors import validation_error
from core.sanitize import sanitize_object

_ABOUT_MAX_LENGTH = 5000
_SETTINGS_MAX_LENGTH = 500

# Auth policy:
# - GET /api/about, GET /api/settings: public
# - PUT /api/about:    requires editor or higher (require_editor)
# - PUT /api/settings: requires admin or higher (require_admin)
router = APIRouter()


async def _read_page(request: Request, collection: str) -> dict[str, Any]:
    documents: DocumentStore = request.app.state.documents
    cache: ResponseCache = request.app.state.cache

    def load() -> dict[str, Any]:
        doc = documents.get(collection, SINGLETON_DOCUMENTS[collection])
        return doc.to_dict() if doc is not None else {}

    return await run_in_threadpool(cache.get_or_load, collection, load)


async def _write_page(
    request: Request,
    session: SessionUser,
    collection: str,
    fields: dict[str, Any],
    action: str,
    target: str,
) -> None:
    if not fields:
        raise validation_error("No fields to update.")
    documents: DocumentStore = request.app.state.documents
    await run_in_threadpool(documents.upsert, collection, SINGLETON_DOCUMENTS[collection], fields)

    audit: AuditLogger = request.app.state.audit
    cache: ResponseCache = request.app.state.cache
    await audit.log(session.uid, session.name, action, target, ", ".join(sorted(fields)))
    await best_effort("cache invalidation", cache.invalidate, collection)


@router.get("/about")
async def get_about(request: Request) -> dict[str, Any]:
    return await _read_page(request, "about")


@router.put("/about", response_model=MessageResponse)
async def update_about(
    request: Request,
    body: dict[str, Any] = Body(...),
    session: SessionUser = Depends(require_editor),
) -> MessageResponse:
    """Merge free-form about-page fields. Top-level strings are sanitized."""
    fields = sanitize_object(body, _ABOUT_MAX_LENGTH)
    for reserved in ("id", "createdAt", "updatedAt"):
        fields.pop(reserved, None)
    await _write_page(request, session, "about", fields, "update", "updated about page content")
    return MessageResponse(message="About page updated!")


@router.get("/settings")
async def get_settings_page(request: Request) -> dict[str, Any]:
    return await _read_page(request, "settings")


@router.put("/settings", response_model=MessageResponse)
async def update_settings(
    request: Request,
    body: SiteSettingsUpdate,
    session: SessionUser = Depends(require_admin),
) -> MessageResponse:
    fields = sanitize_object(body.model_dump(by_alias=True, exclude_unset=True), _SETTINGS_MAX_LENGTH)
    await _write_page(request, session, "settings", fields, "settings", "updated site settings")
    return MessageResponse(message="Settings updated!")
