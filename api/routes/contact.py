"""
api/routes/contact.py -- Public contact form and the admin inbox.

Routes:
  POST   /api/contact  -- public, rate-limited; stores a message
  GET    /api/contact  -- admin: every message, newest first
  PATCH  /api/contact  -- admin: mark a message read or unread
  DELETE /api/contact  -- admin: delete a message

Messages live in the "contacts" document collection with read=false. Every
field is required and sanitized to its own length limit; the email address
must pass the local@domain.tld shape check.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import ContactCreate, ContactDeleteRequest, ContactReadRequest, MessageResponse
from audit.logger import AuditLogger
from auth.dependencies import require_admin
from auth.models import SessionUser
from content.models import CONTACTS_COLLECTION
from content.store import DocumentStore
from core.config import get_settings
from core.errors import not_found, validation_error
from core.sanitize import is_non_empty, is_valid_email, sanitize

logger = logging.getLogger("foundry.api")

_settings = get_settings()

_FIELD_LIMITS = {"name": 100, "email": 254, "subject": 200, "message": 5000}

# Auth policy:
# - POST /api/contact: public -- anonymous visitors submit the form (rate-limited)
# - GET, PATCH, DELETE /api/contact: require admin or higher (require_admin)
router = APIRouter()


@router.post("/contact", response_model=MessageResponse, status_code=201)
@limiter.limit(_settings.contact_rate_limit)
async def submit_contact(request: Request, body: ContactCreate) -> MessageResponse:
    """Store a contact-form message after sanitizing every field."""
    raw = body.model_dump()
    data: dict[str, Any] = {key: sanitize(raw[key], limit) for key, limit in _FIELD_LIMITS.items()}

    missing = [key for key in _FIELD_LIMITS if not is_non_empty(data[key])]
    if missing:
        raise validation_error("All fields are required.", f"missing: {', '.join(missing)}")
    if not is_valid_email(data["email"]):
        raise validation_error("Invalid email address.")

    data["read"] = False
    documents: DocumentStore = request.app.state.documents
    doc_id = await run_in_threadpool(documents.add, CONTACTS_COLLECTION, data)
    logger.info("Contact message stored id=%s", doc_id)
    return MessageResponse(message="Message sent successfully!")


@router.get("/contact")
async def list_contacts(
    request: Request,
    session: SessionUser = Depends(require_admin),
) -> list[dict[str, Any]]:
    documents: DocumentStore = request.app.state.documents
    docs = await run_in_threadpool(documents.query, CONTACTS_COLLECTION, "created_at", True)
    return [d.to_dict() for d in docs]


@router.patch("/contact", response_model=MessageResponse)
async def mark_contact_read(
    request: Request,
    body: ContactReadRequest,
    session: SessionUser = Depends(require_admin),
) -> MessageResponse:
    """Mark a message read or unread."""
    documents: DocumentStore = request.app.state.documents
    if not await run_in_threadpool(documents.update, CONTACTS_COLLECTION, body.id, {"read": body.read}):
        raise not_found("Message not found.")

    audit: AuditLogger = request.app.state.audit
    await audit.log(
        session.uid,
        session.name,
        "update",
        f"contact message {body.id}",
        f"read: {str(body.read).lower()}",
    )
    return MessageResponse(message="Updated!")


@router.delete("/contact", response_model=MessageResponse)
async def delete_contact(
    request: Request,
    body: ContactDeleteRequest,
    session: SessionUser = Depends(require_admin),
) -> MessageResponse:
    documents: DocumentStore = request.app.state.documents
    if not await run_in_threadpool(documents.delete, CONTACTS_COLLECTION, body.id):
        raise not_found("Message not found.")

    audit: AuditLogger = request.app.state.audit
    await audit.log(session.uid, session.name, "delete", f"contact message {body.id}")
    return MessageResponse(message="Message deleted!")
