"""
api/routes/content.py -- CRUD endpoints for the site collections (team, programs, resources, events).

Routes (registered once per collection in CONTENT_COLLECTIONS):
  GET    /api/{collection}       -- public list in display order, events newest first (cached)
  POST   /api/{collection}       -- create; a new sortable document goes last
  PUT    /api/{collection}/{id}  -- partial update of the given fields
  DELETE /api/{collection}/{id}  -- permanent delete

Every string field is sanitized with a per-field length limit before it is
written. Team members with visible=false are left out of the public list;
GET /api/team?all=1 returns them too and requires editor or higher.

Routes are added per collection with add_api_route(), so no fixed /api/*
path is shadowed by a collection parameter. No `from __future__ import
annotations` here: the endpoint factories annotate bodies with a closure
variable that FastAPI must resolve to a class.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import APIRouter, Depends, Path, Query, Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from api.models import (
    CreatedResponse,
    EventCreate,
    MessageResponse,
    ProgramCreate,
    ResourceCategoryCreate,
    TeamMemberCreate,
)
from audit.logger import AuditLogger
from auth.dependencies import get_current_session, require_admin, require_editor
from auth.models import SessionUser
from auth.session import require_role
from cache.store import ResponseCache
from content.models import CONTENT_COLLECTIONS, EVENTS_COLLECTION
from content.store import DocumentStore
from core.effects import best_effort
from core.errors import not_found, validation_error
from core.roles import Role
from core.sanitize import is_non_empty, sanitize, sanitize_object

TEAM_CATEGORIES = ("core_committee", "team_head", "member")

_DOC_ID_PATTERN = r"^[A-Za-z0-9_-]+$"

_EVENT_LIMITS = {
    "title": 200,
    "date": 50,
    "type": 50,
    "status": 20,
    "description": 5000,
    "imageURL": 500,
    "venue": 200,
    "time": 50,
    "registrationLink": 500,
}

# Auth policy:
# - GET    /api/{collection}:       public; ?all=1 requires editor or higher
# - POST   /api/{collection}:       requires editor or higher (require_editor)
# - PUT    /api/{collection}/{id}:  requires editor or higher (require_editor)
# - DELETE /api/{collection}/{id}:  requires admin or higher (require_admin)
router = APIRouter()


# ---------------------------------------------------------------------------
# Field cleaners
#
# Each takes the dumped request model (only the fields the client sent, for
# updates) and returns the sanitized dict to persist.
# ---------------------------------------------------------------------------


def _require(data: dict[str, Any], *keys: str) -> None:
    missing = [k for k in keys if k in data and not is_non_empty(data[k])]
    if missing:
        raise validation_error(f"Missing required fields: {', '.join(missing)}")


def _clean_team(raw: dict[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, limit in (("name", 200), ("role", 200), ("image", 2000), ("linkedin", 2000)):
        if key in raw:
            data[key] = sanitize(raw[key], limit)
    if "batch" in raw:
        data["batch"] = sanitize(raw["batch"], 20) or str(datetime.now(timezone.utc).year)
    if "visible" in raw:
        data["visible"] = bool(raw["visible"])
    if "category" in raw:
        if raw["category"] not in TEAM_CATEGORIES:
            raise validation_error(f"Invalid category. Allowed: {', '.join(TEAM_CATEGORIES)}")
        data["category"] = raw["category"]
    _require(data, "name", "role")
    return data


def _clean_program(raw: dict[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, limit in (("title", 200), ("description", 5000), ("icon", 50)):
        if key in raw:
            data[key] = sanitize(raw[key], limit)
    _require(data, "title", "description")
    return data


def _clean_resource(raw: dict[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if "category" in raw:
        data["category"] = sanitize(raw["category"], 200)
    if "items" in raw:
        data["items"] = [sanitize_object(item) for item in raw["items"]]
    _require(data, "category")
    return data


def _clean_event(raw: dict[str, Any]) -> dict[str, Any]:
    data = {key: sanitize(raw[key], limit) for key, limit in _EVENT_LIMITS.items() if key in raw}
    _require(data, "title", "date", "type", "status", "description")
    return data


@dataclass(frozen=True)
class _CollectionRoutes:
    name: str
    model: type[BaseModel]
    clean: Callable[[dict[str, Any]], dict[str, Any]]
    label_field: str
    order_by: str = "order"
    descending: bool = False
    sortable: bool = True


_COLLECTIONS: dict[str, _CollectionRoutes] = {
    "team": _CollectionRoutes("team", TeamMemberCreate, _clean_team, "name"),
    "programs": _CollectionRoutes("programs", ProgramCreate, _clean_program, "title"),
    "resources": _CollectionRoutes("resources", ResourceCategoryCreate, _clean_resource, "category"),
    EVENTS_COLLECTION: _CollectionRoutes(
        EVENTS_COLLECTION,
        EventCreate,
        _clean_event,
        "title",
        order_by="created_at",
        descending=True,
        sortable=False,
    ),
}


def _is_public(collection: str, doc: dict[str, Any]) -> bool:
    return collection != "team" or doc.get("visible", True) is not False


# ---------------------------------------------------------------------------
# Endpoint factories
# ---------------------------------------------------------------------------


def _make_list(coll: _CollectionRoutes):
    async def list_documents(
        request: Request,
        include_hidden: bool = Query(False, alias="all", description="Include hidden entries (editor or higher)."),
    ) -> list[dict[str, Any]]:
        if include_hidden:
            session = get_current_session(request)
            require_role(session.role, Role.editor)

        documents: DocumentStore = request.app.state.documents
        cache: ResponseCache = request.app.state.cache

        def load() -> list[dict[str, Any]]:
            docs = [d.to_dict() for d in documents.query(coll.name, coll.order_by, coll.descending)]
            return docs if include_hidden else [d for d in docs if _is_public(coll.name, d)]

        key = f"{coll.name}:all" if include_hidden else coll.name
        return await run_in_threadpool(cache.get_or_load, key, load)

    list_documents.__doc__ = f"List {coll.name} in display order."
    return list_documents


def _make_create(coll: _CollectionRoutes):
    model = coll.model

    async def create_document(
        request: Request,
        body: model,
        session: SessionUser = Depends(require_editor),
    ) -> CreatedResponse:
        data = coll.clean(body.model_dump(by_alias=True))
        documents: DocumentStore = request.app.state.documents

        def insert() -> str:
            order = documents.count(coll.name) if coll.sortable else None
            return documents.add(coll.name, data, order=order)

        doc_id = await run_in_threadpool(insert)
        await _after_write(request, session, "create", f"{coll.name}: {data.get(coll.label_field, doc_id)}", coll.name)
        return CreatedResponse(id=doc_id, message="Created!")

    create_document.__doc__ = f"Add a document to {coll.name}."
    return create_document


def _make_update(coll: _CollectionRoutes):
    model = coll.model

    async def update_document(
        request: Request,
        body: model,
        doc_id: str = Path(min_length=1, max_length=64, pattern=_DOC_ID_PATTERN),
        session: SessionUser = Depends(require_editor),
    ) -> MessageResponse:
        data = coll.clean(body.model_dump(by_alias=True, exclude_unset=True))
        if not data:
            raise validation_error("No fields to update.")

        documents: DocumentStore = request.app.state.documents
        if not await run_in_threadpool(documents.update, coll.name, doc_id, data):
            raise not_found(f"Document {doc_id} not found in {coll.name}.")

        await _after_write(request, session, "update", f"{coll.name}/{doc_id}", coll.name, ", ".join(sorted(data)))
        return MessageResponse(message="Updated!")

    return update_document


def _make_delete(coll: _CollectionRoutes):
    async def delete_document(
        request: Request,
        doc_id: str = Path(min_length=1, max_length=64, pattern=_DOC_ID_PATTERN),
        session: SessionUser = Depends(require_admin),
    ) -> MessageResponse:
        documents: DocumentStore = request.app.state.documents
        if not await run_in_threadpool(documents.delete, coll.name, doc_id):
            raise not_found(f"Document {doc_id} not found in {coll.name}.")

        await _after_write(request, session, "delete", f"{coll.name}/{doc_id}", coll.name)
        return MessageResponse(message="Deleted!")

    return delete_document


async def _after_write(
    request: Request,
    session: SessionUser,
    action: str,
    target: str,
    namespace: str,
    details: str | None = None,
) -> None:
    audit: AuditLogger = request.app.state.audit
    cache: ResponseCache = request.app.state.cache
    await audit.log(session.uid, session.name, action, target, details)
    await best_effort("cache invalidation", cache.invalidate, namespace)


for _name in CONTENT_COLLECTIONS:
    _coll = _COLLECTIONS[_name]
    router.add_api_route(f"/{_name}", _make_list(_coll), methods=["GET"], name=f"list_{_name}")
    router.add_api_route(
        f"/{_name}",
        _make_create(_coll),
        methods=["POST"],
        status_code=201,
        response_model=CreatedResponse,
        name=f"create_{_name}",
    )
    router.add_api_route(
        f"/{_name}/{{doc_id}}",
        _make_update(_coll),
        methods=["PUT"],
        response_model=MessageResponse,
        name=f"update_{_name}",
    )
    router.add_api_route(
        f"/{_name}/{{doc_id}}",
        _make_delete(_coll),
        methods=["DELETE"],
        response_model=MessageResponse,
        name=f"delete_{_name}",
    )
