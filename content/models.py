"""
content/models.py -- Document entity and the fixed collection names.

A Document is a JSON object stored under (collection, id). `order` is kept
outside `data` in its own column so collections can be listed in display
order and rewritten in one batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

REORDERABLE_COLLECTIONS: tuple[str, ...] = ("team", "programs", "resources")
EVENTS_COLLECTION = "events"
CONTENT_COLLECTIONS: tuple[str, ...] = REORDERABLE_COLLECTIONS + (EVENTS_COLLECTION,)
CONTACTS_COLLECTION = "contacts"

# Single-document pages: collection -> the one document id it holds.
SINGLETON_DOCUMENTS: dict[str, str] = {"about": "content", "settings": "site"}


@dataclass
class Document:
    collection: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    order: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the wire shape: stored fields plus id, order and timestamps."""
        flat = dict(self.data)
        flat["id"] = self.id
        if self.order is not None:
            flat["order"] = self.order
        flat["createdAt"] = self.created_at
        flat["updatedAt"] = self.updated_at
        return flat
