"""
audit/models.py -- The audit trail's single entity.

Entries are written once and never updated or deleted by the application, so
the dataclass is frozen.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuditEntry:
    """One privileged mutation: who did what to which target, and when.

    action is a short verb ("create", "update", "delete", "role_change", ...).
    target is a human-readable description ("reordered team (4 items)").
    timestamp is assigned by the server at insert time (ISO 8601, UTC) and may
    be None for rows written without one.
    """

    user_id: str
    user_name: str
    action: str
    target: str
    details: str = ""
    id: str | None = None
    timestamp: str | None = None
