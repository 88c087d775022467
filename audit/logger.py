"""
audit/logger.py -- Best-effort audit logging.

Availability over durability: losing an audit record is acceptable, blocking
an admin action because the audit write failed is not. log() therefore
catches every exception from the store, reports it on the "foundry.audit"
logger, and returns normally.

The store call is sync SQLAlchemy, so it runs in Starlette's thread pool to
keep the event loop free.
"""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool

from audit.models import AuditEntry
from audit.store import AuditStore

logger = logging.getLogger("foundry.audit")


class AuditLogger:
    def __init__(self, store: AuditStore) -> None:
        self.store = store

    async def log(
        self,
        actor_id: str,
        actor_name: str,
        action: str,
        target: str,
        details: str | None = None,
    ) -> None:
        """Append an audit entry. Never raises."""
        entry = AuditEntry(
            user_id=actor_id,
            user_name=actor_name,
            action=action,
            target=target,
            details=details or "",
        )
        try:
            await run_in_threadpool(self.store.add, entry)
        except Exception:
            logger.exception("Failed to write audit log entry (%s by %s: %s)", action, actor_id, target)
