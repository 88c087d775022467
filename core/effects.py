"""
core/effects.py -- Best-effort side effects.

Audit logging and cache invalidation run after a write has already succeeded.
Their failures must never reach the caller: best_effort() runs the effect,
reports any exception to the operational log, and returns a bool the caller
is free to ignore.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger("foundry.effects")


async def best_effort(label: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
    """Run func(*args, **kwargs), awaiting it if it returns an awaitable.

    Returns True on success, False if the effect raised. Never raises.
    """
    try:
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Best-effort %s failed", label)
        return False
    return True
