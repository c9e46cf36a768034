"""
Audit Service — dedicated service for recording and querying audit trails.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class AuditService:
    """
    Records authorization decisions, policy activations and installation
    commits.  Uses an in-memory list; entries are never edited.
    """

    def __init__(self):
        self._entries: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def record(
        self,
        tenant_id: str,
        component: str,
        action: str,
        details: str = "",
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Record an audit entry and return it."""
        entry = {
            "tenant_id": tenant_id,
            "component": component,
            "action": action,
            "details": details,
            "data": data or {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self._entries.append(entry)
        logger.debug(f"[AUDIT] {component} → {action}: {details}")
        return entry

    def get_trail(self, tenant_id: str) -> list[dict[str, Any]]:
        """Return all audit entries for a tenant."""
        with self._lock:
            return [e for e in self._entries if e["tenant_id"] == tenant_id]

    def get_all(self) -> list[dict[str, Any]]:
        """Return all audit entries (for debugging)."""
        with self._lock:
            return list(self._entries)
