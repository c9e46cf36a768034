"""
Installation Repository — persistence layer for AppInstallation records.
Handles save, load and revision history (append-only for audit).
Uses in-memory dict for now.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from composition_engine.models.schemas import AppInstallation

logger = logging.getLogger(__name__)


class InstallationRepository:
    """
    Save/load AppInstallation snapshots keyed by (tenant_id, app_id).
    Each save appends a new revision; the latest revision is current.
    """

    def __init__(self):
        self._memory_store: dict[tuple[str, str], list[AppInstallation]] = {}
        self._lock = threading.RLock()

    def save(self, installation: AppInstallation) -> int:
        """Commit a full installation snapshot and return its revision number."""
        key = (installation.tenant_id, installation.app_id)
        with self._lock:
            history = self._memory_store.setdefault(key, [])
            snapshot = installation.model_copy(deep=True)
            snapshot.revision = len(history) + 1
            snapshot.updated_at = datetime.now(timezone.utc)
            history.append(snapshot)
        logger.info(
            f"Saved installation r{snapshot.revision} for {installation.tenant_id}/"
            f"{installation.app_id} ({len(snapshot.installed)} capabilities)"
        )
        return snapshot.revision

    def load(
        self, tenant_id: str, app_id: str, revision: int | None = None
    ) -> AppInstallation | None:
        """Load the latest (or a specific) revision.  Returns None if not found."""
        with self._lock:
            history = self._memory_store.get((tenant_id, app_id), [])
            if not history:
                return None
            if revision is not None:
                matches = [s for s in history if s.revision == revision]
                return matches[0].model_copy(deep=True) if matches else None
            return history[-1].model_copy(deep=True)

    def history(self, tenant_id: str, app_id: str) -> list[AppInstallation]:
        with self._lock:
            return [
                s.model_copy(deep=True)
                for s in self._memory_store.get((tenant_id, app_id), [])
            ]

    def list_for_tenant(self, tenant_id: str) -> list[str]:
        """List app ids the tenant has an installation for."""
        with self._lock:
            return sorted(app for (tenant, app) in self._memory_store if tenant == tenant_id)
