"""
Entity Store — read-mostly records the engine consumes but does not own:
app definitions, external systems and tenant integrations.
Uses in-memory dicts; a database-backed store only needs the same methods.
"""

from __future__ import annotations

import logging
import threading

from composition_engine.models.schemas import AppDefinition, ExternalSystem, TenantIntegration

logger = logging.getLogger(__name__)


class EntityStore:
    """
    Snapshot provider for the scorer and runtime.
    ``revision`` increases on every write so callers can detect change.
    """

    def __init__(self):
        self._apps: dict[str, AppDefinition] = {}
        self._systems: dict[str, ExternalSystem] = {}
        self._tenant_integrations: dict[str, list[TenantIntegration]] = {}
        self._lock = threading.RLock()
        self.revision = 0

    # ── App definitions ──────────────────────────────────

    def upsert_app(self, app: AppDefinition) -> AppDefinition:
        with self._lock:
            self._apps[app.key] = app.model_copy(deep=True)
            self.revision += 1
        logger.debug(f"Stored app definition {app.key}")
        return app

    def get_app(self, key: str) -> AppDefinition | None:
        with self._lock:
            app = self._apps.get(key)
            return app.model_copy(deep=True) if app else None

    def list_apps(self) -> list[AppDefinition]:
        with self._lock:
            return [a.model_copy(deep=True) for a in self._apps.values()]

    # ── External systems ─────────────────────────────────

    def upsert_system(self, system: ExternalSystem) -> ExternalSystem:
        with self._lock:
            self._systems[system.slug] = system.model_copy(deep=True)
            self.revision += 1
        logger.debug(f"Stored external system {system.slug}")
        return system

    def get_system(self, slug: str) -> ExternalSystem | None:
        with self._lock:
            system = self._systems.get(slug)
            return system.model_copy(deep=True) if system else None

    def list_systems(self) -> list[ExternalSystem]:
        with self._lock:
            systems = [s.model_copy(deep=True) for s in self._systems.values()]
        return sorted(systems, key=lambda s: (s.name or s.slug).lower())

    # ── Tenant workflows & secrets ───────────────────────

    def add_tenant_integration(self, integration: TenantIntegration) -> TenantIntegration:
        with self._lock:
            self._tenant_integrations.setdefault(integration.tenant_id, []).append(
                integration.model_copy(deep=True)
            )
            self.revision += 1
        return integration

    def tenant_integrations(
        self, tenant_id: str, active_only: bool = True
    ) -> list[TenantIntegration]:
        with self._lock:
            rows = self._tenant_integrations.get(tenant_id, [])
            return [
                r.model_copy(deep=True) for r in rows if r.is_active or not active_only
            ]
