"""
Installation Manager — the only write path for AppInstallation records.

Every write is closure-then-commit: the new selection is resolved first and
only a complete, closure-consistent snapshot is handed to the repository.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from composition_engine.core.registry.capability_registry import CapabilityRegistry
from composition_engine.errors import NotFoundError, ValidationError
from composition_engine.models.enums import CapabilityScope
from composition_engine.models.schemas import AppInstallation
from composition_engine.persistence.installation_repository import InstallationRepository
from composition_engine.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class InstallationManager:
    """Add, remove and configure capabilities on a tenant's app installation."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        repository: InstallationRepository | None = None,
        audit: AuditService | None = None,
    ):
        self.registry = registry
        self.repository = repository or InstallationRepository()
        self.audit = audit or AuditService()
        self._lock = threading.RLock()

    def get_installation(self, tenant_id: str, app_id: str) -> AppInstallation:
        installation = self.repository.load(tenant_id, app_id)
        if installation is None:
            raise NotFoundError("Installation", f"{tenant_id}/{app_id}")
        return installation

    def install_capabilities(
        self,
        tenant_id: str,
        app_id: str,
        keys: Iterable[str],
        config: dict[str, dict[str, Any]] | None = None,
    ) -> AppInstallation:
        """
        Select ``keys`` (plus their closure and every core capability).
        Newly-added capabilities must be active and, if app-specific,
        owned by ``app_id``.
        """
        requested = set(keys)
        with self._lock:
            current = self.repository.load(tenant_id, app_id) or AppInstallation(
                tenant_id=tenant_id, app_id=app_id
            )
            selected = current.selected | requested | self.registry.core_keys()
            closure = set(self.registry.resolver().resolve(selected))

            added = closure - current.installed
            issues: list[str] = []
            for key in sorted(added):
                cap = self.registry.get(key)
                if not cap.is_active:
                    issues.append(f"{key}: capability is deprecated")
                if cap.scope == CapabilityScope.APP_SPECIFIC and cap.owner_app_key != app_id:
                    issues.append(f"{key}: capability belongs to app '{cap.owner_app_key}'")
            for key in sorted(set(config or {}) - closure):
                issues.append(f"{key}: not installed")
            if issues:
                raise ValidationError(
                    f"Cannot install capabilities on {tenant_id}/{app_id}", issues
                )

            merged_config = {k: dict(v) for k, v in current.config.items()}
            for key, payload in (config or {}).items():
                merged_config[key] = {**merged_config.get(key, {}), **payload}

            updated = AppInstallation(
                tenant_id=tenant_id,
                app_id=app_id,
                selected=selected,
                installed=closure,
                config=merged_config,
            )
            updated.revision = self.repository.save(updated)

        self.audit.record(
            tenant_id,
            "installations",
            "install",
            details=f"{app_id}: +{sorted(added)}",
            data={"app_id": app_id, "added": sorted(added)},
        )
        return updated

    def remove_capabilities(
        self, tenant_id: str, app_id: str, keys: Iterable[str]
    ) -> AppInstallation:
        """Deselect ``keys``; refused while another selection still requires them."""
        removing = set(keys)
        with self._lock:
            current = self.get_installation(tenant_id, app_id)
            core = self.registry.core_keys()
            issues: list[str] = []

            for key in sorted(removing):
                if key not in current.installed:
                    issues.append(f"{key}: not installed")
                elif key in core:
                    issues.append(f"{key}: core capabilities cannot be removed")
            remaining = current.selected - removing
            resolver = self.registry.resolver()
            closure = set(resolver.resolve(remaining))
            for key in sorted(removing & closure):
                dependents = sorted(resolver.dependents_of(key, remaining))
                if dependents and key not in core:
                    issues.append(f"{key}: still required by {', '.join(dependents)}")
            if issues:
                raise ValidationError(
                    f"Cannot remove capabilities from {tenant_id}/{app_id}", issues
                )

            updated = AppInstallation(
                tenant_id=tenant_id,
                app_id=app_id,
                selected=remaining,
                installed=closure,
                config={k: v for k, v in current.config.items() if k in closure},
            )
            updated.revision = self.repository.save(updated)

        dropped = sorted(current.installed - closure)
        self.audit.record(
            tenant_id,
            "installations",
            "remove",
            details=f"{app_id}: -{dropped}",
            data={"app_id": app_id, "removed": dropped},
        )
        return updated

    def configure_capability(
        self, tenant_id: str, app_id: str, key: str, config: dict[str, Any]
    ) -> AppInstallation:
        """Replace the configuration payload of one installed capability."""
        with self._lock:
            current = self.get_installation(tenant_id, app_id)
            if key not in current.installed:
                raise ValidationError(f"Capability '{key}' is not installed on {app_id}")
            current.config[key] = dict(config)
            current.revision = self.repository.save(current)
        logger.info(f"Configured {key} on {tenant_id}/{app_id}")
        return current
