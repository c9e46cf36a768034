"""
CompositionEngine — the single object the API, CLI and tests talk to.

This is the facade over:
  • Capability Registry + Dependency Resolver   (catalog and closures)
  • Bundle / Installation managers              (what a tenant app is made of)
  • Compatibility Scorer                        (app × external system fit)
  • Policy Engine                               (agent tool-call authorization)
  • AppShell                                    (render descriptors, actions)

Every collaborator can be injected; anything omitted is built in-memory.
"""

from __future__ import annotations

import logging
from typing import Any

from composition_engine.config import Settings, get_settings
from composition_engine.core.installations import InstallationManager
from composition_engine.core.policy.policy_engine import PolicyEngine
from composition_engine.core.registry.bundle_manager import BundleManager
from composition_engine.core.registry.capability_registry import CapabilityRegistry
from composition_engine.core.scoring.compatibility_scorer import CompatibilityScorer
from composition_engine.core.scoring.scoring_config import ScoringConfigStore
from composition_engine.models.schemas import (
    AppInstallation,
    AuthorizationDecision,
    CompatibilityScore,
    RenderDescriptor,
    SystemScore,
)
from composition_engine.persistence.entity_store import EntityStore
from composition_engine.persistence.installation_repository import InstallationRepository
from composition_engine.persistence.policy_repository import PolicyRepository
from composition_engine.runtime.app_shell import AppShell
from composition_engine.runtime.component_registry import ComponentRegistry
from composition_engine.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class CompositionEngine:
    """
    Facade over all engine components.

    Usage:
        engine = CompositionEngine()
        seed_catalog(engine)
        engine.install_capabilities("acme", "crm-suite", ["crm-automation"])
        engine.score("crm-suite", "salesforce", tenant_id="acme")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        registry: CapabilityRegistry | None = None,
        store: EntityStore | None = None,
        installation_repository: InstallationRepository | None = None,
        policy_repository: PolicyRepository | None = None,
        audit: AuditService | None = None,
        components: ComponentRegistry | None = None,
    ):
        self.settings = settings or get_settings()
        self.audit = audit or AuditService()
        self.registry = registry or CapabilityRegistry()
        self.store = store or EntityStore()

        self.installations = InstallationManager(
            self.registry,
            installation_repository or InstallationRepository(),
            self.audit,
        )
        self.bundles = BundleManager(self.registry, self.installations)
        self.scoring_config = ScoringConfigStore(self.settings)
        self.scorer = CompatibilityScorer(
            self.store, self.scoring_config, self.settings.scoring_cache_size
        )
        self.policy = PolicyEngine(
            policy_repository or PolicyRepository(), self.audit, settings=self.settings
        )
        self.shell = AppShell(
            self.installations, self.store, self.policy, components or ComponentRegistry()
        )
        logger.debug(f"CompositionEngine ready (mock_mode={self.settings.mock_mode})")

    # ── Installations ────────────────────────────────────

    def install_capabilities(
        self,
        tenant_id: str,
        app_id: str,
        keys: list[str],
        config: dict[str, dict[str, Any]] | None = None,
    ) -> AppInstallation:
        return self.installations.install_capabilities(tenant_id, app_id, keys, config)

    def install_bundle(self, tenant_id: str, app_id: str, bundle_key: str) -> AppInstallation:
        return self.bundles.install_bundle(tenant_id, app_id, bundle_key)

    # ── Compatibility ────────────────────────────────────

    def score(
        self, app_key: str, system_slug: str, tenant_id: str | None = None
    ) -> CompatibilityScore:
        return self.scorer.score(app_key, system_slug, tenant_id)

    def matrix(
        self, app_key: str, tenant_id: str | None = None, min_score: float | None = None
    ) -> list[SystemScore]:
        return self.scorer.matrix(app_key, tenant_id, min_score)

    # ── Policy ───────────────────────────────────────────

    def authorize(self, tenant_id: str, **kwargs: Any) -> AuthorizationDecision:
        return self.policy.authorize(tenant_id, **kwargs)

    # ── Runtime ──────────────────────────────────────────

    def load_app(self, tenant_id: str, app_id: str) -> RenderDescriptor:
        return self.shell.load_app(tenant_id, app_id)
