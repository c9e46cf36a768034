"""
Bundle Manager — named, priced groupings of capability keys.

A bundle is an alias, not a dependency node: installing it installs its
member capabilities plus their resolved closures.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from composition_engine.core.installations import InstallationManager
from composition_engine.core.registry.capability_registry import (
    CapabilityRegistry,
    KEY_PATTERN,
)
from composition_engine.errors import NotFoundError, ValidationError
from composition_engine.models.schemas import AppInstallation, Bundle, BundleInput
from composition_engine.utils.validation import parse_model

logger = logging.getLogger(__name__)


class BundleManager:
    """Create, list and install capability bundles."""

    def __init__(self, registry: CapabilityRegistry, installations: InstallationManager):
        self.registry = registry
        self.installations = installations
        self._bundles: dict[str, Bundle] = {}
        self._lock = threading.RLock()

    def create_bundle(self, data: BundleInput | dict[str, Any]) -> Bundle:
        """Validate and store a bundle.  Every member must be a registered, active capability."""
        bundle_input = parse_model(BundleInput, data)
        issues: list[str] = []

        if not KEY_PATTERN.match(bundle_input.key):
            issues.append(f"key: must match {KEY_PATTERN.pattern}")
        if not bundle_input.capabilities:
            issues.append("capabilities: a bundle needs at least one capability")
        if bundle_input.price_per_month is not None and bundle_input.price_per_month < 0:
            issues.append("price_per_month: must not be negative")

        for key in bundle_input.capabilities:
            if key not in self.registry:
                issues.append(f"capabilities: unknown capability '{key}'")
            elif not self.registry.get(key).is_active:
                issues.append(f"capabilities: capability '{key}' is inactive")

        for key in bundle_input.suggested_config:
            if key not in bundle_input.capabilities:
                issues.append(f"suggested_config: '{key}' is not a member of the bundle")

        with self._lock:
            if bundle_input.key in self._bundles:
                issues.append(f"key: bundle '{bundle_input.key}' already exists")
            if issues:
                raise ValidationError(f"Invalid bundle '{bundle_input.key}'", issues)

            bundle = Bundle(**bundle_input.model_dump())
            bundle.capabilities = list(dict.fromkeys(bundle.capabilities))
            self._bundles[bundle.key] = bundle

        logger.info(f"Created bundle {bundle.key} with {len(bundle.capabilities)} capabilities")
        return bundle.model_copy(deep=True)

    def get_bundle(self, key: str) -> Bundle:
        with self._lock:
            bundle = self._bundles.get(key)
            if bundle is None:
                raise NotFoundError("Bundle", key)
            return bundle.model_copy(deep=True)

    def list_bundles(self, active_only: bool = True) -> list[Bundle]:
        with self._lock:
            bundles = [
                b.model_copy(deep=True)
                for b in self._bundles.values()
                if b.is_active or not active_only
            ]
        return sorted(bundles, key=lambda b: b.key)

    def set_bundle_active(self, key: str, is_active: bool) -> Bundle:
        """Toggle availability.  Existing installations are not touched."""
        with self._lock:
            bundle = self._bundles.get(key)
            if bundle is None:
                raise NotFoundError("Bundle", key)
            bundle.is_active = is_active
        logger.info(f"Bundle {key} is_active={is_active}")
        return bundle.model_copy(deep=True)

    def expand_bundle(
        self, bundle_key: str
    ) -> tuple[list[str], dict[str, dict[str, Any]]]:
        """Member keys and suggested config of an active bundle.  Commits nothing."""
        bundle = self.get_bundle(bundle_key)
        if not bundle.is_active:
            raise ValidationError(f"Bundle '{bundle_key}' is not available for installation")
        return list(bundle.capabilities), {
            key: dict(payload) for key, payload in bundle.suggested_config.items()
        }

    def install_bundle(self, tenant_id: str, app_id: str, bundle_key: str) -> AppInstallation:
        """Install every member capability (and their closures) of an active bundle."""
        keys, config = self.expand_bundle(bundle_key)
        logger.info(f"Installing bundle {bundle_key} on {tenant_id}/{app_id}")
        return self.installations.install_capabilities(tenant_id, app_id, keys, config=config)
