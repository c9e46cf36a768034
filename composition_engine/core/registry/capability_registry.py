"""
Capability Registry — canonical catalog of capability definitions.

Registration validates the key format, scope/owner pairing and that every
dependency is already registered (no forward references), so registration
order matters.  Capabilities are soft-deleted via ``deprecate``; version
history is append-only.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Iterable

from composition_engine.core.registry.dependency_resolver import DependencyResolver
from composition_engine.errors import (
    DuplicateKeyError,
    NotFoundError,
    UnknownCapabilityError,
    ValidationError,
)
from composition_engine.models.enums import CapabilityScope
from composition_engine.models.schemas import Capability, CapabilityFilter, CapabilityVersion
from composition_engine.utils.validation import parse_model

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")
_SEMVER_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


def parse_semver(version: str) -> tuple[int, int, int]:
    match = _SEMVER_PATTERN.match(version or "")
    if not match:
        raise ValidationError(f"Invalid version '{version}' (expected MAJOR.MINOR.PATCH)")
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch)


def validate_key(key: str, kind: str = "Capability") -> None:
    if not isinstance(key, str) or not KEY_PATTERN.match(key):
        raise ValidationError(
            f"Invalid {kind.lower()} key '{key}'",
            [f"key must match {KEY_PATTERN.pattern}"],
        )


class CapabilityRegistry:
    """In-process catalog of capabilities keyed by immutable string keys."""

    def __init__(self):
        self._capabilities: dict[str, Capability] = {}
        self._versions: dict[str, list[CapabilityVersion]] = {}
        self._lock = threading.RLock()

    def __contains__(self, key: object) -> bool:
        return key in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

    # ── Writes ───────────────────────────────────────────

    def register(self, capability: Capability | dict[str, Any]) -> Capability:
        """Validate and add a capability.  Returns a copy of the stored record."""
        cap = parse_model(Capability, capability)
        validate_key(cap.key)
        parse_semver(cap.current_version)

        if cap.scope == CapabilityScope.APP_SPECIFIC and not cap.owner_app_key:
            raise ValidationError(
                f"App-specific capability '{cap.key}' requires an owning app key"
            )
        if cap.scope == CapabilityScope.PLATFORM and cap.owner_app_key:
            raise ValidationError(
                f"Platform capability '{cap.key}' must not declare an owning app"
            )

        cap.dependencies = list(dict.fromkeys(cap.dependencies))

        with self._lock:
            if cap.key in self._capabilities:
                raise DuplicateKeyError("Capability", cap.key)
            for dep in cap.dependencies:
                if dep not in self._capabilities:
                    raise UnknownCapabilityError(dep, cap.key)

            self._capabilities[cap.key] = cap
            self._versions[cap.key] = [
                CapabilityVersion(
                    capability_key=cap.key,
                    version=cap.current_version,
                    changelog="Initial release",
                )
            ]

        logger.info(
            f"Registered capability {cap.key} v{cap.current_version} "
            f"(scope={cap.scope.value}, deps={cap.dependencies})"
        )
        return cap.model_copy(deep=True)

    def deprecate(self, key: str) -> Capability:
        """Soft-delete: existing installations keep working, new installs are blocked."""
        with self._lock:
            cap = self._get(key)
            cap.is_active = False
        logger.info(f"Deprecated capability {key}")
        return cap.model_copy(deep=True)

    def release_version(
        self,
        key: str,
        version: str,
        changelog: str = "",
        breaking_changes: bool = False,
    ) -> CapabilityVersion:
        """Append an immutable version snapshot and bump current_version."""
        new = parse_semver(version)
        with self._lock:
            cap = self._get(key)
            if new <= parse_semver(cap.current_version):
                raise ValidationError(
                    f"Version {version} of '{key}' must be greater than {cap.current_version}"
                )
            snapshot = CapabilityVersion(
                capability_key=key,
                version=version,
                changelog=changelog,
                breaking_changes=breaking_changes,
            )
            self._versions[key].append(snapshot)
            cap.current_version = version

        logger.info(f"Released {key} v{version} (breaking={breaking_changes})")
        return snapshot

    def update_dependencies(self, key: str, dependencies: Iterable[str]) -> Capability:
        """Replace a capability's dependency list, rejecting unknown keys and cycles."""
        deps = list(dict.fromkeys(dependencies))
        with self._lock:
            cap = self._get(key)
            for dep in deps:
                if dep not in self._capabilities:
                    raise UnknownCapabilityError(dep, key)

            candidate = self.graph()
            candidate[key] = tuple(deps)
            DependencyResolver(candidate).resolve({key})

            cap.dependencies = deps
        logger.info(f"Updated dependencies of {key}: {deps}")
        return cap.model_copy(deep=True)

    # ── Reads ────────────────────────────────────────────

    def get(self, key: str) -> Capability:
        with self._lock:
            return self._get(key).model_copy(deep=True)

    def list_active(self, filters: CapabilityFilter | None = None) -> list[Capability]:
        """List capabilities (active only unless ``include_inactive``), sorted by key."""
        f = filters or CapabilityFilter()
        query = f.query.lower().strip()
        results: list[Capability] = []

        with self._lock:
            for cap in self._capabilities.values():
                if not cap.is_active and not f.include_inactive:
                    continue
                if f.category and cap.category != f.category:
                    continue
                if f.scope and cap.scope != f.scope:
                    continue
                if f.owner_app_key and cap.owner_app_key != f.owner_app_key:
                    continue
                if f.visibility and cap.visibility != f.visibility:
                    continue
                if f.tags and not set(f.tags).issubset(cap.tags):
                    continue
                if query and not any(
                    query in text.lower() for text in (cap.key, cap.name, cap.description)
                ):
                    continue
                results.append(cap.model_copy(deep=True))

        return sorted(results, key=lambda c: c.key)

    def versions(self, key: str) -> list[CapabilityVersion]:
        with self._lock:
            self._get(key)
            return list(self._versions[key])

    def graph(self) -> dict[str, tuple[str, ...]]:
        """Adjacency map of every registered capability (active or not)."""
        with self._lock:
            return {key: tuple(cap.dependencies) for key, cap in self._capabilities.items()}

    def resolver(self) -> DependencyResolver:
        return DependencyResolver(self.graph())

    def core_keys(self) -> set[str]:
        with self._lock:
            return {k for k, c in self._capabilities.items() if c.is_core and c.is_active}

    def _get(self, key: str) -> Capability:
        cap = self._capabilities.get(key)
        if cap is None:
            raise NotFoundError("Capability", key)
        return cap
