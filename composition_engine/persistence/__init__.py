"""Persistence — EntityStore, InstallationRepository, PolicyRepository."""

from composition_engine.persistence.entity_store import EntityStore
from composition_engine.persistence.installation_repository import InstallationRepository
from composition_engine.persistence.policy_repository import PolicyRepository

__all__ = ["EntityStore", "InstallationRepository", "PolicyRepository"]
