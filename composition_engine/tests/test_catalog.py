"""
Tests: catalog seed loading and engine wiring.

Run with:
    pytest composition_engine/tests/test_catalog.py -v
"""

import json

import pytest

from composition_engine.core.catalog_loader import seed_capabilities, seed_catalog
from composition_engine.core.engine_service import CompositionEngine
from composition_engine.errors import UnknownCapabilityError, ValidationError
from composition_engine.utils.hashing import fingerprint


class TestSeedCatalog:
    def test_seed_counts(self):
        results = seed_catalog(CompositionEngine())
        assert results == {
            "capabilities": 10,
            "bundles": 2,
            "apps": 2,
            "systems": 5,
            "tenant_integrations": 4,
        }

    def test_seeded_core_capabilities(self):
        engine = CompositionEngine()
        seed_capabilities(engine)
        assert engine.registry.core_keys() == {"auth", "audit-log"}

    def test_registration_order_matters(self, tmp_path):
        (tmp_path / "capabilities.json").write_text(json.dumps([
            {"key": "crm-pipeline", "dependencies": ["crm-contacts"]},
            {"key": "crm-contacts"},
        ]))
        with pytest.raises(UnknownCapabilityError):
            seed_capabilities(CompositionEngine(), data_dir=tmp_path)

    def test_invalid_system_file(self, tmp_path):
        from composition_engine.core.catalog_loader import seed_systems

        (tmp_path / "systems.json").write_text(json.dumps([{"name": "No slug"}]))
        with pytest.raises(ValidationError):
            seed_systems(CompositionEngine(), data_dir=tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            seed_capabilities(CompositionEngine(), data_dir=tmp_path)


class TestFingerprint:
    def test_key_order_independent(self):
        assert fingerprint({"a": 1, "b": [1, 2]}) == fingerprint({"b": [1, 2], "a": 1})

    def test_content_sensitive(self):
        assert fingerprint({"a": 1}) != fingerprint({"a": 2})
