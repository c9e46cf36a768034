"""
Tests: AppShell composition runtime.

Run with:
    pytest composition_engine/tests/test_runtime.py -v
"""

import pytest

from composition_engine.core.catalog_loader import seed_catalog
from composition_engine.core.engine_service import CompositionEngine
from composition_engine.errors import NotFoundError, NotInstalledError, PolicyDeniedError
from composition_engine.models.enums import Slot
from composition_engine.runtime.component_registry import FALLBACK_COMPONENT, ComponentRegistry


def _engine() -> CompositionEngine:
    engine = CompositionEngine()
    seed_catalog(engine)
    engine.install_capabilities(
        "acme", "crm-suite", ["crm-automation"], config={"crm-pipeline": {"stages": 5}}
    )
    return engine


class TestLoadApp:
    def test_entries_in_dependency_order(self):
        engine = _engine()
        descriptor = engine.load_app("acme", "crm-suite")
        keys = [e.capability_key for e in descriptor.capabilities]
        assert keys.index("crm-contacts") < keys.index("crm-pipeline") < keys.index("crm-automation")
        assert keys.index("webhook-engine") < keys.index("crm-automation")
        assert keys.index("auth") < keys.index("audit-log")
        assert [e.order for e in descriptor.capabilities] == list(range(len(keys)))

    def test_slots_follow_category(self):
        entries = {e.capability_key: e for e in _engine().load_app("acme", "crm-suite").capabilities}
        assert entries["auth"].slot == Slot.HEADER
        assert entries["audit-log"].slot == Slot.HEADER
        assert entries["crm-automation"].slot == Slot.SIDEBAR
        assert entries["crm-pipeline"].slot == Slot.MAIN

    def test_components_from_registry_with_fallback(self):
        entries = {e.capability_key: e for e in _engine().load_app("acme", "crm-suite").capabilities}
        assert entries["crm-contacts"].component == "ContactList"
        assert entries["webhook-engine"].component == FALLBACK_COMPONENT

    def test_config_merges_app_defaults_and_installation(self):
        descriptor = _engine().load_app("acme", "crm-suite")
        pipeline = next(e for e in descriptor.capabilities if e.capability_key == "crm-pipeline")
        assert pipeline.config == {"default_currency": "EUR", "stages": 5}
        assert descriptor.layout["sidebar_width"] == 300
        assert descriptor.layout["show_header"] is True
        assert descriptor.theme["primary"] == "hsl(221 83% 53%)"
        assert descriptor.branding == {"product_name": "CRM Suite"}
        assert descriptor.name == "CRM Suite"

    def test_required_flags(self):
        entries = {e.capability_key: e for e in _engine().load_app("acme", "crm-suite").capabilities}
        assert entries["auth"].is_required is True
        assert entries["crm-contacts"].is_required is True
        assert entries["crm-automation"].is_required is False

    def test_drift_is_reported_and_rendered(self):
        engine = _engine()
        engine.registry.update_dependencies("crm-pipeline", ["crm-contacts", "notifications"])
        descriptor = engine.load_app("acme", "crm-suite")
        assert descriptor.drift == ["+notifications"]
        assert "notifications" in [e.capability_key for e in descriptor.capabilities]

    def test_on_app_loaded_fires(self):
        engine = _engine()
        loaded = []
        engine.shell.on_app_loaded = loaded.append
        descriptor = engine.load_app("acme", "crm-suite")
        assert loaded == [descriptor]

    def test_missing_installation(self):
        with pytest.raises(NotFoundError):
            _engine().load_app("acme", "finance-hub")

    def test_explicit_component_registry(self):
        engine = _engine()
        components = ComponentRegistry({"webhook-engine": "WebhookConsole"}, fallback="Empty")
        engine.shell.components = components
        entries = {e.capability_key: e for e in engine.load_app("acme", "crm-suite").capabilities}
        assert entries["webhook-engine"].component == "WebhookConsole"
        assert entries["auth"].component == "Empty"


class TestDispatchAction:
    def test_denied_action_returns_denial(self):
        engine = _engine()
        errors = []
        engine.shell.on_error = lambda key, err: errors.append((key, err))
        outcome = engine.shell.dispatch_action(
            "acme", "crm-suite", "crm-automation", "admin", resource="user", roles=["admin"]
        )
        assert outcome.allowed is False
        assert isinstance(outcome.denial, PolicyDeniedError)
        assert outcome.denial.subject == "resource:user"
        assert errors and errors[0][0] == "crm-automation"

    def test_allowed_action_fires_on_action(self):
        engine = _engine()
        actions = []
        engine.shell.on_action = lambda key, action, payload: actions.append((key, action, payload))
        outcome = engine.shell.dispatch_action(
            "acme", "crm-suite", "crm-contacts", "read", payload={"id": 1}, tool="crm.contacts"
        )
        assert outcome.allowed is True
        assert outcome.decision.allow is True
        assert actions == [("crm-contacts", "read", {"id": 1})]

    def test_plain_ui_action_skips_policy(self):
        outcome = _engine().shell.dispatch_action("acme", "crm-suite", "crm-contacts", "open")
        assert outcome.allowed is True
        assert outcome.decision is None

    def test_unknown_capability(self):
        with pytest.raises(NotFoundError):
            _engine().shell.dispatch_action("acme", "crm-suite", "ghost", "open")

    def test_uninstalled_capability_is_rejected(self):
        engine = _engine()
        errors, actions = [], []
        engine.shell.on_error = lambda key, err: errors.append((key, err))
        engine.shell.on_action = lambda key, action, payload: actions.append(key)
        outcome = engine.shell.dispatch_action(
            "acme", "crm-suite", "reporting", "read", tool="reports.view"
        )
        assert outcome.allowed is False
        assert isinstance(outcome.error, NotInstalledError)
        assert outcome.decision is None
        assert errors == [("reporting", outcome.error)]
        assert actions == []

    def test_tenant_without_installation_is_rejected(self):
        engine = _engine()
        actions = []
        engine.shell.on_action = lambda key, action, payload: actions.append(key)
        outcome = engine.shell.dispatch_action(
            "nobody", "crm-suite", "crm-automation", "read", tool="crm.rules"
        )
        assert outcome.allowed is False
        assert outcome.error.code == "NOT_INSTALLED"
        assert actions == []
