"""
Tests: Compatibility Scorer.

Run with:
    pytest composition_engine/tests/test_scoring.py -v
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from composition_engine.config import Settings
from composition_engine.core.catalog_loader import seed_catalog
from composition_engine.core.engine_service import CompositionEngine
from composition_engine.core.scoring.compatibility_scorer import (
    CompatibilityScorer,
    score_capability_match,
    score_compliance,
)
from composition_engine.core.scoring.scoring_config import ScoringConfig, ScoringConfigStore
from composition_engine.errors import NotFoundError, ValidationError
from composition_engine.models.schemas import (
    AppDefinition,
    ExternalSystem,
    ScoringWeights,
    SystemIntegration,
    TenantIntegration,
)
from composition_engine.persistence.entity_store import EntityStore


def _seeded() -> CompositionEngine:
    engine = CompositionEngine()
    seed_catalog(engine)
    return engine


def _store(*systems: ExternalSystem, app: AppDefinition | None = None) -> EntityStore:
    store = EntityStore()
    store.upsert_app(app or AppDefinition(
        key="crm-suite",
        required_capabilities=["contacts", "pipeline", "automation", "reporting"],
        integration_requirements={"crm": ["salesforce"]},
        compliance_tags=["GDPR", "SOC2"],
    ))
    for system in systems:
        store.upsert_system(system)
    return store


class TestScoreBounds:
    def test_all_scores_within_bounds(self):
        engine = _seeded()
        for app in engine.store.list_apps():
            for system in engine.store.list_systems():
                for tenant in (None, "acme", "globex"):
                    result = engine.score(app.key, system.slug, tenant_id=tenant)
                    assert 0.0 <= result.total_score <= 100.0
                    for _, dimension in result.breakdown:
                        assert 0.0 <= dimension.score <= 100.0

    def test_weights_sum_to_one(self):
        result = _seeded().score("crm-suite", "salesforce", tenant_id="acme")
        weights = [dim.weight for _, dim in result.breakdown]
        assert sum(weights) == pytest.approx(1.0, abs=1e-9)

    def test_total_is_weighted_sum(self):
        result = _seeded().score("crm-suite", "odoo")
        expected = sum(dim.score * dim.weight for _, dim in result.breakdown)
        assert result.total_score == round(expected, 1)


class TestSeedCatalogScores:
    def test_salesforce_for_acme(self):
        result = _seeded().score("crm-suite", "salesforce", tenant_id="acme")
        b = result.breakdown
        # marketing-automation is only reachable through the Flow integration
        assert b.capability_match.score == 100.0
        assert b.compliance.score == 100.0
        # salesforce 1.6/1.6, hubspot 0, slack 0.6/1.6
        assert b.integration_readiness.score == 45.8
        assert b.ecosystem_maturity.score == 50.0
        assert "Good fit" in result.badges
        assert "Missing workflows" in result.badges
        assert "Create workflow mapping for hubspot" in result.recommendations
        assert "Add an API credential for hubspot" in result.recommendations
        assert "Add MCP reference for hubspot" in result.recommendations
        assert "Create workflow mapping for salesforce" not in result.recommendations
        assert len(result.data_version) == 64

    def test_sparse_system_degrades_not_raises(self):
        result = _seeded().score("crm-suite", "legacy-crm")
        b = result.breakdown
        assert b.capability_match.score == 25.0
        assert b.compliance.score == 0.0
        assert b.ecosystem_maturity.score == 20.0
        assert any("unavailable" in line for line in result.explain)
        assert "Weak fit" in result.badges
        assert "Limited capabilities" in result.badges
        assert "Compliance gap" in result.badges

    def test_unknown_app_or_system(self):
        engine = _seeded()
        with pytest.raises(NotFoundError):
            engine.score("nope", "salesforce")
        with pytest.raises(NotFoundError):
            engine.score("crm-suite", "nope")

    def test_recommend_workflows(self):
        engine = _seeded()
        result = engine.score("crm-suite", "salesforce", tenant_id="acme")
        names = engine.scorer.recommend_workflows("crm-suite", "salesforce", result)
        assert names == ["hubspot_salesforce_crm-suite_sync", "slack_salesforce_crm-suite_sync"]


class TestCapabilityMatch:
    def test_monotonic_in_supported_capabilities(self):
        app = AppDefinition(key="a", required_capabilities=["x", "y", "z"])
        supported: list[str] = []
        previous = -1.0
        for cap in ["q", "x", "y", "y", "z"]:
            supported.append(cap)
            score = score_capability_match(
                app, ExternalSystem(slug="s", supported_capabilities=list(supported))
            ).score
            assert score >= previous
            previous = score
        assert previous == 100.0

    def test_case_insensitive_and_integration_mapped(self):
        app = AppDefinition(key="a", required_capabilities=["Invoicing", "payroll"])
        system = ExternalSystem(
            slug="s",
            supported_capabilities=["INVOICING"],
            integrations=[SystemIntegration(name="HR", provider="hr", capabilities=["Payroll"])],
        )
        result = score_capability_match(app, system)
        assert result.score == 100.0
        assert [d["via"] for d in result.details] == ["native", "integration"]

    def test_empty_requirements_score_full(self):
        result = score_capability_match(
            AppDefinition(key="a", required_capabilities=[]), ExternalSystem(slug="s")
        )
        assert result.score == 100.0

    def test_unavailable_requirements_score_zero(self):
        result = score_capability_match(AppDefinition(key="a"), ExternalSystem(slug="s"))
        assert result.score == 0.0
        assert result.explain

    def test_each_gap_explained(self):
        app = AppDefinition(key="a", required_capabilities=["x", "y"])
        result = score_capability_match(app, ExternalSystem(slug="s", supported_capabilities=[]))
        assert result.explain == ["Missing capability: x", "Missing capability: y"]

    def test_case_variant_duplicates_count_once(self):
        app = AppDefinition(key="a", required_capabilities=["CRM", "crm", "Billing"])
        result = score_capability_match(
            app, ExternalSystem(slug="s", supported_capabilities=["crm"])
        )
        assert result.score == 50.0
        assert [d["capability"] for d in result.details] == ["CRM", "Billing"]

    def test_monotonic_total_through_scorer(self):
        system = ExternalSystem(slug="s", name="S", supported_capabilities=["contacts"])
        store = _store(system)
        scorer = CompatibilityScorer(store, ScoringConfigStore(Settings()))
        before = scorer.score("crm-suite", "s")
        store.upsert_system(system.model_copy(
            update={"supported_capabilities": ["contacts", "pipeline"]}
        ))
        after = scorer.score("crm-suite", "s")
        assert after.breakdown.capability_match.score > before.breakdown.capability_match.score
        assert after.total_score >= before.total_score
        assert after.data_version != before.data_version


class TestCompliance:
    def test_gap_caps_score(self):
        config = ScoringConfig()
        app = AppDefinition(key="a", compliance_tags=["GDPR", "SOC2", "ISO27001"])
        result = score_compliance(
            app, ExternalSystem(slug="s", compliances=["gdpr", "soc2"]), config
        )
        assert result.score == 49.0
        assert result.explain == ["Missing compliance: ISO27001"]

    def test_full_match(self):
        app = AppDefinition(key="a", compliance_tags=["GDPR"])
        result = score_compliance(app, ExternalSystem(slug="s", compliances=["GDPR"]), ScoringConfig())
        assert result.score == 100.0

    def test_case_variant_tags_count_once(self):
        app = AppDefinition(key="a", compliance_tags=["GDPR", "gdpr", "SOC2"])
        result = score_compliance(app, ExternalSystem(slug="s", compliances=["gdpr"]), ScoringConfig())
        assert len(result.details) == 2
        assert result.explain == ["Missing compliance: SOC2"]
        assert result.score == 49.0


class TestIntegrationReadiness:
    def test_tenant_workflow_and_secret_raise_readiness(self):
        system = ExternalSystem(
            slug="s", name="S",
            integrations=[SystemIntegration(name="SF API", type="api", provider="salesforce")],
        )
        store = _store(system)
        scorer = CompatibilityScorer(store, ScoringConfigStore(Settings()))
        base = scorer.score("crm-suite", "s", tenant_id="t1").breakdown.integration_readiness
        assert base.score == pytest.approx(100 * 0.5 / 1.6, abs=0.06)

        store.add_tenant_integration(TenantIntegration(tenant_id="t1", provider="salesforce"))
        store.add_tenant_integration(
            TenantIntegration(tenant_id="t1", provider="Salesforce", kind="secret")
        )
        full = scorer.score("crm-suite", "s", tenant_id="t1").breakdown.integration_readiness
        assert full.score == 100.0

    def test_no_providers_required(self):
        app = AppDefinition(key="crm-suite", integration_requirements={})
        scorer = CompatibilityScorer(_store(ExternalSystem(slug="s"), app=app))
        assert scorer.score("crm-suite", "s").breakdown.integration_readiness.score == 100.0


class TestMatrix:
    def test_sorted_descending(self):
        rows = _seeded().matrix("crm-suite", tenant_id="acme")
        scores = [r.total_score for r in rows]
        assert scores == sorted(scores, reverse=True)
        assert len(rows) == 5

    def test_min_score_filter(self):
        rows = _seeded().matrix("crm-suite", tenant_id="acme", min_score=50)
        assert rows
        assert all(r.total_score >= 50 for r in rows)
        assert "legacy-crm" not in [r.system_slug for r in rows]

    def test_unknown_app(self):
        with pytest.raises(NotFoundError):
            _seeded().matrix("nope")


class TestCacheAndConfig:
    def test_cache_hit_on_unchanged_data(self):
        engine = _seeded()
        first = engine.score("crm-suite", "odoo", tenant_id="acme")
        second = engine.score("crm-suite", "odoo", tenant_id="acme")
        assert engine.scorer.cache_hits == 1
        assert first.data_version == second.data_version

    def test_tenant_change_produces_new_version(self):
        engine = _seeded()
        before = engine.score("crm-suite", "hubspot", tenant_id="acme")
        engine.store.add_tenant_integration(TenantIntegration(tenant_id="acme", provider="hubspot"))
        after = engine.score("crm-suite", "hubspot", tenant_id="acme")
        assert after.data_version != before.data_version
        assert after.breakdown.integration_readiness.score > before.breakdown.integration_readiness.score

    def test_weights_must_sum_to_one(self):
        with pytest.raises(PydanticValidationError):
            ScoringWeights(capability_match=0.5)
        with pytest.raises(PydanticValidationError):
            ScoringWeights(
                capability_match=1.2, integration_readiness=-0.2,
                compliance=0.0, ecosystem_maturity=0.0,
            )

    def test_weights_from_environment(self, monkeypatch):
        monkeypatch.setenv("CE_WEIGHT_CAPABILITY_MATCH", "1.0")
        monkeypatch.setenv("CE_WEIGHT_INTEGRATION_READINESS", "0")
        monkeypatch.setenv("CE_WEIGHT_COMPLIANCE", "0")
        monkeypatch.setenv("CE_WEIGHT_ECOSYSTEM_MATURITY", "0")
        engine = _seeded()
        engine.scoring_config = ScoringConfigStore(Settings())
        engine.scorer.config_store = engine.scoring_config
        result = engine.score("crm-suite", "legacy-crm")
        assert result.total_score == result.breakdown.capability_match.score

    def test_invalid_weights_in_environment(self, monkeypatch):
        monkeypatch.setenv("CE_WEIGHT_CAPABILITY_MATCH", "0.9")
        with pytest.raises(ValidationError):
            ScoringConfigStore(Settings()).get_config()

    def test_update_config_rejects_bad_weights(self):
        store = ScoringConfigStore(Settings())
        with pytest.raises(ValidationError):
            store.update_config({"weights": {"capability_match": 0.9}})

    def test_update_config_changes_scores(self):
        engine = _seeded()
        before = engine.score("crm-suite", "odoo")
        engine.scoring_config.update_config({
            "weights": {
                "capability_match": 0.25, "integration_readiness": 0.25,
                "compliance": 0.25, "ecosystem_maturity": 0.25,
            }
        })
        after = engine.score("crm-suite", "odoo")
        assert after.breakdown.compliance.weight == 0.25
        assert after.data_version != before.data_version
