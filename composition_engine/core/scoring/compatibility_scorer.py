"""
Compatibility Scorer — weighted, explainable fit score between one platform
app and one external system.

Four sub-scores, each 0-100 and each explainable:
  • capability_match       required capabilities the system supports
  • integration_readiness  workflow / API surface / credential per provider
  • compliance             required compliance tags the system certifies
  • ecosystem_maturity     catalog-normalized integration, deployment and
                           localization breadth, never below a floor

Missing source data never raises; it degrades the affected sub-score and adds
an explanation so the matrix always renders.  Unknown app or system keys are
lookup errors and raise NotFoundError.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any

from composition_engine.config import get_settings
from composition_engine.core.scoring.scoring_config import ScoringConfig, ScoringConfigStore
from composition_engine.errors import NotFoundError
from composition_engine.models.enums import IntegrationType, TenantIntegrationKind
from composition_engine.models.schemas import (
    AppDefinition,
    CompatibilityScore,
    DimensionScore,
    ExternalSystem,
    ScoreBreakdown,
    SystemScore,
    TenantIntegration,
)
from composition_engine.persistence.entity_store import EntityStore
from composition_engine.utils.hashing import fingerprint

logger = logging.getLogger(__name__)

_SURFACE_TYPES = {IntegrationType.API, IntegrationType.WEBHOOK, IntegrationType.MCP}


def _norm(value: str) -> str:
    return value.strip().lower()


def _unique_norm(values: list[str]) -> list[str]:
    """First spelling of each value, compared case-insensitively."""
    unique: dict[str, str] = {}
    for value in values:
        unique.setdefault(_norm(value), value)
    return list(unique.values())


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


# ── Sub-scores ───────────────────────────────────────────


def score_capability_match(app: AppDefinition, system: ExternalSystem) -> DimensionScore:
    """100 * |required ∩ supported| / |required|, one explanation per gap."""
    if app.required_capabilities is None:
        return DimensionScore(
            score=0.0,
            explain=[f"Required capabilities for app '{app.key}' are unavailable"],
        )

    explain: list[str] = []
    native = {_norm(c) for c in system.supported_capabilities or []}
    mapped = {
        _norm(c)
        for integration in system.integrations or []
        for c in integration.capabilities
    }
    if system.supported_capabilities is None and system.integrations is None:
        explain.append(f"System '{system.slug}' declares no capability data")

    required = _unique_norm(app.required_capabilities)
    details: list[dict[str, Any]] = []
    for cap in required:
        key = _norm(cap)
        via = "native" if key in native else "integration" if key in mapped else None
        details.append({"capability": cap, "available": via is not None, "via": via})
        if via is None:
            explain.append(f"Missing capability: {cap}")

    if not required:
        return DimensionScore(
            score=100.0,
            explain=["App declares no required capabilities"],
        )

    matched = sum(1 for d in details if d["available"])
    return DimensionScore(
        score=round(100.0 * matched / len(required), 1),
        details=details,
        explain=explain,
    )


def score_integration_readiness(
    app: AppDefinition,
    system: ExternalSystem,
    tenant_rows: list[TenantIntegration],
    config: ScoringConfig,
) -> tuple[DimensionScore, list[str]]:
    """Workflow, API/webhook/MCP surface and active credential per required provider."""
    if app.integration_requirements is None:
        return (
            DimensionScore(
                score=0.0,
                explain=[f"Integration requirements for app '{app.key}' are unavailable"],
            ),
            [],
        )

    explain: list[str] = []
    recommendations: list[str] = []
    if system.integrations is None:
        explain.append(f"Integration data for system '{system.slug}' is unavailable")

    integrations = system.integrations or []
    workflows = {_norm(r.provider) for r in tenant_rows if r.kind == TenantIntegrationKind.WORKFLOW}
    secrets = {_norm(r.provider) for r in tenant_rows if r.kind == TenantIntegrationKind.SECRET}

    per_provider_max = (
        config.workflow_channel_score + config.api_channel_score + config.secret_channel_score
    )
    details: list[dict[str, Any]] = []
    seen: set[str] = set()
    ratios: list[float] = []

    for req_type, providers in app.integration_requirements.items():
        for provider in providers:
            key = _norm(provider)
            if key in seen:
                continue
            seen.add(key)

            def _provides(i) -> bool:
                return key == _norm(i.provider) or key in _norm(i.name)

            has_workflow = key in workflows or (
                system.supports_workflow_automation
                and any(i.type == IntegrationType.WORKFLOW and _provides(i) for i in integrations)
            )
            has_surface = any(i.type in _SURFACE_TYPES and _provides(i) for i in integrations)
            has_secret = key in secrets

            value = (
                (config.workflow_channel_score if has_workflow else 0.0)
                + (config.api_channel_score if has_surface else 0.0)
                + (config.secret_channel_score if has_secret else 0.0)
            )
            ratio = value / per_provider_max if per_provider_max else 0.0
            ratios.append(ratio)
            details.append({
                "requirement": req_type,
                "provider": provider,
                "has_workflow": has_workflow,
                "has_api_surface": has_surface,
                "has_active_secret": has_secret,
                "score": round(ratio, 3),
            })

            if not has_workflow:
                recommendations.append(f"Create workflow mapping for {provider}")
            if not has_surface:
                recommendations.append(f"Add MCP reference for {provider}")
            if not has_secret:
                recommendations.append(f"Add an API credential for {provider}")

    if not details:
        return (
            DimensionScore(score=100.0, explain=explain + ["App declares no integration requirements"]),
            recommendations,
        )

    missing_workflows = [d["provider"] for d in details if not d["has_workflow"]]
    if missing_workflows:
        explain.append(f"Missing workflows for: {', '.join(missing_workflows)}")
    missing_secrets = [d["provider"] for d in details if not d["has_active_secret"]]
    if missing_secrets:
        explain.append(f"No active credentials for: {', '.join(missing_secrets)}")

    total = sum(ratios)
    return (
        DimensionScore(
            score=round(_clamp(100.0 * total / len(details)), 1),
            details=details,
            explain=explain,
        ),
        recommendations,
    )


def score_compliance(
    app: AppDefinition, system: ExternalSystem, config: ScoringConfig
) -> DimensionScore:
    """Overlap of required tags and system certifications; any gap caps the score."""
    if app.compliance_tags is None:
        return DimensionScore(
            score=0.0,
            explain=[f"Compliance requirements for app '{app.key}' are unavailable"],
        )

    explain: list[str] = []
    if system.compliances is None:
        explain.append(f"Compliance certifications for system '{system.slug}' are unavailable")
    held = {_norm(c) for c in system.compliances or []}

    required = _unique_norm(app.compliance_tags)
    if not required:
        return DimensionScore(score=100.0, explain=["App declares no compliance requirements"])

    details = [{"requirement": tag, "satisfied": _norm(tag) in held} for tag in required]
    missing = [d["requirement"] for d in details if not d["satisfied"]]
    score = 100.0 * (len(required) - len(missing)) / len(required)
    for tag in missing:
        explain.append(f"Missing compliance: {tag}")
    if missing:
        score = min(score, config.compliance_gap_cap)

    return DimensionScore(score=round(_clamp(score), 1), details=details, explain=explain)


def _ecosystem_metrics(system: ExternalSystem) -> dict[str, int | None]:
    return {
        "integration_count": None if system.integrations is None else len(system.integrations),
        "deployment_model_count": (
            None if system.deployment_models is None else len(system.deployment_models)
        ),
        "localization_count": (
            None if system.localizations is None else len(system.localizations)
        ),
    }


def catalog_ranges(systems: list[ExternalSystem]) -> dict[str, tuple[int, int]]:
    """Catalog-wide (min, max) of each ecosystem metric, ignoring unknown values."""
    ranges: dict[str, tuple[int, int]] = {}
    for system in systems:
        for name, value in _ecosystem_metrics(system).items():
            if value is None:
                continue
            low, high = ranges.get(name, (value, value))
            ranges[name] = (min(low, value), max(high, value))
    return ranges


def score_ecosystem_maturity(
    system: ExternalSystem,
    ranges: dict[str, tuple[int, int]],
    config: ScoringConfig,
) -> DimensionScore:
    """Mean of catalog-normalized metrics, never below the configured floor."""
    explain: list[str] = []
    metrics = _ecosystem_metrics(system)
    normalized: list[float] = []
    details: list[dict[str, Any]] = []

    for name, value in metrics.items():
        if value is None:
            explain.append(f"{name.replace('_', ' ').capitalize()} unavailable for '{system.slug}'")
            normalized.append(0.0)
            details.append({"metric": name, "value": None, "normalized": 0.0})
            continue
        low, high = ranges.get(name, (value, value))
        if high == low:
            norm = 1.0 if value > 0 else 0.0
        else:
            norm = (value - low) / (high - low)
        normalized.append(norm)
        details.append({"metric": name, "value": value, "normalized": round(norm, 3)})

    raw = 100.0 * sum(normalized) / len(normalized)
    if raw < config.ecosystem_floor:
        explain.append(
            f"Limited ecosystem data for '{system.slug}'; floor of {config.ecosystem_floor:g} applied"
        )
    return DimensionScore(
        score=round(_clamp(max(raw, config.ecosystem_floor)), 1),
        details=details,
        explain=explain,
    )


def derive_badges(
    total: float,
    breakdown: ScoreBreakdown,
    config: ScoringConfig,
) -> list[str]:
    badges: list[str] = []
    thresholds = config.badges
    if total >= thresholds.excellent:
        badges.append("Excellent fit")
    elif total >= thresholds.good:
        badges.append("Good fit")
    elif total < thresholds.weak:
        badges.append("Weak fit")

    if breakdown.capability_match.score < thresholds.capability:
        badges.append("Limited capabilities")
    if breakdown.compliance.score < thresholds.compliance:
        badges.append("Compliance gap")

    readiness = breakdown.integration_readiness.details
    if any(not d.get("has_workflow") for d in readiness):
        badges.append("Missing workflows")
    if any(not d.get("has_active_secret") for d in readiness):
        badges.append("No active secrets")
    return badges


# ── Scorer ───────────────────────────────────────────────


class CompatibilityScorer:
    """
    Computes CompatibilityScore records from entity-store snapshots.
    Results are cached by (app_key, system_slug, tenant_id, data_version);
    the data version hashes every contributing record, so any change
    produces a new key.
    """

    def __init__(
        self,
        store: EntityStore,
        config_store: ScoringConfigStore | None = None,
        cache_size: int | None = None,
    ):
        self.store = store
        self.config_store = config_store or ScoringConfigStore()
        self._cache_size = cache_size if cache_size is not None else get_settings().scoring_cache_size
        self._cache: OrderedDict[tuple[str, str, str, str], CompatibilityScore] = OrderedDict()
        self._lock = threading.Lock()
        self.cache_hits = 0

    # ── Public API ───────────────────────────────────────

    def score(
        self, app_key: str, system_slug: str, tenant_id: str | None = None
    ) -> CompatibilityScore:
        app = self.store.get_app(app_key)
        if app is None:
            raise NotFoundError("App", app_key)
        system = self.store.get_system(system_slug)
        if system is None:
            raise NotFoundError("External system", system_slug)
        return self._score(app, system, tenant_id, self.store.list_systems())

    def matrix(
        self,
        app_key: str,
        tenant_id: str | None = None,
        min_score: float | None = None,
    ) -> list[SystemScore]:
        """Score every catalog system for one app, best first."""
        app = self.store.get_app(app_key)
        if app is None:
            raise NotFoundError("App", app_key)

        systems = self.store.list_systems()
        rows: list[SystemScore] = []
        for system in systems:
            result = self._score(app, system, tenant_id, systems)
            if min_score is not None and result.total_score < min_score:
                continue
            rows.append(SystemScore(
                system_slug=system.slug,
                system_name=system.name or system.slug,
                total_score=result.total_score,
                badges=result.badges,
                breakdown=result.breakdown,
            ))

        logger.debug(f"Matrix for {app_key}: {len(rows)}/{len(systems)} systems")
        return sorted(rows, key=lambda r: (-r.total_score, r.system_name.lower()))

    def recommend_workflows(
        self, app_key: str, system_slug: str, score: CompatibilityScore
    ) -> list[str]:
        """Workflow names to create for providers that have no workflow yet."""
        return [
            f"{d['provider']}_{system_slug}_{app_key}_sync"
            for d in score.breakdown.integration_readiness.details
            if not d.get("has_workflow")
        ]

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    # ── Internals ────────────────────────────────────────

    def _data_version(
        self,
        app: AppDefinition,
        system: ExternalSystem,
        tenant_rows: list[TenantIntegration],
        ranges: dict[str, tuple[int, int]],
        config: ScoringConfig,
    ) -> str:
        return fingerprint({
            "app": app.model_dump(mode="json"),
            "system": system.model_dump(mode="json"),
            "tenant": sorted(
                [r.kind.value, _norm(r.provider), r.is_active] for r in tenant_rows
            ),
            "ranges": {k: list(v) for k, v in ranges.items()},
            "config": config.model_dump(mode="json"),
        })

    def _score(
        self,
        app: AppDefinition,
        system: ExternalSystem,
        tenant_id: str | None,
        catalog: list[ExternalSystem],
    ) -> CompatibilityScore:
        config = self.config_store.get_config()
        tenant_rows = self.store.tenant_integrations(tenant_id) if tenant_id else []
        ranges = catalog_ranges(catalog)
        data_version = self._data_version(app, system, tenant_rows, ranges, config)
        cache_key = (app.key, system.slug, tenant_id or "", data_version)

        with self._lock:
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._cache.move_to_end(cache_key)
                self.cache_hits += 1
                return cached.model_copy(deep=True)

        result = self._compute(app, system, tenant_id, tenant_rows, ranges, config)
        result.data_version = data_version

        with self._lock:
            self._cache[cache_key] = result.model_copy(deep=True)
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
        return result

    def _compute(
        self,
        app: AppDefinition,
        system: ExternalSystem,
        tenant_id: str | None,
        tenant_rows: list[TenantIntegration],
        ranges: dict[str, tuple[int, int]],
        config: ScoringConfig,
    ) -> CompatibilityScore:
        weights = config.weights.as_dict()

        capability = score_capability_match(app, system)
        readiness, recommendations = score_integration_readiness(app, system, tenant_rows, config)
        compliance = score_compliance(app, system, config)
        ecosystem = score_ecosystem_maturity(system, ranges, config)

        breakdown = ScoreBreakdown(
            capability_match=capability,
            integration_readiness=readiness,
            compliance=compliance,
            ecosystem_maturity=ecosystem,
        )
        for name, dimension in breakdown:
            dimension.weight = weights[name]

        total = round(_clamp(sum(dim.score * dim.weight for _, dim in breakdown)), 1)

        explain: list[str] = []
        if capability.score == 100.0 and app.required_capabilities:
            explain.append("All required capabilities are supported")
        for _, dimension in breakdown:
            explain.extend(dimension.explain)

        result = CompatibilityScore(
            app_key=app.key,
            system_slug=system.slug,
            tenant_id=tenant_id,
            total_score=total,
            breakdown=breakdown,
            explain=explain,
            recommendations=list(dict.fromkeys(recommendations)),
            badges=derive_badges(total, breakdown, config),
        )
        logger.debug(
            f"Scored {app.key} × {system.slug}: {total} "
            f"(cap={capability.score}, int={readiness.score}, "
            f"comp={compliance.score}, eco={ecosystem.score})"
        )
        return result
