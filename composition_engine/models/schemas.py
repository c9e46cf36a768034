"""
Reusable data schemas shared by the registry, scorer, policy engine and runtime.
Each schema represents a clearly-bounded record supplied by the entity store
or produced by one engine component.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, model_validator

from .enums import (
    CapabilityScope,
    CapabilityVisibility,
    IntegrationType,
    PolicyEffect,
    PolicyLayer,
    PolicyStatus,
    Slot,
    TenantIntegrationKind,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Capability Registry ──────────────────────────────────


class Capability(BaseModel):
    """A named, versioned, optionally-dependent unit of platform functionality."""
    key: str
    name: str = ""
    description: str = ""
    scope: CapabilityScope = CapabilityScope.PLATFORM
    owner_app_key: Optional[str] = None  # only for app-specific capabilities
    category: str = "Business Logic"
    visibility: CapabilityVisibility = CapabilityVisibility.PUBLIC
    dependencies: list[str] = []
    current_version: str = "1.0.0"
    is_active: bool = True
    is_core: bool = False  # always included in every installation
    tags: list[str] = []
    icon_name: Optional[str] = None
    component: Optional[str] = None  # UI component key; defaults to the capability key
    price_per_month: Optional[float] = None
    config_schema: dict[str, Any] = {}
    created_at: datetime = Field(default_factory=_utcnow)


class CapabilityVersion(BaseModel):
    """Immutable snapshot appended on every version bump."""
    capability_key: str
    version: str
    changelog: str = ""
    breaking_changes: bool = False
    released_at: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}


class CapabilityFilter(BaseModel):
    category: Optional[str] = None
    scope: Optional[CapabilityScope] = None
    owner_app_key: Optional[str] = None
    tags: list[str] = []
    query: str = ""
    visibility: Optional[CapabilityVisibility] = None
    include_inactive: bool = False


# ── Bundles & Installations ──────────────────────────────


class BundleInput(BaseModel):
    key: str
    name: str
    description: str = ""
    capabilities: list[str] = []
    price_per_month: Optional[float] = None
    target_industries: list[str] = []
    suggested_config: dict[str, dict[str, Any]] = {}
    icon_name: Optional[str] = None


class Bundle(BundleInput):
    """A curated, priced group of capability keys sold as one unit."""
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)


class AppInstallation(BaseModel):
    """Which capabilities (and configuration) a tenant activated for one app."""
    tenant_id: str
    app_id: str
    selected: set[str] = set()
    installed: set[str] = set()  # always the closure of `selected` + core keys
    config: dict[str, dict[str, Any]] = {}
    revision: int = 0
    updated_at: datetime = Field(default_factory=_utcnow)


# ── Apps, External Systems, Tenant Integrations ──────────


class AppDefinition(BaseModel):
    """A platform application.  None on a requirement field means 'unknown'."""
    key: str
    name: str = ""
    description: str = ""
    required_capabilities: Optional[list[str]] = None
    integration_requirements: Optional[dict[str, list[str]]] = None
    compliance_tags: Optional[list[str]] = None
    default_config: dict[str, Any] = {}


class SystemIntegration(BaseModel):
    name: str
    type: IntegrationType = IntegrationType.API
    provider: str = ""
    capabilities: list[str] = []  # capabilities this integration maps into


class ExternalSystem(BaseModel):
    """An external ERP/CRM system that may be connected to a platform app."""
    slug: str
    name: str = ""
    vendor: str = ""
    supported_capabilities: Optional[list[str]] = None
    integrations: Optional[list[SystemIntegration]] = None
    compliances: Optional[list[str]] = None
    deployment_models: Optional[list[str]] = None
    localizations: Optional[list[str]] = None
    supports_workflow_automation: bool = False


class TenantIntegration(BaseModel):
    """A tenant-owned workflow or API credential for a provider."""
    tenant_id: str
    provider: str
    kind: TenantIntegrationKind = TenantIntegrationKind.WORKFLOW
    name: str = ""
    is_active: bool = True


# ── Compatibility Scoring ────────────────────────────────


class ScoringWeights(BaseModel):
    capability_match: float = 0.4
    integration_readiness: float = 0.3
    compliance: float = 0.2
    ecosystem_maturity: float = 0.1

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "ScoringWeights":
        values = self.as_dict().values()
        if any(w < 0 for w in values):
            raise ValueError("scoring weights must be non-negative")
        total = sum(values)
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"scoring weights must sum to 1.0 (got {total})")
        return self

    def as_dict(self) -> dict[str, float]:
        return {
            "capability_match": self.capability_match,
            "integration_readiness": self.integration_readiness,
            "compliance": self.compliance,
            "ecosystem_maturity": self.ecosystem_maturity,
        }


class DimensionScore(BaseModel):
    score: float = 0.0  # 0-100
    weight: float = 0.0
    details: list[dict[str, Any]] = []
    explain: list[str] = []


class ScoreBreakdown(BaseModel):
    capability_match: DimensionScore = Field(default_factory=DimensionScore)
    integration_readiness: DimensionScore = Field(default_factory=DimensionScore)
    compliance: DimensionScore = Field(default_factory=DimensionScore)
    ecosystem_maturity: DimensionScore = Field(default_factory=DimensionScore)


class CompatibilityScore(BaseModel):
    app_key: str
    system_slug: str
    tenant_id: Optional[str] = None
    total_score: float = 0.0  # 0-100
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    explain: list[str] = []
    recommendations: list[str] = []
    badges: list[str] = []
    data_version: str = ""
    computed_at: datetime = Field(default_factory=_utcnow)


class SystemScore(BaseModel):
    """One row of the compatibility matrix."""
    system_slug: str
    system_name: str
    total_score: float
    badges: list[str] = []
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)


# ── Policy ───────────────────────────────────────────────

Pattern = Union[str, list[str]]


class PolicyConditions(BaseModel):
    tenant_match: bool = Field(False, alias="tenantMatch")
    owner_only: bool = Field(False, alias="ownerOnly")

    model_config = {"extra": "forbid", "populate_by_name": True}


class PolicyRule(BaseModel):
    """One allow/deny rule over a tool or resource and an action."""
    tool: Optional[Pattern] = None
    resource: Optional[Pattern] = None
    action: Pattern
    effect: PolicyEffect
    role: Pattern = "*"
    conditions: Optional[PolicyConditions] = None
    description: str = ""

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _require_subject(self) -> "PolicyRule":
        if self.tool is None and self.resource is None:
            raise ValueError("a policy rule must name a tool or a resource")
        return self


class PolicyRow(BaseModel):
    """One append-only tenant policy version."""
    id: str
    tenant_id: str
    source: str = "tenant"
    rules: list[PolicyRule] = []
    version: str
    is_active: bool = False
    status: PolicyStatus = PolicyStatus.DRAFT
    created_at: datetime = Field(default_factory=_utcnow)
    created_by: Optional[str] = None
    activated_at: Optional[datetime] = None


class AuthorizationRequest(BaseModel):
    tenant_id: str
    tool: Optional[str] = None
    resource: Optional[str] = None
    action: str
    roles: list[str] = []
    context: dict[str, Any] = {}


class AuthorizationDecision(BaseModel):
    allow: bool
    tenant_id: str
    subject: str
    action: str
    matched_rule: Optional[PolicyRule] = None
    layer: Optional[PolicyLayer] = None
    reason: str = ""
    evaluated_at: datetime = Field(default_factory=_utcnow)


# ── Composition Runtime ──────────────────────────────────


class RenderEntry(BaseModel):
    capability_key: str
    name: str = ""
    component: str
    slot: Slot = Slot.MAIN
    order: int = 0
    config: dict[str, Any] = {}
    is_required: bool = False


class RenderDescriptor(BaseModel):
    """Render-ready app configuration handed to the presentation layer."""
    tenant_id: str
    app_id: str
    name: str = ""
    capabilities: list[RenderEntry] = []
    layout: dict[str, Any] = {}
    theme: dict[str, Any] = {}
    branding: dict[str, Any] = {}
    drift: list[str] = []  # keys re-added or dropped by re-resolution
