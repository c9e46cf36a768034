"""
API routes — thin HTTP layer that delegates to the CompositionEngine.

Routes:
  GET  /health                                 → API health check
  GET  /api/capabilities                       → List capabilities (filters as query params)
  POST /api/capabilities                       → Register a capability
  GET  /api/bundles                            → List bundles
  POST /api/bundles                            → Create a bundle
  POST /api/installations/{tenant}/{app}       → Install capabilities and/or a bundle
  GET  /api/compat/{app_key}/matrix            → Compatibility matrix, best first
  GET  /api/compat/{app_key}/{slug}            → One explained compatibility score
  GET  /api/policies/{tenant}                  → Policy versions, newest first
  POST /api/policies/{tenant}                  → Upsert a draft policy version
  POST /api/policies/{tenant}/{id}/activate    → Activate one version
  POST /api/policies/{tenant}/{id}/deactivate  → Fall back to the DEFAULT layer
  POST /api/authorize                          → Evaluate a tool/resource call
  GET  /api/apps/{tenant}/{app}                → Render descriptor for an installed app

Engine errors are mapped to status codes by the handlers in ``api/__init__``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from composition_engine.config import get_settings
from composition_engine.core.engine_service import CompositionEngine
from composition_engine.models.enums import CapabilityScope
from composition_engine.models.schemas import (
    AppInstallation,
    AuthorizationDecision,
    AuthorizationRequest,
    Bundle,
    Capability,
    CapabilityFilter,
    CompatibilityScore,
    PolicyRow,
    RenderDescriptor,
    SystemScore,
)

logger = logging.getLogger(__name__)

# ── Routers ──────────────────────────────────────────────
health_router = APIRouter()
catalog_router = APIRouter()
compat_router = APIRouter()
policy_router = APIRouter()
runtime_router = APIRouter()


@lru_cache()
def get_engine() -> CompositionEngine:
    """Process-wide engine seeded with the demo catalog."""
    from composition_engine.core.catalog_loader import seed_catalog

    engine = CompositionEngine()
    seed_catalog(engine)
    return engine


# ── Request schemas ──────────────────────────────────────

class InstallRequest(BaseModel):
    capabilities: list[str] = []
    bundle: Optional[str] = None
    config: dict[str, dict[str, Any]] = {}


class PolicyUpsertRequest(BaseModel):
    policy_json: Any  # JSON text, a list of rules, or {"rules": [...]}
    version: str
    created_by: Optional[str] = None


# ── Health ───────────────────────────────────────────────

@health_router.get("/health")
async def health_check():
    settings = get_settings()
    return {
        "status": "ok",
        "app": settings.app_name,
        "mock_mode": settings.mock_mode,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Capabilities & Bundles ───────────────────────────────

@catalog_router.get("/capabilities", response_model=list[Capability])
async def list_capabilities(
    category: Optional[str] = None,
    scope: Optional[CapabilityScope] = None,
    owner_app_key: Optional[str] = None,
    tags: list[str] = Query(default=[]),
    q: str = "",
    include_inactive: bool = False,
    engine: CompositionEngine = Depends(get_engine),
):
    filters = CapabilityFilter(
        category=category,
        scope=scope,
        owner_app_key=owner_app_key,
        tags=tags,
        query=q,
        include_inactive=include_inactive,
    )
    return engine.registry.list_active(filters)


@catalog_router.post("/capabilities", response_model=Capability, status_code=201)
async def register_capability(
    body: dict[str, Any], engine: CompositionEngine = Depends(get_engine)
):
    capability = engine.registry.register(body)
    logger.info(f"Registered capability {capability.key} via API")
    return capability


@catalog_router.get("/bundles", response_model=list[Bundle])
async def list_bundles(
    active_only: bool = True, engine: CompositionEngine = Depends(get_engine)
):
    return engine.bundles.list_bundles(active_only=active_only)


@catalog_router.post("/bundles", response_model=Bundle, status_code=201)
async def create_bundle(body: dict[str, Any], engine: CompositionEngine = Depends(get_engine)):
    return engine.bundles.create_bundle(body)


@catalog_router.post("/installations/{tenant_id}/{app_id}", response_model=AppInstallation)
async def install(
    tenant_id: str,
    app_id: str,
    body: InstallRequest,
    engine: CompositionEngine = Depends(get_engine),
):
    keys = list(body.capabilities)
    config: dict[str, dict[str, Any]] = {}
    if body.bundle:
        bundle_keys, config = engine.bundles.expand_bundle(body.bundle)
        keys = bundle_keys + keys
    for key, payload in body.config.items():
        config[key] = {**config.get(key, {}), **payload}
    # Bundle members and explicit keys land in one closure-checked commit
    return engine.install_capabilities(tenant_id, app_id, keys, config)


# ── Compatibility ────────────────────────────────────────

@compat_router.get("/{app_key}/matrix", response_model=list[SystemScore])
async def compatibility_matrix(
    app_key: str,
    tenant_id: Optional[str] = None,
    min_score: Optional[float] = None,
    engine: CompositionEngine = Depends(get_engine),
):
    return engine.matrix(app_key, tenant_id=tenant_id, min_score=min_score)


@compat_router.get("/{app_key}/{system_slug}", response_model=CompatibilityScore)
async def compatibility_score(
    app_key: str,
    system_slug: str,
    tenant_id: Optional[str] = None,
    engine: CompositionEngine = Depends(get_engine),
):
    return engine.score(app_key, system_slug, tenant_id=tenant_id)


# ── Policies ─────────────────────────────────────────────

@policy_router.get("/policies/{tenant_id}", response_model=list[PolicyRow])
async def list_policies(tenant_id: str, engine: CompositionEngine = Depends(get_engine)):
    return engine.policy.list_policies(tenant_id)


@policy_router.post("/policies/{tenant_id}", response_model=PolicyRow, status_code=201)
async def upsert_policy(
    tenant_id: str,
    body: PolicyUpsertRequest,
    engine: CompositionEngine = Depends(get_engine),
):
    return engine.policy.upsert_policy(
        tenant_id, body.policy_json, body.version, created_by=body.created_by
    )


@policy_router.post("/policies/{tenant_id}/{policy_id}/activate", response_model=PolicyRow)
async def activate_policy(
    tenant_id: str, policy_id: str, engine: CompositionEngine = Depends(get_engine)
):
    return engine.policy.activate_policy(policy_id, tenant_id)


@policy_router.post("/policies/{tenant_id}/{policy_id}/deactivate", response_model=PolicyRow)
async def deactivate_policy(
    tenant_id: str, policy_id: str, engine: CompositionEngine = Depends(get_engine)
):
    return engine.policy.deactivate_policy(policy_id, tenant_id)


@policy_router.post("/authorize", response_model=AuthorizationDecision)
async def authorize(
    body: AuthorizationRequest, engine: CompositionEngine = Depends(get_engine)
):
    return engine.authorize(
        body.tenant_id,
        tool=body.tool,
        resource=body.resource,
        action=body.action,
        roles=body.roles,
        context=body.context,
    )


# ── Runtime ──────────────────────────────────────────────

@runtime_router.get("/apps/{tenant_id}/{app_id}", response_model=RenderDescriptor)
async def load_app(
    tenant_id: str, app_id: str, engine: CompositionEngine = Depends(get_engine)
):
    return engine.load_app(tenant_id, app_id)
