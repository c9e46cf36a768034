"""
FastAPI application factory and API package.

Run with:
    uvicorn composition_engine.api:app --reload --port 8000

Or via main.py:
    python -m composition_engine --serve
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from composition_engine.config import get_settings
from composition_engine.api.routes import (
    catalog_router,
    compat_router,
    health_router,
    policy_router,
    runtime_router,
)
from composition_engine.errors import (
    DependencyCycleError,
    DuplicateKeyError,
    EngineError,
    NotFoundError,
    NotInstalledError,
    PolicyDeniedError,
    UnknownCapabilityError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type[EngineError], int]] = [
    (NotFoundError, 404),
    (DuplicateKeyError, 409),
    (PolicyDeniedError, 403),
    (NotInstalledError, 403),
    (ValidationError, 422),
    (UnknownCapabilityError, 422),
    (DependencyCycleError, 422),
]


def status_for(exc: EngineError) -> int:
    for error_type, status in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status
    return 400


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status = status_for(exc)
    logger.info(f"{request.method} {request.url.path} → {status} {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "error": exc.to_dict()},
    )


def create_app() -> FastAPI:
    """Application factory — create and configure the FastAPI instance."""
    settings = get_settings()

    application = FastAPI(
        title="Capability Composition & Trust Engine API",
        description="Capability catalog, compatibility scoring and agent tool authorization",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS — allow the frontend (adjust origins in production)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(EngineError, engine_error_handler)

    application.include_router(health_router, tags=["Health"])
    application.include_router(catalog_router, prefix="/api", tags=["Catalog"])
    application.include_router(compat_router, prefix="/api/compat", tags=["Compatibility"])
    application.include_router(policy_router, prefix="/api", tags=["Policy"])
    application.include_router(runtime_router, prefix="/api", tags=["Runtime"])

    logger.info(f"Created {settings.app_name} API (debug={settings.debug})")
    return application


# Module-level instance for `uvicorn composition_engine.api:app`
app = create_app()
