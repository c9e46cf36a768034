"""
Capability Composition & Trust Engine — Main Entry Point

Seed the demo catalog and log a compatibility matrix (CLI):
    python -m composition_engine.main [app_key] [tenant_id]

Run as an API server:
    python -m composition_engine.main --serve
    # or: uvicorn composition_engine.api:app --reload --port 8000

Or import and run programmatically:
    from composition_engine.main import run
    rows = run("crm-suite", "acme")
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone

from composition_engine.config import get_settings
from composition_engine.core.catalog_loader import seed_catalog
from composition_engine.core.engine_service import CompositionEngine
from composition_engine.models.schemas import SystemScore
from composition_engine.utils.logger import setup_logging


def run(app_key: str = "crm-suite", tenant_id: str = "acme") -> list[SystemScore]:
    """Seed a fresh engine, score every system for ``app_key`` and log the matrix."""
    setup_logging(get_settings().log_level)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("  CAPABILITY COMPOSITION & TRUST ENGINE")
    logger.info(f"  Mode: {'MOCK' if get_settings().mock_mode else 'LIVE'} | "
                f"Started: {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 60)

    engine = CompositionEngine()
    seed_catalog(engine)
    rows = engine.matrix(app_key, tenant_id=tenant_id)

    _print_matrix(engine, app_key, tenant_id, rows)
    return rows


def _print_matrix(
    engine: CompositionEngine, app_key: str, tenant_id: str, rows: list[SystemScore]
) -> None:
    """Log a human-readable compatibility matrix."""
    logger = logging.getLogger(__name__)

    logger.info("")
    logger.info("-" * 60)
    logger.info(f"  COMPATIBILITY MATRIX: {app_key} (tenant {tenant_id})")
    logger.info("-" * 60)
    for row in rows:
        b = row.breakdown
        logger.info(
            f"  {row.total_score:5.1f}  {row.system_name:<28} "
            f"cap={b.capability_match.score:5.1f} int={b.integration_readiness.score:5.1f} "
            f"comp={b.compliance.score:5.1f} eco={b.ecosystem_maturity.score:5.1f}"
        )
        if row.badges:
            logger.info(f"         {', '.join(row.badges)}")
    logger.info("-" * 60)

    if rows:
        best = engine.score(app_key, rows[0].system_slug, tenant_id=tenant_id)
        logger.info(f"\n  Best fit: {rows[0].system_name}")
        for line in best.explain:
            logger.info(f"    • {line}")
        for line in best.recommendations:
            logger.info(f"    → {line}")
    logger.info("")


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Start the FastAPI server."""
    import uvicorn

    setup_logging(get_settings().log_level)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run("composition_engine.api:app", host=host, port=port, reload=get_settings().debug)


if __name__ == "__main__":
    if "--serve" in sys.argv:
        serve()
    else:
        run(*sys.argv[1:3])
