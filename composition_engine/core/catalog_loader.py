"""
Catalog Loader — seeds an engine from the JSON files in ``catalog_data/``.

Usage:
    python -m composition_engine.core.catalog_loader          # seed + summary
    python -m composition_engine.core.catalog_loader --type systems

Capabilities are registered in file order; a dependency must appear before
the capability that references it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from composition_engine.core.engine_service import CompositionEngine
from composition_engine.models.schemas import AppDefinition, ExternalSystem, TenantIntegration
from composition_engine.utils.validation import parse_model

logger = logging.getLogger(__name__)

# Default path to seed data (relative to this file)
_DATA_DIR = Path(__file__).parent / "catalog_data"


def _load_json(filename: str, data_dir: Path | None = None) -> Any:
    """Read a JSON file from the catalog_data directory."""
    path = (data_dir or _DATA_DIR) / filename
    if not path.exists():
        raise FileNotFoundError(f"Seed file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def seed_capabilities(engine: CompositionEngine, data_dir: Path | None = None) -> int:
    caps = _load_json("capabilities.json", data_dir)
    for cap in caps:
        engine.registry.register(cap)
    logger.info(f"Registered {len(caps)} capabilities")
    return len(caps)


def seed_bundles(engine: CompositionEngine, data_dir: Path | None = None) -> int:
    bundles = _load_json("bundles.json", data_dir)
    for bundle in bundles:
        engine.bundles.create_bundle(bundle)
    logger.info(f"Created {len(bundles)} bundles")
    return len(bundles)


def seed_apps(engine: CompositionEngine, data_dir: Path | None = None) -> int:
    apps = _load_json("apps.json", data_dir)
    for app in apps:
        engine.store.upsert_app(parse_model(AppDefinition, app))
    logger.info(f"Stored {len(apps)} app definitions")
    return len(apps)


def seed_systems(engine: CompositionEngine, data_dir: Path | None = None) -> int:
    systems = _load_json("systems.json", data_dir)
    for system in systems:
        engine.store.upsert_system(parse_model(ExternalSystem, system))
    logger.info(f"Stored {len(systems)} external systems")
    return len(systems)


def seed_tenant_integrations(engine: CompositionEngine, data_dir: Path | None = None) -> int:
    rows = _load_json("tenant_integrations.json", data_dir)
    for row in rows:
        engine.store.add_tenant_integration(parse_model(TenantIntegration, row))
    logger.info(f"Stored {len(rows)} tenant integrations")
    return len(rows)


def seed_catalog(engine: CompositionEngine, data_dir: Path | None = None) -> dict[str, int]:
    """Run every seed step in dependency order.  Returns counts per file."""
    results = {
        "capabilities": seed_capabilities(engine, data_dir),
        "bundles": seed_bundles(engine, data_dir),
        "apps": seed_apps(engine, data_dir),
        "systems": seed_systems(engine, data_dir),
        "tenant_integrations": seed_tenant_integrations(engine, data_dir),
    }
    logger.info(f"Seed results: {results}")
    return results


# ── CLI entry point ──────────────────────────────────────

if __name__ == "__main__":
    import argparse

    from composition_engine.utils.logger import setup_logging

    setup_logging("INFO")

    parser = argparse.ArgumentParser(description="Seed the demo capability catalog")
    parser.add_argument(
        "--type",
        choices=["capabilities", "systems", "apps", "all"],
        default="all",
        help="Which data to seed (default: all)",
    )
    args = parser.parse_args()

    engine = CompositionEngine()
    if args.type == "all":
        seed_catalog(engine)
    elif args.type == "capabilities":
        seed_capabilities(engine)
    elif args.type == "systems":
        seed_systems(engine)
    elif args.type == "apps":
        seed_apps(engine)

    print("Done.")
