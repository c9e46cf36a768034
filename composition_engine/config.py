"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Capability Composition & Trust Engine"
    debug: bool = True
    mock_mode: bool = True  # When True, no MongoDB lookups are attempted

    # ── MongoDB (admin-saved scoring overrides) ──────────
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "composition_engine"

    # ── Compatibility scoring ────────────────────────────
    weight_capability_match: float = 0.4
    weight_integration_readiness: float = 0.3
    weight_compliance: float = 0.2
    weight_ecosystem_maturity: float = 0.1

    compliance_gap_cap: float = 49.0
    ecosystem_floor: float = 20.0

    badge_excellent_threshold: float = 80.0
    badge_good_threshold: float = 60.0
    badge_weak_threshold: float = 40.0
    badge_capability_threshold: float = 50.0
    badge_compliance_threshold: float = 50.0

    scoring_cache_size: int = 512

    # ── Policy ───────────────────────────────────────────
    audit_authorization_decisions: bool = True

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CE_",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
