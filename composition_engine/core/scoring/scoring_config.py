"""
Scoring Config Store — loads compatibility-scoring configuration.

Defaults come from Settings (environment / .env).  An admin-saved document in
the MongoDB ``rules_config`` collection (rule_type="scoring") overrides them,
so weights and badge thresholds change without code changes.  In mock mode
MongoDB is never contacted.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from composition_engine.config import Settings, get_settings
from composition_engine.errors import ValidationError
from composition_engine.models.schemas import ScoringWeights
from composition_engine.utils.validation import format_issues

logger = logging.getLogger(__name__)


# ── Config model ─────────────────────────────────────────

class BadgeThresholds(BaseModel):
    excellent: float = 80.0
    good: float = 60.0
    weak: float = 40.0
    capability: float = 50.0
    compliance: float = 50.0


class ScoringConfig(BaseModel):
    """Compatibility-scoring configuration."""
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    badges: BadgeThresholds = Field(default_factory=BadgeThresholds)
    compliance_gap_cap: float = 49.0  # max compliance sub-score while any tag is missing
    ecosystem_floor: float = 20.0  # new/unscored systems never show as zero

    # Integration readiness channel values (max per provider = their sum)
    workflow_channel_score: float = 1.0
    api_channel_score: float = 0.5
    secret_channel_score: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringConfig":
        try:
            return cls(
                weights=ScoringWeights(
                    capability_match=settings.weight_capability_match,
                    integration_readiness=settings.weight_integration_readiness,
                    compliance=settings.weight_compliance,
                    ecosystem_maturity=settings.weight_ecosystem_maturity,
                ),
                badges=BadgeThresholds(
                    excellent=settings.badge_excellent_threshold,
                    good=settings.badge_good_threshold,
                    weak=settings.badge_weak_threshold,
                    capability=settings.badge_capability_threshold,
                    compliance=settings.badge_compliance_threshold,
                ),
                compliance_gap_cap=settings.compliance_gap_cap,
                ecosystem_floor=settings.ecosystem_floor,
            )
        except PydanticValidationError as exc:
            raise ValidationError("Invalid scoring configuration", format_issues(exc)) from exc


# ── Store class ──────────────────────────────────────────

class ScoringConfigStore:
    """
    Loads the scoring config from MongoDB, falling back to Settings defaults.
    Cached after first load; ``update_config`` invalidates the cache.
    """

    RULE_TYPE = "scoring"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._db = None
        self._cache: ScoringConfig | None = None

    def _get_db(self):
        if self.settings.mock_mode:
            return None
        if self._db is not None:
            return self._db
        try:
            from pymongo import MongoClient
            client = MongoClient(self.settings.mongodb_uri, serverSelectionTimeoutMS=2000)
            self._db = client[self.settings.mongodb_database]
        except Exception as e:
            logger.warning(f"MongoDB not available, using settings defaults: {e}")
            self._db = None
        return self._db

    def get_config(self) -> ScoringConfig:
        if self._cache is not None:
            return self._cache

        config = ScoringConfig.from_settings(self.settings)
        db = self._get_db()
        if db is not None:
            try:
                doc = db.rules_config.find_one({"rule_type": self.RULE_TYPE})
                if doc and "config" in doc:
                    merged = {**config.model_dump(), **doc["config"]}
                    config = ScoringConfig.model_validate(merged)
                    logger.info("Loaded scoring config override from MongoDB")
            except PydanticValidationError as e:
                logger.error(f"Ignoring invalid scoring config in MongoDB: {format_issues(e)}")
            except Exception as e:
                logger.warning(f"Failed loading scoring config from MongoDB: {e}")

        self._cache = config
        return config

    def set_config(self, config: ScoringConfig) -> None:
        """Install a config for this process (tests, admin preview)."""
        self._cache = config

    def update_config(self, config_dict: dict[str, Any]) -> ScoringConfig:
        """Admin: validate, then save the scoring config to MongoDB and reload."""
        try:
            config = ScoringConfig.model_validate(
                {**self.get_config().model_dump(), **config_dict}
            )
        except PydanticValidationError as exc:
            raise ValidationError("Invalid scoring configuration", format_issues(exc)) from exc

        db = self._get_db()
        if db is not None:
            db.rules_config.update_one(
                {"rule_type": self.RULE_TYPE},
                {"$set": {"rule_type": self.RULE_TYPE, "config": config.model_dump()}},
                upsert=True,
            )
            logger.info("Updated scoring config in MongoDB")
        else:
            logger.info("MongoDB unavailable; scoring config updated in-process only")

        self._cache = config
        return config
