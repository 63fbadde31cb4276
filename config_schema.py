"""
Associa - Pydantic Configuration Schema

Validates config.yaml against a typed schema at load time.  Catches
typos, type errors and invalid ranges (a negative learning rate, a
min_confidence above 1.0) before they surface as odd weights deep in a
learning run.

Unknown keys are ignored, not rejected, so a config written for a newer
release still loads.  Pydantic's default coercion mode is used because
YAML numerics are ambiguous (``learning_rate: 1`` is an int).

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: Pydantic v2 models for every section of config.yaml under the
#         top-level "associa:" key, plus validate_config() and
#         load_and_validate().
#   How:  BaseModel with Field() constraints.  GenerationConfig is
#         defined next to the generator and reused here.
# -------------------
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from associa_core.knowledge_integrator import ConflictResolution
from associa_core.sequence_generator import GenerationConfig
from associa_core.td_update import DEFAULT_DISCOUNT_FACTOR, DEFAULT_LEARNING_RATE

logger = logging.getLogger("associa.config")


class LearningConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    learning_rate: float = Field(DEFAULT_LEARNING_RATE, ge=0.0, le=1.0)
    discount_factor: float = Field(DEFAULT_DISCOUNT_FACTOR, ge=0.0, le=1.0)
    estimated_reward: float = 1.0


class ReasoningConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    max_hops: int = Field(3, ge=0)
    min_confidence: float = Field(0.1, ge=0.0, le=1.0)


class KnowledgeConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    default_strategy: ConflictResolution = ConflictResolution.AVERAGE
    default_source: str = "cli"


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    state_path: str = "associa_state.json"


class AssociaConfig(BaseModel):
    """Top-level validated config schema for config.yaml -> associa: key."""
    model_config = ConfigDict(extra="ignore")

    random_seed: Optional[int] = None

    learning: LearningConfig = LearningConfig()
    reasoning: ReasoningConfig = ReasoningConfig()
    generation: GenerationConfig = GenerationConfig()
    knowledge: KnowledgeConfig = KnowledgeConfig()
    store: StoreConfig = StoreConfig()


def validate_config(raw: Dict[str, Any]) -> AssociaConfig:
    """Validate a raw config dict against the schema.

    Args:
        raw: The dict from yaml.safe_load(f).get("associa", {}).

    Raises:
        pydantic.ValidationError: If config values are invalid.
    """
    return AssociaConfig(**raw)


def load_and_validate(config_path: str = "config.yaml") -> AssociaConfig:
    """Load config.yaml and validate it.

    A missing file or an invalid config falls back to defaults (logged).

    Args:
        config_path: Path to config.yaml.

    Returns:
        Validated AssociaConfig.
    """
    p = Path(config_path)
    if not p.exists():
        logger.warning("Config not found at %s, using defaults", config_path)
        return AssociaConfig()

    with open(p, "r") as f:
        raw = yaml.safe_load(f)

    associa_raw = raw.get("associa", {}) if raw else {}

    try:
        validated = validate_config(associa_raw or {})
        logger.info("Config validated successfully from %s", config_path)
        return validated
    except ValidationError as e:
        logger.error("Config validation failed: %s - using defaults", e)
        return AssociaConfig()
