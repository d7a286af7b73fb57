"""
Runtime configuration for the scouting search core.

Settings come from the environment (and `.env`, loaded by the entry points).
Scoring heuristics live in ScoringConfig so every magic number can be tuned
without touching the scoring code.
"""

import logging
import sys
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SCOUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Classifier ─────────────────────────────────────────────────────────
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "SCOUT_OPENAI_API_KEY"),
    )
    classifier_model: str = "gpt-4o-mini"
    classifier_temperature: float = 0.1
    classifier_max_retries: int = 3
    classifier_base_delay: float = 1.0  # seconds, doubled per attempt
    classifier_timeout: float | None = None  # total budget per parse, seconds

    # ── Cache ──────────────────────────────────────────────────────────────
    cache_ttl_seconds: float = 24 * 60 * 60
    cache_sweep_interval_seconds: float = 60 * 60

    # ── Data / API ─────────────────────────────────────────────────────────
    data_path: Path = Path("data/players.jsonl")
    audit_log_path: Path | None = None  # JSONL audit trail; in-memory when unset
    token_store_path: Path | None = None
    default_page_size: int = 20
    rate_limit_requests: int = 30
    rate_limit_window: float = 60.0
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# ── Scoring heuristics ─────────────────────────────────────────────────────

DEFAULT_WEIGHTS = {
    "position": 25,
    "age": 20,
    "nationality": 15,
    "league": 12,
    "marketValue": 10,
    "performance": 8,
    "contract": 2,
    # Evaluable, but off by default
    "club": 0,
    "physical": 0,
}


@dataclass(frozen=True)
class ScoringConfig:
    weights: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    compatible_position_credit: float = 0.7

    age_tolerance_years: int = 2
    age_tolerance_credit: float = 0.5

    nationality_partial_credit: float = 0.8
    top_league_credit: float = 0.6

    market_value_overage_ratio: float = 1.2
    market_value_overage_credit: float = 0.6

    contract_urgent_months: int = 6
    contract_soon_months: int = 12
    contract_stable_months: int = 24
    contract_soon_credit: float = 0.8
    contract_stable_credit: float = 0.5

    # (ratio threshold, points), best tier first
    performance_tiers: tuple[tuple[float, int], ...] = ((1.2, 3), (0.8, 2), (0.5, 1))

    # Explanation concerns
    concern_min_weight: int = 10
    concern_age_over_years: int = 3
    concern_age_under_years: int = 2
    concern_budget_ratio: float = 1.5
    concern_min_appearances: int = 10

    def weight(self, criterion: str) -> int:
        return int(self.weights.get(criterion, 0))


@dataclass(frozen=True)
class FallbackConfig:
    single_age_tolerance: int = 2
    height_tolerance_cm: int = 5
    confidence: float = 0.6


# ── Logging ────────────────────────────────────────────────────────────────

def configure_logging(level: str | None = None) -> logging.Logger:
    """Install a single stdout handler on the root logger."""
    level_name = (level or get_settings().log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    ))
    root.addHandler(handler)

    # Reduce noise from client libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    return root
