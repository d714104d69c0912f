"""Application configuration using Pydantic Settings."""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./scoutelo.db"

    # API Security
    API_KEY: str = ""  # Optional API key for admin endpoints
    API_KEY_HEADER: str = "X-API-Key"
    RATE_LIMIT_EXECUTE: str = "10/minute"

    LOG_LEVEL: str = "INFO"

    # ═══════════════════════════════════════════════════════════════
    # ELO rating calculator
    # ═══════════════════════════════════════════════════════════════
    ELO_K_FACTOR: float = 32.0
    ELO_DEFAULT_RATING: float = 1500.0
    ELO_MIN_RATING: float = 0.0
    ELO_MAX_RATING: float = 3000.0
    ELO_OUTCOME_THRESHOLD: float = 0.5  # |delta| below this is 'neutral'
    ELO_USE_K_FACTOR_TIERS: bool = False  # provisional/regular/veteran/master K

    # ═══════════════════════════════════════════════════════════════
    # Validation
    # ═══════════════════════════════════════════════════════════════
    CONSENSUS_MIN_SIBLINGS: int = 2  # other scouts required for a consensus
    VALIDATION_STRATEGY_WEIGHTS: str = "consensus:1.0,official_result:1.0"
    VALIDATION_CRITICAL_ERROR_WEIGHT: float = 2.0
    VALIDATION_DEFAULT_SEASON: Optional[int] = None  # None = derive from event key

    # ═══════════════════════════════════════════════════════════════
    # The Blue Alliance (official results)
    # ═══════════════════════════════════════════════════════════════
    TBA_API_KEY: str = ""
    TBA_BASE_URL: str = "https://www.thebluealliance.com/api/v3"
    TBA_REQUESTS_PER_SECOND: float = 2.0
    TBA_MAX_RETRIES: int = 3
    TBA_RETRY_BASE_SECONDS: float = 1.0
    TBA_TIMEOUT_SECONDS: float = 15.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def parse_strategy_weights(raw: str) -> dict[str, float]:
    """Parse "consensus:1.0,official_result:0.5" into {name: weight}.

    Malformed pairs are ignored with a warning; names are not checked here.
    """
    weights: dict[str, float] = {}
    if not raw:
        return weights
    for pair in raw.split(","):
        pair = pair.strip()
        if ":" not in pair:
            continue
        name, value = pair.split(":", 1)
        try:
            weights[name.strip()] = float(value.strip())
        except ValueError:
            logger.warning(f"Ignoring malformed strategy weight: {pair!r}")
    return weights
