"""Scouter ELO rating math and rank tiers."""

from scoutelo.elo.calculator import (
    EloCalculation,
    EloConfig,
    EloRatingCalculator,
    create_elo_calculator,
    select_k_factor,
)
from scoutelo.elo.ranks import EloRank, RankProgress, get_progress_to_next_rank, get_rank

__all__ = [
    "EloCalculation",
    "EloConfig",
    "EloRatingCalculator",
    "EloRank",
    "RankProgress",
    "create_elo_calculator",
    "get_progress_to_next_rank",
    "get_rank",
    "select_k_factor",
]
