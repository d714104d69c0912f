"""Rank tiers derived from a scouter's ELO."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EloRank(str, Enum):
    DIAMOND = "diamond"
    PLATINUM = "platinum"
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"
    UNRANKED = "unranked"


# Highest first
ELO_RANK_THRESHOLDS: dict[EloRank, float] = {
    EloRank.DIAMOND: 2000.0,
    EloRank.PLATINUM: 1700.0,
    EloRank.GOLD: 1400.0,
    EloRank.SILVER: 1100.0,
    EloRank.BRONZE: 800.0,
    EloRank.UNRANKED: 0.0,
}


@dataclass
class RankProgress:
    rank: EloRank
    next_rank: Optional[EloRank]
    progress: float  # 0-100 within the current tier
    points_needed: float

    def to_dict(self) -> dict:
        return {
            "rank": self.rank.value,
            "next_rank": self.next_rank.value if self.next_rank else None,
            "progress": round(self.progress, 2),
            "points_needed": round(self.points_needed, 2),
        }


def get_rank(elo: float) -> EloRank:
    for rank, threshold in ELO_RANK_THRESHOLDS.items():
        if elo >= threshold:
            return rank
    return EloRank.UNRANKED


def get_progress_to_next_rank(elo: float) -> RankProgress:
    """Position within the current tier and distance to the next one."""
    rank = get_rank(elo)
    ordered = list(ELO_RANK_THRESHOLDS)
    idx = ordered.index(rank)
    if idx == 0:
        return RankProgress(rank=rank, next_rank=None, progress=100.0, points_needed=0.0)

    next_rank = ordered[idx - 1]
    floor = ELO_RANK_THRESHOLDS[rank]
    ceiling = ELO_RANK_THRESHOLDS[next_rank]
    progress = (elo - floor) / (ceiling - floor) * 100.0
    return RankProgress(
        rank=rank,
        next_rank=next_rank,
        progress=max(0.0, min(100.0, progress)),
        points_needed=ceiling - elo,
    )
