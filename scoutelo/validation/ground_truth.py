"""Ground-truth values a scouted field is judged against."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ConsensusValue:
    """Value agreed on by the other scouts of the same team and match."""

    value: Any
    method: str  # "median" | "mode"
    scout_count: int
    agreement_percentage: float
    standard_deviation: Optional[float]
    confidence: float


@dataclass
class OfficialResult:
    """Official match result, reduced to what the strategies compare.

    team_values:     {team_number: {field_path: value}} for per-robot fields
    alliance_totals: {"red"|"blue": {breakdown_key: value}}
    """

    match_key: str
    alliances: dict[str, list[int]]
    team_values: dict[int, dict[str, Any]] = field(default_factory=dict)
    alliance_totals: dict[str, dict[str, Any]] = field(default_factory=dict)

    def alliance_of(self, team_number: int) -> Optional[str]:
        for color, teams in self.alliances.items():
            if team_number in teams:
                return color
        return None

    def partners_of(self, team_number: int) -> list[int]:
        color = self.alliance_of(team_number)
        if color is None:
            return []
        return [t for t in self.alliances[color] if t != team_number]
