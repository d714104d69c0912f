"""
Field-path namespace and per-season configuration.

Paths are "<period>.<key>" with period in auto / teleop / endgame, e.g.
"teleop.coral_scored_L2". The column names (auto_performance, ...) are
accepted as aliases.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from scoutelo.errors import InvalidInput
from scoutelo.models import MatchScouting
from scoutelo.validation.comparison import FieldSpec, FieldType, infer_field_type
from scoutelo.validation.ground_truth import OfficialResult

logger = logging.getLogger(__name__)

PERIOD_COLUMNS = {
    "auto": "auto_performance",
    "teleop": "teleop_performance",
    "endgame": "endgame_performance",
}
COLUMN_PERIODS = {column: period for period, column in PERIOD_COLUMNS.items()}

# Metadata keys never compared
IGNORED_KEYS = frozenset({"schema_version", "notes"})


def normalize_path(path: str) -> str:
    """'teleop_performance.x' -> 'teleop.x'. Raises InvalidInput on unknown periods."""
    period, sep, key = path.partition(".")
    if not sep or not key:
        raise InvalidInput(f"Field path must be '<period>.<field>': {path!r}")
    period = COLUMN_PERIODS.get(period, period)
    if period not in PERIOD_COLUMNS:
        raise InvalidInput(f"Unknown period in field path: {path!r}")
    return f"{period}.{key}"


def get_value(observation: MatchScouting, path: str) -> Any:
    """Value at a field path, or None when the period or key is absent."""
    period, _, key = normalize_path(path).partition(".")
    data = getattr(observation, PERIOD_COLUMNS[period]) or {}
    return data.get(key)


def iter_field_paths(observation: MatchScouting) -> list[str]:
    """Every comparable path present on an observation, in period order."""
    paths = []
    for period, column in PERIOD_COLUMNS.items():
        data = getattr(observation, column) or {}
        for key in data:
            if key not in IGNORED_KEYS:
                paths.append(f"{period}.{key}")
    return paths


def infer_field_specs(observations: list[MatchScouting]) -> list[FieldSpec]:
    """Specs for the union of fields across observations when none are configured."""
    seen: dict[str, FieldSpec] = {}
    for obs in observations:
        for path in iter_field_paths(obs):
            if path in seen:
                continue
            field_type = infer_field_type(get_value(obs, path))
            if field_type is None:
                continue
            if field_type == FieldType.NUMBER:
                seen[path] = FieldSpec(path, field_type, close_tolerance=1.0, partial_credit=True)
            else:
                seen[path] = FieldSpec(path, field_type)
    return list(seen.values())


# =============================================================================
# 2025 REEFSCAPE
# =============================================================================


def _count(path: str, weight: float = 1.0) -> FieldSpec:
    return FieldSpec(path, FieldType.NUMBER, close_tolerance=1.0, weight=weight, partial_credit=True)


SEASON_FIELD_SPECS: dict[int, list[FieldSpec]] = {
    2025: [
        # auto
        FieldSpec("auto.left_starting_zone", FieldType.BOOLEAN),
        _count("auto.coral_scored_L1"),
        _count("auto.coral_scored_L2"),
        _count("auto.coral_scored_L3"),
        _count("auto.coral_scored_L4", weight=1.5),
        _count("auto.coral_missed", weight=0.5),
        FieldSpec("auto.preloaded_piece_scored", FieldType.BOOLEAN),
        # teleop
        _count("teleop.coral_scored_L1"),
        _count("teleop.coral_scored_L2"),
        _count("teleop.coral_scored_L3"),
        _count("teleop.coral_scored_L4", weight=1.5),
        _count("teleop.coral_missed", weight=0.5),
        _count("teleop.algae_scored_barge"),
        _count("teleop.algae_scored_processor"),
        _count("teleop.algae_missed", weight=0.5),
        FieldSpec("teleop.cycles_completed", FieldType.NUMBER, close_tolerance=1.0, close_relative=0.2),
        FieldSpec(
            "teleop.defense_time_seconds", FieldType.NUMBER,
            close_tolerance=5.0, close_relative=0.25, weight=0.5,
        ),
        _count("teleop.penalties_caused", weight=0.5),
        # endgame
        FieldSpec("endgame.cage_climb_attempted", FieldType.BOOLEAN),
        FieldSpec("endgame.cage_climb_successful", FieldType.BOOLEAN, weight=1.5, critical=True),
        FieldSpec("endgame.cage_level_achieved", FieldType.CATEGORY, weight=1.5),
        FieldSpec("endgame.endgame_points", FieldType.NUMBER, exact_epsilon=0.5, close_tolerance=2.0),
    ],
}


@dataclass(frozen=True)
class TeamFieldMapping:
    """Per-robot official value: breakdown key "<prefix><slot>" with slot 1..3."""

    spec: FieldSpec
    breakdown_prefix: str
    transform: Callable[[Any], Any]


@dataclass(frozen=True)
class AllianceTotalMapping:
    """Alliance-level official count compared against a sum of scouted paths."""

    spec: FieldSpec
    breakdown_key: str
    scouted_paths: tuple[str, ...]


@dataclass(frozen=True)
class OfficialFieldMappings:
    team_fields: tuple[TeamFieldMapping, ...]
    alliance_totals: tuple[AllianceTotalMapping, ...]


def _yes_no(raw: Any) -> Optional[bool]:
    if raw == "Yes":
        return True
    if raw == "No":
        return False
    return None


_CAGE_LEVELS = {"DeepCage": "deep", "ShallowCage": "shallow"}


def _climbed(raw: Any) -> Optional[bool]:
    if raw is None:
        return None
    return raw in _CAGE_LEVELS


def _cage_level(raw: Any) -> Optional[str]:
    # Only defined when the robot actually hung
    return _CAGE_LEVELS.get(raw)


def _alliance_count(key: str, paths: tuple[str, ...]) -> AllianceTotalMapping:
    return AllianceTotalMapping(
        spec=FieldSpec(f"alliance.{key}", FieldType.NUMBER, close_tolerance=1.0),
        breakdown_key=key,
        scouted_paths=paths,
    )


OFFICIAL_FIELD_MAPPINGS: dict[int, OfficialFieldMappings] = {
    2025: OfficialFieldMappings(
        team_fields=(
            TeamFieldMapping(FieldSpec("auto.left_starting_zone", FieldType.BOOLEAN), "autoLineRobot", _yes_no),
            TeamFieldMapping(
                FieldSpec("endgame.cage_climb_successful", FieldType.BOOLEAN, weight=1.5, critical=True),
                "endGameRobot",
                _climbed,
            ),
            TeamFieldMapping(
                FieldSpec("endgame.cage_level_achieved", FieldType.CATEGORY, weight=1.5),
                "endGameRobot",
                _cage_level,
            ),
        ),
        alliance_totals=(
            _alliance_count(
                "autoCoralCount",
                ("auto.coral_scored_L1", "auto.coral_scored_L2", "auto.coral_scored_L3", "auto.coral_scored_L4"),
            ),
            _alliance_count(
                "teleopCoralCount",
                (
                    "teleop.coral_scored_L1", "teleop.coral_scored_L2",
                    "teleop.coral_scored_L3", "teleop.coral_scored_L4",
                ),
            ),
            _alliance_count("netAlgaeCount", ("teleop.algae_scored_barge",)),
            _alliance_count("wallAlgaeCount", ("teleop.algae_scored_processor",)),
        ),
    ),
}


def get_field_specs(season_year: int) -> list[FieldSpec]:
    """Configured specs for a season; empty means infer from observations."""
    return SEASON_FIELD_SPECS.get(season_year, [])


def get_official_mappings(season_year: int) -> Optional[OfficialFieldMappings]:
    return OFFICIAL_FIELD_MAPPINGS.get(season_year)


def build_official_result(
    match_key: str,
    alliances: dict[str, list[int]],
    score_breakdown: Optional[dict],
    season_year: int,
) -> OfficialResult:
    """Reduce a raw {red: {...}, blue: {...}} breakdown to an OfficialResult.

    Robot slots follow the order of each alliance's team list.
    """
    mappings = get_official_mappings(season_year)
    result = OfficialResult(match_key=match_key, alliances={c: list(t) for c, t in alliances.items()})
    if not score_breakdown or mappings is None:
        if mappings is None:
            logger.warning(f"[OFFICIAL] No official field mappings for season {season_year}")
        return result

    for color, teams in result.alliances.items():
        breakdown = score_breakdown.get(color) or {}
        for slot, team in enumerate(teams, start=1):
            values = {}
            for mapping in mappings.team_fields:
                raw = breakdown.get(f"{mapping.breakdown_prefix}{slot}")
                value = mapping.transform(raw)
                if value is not None:
                    values[mapping.spec.field_path] = value
            result.team_values[team] = values

        totals = {}
        for mapping in mappings.alliance_totals:
            raw = breakdown.get(mapping.breakdown_key)
            if raw is not None:
                totals[mapping.breakdown_key] = raw
        result.alliance_totals[color] = totals

    return result
