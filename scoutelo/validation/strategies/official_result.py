"""
Official-result strategy: judge a scout against the official match breakdown.

Per-robot official fields are compared directly. Alliance-level counts are
turned into an implied value for the judged robot by subtracting the
partners' scouted contributions (median over each partner's observations).
"""

import logging
from statistics import median
from typing import Optional

from scoutelo.errors import InsufficientData
from scoutelo.models import MatchScouting, StrategyType, ValidationResult
from scoutelo.validation.comparison import compare_field, is_number
from scoutelo.validation.fields import OfficialFieldMappings, get_official_mappings, get_value
from scoutelo.validation.strategies.base import ValidationContext, ValidationStrategy

logger = logging.getLogger(__name__)

TEAM_FIELD_CONFIDENCE = 0.9
ALLIANCE_IMPLIED_CONFIDENCE = 0.6


def scouted_sum(observation: MatchScouting, paths: tuple[str, ...]) -> Optional[float]:
    """Sum of the numeric values at paths; None when none is numeric."""
    values = [get_value(observation, p) for p in paths]
    numbers = [v for v in values if is_number(v)]
    if not numbers:
        return None
    return float(sum(numbers))


class OfficialResultStrategy(ValidationStrategy):
    strategy_type = StrategyType.OFFICIAL_RESULT

    def __init__(self, mappings: Optional[dict[int, OfficialFieldMappings]] = None):
        self._mappings = mappings

    def _get_mappings(self, season_year: int) -> Optional[OfficialFieldMappings]:
        if self._mappings is not None:
            return self._mappings.get(season_year)
        return get_official_mappings(season_year)

    def execute(self, observation: MatchScouting, context: ValidationContext) -> list[ValidationResult]:
        official = context.official_result
        if official is None:
            raise InsufficientData("no official result available", {"match_key": observation.match_key})

        color = official.alliance_of(observation.team_number)
        if color is None:
            raise InsufficientData(
                f"team {observation.team_number} not in official alliances",
                {"match_key": observation.match_key, "team_number": observation.team_number},
            )

        mappings = self._get_mappings(context.season_year)
        if mappings is None:
            raise InsufficientData(f"no official field mappings for season {context.season_year}")

        results = []

        # Per-robot fields
        team_values = official.team_values.get(observation.team_number, {})
        for mapping in mappings.team_fields:
            spec = mapping.spec
            expected = team_values.get(spec.field_path)
            if expected is None:
                continue
            actual = get_value(observation, spec.field_path)
            results.append(
                self.build_result(
                    observation, context, spec,
                    expected=expected,
                    actual=actual,
                    comparison=compare_field(spec, expected, actual),
                    confidence=TEAM_FIELD_CONFIDENCE,
                )
            )

        # Alliance totals minus partner contributions
        totals = official.alliance_totals.get(color, {})
        partners = official.partners_of(observation.team_number)
        for mapping in mappings.alliance_totals:
            total = totals.get(mapping.breakdown_key)
            if not is_number(total):
                continue

            partner_sum = 0.0
            missing_partner = None
            for partner in partners:
                sums = [
                    s
                    for s in (scouted_sum(o, mapping.scouted_paths) for o in context.observations_for_team(partner))
                    if s is not None
                ]
                if not sums:
                    missing_partner = partner
                    break
                partner_sum += median(sums)
            if missing_partner is not None:
                logger.debug(
                    f"[OFFICIAL] {observation.match_key} {mapping.breakdown_key}: "
                    f"partner {missing_partner} unscouted, skipping"
                )
                continue

            expected = max(0.0, float(total) - partner_sum)
            actual = scouted_sum(observation, mapping.scouted_paths)
            results.append(
                self.build_result(
                    observation, context, mapping.spec,
                    expected=expected,
                    actual=actual,
                    comparison=compare_field(mapping.spec, expected, actual),
                    confidence=ALLIANCE_IMPLIED_CONFIDENCE,
                    notes=f"{color} {mapping.breakdown_key}={total} minus partners {partner_sum:g}",
                )
            )

        if not results:
            raise InsufficientData(
                "official result covers none of the scouted fields",
                {"match_key": observation.match_key, "team_number": observation.team_number},
            )
        return results
