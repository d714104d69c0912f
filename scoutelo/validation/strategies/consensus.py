"""
Consensus strategy: judge a scout against the other scouts of the same robot.

Siblings are observations of the same team in the same match recorded by a
different scouter. Numeric fields use the sibling median, boolean and
categorical fields the sibling mode.
"""

import logging

from scoutelo.errors import InsufficientData
from scoutelo.models import MatchScouting, StrategyType, ValidationResult
from scoutelo.validation.comparison import compare_field, compute_consensus
from scoutelo.validation.fields import get_value, infer_field_specs
from scoutelo.validation.strategies.base import ValidationContext, ValidationStrategy

logger = logging.getLogger(__name__)

MIN_SIBLINGS_DEFAULT = 2


class ConsensusStrategy(ValidationStrategy):
    strategy_type = StrategyType.CONSENSUS

    def __init__(self, min_siblings: int = MIN_SIBLINGS_DEFAULT):
        self.min_siblings = max(1, min_siblings)

    def execute(self, observation: MatchScouting, context: ValidationContext) -> list[ValidationResult]:
        siblings = [
            o
            for o in context.observations_for_team(observation.team_number)
            if o.scouter_id != observation.scouter_id and o.id != observation.id
        ]
        if len(siblings) < self.min_siblings:
            raise InsufficientData(
                f"consensus needs {self.min_siblings} other scouts, found {len(siblings)}",
                {"team_number": observation.team_number, "siblings": len(siblings)},
            )

        specs = context.field_specs or infer_field_specs([observation, *siblings])

        results = []
        for spec in specs:
            consensus = compute_consensus(spec, [get_value(s, spec.field_path) for s in siblings])
            if consensus is None:
                continue
            actual = get_value(observation, spec.field_path)
            comparison = compare_field(spec, consensus.value, actual)

            notes = f"{consensus.method} of {consensus.scout_count}, {consensus.agreement_percentage:.0f}% agree"
            if consensus.standard_deviation is not None:
                notes += f", std {consensus.standard_deviation:.2f}"

            results.append(
                self.build_result(
                    observation, context, spec,
                    expected=consensus.value,
                    actual=actual,
                    comparison=comparison,
                    confidence=consensus.confidence,
                    notes=notes,
                )
            )

        if not results:
            raise InsufficientData(
                "no field had a usable consensus",
                {"team_number": observation.team_number},
            )

        logger.debug(
            f"[CONSENSUS] {observation.scouter_id} {observation.match_key} "
            f"team {observation.team_number}: {len(results)} fields vs {len(siblings)} siblings"
        )
        return results
