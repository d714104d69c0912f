"""Base class for validation strategies."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from scoutelo.models import MatchSchedule, MatchScouting, StrategyType, ValidationResult
from scoutelo.validation.comparison import FieldComparison, FieldSpec
from scoutelo.validation.ground_truth import OfficialResult

logger = logging.getLogger(__name__)


@dataclass
class ValidationContext:
    """Everything a strategy may read for one match."""

    match: MatchSchedule
    observations: list[MatchScouting]
    execution_id: str
    season_year: int
    official_result: Optional[OfficialResult] = None
    field_specs: list[FieldSpec] = field(default_factory=list)

    def observations_for_team(self, team_number: int) -> list[MatchScouting]:
        return [o for o in self.observations if o.team_number == team_number]


class ValidationStrategy(ABC):
    """
    Compares one scouted observation against a ground-truth source.

    Implementations return one ValidationResult per compared field and raise
    InsufficientData when the observation cannot be judged.
    """

    strategy_type: StrategyType

    @property
    def name(self) -> str:
        return self.strategy_type.value

    @abstractmethod
    def execute(self, observation: MatchScouting, context: ValidationContext) -> list[ValidationResult]:
        ...

    def build_result(
        self,
        observation: MatchScouting,
        context: ValidationContext,
        spec: FieldSpec,
        expected: Any,
        actual: Any,
        comparison: FieldComparison,
        confidence: float,
        notes: Optional[str] = None,
    ) -> ValidationResult:
        parts = [p for p in (comparison.notes, notes) if p]
        return ValidationResult(
            execution_id=context.execution_id,
            strategy=self.name,
            validation_method=type(self).__name__,
            match_key=observation.match_key,
            team_number=observation.team_number,
            event_key=observation.event_key,
            season_year=context.season_year,
            scouter_id=observation.scouter_id,
            observation_id=observation.id,
            field_path=spec.field_path,
            expected_value=expected,
            actual_value=actual,
            accuracy_score=comparison.score,
            validation_outcome=comparison.outcome.value,
            confidence_level=confidence,
            weight=spec.weight,
            notes="; ".join(parts) if parts else None,
        )
