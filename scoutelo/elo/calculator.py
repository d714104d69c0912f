"""ELO rating math for scouter accuracy.

Pure functions over floats: no I/O, no shared state. A scouter "plays" against
a reference opponent (the default rating) and the aggregated accuracy of a
validation run is the game score.

    expected = 1 / (1 + 10^((opponent - current) / 400))
    delta    = K * (accuracy - expected)
    new      = clamp(current + delta, min_rating, max_rating)
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from scoutelo.config import Settings, get_settings
from scoutelo.errors import InvalidInput
from scoutelo.models import EloOutcome, ValidationOutcome

# Score per comparison outcome. critical_error has no fixed score.
OUTCOME_SCORES = {
    ValidationOutcome.EXACT_MATCH: 1.0,
    ValidationOutcome.CLOSE_MATCH: 0.7,
    ValidationOutcome.MISMATCH: 0.0,
}

# Confidence curve
CONFIDENCE_BASE = 0.50
CONFIDENCE_SPAN = 0.45
CONFIDENCE_CEILING = 0.95
CONFIDENCE_KNEE = 0.94  # raw curve is used as-is up to here (~89 validations)

# K-factor tiers by experience
K_FACTOR_TIERS = {
    "provisional": 40.0,
    "regular": 32.0,
    "veteran": 20.0,
    "master": 16.0,
}
PROVISIONAL_MAX_VALIDATIONS = 30
VETERAN_MIN_VALIDATIONS = 100
MASTER_MIN_VALIDATIONS = 200


@dataclass(frozen=True)
class EloConfig:
    k_factor: float = 32.0
    default_rating: float = 1500.0
    min_rating: float = 0.0
    max_rating: float = 3000.0
    outcome_threshold: float = 0.5

    def __post_init__(self):
        if self.k_factor <= 0:
            raise InvalidInput("k_factor must be positive", {"k_factor": self.k_factor})
        if self.min_rating > self.max_rating:
            raise InvalidInput(
                "min_rating must not exceed max_rating",
                {"min_rating": self.min_rating, "max_rating": self.max_rating},
            )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EloConfig":
        s = settings or get_settings()
        return cls(
            k_factor=s.ELO_K_FACTOR,
            default_rating=s.ELO_DEFAULT_RATING,
            min_rating=s.ELO_MIN_RATING,
            max_rating=s.ELO_MAX_RATING,
            outcome_threshold=s.ELO_OUTCOME_THRESHOLD,
        )


@dataclass
class EloCalculation:
    """Result of one rating update."""

    new_rating: float
    delta: float
    outcome: EloOutcome
    expected_score: float
    actual_score: float

    def to_dict(self) -> dict:
        return {
            "new_rating": round(self.new_rating, 2),
            "delta": round(self.delta, 2),
            "outcome": self.outcome.value,
            "expected_score": round(self.expected_score, 4),
            "actual_score": round(self.actual_score, 4),
        }


def _check_unit_interval(name: str, value: float) -> None:
    if value is None or math.isnan(value) or value < 0.0 or value > 1.0:
        raise InvalidInput(f"{name} must be between 0 and 1", {name: value})


class EloRatingCalculator:
    """ELO update rule, accuracy aggregation and confidence growth."""

    def __init__(self, config: Optional[EloConfig] = None):
        self.config = config or EloConfig()

    @property
    def k_factor(self) -> float:
        return self.config.k_factor

    @property
    def default_rating(self) -> float:
        return self.config.default_rating

    @property
    def min_rating(self) -> float:
        return self.config.min_rating

    @property
    def max_rating(self) -> float:
        return self.config.max_rating

    def expected_score(self, current_rating: float, opponent_rating: float) -> float:
        return 1.0 / (1.0 + 10.0 ** ((opponent_rating - current_rating) / 400.0))

    def calculate_new_rating(
        self,
        current_rating: float,
        accuracy_score: float,
        opponent_rating: Optional[float] = None,
    ) -> EloCalculation:
        """Apply one ELO update.

        Args:
            current_rating: Scouter's rating before the update (>= 0).
            accuracy_score: Aggregated accuracy for the run, in [0, 1].
            opponent_rating: Reference rating; defaults to the configured default.

        Raises:
            InvalidInput: accuracy outside [0, 1] or negative rating.
        """
        _check_unit_interval("accuracy_score", accuracy_score)
        if current_rating is None or math.isnan(current_rating) or current_rating < 0:
            raise InvalidInput("current_rating must be non-negative", {"current_rating": current_rating})

        opponent = self.config.default_rating if opponent_rating is None else opponent_rating
        expected = self.expected_score(current_rating, opponent)
        delta = self.config.k_factor * (accuracy_score - expected)
        new_rating = min(self.config.max_rating, max(self.config.min_rating, current_rating + delta))

        threshold = self.config.outcome_threshold
        if delta > threshold:
            outcome = EloOutcome.GAIN
        elif delta < -threshold:
            outcome = EloOutcome.LOSS
        else:
            outcome = EloOutcome.NEUTRAL

        return EloCalculation(
            new_rating=new_rating,
            delta=delta,
            outcome=outcome,
            expected_score=expected,
            actual_score=accuracy_score,
        )

    def outcome_to_accuracy_score(self, outcome) -> float:
        """Map exact/close/mismatch to 1.0/0.7/0.0.

        critical_error has no fixed score; callers assign it explicitly.
        """
        try:
            key = ValidationOutcome(outcome)
        except ValueError:
            raise InvalidInput(f"Unknown validation outcome: {outcome!r}")
        if key not in OUTCOME_SCORES:
            raise InvalidInput(
                "critical_error has no default accuracy score; supply it explicitly",
                {"outcome": key.value},
            )
        return OUTCOME_SCORES[key]

    def calculate_average_accuracy(self, scores: Iterable[float]) -> float:
        values = list(scores)
        if not values:
            return 0.0
        for v in values:
            _check_unit_interval("score", v)
        return sum(values) / len(values)

    def calculate_weighted_accuracy(self, pairs: Iterable[tuple[float, float]]) -> float:
        """Weighted mean of (score, weight) pairs. 0.0 when total weight is 0."""
        total = 0.0
        total_weight = 0.0
        for score, weight in pairs:
            _check_unit_interval("score", score)
            if weight is None or math.isnan(weight) or weight < 0:
                raise InvalidInput("weights must be non-negative", {"weight": weight})
            total += score * weight
            total_weight += weight
        if total_weight == 0:
            return 0.0
        return total / total_weight

    def calculate_confidence(self, validation_count: int) -> float:
        """Confidence grows logarithmically with validations, never reaching 0.95.

        0 -> 0.50, 9 -> ~0.72, 89 -> ~0.94, then an asymptotic tail below 0.95.
        """
        if validation_count is None or validation_count < 0:
            raise InvalidInput("validation_count must be non-negative", {"validation_count": validation_count})
        raw = CONFIDENCE_BASE + CONFIDENCE_SPAN * math.log(validation_count + 1) / math.log(100)
        if raw <= CONFIDENCE_KNEE:
            return raw
        gap = CONFIDENCE_CEILING - CONFIDENCE_KNEE
        return CONFIDENCE_CEILING - gap / (1.0 + (raw - CONFIDENCE_KNEE) / gap)

    def predict_delta(self, current_rating: float, expected_accuracy: float) -> float:
        """Preview the delta a run at this accuracy would produce."""
        return self.calculate_new_rating(current_rating, expected_accuracy).delta


def select_k_factor(total_validations: int) -> float:
    """K-factor tier for a scouter with this many validations."""
    if total_validations >= MASTER_MIN_VALIDATIONS:
        return K_FACTOR_TIERS["master"]
    if total_validations >= VETERAN_MIN_VALIDATIONS:
        return K_FACTOR_TIERS["veteran"]
    if total_validations < PROVISIONAL_MAX_VALIDATIONS:
        return K_FACTOR_TIERS["provisional"]
    return K_FACTOR_TIERS["regular"]


def create_elo_calculator(
    k_factor: Optional[float] = None,
    base: Optional[EloConfig] = None,
) -> EloRatingCalculator:
    """Build a calculator, optionally overriding K on top of a base config."""
    config = base or EloConfig.from_settings()
    if k_factor is not None:
        config = EloConfig(
            k_factor=k_factor,
            default_rating=config.default_rating,
            min_rating=config.min_rating,
            max_rating=config.max_rating,
            outcome_threshold=config.outcome_threshold,
        )
    return EloRatingCalculator(config)
