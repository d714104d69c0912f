"""
Field-level comparison of scouted values against ground truth.

Classification:
  numeric:   |expected - actual| <= exact_epsilon  -> exact_match (1.0)
             within close_tolerance / close_relative -> close_match (0.7)
             otherwise                               -> mismatch (0.0)
  boolean / category: equality -> exact_match, otherwise mismatch
  critical fields turn a mismatch into critical_error (0.0)
  an actual value of the wrong type is critical_error; a missing one is mismatch

Consensus uses the median of numeric values and the mode of boolean or
categorical values. A tied mode yields no consensus.
"""

import math
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from statistics import median
from typing import Any, Optional

import numpy as np

from scoutelo.elo.calculator import OUTCOME_SCORES
from scoutelo.errors import InvalidInput
from scoutelo.models import ValidationOutcome
from scoutelo.validation.ground_truth import ConsensusValue

EXACT_MATCH_SCORE = OUTCOME_SCORES[ValidationOutcome.EXACT_MATCH]
CLOSE_MATCH_SCORE = OUTCOME_SCORES[ValidationOutcome.CLOSE_MATCH]
MISMATCH_SCORE = OUTCOME_SCORES[ValidationOutcome.MISMATCH]


class FieldType(str, Enum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    CATEGORY = "category"


@dataclass(frozen=True)
class FieldSpec:
    field_path: str
    field_type: FieldType = FieldType.NUMBER
    exact_epsilon: float = 1e-6
    close_tolerance: Optional[float] = None
    close_relative: Optional[float] = None
    weight: float = 1.0
    critical: bool = False
    partial_credit: bool = False


@dataclass
class FieldComparison:
    outcome: ValidationOutcome
    score: float
    notes: Optional[str] = None


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def is_compatible(field_type: FieldType, value: Any) -> bool:
    if field_type == FieldType.NUMBER:
        return is_number(value)
    if field_type == FieldType.BOOLEAN:
        return isinstance(value, bool)
    return isinstance(value, str)


def infer_field_type(value: Any) -> Optional[FieldType]:
    """Best guess for a field with no configured spec. None for unsupported values."""
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if is_number(value):
        return FieldType.NUMBER
    if isinstance(value, str):
        return FieldType.CATEGORY
    return None


def scaled_distance_score(expected: float, actual: float) -> float:
    """Partial credit by distance: off by 1 -> 0.8, by 2 -> 0.6, then relative decay."""
    diff = abs(expected - actual)
    if diff == 0:
        return 1.0
    if diff <= 1:
        return 0.8
    if diff <= 2:
        return 0.6
    rel = diff / max(abs(expected), 1.0)
    return max(0.0, 0.6 * (1.0 - rel))


def _normalize_category(value: str) -> str:
    return value.strip().lower()


def _mismatch(spec: FieldSpec, score: float, notes: str) -> FieldComparison:
    if spec.critical:
        return FieldComparison(ValidationOutcome.CRITICAL_ERROR, MISMATCH_SCORE, f"critical: {notes}")
    return FieldComparison(ValidationOutcome.MISMATCH, score, notes)


def compare_field(spec: FieldSpec, expected: Any, actual: Any) -> FieldComparison:
    """Classify one scouted value against its ground-truth value.

    Raises:
        InvalidInput: expected value is missing or does not fit the field type.
    """
    if expected is None or not is_compatible(spec.field_type, expected):
        raise InvalidInput(
            f"Ground truth for {spec.field_path} is not a {spec.field_type.value}",
            {"field_path": spec.field_path, "expected": expected},
        )

    if actual is None:
        return _mismatch(spec, MISMATCH_SCORE, "no value recorded")

    if not is_compatible(spec.field_type, actual):
        return FieldComparison(
            ValidationOutcome.CRITICAL_ERROR,
            MISMATCH_SCORE,
            f"expected {spec.field_type.value}, got {type(actual).__name__}",
        )

    if spec.field_type == FieldType.NUMBER:
        diff = abs(float(expected) - float(actual))
        if diff <= spec.exact_epsilon:
            return FieldComparison(ValidationOutcome.EXACT_MATCH, EXACT_MATCH_SCORE)

        within_abs = spec.close_tolerance is not None and diff <= spec.close_tolerance
        within_rel = spec.close_relative is not None and diff <= spec.close_relative * abs(float(expected))
        scaled = scaled_distance_score(float(expected), float(actual)) if spec.partial_credit else None

        if within_abs or within_rel:
            score = max(CLOSE_MATCH_SCORE, scaled) if scaled is not None else CLOSE_MATCH_SCORE
            return FieldComparison(ValidationOutcome.CLOSE_MATCH, score, f"off by {diff:g}")
        return _mismatch(spec, scaled if scaled is not None else MISMATCH_SCORE, f"off by {diff:g}")

    if spec.field_type == FieldType.CATEGORY:
        equal = _normalize_category(expected) == _normalize_category(actual)
    else:
        equal = expected == actual

    if equal:
        return FieldComparison(ValidationOutcome.EXACT_MATCH, EXACT_MATCH_SCORE)
    return _mismatch(spec, MISMATCH_SCORE, f"expected {expected!r}, got {actual!r}")


def consensus_confidence(scout_count: int) -> float:
    return min(0.95, 0.5 + 0.45 * math.log(scout_count + 1) / math.log(10))


def compute_consensus(spec: FieldSpec, values: list[Any]) -> Optional[ConsensusValue]:
    """Consensus over sibling values of one field.

    Returns None when no usable value exists or the mode is tied.
    """
    usable = [v for v in values if v is not None and is_compatible(spec.field_type, v)]
    if not usable:
        return None

    n = len(usable)
    confidence = consensus_confidence(n)

    if spec.field_type == FieldType.NUMBER:
        center = median(usable)
        band = max(spec.exact_epsilon, spec.close_tolerance or 0.0)
        agreeing = sum(1 for v in usable if abs(v - center) <= band)
        return ConsensusValue(
            value=center,
            method="median",
            scout_count=n,
            agreement_percentage=agreeing / n * 100.0,
            standard_deviation=float(np.std(usable)),
            confidence=confidence,
        )

    keyed = [_normalize_category(v) for v in usable] if spec.field_type == FieldType.CATEGORY else usable
    counts = Counter(keyed).most_common()
    top_value, top_count = counts[0]
    if len(counts) > 1 and counts[1][1] == top_count:
        return None

    return ConsensusValue(
        value=top_value,
        method="mode",
        scout_count=n,
        agreement_percentage=top_count / n * 100.0,
        standard_deviation=None,
        confidence=confidence,
    )
