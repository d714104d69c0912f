"""Validation strategies and the fixed strategy table."""

from typing import Iterable, Optional

from scoutelo.errors import InvalidInput
from scoutelo.models import StrategyType
from scoutelo.validation.strategies.base import ValidationContext, ValidationStrategy
from scoutelo.validation.strategies.consensus import ConsensusStrategy
from scoutelo.validation.strategies.official_result import OfficialResultStrategy


def build_strategy_table(min_siblings: int = 2) -> dict[StrategyType, ValidationStrategy]:
    return {
        StrategyType.CONSENSUS: ConsensusStrategy(min_siblings=min_siblings),
        StrategyType.OFFICIAL_RESULT: OfficialResultStrategy(),
    }


def resolve_strategy_types(names: Optional[Iterable[str]]) -> list[StrategyType]:
    """Parse strategy names; None or empty selects every strategy.

    Raises:
        InvalidInput: unknown strategy name.
    """
    if not names:
        return list(StrategyType)
    resolved = []
    for name in names:
        try:
            st = StrategyType(str(name).strip().lower())
        except ValueError:
            raise InvalidInput(
                f"Unknown strategy: {name!r}",
                {"allowed": [s.value for s in StrategyType]},
            )
        if st not in resolved:
            resolved.append(st)
    return resolved


__all__ = [
    "ConsensusStrategy",
    "OfficialResultStrategy",
    "ValidationContext",
    "ValidationStrategy",
    "build_strategy_table",
    "resolve_strategy_types",
]
