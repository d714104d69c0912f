"""Abstract store interfaces used by the validation service."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Optional

from scoutelo.models import (
    EloHistoryEntry,
    MatchSchedule,
    MatchScouting,
    ScouterRating,
    ValidationOutcome,
    ValidationResult,
    ValidationRun,
)
from scoutelo.validation.ground_truth import OfficialResult


@dataclass
class ValidationStatistics:
    """Outcome counts and mean accuracy over a set of validation results."""

    total_validations: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    accuracy_sum: float = 0.0
    by_strategy: dict[str, dict] = field(default_factory=dict)
    by_field: dict[str, dict] = field(default_factory=dict)

    def add(self, strategy: str, field_path: str, outcome: str, count: int, accuracy_sum: float) -> None:
        self.total_validations += count
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + count
        self.accuracy_sum += accuracy_sum
        for bucket, key in ((self.by_strategy, strategy), (self.by_field, field_path)):
            entry = bucket.setdefault(key, {"count": 0, "accuracy_sum": 0.0})
            entry["count"] += count
            entry["accuracy_sum"] += accuracy_sum

    @classmethod
    def from_results(cls, results: Iterable[ValidationResult]) -> "ValidationStatistics":
        stats = cls()
        for r in results:
            stats.add(r.strategy, r.field_path, r.validation_outcome, 1, r.accuracy_score)
        return stats

    @property
    def average_accuracy(self) -> float:
        return self.accuracy_sum / self.total_validations if self.total_validations else 0.0

    def to_dict(self) -> dict:
        def _averaged(bucket: dict[str, dict]) -> dict:
            return {
                key: {"count": e["count"], "average_accuracy": round(e["accuracy_sum"] / e["count"], 4)}
                for key, e in sorted(bucket.items())
            }

        return {
            "total_validations": self.total_validations,
            "exact_matches": self.outcomes.get(ValidationOutcome.EXACT_MATCH.value, 0),
            "close_matches": self.outcomes.get(ValidationOutcome.CLOSE_MATCH.value, 0),
            "mismatches": self.outcomes.get(ValidationOutcome.MISMATCH.value, 0),
            "critical_errors": self.outcomes.get(ValidationOutcome.CRITICAL_ERROR.value, 0),
            "average_accuracy": round(self.average_accuracy, 4),
            "by_strategy": _averaged(self.by_strategy),
            "by_field": _averaged(self.by_field),
        }


class ObservationStore(ABC):
    """Read access to the match schedule and scouted observations."""

    @abstractmethod
    async def get_match(self, match_key: str) -> Optional[MatchSchedule]:
        pass

    @abstractmethod
    async def get_event_matches(self, event_key: str) -> list[MatchSchedule]:
        """Matches of an event in play order (qm, ef, qf, sf, f)."""
        pass

    @abstractmethod
    async def get_observations_for_match(self, match_key: str) -> list[MatchScouting]:
        pass

    async def get_observations_for_team_in_match(self, match_key: str, team_number: int) -> list[MatchScouting]:
        observations = await self.get_observations_for_match(match_key)
        return [o for o in observations if o.team_number == team_number]

    async def get_event_scouter_ids(self, event_key: str) -> set[str]:
        """Scouters with at least one observation at the event."""
        scouter_ids = set()
        for match in await self.get_event_matches(event_key):
            for obs in await self.get_observations_for_match(match.match_key):
                if obs.scouter_id:
                    scouter_ids.add(obs.scouter_id)
        return scouter_ids


class OfficialResultSource(ABC):
    """Authoritative per-match results."""

    name: str = "official"

    @abstractmethod
    async def get_official_result(self, match_key: str) -> OfficialResult:
        """
        Raises:
            NotFound: no result exists (yet) for the match.
            ExternalSourceError: source unreachable after retries.
        """
        pass

    async def prefetch_event(self, event_key: str) -> None:
        """Optionally warm a cache for every match of an event."""
        return None


class RatingStore(ABC):
    """Current ratings, rating history, validation evidence and the run ledger."""

    @abstractmethod
    async def get_rating(self, scouter_id: str, season_year: int, default_rating: float = 1500.0) -> ScouterRating:
        """Stored rating, or an unsaved default one when the scouter is new."""
        pass

    @abstractmethod
    async def find_rating(self, scouter_id: str, season_year: Optional[int] = None) -> Optional[ScouterRating]:
        """Stored rating for a season (latest season when None), without defaulting."""
        pass

    @abstractmethod
    async def save_rating(self, rating: ScouterRating) -> ScouterRating:
        pass

    @abstractmethod
    async def append_history(self, entry: EloHistoryEntry) -> EloHistoryEntry:
        pass

    @abstractmethod
    async def append_validation_results(self, results: list[ValidationResult]) -> int:
        pass

    @abstractmethod
    async def save_scouter_update(
        self,
        rating: ScouterRating,
        history: EloHistoryEntry,
        results: list[ValidationResult],
    ) -> None:
        """Write rating, history and evidence atomically.

        Raises:
            PersistenceError: nothing was written.
        """
        pass

    @abstractmethod
    async def get_history(
        self,
        scouter_id: str,
        limit: int = 50,
        offset: int = 0,
        event_key: Optional[str] = None,
        season_year: Optional[int] = None,
    ) -> list[EloHistoryEntry]:
        """History newest first."""
        pass

    @abstractmethod
    async def get_leaderboard(
        self,
        season_year: Optional[int] = None,
        limit: int = 50,
        scouter_ids: Optional[Iterable[str]] = None,
    ) -> list[ScouterRating]:
        """Ratings ordered by current_elo * confidence_level, highest first.

        scouter_ids restricts the board (event leaderboards).
        """
        pass

    @abstractmethod
    async def get_match_validations(self, match_key: str) -> list[ValidationResult]:
        """Every evidence row of a match, newest first."""
        pass

    @abstractmethod
    async def get_execution_results(self, execution_id: str) -> list[ValidationResult]:
        pass

    @abstractmethod
    async def get_scouter_validations(
        self,
        scouter_id: str,
        limit: int = 50,
        offset: int = 0,
        event_key: Optional[str] = None,
        outcome: Optional[str] = None,
    ) -> list[ValidationResult]:
        pass

    @abstractmethod
    async def get_validation_statistics(
        self,
        scouter_id: Optional[str] = None,
        event_key: Optional[str] = None,
        season_year: Optional[int] = None,
    ) -> ValidationStatistics:
        pass

    @abstractmethod
    async def register_run(self, run: ValidationRun) -> bool:
        """Record a run. False when its idempotency key already exists."""
        pass

    @abstractmethod
    async def next_run_version(self, match_key: str, strategy_set: str) -> int:
        pass

    @abstractmethod
    async def complete_run(self, run: ValidationRun) -> None:
        """Persist the final state and summary of a registered run."""
        pass
