"""Shared fixtures: in-memory stores and builders for matches and observations."""

import re
from typing import Optional

import pytest

from scoutelo.errors import NotFound, PersistenceError
from scoutelo.models import (
    EloHistoryEntry,
    MatchSchedule,
    MatchScouting,
    ScouterRating,
    ValidationResult,
    ValidationRun,
)
from scoutelo.repositories.base import ObservationStore, OfficialResultSource, RatingStore, ValidationStatistics
from scoutelo.repositories.sql import match_sort_key
from scoutelo.validation.ground_truth import OfficialResult
from scoutelo.validation.locks import MatchLockRegistry


class InMemoryObservationStore(ObservationStore):
    def __init__(self, matches=None, observations=None):
        self.matches = {m.match_key: m for m in (matches or [])}
        self.observations = list(observations or [])

    async def get_match(self, match_key):
        return self.matches.get(match_key)

    async def get_event_matches(self, event_key):
        return sorted((m for m in self.matches.values() if m.event_key == event_key), key=match_sort_key)

    async def get_observations_for_match(self, match_key):
        return [o for o in self.observations if o.match_key == match_key]


class InMemoryRatingStore(RatingStore):
    """Stores copies so a failed write leaves no trace."""

    def __init__(self):
        self.ratings: dict[tuple, ScouterRating] = {}
        self.history: list[EloHistoryEntry] = []
        self.results: list[ValidationResult] = []
        self.runs: dict[str, ValidationRun] = {}
        self.fail_for: set[str] = set()

    @staticmethod
    def _copy(rating: ScouterRating) -> ScouterRating:
        return ScouterRating(**rating.model_dump())

    async def get_rating(self, scouter_id, season_year, default_rating=1500.0):
        stored = self.ratings.get((scouter_id, season_year))
        if stored is not None:
            return self._copy(stored)
        return ScouterRating(
            scouter_id=scouter_id,
            season_year=season_year,
            current_elo=default_rating,
            peak_elo=default_rating,
            lowest_elo=default_rating,
        )

    async def find_rating(self, scouter_id, season_year=None):
        candidates = [r for (s, y), r in self.ratings.items() if s == scouter_id and (season_year is None or y == season_year)]
        if not candidates:
            return None
        return self._copy(max(candidates, key=lambda r: r.season_year))

    async def save_rating(self, rating):
        self.ratings[(rating.scouter_id, rating.season_year)] = self._copy(rating)
        return rating

    async def append_history(self, entry):
        self.history.append(entry)
        return entry

    async def append_validation_results(self, results):
        self.results.extend(results)
        return len(results)

    async def save_scouter_update(self, rating, history, results):
        if rating.scouter_id in self.fail_for:
            raise PersistenceError(f"write failed for {rating.scouter_id}")
        await self.save_rating(rating)
        await self.append_history(history)
        await self.append_validation_results(results)

    async def get_history(self, scouter_id, limit=50, offset=0, event_key=None, season_year=None):
        rows = [
            h for h in self.history
            if h.scouter_id == scouter_id
            and (event_key is None or h.event_key == event_key)
            and (season_year is None or h.season_year == season_year)
        ]
        rows.reverse()
        return rows[offset:offset + limit]

    async def get_leaderboard(self, season_year=None, limit=50, scouter_ids=None):
        allowed = set(scouter_ids) if scouter_ids is not None else None
        rows = [
            r for (s, y), r in self.ratings.items()
            if (season_year is None or y == season_year) and (allowed is None or s in allowed)
        ]
        rows.sort(key=lambda r: r.current_elo * r.confidence_level, reverse=True)
        return rows[:limit]

    async def get_match_validations(self, match_key):
        return [r for r in reversed(self.results) if r.match_key == match_key]

    async def get_execution_results(self, execution_id):
        return [r for r in reversed(self.results) if r.execution_id == execution_id]

    async def get_scouter_validations(self, scouter_id, limit=50, offset=0, event_key=None, outcome=None):
        rows = [
            r for r in reversed(self.results)
            if r.scouter_id == scouter_id
            and (event_key is None or r.event_key == event_key)
            and (outcome is None or r.validation_outcome == outcome)
        ]
        return rows[offset:offset + limit]

    async def get_validation_statistics(self, scouter_id=None, event_key=None, season_year=None):
        return ValidationStatistics.from_results(
            r for r in self.results
            if (scouter_id is None or r.scouter_id == scouter_id)
            and (event_key is None or r.event_key == event_key)
            and (season_year is None or r.season_year == season_year)
        )

    async def register_run(self, run):
        if run.idempotency_key in self.runs:
            return False
        self.runs[run.idempotency_key] = run
        return True

    async def next_run_version(self, match_key, strategy_set):
        versions = [r.run_version for r in self.runs.values() if r.match_key == match_key and r.strategy_set == strategy_set]
        return max(versions, default=0) + 1

    async def complete_run(self, run):
        self.runs[run.idempotency_key] = run


class FakeOfficialSource(OfficialResultSource):
    def __init__(self, results: Optional[dict[str, OfficialResult]] = None, error: Optional[Exception] = None):
        self.results = results or {}
        self.error = error
        self.calls: list[str] = []
        self.prefetched: list[str] = []

    async def get_official_result(self, match_key):
        self.calls.append(match_key)
        if self.error is not None:
            raise self.error
        if match_key not in self.results:
            raise NotFound(f"no official result for {match_key}")
        return self.results[match_key]

    async def prefetch_event(self, event_key):
        self.prefetched.append(event_key)


def build_match(
    match_key: str = "2025casj_qm1",
    red=(254, 1678, 971),
    blue=(1114, 2056, 118),
    score_breakdown: Optional[dict] = None,
) -> MatchSchedule:
    event_key, _, rest = match_key.partition("_")
    parsed = re.match(r"(qm|ef|qf|sf|f)(\d+)", rest)
    comp_level = parsed.group(1) if parsed else "qm"
    number = int(parsed.group(2)) if parsed else 0
    return MatchSchedule(
        match_key=match_key,
        event_key=event_key,
        comp_level=comp_level,
        set_number=1,
        match_number=number,
        red_1=red[0], red_2=red[1], red_3=red[2],
        blue_1=blue[0], blue_2=blue[1], blue_3=blue[2],
        score_breakdown=score_breakdown,
    )


def build_observation(
    scouter_id: Optional[str],
    team_number: int = 254,
    match_key: str = "2025casj_qm1",
    auto: Optional[dict] = None,
    teleop: Optional[dict] = None,
    endgame: Optional[dict] = None,
) -> MatchScouting:
    return MatchScouting(
        match_key=match_key,
        event_key=match_key.split("_")[0],
        team_number=team_number,
        scouter_id=scouter_id,
        auto_performance={"schema_version": "2025.1", **(auto or {})},
        teleop_performance={"schema_version": "2025.1", **(teleop or {})},
        endgame_performance={"schema_version": "2025.1", **(endgame or {})},
    )


@pytest.fixture
def make_match():
    return build_match


@pytest.fixture
def make_observation():
    return build_observation


@pytest.fixture
def rating_store():
    return InMemoryRatingStore()


@pytest.fixture
def observation_store_factory():
    return InMemoryObservationStore


@pytest.fixture
def official_source_factory():
    return FakeOfficialSource


@pytest.fixture
def lock_registry():
    return MatchLockRegistry()
