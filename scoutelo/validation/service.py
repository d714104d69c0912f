"""
Scouter validation service.

Drives validation of one match or a whole event:

  collecting  -> load the match, its observations and the official result
  comparing   -> run every requested strategy on every observation
  aggregating -> fold field results into one weighted accuracy per scouter
  persisting  -> one ELO update per scouter, written atomically with evidence
  done | failed

Partial failures (a scouter without enough data, an unreachable official
feed, a failed write) are reported in the summary. Only malformed requests
(InvalidInput) and unknown matches/events (NotFound) raise.
"""

import asyncio
import logging
import re
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
from uuid import uuid4

from scoutelo.config import Settings, get_settings, parse_strategy_weights
from scoutelo.elo.calculator import EloConfig, EloRatingCalculator, create_elo_calculator, select_k_factor
from scoutelo.errors import (
    ExternalSourceError,
    InsufficientData,
    InvalidInput,
    NotFound,
    PersistenceError,
    RunInProgress,
    ScoutEloError,
)
from scoutelo.models import (
    SUCCESS_OUTCOMES,
    EloHistoryEntry,
    MatchSchedule,
    RunState,
    ScouterRating,
    StrategyType,
    ValidationOutcome,
    ValidationResult,
    ValidationRun,
    _utc_now,
)
from scoutelo.repositories.base import ObservationStore, OfficialResultSource, RatingStore, ValidationStatistics
from scoutelo.telemetry import (
    record_elo_update,
    record_validation_results,
    record_validation_run,
    record_validation_skip,
)
from scoutelo.validation.comparison import FieldSpec
from scoutelo.validation.fields import get_field_specs
from scoutelo.validation.locks import MatchLockRegistry, compute_run_key, default_lock_registry, strategy_set_key
from scoutelo.validation.strategies import (
    ValidationContext,
    ValidationStrategy,
    build_strategy_table,
    resolve_strategy_types,
)

logger = logging.getLogger(__name__)

MATCH_KEY_RE = re.compile(r"^\d{4}[a-z0-9]+_(qm|ef|qf|sf|f)\d+(m\d+)?$")
EVENT_KEY_RE = re.compile(r"^\d{4}[a-z0-9]+$")

MAX_HISTORY_LIMIT = 500

# Scouter status precedence when merging summaries
_STATUS_RANK = {"skipped": 0, "errored": 1, "validated": 2}


def _check_match_key(match_key: str) -> None:
    if not match_key or not MATCH_KEY_RE.match(match_key):
        raise InvalidInput(f"Invalid match key: {match_key!r}", {"match_key": match_key})


def _check_event_key(event_key: str) -> None:
    if not event_key or not EVENT_KEY_RE.match(event_key):
        raise InvalidInput(f"Invalid event key: {event_key!r}", {"event_key": event_key})


@dataclass
class ValidationExecutionSummary:
    """Outcome of validating one match, or of an event (merged match summaries)."""

    execution_id: str
    event_key: Optional[str] = None
    match_keys: list[str] = field(default_factory=list)
    state: str = RunState.COLLECTING.value
    scouters: dict[str, dict] = field(default_factory=dict)
    elo_updates: list[dict] = field(default_factory=list)
    skips: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    dropped_strategies: list[str] = field(default_factory=list)
    official_source_failed: bool = False
    strategy_breakdown: dict[str, dict[str, int]] = field(default_factory=dict)
    total_validations: int = 0
    cancelled: bool = False
    started_at: datetime = field(default_factory=_utc_now)
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0

    def set_scouter_status(self, scouter_id: str, status: str, reason: Optional[str] = None) -> None:
        entry = self.scouters.setdefault(scouter_id, {"status": status, "reasons": []})
        if _STATUS_RANK[status] > _STATUS_RANK[entry["status"]]:
            entry["status"] = status
        if reason and reason not in entry["reasons"]:
            entry["reasons"].append(reason)

    def add_skip(
        self,
        match_key: str,
        reason: str,
        scouter_id: Optional[str] = None,
        strategy: Optional[str] = None,
        team_number: Optional[int] = None,
    ) -> None:
        self.skips.append({
            "match_key": match_key,
            "scouter_id": scouter_id,
            "strategy": strategy,
            "team_number": team_number,
            "reason": reason,
        })
        if scouter_id:
            self.set_scouter_status(scouter_id, "skipped", f"{strategy}: {reason}" if strategy else reason)

    def add_error(self, match_key: Optional[str], error: ScoutEloError, scouter_id: Optional[str] = None) -> None:
        self.errors.append({"match_key": match_key, "scouter_id": scouter_id, **error.to_dict()})
        if scouter_id:
            self.set_scouter_status(scouter_id, "errored", error.code)

    def count_results(self, strategy: str, outcomes: Iterable[str]) -> None:
        bucket = self.strategy_breakdown.setdefault(strategy, {})
        for outcome in outcomes:
            bucket[outcome] = bucket.get(outcome, 0) + 1
            self.total_validations += 1

    def finish(self, state: RunState) -> None:
        self.state = state.value
        self.finished_at = _utc_now()
        self.duration_ms = (self.finished_at - self.started_at).total_seconds() * 1000

    def merge(self, other: "ValidationExecutionSummary") -> None:
        """Fold a match summary into this (event) summary."""
        self.official_source_failed = self.official_source_failed or other.official_source_failed
        self.match_keys.extend(k for k in other.match_keys if k not in self.match_keys)
        for scouter_id, entry in other.scouters.items():
            self.set_scouter_status(scouter_id, entry["status"])
            for reason in entry["reasons"]:
                self.set_scouter_status(scouter_id, "skipped", reason)
        self.elo_updates.extend(other.elo_updates)
        self.skips.extend(other.skips)
        self.errors.extend(other.errors)
        for strategy in other.dropped_strategies:
            if strategy not in self.dropped_strategies:
                self.dropped_strategies.append(strategy)
        for strategy, counts in other.strategy_breakdown.items():
            bucket = self.strategy_breakdown.setdefault(strategy, {})
            for outcome, n in counts.items():
                bucket[outcome] = bucket.get(outcome, 0) + n
        self.total_validations += other.total_validations

    def scouters_with_status(self, status: str) -> list[str]:
        return sorted(s for s, e in self.scouters.items() if e["status"] == status)

    def to_dict(self) -> dict:
        return {
            "execution_id": self.execution_id,
            "event_key": self.event_key,
            "match_keys": list(self.match_keys),
            "state": self.state,
            "scouters_validated": len(self.scouters_with_status("validated")),
            "scouters_skipped": len(self.scouters_with_status("skipped")),
            "scouters_errored": len(self.scouters_with_status("errored")),
            "scouters": {s: {"status": e["status"], "reasons": list(e["reasons"])} for s, e in self.scouters.items()},
            "elo_updates": list(self.elo_updates),
            "skips": list(self.skips),
            "errors": list(self.errors),
            "dropped_strategies": list(self.dropped_strategies),
            "official_source_failed": self.official_source_failed,
            "strategy_breakdown": {k: dict(v) for k, v in self.strategy_breakdown.items()},
            "total_validations": self.total_validations,
            "cancelled": self.cancelled,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": round(self.duration_ms, 1),
        }


class ScouterValidationService:
    """Validates scouting observations and updates scouter ratings."""

    def __init__(
        self,
        observation_store: ObservationStore,
        rating_store: RatingStore,
        official_source: Optional[OfficialResultSource] = None,
        calculator: Optional[EloRatingCalculator] = None,
        strategies: Optional[dict[StrategyType, ValidationStrategy]] = None,
        strategy_weights: Optional[dict[str, float]] = None,
        critical_error_weight: float = 2.0,
        use_k_factor_tiers: bool = False,
        field_specs: Optional[list[FieldSpec]] = None,
        season_year: Optional[int] = None,
        lock_registry: Optional[MatchLockRegistry] = None,
    ):
        self.observations = observation_store
        self.ratings = rating_store
        self.official_source = official_source
        self.calculator = calculator or EloRatingCalculator()
        self.strategies = strategies or build_strategy_table()
        self.strategy_weights = strategy_weights or {}
        self.critical_error_weight = critical_error_weight
        self.use_k_factor_tiers = use_k_factor_tiers
        self.field_specs = field_specs
        self.season_year = season_year
        self.locks = lock_registry or default_lock_registry

    # ─────────────────────────────────────────────────────────────────
    # Match
    # ─────────────────────────────────────────────────────────────────

    async def validate_match(
        self,
        match_key: str,
        strategies: Optional[Iterable[str]] = None,
        run_version: Optional[int] = None,
    ) -> ValidationExecutionSummary:
        """Validate every observation of one match.

        Args:
            match_key: e.g. "2025casj_qm12".
            strategies: Strategy names; None runs all of them.
            run_version: Explicit run version. Reusing one is reported as
                duplicate_run. None appends a new version.

        Raises:
            InvalidInput: bad match key, strategy name or run_version.
            NotFound: match not in the schedule.
        """
        _check_match_key(match_key)
        if run_version is not None and run_version < 1:
            raise InvalidInput("run_version must be >= 1", {"run_version": run_version})
        return await self._validate_match(match_key, resolve_strategy_types(strategies), run_version)

    async def _validate_match(
        self,
        match_key: str,
        strategy_types: list[StrategyType],
        run_version: Optional[int] = None,
        official_available: bool = True,
    ) -> ValidationExecutionSummary:
        summary = ValidationExecutionSummary(execution_id=uuid4().hex, match_keys=[match_key])
        t0 = time.time()
        try:
            async with self.locks.hold(match_key):
                await self._run_match(match_key, strategy_types, run_version, summary, official_available)
        except RunInProgress as e:
            logger.warning(f"[VALIDATION] {match_key}: {e.message}")
            summary.add_error(match_key, e)
            summary.finish(RunState.FAILED)
            record_validation_run("in_progress")
            return summary

        record_validation_run(summary.state, time.time() - t0)
        return summary

    async def _run_match(
        self,
        match_key: str,
        strategy_types: list[StrategyType],
        run_version: Optional[int],
        summary: ValidationExecutionSummary,
        official_available: bool = True,
    ) -> None:
        match = await self.observations.get_match(match_key)
        if match is None:
            raise NotFound(f"Match {match_key} not found", {"match_key": match_key})
        summary.event_key = match.event_key

        strategy_set = strategy_set_key(st.value for st in strategy_types)
        if run_version is None:
            run_version = await self.ratings.next_run_version(match_key, strategy_set)
        run = ValidationRun(
            execution_id=summary.execution_id,
            match_key=match_key,
            strategy_set=strategy_set,
            run_version=run_version,
            idempotency_key=compute_run_key(match_key, strategy_set, run_version),
        )
        if not await self.ratings.register_run(run):
            logger.info(f"[VALIDATION] {match_key}: run v{run_version} ({strategy_set}) already recorded, skipping")
            summary.add_skip(match_key, "duplicate_run")
            summary.finish(RunState.DONE)
            return

        try:
            await self._execute(run, match, strategy_types, summary, official_available)
        except ScoutEloError as e:
            logger.error(f"[VALIDATION] {match_key} failed in state {run.state}: {e.message}")
            summary.add_error(match_key, e)
            self._transition(run, summary, RunState.FAILED)
        except Exception:
            logger.exception(f"[VALIDATION] {match_key} failed in state {run.state}")
            self._transition(run, summary, RunState.FAILED)
            await self._complete_run(run, summary)
            raise

        await self._complete_run(run, summary)

    def _transition(self, run: ValidationRun, summary: ValidationExecutionSummary, state: RunState) -> None:
        logger.info(f"[VALIDATION] {run.match_key} [{run.execution_id[:8]}] {run.state} -> {state.value}")
        run.state = state.value
        if state in (RunState.DONE, RunState.FAILED):
            summary.finish(state)
        else:
            summary.state = state.value

    async def _complete_run(self, run: ValidationRun, summary: ValidationExecutionSummary) -> None:
        run.finished_at = summary.finished_at or _utc_now()
        run.summary = summary.to_dict()
        try:
            await self.ratings.complete_run(run)
        except PersistenceError as e:
            logger.error(f"[VALIDATION] {run.match_key}: could not record run completion: {e.message}")
            summary.add_error(run.match_key, e)

    async def _execute(
        self,
        run: ValidationRun,
        match: MatchSchedule,
        strategy_types: list[StrategyType],
        summary: ValidationExecutionSummary,
        official_available: bool = True,
    ) -> None:
        match_key = match.match_key
        season_year = self.season_year or match.season_year

        # collecting
        self._transition(run, summary, RunState.COLLECTING)
        observations = await self.observations.get_observations_for_match(match_key)
        active = list(strategy_types)
        official = None
        if StrategyType.OFFICIAL_RESULT in active:
            if self.official_source is None:
                self._drop_official(active, summary, match_key, ExternalSourceError("No official result source configured"))
            elif not official_available:
                self._drop_official(
                    active,
                    summary,
                    match_key,
                    ExternalSourceError(
                        f"Official source {self.official_source.name} failed earlier in this event run",
                        {"source": self.official_source.name},
                    ),
                )
            else:
                try:
                    official = await self.official_source.get_official_result(match_key)
                except ExternalSourceError as e:
                    e.details.setdefault("source", self.official_source.name)
                    self._drop_official(active, summary, match_key, e)
                    summary.official_source_failed = True
                except NotFound as e:
                    logger.info(f"[VALIDATION] {match_key}: {e.message}")

        context = ValidationContext(
            match=match,
            observations=observations,
            execution_id=run.execution_id,
            season_year=season_year,
            official_result=official,
            field_specs=self.field_specs if self.field_specs is not None else get_field_specs(season_year),
        )

        # comparing
        self._transition(run, summary, RunState.COMPARING)
        per_scouter: dict[str, list[ValidationResult]] = defaultdict(list)
        for obs in observations:
            if not obs.scouter_id:
                summary.add_skip(match_key, "missing_scouter_id", team_number=obs.team_number)
                record_validation_skip("all", "missing_scouter_id")
                continue
            for st in active:
                strategy = self.strategies[st]
                try:
                    results = strategy.execute(obs, context)
                except InsufficientData as e:
                    summary.add_skip(match_key, e.message, obs.scouter_id, strategy.name, obs.team_number)
                    record_validation_skip(strategy.name, e.code)
                    continue
                outcomes = [r.validation_outcome for r in results]
                summary.count_results(strategy.name, outcomes)
                record_validation_results(strategy.name, outcomes)
                per_scouter[obs.scouter_id].extend(results)

        # aggregating
        self._transition(run, summary, RunState.AGGREGATING)
        accuracies = {
            scouter_id: self.calculator.calculate_weighted_accuracy(
                (r.accuracy_score, self.result_weight(r)) for r in results
            )
            for scouter_id, results in per_scouter.items()
        }

        # persisting
        self._transition(run, summary, RunState.PERSISTING)
        for scouter_id, results in per_scouter.items():
            try:
                update = await self._persist_scouter(scouter_id, season_year, match, run, results, accuracies[scouter_id])
            except PersistenceError as e:
                logger.error(f"[VALIDATION] {match_key}: rating update for {scouter_id} failed: {e.message}")
                summary.add_error(match_key, e, scouter_id=scouter_id)
                continue
            summary.elo_updates.append(update)
            summary.set_scouter_status(scouter_id, "validated")

        self._transition(run, summary, RunState.DONE)
        logger.info(
            f"[VALIDATION] {match_key}: {len(summary.elo_updates)} scouters updated, "
            f"{len(summary.skips)} skips, {summary.total_validations} field results"
        )

    def _drop_official(
        self,
        active: list[StrategyType],
        summary: ValidationExecutionSummary,
        match_key: str,
        error: ExternalSourceError,
    ) -> None:
        logger.warning(f"[VALIDATION] {match_key}: dropping official_result: {error.message}")
        active.remove(StrategyType.OFFICIAL_RESULT)
        summary.dropped_strategies.append(StrategyType.OFFICIAL_RESULT.value)
        summary.add_error(match_key, error)

    def result_weight(self, result: ValidationResult) -> float:
        """Field weight x strategy weight, times the critical weight for critical errors."""
        weight = (result.weight or 0.0) * self.strategy_weights.get(result.strategy, 1.0)
        if result.validation_outcome == ValidationOutcome.CRITICAL_ERROR.value:
            weight *= self.critical_error_weight
        return weight

    def _calculator_for(self, rating: ScouterRating) -> EloRatingCalculator:
        if not self.use_k_factor_tiers:
            return self.calculator
        return create_elo_calculator(select_k_factor(rating.total_validations), base=self.calculator.config)

    async def _persist_scouter(
        self,
        scouter_id: str,
        season_year: int,
        match: MatchSchedule,
        run: ValidationRun,
        results: list[ValidationResult],
        accuracy: float,
    ) -> dict:
        rating = await self.ratings.get_rating(scouter_id, season_year, self.calculator.default_rating)
        calculator = self._calculator_for(rating)
        old_elo = rating.current_elo
        calc = calculator.calculate_new_rating(old_elo, accuracy)

        successes = sum(1 for r in results if r.validation_outcome in SUCCESS_OUTCOMES)
        now = _utc_now()
        rating.current_elo = calc.new_rating
        rating.peak_elo = max(rating.peak_elo, calc.new_rating)
        rating.lowest_elo = min(rating.lowest_elo, calc.new_rating)
        rating.total_validations += len(results)
        rating.successful_validations += successes
        rating.failed_validations += len(results) - successes
        rating.confidence_level = calculator.calculate_confidence(rating.total_validations)
        rating.last_validation_at = now
        rating.updated_at = now

        teams = {r.team_number for r in results}
        history = EloHistoryEntry(
            scouter_id=scouter_id,
            season_year=season_year,
            elo_before=old_elo,
            elo_after=calc.new_rating,
            elo_delta=calc.new_rating - old_elo,
            outcome=calc.outcome.value,
            accuracy_score=accuracy,
            k_factor=calculator.k_factor,
            match_key=match.match_key,
            team_number=next(iter(teams)) if len(teams) == 1 else None,
            event_key=match.event_key,
            execution_id=run.execution_id,
            validation_ids=[r.id for r in results],
        )
        update = {
            "scouter_id": scouter_id,
            "match_key": match.match_key,
            "old_elo": round(old_elo, 2),
            "new_elo": round(calc.new_rating, 2),
            "delta": round(calc.new_rating - old_elo, 2),
            "outcome": calc.outcome.value,
            "accuracy": round(accuracy, 4),
            "k_factor": calculator.k_factor,
            "validations_processed": len(results),
            "calculation": calc.to_dict(),
        }

        await self.ratings.save_scouter_update(rating, history, results)
        record_elo_update(calc.outcome.value, calc.new_rating - old_elo)
        return update

    # ─────────────────────────────────────────────────────────────────
    # Event
    # ─────────────────────────────────────────────────────────────────

    async def validate_event(
        self,
        event_key: str,
        strategies: Optional[Iterable[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ValidationExecutionSummary:
        """Validate every match of an event, strictly one match at a time.

        The cancel flag is checked before each match; matches already
        validated keep their rating changes.

        Raises:
            InvalidInput: bad event key or strategy name.
            NotFound: event has no scheduled matches.
        """
        _check_event_key(event_key)
        strategy_types = resolve_strategy_types(strategies)
        strategy_names = [st.value for st in strategy_types]

        matches = await self.observations.get_event_matches(event_key)
        if not matches:
            raise NotFound(f"No matches found for event {event_key}", {"event_key": event_key})

        summary = ValidationExecutionSummary(execution_id=uuid4().hex, event_key=event_key)
        logger.info(f"[VALIDATION] Event {event_key}: {len(matches)} matches, strategies={strategy_names}")

        if StrategyType.OFFICIAL_RESULT in strategy_types and self.official_source is not None:
            try:
                await self.official_source.prefetch_event(event_key)
            except (ExternalSourceError, NotFound) as e:
                logger.warning(f"[VALIDATION] Event {event_key}: prefetch failed, fetching per match: {e.message}")

        official_available = True
        for match in matches:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"[VALIDATION] Event {event_key}: cancelled after {len(summary.match_keys)} matches")
                summary.cancelled = True
                break
            try:
                _check_match_key(match.match_key)
                match_summary = await self._validate_match(
                    match.match_key, strategy_types, official_available=official_available
                )
            except (InvalidInput, NotFound, PersistenceError) as e:
                logger.warning(f"[VALIDATION] Event {event_key}: skipping {match.match_key}: {e.message}")
                summary.add_error(match.match_key, e)
                continue
            if match_summary.official_source_failed and official_available:
                # Source already exhausted its retries; skip it for the remaining matches
                logger.warning(
                    f"[VALIDATION] Event {event_key}: official source {self.official_source.name} "
                    f"unavailable, dropping official_result for the rest of the run"
                )
                official_available = False
            summary.merge(match_summary)

        summary.finish(RunState.DONE)
        logger.info(
            f"[VALIDATION] Event {event_key} complete: {len(summary.match_keys)} matches, "
            f"{len(summary.elo_updates)} rating updates, {len(summary.errors)} errors"
        )
        return summary

    # ─────────────────────────────────────────────────────────────────
    # Read paths
    # ─────────────────────────────────────────────────────────────────

    async def get_scouter_rating(self, scouter_id: str, season_year: Optional[int] = None) -> Optional[ScouterRating]:
        return await self.ratings.find_rating(scouter_id, season_year)

    async def get_scouter_history(
        self,
        scouter_id: str,
        limit: int = 50,
        offset: int = 0,
        event_key: Optional[str] = None,
        season_year: Optional[int] = None,
    ) -> list[EloHistoryEntry]:
        if limit < 1 or limit > MAX_HISTORY_LIMIT or offset < 0:
            raise InvalidInput(
                f"limit must be 1..{MAX_HISTORY_LIMIT} and offset >= 0",
                {"limit": limit, "offset": offset},
            )
        return await self.ratings.get_history(scouter_id, limit, offset, event_key, season_year)

    async def get_leaderboard(
        self,
        season_year: Optional[int] = None,
        limit: int = 50,
        event_key: Optional[str] = None,
    ) -> list[ScouterRating]:
        """Season leaderboard, or only the scouters who scouted at event_key."""
        if limit < 1 or limit > MAX_HISTORY_LIMIT:
            raise InvalidInput(f"limit must be 1..{MAX_HISTORY_LIMIT}", {"limit": limit})
        if event_key is None:
            return await self.ratings.get_leaderboard(season_year, limit)

        _check_event_key(event_key)
        scouter_ids = await self.observations.get_event_scouter_ids(event_key)
        if not scouter_ids:
            return []
        return await self.ratings.get_leaderboard(
            season_year if season_year is not None else int(event_key[:4]),
            limit,
            scouter_ids=scouter_ids,
        )

    async def get_match_validations(self, match_key: str) -> list[ValidationResult]:
        _check_match_key(match_key)
        return await self.ratings.get_match_validations(match_key)

    async def get_execution_results(self, execution_id: str) -> list[ValidationResult]:
        if not execution_id:
            raise InvalidInput("execution_id is required")
        return await self.ratings.get_execution_results(execution_id)

    async def get_scouter_validations(
        self,
        scouter_id: str,
        limit: int = 50,
        offset: int = 0,
        event_key: Optional[str] = None,
        outcome: Optional[str] = None,
    ) -> list[ValidationResult]:
        if limit < 1 or limit > MAX_HISTORY_LIMIT or offset < 0:
            raise InvalidInput(
                f"limit must be 1..{MAX_HISTORY_LIMIT} and offset >= 0",
                {"limit": limit, "offset": offset},
            )
        if outcome is not None and outcome not in {o.value for o in ValidationOutcome}:
            raise InvalidInput(f"Unknown outcome: {outcome!r}", {"allowed": [o.value for o in ValidationOutcome]})
        return await self.ratings.get_scouter_validations(scouter_id, limit, offset, event_key, outcome)

    async def get_validation_statistics(
        self,
        scouter_id: Optional[str] = None,
        event_key: Optional[str] = None,
        season_year: Optional[int] = None,
    ) -> ValidationStatistics:
        """Outcome counts and mean accuracy for one scouter or one event."""
        if bool(scouter_id) == bool(event_key):
            raise InvalidInput("Provide exactly one of scouter_id or event_key")
        if event_key:
            _check_event_key(event_key)
        return await self.ratings.get_validation_statistics(scouter_id, event_key, season_year)


def build_official_source(session, source: Optional[str] = None, settings: Optional[Settings] = None):
    """'tba' or 'schedule'; defaults to tba when an API key is configured."""
    from scoutelo.etl.tba import TBAOfficialResultSource
    from scoutelo.repositories.sql import ScheduleOfficialResultSource

    s = settings or get_settings()
    choice = source or ("tba" if s.TBA_API_KEY else "schedule")
    if choice == "tba":
        return TBAOfficialResultSource()
    if choice == "schedule":
        return ScheduleOfficialResultSource(session)
    raise InvalidInput(f"Unknown official result source: {choice!r}", {"allowed": ["tba", "schedule"]})


def create_validation_service(
    session,
    official_source: Optional[OfficialResultSource] = None,
    settings: Optional[Settings] = None,
) -> ScouterValidationService:
    """Wire a service on a database session using environment settings."""
    from scoutelo.repositories.sql import SqlObservationStore, SqlRatingStore

    s = settings or get_settings()
    return ScouterValidationService(
        observation_store=SqlObservationStore(session),
        rating_store=SqlRatingStore(session),
        official_source=official_source if official_source is not None else build_official_source(session, settings=s),
        calculator=EloRatingCalculator(EloConfig.from_settings(s)),
        strategies=build_strategy_table(min_siblings=s.CONSENSUS_MIN_SIBLINGS),
        strategy_weights=parse_strategy_weights(s.VALIDATION_STRATEGY_WEIGHTS),
        critical_error_weight=s.VALIDATION_CRITICAL_ERROR_WEIGHT,
        use_k_factor_tiers=s.ELO_USE_K_FACTOR_TIERS,
        season_year=s.VALIDATION_DEFAULT_SEASON,
    )
