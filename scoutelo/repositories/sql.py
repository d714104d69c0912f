"""SQLAlchemy-backed stores (SQLite via aiosqlite, PostgreSQL via asyncpg)."""

import logging
from typing import Iterable, Optional

from sqlalchemy import distinct, func, select, update
from sqlalchemy.exc import IntegrityError, InvalidRequestError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scoutelo.errors import NotFound, PersistenceError
from scoutelo.models import (
    EloHistoryEntry,
    MatchSchedule,
    MatchScouting,
    ScouterRating,
    ValidationResult,
    ValidationRun,
    _utc_now,
)
from scoutelo.repositories.base import ObservationStore, OfficialResultSource, RatingStore, ValidationStatistics
from scoutelo.validation.fields import build_official_result
from scoutelo.validation.ground_truth import OfficialResult

logger = logging.getLogger(__name__)

COMP_LEVEL_ORDER = {"qm": 0, "ef": 1, "qf": 2, "sf": 3, "f": 4}


def match_sort_key(match: MatchSchedule) -> tuple:
    return (COMP_LEVEL_ORDER.get(match.comp_level, 99), match.set_number, match.match_number)


class SqlObservationStore(ObservationStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_match(self, match_key: str) -> Optional[MatchSchedule]:
        return await self.session.get(MatchSchedule, match_key)

    async def get_event_matches(self, event_key: str) -> list[MatchSchedule]:
        result = await self.session.execute(
            select(MatchSchedule).where(MatchSchedule.event_key == event_key)
        )
        return sorted(result.scalars().all(), key=match_sort_key)

    async def get_observations_for_match(self, match_key: str) -> list[MatchScouting]:
        result = await self.session.execute(
            select(MatchScouting)
            .where(MatchScouting.match_key == match_key)
            .order_by(MatchScouting.created_at)
        )
        return list(result.scalars().all())

    async def get_observations_for_team_in_match(self, match_key: str, team_number: int) -> list[MatchScouting]:
        result = await self.session.execute(
            select(MatchScouting).where(
                MatchScouting.match_key == match_key,
                MatchScouting.team_number == team_number,
            )
        )
        return list(result.scalars().all())

    async def get_event_scouter_ids(self, event_key: str) -> set[str]:
        result = await self.session.execute(
            select(distinct(MatchScouting.scouter_id)).where(
                MatchScouting.event_key == event_key,
                MatchScouting.scouter_id.is_not(None),
            )
        )
        return set(result.scalars().all())


class ScheduleOfficialResultSource(OfficialResultSource):
    """Official results previously imported into match_schedule.score_breakdown."""

    name = "schedule"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_official_result(self, match_key: str) -> OfficialResult:
        match = await self.session.get(MatchSchedule, match_key)
        if match is None:
            raise NotFound(f"Match {match_key} not found", {"match_key": match_key})
        if not match.score_breakdown:
            raise NotFound(f"No official result imported for {match_key}", {"match_key": match_key})
        return build_official_result(
            match_key,
            {"red": match.red_teams, "blue": match.blue_teams},
            match.score_breakdown,
            match.season_year,
        )


class SqlRatingStore(RatingStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"[RATING-STORE] {operation} failed: {e}")
            await self._rollback()
            raise PersistenceError(f"{operation} failed", {"error": type(e).__name__})

    async def _rollback(self) -> None:
        """Roll back and reload what the session still holds.

        Rollback expires every instance in the shared session (the run, the
        match, observations, other scouters' ratings) and an expired instance
        cannot lazy-load under asyncio. Pending rows of the failed write are
        expunged; in-place changes to persistent rows revert to the stored values.
        """
        await self.session.rollback()
        reloaded = 0
        for instance in list(self.session.identity_map.values()):
            try:
                await self.session.refresh(instance)
                reloaded += 1
            except InvalidRequestError:
                # Row no longer exists
                self.session.expunge(instance)
            except SQLAlchemyError as e:
                logger.error(f"[RATING-STORE] Reload after rollback failed: {e}")
                return
        logger.info(f"[RATING-STORE] Rolled back, reloaded {reloaded} instances")

    async def get_rating(self, scouter_id: str, season_year: int, default_rating: float = 1500.0) -> ScouterRating:
        rating = await self.find_rating(scouter_id, season_year)
        if rating is not None:
            return rating
        return ScouterRating(
            scouter_id=scouter_id,
            season_year=season_year,
            current_elo=default_rating,
            peak_elo=default_rating,
            lowest_elo=default_rating,
        )

    async def find_rating(self, scouter_id: str, season_year: Optional[int] = None) -> Optional[ScouterRating]:
        query = select(ScouterRating).where(ScouterRating.scouter_id == scouter_id)
        if season_year is not None:
            query = query.where(ScouterRating.season_year == season_year)
        query = query.order_by(ScouterRating.season_year.desc()).limit(1)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def save_rating(self, rating: ScouterRating) -> ScouterRating:
        self.session.add(rating)
        await self._commit("save_rating")
        return rating

    async def append_history(self, entry: EloHistoryEntry) -> EloHistoryEntry:
        self.session.add(entry)
        await self._commit("append_history")
        return entry

    async def append_validation_results(self, results: list[ValidationResult]) -> int:
        self.session.add_all(results)
        await self._commit("append_validation_results")
        return len(results)

    async def save_scouter_update(
        self,
        rating: ScouterRating,
        history: EloHistoryEntry,
        results: list[ValidationResult],
    ) -> None:
        self.session.add(rating)
        self.session.add(history)
        self.session.add_all(results)
        await self._commit(f"save_scouter_update({rating.scouter_id})")

    async def get_history(
        self,
        scouter_id: str,
        limit: int = 50,
        offset: int = 0,
        event_key: Optional[str] = None,
        season_year: Optional[int] = None,
    ) -> list[EloHistoryEntry]:
        query = select(EloHistoryEntry).where(EloHistoryEntry.scouter_id == scouter_id)
        if event_key:
            query = query.where(EloHistoryEntry.event_key == event_key)
        if season_year is not None:
            query = query.where(EloHistoryEntry.season_year == season_year)
        query = (
            query.order_by(EloHistoryEntry.created_at.desc(), EloHistoryEntry.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_leaderboard(
        self,
        season_year: Optional[int] = None,
        limit: int = 50,
        scouter_ids: Optional[Iterable[str]] = None,
    ) -> list[ScouterRating]:
        query = select(ScouterRating)
        if season_year is not None:
            query = query.where(ScouterRating.season_year == season_year)
        if scouter_ids is not None:
            query = query.where(ScouterRating.scouter_id.in_(list(scouter_ids)))
        query = query.order_by(
            (ScouterRating.current_elo * ScouterRating.confidence_level).desc(),
            ScouterRating.scouter_id,
        ).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _find_results(self, *conditions, limit: Optional[int] = None, offset: int = 0) -> list[ValidationResult]:
        query = (
            select(ValidationResult)
            .where(*conditions)
            .order_by(ValidationResult.created_at.desc(), ValidationResult.field_path)
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_match_validations(self, match_key: str) -> list[ValidationResult]:
        return await self._find_results(ValidationResult.match_key == match_key)

    async def get_execution_results(self, execution_id: str) -> list[ValidationResult]:
        return await self._find_results(ValidationResult.execution_id == execution_id)

    async def get_scouter_validations(
        self,
        scouter_id: str,
        limit: int = 50,
        offset: int = 0,
        event_key: Optional[str] = None,
        outcome: Optional[str] = None,
    ) -> list[ValidationResult]:
        conditions = [ValidationResult.scouter_id == scouter_id]
        if event_key:
            conditions.append(ValidationResult.event_key == event_key)
        if outcome:
            conditions.append(ValidationResult.validation_outcome == outcome)
        return await self._find_results(*conditions, limit=limit, offset=offset)

    async def get_validation_statistics(
        self,
        scouter_id: Optional[str] = None,
        event_key: Optional[str] = None,
        season_year: Optional[int] = None,
    ) -> ValidationStatistics:
        query = select(
            ValidationResult.strategy,
            ValidationResult.field_path,
            ValidationResult.validation_outcome,
            func.count(ValidationResult.id),
            func.sum(ValidationResult.accuracy_score),
        ).group_by(
            ValidationResult.strategy,
            ValidationResult.field_path,
            ValidationResult.validation_outcome,
        )
        if scouter_id:
            query = query.where(ValidationResult.scouter_id == scouter_id)
        if event_key:
            query = query.where(ValidationResult.event_key == event_key)
        if season_year is not None:
            query = query.where(ValidationResult.season_year == season_year)

        stats = ValidationStatistics()
        for strategy, field_path, outcome, count, accuracy_sum in (await self.session.execute(query)).all():
            stats.add(strategy, field_path, outcome, count, float(accuracy_sum or 0.0))
        return stats

    async def register_run(self, run: ValidationRun) -> bool:
        existing = await self.session.execute(
            select(ValidationRun.id).where(ValidationRun.idempotency_key == run.idempotency_key)
        )
        if existing.first() is not None:
            return False

        self.session.add(run)
        try:
            await self.session.commit()
        except IntegrityError:
            # Lost a race with another process on the unique key
            await self._rollback()
            return False
        except SQLAlchemyError as e:
            await self._rollback()
            raise PersistenceError("register_run failed", {"error": type(e).__name__})
        return True

    async def next_run_version(self, match_key: str, strategy_set: str) -> int:
        result = await self.session.execute(
            select(func.max(ValidationRun.run_version)).where(
                ValidationRun.match_key == match_key,
                ValidationRun.strategy_set == strategy_set,
            )
        )
        current = result.scalar()
        return (current or 0) + 1

    async def complete_run(self, run: ValidationRun) -> None:
        await self.session.execute(
            update(ValidationRun)
            .where(ValidationRun.idempotency_key == run.idempotency_key)
            .values(state=run.state, summary=run.summary, finished_at=run.finished_at or _utc_now())
        )
        await self._commit("complete_run")
