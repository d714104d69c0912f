"""Database models using SQLModel."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Get current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class StrategyType(str, Enum):
    """Closed set of validation strategies."""

    CONSENSUS = "consensus"
    OFFICIAL_RESULT = "official_result"


class ValidationOutcome(str, Enum):
    EXACT_MATCH = "exact_match"
    CLOSE_MATCH = "close_match"
    MISMATCH = "mismatch"
    CRITICAL_ERROR = "critical_error"


class EloOutcome(str, Enum):
    GAIN = "gain"
    LOSS = "loss"
    NEUTRAL = "neutral"


class RunState(str, Enum):
    """Orchestrator run states. DONE and FAILED are terminal."""

    COLLECTING = "collecting"
    COMPARING = "comparing"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


SUCCESS_OUTCOMES = frozenset({ValidationOutcome.EXACT_MATCH.value, ValidationOutcome.CLOSE_MATCH.value})


# =============================================================================
# EXTERNAL TABLES (written by the scouting portal, read here)
# =============================================================================


class MatchSchedule(SQLModel, table=True):
    """Scheduled match with alliance composition and imported official results."""

    __tablename__ = "match_schedule"

    match_key: str = Field(primary_key=True, max_length=100, description="e.g. 2025casj_qm1")
    event_key: str = Field(index=True, max_length=50)
    comp_level: str = Field(default="qm", max_length=10)
    set_number: int = Field(default=1)
    match_number: int = Field(default=0)

    red_1: Optional[int] = Field(default=None)
    red_2: Optional[int] = Field(default=None)
    red_3: Optional[int] = Field(default=None)
    blue_1: Optional[int] = Field(default=None)
    blue_2: Optional[int] = Field(default=None)
    blue_3: Optional[int] = Field(default=None)

    score_breakdown: Optional[dict] = Field(
        default=None, sa_column=Column(JSON), description="Official breakdown {red: {...}, blue: {...}}"
    )
    post_result_time: Optional[int] = Field(default=None, description="Unix time results were posted")

    @property
    def red_teams(self) -> list[int]:
        return [t for t in (self.red_1, self.red_2, self.red_3) if t is not None]

    @property
    def blue_teams(self) -> list[int]:
        return [t for t in (self.blue_1, self.blue_2, self.blue_3) if t is not None]

    @property
    def season_year(self) -> int:
        return int(self.event_key[:4])


class MatchScouting(SQLModel, table=True):
    """One scouted observation: one team in one match by one scouter."""

    __tablename__ = "match_scouting"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    match_key: str = Field(index=True, max_length=100)
    event_key: str = Field(index=True, max_length=50)
    team_number: int = Field(index=True)
    scouter_id: Optional[str] = Field(default=None, index=True, max_length=64)
    scout_name: Optional[str] = Field(default=None, max_length=255)

    auto_performance: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    teleop_performance: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    endgame_performance: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=_utc_now)


# =============================================================================
# RATING TABLES
# =============================================================================


class ScouterRating(SQLModel, table=True):
    """Current ELO rating per scouter per season."""

    __tablename__ = "scouter_elo_ratings"
    __table_args__ = (
        UniqueConstraint("scouter_id", "season_year", name="uq_scouter_season"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    scouter_id: str = Field(index=True, max_length=64)
    season_year: int = Field(index=True)

    current_elo: float = Field(default=1500.0)
    peak_elo: float = Field(default=1500.0)
    lowest_elo: float = Field(default=1500.0)
    confidence_level: float = Field(default=0.5, description="0.0 to 1.0, grows with validations")

    total_validations: int = Field(default=0)
    successful_validations: int = Field(default=0, description="exact_match or close_match")
    failed_validations: int = Field(default=0, description="mismatch or critical_error")

    last_validation_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def to_dict(self) -> dict:
        return {
            "scouter_id": self.scouter_id,
            "season_year": self.season_year,
            "current_elo": self.current_elo,
            "peak_elo": self.peak_elo,
            "lowest_elo": self.lowest_elo,
            "confidence_level": self.confidence_level,
            "total_validations": self.total_validations,
            "successful_validations": self.successful_validations,
            "failed_validations": self.failed_validations,
            "last_validation_at": self.last_validation_at.isoformat() if self.last_validation_at else None,
        }


class ValidationResult(SQLModel, table=True):
    """Append-only field-level comparison record (evidence for a rating change)."""

    __tablename__ = "validation_results"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    execution_id: str = Field(index=True, max_length=64)
    strategy: str = Field(index=True, max_length=50, description="consensus | official_result")
    validation_method: str = Field(max_length=100, description="Strategy class name")

    match_key: str = Field(index=True, max_length=100)
    team_number: int = Field(index=True)
    event_key: str = Field(index=True, max_length=50)
    season_year: int

    scouter_id: str = Field(index=True, max_length=64)
    observation_id: Optional[str] = Field(default=None, max_length=64)

    field_path: str = Field(index=True, max_length=255, description="e.g. teleop.coral_scored_L2")
    expected_value: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    actual_value: Optional[Any] = Field(default=None, sa_column=Column(JSON))

    accuracy_score: float = Field(description="0.0 to 1.0")
    validation_outcome: str = Field(index=True, max_length=20)
    confidence_level: Optional[float] = Field(default=None, description="Confidence in the ground truth")
    weight: float = Field(default=1.0, description="Field weight used during aggregation")
    notes: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=_utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "strategy": self.strategy,
            "match_key": self.match_key,
            "team_number": self.team_number,
            "event_key": self.event_key,
            "scouter_id": self.scouter_id,
            "field_path": self.field_path,
            "expected_value": self.expected_value,
            "actual_value": self.actual_value,
            "accuracy_score": self.accuracy_score,
            "validation_outcome": self.validation_outcome,
            "confidence_level": self.confidence_level,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class EloHistoryEntry(SQLModel, table=True):
    """One rating change per scouter per validation run."""

    __tablename__ = "scouter_elo_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    scouter_id: str = Field(index=True, max_length=64)
    season_year: int

    elo_before: float
    elo_after: float
    elo_delta: float
    outcome: str = Field(max_length=20, description="gain | loss | neutral")
    accuracy_score: float = Field(description="Aggregated score that drove the update")
    k_factor: float = Field(default=32.0)

    match_key: Optional[str] = Field(default=None, index=True, max_length=100)
    team_number: Optional[int] = Field(default=None, description="NULL if several teams were scouted")
    event_key: Optional[str] = Field(default=None, index=True, max_length=50)
    execution_id: str = Field(index=True, max_length=64)
    validation_ids: list = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=_utc_now, index=True)

    def to_dict(self) -> dict:
        return {
            "scouter_id": self.scouter_id,
            "season_year": self.season_year,
            "elo_before": self.elo_before,
            "elo_after": self.elo_after,
            "elo_delta": self.elo_delta,
            "outcome": self.outcome,
            "accuracy_score": self.accuracy_score,
            "k_factor": self.k_factor,
            "match_key": self.match_key,
            "team_number": self.team_number,
            "event_key": self.event_key,
            "execution_id": self.execution_id,
            "validation_ids": list(self.validation_ids or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ValidationRun(SQLModel, table=True):
    """Run ledger guarding against duplicate triggering of the same match."""

    __tablename__ = "validation_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    execution_id: str = Field(index=True, max_length=64)
    match_key: str = Field(index=True, max_length=100)
    strategy_set: str = Field(max_length=100, description="Sorted, comma-joined strategy names")
    run_version: int = Field(default=1)
    idempotency_key: str = Field(unique=True, max_length=32, description="SHA256[:32]")

    state: str = Field(default=RunState.COLLECTING.value, max_length=20)
    started_at: datetime = Field(default_factory=_utc_now)
    finished_at: Optional[datetime] = Field(default=None)
    summary: Optional[dict] = Field(default=None, sa_column=Column(JSON))
