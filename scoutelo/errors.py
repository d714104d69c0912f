"""Error taxonomy for validation and rating updates.

InvalidInput and NotFound are raised to callers. InsufficientData,
ExternalSourceError, PersistenceError and RunInProgress are recovered by the
orchestrator and reported in the execution summary.
"""

from typing import Any, Optional


class ScoutEloError(Exception):
    """Base error with a machine-readable code and optional details."""

    code = "scoutelo_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidInput(ScoutEloError):
    """Malformed arguments (out-of-range scores, bad keys, unknown strategies)."""

    code = "invalid_input"


class NotFound(ScoutEloError):
    """Requested match/event/official result does not exist."""

    code = "not_found"


class InsufficientData(ScoutEloError):
    """A (scouter, strategy) pair cannot be judged."""

    code = "insufficient_data"


class ExternalSourceError(ScoutEloError):
    """Official-result feed unreachable or rate-limited after retries."""

    code = "external_source_error"


class PersistenceError(ScoutEloError):
    """Rating store write failed."""

    code = "persistence_error"


class RunInProgress(ScoutEloError):
    """Another validation run holds the lock for this match."""

    code = "run_in_progress"
