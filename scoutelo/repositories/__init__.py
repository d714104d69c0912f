"""Store contracts and SQL implementations."""

from scoutelo.repositories.base import ObservationStore, OfficialResultSource, RatingStore, ValidationStatistics
from scoutelo.repositories.sql import ScheduleOfficialResultSource, SqlObservationStore, SqlRatingStore

__all__ = [
    "ObservationStore",
    "OfficialResultSource",
    "RatingStore",
    "ScheduleOfficialResultSource",
    "SqlObservationStore",
    "SqlRatingStore",
    "ValidationStatistics",
]
