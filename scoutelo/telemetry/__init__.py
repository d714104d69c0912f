"""
Telemetry Module

Provides Prometheus metrics for:
- Validation runs (state, duration, field outcomes, skips)
- Rating updates (outcome, delta)
- Official-result provider (requests, errors, latency)
"""

from scoutelo.telemetry.metrics import (
    get_metrics_text,
    record_elo_update,
    record_provider_request,
    record_validation_results,
    record_validation_run,
    record_validation_skip,
)

__all__ = [
    "get_metrics_text",
    "record_elo_update",
    "record_provider_request",
    "record_validation_results",
    "record_validation_run",
    "record_validation_skip",
]
