"""
Prometheus metrics for validation runs and the official-result provider.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

ALLOWED LABELS (bounded sets):
- strategy:     "consensus", "official_result"
- outcome:      "exact_match", "close_match", "mismatch", "critical_error"
- state:        "done", "failed", "in_progress"
- reason:       "insufficient_data", "missing_scouter_id", "persistence_error", ...
- elo_outcome:  "gain", "loss", "neutral"
- provider:     "tba"
- endpoint:     "match", "event_matches"
- status_code:  "200", "404", "429", "500", "0"
- error_code:   "timeout", "rate_limit", "http_5xx", "request_error"

FORBIDDEN AS LABELS: match keys, event keys, scouter ids, team numbers.
Use logs for those.
"""

import logging

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

# =============================================================================
# VALIDATION METRICS
# =============================================================================

validation_runs_total = Counter(
    "scoutelo_validation_runs_total",
    "Validation runs by final state",
    ["state"],
)

validation_run_duration_seconds = Histogram(
    "scoutelo_validation_run_duration_seconds",
    "Wall time of one match validation run",
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60],
)

validation_results_total = Counter(
    "scoutelo_validation_results_total",
    "Field-level comparison results",
    ["strategy", "outcome"],
)

validation_skips_total = Counter(
    "scoutelo_validation_skips_total",
    "Scouter/strategy pairs that could not be judged",
    ["strategy", "reason"],
)

elo_updates_total = Counter(
    "scoutelo_elo_updates_total",
    "Persisted rating updates by outcome",
    ["elo_outcome"],
)

elo_update_delta = Histogram(
    "scoutelo_elo_update_delta",
    "Rating delta per persisted update",
    buckets=[-40, -20, -10, -5, -1, 0, 1, 5, 10, 20, 40],
)

# =============================================================================
# PROVIDER METRICS
# =============================================================================

provider_requests_total = Counter(
    "scoutelo_provider_requests_total",
    "Total requests to official-result providers",
    ["provider", "endpoint", "status_code"],
)

provider_errors_total = Counter(
    "scoutelo_provider_errors_total",
    "Errors from official-result providers",
    ["provider", "error_code"],
)

provider_latency_ms = Histogram(
    "scoutelo_provider_latency_ms",
    "Request latency in milliseconds",
    ["provider", "endpoint"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)


def record_validation_run(state: str, duration_seconds: float = None) -> None:
    try:
        validation_runs_total.labels(state=state).inc()
        if duration_seconds is not None:
            validation_run_duration_seconds.observe(duration_seconds)
    except Exception as e:
        logger.warning(f"Failed to record validation run metric: {e}")


def record_validation_results(strategy: str, outcomes: list[str]) -> None:
    try:
        for outcome in outcomes:
            validation_results_total.labels(strategy=strategy, outcome=outcome).inc()
    except Exception as e:
        logger.warning(f"Failed to record validation result metric: {e}")


def record_validation_skip(strategy: str, reason: str) -> None:
    try:
        validation_skips_total.labels(strategy=strategy, reason=reason).inc()
    except Exception as e:
        logger.warning(f"Failed to record validation skip metric: {e}")


def record_elo_update(elo_outcome: str, delta: float) -> None:
    try:
        elo_updates_total.labels(elo_outcome=elo_outcome).inc()
        elo_update_delta.observe(delta)
    except Exception as e:
        logger.warning(f"Failed to record elo update metric: {e}")


def record_provider_request(
    provider: str,
    endpoint: str,
    status_code: int,
    latency_ms: float,
    error_code: str = None,
) -> None:
    """Record a provider request with all associated metrics."""
    try:
        provider_requests_total.labels(
            provider=provider,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()
        provider_latency_ms.labels(provider=provider, endpoint=endpoint).observe(latency_ms)
        if error_code:
            provider_errors_total.labels(provider=provider, error_code=error_code).inc()
    except Exception as e:
        logger.warning(f"Failed to record provider request metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
