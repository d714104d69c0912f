"""The Blue Alliance (TBA) API v3 provider and official-result source."""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from scoutelo.config import get_settings
from scoutelo.errors import ExternalSourceError, NotFound
from scoutelo.repositories.base import OfficialResultSource
from scoutelo.validation.fields import build_official_result
from scoutelo.validation.ground_truth import OfficialResult

logger = logging.getLogger(__name__)

PROVIDER = "tba"
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def team_number_from_key(team_key: str) -> int:
    """'frc254' -> 254."""
    return int(str(team_key).removeprefix("frc"))


def parse_official_result(match_json: dict) -> Optional[OfficialResult]:
    """Build an OfficialResult from a TBA match object.

    Returns None when the match has no score breakdown yet.
    """
    match_key = match_json.get("key")
    breakdown = match_json.get("score_breakdown")
    if not match_key or not breakdown:
        return None

    alliances = {}
    for color in ("red", "blue"):
        team_keys = (match_json.get("alliances") or {}).get(color, {}).get("team_keys") or []
        alliances[color] = [team_number_from_key(k) for k in team_keys]

    return build_official_result(match_key, alliances, breakdown, int(match_key[:4]))


class TBAProvider:
    """TBA API client with rate limiting and retries."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        requests_per_second: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.TBA_BASE_URL).rstrip("/")
        rps = settings.TBA_REQUESTS_PER_SECOND if requests_per_second is None else requests_per_second
        self.min_interval = 1.0 / rps if rps > 0 else 0.0
        self.max_retries = settings.TBA_MAX_RETRIES if max_retries is None else max_retries
        self.retry_base_seconds = (
            settings.TBA_RETRY_BASE_SECONDS if retry_base_seconds is None else retry_base_seconds
        )

        self.client = httpx.AsyncClient(
            headers={"X-TBA-Auth-Key": api_key if api_key is not None else settings.TBA_API_KEY},
            timeout=timeout or settings.TBA_TIMEOUT_SECONDS,
            transport=transport,
        )
        self._throttle_lock = asyncio.Lock()
        self._last_request_at = 0.0

    async def _throttle(self) -> None:
        """Keep at least min_interval between request starts."""
        if self.min_interval <= 0:
            return
        async with self._throttle_lock:
            wait = self.min_interval - (time.monotonic() - self._last_request_at)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request_at = time.monotonic()

    async def _request(self, path: str, endpoint: str) -> Any:
        """
        GET a TBA path with rate limiting.

        429, 5xx, timeouts and transport errors are retried with exponential
        backoff. 404 raises NotFound; anything else non-2xx, or running out of
        retries, raises ExternalSourceError.
        """
        from scoutelo.telemetry import record_provider_request

        url = f"{self.base_url}{path}"
        last_error = "unknown"

        for attempt in range(self.max_retries + 1):
            await self._throttle()
            start_time = time.time()
            try:
                response = await self.client.get(url)
            except httpx.TimeoutException as e:
                latency_ms = (time.time() - start_time) * 1000
                record_provider_request(PROVIDER, endpoint, 0, latency_ms, error_code="timeout")
                logger.warning(f"[TBA] Timeout on {path} (attempt {attempt + 1}): {e}")
                last_error = "timeout"
            except httpx.RequestError as e:
                latency_ms = (time.time() - start_time) * 1000
                record_provider_request(PROVIDER, endpoint, 0, latency_ms, error_code="request_error")
                logger.warning(f"[TBA] Request error on {path} (attempt {attempt + 1}): {e}")
                last_error = "request_error"
            else:
                latency_ms = (time.time() - start_time) * 1000
                status = response.status_code

                if status == 404:
                    record_provider_request(PROVIDER, endpoint, status, latency_ms)
                    raise NotFound(f"TBA has no resource at {path}", {"path": path})

                if status in RETRYABLE_STATUS:
                    error_code = "rate_limit" if status == 429 else "http_5xx"
                    record_provider_request(PROVIDER, endpoint, status, latency_ms, error_code=error_code)
                    logger.warning(f"[TBA] HTTP {status} on {path} (attempt {attempt + 1})")
                    last_error = error_code
                elif status >= 400:
                    record_provider_request(PROVIDER, endpoint, status, latency_ms, error_code=f"http_{status}")
                    raise ExternalSourceError(
                        f"TBA returned HTTP {status} for {path}",
                        {"path": path, "status_code": status},
                    )
                else:
                    record_provider_request(PROVIDER, endpoint, status, latency_ms)
                    return response.json()

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_base_seconds * (2**attempt))

        raise ExternalSourceError(
            f"TBA request to {path} failed after {self.max_retries + 1} attempts",
            {"path": path, "last_error": last_error},
        )

    async def get_match(self, match_key: str) -> dict:
        return await self._request(f"/match/{match_key}", "match")

    async def get_event_matches(self, event_key: str) -> list[dict]:
        data = await self._request(f"/event/{event_key}/matches", "event_matches")
        return data or []

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


class TBAOfficialResultSource(OfficialResultSource):
    """Official results from TBA, cached per match for the lifetime of the source."""

    name = "tba"

    def __init__(self, provider: Optional[TBAProvider] = None):
        self.provider = provider or TBAProvider()
        self._cache: dict[str, OfficialResult] = {}

    async def get_official_result(self, match_key: str) -> OfficialResult:
        if match_key in self._cache:
            return self._cache[match_key]

        match_json = await self.provider.get_match(match_key)
        result = parse_official_result(match_json or {})
        if result is None:
            raise NotFound(f"TBA has no score breakdown for {match_key}", {"match_key": match_key})
        self._cache[match_key] = result
        return result

    async def prefetch_event(self, event_key: str) -> None:
        matches = await self.provider.get_event_matches(event_key)
        cached = 0
        for match_json in matches:
            result = parse_official_result(match_json)
            if result is not None:
                self._cache[result.match_key] = result
                cached += 1
        logger.info(f"[TBA] Prefetched {cached}/{len(matches)} official results for {event_key}")

    async def close(self) -> None:
        await self.provider.close()
