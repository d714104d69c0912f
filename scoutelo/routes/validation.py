"""Admin routes: trigger validation runs, leaderboards, scouter detail and validation evidence.

All endpoints require the admin API key.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from scoutelo.config import get_settings
from scoutelo.database import get_async_session
from scoutelo.elo.ranks import get_progress_to_next_rank
from scoutelo.errors import InvalidInput, NotFound, ScoutEloError
from scoutelo.security import limiter, verify_api_key
from scoutelo.validation.service import ScouterValidationService, create_validation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["validation"], dependencies=[Depends(verify_api_key)])
settings = get_settings()


class ExecuteValidationRequest(BaseModel):
    event_key: Optional[str] = None
    match_key: Optional[str] = None
    strategies: Optional[list[str]] = None
    run_version: Optional[int] = None


async def get_validation_service(session: AsyncSession = Depends(get_async_session)):
    service = create_validation_service(session)
    try:
        yield service
    finally:
        close = getattr(service.official_source, "close", None)
        if close is not None:
            await close()


def _http_error(e: ScoutEloError) -> HTTPException:
    if isinstance(e, InvalidInput):
        return HTTPException(status_code=400, detail=e.to_dict())
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=e.to_dict())
    logger.error(f"[ADMIN] Unexpected {e.code}: {e.message}")
    return HTTPException(status_code=500, detail=e.to_dict())


@router.post("/validation/execute")
@limiter.limit(settings.RATE_LIMIT_EXECUTE)
async def execute_validation(
    request: Request,
    body: ExecuteValidationRequest,
    service: ScouterValidationService = Depends(get_validation_service),
):
    """Validate one match or a whole event and return the execution summary."""
    if bool(body.event_key) == bool(body.match_key):
        raise HTTPException(
            status_code=400,
            detail=InvalidInput("Provide exactly one of event_key or match_key").to_dict(),
        )

    try:
        if body.match_key:
            summary = await service.validate_match(body.match_key, body.strategies, body.run_version)
        else:
            summary = await service.validate_event(body.event_key, body.strategies)
    except ScoutEloError as e:
        raise _http_error(e)

    logger.info(
        f"[ADMIN] Validation {summary.execution_id[:8]} for {body.match_key or body.event_key}: "
        f"state={summary.state}, updates={len(summary.elo_updates)}"
    )
    return summary.to_dict()


@router.get("/validation/leaderboard")
async def get_leaderboard(
    season_year: Optional[int] = Query(None),
    event_key: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    service: ScouterValidationService = Depends(get_validation_service),
):
    """Scouters ordered by current_elo x confidence_level, optionally only those who scouted an event."""
    try:
        ratings = await service.get_leaderboard(season_year, limit, event_key)
    except ScoutEloError as e:
        raise _http_error(e)

    entries = []
    for position, rating in enumerate(ratings, start=1):
        entry = rating.to_dict()
        entry["position"] = position
        entry["rank"] = get_progress_to_next_rank(rating.current_elo).rank.value
        entry["weighted_score"] = round(rating.current_elo * rating.confidence_level, 2)
        entries.append(entry)
    return {"season_year": season_year, "event_key": event_key, "count": len(entries), "leaderboard": entries}


@router.get("/scouters/{scouter_id}/rating")
async def get_scouter_rating(
    scouter_id: str,
    season_year: Optional[int] = Query(None),
    service: ScouterValidationService = Depends(get_validation_service),
):
    """Current rating with rank, progress to the next rank and the delta of a perfect run."""
    rating = await service.get_scouter_rating(scouter_id, season_year)
    if rating is None:
        raise HTTPException(
            status_code=404,
            detail=NotFound(f"No rating for scouter {scouter_id}").to_dict(),
        )

    data = rating.to_dict()
    data["rank_progress"] = get_progress_to_next_rank(rating.current_elo).to_dict()
    data["success_rate"] = (
        round(rating.successful_validations / rating.total_validations, 4) if rating.total_validations else None
    )
    data["predicted_delta_perfect"] = round(service.calculator.predict_delta(rating.current_elo, 1.0), 2)
    return data


@router.get("/scouters/{scouter_id}/history")
async def get_scouter_history(
    scouter_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    event_key: Optional[str] = Query(None),
    season_year: Optional[int] = Query(None),
    service: ScouterValidationService = Depends(get_validation_service),
):
    """Rating changes, newest first."""
    try:
        history = await service.get_scouter_history(scouter_id, limit, offset, event_key, season_year)
    except ScoutEloError as e:
        raise _http_error(e)
    return {
        "scouter_id": scouter_id,
        "limit": limit,
        "offset": offset,
        "history": [h.to_dict() for h in history],
    }


@router.get("/scouters/{scouter_id}/validations")
async def get_scouter_validations(
    scouter_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    event_key: Optional[str] = Query(None),
    outcome: Optional[str] = Query(None),
    service: ScouterValidationService = Depends(get_validation_service),
):
    """Field-level evidence rows for one scouter, newest first."""
    try:
        results = await service.get_scouter_validations(scouter_id, limit, offset, event_key, outcome)
    except ScoutEloError as e:
        raise _http_error(e)
    return {
        "scouter_id": scouter_id,
        "limit": limit,
        "offset": offset,
        "validations": [r.to_dict() for r in results],
    }


@router.get("/scouters/{scouter_id}/statistics")
async def get_scouter_statistics(
    scouter_id: str,
    season_year: Optional[int] = Query(None),
    service: ScouterValidationService = Depends(get_validation_service),
):
    try:
        stats = await service.get_validation_statistics(scouter_id=scouter_id, season_year=season_year)
    except ScoutEloError as e:
        raise _http_error(e)
    return {"scouter_id": scouter_id, "season_year": season_year, **stats.to_dict()}


@router.get("/validation/events/{event_key}/statistics")
async def get_event_statistics(
    event_key: str,
    service: ScouterValidationService = Depends(get_validation_service),
):
    try:
        stats = await service.get_validation_statistics(event_key=event_key)
    except ScoutEloError as e:
        raise _http_error(e)
    return {"event_key": event_key, **stats.to_dict()}


@router.get("/validation/matches/{match_key}/results")
async def get_match_validations(
    match_key: str,
    service: ScouterValidationService = Depends(get_validation_service),
):
    """Every comparison recorded for a match, across runs."""
    try:
        results = await service.get_match_validations(match_key)
    except ScoutEloError as e:
        raise _http_error(e)
    return {"match_key": match_key, "count": len(results), "results": [r.to_dict() for r in results]}


@router.get("/validation/executions/{execution_id}/results")
async def get_execution_results(
    execution_id: str,
    service: ScouterValidationService = Depends(get_validation_service),
):
    try:
        results = await service.get_execution_results(execution_id)
    except ScoutEloError as e:
        raise _http_error(e)
    if not results:
        raise HTTPException(
            status_code=404,
            detail=NotFound(f"No results recorded for execution {execution_id}").to_dict(),
        )
    return {"execution_id": execution_id, "count": len(results), "results": [r.to_dict() for r in results]}
