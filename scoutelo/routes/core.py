"""Core routes: health, metrics."""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from scoutelo.security import limiter
from scoutelo.telemetry import get_metrics_text

router = APIRouter(tags=["core"])


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=HealthResponse)
@limiter.limit("120/minute")
async def health_check(request: Request):
    """Health check endpoint."""
    return HealthResponse(status="ok")


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus scrape endpoint."""
    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)
