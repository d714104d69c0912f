"""FastAPI application: admin validation surface, health and metrics."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from scoutelo.config import get_settings
from scoutelo.database import close_db, init_db
from scoutelo.routes import core_router, validation_router
from scoutelo.security import limiter

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting scoutelo...")
    await init_db()
    yield
    logger.info("Shutting down scoutelo...")
    await close_db()


app = FastAPI(
    title="scoutelo",
    description="Scouter accuracy validation and ELO ratings",
    version="0.1.0",
    lifespan=lifespan,
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Include routers
app.include_router(core_router)
app.include_router(validation_router)
