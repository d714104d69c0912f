"""Admin surface guards: per-client rate limiting and the API key check."""

import logging
import os
import secrets
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.util import get_remote_address

from scoutelo.config import get_settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = get_settings().API_KEY_HEADER

limiter = Limiter(key_func=get_remote_address)
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def _is_production() -> bool:
    return os.getenv("SCOUTELO_ENV") == "production"


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> bool:
    """
    Guard for the validation endpoints.

    An empty API_KEY disables the check in development and fails closed
    (503) in production.
    """
    expected = get_settings().API_KEY
    if not expected:
        if _is_production():
            logger.error("[AUTH] API_KEY unset in production, refusing admin request")
            raise HTTPException(status_code=503, detail="Admin access disabled: API key not configured")
        return True

    if not api_key:
        raise HTTPException(status_code=401, detail=f"Missing API key header {API_KEY_HEADER}")

    if not secrets.compare_digest(api_key.encode(), expected.encode()):
        logger.warning("[AUTH] Rejected admin request with wrong API key")
        raise HTTPException(status_code=403, detail="Invalid API key")

    return True
