"""HTTP routers."""

from scoutelo.routes.core import router as core_router
from scoutelo.routes.validation import router as validation_router

__all__ = ["core_router", "validation_router"]
