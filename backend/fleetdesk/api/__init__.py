"""API router modules."""

from fastapi import APIRouter

from fleetdesk.core.config import get_settings
from fleetdesk.schemas.common import ErrorEnvelope

from .v1 import router as api_v1_router

settings = get_settings()

_ERROR_RESPONSES = {
    status: {"model": ErrorEnvelope} for status in (400, 401, 403, 404, 409, 500)
}

api_router = APIRouter()
api_router.include_router(
    api_v1_router, prefix=settings.api_v1_prefix, responses=_ERROR_RESPONSES
)

__all__ = ["api_router"]
