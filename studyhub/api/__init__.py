from fastapi import APIRouter
from pydantic import BaseModel

from studyhub.api.progression import router as progression_router
from studyhub.core.config import settings

router = APIRouter()
router.include_router(progression_router)


class HealthResponse(BaseModel):
    """Response from the health check endpoint."""

    status: str
    app: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", app=settings.app_name, version=settings.version)
