"""Progression API endpoints - apply events, read state, badge catalog."""

import logging
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field

from studyhub.core.exceptions import (
    ConcurrentUpdateExceeded,
    InvalidEvent,
    OutOfOrderEvent,
    ProgressionAlreadyExists,
    ProgressionError,
    ProgressionNotFound,
    StorageUnavailable,
)
from studyhub.services.badges import BadgeCatalog
from studyhub.services.engine import ProgressionEngine
from studyhub.services.events import EventKind, ProgressionEvent
from studyhub.services.store import ProgressionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/progression", tags=["progression"])

# HTTP status for each error type; anything else is a 500
ERROR_STATUS_CODES: dict[type[ProgressionError], int] = {
    InvalidEvent: 422,
    ProgressionNotFound: status.HTTP_404_NOT_FOUND,
    ProgressionAlreadyExists: status.HTTP_409_CONFLICT,
    OutOfOrderEvent: status.HTTP_409_CONFLICT,
    ConcurrentUpdateExceeded: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: ProgressionError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_store(request: Request) -> ProgressionStore:
    return request.app.state.store


def get_catalog(request: Request) -> BadgeCatalog:
    return request.app.state.catalog


def get_engine(
    store: ProgressionStore = Depends(get_store),
    catalog: BadgeCatalog = Depends(get_catalog),
) -> ProgressionEngine:
    return ProgressionEngine.from_settings(store, catalog)


# =============================================================================
# SCHEMAS
# =============================================================================

class EventRequest(BaseModel):
    """One user action reported by a feature (flashcards, quizzes, ...)."""
    model_config = ConfigDict(populate_by_name=True)

    kind: str = Field(description=f"One of: {', '.join(k.value for k in EventKind)}")
    correct: int | None = Field(default=None, description="Quiz answers correct")
    total: int | None = Field(default=None, description="Quiz questions total")
    activity_date: date | None = Field(default=None, alias="date", description="Activity day")
    occurred_at: datetime | None = None

    def to_event(self, user_id: int) -> ProgressionEvent:
        payload: dict[str, Any] = {}
        if self.kind == EventKind.QUIZ_COMPLETED.value:
            payload = {"correct": self.correct, "total": self.total}
        elif self.activity_date is not None:
            payload = {"date": self.activity_date}
        if self.occurred_at is not None:
            return ProgressionEvent(self.kind, user_id, payload, self.occurred_at)
        return ProgressionEvent(self.kind, user_id, payload)


class LevelProgressResponse(BaseModel):
    level: int
    current_level_xp: int
    next_level_xp: int | None
    xp_to_next_level: int
    progress: float


class ProgressionStateResponse(BaseModel):
    """A user's progression with level progress."""
    user_id: int
    xp: int
    level: int
    streak_current: int
    streak_longest: int
    last_activity_date: str | None
    counters: dict[str, int]
    badges: list[str]
    version: int
    level_progress: LevelProgressResponse


class OutcomeResponse(BaseModel):
    """Result of one applied event."""
    user_id: int
    new_badges: list[str]
    xp_gained: int
    leveled_up: bool
    previous_level: int
    new_level: int
    new_streak_current: int
    badge_xp: int
    version: int


class BadgeDefinitionResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str | None
    xp_reward: int
    metric_type: str | None
    threshold: int | None


class BadgeStatusResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str | None
    xp_reward: int
    earned: bool
    progress: int


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/badges/catalog", response_model=list[BadgeDefinitionResponse])
async def get_badge_catalog(
    catalog: BadgeCatalog = Depends(get_catalog),
) -> list[dict[str, Any]]:
    """All badge definitions in catalog order."""
    return [
        {
            "id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "category": badge.category.value if badge.category else None,
            "xp_reward": badge.xp_reward,
            "metric_type": badge.metric_type,
            "threshold": badge.threshold,
        }
        for badge in catalog
    ]


@router.post(
    "/{user_id}",
    response_model=ProgressionStateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_progression(
    user_id: int,
    store: ProgressionStore = Depends(get_store),
    engine: ProgressionEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Create a zeroed progression record (called at user registration)."""
    state = await store.create(user_id)
    return _state_response(engine, state)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_progression(
    user_id: int,
    store: ProgressionStore = Depends(get_store),
) -> Response:
    """Delete a progression record (called at account deletion)."""
    await store.delete(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}", response_model=ProgressionStateResponse)
async def get_progression(
    user_id: int,
    engine: ProgressionEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Get a user's XP, level, streak, counters and badges."""
    state = await engine.get_state(user_id)
    return _state_response(engine, state)


@router.post("/{user_id}/events", response_model=OutcomeResponse)
async def apply_event(
    user_id: int,
    request: EventRequest,
    engine: ProgressionEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Apply one progression event and return what changed."""
    outcome = await engine.apply(request.to_event(user_id))
    return outcome.to_dict()


@router.post("/{user_id}/reconcile", response_model=OutcomeResponse)
async def reconcile_progression(
    user_id: int,
    engine: ProgressionEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Award any badges the user already qualifies for but does not hold."""
    outcome = await engine.reconcile(user_id)
    return outcome.to_dict()


@router.get("/{user_id}/badges", response_model=list[BadgeStatusResponse])
async def get_badges(
    user_id: int,
    engine: ProgressionEngine = Depends(get_engine),
) -> list[dict[str, Any]]:
    """Every badge with the user's earned flag and progress (0-100)."""
    state = await engine.get_state(user_id)
    return [badge.to_dict() for badge in engine.catalog.describe(state)]


def _state_response(engine: ProgressionEngine, state) -> dict[str, Any]:
    data = state.to_dict()
    data["level_progress"] = engine.level_table.progress(state.xp).to_dict()
    return data
