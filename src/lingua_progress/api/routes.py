"""REST API routes for recording progress, badges and leaderboards."""

import functools
from typing import Annotated

import structlog
from fastapi import APIRouter, Body, HTTPException, Query
from pydantic import BaseModel

from lingua_progress.config import get_settings
from lingua_progress.errors import (
    InvalidActivityError,
    ProfileExistsError,
    ProfileNotFoundError,
    StoreError,
    VersionConflictError,
)
from lingua_progress.models.activity import (
    ListeningSubmission,
    PronunciationSubmission,
    QuizAttempt,
    QuizSubmission,
)
from lingua_progress.models.leaderboard import LeaderboardEntry, LeaderboardMetric, ProgressUpdate
from lingua_progress.models.user_profile import UserProfile
from lingua_progress.progress.orchestrator import ProgressOrchestrator
from lingua_progress.storage.user_profile import validate_user_id as _validate_user_id

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


class CreateProfileRequest(BaseModel):
    name: str = ""


@functools.lru_cache
def get_orchestrator() -> ProgressOrchestrator:
    """Get the process-wide orchestrator."""
    return ProgressOrchestrator.from_settings(get_settings())


def validate_user_id(user_id: str) -> str:
    try:
        return _validate_user_id(user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid user ID format")


async def _run_update(coro) -> ProgressUpdate:
    try:
        return await coro
    except InvalidActivityError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ProfileNotFoundError:
        raise HTTPException(status_code=404, detail="Profile not found")
    except VersionConflictError:
        raise HTTPException(
            status_code=409, detail="Profile is being updated elsewhere, please retry"
        )
    except StoreError:
        logger.exception("progress_store_error")
        raise HTTPException(
            status_code=503, detail="Progress could not be saved, please retry"
        )


@router.post("/users/{user_id}", status_code=201)
async def create_profile(user_id: str, body: CreateProfileRequest) -> UserProfile:
    """Create an empty profile for a newly signed-up learner."""
    user_id = validate_user_id(user_id)
    try:
        return await get_orchestrator().store.create_profile(user_id, body.name)
    except ProfileExistsError:
        raise HTTPException(status_code=409, detail="Profile already exists")


@router.get("/users/{user_id}/profile")
async def get_profile(user_id: str) -> UserProfile:
    user_id = validate_user_id(user_id)
    try:
        return await get_orchestrator().store.load_profile(user_id)
    except ProfileNotFoundError:
        raise HTTPException(status_code=404, detail="Profile not found")


@router.post("/users/{user_id}/activities")
async def record_activity(
    user_id: str,
    activity: Annotated[
        QuizSubmission | PronunciationSubmission | ListeningSubmission,
        Body(discriminator="type"),
    ],
) -> ProgressUpdate:
    """Record a completed quiz, pronunciation or listening attempt."""
    user_id = validate_user_id(user_id)
    return await _run_update(get_orchestrator().record_activity(user_id, activity))


@router.post("/users/{user_id}/assignments/{assignment_id}/complete")
async def complete_assignment(user_id: str, assignment_id: str) -> ProgressUpdate:
    """Mark a reading or listening assignment as finished."""
    user_id = validate_user_id(user_id)
    return await _run_update(get_orchestrator().complete_assignment(user_id, assignment_id))


@router.get("/users/{user_id}/quizzes")
async def list_quiz_attempts(user_id: str) -> list[QuizAttempt]:
    """Quiz history, newest first."""
    user_id = validate_user_id(user_id)
    try:
        attempts = await get_orchestrator().history.read(user_id)
    except StoreError:
        logger.exception("quiz_history_unavailable", user_id=user_id)
        raise HTTPException(status_code=503, detail="Quiz history unavailable")
    return sorted(attempts, key=lambda a: a.completed_at, reverse=True)


@router.get("/badges")
async def list_badges() -> dict:
    """Badge catalog grouped by category."""
    catalog = get_orchestrator().catalog
    return {
        "version": catalog.version,
        "categories": [
            {
                "id": category.id,
                "title": category.title,
                "badges": [
                    {
                        "id": badge.id,
                        "name": badge.name,
                        "description": badge.description,
                        "icon": badge.icon,
                    }
                    for badge in category.badges
                ],
            }
            for category in catalog.categories
        ],
    }


@router.get("/leaderboard/{metric}")
async def get_leaderboard(
    metric: LeaderboardMetric,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> list[LeaderboardEntry]:
    """Ranked learners for badgeCount, weeklyXP or streak."""
    limit = limit or get_settings().leaderboard_limit
    try:
        return await get_orchestrator().build_leaderboard(metric, limit=limit)
    except StoreError:
        logger.exception("leaderboard_unavailable", metric=metric.value)
        raise HTTPException(status_code=503, detail="Leaderboard unavailable")


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
