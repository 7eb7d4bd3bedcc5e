"""Leaderboard and progress result models."""

from enum import StrEnum

from pydantic import BaseModel, Field

from lingua_progress.models.user_profile import UserProfile


class LeaderboardMetric(StrEnum):
    """Metrics a leaderboard can be ranked by."""

    BADGE_COUNT = "badgeCount"
    WEEKLY_XP = "weeklyXP"
    STREAK = "streak"


class LeaderboardEntry(BaseModel):
    user_id: str
    name: str
    value: int
    rank: int


class ProgressUpdate(BaseModel):
    """What changed after recording one activity."""

    xp_gained: int = 0
    badges_unlocked: list[str] = Field(default_factory=list)
    profile: UserProfile
