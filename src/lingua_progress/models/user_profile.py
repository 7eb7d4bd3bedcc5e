"""User profile model for tracking learning progress across activities."""

from datetime import date, datetime, timezone

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PronunciationBest(BaseModel):
    """Best-ever pronunciation result for one sentence."""

    score: int = Field(ge=0, le=100)
    attempted_at: datetime
    transcribed_text: str = ""


class CompletedAssignment(BaseModel):
    assignment_id: str
    completed_at: datetime
    attempt_id: str | None = None  # set for quiz assignments


class XpAward(BaseModel):
    amount: int
    awarded_at: datetime
    source: str  # "quiz", "reading", "listening", "assignment"


class UserProfile(BaseModel):
    user_id: str
    name: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = 0
    xp: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_active_date: date | None = None
    badges: list[str] = Field(default_factory=list)
    pronunciation_scores: dict[str, PronunciationBest] = Field(default_factory=dict)
    listening_scores: dict[str, bool] = Field(default_factory=dict)
    completed_assignments: list[str] = Field(default_factory=list)
    completed_assignment_details: list[CompletedAssignment] = Field(default_factory=list)
    xp_log: list[XpAward] = Field(default_factory=list)

    @property
    def badge_count(self) -> int:
        return len(set(self.badges))

    def has_completed(self, assignment_id: str) -> bool:
        return assignment_id in self.completed_assignments
