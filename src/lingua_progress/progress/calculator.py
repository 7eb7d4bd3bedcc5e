"""XP and streak rules applied to a profile for one activity."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from lingua_progress.models.activity import ActivityEvent, ActivityKind, QuizAttempt
from lingua_progress.models.user_profile import (
    CompletedAssignment,
    PronunciationBest,
    UserProfile,
    XpAward,
)

DEFAULT_LISTENING_XP = 10
DEFAULT_ASSIGNMENT_XP = 50
WEEKLY_WINDOW = timedelta(days=7)


@dataclass
class CalculationResult:
    """Outcome of applying one activity.

    ``profile`` is always a fresh copy; the input profile is never touched.
    ``changed`` is False only when the activity had no effect at all (an
    assignment that was already completed).
    """

    profile: UserProfile
    xp_delta: int
    attempt: QuizAttempt | None = None
    changed: bool = True


def activity_date(occurred_at: datetime, tz: tzinfo = timezone.utc) -> date:
    """Calendar date of a timestamp in the streak time zone."""
    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)
    return occurred_at.astimezone(tz).date()


def advance_streak(profile: UserProfile, today: date) -> None:
    """Update streak counters for activity on ``today`` (in place)."""
    last = profile.last_active_date
    if last is not None and today < last:
        # Late-arriving event; the streak already covers a later day.
        return
    if last == today:
        pass
    elif last is not None and today - last == timedelta(days=1):
        profile.streak += 1
    else:
        profile.streak = 1
    profile.last_active_date = today
    profile.longest_streak = max(profile.longest_streak, profile.streak)


def grant_xp(
    profile: UserProfile,
    amount: int,
    source: str,
    at: datetime,
    window: timedelta = WEEKLY_WINDOW,
) -> None:
    """Add XP and keep the trailing award log used for weekly totals."""
    cutoff = at - window
    profile.xp_log = [award for award in profile.xp_log if award.awarded_at > cutoff]
    if amount <= 0:
        return
    profile.xp += amount
    profile.xp_log.append(XpAward(amount=amount, awarded_at=at, source=source))


def _mark_completed(
    profile: UserProfile, assignment_id: str, at: datetime, attempt_id: str | None = None
) -> None:
    profile.completed_assignments.append(assignment_id)
    profile.completed_assignment_details.append(
        CompletedAssignment(assignment_id=assignment_id, completed_at=at, attempt_id=attempt_id)
    )


def _quiz_xp(profile: UserProfile, event: ActivityEvent) -> int:
    if event.assignment_id:
        _mark_completed(profile, event.assignment_id, event.occurred_at, event.attempt.attempt_id)
    return event.attempt.percentage


def _reading_xp(profile: UserProfile, event: ActivityEvent) -> int:
    best = profile.pronunciation_scores.get(event.key)
    previous = best.score if best else 0
    if best is not None and event.score <= previous:
        return 0
    profile.pronunciation_scores[event.key] = PronunciationBest(
        score=event.score,
        attempted_at=event.occurred_at,
        transcribed_text=event.transcribed_text,
    )
    return max(event.score - previous, 0)


def _listening_xp(profile: UserProfile, event: ActivityEvent, listening_xp: int) -> int:
    if profile.listening_scores.get(event.key):
        return 0
    profile.listening_scores[event.key] = bool(event.correct)
    return listening_xp if event.correct else 0


def apply_activity(
    profile: UserProfile,
    event: ActivityEvent,
    *,
    tz: tzinfo = timezone.utc,
    listening_xp: int = DEFAULT_LISTENING_XP,
    weekly_window: timedelta = WEEKLY_WINDOW,
) -> CalculationResult:
    """Compute the XP delta and updated streak for one activity.

    Quizzes earn their percentage as XP; assignment-linked quizzes earn it
    only on first completion. Reading earns the improvement over the
    best-ever score for the sentence. Listening earns ``listening_xp`` the
    first time an exercise is answered correctly.

    Args:
        profile: Current profile (not modified).
        event: Normalized activity.
        tz: Time zone that defines a calendar day for streaks.
        listening_xp: XP for a newly correct listening exercise.
        weekly_window: How much of the XP log to keep.

    Returns:
        CalculationResult with the updated profile copy.
    """
    if (
        event.kind == ActivityKind.QUIZ
        and event.assignment_id
        and profile.has_completed(event.assignment_id)
    ):
        return CalculationResult(profile=profile.model_copy(deep=True), xp_delta=0, changed=False)

    updated = profile.model_copy(deep=True)
    attempt = None

    if event.kind == ActivityKind.QUIZ:
        xp_delta = _quiz_xp(updated, event)
        attempt = event.attempt
    elif event.kind == ActivityKind.READING:
        xp_delta = _reading_xp(updated, event)
    else:
        xp_delta = _listening_xp(updated, event, listening_xp)

    grant_xp(updated, xp_delta, event.kind.value, event.occurred_at, weekly_window)
    advance_streak(updated, activity_date(event.occurred_at, tz))
    return CalculationResult(profile=updated, xp_delta=xp_delta, attempt=attempt)


def apply_assignment_completion(
    profile: UserProfile,
    assignment_id: str,
    completed_at: datetime,
    *,
    tz: tzinfo = timezone.utc,
    assignment_xp: int = DEFAULT_ASSIGNMENT_XP,
    weekly_window: timedelta = WEEKLY_WINDOW,
) -> CalculationResult:
    """Mark a reading or listening assignment finished, awarding XP once."""
    if profile.has_completed(assignment_id):
        return CalculationResult(profile=profile.model_copy(deep=True), xp_delta=0, changed=False)

    updated = profile.model_copy(deep=True)
    _mark_completed(updated, assignment_id, completed_at)
    grant_xp(updated, assignment_xp, "assignment", completed_at, weekly_window)
    advance_streak(updated, activity_date(completed_at, tz))
    return CalculationResult(profile=updated, xp_delta=assignment_xp)
