"""Progress update orchestrator: one atomic "record activity" operation."""

import asyncio
import weakref
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable
from zoneinfo import ZoneInfo

import structlog

from lingua_progress.config import Settings
from lingua_progress.errors import StoreError, VersionConflictError
from lingua_progress.models.activity import QuizAttempt
from lingua_progress.models.leaderboard import (
    LeaderboardEntry,
    LeaderboardMetric,
    ProgressUpdate,
)
from lingua_progress.models.user_profile import UserProfile
from lingua_progress.progress.badges import BadgeCatalog, evaluate_badges, get_badge_catalog
from lingua_progress.progress.calculator import (
    DEFAULT_ASSIGNMENT_XP,
    DEFAULT_LISTENING_XP,
    WEEKLY_WINDOW,
    CalculationResult,
    apply_activity,
    apply_assignment_completion,
)
from lingua_progress.progress.leaderboard import build_leaderboard
from lingua_progress.progress.normalizer import normalize_activity
from lingua_progress.storage.quiz_history import QuizHistoryStore
from lingua_progress.storage.user_profile import JsonProfileStore, ProfileStore

logger = structlog.get_logger()


class ProgressOrchestrator:
    """Records learner activity and reports what it earned.

    Updates for one user are serialized by an in-process lock, and every
    save carries the version the update was computed from. If another
    process saved in between, the profile is reloaded and the update
    recomputed, up to ``max_retries`` attempts.

    Args:
        store: Profile store adapter.
        history: Quiz attempt history store.
        catalog: Badge catalog to evaluate.
        tz: Time zone that defines a calendar day for streaks.
        listening_xp: XP for a newly correct listening exercise.
        assignment_xp: XP for completing a reading/listening assignment.
        max_retries: Compute-and-save attempts before giving up on conflicts.
        weekly_window: Window for weekly XP.
    """

    def __init__(
        self,
        store: ProfileStore,
        history: QuizHistoryStore,
        catalog: BadgeCatalog,
        tz: tzinfo = timezone.utc,
        listening_xp: int = DEFAULT_LISTENING_XP,
        assignment_xp: int = DEFAULT_ASSIGNMENT_XP,
        max_retries: int = 3,
        weekly_window: timedelta = WEEKLY_WINDOW,
    ):
        self.store = store
        self.history = history
        self.catalog = catalog
        self.tz = tz
        self.listening_xp = listening_xp
        self.assignment_xp = assignment_xp
        self.max_retries = max_retries
        self.weekly_window = weekly_window
        # Entries disappear once no task holds or waits on the lock.
        self._user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProgressOrchestrator":
        return cls(
            store=JsonProfileStore(settings.profiles_dir),
            history=QuizHistoryStore(settings.quiz_history_dir),
            catalog=get_badge_catalog(),
            tz=ZoneInfo(settings.streak_timezone),
            listening_xp=settings.listening_xp,
            assignment_xp=settings.assignment_xp,
            max_retries=settings.max_update_retries,
            weekly_window=timedelta(days=settings.weekly_window_days),
        )

    async def record_activity(self, user_id: str, raw_activity: Any) -> ProgressUpdate:
        """Apply one completed activity to a learner's profile.

        Args:
            user_id: Learner whose profile is updated.
            raw_activity: Quiz, pronunciation or listening submission.

        Returns:
            XP gained, newly unlocked badges and the saved profile.

        Raises:
            InvalidActivityError: Malformed submission (nothing is written).
            ProfileNotFoundError: No profile for ``user_id``.
            VersionConflictError: Conflicting writes persisted past all retries.
            StoreError: Persistence failed.
        """
        event = normalize_activity(raw_activity)

        def compute(profile: UserProfile) -> CalculationResult:
            return apply_activity(
                profile,
                event,
                tz=self.tz,
                listening_xp=self.listening_xp,
                weekly_window=self.weekly_window,
            )

        update = await self._update(user_id, compute)
        logger.info(
            "activity_recorded",
            user_id=user_id,
            kind=event.kind.value,
            key=event.key,
            xp_gained=update.xp_gained,
            badges_unlocked=update.badges_unlocked,
        )
        return update

    async def complete_assignment(
        self,
        user_id: str,
        assignment_id: str,
        completed_at: datetime | None = None,
    ) -> ProgressUpdate:
        """Mark a reading or listening assignment as finished."""
        completed_at = completed_at or datetime.now(timezone.utc)

        def compute(profile: UserProfile) -> CalculationResult:
            return apply_assignment_completion(
                profile,
                assignment_id,
                completed_at,
                tz=self.tz,
                assignment_xp=self.assignment_xp,
                weekly_window=self.weekly_window,
            )

        update = await self._update(user_id, compute)
        logger.info(
            "assignment_completed",
            user_id=user_id,
            assignment_id=assignment_id,
            xp_gained=update.xp_gained,
        )
        return update

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    async def _update(
        self,
        user_id: str,
        compute: Callable[[UserProfile], CalculationResult],
    ) -> ProgressUpdate:
        last_conflict: VersionConflictError | None = None
        async with self._lock_for(user_id):
            for attempt_no in range(1, self.max_retries + 1):
                profile = await self.store.load_profile(user_id)
                result = compute(profile)
                if not result.changed:
                    logger.info("activity_already_counted", user_id=user_id)
                    return ProgressUpdate(xp_gained=0, badges_unlocked=[], profile=profile)

                quiz_history = await self.history.read(user_id)
                if result.attempt is not None and all(
                    a.attempt_id != result.attempt.attempt_id for a in quiz_history
                ):
                    quiz_history = [*quiz_history, result.attempt]

                earned = evaluate_badges(result.profile, quiz_history, self.catalog)
                newly_unlocked = sorted(earned - set(profile.badges))
                result.profile.badges = sorted(set(profile.badges) | earned)

                try:
                    saved = await self.store.save_profile(result.profile, profile.version)
                except VersionConflictError as e:
                    last_conflict = e
                    logger.warning(
                        "profile_version_conflict",
                        user_id=user_id,
                        attempt=attempt_no,
                        expected=e.expected,
                        actual=e.actual,
                    )
                    continue

                # The profile save is the commit point; history only records
                # attempts the profile has credited.
                if result.attempt is not None:
                    await self._record_attempt(user_id, result.attempt)

                return ProgressUpdate(
                    xp_gained=result.xp_delta,
                    badges_unlocked=newly_unlocked,
                    profile=saved,
                )

        logger.error("profile_update_retries_exhausted", user_id=user_id, retries=self.max_retries)
        raise last_conflict

    async def _record_attempt(self, user_id: str, attempt: QuizAttempt) -> None:
        try:
            await self.history.append(user_id, attempt)
        except StoreError:
            # The XP and badges are already saved, so reporting failure would
            # invite a retry that credits the quiz twice.
            logger.exception(
                "quiz_history_append_failed", user_id=user_id, attempt_id=attempt.attempt_id
            )

    async def build_leaderboard(
        self,
        metric: LeaderboardMetric | str,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """Rank the current population of profiles by ``metric``."""
        profiles = await self.store.list_profiles()
        return build_leaderboard(
            profiles,
            metric,
            now=now,
            window=self.weekly_window,
            limit=limit,
        )
