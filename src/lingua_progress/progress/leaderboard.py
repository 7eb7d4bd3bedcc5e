"""Leaderboard ranking over a snapshot of learner profiles."""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping

from lingua_progress.models.leaderboard import LeaderboardEntry, LeaderboardMetric
from lingua_progress.models.user_profile import UserProfile
from lingua_progress.progress.calculator import WEEKLY_WINDOW


def _utc(now: datetime | None) -> datetime:
    """Current time if ``now`` is None; naive values are taken as UTC."""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def weekly_xp(
    profile: UserProfile,
    now: datetime | None = None,
    window: timedelta = WEEKLY_WINDOW,
) -> int:
    """XP awarded within the trailing window ending at ``now``."""
    now = _utc(now)
    cutoff = now - window
    return sum(
        award.amount
        for award in profile.xp_log
        if cutoff < award.awarded_at <= now
    )


def metric_value(
    profile: UserProfile,
    metric: LeaderboardMetric,
    *,
    weekly_totals: Mapping[str, int] | None = None,
    now: datetime | None = None,
    window: timedelta = WEEKLY_WINDOW,
) -> int:
    if metric == LeaderboardMetric.BADGE_COUNT:
        return profile.badge_count
    if metric == LeaderboardMetric.STREAK:
        return profile.streak
    if weekly_totals is not None:
        return weekly_totals.get(profile.user_id, 0)
    return weekly_xp(profile, now, window)


def build_leaderboard(
    profiles: Iterable[UserProfile],
    metric: LeaderboardMetric | str,
    *,
    weekly_totals: Mapping[str, int] | None = None,
    now: datetime | None = None,
    window: timedelta = WEEKLY_WINDOW,
    limit: int | None = None,
) -> list[LeaderboardEntry]:
    """Rank profiles by a metric.

    Entries are ordered by value descending, then case-insensitive name,
    then user id. Ranks use standard competition ranking: tied values share
    a rank and the next distinct value skips ahead (10, 10, 8 -> 1, 1, 3).
    Zero values are kept.

    Args:
        profiles: Snapshot of the population to rank.
        metric: badgeCount, weeklyXP or streak.
        weekly_totals: Precomputed weekly XP per user id, if available.
        now: End of the weekly window (defaults to the current time).
        window: Weekly XP window length.
        limit: Keep only the first ``limit`` entries after ranking.

    Returns:
        Ranked leaderboard entries.
    """
    metric = LeaderboardMetric(metric)
    now = _utc(now)

    rows = sorted(
        (
            (metric_value(p, metric, weekly_totals=weekly_totals, now=now, window=window), p)
            for p in profiles
        ),
        key=lambda row: (-row[0], row[1].name.casefold(), row[1].user_id),
    )

    entries: list[LeaderboardEntry] = []
    previous_value: int | None = None
    rank = 0
    for position, (value, profile) in enumerate(rows, start=1):
        if value != previous_value:
            rank = position
            previous_value = value
        entries.append(
            LeaderboardEntry(user_id=profile.user_id, name=profile.name, value=value, rank=rank)
        )

    if limit is not None:
        entries = entries[:limit]
    return entries


def rank_of(entries: Iterable[LeaderboardEntry], user_id: str) -> int | None:
    """Rank of one user in a built leaderboard, or None if absent."""
    return next((entry.rank for entry in entries if entry.user_id == user_id), None)
