"""Smoke tests for Pydantic models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from lingua_progress.models.activity import QuizAttempt, QuizQuestion, answers_match
from lingua_progress.models.leaderboard import LeaderboardMetric
from lingua_progress.models.user_profile import UserProfile


def _attempt(answers: list[str], expected: list[str]) -> QuizAttempt:
    return QuizAttempt(
        attempt_id="attempt-1",
        questions=[QuizQuestion(question=f"Q{i}", answer=a) for i, a in enumerate(expected)],
        selected_answers=answers,
    )


class TestUserProfile:
    def test_default_values(self):
        profile = UserProfile(user_id="alice")
        assert profile.xp == 0
        assert profile.streak == 0
        assert profile.badges == []
        assert profile.last_active_date is None
        assert profile.version == 0
        assert profile.pronunciation_scores == {}
        assert profile.listening_scores == {}

    def test_negative_xp_rejected(self):
        with pytest.raises(ValidationError):
            UserProfile(user_id="alice", xp=-1)

    def test_badge_count_ignores_duplicates(self):
        profile = UserProfile(user_id="alice", badges=["quiz-1", "quiz-1", "streak-7"])
        assert profile.badge_count == 2

    def test_json_roundtrip_keeps_dates(self):
        profile = UserProfile(user_id="alice", last_active_date=datetime(2026, 3, 1).date())
        data = profile.model_dump(mode="json")
        assert data["last_active_date"] == "2026-03-01"
        assert UserProfile(**data).last_active_date == profile.last_active_date


class TestQuizAttempt:
    def test_score_counts_matches(self):
        attempt = _attempt(["a", "b", "x", "d", "e"], ["a", "b", "c", "d", "e"])
        assert attempt.score == 4
        assert attempt.total == 5
        assert attempt.percentage == 80

    def test_comparison_ignores_case_and_whitespace(self):
        attempt = _attempt(["  Paris ", "TRUE"], ["paris", "True"])
        assert attempt.score == 2
        assert attempt.percentage == 100

    def test_percentage_rounds_half_up(self):
        attempt = _attempt(["a"] + ["x"] * 7, ["a"] * 8)
        # 1/8 = 12.5%
        assert attempt.percentage == 13

    def test_percentage_two_thirds(self):
        attempt = _attempt(["a", "b", "x"], ["a", "b", "c"])
        assert attempt.percentage == 67

    def test_dump_includes_derived_fields(self):
        data = _attempt(["a"], ["a"]).model_dump(mode="json")
        assert data["score"] == 1
        assert data["percentage"] == 100

    def test_loading_ignores_stored_score(self):
        data = _attempt(["x"], ["a"]).model_dump(mode="json")
        data["score"] = 1
        data["percentage"] = 100
        loaded = QuizAttempt(**data)
        assert loaded.score == 0
        assert loaded.percentage == 0

    def test_attempt_is_immutable(self):
        attempt = _attempt(["a"], ["a"])
        with pytest.raises(ValidationError):
            attempt.topic = "changed"

    def test_completed_at_defaults_to_utc(self):
        attempt = _attempt(["a"], ["a"])
        assert attempt.completed_at.tzinfo == timezone.utc


def test_answers_match():
    assert answers_match(" Hello", "hello ")
    assert not answers_match("hello", "hallo")


def test_leaderboard_metric_values():
    assert LeaderboardMetric("badgeCount") == LeaderboardMetric.BADGE_COUNT
    assert LeaderboardMetric("weeklyXP") == LeaderboardMetric.WEEKLY_XP
    assert LeaderboardMetric("streak") == LeaderboardMetric.STREAK
