"""Tests for XP and streak rules."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from lingua_progress.models.activity import ActivityEvent, ActivityKind, QuizAttempt, QuizQuestion
from lingua_progress.models.user_profile import PronunciationBest, UserProfile
from lingua_progress.progress.calculator import (
    activity_date,
    apply_activity,
    apply_assignment_completion,
)

DAY1 = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def quiz_event(correct: int, total: int, at: datetime = DAY1, assignment_id: str | None = None):
    questions = [QuizQuestion(question=f"Q{i}", answer="yes") for i in range(total)]
    answers = ["yes"] * correct + ["no"] * (total - correct)
    key = assignment_id or "session-1"
    attempt = QuizAttempt(
        attempt_id=key,
        questions=questions,
        selected_answers=answers,
        completed_at=at,
        assignment_id=assignment_id,
    )
    return ActivityEvent(
        kind=ActivityKind.QUIZ,
        key=key,
        occurred_at=at,
        score=attempt.percentage,
        assignment_id=assignment_id,
        attempt=attempt,
    )


def reading_event(score: int, at: datetime = DAY1, key: str = "I like tea_~abcd1234"):
    return ActivityEvent(kind=ActivityKind.READING, key=key, occurred_at=at, score=score)


def listening_event(correct: bool, at: datetime = DAY1, key: str = "u1e1"):
    return ActivityEvent(kind=ActivityKind.LISTENING, key=key, occurred_at=at, correct=correct)


class TestQuizXp:
    def test_xp_equals_percentage(self):
        result = apply_activity(UserProfile(user_id="u"), quiz_event(4, 5))
        assert result.xp_delta == 80
        assert result.profile.xp == 80
        assert result.attempt is not None

    def test_non_assignment_quiz_earns_every_time(self):
        first = apply_activity(UserProfile(user_id="u"), quiz_event(5, 5))
        second = apply_activity(first.profile, quiz_event(5, 5))
        assert second.xp_delta == 100
        assert second.profile.xp == 200

    def test_assignment_quiz_earns_once(self):
        first = apply_activity(UserProfile(user_id="u"), quiz_event(3, 4, assignment_id="asg-1"))
        assert first.xp_delta == 75
        assert first.profile.completed_assignments == ["asg-1"]
        assert first.profile.completed_assignment_details[0].attempt_id == "asg-1"

        later = DAY1 + timedelta(days=1)
        second = apply_activity(first.profile, quiz_event(4, 4, at=later, assignment_id="asg-1"))
        assert second.xp_delta == 0
        assert second.changed is False
        assert second.attempt is None
        assert second.profile.completed_assignments == ["asg-1"]
        assert second.profile.streak == first.profile.streak
        assert second.profile.last_active_date == first.profile.last_active_date

    def test_input_profile_not_mutated(self):
        profile = UserProfile(user_id="u")
        apply_activity(profile, quiz_event(5, 5, assignment_id="asg-1"))
        assert profile.xp == 0
        assert profile.completed_assignments == []
        assert profile.last_active_date is None


class TestReadingXp:
    def test_first_attempt_records_best(self):
        result = apply_activity(UserProfile(user_id="u"), reading_event(70))
        assert result.xp_delta == 70
        assert result.profile.pronunciation_scores["I like tea_~abcd1234"].score == 70

    def test_worse_score_keeps_best_and_earns_nothing(self):
        first = apply_activity(UserProfile(user_id="u"), reading_event(80))
        second = apply_activity(first.profile, reading_event(60))
        assert second.xp_delta == 0
        assert second.profile.pronunciation_scores["I like tea_~abcd1234"].score == 80
        assert second.profile.xp == first.profile.xp

    def test_equal_score_earns_nothing(self):
        first = apply_activity(UserProfile(user_id="u"), reading_event(80))
        second = apply_activity(first.profile, reading_event(80))
        assert second.xp_delta == 0

    def test_improvement_earns_difference(self):
        profile = UserProfile(
            user_id="u",
            pronunciation_scores={
                "I like tea_~abcd1234": PronunciationBest(score=80, attempted_at=DAY1)
            },
        )
        result = apply_activity(profile, reading_event(95))
        assert result.xp_delta == 15
        assert result.profile.pronunciation_scores["I like tea_~abcd1234"].score == 95


class TestListeningXp:
    def test_correct_first_time_earns(self):
        result = apply_activity(UserProfile(user_id="u"), listening_event(True))
        assert result.xp_delta == 10
        assert result.profile.listening_scores == {"u1e1": True}

    def test_incorrect_recorded_without_xp(self):
        result = apply_activity(UserProfile(user_id="u"), listening_event(False))
        assert result.xp_delta == 0
        assert result.profile.listening_scores == {"u1e1": False}

    def test_flip_to_correct_earns(self):
        first = apply_activity(UserProfile(user_id="u"), listening_event(False))
        second = apply_activity(first.profile, listening_event(True), listening_xp=15)
        assert second.xp_delta == 15
        assert second.profile.listening_scores["u1e1"] is True

    def test_correct_never_flips_back(self):
        first = apply_activity(UserProfile(user_id="u"), listening_event(True))
        second = apply_activity(first.profile, listening_event(False))
        assert second.xp_delta == 0
        assert second.profile.listening_scores["u1e1"] is True

    def test_repeat_correct_earns_nothing(self):
        first = apply_activity(UserProfile(user_id="u"), listening_event(True))
        second = apply_activity(first.profile, listening_event(True))
        assert second.xp_delta == 0
        assert second.profile.xp == 10


class TestStreak:
    def test_first_activity_starts_streak(self):
        result = apply_activity(UserProfile(user_id="u"), listening_event(False))
        assert result.profile.streak == 1
        assert result.profile.last_active_date == date(2026, 3, 10)

    def test_same_day_unchanged(self):
        profile = UserProfile(user_id="u", streak=4, last_active_date=date(2026, 3, 10))
        result = apply_activity(profile, listening_event(False, at=DAY1 + timedelta(hours=5)))
        assert result.profile.streak == 4

    def test_yesterday_increments_by_one(self):
        profile = UserProfile(user_id="u", streak=4, last_active_date=date(2026, 3, 9))
        result = apply_activity(profile, listening_event(False))
        assert result.profile.streak == 5
        assert result.profile.last_active_date == date(2026, 3, 10)

    def test_gap_resets_to_one(self):
        profile = UserProfile(
            user_id="u", streak=9, longest_streak=9, last_active_date=date(2026, 3, 8)
        )
        result = apply_activity(profile, listening_event(False))
        assert result.profile.streak == 1
        assert result.profile.longest_streak == 9

    def test_date_updated_even_without_xp(self):
        profile = UserProfile(
            user_id="u",
            streak=2,
            last_active_date=date(2026, 3, 9),
            pronunciation_scores={
                "I like tea_~abcd1234": PronunciationBest(score=90, attempted_at=DAY1)
            },
        )
        result = apply_activity(profile, reading_event(50))
        assert result.xp_delta == 0
        assert result.profile.streak == 3
        assert result.profile.last_active_date == date(2026, 3, 10)

    def test_late_event_does_not_rewind(self):
        profile = UserProfile(user_id="u", streak=3, last_active_date=date(2026, 3, 10))
        result = apply_activity(profile, listening_event(True, at=DAY1 - timedelta(days=2)))
        assert result.profile.streak == 3
        assert result.profile.last_active_date == date(2026, 3, 10)

    def test_longest_streak_tracks_max(self):
        profile = UserProfile(
            user_id="u", streak=6, longest_streak=6, last_active_date=date(2026, 3, 9)
        )
        result = apply_activity(profile, listening_event(False))
        assert result.profile.longest_streak == 7

    def test_time_zone_defines_calendar_day(self):
        late_evening_utc = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)
        assert activity_date(late_evening_utc) == date(2026, 3, 10)
        assert activity_date(late_evening_utc, ZoneInfo("Asia/Tokyo")) == date(2026, 3, 11)

    def test_streak_in_local_time_zone(self):
        profile = UserProfile(user_id="u", streak=1, last_active_date=date(2026, 3, 10))
        late_evening_utc = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)
        result = apply_activity(
            profile, listening_event(False, at=late_evening_utc), tz=ZoneInfo("Asia/Tokyo")
        )
        assert result.profile.streak == 2


class TestXpLog:
    def test_awards_logged(self):
        result = apply_activity(UserProfile(user_id="u"), quiz_event(1, 2))
        assert [a.amount for a in result.profile.xp_log] == [50]
        assert result.profile.xp_log[0].source == "quiz"

    def test_old_awards_pruned(self):
        first = apply_activity(UserProfile(user_id="u"), quiz_event(1, 1))
        later = DAY1 + timedelta(days=8)
        second = apply_activity(first.profile, quiz_event(1, 2, at=later))
        assert [a.amount for a in second.profile.xp_log] == [50]
        assert second.profile.xp == 150


class TestAssignmentCompletion:
    def test_awards_once(self):
        first = apply_assignment_completion(
            UserProfile(user_id="u"), "read-1", DAY1, assignment_xp=50
        )
        assert first.xp_delta == 50
        assert first.profile.completed_assignments == ["read-1"]
        assert first.profile.streak == 1

        second = apply_assignment_completion(first.profile, "read-1", DAY1 + timedelta(days=1))
        assert second.xp_delta == 0
        assert second.changed is False
        assert second.profile.completed_assignments == ["read-1"]
