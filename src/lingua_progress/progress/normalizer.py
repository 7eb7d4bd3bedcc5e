"""Turns raw activity submissions into canonical ActivityEvents."""

import hashlib
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import TypeAdapter, ValidationError

from lingua_progress.errors import InvalidActivityError
from lingua_progress.models.activity import (
    ActivityEvent,
    ActivityKind,
    ListeningSubmission,
    PronunciationSubmission,
    QuizAttempt,
    QuizSubmission,
    RawActivity,
)

_UNSAFE_KEY_CHARS = re.compile(r"[.#$\[\]/]")
_WHITESPACE = re.compile(r"\s+")

# Client clocks may run slightly ahead of ours.
MAX_CLOCK_SKEW = timedelta(minutes=5)

_raw_activity_adapter: TypeAdapter[RawActivity] = TypeAdapter(RawActivity)


def sentence_key(sentence: str) -> str:
    """Build a storage-safe key for a reading sentence.

    Characters that cannot appear in a document key are replaced with ``_``.
    When a replacement happens, a short digest of the sentence is appended so
    that e.g. "a.b" and "a_b" stay distinct.

    Args:
        sentence: Sentence text as shown to the learner.

    Returns:
        Key that is identical for every call with the same sentence.
    """
    text = _WHITESPACE.sub(" ", sentence).strip()
    safe = _UNSAFE_KEY_CHARS.sub("_", text)
    if safe == text:
        return safe
    digest = hashlib.sha1(text.encode("utf-8")).hexdigest()[:8]
    return f"{safe}~{digest}"


def _as_utc(value: datetime | None, now: datetime) -> datetime:
    if value is None:
        return now
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _occurred_at(value: datetime | None, now: datetime) -> datetime:
    occurred_at = _as_utc(value, now)
    if occurred_at > now + MAX_CLOCK_SKEW:
        raise InvalidActivityError(
            f"Activity timestamp {occurred_at.isoformat()} is in the future"
        )
    return occurred_at


def _parse(raw: Any) -> QuizSubmission | PronunciationSubmission | ListeningSubmission:
    if isinstance(raw, (QuizSubmission, PronunciationSubmission, ListeningSubmission)):
        return raw
    try:
        return _raw_activity_adapter.validate_python(raw)
    except ValidationError as e:
        raise InvalidActivityError(f"Malformed activity: {e}") from e


def normalize_activity(
    raw: Any,
    *,
    now: datetime | None = None,
    session_id_factory=lambda: str(uuid.uuid4()),
) -> ActivityEvent:
    """Normalize a raw quiz, pronunciation or listening submission.

    Args:
        raw: Submission model or a dict with a ``type`` discriminator.
        now: Timestamp used when the submission carries none.
        session_id_factory: Produces ids for quizzes without an assignment.

    Returns:
        ActivityEvent describing the activity.

    Raises:
        InvalidActivityError: If required fields are missing or inconsistent,
            or the activity is dated more than ``MAX_CLOCK_SKEW`` after ``now``.
    """
    now = _as_utc(now, datetime.now(timezone.utc))
    submission = _parse(raw)

    if isinstance(submission, QuizSubmission):
        if not submission.questions:
            raise InvalidActivityError("Quiz has no questions")
        if len(submission.selected_answers) != len(submission.questions):
            raise InvalidActivityError(
                f"Quiz has {len(submission.questions)} questions but "
                f"{len(submission.selected_answers)} answers"
            )
        key = submission.assignment_id or session_id_factory()
        occurred_at = _occurred_at(submission.completed_at, now)
        attempt = QuizAttempt(
            attempt_id=key,
            topic=submission.topic,
            questions=submission.questions,
            selected_answers=submission.selected_answers,
            completed_at=occurred_at,
            assignment_id=submission.assignment_id,
        )
        return ActivityEvent(
            kind=ActivityKind.QUIZ,
            key=key,
            occurred_at=occurred_at,
            score=attempt.percentage,
            assignment_id=submission.assignment_id,
            attempt=attempt,
        )

    if isinstance(submission, PronunciationSubmission):
        if not submission.sentence.strip():
            raise InvalidActivityError("Pronunciation attempt has no sentence")
        return ActivityEvent(
            kind=ActivityKind.READING,
            key=sentence_key(submission.sentence),
            occurred_at=_occurred_at(submission.attempted_at, now),
            score=submission.score,
            assignment_id=submission.assignment_id,
            transcribed_text=submission.transcribed_text,
        )

    if not submission.exercise_id.strip():
        raise InvalidActivityError("Listening attempt has no exercise id")
    return ActivityEvent(
        kind=ActivityKind.LISTENING,
        key=submission.exercise_id.strip(),
        occurred_at=_occurred_at(submission.answered_at, now),
        correct=submission.correct,
        assignment_id=submission.assignment_id,
    )
