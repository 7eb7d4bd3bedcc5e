"""Activity data models: raw submissions, quiz attempts and normalized events."""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from lingua_progress.models.user_profile import utc_now


class ActivityKind(StrEnum):
    """Kinds of learner activity that earn progress."""

    QUIZ = "quiz"
    READING = "reading"
    LISTENING = "listening"


class QuestionType(StrEnum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    FILL_IN_THE_BLANK = "fill-in-the-blank"


class QuizQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: list[str] = Field(default_factory=list)
    answer: str


def answers_match(selected: str, expected: str) -> bool:
    """Compare a learner answer with the expected one, ignoring case and outer whitespace."""
    return selected.strip().casefold() == expected.strip().casefold()


class QuizAttempt(BaseModel):
    """Immutable record of one quiz submission.

    Score and percentage are always derived from the answers, so a stored
    attempt can never disagree with its own questions.
    """

    model_config = ConfigDict(frozen=True)

    attempt_id: str
    topic: str = ""
    questions: list[QuizQuestion]
    selected_answers: list[str]
    completed_at: datetime = Field(default_factory=utc_now)
    assignment_id: str | None = None

    @computed_field
    @property
    def score(self) -> int:
        return sum(
            1
            for question, selected in zip(self.questions, self.selected_answers)
            if answers_match(selected, question.answer)
        )

    @computed_field
    @property
    def total(self) -> int:
        return len(self.questions)

    @computed_field
    @property
    def percentage(self) -> int:
        """Percentage correct, rounded half up."""
        if not self.questions:
            return 0
        return (200 * self.score + self.total) // (2 * self.total)


class QuizSubmission(BaseModel):
    """A finished quiz as submitted by the learner."""

    type: Literal["quiz"] = "quiz"
    topic: str = ""
    questions: list[QuizQuestion]
    selected_answers: list[str]
    assignment_id: str | None = None
    completed_at: datetime | None = None


class PronunciationSubmission(BaseModel):
    """A scored read-aloud attempt for a single sentence."""

    type: Literal["reading"] = "reading"
    sentence: str
    score: int = Field(ge=0, le=100)
    transcribed_text: str = ""
    assignment_id: str | None = None
    attempted_at: datetime | None = None


class ListeningSubmission(BaseModel):
    """A checked answer to a listening exercise."""

    type: Literal["listening"] = "listening"
    exercise_id: str
    correct: bool
    assignment_id: str | None = None
    answered_at: datetime | None = None


RawActivity = Annotated[
    QuizSubmission | PronunciationSubmission | ListeningSubmission,
    Field(discriminator="type"),
]


class ActivityEvent(BaseModel):
    """Canonical representation of a completed activity."""

    model_config = ConfigDict(frozen=True)

    kind: ActivityKind
    key: str
    occurred_at: datetime
    score: int | None = None
    correct: bool | None = None
    assignment_id: str | None = None
    attempt: QuizAttempt | None = None
    transcribed_text: str = ""
