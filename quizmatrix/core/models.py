"""Domain models for the quiz platform.

Each persisted model converts to and from the document field contract used in
the store (camelCase keys). Timestamps are normalised through
``coerce_timestamp`` on the way in, so the rest of the core only ever sees
aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from quizmatrix.constants.quiz_constants import (
    DEFAULT_TIME_PER_QUESTION_SECONDS,
    DEFAULT_TOTAL_TIME_SECONDS,
    NO_ANSWER,
)
from quizmatrix.core.timestamps import coerce_timestamp


class QuizStatus(str, Enum):
    DRAFT = "draft"
    WAITING = "waiting"
    LIVE = "live"
    ENDED = "ended"


class TimeMode(str, Enum):
    PER_QUESTION = "perQuestion"
    OVERALL = "overall"


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(slots=True, frozen=True)
class Identity:
    """Authenticated user as supplied by the external identity provider."""

    uid: str
    email: str = ""
    display_name: str = ""
    photo_url: str = ""

    @property
    def normalized_email(self) -> str:
        return normalize_email(self.email)


@dataclass(slots=True)
class QuizSettings:
    """Admin-supplied settings for a new quiz."""

    title: str
    time_mode: TimeMode = TimeMode.PER_QUESTION
    time_per_question: int | None = None
    total_time: int | None = None


@dataclass(slots=True)
class Quiz:
    id: str
    code: str
    title: str
    time_mode: TimeMode
    time_per_question: int = DEFAULT_TIME_PER_QUESTION_SECONDS
    total_time: int = DEFAULT_TOTAL_TIME_SECONDS
    status: QuizStatus = QuizStatus.DRAFT
    current_question_index: int = -1
    question_start_time: datetime | None = None
    quiz_start_time: datetime | None = None
    total_questions: int = 0
    is_restricted: bool = False
    allowed_participants: list[str] = field(default_factory=list)
    shared_with: list[str] = field(default_factory=list)
    created_by: str = ""
    creator_email: str = ""
    created_at: datetime | None = None

    @property
    def time_budget(self) -> int:
        """The time field that is authoritative for this quiz's mode."""
        if self.time_mode is TimeMode.OVERALL:
            return self.total_time
        return self.time_per_question

    @property
    def timer_start(self) -> datetime | None:
        if self.time_mode is TimeMode.OVERALL:
            return self.quiz_start_time
        return self.question_start_time

    def to_document(self) -> dict[str, Any]:
        return {
            "quizCode": self.code,
            "title": self.title,
            "timeMode": self.time_mode.value,
            "timePerQuestion": self.time_per_question,
            "totalTime": self.total_time,
            "status": self.status.value,
            "currentQuestionIndex": self.current_question_index,
            "questionStartTime": self.question_start_time,
            "quizStartTime": self.quiz_start_time,
            "totalQuestions": self.total_questions,
            "isRestricted": self.is_restricted,
            "allowedParticipants": list(self.allowed_participants),
            "sharedWith": list(self.shared_with),
            "createdBy": self.created_by,
            "creatorEmail": self.creator_email,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, quiz_id: str, data: dict[str, Any]) -> "Quiz":
        return cls(
            id=quiz_id,
            code=data.get("quizCode", ""),
            title=data.get("title", ""),
            time_mode=TimeMode(data.get("timeMode", TimeMode.PER_QUESTION.value)),
            time_per_question=int(data.get("timePerQuestion") or DEFAULT_TIME_PER_QUESTION_SECONDS),
            total_time=int(data.get("totalTime") or DEFAULT_TOTAL_TIME_SECONDS),
            status=QuizStatus(data.get("status", QuizStatus.DRAFT.value)),
            current_question_index=int(data.get("currentQuestionIndex", -1)),
            question_start_time=coerce_timestamp(data.get("questionStartTime")),
            quiz_start_time=coerce_timestamp(data.get("quizStartTime")),
            total_questions=int(data.get("totalQuestions", 0)),
            is_restricted=bool(data.get("isRestricted", False)),
            allowed_participants=list(data.get("allowedParticipants") or []),
            shared_with=list(data.get("sharedWith") or []),
            created_by=data.get("createdBy", ""),
            creator_email=data.get("creatorEmail", ""),
            created_at=coerce_timestamp(data.get("createdAt")),
        )


@dataclass(slots=True)
class Question:
    """Multiple-choice question; ``index`` is its zero-based position."""

    id: str
    index: int
    text: str
    options: list[str]
    correct_answer: int
    image_url: str = ""
    option_images: list[str] = field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "text": self.text,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "imageUrl": self.image_url,
            "optionImages": list(self.option_images),
        }

    @classmethod
    def from_document(cls, question_id: str, data: dict[str, Any]) -> "Question":
        return cls(
            id=question_id,
            index=int(data["index"]),
            text=data.get("text", ""),
            options=list(data.get("options") or []),
            correct_answer=int(data.get("correctAnswer", 0)),
            image_url=data.get("imageUrl") or "",
            option_images=list(data.get("optionImages") or []),
        )


@dataclass(slots=True)
class QuestionDraft:
    """Question content as entered by an admin, before validation."""

    text: str
    options: list[str]
    correct_answer: int
    image_url: str = ""
    option_images: list[str] | None = None


@dataclass(slots=True)
class Participant:
    uid: str
    display_name: str = ""
    email: str = ""
    photo_url: str = ""
    score: int = 0
    answered_questions: list[int] = field(default_factory=list)
    joined_at: datetime | None = None

    def has_answered(self, question_index: int) -> bool:
        return question_index in self.answered_questions

    def to_document(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "displayName": self.display_name,
            "email": self.email,
            "photoUrl": self.photo_url,
            "score": self.score,
            "answeredQuestions": list(self.answered_questions),
            "joinedAt": self.joined_at,
        }

    @classmethod
    def from_document(cls, uid: str, data: dict[str, Any]) -> "Participant":
        return cls(
            uid=uid,
            display_name=data.get("displayName") or "",
            email=data.get("email") or "",
            photo_url=data.get("photoUrl") or "",
            score=int(data.get("score") or 0),
            answered_questions=[int(i) for i in data.get("answeredQuestions") or []],
            joined_at=coerce_timestamp(data.get("joinedAt")),
        )


@dataclass(slots=True)
class Response:
    """Append-only record of one scored answer."""

    id: str
    question_index: int
    user_id: str
    selected_answer: int
    is_correct: bool
    time_taken: float
    points: int
    submitted_at: datetime | None = None

    @property
    def is_no_answer(self) -> bool:
        return self.selected_answer == NO_ANSWER

    def to_document(self) -> dict[str, Any]:
        return {
            "questionIndex": self.question_index,
            "userId": self.user_id,
            "selectedAnswer": self.selected_answer,
            "isCorrect": self.is_correct,
            "timeTaken": self.time_taken,
            "points": self.points,
            "submittedAt": self.submitted_at,
        }

    @classmethod
    def from_document(cls, response_id: str, data: dict[str, Any]) -> "Response":
        return cls(
            id=response_id,
            question_index=int(data["questionIndex"]),
            user_id=data["userId"],
            selected_answer=int(data.get("selectedAnswer", NO_ANSWER)),
            is_correct=bool(data.get("isCorrect", False)),
            time_taken=float(data.get("timeTaken", 0.0)),
            points=int(data.get("points", 0)),
            submitted_at=coerce_timestamp(data.get("submittedAt")),
        )
