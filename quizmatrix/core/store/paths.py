"""Document paths used by the quiz core."""

from __future__ import annotations

from quizmatrix.core.errors import ValidationError

QUIZZES = "quizzes"
QUESTIONS = "questions"
PARTICIPANTS = "participants"
RESPONSES = "responses"

QUIZ_CHILD_COLLECTIONS = (QUESTIONS, PARTICIPANTS, RESPONSES)


def _segment(value: str, kind: str) -> str:
    """Return ``value`` if it is usable as a single path segment."""
    if not isinstance(value, str) or not value.strip() or "/" in value:
        raise ValidationError(f"Invalid {kind} {value!r}: must be non-empty and contain no '/'.")
    return value


def quiz_path(quiz_id: str) -> str:
    return f"{QUIZZES}/{_segment(quiz_id, 'quiz id')}"


def questions_path(quiz_id: str) -> str:
    return f"{quiz_path(quiz_id)}/{QUESTIONS}"


def question_path(quiz_id: str, question_id: str) -> str:
    return f"{questions_path(quiz_id)}/{_segment(question_id, 'question id')}"


def participants_path(quiz_id: str) -> str:
    return f"{quiz_path(quiz_id)}/{PARTICIPANTS}"


def participant_path(quiz_id: str, uid: str) -> str:
    return f"{participants_path(quiz_id)}/{_segment(uid, 'user id')}"


def responses_path(quiz_id: str) -> str:
    return f"{quiz_path(quiz_id)}/{RESPONSES}"


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into its parent collection path and document id."""
    collection, _, doc_id = path.rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


def is_document_path(path: str) -> bool:
    return len(path.strip("/").split("/")) % 2 == 0
