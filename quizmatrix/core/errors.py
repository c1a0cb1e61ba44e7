"""Domain errors raised by the quiz core.

Every failed operation raises one of these; the class (and its ``code``) tells
callers which category they are dealing with so the HTTP layer and any other
front-end can react without parsing messages.
"""

from __future__ import annotations


class QuizError(Exception):
    """Base class for all quiz domain errors."""

    code: str = "quiz_error"


class ValidationError(QuizError, ValueError):
    """Raised when input is malformed; nothing has been written."""

    code = "validation_error"


class NotFoundError(QuizError, LookupError):
    """Raised when a referenced quiz, question or participant does not exist."""

    code = "not_found"


class IllegalTransitionError(QuizError):
    """Raised when a lifecycle change is not permitted from the current status."""

    code = "illegal_transition"


class AlreadyAnsweredError(QuizError):
    """Raised when a participant submits a second answer for the same question."""

    code = "already_answered"

    def __init__(self, uid: str, question_index: int) -> None:
        super().__init__(f"Participant {uid} already answered question {question_index}.")
        self.uid = uid
        self.question_index = question_index


class AccessDeniedError(QuizError):
    """Raised when an identity is not allowed to join or manage a quiz."""

    code = "access_denied"


class StoreError(QuizError):
    """Raised when the underlying store fails; the caller owns any retry."""

    code = "store_error"
