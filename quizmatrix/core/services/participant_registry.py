"""Service for participant records, answer submission and scoring."""

from __future__ import annotations

from datetime import datetime
import logging
import math

from quizmatrix.constants.quiz_constants import NO_ANSWER
from quizmatrix.core.clock import elapsed_seconds
from quizmatrix.core.errors import (
    AlreadyAnsweredError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from quizmatrix.core.models import Identity, Participant, Quiz, QuizStatus, Response, TimeMode
from quizmatrix.core.scoring import calculate_score
from quizmatrix.core.services.access_gate import ensure_can_join
from quizmatrix.core.services.quiz_repository import read_question_at, read_quiz
from quizmatrix.core.store import SERVER_TIMESTAMP, DocumentStore
from quizmatrix.core.store.paths import participant_path, participants_path, responses_path

logger = logging.getLogger(__name__)


class ParticipantRegistry:
    """Tracks who joined a quiz, their running score and which questions they answered."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def join(self, quiz_id: str, identity: Identity) -> Participant:
        """Register ``identity`` for the quiz. Joining again returns the existing record."""
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            path = participant_path(quiz_id, identity.uid)
            existing = txn.get(path)
            if existing is not None:
                return Participant.from_document(identity.uid, existing)
            if quiz.status in (QuizStatus.DRAFT, QuizStatus.ENDED):
                raise IllegalTransitionError(f"Quiz {quiz_id} is not open for joining ({quiz.status.value}).")
            ensure_can_join(quiz, identity)
            txn.set(path, self._new_participant_document(identity))
            created = txn.require(path)
        logger.info("Participant %s joined quiz %s", identity.uid, quiz_id)
        return Participant.from_document(identity.uid, created)

    def submit_answer(
        self,
        quiz_id: str,
        identity: Identity,
        question_index: int,
        selected_option: int | None,
        time_taken_seconds: float | None,
    ) -> int:
        """Score one answer and return the points awarded.

        The eligibility check, the response record and the score update commit
        as one unit, so a retried submission can never be scored twice. With
        ``time_taken_seconds`` of ``None`` the answer is timed by the server
        clock at commit time.
        """
        selected = NO_ANSWER if selected_option is None else selected_option
        if time_taken_seconds is not None:
            self._validate_time_taken(time_taken_seconds)

        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            if quiz.status is not QuizStatus.LIVE:
                raise IllegalTransitionError(f"Quiz {quiz_id} is not accepting answers ({quiz.status.value}).")
            self._check_question_index(quiz, question_index)
            question = read_question_at(txn, quiz_id, question_index)
            if selected != NO_ANSWER and not (
                isinstance(selected, int) and 0 <= selected < len(question.options)
            ):
                raise ValidationError(f"Selected option {selected!r} is not valid for this question.")
            if time_taken_seconds is None:
                time_taken_seconds = self._server_time_taken(quiz, question_index, txn.commit_time)

            path = participant_path(quiz_id, identity.uid)
            stored = txn.get(path)
            if stored is None:
                ensure_can_join(quiz, identity)
                participant = Participant(uid=identity.uid)
            else:
                participant = Participant.from_document(identity.uid, stored)
            if participant.has_answered(question_index):
                raise AlreadyAnsweredError(identity.uid, question_index)

            is_correct = selected == question.correct_answer
            points = calculate_score(is_correct, time_taken_seconds, quiz.time_budget)
            response = Response(
                id="",
                question_index=question_index,
                user_id=identity.uid,
                selected_answer=selected,
                is_correct=is_correct,
                time_taken=float(time_taken_seconds),
                points=points,
            )
            response_document = response.to_document()
            response_document["submittedAt"] = SERVER_TIMESTAMP
            txn.create(responses_path(quiz_id), response_document)

            answered = [*participant.answered_questions, question_index]
            if stored is None:
                document = self._new_participant_document(identity)
                document.update({"score": points, "answeredQuestions": answered})
                txn.set(path, document)
            else:
                txn.update(path, {"score": participant.score + points, "answeredQuestions": answered})

        logger.debug(
            "Quiz %s: %s answered question %d (%s, %d points)",
            quiz_id,
            identity.uid,
            question_index,
            "correct" if is_correct else "incorrect",
            points,
        )
        return points

    def has_answered(self, quiz_id: str, uid: str, question_index: int) -> bool:
        data = self._store.get(participant_path(quiz_id, uid))
        if data is None:
            return False
        return Participant.from_document(uid, data).has_answered(question_index)

    def get_participant(self, quiz_id: str, uid: str) -> Participant:
        data = self._store.get(participant_path(quiz_id, uid))
        if data is None:
            raise NotFoundError(f"Participant {uid} has not joined quiz {quiz_id}.")
        return Participant.from_document(uid, data)

    def list_participants(self, quiz_id: str) -> list[Participant]:
        return [
            Participant.from_document(snap.id, snap.data)
            for snap in self._store.list(participants_path(quiz_id), order_by="joinedAt")
        ]

    def list_responses(self, quiz_id: str, question_index: int | None = None) -> list[Response]:
        snapshots = self._store.list(
            responses_path(quiz_id),
            where=None if question_index is None else (lambda data: data.get("questionIndex") == question_index),
        )
        return [Response.from_document(snap.id, snap.data) for snap in snapshots]

    # --- Helpers ---

    @staticmethod
    def _new_participant_document(identity: Identity) -> dict[str, object]:
        document = Participant(
            uid=identity.uid,
            display_name=identity.display_name or "Anonymous",
            email=identity.normalized_email,
            photo_url=identity.photo_url,
        ).to_document()
        document["joinedAt"] = SERVER_TIMESTAMP
        return document

    @staticmethod
    def _check_question_index(quiz: Quiz, question_index: int) -> None:
        if not isinstance(question_index, int) or isinstance(question_index, bool):
            raise ValidationError("Question index must be an integer.")
        if not 0 <= question_index < quiz.total_questions:
            raise ValidationError(
                f"Question index {question_index} out of range (quiz has {quiz.total_questions})."
            )
        # Per-question pacing: future questions are not open yet.
        if quiz.time_mode is TimeMode.PER_QUESTION and question_index > quiz.current_question_index:
            raise ValidationError(f"Question {question_index} has not been revealed yet.")

    @staticmethod
    def _server_time_taken(quiz: Quiz, question_index: int, now: datetime) -> float:
        if quiz.time_mode is TimeMode.PER_QUESTION and question_index != quiz.current_question_index:
            # Late answer to an earlier question: its own timer has already run out.
            return float(quiz.time_budget)
        return elapsed_seconds(quiz.timer_start, now)

    @staticmethod
    def _validate_time_taken(time_taken_seconds: float) -> None:
        if isinstance(time_taken_seconds, bool) or not isinstance(time_taken_seconds, (int, float)):
            raise ValidationError("Time taken must be a number of seconds.")
        if not math.isfinite(time_taken_seconds) or time_taken_seconds < 0:
            raise ValidationError("Time taken must be a finite, non-negative number of seconds.")
