"""Service that owns a quiz's lifecycle status and question pointer."""

from __future__ import annotations

from datetime import datetime
import logging

from quizmatrix.core.clock import elapsed_seconds, remaining_seconds
from quizmatrix.core.errors import IllegalTransitionError, NotFoundError
from quizmatrix.core.models import Quiz, QuizStatus, TimeMode
from quizmatrix.core.services.quiz_repository import read_quiz
from quizmatrix.core.store import SERVER_TIMESTAMP, DocumentStore, Transaction
from quizmatrix.core.store.paths import participants_path, questions_path, quiz_path, responses_path

logger = logging.getLogger(__name__)


def time_remaining(quiz: Quiz, now: datetime) -> int | None:
    """Seconds left on the quiz's active countdown, or ``None`` when none runs."""
    if quiz.status is not QuizStatus.LIVE or quiz.timer_start is None:
        return None
    return remaining_seconds(quiz.timer_start, quiz.time_budget, now)


class GameSession:
    """Enforces the draft → waiting → live → ended lifecycle.

    Every transition is a read-modify-write on the stored quiz inside one
    store transaction, so concurrent callers (an admin click racing a countdown
    observer, say) always act on the current stored state rather than on a
    value they cached earlier.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def start(self, quiz_id: str) -> Quiz:
        """Open the waiting room. Requires at least one question."""
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            self._require_status(quiz, "start", QuizStatus.DRAFT, QuizStatus.WAITING)
            question_count = len(txn.list(questions_path(quiz_id)))
            if question_count == 0:
                raise IllegalTransitionError("A quiz needs at least one question before it can start.")
            txn.update(
                quiz_path(quiz_id),
                {
                    "status": QuizStatus.WAITING.value,
                    "currentQuestionIndex": -1,
                    "questionStartTime": None,
                    "quizStartTime": None,
                    "totalQuestions": question_count,
                },
            )
        self._log_transition(quiz, QuizStatus.WAITING)
        return self._load(quiz_id)

    def advance(self, quiz_id: str, expected_index: int) -> Quiz:
        """Reveal the next question in per-question mode, ending after the last one.

        ``expected_index`` is the question pointer the caller last saw. The call
        only acts if the stored pointer still equals it, so a stale or duplicate
        call returns the stored state unchanged.
        """
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            if quiz.time_mode is not TimeMode.PER_QUESTION:
                raise IllegalTransitionError("Self-paced quizzes do not advance question by question.")
            if quiz.status is QuizStatus.ENDED:
                logger.debug("Ignoring advance of ended quiz %s", quiz_id)
                return quiz
            self._require_status(quiz, "advance", QuizStatus.WAITING, QuizStatus.LIVE)
            if expected_index != quiz.current_question_index:
                logger.debug(
                    "Ignoring stale advance of quiz %s from %d (stored %d)",
                    quiz_id,
                    expected_index,
                    quiz.current_question_index,
                )
                return quiz
            new_status = self._advance_in(txn, quiz)
        self._log_transition(quiz, new_status)
        return self._load(quiz_id)

    def start_self_paced(self, quiz_id: str) -> Quiz:
        """Make every question available at once and start the overall clock."""
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            if quiz.time_mode is not TimeMode.OVERALL:
                raise IllegalTransitionError("Only overall-mode quizzes can be started self-paced.")
            if quiz.status is QuizStatus.LIVE:
                return quiz
            self._require_status(quiz, "start self-paced", QuizStatus.WAITING)
            if quiz.total_questions < 1:
                raise IllegalTransitionError("A quiz needs at least one question before it can go live.")
            txn.update(
                quiz_path(quiz_id),
                {
                    "status": QuizStatus.LIVE.value,
                    "currentQuestionIndex": 0,
                    "quizStartTime": SERVER_TIMESTAMP,
                },
            )
        self._log_transition(quiz, QuizStatus.LIVE)
        return self._load(quiz_id)

    def end(self, quiz_id: str) -> Quiz:
        """End a live quiz. Ending an ended quiz is a no-op."""
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            if quiz.status is QuizStatus.ENDED:
                logger.debug("Quiz %s already ended", quiz_id)
                return quiz
            self._require_status(quiz, "end", QuizStatus.LIVE)
            txn.update(quiz_path(quiz_id), {"status": QuizStatus.ENDED.value})
        self._log_transition(quiz, QuizStatus.ENDED)
        return self._load(quiz_id)

    def restart(self, quiz_id: str) -> Quiz:
        """Return to the waiting room and wipe every participant and response.

        Questions are left untouched. The status change and the deletions
        commit together.
        """
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            self._require_status(quiz, "restart", QuizStatus.WAITING, QuizStatus.LIVE, QuizStatus.ENDED)
            txn.update(
                quiz_path(quiz_id),
                {
                    "status": QuizStatus.WAITING.value,
                    "currentQuestionIndex": -1,
                    "questionStartTime": None,
                    "quizStartTime": None,
                },
            )
            removed_participants = txn.delete_collection(participants_path(quiz_id))
            removed_responses = txn.delete_collection(responses_path(quiz_id))
        logger.info(
            "Quiz %s restarted: removed %d participant(s) and %d response(s)",
            quiz_id,
            removed_participants,
            removed_responses,
        )
        return self._load(quiz_id)

    def expire_if_due(self, quiz_id: str) -> Quiz:
        """Apply the time-driven transition if the running countdown has run out.

        Countdown observers call this when their timer hits zero. Overall-mode
        quizzes end once ``totalTime`` has elapsed; per-question quizzes move on
        once ``timePerQuestion`` has elapsed for the current question. Calling
        it early, or twice, changes nothing.
        """
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            if quiz.status is not QuizStatus.LIVE:
                return quiz
            if elapsed_seconds(quiz.timer_start, txn.commit_time) < quiz.time_budget:
                return quiz
            if quiz.time_mode is TimeMode.OVERALL:
                txn.update(quiz_path(quiz_id), {"status": QuizStatus.ENDED.value})
                new_status = QuizStatus.ENDED
            else:
                new_status = self._advance_in(txn, quiz)
        self._log_transition(quiz, new_status, reason="time up")
        return self._load(quiz_id)

    # --- Helpers ---

    @staticmethod
    def _advance_in(txn: Transaction, quiz: Quiz) -> QuizStatus:
        next_index = quiz.current_question_index + 1
        if next_index >= quiz.total_questions:
            txn.update(quiz_path(quiz.id), {"status": QuizStatus.ENDED.value})
            return QuizStatus.ENDED
        updates: dict[str, object] = {
            "status": QuizStatus.LIVE.value,
            "currentQuestionIndex": next_index,
            "questionStartTime": SERVER_TIMESTAMP,
        }
        if next_index == 0:
            updates["quizStartTime"] = SERVER_TIMESTAMP
        txn.update(quiz_path(quiz.id), updates)
        return QuizStatus.LIVE

    @staticmethod
    def _require_status(quiz: Quiz, action: str, *allowed: QuizStatus) -> None:
        if quiz.status not in allowed:
            raise IllegalTransitionError(
                f"Cannot {action} quiz {quiz.id} while it is {quiz.status.value}."
            )

    def _load(self, quiz_id: str) -> Quiz:
        data = self._store.get(quiz_path(quiz_id))
        if data is None:
            raise NotFoundError(f"Quiz {quiz_id} not found.")
        return Quiz.from_document(quiz_id, data)

    @staticmethod
    def _log_transition(before: Quiz, status: QuizStatus, reason: str = "") -> None:
        suffix = f" ({reason})" if reason else ""
        logger.info("Quiz %s: %s -> %s%s", before.id, before.status.value, status.value, suffix)
