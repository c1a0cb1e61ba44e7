"""Business logic for running live quizzes, shared by the API and any other front-end."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
import logging

from quizmatrix.core.clock import ClockSource
from quizmatrix.core.errors import AccessDeniedError
from quizmatrix.core.models import (
    Identity,
    Participant,
    Question,
    QuestionDraft,
    Quiz,
    QuizSettings,
)
from quizmatrix.core.quiz_code import QuizCodeGenerator
from quizmatrix.core.services.access_gate import AccessGate, can_join
from quizmatrix.core.services.admin_directory import AdminDirectory
from quizmatrix.core.services.game_session import GameSession, time_remaining
from quizmatrix.core.services.participant_registry import ParticipantRegistry
from quizmatrix.core.services.quiz_repository import QuizRepository
from quizmatrix.core.services.scoreboard import QuestionStats, Scoreboard, ScoreboardRow
from quizmatrix.core.store import CollectionSnapshot, DocumentSnapshot, DocumentStore
from quizmatrix.core.store.paths import participants_path, questions_path, quiz_path

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


@dataclass(slots=True)
class QuizState:
    """A quiz as seen at one instant of the authoritative clock."""

    quiz: Quiz
    server_time: datetime
    remaining_seconds: int | None


class QuizManager:
    """Facade for quiz services: Repository, GameSession, Registry, AccessGate and Scoreboard."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        admin_directory: AdminDirectory | None = None,
        code_generator: QuizCodeGenerator | None = None,
        allow_legacy_options: bool = False,
    ) -> None:
        self._store = store or DocumentStore()
        self._admins = admin_directory or AdminDirectory()

        # Services
        self._repository = QuizRepository(self._store, code_generator, allow_legacy_options)
        self._session = GameSession(self._store)
        self._registry = ParticipantRegistry(self._store)
        self._gate = AccessGate(self._store)
        self._scoreboard = Scoreboard(self._repository, self._registry)

    @property
    def clock(self) -> ClockSource:
        return self._store.clock

    @property
    def admin_directory(self) -> AdminDirectory:
        return self._admins

    # --- Quiz Repository Delegation ---

    def create_quiz(self, settings: QuizSettings, creator: Identity) -> Quiz:
        quiz = self._repository.create_quiz(settings, creator)
        logger.info("Quiz %s (%s) created by %s", quiz.id, quiz.code, creator.uid)
        return quiz

    def create_quiz_with_questions(
        self, settings: QuizSettings, questions: list[QuestionDraft], creator: Identity
    ) -> Quiz:
        quiz = self._repository.create_quiz_with_questions(settings, questions, creator)
        logger.info("Quiz %s (%s) created with %d question(s)", quiz.id, quiz.code, len(questions))
        return quiz

    def get_quiz(self, quiz_id: str) -> Quiz:
        return self._repository.get_quiz(quiz_id)

    def get_quiz_by_code(self, code: str) -> Quiz | None:
        return self._repository.get_quiz_by_code(code)

    def list_quizzes_for_admin(self, identity: Identity) -> list[Quiz]:
        if self._admins.is_master_admin(identity.email):
            return self._repository.list_quizzes()
        return self._repository.list_quizzes_for_admin(identity)

    def list_registered_quizzes(self, email: str) -> list[Quiz]:
        return self._repository.list_registered_quizzes(email)

    def update_quiz(
        self,
        quiz_id: str,
        title: str | None = None,
        time_per_question: int | None = None,
        total_time: int | None = None,
    ) -> Quiz:
        return self._repository.update_quiz(quiz_id, title, time_per_question, total_time)

    def delete_quiz(self, quiz_id: str) -> None:
        self._repository.delete_quiz(quiz_id)
        logger.info("Quiz %s deleted", quiz_id)

    def share_quiz(self, quiz_id: str, admin_email: str) -> Quiz:
        return self._repository.share_quiz(quiz_id, admin_email)

    def unshare_quiz(self, quiz_id: str, admin_email: str) -> Quiz:
        return self._repository.unshare_quiz(quiz_id, admin_email)

    def get_questions(self, quiz_id: str) -> list[Question]:
        return self._repository.get_questions(quiz_id)

    def get_question_at_index(self, quiz_id: str, index: int) -> Question:
        return self._repository.get_question_at_index(quiz_id, index)

    def add_question(self, quiz_id: str, draft: QuestionDraft) -> Question:
        return self._repository.add_question(quiz_id, draft)

    def update_question(self, quiz_id: str, question_id: str, draft: QuestionDraft) -> Question:
        return self._repository.update_question(quiz_id, question_id, draft)

    def delete_question(self, quiz_id: str, question_id: str) -> None:
        self._repository.delete_question(quiz_id, question_id)

    # --- Game Session Delegation ---

    def start_quiz(self, quiz_id: str) -> Quiz:
        return self._session.start(quiz_id)

    def advance(self, quiz_id: str, expected_index: int) -> Quiz:
        return self._session.advance(quiz_id, expected_index)

    def start_self_paced(self, quiz_id: str) -> Quiz:
        return self._session.start_self_paced(quiz_id)

    def end_quiz(self, quiz_id: str) -> Quiz:
        return self._session.end(quiz_id)

    def restart_quiz(self, quiz_id: str) -> Quiz:
        return self._session.restart(quiz_id)

    def expire_if_due(self, quiz_id: str) -> Quiz:
        return self._session.expire_if_due(quiz_id)

    def describe_quiz_state(self, quiz_id: str) -> QuizState:
        quiz = self.get_quiz(quiz_id)
        now = self.clock.now()
        return QuizState(quiz=quiz, server_time=now, remaining_seconds=time_remaining(quiz, now))

    # --- Participant Registry Delegation ---

    def join(self, quiz_id: str, identity: Identity) -> Participant:
        return self._registry.join(quiz_id, identity)

    def submit_answer(
        self,
        quiz_id: str,
        identity: Identity,
        question_index: int,
        selected_option: int | None,
        time_taken_seconds: float,
    ) -> int:
        return self._registry.submit_answer(
            quiz_id, identity, question_index, selected_option, time_taken_seconds
        )

    def submit_answer_now(
        self,
        quiz_id: str,
        identity: Identity,
        question_index: int,
        selected_option: int | None,
    ) -> int:
        """Submit an answer timed by the server clock instead of the client."""
        return self._registry.submit_answer(quiz_id, identity, question_index, selected_option, None)

    def has_answered(self, quiz_id: str, uid: str, question_index: int) -> bool:
        return self._registry.has_answered(quiz_id, uid, question_index)

    def get_participant(self, quiz_id: str, uid: str) -> Participant:
        return self._registry.get_participant(quiz_id, uid)

    def list_participants(self, quiz_id: str) -> list[Participant]:
        return self._registry.list_participants(quiz_id)

    # --- Access Gate Delegation ---

    def can_join(self, quiz_id: str, email: str) -> bool:
        return can_join(self.get_quiz(quiz_id), email)

    def add_allowed(self, quiz_id: str, emails: list[str]) -> int:
        return self._gate.add_allowed(quiz_id, emails)

    def remove_allowed(self, quiz_id: str, email: str) -> Quiz:
        return self._gate.remove_allowed(quiz_id, email)

    def set_restricted(self, quiz_id: str, restricted: bool) -> Quiz:
        return self._gate.set_restricted(quiz_id, restricted)

    # --- Scoreboard Delegation ---

    def get_leaderboard(self, quiz_id: str, limit: int | None = None) -> list[ScoreboardRow]:
        return self._scoreboard.get_leaderboard(quiz_id, limit)

    def get_question_stats(self, quiz_id: str, question_index: int) -> QuestionStats:
        return self._scoreboard.get_question_stats(quiz_id, question_index)

    # --- Admin Checks ---

    def is_admin(self, identity: Identity) -> bool:
        return self._admins.is_admin(identity.email)

    def authorize_admin(self, quiz_id: str, identity: Identity) -> Quiz:
        """Return the quiz if ``identity`` may manage it, else raise ``AccessDeniedError``."""
        quiz = self.get_quiz(quiz_id)
        if not self._admins.can_manage(quiz, identity):
            raise AccessDeniedError(f"{identity.email or identity.uid} cannot manage quiz {quiz_id}.")
        return quiz

    # --- Change Subscriptions ---

    def watch_quiz(self, quiz_id: str, listener: Callable[[Quiz | None], None]) -> Unsubscribe:
        """Call ``listener`` with the latest quiz (``None`` once deleted) on every change."""

        # Document paths always deliver a DocumentSnapshot.
        def on_snapshot(snapshot: DocumentSnapshot) -> None:
            listener(Quiz.from_document(snapshot.id, snapshot.data) if snapshot.exists else None)

        return self._store.subscribe(quiz_path(quiz_id), on_snapshot)

    def watch_questions(self, quiz_id: str, listener: Callable[[list[Question]], None]) -> Unsubscribe:
        def on_snapshot(snapshot: CollectionSnapshot) -> None:
            listener([Question.from_document(doc.id, doc.data) for doc in snapshot.documents])

        return self._store.subscribe(questions_path(quiz_id), on_snapshot, order_by="index")

    def watch_participants(
        self, quiz_id: str, listener: Callable[[list[Participant]], None]
    ) -> Unsubscribe:
        def on_snapshot(snapshot: CollectionSnapshot) -> None:
            listener([Participant.from_document(doc.id, doc.data) for doc in snapshot.documents])

        return self._store.subscribe(participants_path(quiz_id), on_snapshot, order_by="joinedAt")
