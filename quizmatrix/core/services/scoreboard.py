"""Service for leaderboards and per-question answer statistics."""

from __future__ import annotations

from dataclasses import dataclass, field

from quizmatrix.core.errors import ValidationError
from quizmatrix.core.models import Participant
from quizmatrix.core.services.participant_registry import ParticipantRegistry
from quizmatrix.core.services.quiz_repository import QuizRepository


@dataclass(slots=True)
class ScoreboardRow:
    """Immutable snapshot returned to consumers."""

    rank: int
    uid: str
    display_name: str
    email: str
    score: int
    answered_count: int


@dataclass(slots=True)
class QuestionStats:
    """How the answers to one question are distributed."""

    question_index: int
    option_counts: list[int] = field(default_factory=list)
    no_answer_count: int = 0
    response_count: int = 0
    correct_count: int = 0

    @property
    def correct_percentage(self) -> float:
        if not self.response_count:
            return 0.0
        return (self.correct_count / self.response_count) * 100


class Scoreboard:
    """Ranks participants and summarises responses."""

    def __init__(self, repository: QuizRepository, registry: ParticipantRegistry) -> None:
        self._repository = repository
        self._registry = registry

    def get_leaderboard(self, quiz_id: str, limit: int | None = None) -> list[ScoreboardRow]:
        """Return participants by score, highest first.

        Ties go to whoever needed fewer answers, then alphabetically.
        """
        self._repository.get_quiz(quiz_id)
        ranked = sorted(self._registry.list_participants(quiz_id), key=_ranking_key)
        if limit is not None:
            ranked = ranked[: max(0, limit)]
        return [
            ScoreboardRow(
                rank=position,
                uid=participant.uid,
                display_name=participant.display_name,
                email=participant.email,
                score=participant.score,
                answered_count=len(participant.answered_questions),
            )
            for position, participant in enumerate(ranked, start=1)
        ]

    def get_question_stats(self, quiz_id: str, question_index: int) -> QuestionStats:
        quiz = self._repository.get_quiz(quiz_id)
        if not 0 <= question_index < quiz.total_questions:
            raise ValidationError(f"Question index {question_index} out of range.")
        question = self._repository.get_question_at_index(quiz_id, question_index)

        stats = QuestionStats(question_index=question_index, option_counts=[0] * len(question.options))
        for response in self._registry.list_responses(quiz_id, question_index):
            stats.response_count += 1
            if response.is_correct:
                stats.correct_count += 1
            if 0 <= response.selected_answer < len(stats.option_counts):
                stats.option_counts[response.selected_answer] += 1
            else:
                stats.no_answer_count += 1
        return stats


def _ranking_key(participant: Participant) -> tuple[int, int, str]:
    return (-participant.score, len(participant.answered_questions), participant.display_name.lower())
