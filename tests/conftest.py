from __future__ import annotations

import pytest

from quizmatrix.core.clock import ManualClock
from quizmatrix.core.models import Identity, QuestionDraft, QuizSettings, TimeMode
from quizmatrix.core.quiz_code import QuizCodeGenerator
from quizmatrix.core.quiz_manager import QuizManager
from quizmatrix.core.services.admin_directory import AdminDirectory
from quizmatrix.core.store import DocumentStore

MASTER_EMAIL = "master@example.com"
ADMIN_EMAIL = "host@example.com"


def make_draft(text: str = "What is 2 + 2?", correct: int = 1) -> QuestionDraft:
    return QuestionDraft(text=text, options=["3", "4", "5", "6"], correct_answer=correct)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> DocumentStore:
    return DocumentStore(clock)


@pytest.fixture
def admins() -> AdminDirectory:
    return AdminDirectory(MASTER_EMAIL, [ADMIN_EMAIL])


@pytest.fixture
def manager(store: DocumentStore, admins: AdminDirectory) -> QuizManager:
    return QuizManager(store=store, admin_directory=admins, code_generator=QuizCodeGenerator(seed=7))


@pytest.fixture
def host() -> Identity:
    return Identity(uid="host-1", email=ADMIN_EMAIL, display_name="Host")


@pytest.fixture
def alice() -> Identity:
    return Identity(uid="alice", email="Alice@Example.com", display_name="Alice")


@pytest.fixture
def bob() -> Identity:
    return Identity(uid="bob", email="bob@example.com", display_name="Bob")


@pytest.fixture
def per_question_quiz(manager: QuizManager, host: Identity):
    """Per-question quiz, 30 seconds a question, three questions."""
    settings = QuizSettings(title="Arithmetic", time_mode=TimeMode.PER_QUESTION, time_per_question=30)
    drafts = [make_draft(f"Question number {i}", correct=1) for i in range(3)]
    return manager.create_quiz_with_questions(settings, drafts, host)


@pytest.fixture
def overall_quiz(manager: QuizManager, host: Identity):
    """Overall-mode quiz with a 300 second budget and two questions."""
    settings = QuizSettings(title="Self paced", time_mode=TimeMode.OVERALL, total_time=300)
    drafts = [make_draft(f"Question number {i}", correct=2) for i in range(2)]
    return manager.create_quiz_with_questions(settings, drafts, host)
