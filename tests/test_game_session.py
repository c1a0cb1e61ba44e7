from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import make_draft
from quizmatrix.core.errors import IllegalTransitionError
from quizmatrix.core.models import QuizSettings, QuizStatus, TimeMode


def _two_question_quiz(manager, host):
    settings = QuizSettings(title="Two step", time_mode=TimeMode.PER_QUESTION, time_per_question=30)
    return manager.create_quiz_with_questions(settings, [make_draft(), make_draft()], host)


def test_per_question_lifecycle_runs_to_the_end(manager, host, clock):
    quiz = _two_question_quiz(manager, host)

    waiting = manager.start_quiz(quiz.id)
    assert waiting.status is QuizStatus.WAITING
    assert waiting.current_question_index == -1

    first = manager.advance(quiz.id, expected_index=-1)
    assert first.status is QuizStatus.LIVE
    assert first.current_question_index == 0
    assert first.question_start_time == clock.now()
    assert first.quiz_start_time == clock.now()

    clock.advance(12)
    second = manager.advance(quiz.id, expected_index=0)
    assert second.current_question_index == 1
    assert second.question_start_time == clock.now()
    assert second.quiz_start_time == first.quiz_start_time

    ended = manager.advance(quiz.id, expected_index=1)
    assert ended.status is QuizStatus.ENDED


def test_start_requires_a_question(manager, host):
    empty = manager.create_quiz(QuizSettings(title="Empty quiz", time_per_question=30), host)
    with pytest.raises(IllegalTransitionError):
        manager.start_quiz(empty.id)
    assert manager.get_quiz(empty.id).status is QuizStatus.DRAFT


def test_illegal_transitions_leave_state_untouched(manager, per_question_quiz):
    with pytest.raises(IllegalTransitionError):
        manager.advance(per_question_quiz.id, expected_index=-1)
    with pytest.raises(IllegalTransitionError):
        manager.end_quiz(per_question_quiz.id)
    with pytest.raises(IllegalTransitionError):
        manager.restart_quiz(per_question_quiz.id)
    with pytest.raises(IllegalTransitionError):
        manager.start_self_paced(per_question_quiz.id)
    assert manager.get_quiz(per_question_quiz.id).status is QuizStatus.DRAFT


def test_start_is_rejected_once_live(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)
    with pytest.raises(IllegalTransitionError):
        manager.start_quiz(per_question_quiz.id)


def test_self_paced_start_stamps_quiz_start_once(manager, overall_quiz, clock):
    manager.start_quiz(overall_quiz.id)
    live = manager.start_self_paced(overall_quiz.id)
    assert live.status is QuizStatus.LIVE
    assert live.current_question_index == 0
    assert live.quiz_start_time == clock.now()

    clock.advance(40)
    again = manager.start_self_paced(overall_quiz.id)
    assert again.quiz_start_time == live.quiz_start_time


def test_overall_mode_never_advances(manager, overall_quiz):
    manager.start_quiz(overall_quiz.id)
    manager.start_self_paced(overall_quiz.id)
    with pytest.raises(IllegalTransitionError):
        manager.advance(overall_quiz.id, expected_index=0)


def test_end_is_idempotent(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)
    first = manager.end_quiz(per_question_quiz.id)
    second = manager.end_quiz(per_question_quiz.id)
    assert first.status is second.status is QuizStatus.ENDED


def test_duplicate_advance_with_expected_index_is_a_no_op(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)
    manager.advance(per_question_quiz.id, expected_index=-1)
    assert manager.get_quiz(per_question_quiz.id).current_question_index == 0


def test_concurrent_advances_increment_exactly_once(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: manager.advance(per_question_quiz.id, expected_index=0), range(16)))

    assert {quiz.current_question_index for quiz in results} == {1}
    assert manager.get_quiz(per_question_quiz.id).current_question_index == 1


def test_stale_advance_on_ended_quiz_is_ignored(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)
    manager.end_quiz(per_question_quiz.id)
    quiz = manager.advance(per_question_quiz.id, expected_index=0)
    assert quiz.status is QuizStatus.ENDED


def test_expire_if_due_moves_per_question_quiz_on(manager, per_question_quiz, clock):
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)

    clock.advance(29)
    assert manager.expire_if_due(per_question_quiz.id).current_question_index == 0

    clock.advance(1)
    assert manager.expire_if_due(per_question_quiz.id).current_question_index == 1
    # A second observer firing for the same timeout changes nothing.
    assert manager.expire_if_due(per_question_quiz.id).current_question_index == 1


def test_expire_if_due_ends_overall_quiz(manager, overall_quiz, clock):
    manager.start_quiz(overall_quiz.id)
    manager.start_self_paced(overall_quiz.id)
    clock.advance(299)
    assert manager.expire_if_due(overall_quiz.id).status is QuizStatus.LIVE
    clock.advance(1)
    assert manager.expire_if_due(overall_quiz.id).status is QuizStatus.ENDED


def test_remaining_time_comes_from_the_server_clock(manager, per_question_quiz, clock):
    assert manager.describe_quiz_state(per_question_quiz.id).remaining_seconds is None
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)
    clock.advance(7.5)
    state = manager.describe_quiz_state(per_question_quiz.id)
    assert state.server_time == clock.now()
    assert state.remaining_seconds == 23


def test_restart_wipes_participants_and_responses(manager, per_question_quiz, alice, bob, store):
    manager.start_quiz(per_question_quiz.id)
    manager.join(per_question_quiz.id, alice)
    manager.join(per_question_quiz.id, bob)
    manager.advance(per_question_quiz.id, expected_index=-1)
    manager.submit_answer(per_question_quiz.id, alice, 0, 1, 2)
    manager.end_quiz(per_question_quiz.id)
    questions_before = manager.get_questions(per_question_quiz.id)

    restarted = manager.restart_quiz(per_question_quiz.id)
    assert restarted.status is QuizStatus.WAITING
    assert restarted.current_question_index == -1
    assert restarted.question_start_time is None
    assert restarted.quiz_start_time is None
    assert manager.list_participants(per_question_quiz.id) == []
    assert store.list(f"quizzes/{per_question_quiz.id}/responses") == []
    assert manager.get_questions(per_question_quiz.id) == questions_before

    # Rejoining starts from a clean slate.
    rejoined = manager.join(per_question_quiz.id, alice)
    assert rejoined.score == 0
    assert rejoined.answered_questions == []


def test_advance_requires_the_index_the_caller_saw(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    with pytest.raises(TypeError):
        manager.advance(per_question_quiz.id)
    assert manager.get_quiz(per_question_quiz.id).current_question_index == -1


def test_two_hosts_advancing_from_the_same_question_move_on_once(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)
    seen = [manager.get_quiz(per_question_quiz.id).current_question_index for _ in range(2)]

    with ThreadPoolExecutor(max_workers=2) as pool:
        list(pool.map(lambda index: manager.advance(per_question_quiz.id, index), seen))

    quiz = manager.get_quiz(per_question_quiz.id)
    assert quiz.current_question_index == 1
    assert quiz.status is QuizStatus.LIVE
