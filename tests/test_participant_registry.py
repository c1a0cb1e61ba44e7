from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import math

import pytest

from quizmatrix.core.errors import (
    AccessDeniedError,
    AlreadyAnsweredError,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from quizmatrix.core.models import Identity


@pytest.fixture
def live_quiz(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    manager.advance(per_question_quiz.id, expected_index=-1)
    return manager.get_quiz(per_question_quiz.id)


def _responses(store, quiz_id):
    return store.list(f"quizzes/{quiz_id}/responses")


def test_join_is_idempotent(manager, per_question_quiz, alice, clock):
    manager.start_quiz(per_question_quiz.id)
    joined_at = clock.now()
    first = manager.join(per_question_quiz.id, alice)
    clock.advance(5)
    second = manager.join(per_question_quiz.id, alice)
    assert first == second
    assert first.joined_at == joined_at
    assert first.email == "alice@example.com"
    assert len(manager.list_participants(per_question_quiz.id)) == 1


def test_join_requires_an_open_quiz(manager, per_question_quiz, alice):
    with pytest.raises(IllegalTransitionError):
        manager.join(per_question_quiz.id, alice)
    with pytest.raises(NotFoundError):
        manager.join("missing", alice)


def test_anonymous_participants_get_a_placeholder_name(manager, per_question_quiz):
    manager.start_quiz(per_question_quiz.id)
    participant = manager.join(per_question_quiz.id, Identity(uid="anon"))
    assert participant.display_name == "Anonymous"


def test_correct_answer_is_scored_with_speed_bonus(manager, live_quiz, alice, store):
    manager.join(live_quiz.id, alice)
    points = manager.submit_answer(live_quiz.id, alice, 0, 1, 5)
    assert points == 141

    participant = manager.get_participant(live_quiz.id, alice.uid)
    assert participant.score == 141
    assert participant.answered_questions == [0]
    assert manager.has_answered(live_quiz.id, alice.uid, 0)

    [response] = _responses(store, live_quiz.id)
    assert response.data["isCorrect"] is True
    assert response.data["selectedAnswer"] == 1
    assert response.data["points"] == 141


def test_wrong_and_missing_answers_score_zero(manager, live_quiz, alice, bob):
    assert manager.submit_answer(live_quiz.id, alice, 0, 0, 1) == 0
    assert manager.submit_answer(live_quiz.id, bob, 0, None, 30) == 0
    assert manager.get_participant(live_quiz.id, bob.uid).answered_questions == [0]


def test_second_submission_is_rejected_and_not_scored(manager, live_quiz, alice, store):
    manager.submit_answer(live_quiz.id, alice, 0, 1, 5)
    with pytest.raises(AlreadyAnsweredError):
        manager.submit_answer(live_quiz.id, alice, 0, 1, 5)
    assert manager.get_participant(live_quiz.id, alice.uid).score == 141
    assert len(_responses(store, live_quiz.id)) == 1


def test_concurrent_retries_score_once(manager, live_quiz, alice, store):
    def submit(_):
        try:
            return manager.submit_answer(live_quiz.id, alice, 0, 1, 5)
        except AlreadyAnsweredError:
            return None

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(submit, range(12)))

    assert outcomes.count(141) == 1
    assert outcomes.count(None) == 11
    assert manager.get_participant(live_quiz.id, alice.uid).score == 141
    assert len(_responses(store, live_quiz.id)) == 1


def test_participants_submitting_together_do_not_interfere(manager, live_quiz, store):
    players = [Identity(uid=f"p{n}", email=f"p{n}@example.com") for n in range(10)]

    with ThreadPoolExecutor(max_workers=10) as pool:
        list(pool.map(lambda player: manager.submit_answer(live_quiz.id, player, 0, 1, 0), players))

    assert len(manager.list_participants(live_quiz.id)) == 10
    assert all(p.score == 150 for p in manager.list_participants(live_quiz.id))
    assert len(_responses(store, live_quiz.id)) == 10


def test_unrevealed_and_out_of_range_questions_are_rejected(manager, live_quiz, alice):
    with pytest.raises(ValidationError):
        manager.submit_answer(live_quiz.id, alice, 1, 1, 5)
    with pytest.raises(ValidationError):
        manager.submit_answer(live_quiz.id, alice, 7, 1, 5)
    with pytest.raises(ValidationError):
        manager.submit_answer(live_quiz.id, alice, 0, 9, 5)


@pytest.mark.parametrize("time_taken", [-1, math.inf, math.nan, True])
def test_bad_time_taken_is_rejected(manager, live_quiz, alice, time_taken):
    with pytest.raises(ValidationError):
        manager.submit_answer(live_quiz.id, alice, 0, 1, time_taken)
    assert not manager.has_answered(live_quiz.id, alice.uid, 0)


def test_late_answer_to_previous_question_still_lands(manager, live_quiz, alice):
    manager.advance(live_quiz.id, expected_index=0)
    assert manager.submit_answer(live_quiz.id, alice, 0, None, 30) == 0
    assert manager.has_answered(live_quiz.id, alice.uid, 0)


def test_answers_are_refused_once_ended(manager, live_quiz, alice):
    manager.end_quiz(live_quiz.id)
    with pytest.raises(IllegalTransitionError):
        manager.submit_answer(live_quiz.id, alice, 0, 1, 5)


def test_restricted_quiz_blocks_unlisted_submitters(manager, live_quiz, alice, bob):
    manager.add_allowed(live_quiz.id, [alice.email])
    assert manager.submit_answer(live_quiz.id, alice, 0, 1, 5) == 141
    with pytest.raises(AccessDeniedError):
        manager.submit_answer(live_quiz.id, bob, 0, 1, 5)


def test_self_paced_scores_against_total_time(manager, overall_quiz, alice):
    manager.start_quiz(overall_quiz.id)
    manager.start_self_paced(overall_quiz.id)
    # Every question is open at once.
    assert manager.submit_answer(overall_quiz.id, alice, 1, 2, 0) == 150
    assert manager.submit_answer(overall_quiz.id, alice, 0, 2, 150) == 125
    assert manager.get_participant(overall_quiz.id, alice.uid).score == 275


def test_server_timed_submission(manager, live_quiz, alice, clock):
    clock.advance(15)
    assert manager.submit_answer_now(live_quiz.id, alice, 0, 1) == 125


def test_server_timing_uses_the_stored_question_pointer(manager, live_quiz, alice, bob, clock):
    clock.advance(10)
    manager.advance(live_quiz.id, expected_index=0)
    # The earlier question's timer is over, the new one has just started.
    assert manager.submit_answer_now(live_quiz.id, alice, 0, 1) == 100
    assert manager.submit_answer_now(live_quiz.id, bob, 1, 1) == 150


@pytest.mark.parametrize("uid", ["mallory/responses/x", "a/b", "", "   "])
def test_user_ids_must_be_single_path_segments(manager, live_quiz, uid):
    intruder = Identity(uid=uid, email="mallory@example.com")
    with pytest.raises(ValidationError):
        manager.join(live_quiz.id, intruder)
    with pytest.raises(ValidationError):
        manager.submit_answer(live_quiz.id, intruder, 0, 1, 0)
    assert manager.list_participants(live_quiz.id) == []


def test_restart_leaves_no_scores_behind(manager, live_quiz, alice):
    manager.submit_answer(live_quiz.id, alice, 0, 1, 0)
    manager.restart_quiz(live_quiz.id)
    with pytest.raises(NotFoundError):
        manager.get_participant(live_quiz.id, alice.uid)
