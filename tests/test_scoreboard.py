from __future__ import annotations

import pytest

from quizmatrix.core.errors import ValidationError
from quizmatrix.core.models import Identity


@pytest.fixture
def played_quiz(manager, per_question_quiz, clock):
    quiz_id = per_question_quiz.id
    players = {
        "ana": Identity(uid="ana", display_name="Ana"),
        "ben": Identity(uid="ben", display_name="Ben"),
        "cat": Identity(uid="cat", display_name="Cat"),
        "dan": Identity(uid="dan", display_name="Dan"),
    }
    manager.start_quiz(quiz_id)
    for player in players.values():
        manager.join(quiz_id, player)

    manager.advance(quiz_id, expected_index=-1)
    manager.submit_answer(quiz_id, players["ana"], 0, 1, 0)  # 150
    manager.submit_answer(quiz_id, players["ben"], 0, 1, 15)  # 125
    manager.submit_answer(quiz_id, players["cat"], 0, 3, 2)  # 0
    manager.submit_answer(quiz_id, players["dan"], 0, None, 30)  # 0

    manager.advance(quiz_id, expected_index=0)
    manager.submit_answer(quiz_id, players["ben"], 1, 1, 30)  # 100
    manager.submit_answer(quiz_id, players["cat"], 1, 1, 0)  # 150
    return quiz_id


def test_leaderboard_orders_by_score_then_fewest_answers(manager, played_quiz):
    rows = manager.get_leaderboard(played_quiz)
    assert [(row.rank, row.uid, row.score) for row in rows] == [
        (1, "ben", 225),
        (2, "ana", 150),
        (3, "cat", 150),
        (4, "dan", 0),
    ]
    assert rows[1].answered_count == 1
    assert rows[2].answered_count == 2


def test_leaderboard_limit(manager, played_quiz):
    assert [row.uid for row in manager.get_leaderboard(played_quiz, limit=2)] == ["ben", "ana"]


def test_question_stats_count_each_option(manager, played_quiz):
    stats = manager.get_question_stats(played_quiz, 0)
    assert stats.option_counts == [0, 2, 0, 1]
    assert stats.no_answer_count == 1
    assert stats.response_count == 4
    assert stats.correct_count == 2
    assert stats.correct_percentage == 50.0


def test_stats_for_unknown_question(manager, played_quiz):
    with pytest.raises(ValidationError):
        manager.get_question_stats(played_quiz, 5)


def test_empty_question_stats(manager, played_quiz):
    stats = manager.get_question_stats(played_quiz, 2)
    assert stats.response_count == 0
    assert stats.correct_percentage == 0.0
