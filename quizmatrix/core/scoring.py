"""Points awarded for a single answer."""

from __future__ import annotations

import math

from quizmatrix.constants.quiz_constants import BASE_SCORE, MAX_SPEED_BONUS


def calculate_score(is_correct: bool, time_taken_seconds: float, time_budget_seconds: float) -> int:
    """Return the points for one answer.

    A correct answer is worth ``BASE_SCORE`` plus a speed bonus of up to
    ``MAX_SPEED_BONUS`` that shrinks linearly with the time taken. The bonus is
    floored and never negative, so answers slower than the budget still earn
    the base score. Incorrect answers earn nothing.

    The caller chooses the budget (per-question or total time) and guarantees
    it is positive.
    """
    if not is_correct:
        return 0
    speed_bonus = math.floor((1 - time_taken_seconds / time_budget_seconds) * MAX_SPEED_BONUS)
    return BASE_SCORE + max(0, speed_bonus)
