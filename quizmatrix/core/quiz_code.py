"""Utility for drawing short shareable quiz codes."""

from __future__ import annotations

from collections.abc import Callable
import random
from threading import Lock

from quizmatrix.constants.quiz_constants import (
    QUIZ_CODE_ALPHABET,
    QUIZ_CODE_LENGTH,
    QUIZ_CODE_MAX_ATTEMPTS,
)
from quizmatrix.core.errors import StoreError


class QuizCodeGenerator:
    """Draws uppercase alphanumeric codes and retries on collision."""

    def __init__(
        self,
        alphabet: str = QUIZ_CODE_ALPHABET,
        length: int = QUIZ_CODE_LENGTH,
        seed: int | None = None,
    ) -> None:
        if not alphabet or length <= 0:
            raise ValueError("Quiz codes need a non-empty alphabet and a positive length.")
        self._alphabet = alphabet
        self._length = length
        self._lock = Lock()
        self._rng = random.Random(seed)

    def next_code(self) -> str:
        with self._lock:
            return "".join(self._rng.choice(self._alphabet) for _ in range(self._length))

    def unique_code(
        self,
        is_taken: Callable[[str], bool],
        max_attempts: int = QUIZ_CODE_MAX_ATTEMPTS,
    ) -> str:
        """Return the first drawn code that ``is_taken`` rejects as free."""
        for _ in range(max_attempts):
            code = self.next_code()
            if not is_taken(code):
                return code
        raise StoreError(f"Could not allocate a unique quiz code after {max_attempts} attempts.")


def normalize_code(code: str) -> str:
    return code.strip().upper()
