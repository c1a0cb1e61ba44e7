"""Service deciding who may join a quiz."""

from __future__ import annotations

from quizmatrix.core.errors import AccessDeniedError
from quizmatrix.core.models import Identity, Quiz, normalize_email
from quizmatrix.core.services.quiz_repository import read_quiz
from quizmatrix.core.store import DocumentStore
from quizmatrix.core.store.paths import quiz_path


def can_join(quiz: Quiz, email: str) -> bool:
    """Open quizzes admit anyone; restricted ones only allow-listed emails."""
    if not quiz.is_restricted:
        return True
    return normalize_email(email or "") in quiz.allowed_participants


def ensure_can_join(quiz: Quiz, identity: Identity) -> None:
    if not can_join(quiz, identity.email):
        raise AccessDeniedError(f"{identity.email or identity.uid} is not on the allow-list for this quiz.")


class AccessGate:
    """Maintains a quiz's allow-list and restriction flag.

    Curating the list drives the flag: adding emails turns restriction on and
    removing the last email turns it off again. ``set_restricted`` changes the
    flag on its own.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def add_allowed(self, quiz_id: str, emails: list[str]) -> int:
        """Add normalized, de-duplicated emails; return how many were new."""
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            current = list(quiz.allowed_participants)
            added = 0
            for email in emails:
                normalized = normalize_email(email)
                if normalized and normalized not in current:
                    current.append(normalized)
                    added += 1
            if added:
                txn.update(
                    quiz_path(quiz_id),
                    {"allowedParticipants": current, "isRestricted": True},
                )
        return added

    def remove_allowed(self, quiz_id: str, email: str) -> Quiz:
        normalized = normalize_email(email)
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            if normalized not in quiz.allowed_participants:
                return quiz
            remaining = [entry for entry in quiz.allowed_participants if entry != normalized]
            txn.update(
                quiz_path(quiz_id),
                {"allowedParticipants": remaining, "isRestricted": bool(remaining)},
            )
        return self._load(quiz_id)

    def set_restricted(self, quiz_id: str, restricted: bool) -> Quiz:
        with self._store.transaction() as txn:
            read_quiz(txn, quiz_id)
            txn.update(quiz_path(quiz_id), {"isRestricted": bool(restricted)})
        return self._load(quiz_id)

    def _load(self, quiz_id: str) -> Quiz:
        with self._store.transaction() as txn:
            return read_quiz(txn, quiz_id)
