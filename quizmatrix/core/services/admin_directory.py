"""Admin whitelist handed to the core as an explicit value."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
from threading import Lock

from quizmatrix.core.models import Identity, Quiz, normalize_email

logger = logging.getLogger(__name__)

AdminListener = Callable[[frozenset[str]], None]


class AdminDirectory:
    """Knows which emails may host quizzes.

    The master admin can manage every quiz. Other admins manage the quizzes
    they created and the ones shared with them. Callers that watch a live
    source for the whitelist push updates through ``refresh``; interested
    parties ``subscribe`` to hear about them.
    """

    def __init__(self, master_admin_email: str = "", admin_emails: Iterable[str] = ()) -> None:
        self._lock = Lock()
        self._master = normalize_email(master_admin_email)
        self._admins = self._normalize(admin_emails)
        self._listeners: list[AdminListener] = []

    @property
    def admin_emails(self) -> frozenset[str]:
        with self._lock:
            return self._admins

    def is_master_admin(self, email: str) -> bool:
        return bool(self._master) and normalize_email(email or "") == self._master

    def is_admin(self, email: str) -> bool:
        normalized = normalize_email(email or "")
        if not normalized:
            return False
        return self.is_master_admin(normalized) or normalized in self.admin_emails

    def can_manage(self, quiz: Quiz, identity: Identity) -> bool:
        if self.is_master_admin(identity.email):
            return True
        if not self.is_admin(identity.email):
            return False
        return quiz.created_by == identity.uid or identity.normalized_email in quiz.shared_with

    def refresh(self, admin_emails: Iterable[str]) -> None:
        """Replace the whitelist and notify subscribers."""
        updated = self._normalize(admin_emails)
        with self._lock:
            self._admins = updated
            listeners = list(self._listeners)
        logger.info("Admin whitelist refreshed (%d entries)", len(updated))
        for listener in listeners:
            listener(updated)

    def subscribe(self, listener: AdminListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)
            current = self._admins
        listener(current)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @staticmethod
    def _normalize(emails: Iterable[str]) -> frozenset[str]:
        return frozenset(normalize_email(email) for email in emails if email and email.strip())
