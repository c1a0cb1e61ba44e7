"""Service for managing quizzes and their ordered questions."""

from __future__ import annotations

from quizmatrix.constants.quiz_constants import (
    DEFAULT_TIME_PER_QUESTION_SECONDS,
    DEFAULT_TOTAL_TIME_SECONDS,
    LEGACY_MIN_OPTION_COUNT,
    MAX_TIME_PER_QUESTION_SECONDS,
    MAX_TOTAL_TIME_SECONDS,
    MIN_QUESTION_TEXT_LENGTH,
    MIN_TIME_PER_QUESTION_SECONDS,
    MIN_TITLE_LENGTH,
    MIN_TOTAL_TIME_SECONDS,
    OPTION_COUNT,
)
from quizmatrix.core.errors import IllegalTransitionError, NotFoundError, ValidationError
from quizmatrix.core.models import (
    Identity,
    Question,
    QuestionDraft,
    Quiz,
    QuizSettings,
    QuizStatus,
    TimeMode,
    normalize_email,
)
from quizmatrix.core.quiz_code import QuizCodeGenerator, normalize_code
from quizmatrix.core.store import SERVER_TIMESTAMP, DocumentStore, Transaction
from quizmatrix.core.store.paths import (
    QUIZ_CHILD_COLLECTIONS,
    QUIZZES,
    question_path,
    questions_path,
    quiz_path,
)


def read_quiz(txn: Transaction, quiz_id: str) -> Quiz:
    data = txn.get(quiz_path(quiz_id))
    if data is None:
        raise NotFoundError(f"Quiz {quiz_id} not found.")
    return Quiz.from_document(quiz_id, data)


def read_question_at(txn: Transaction, quiz_id: str, index: int) -> Question:
    matches = txn.list(questions_path(quiz_id), where=lambda data: data.get("index") == index)
    if not matches:
        raise NotFoundError(f"Quiz {quiz_id} has no question at index {index}.")
    return Question.from_document(matches[0].id, matches[0].data)


class QuizRepository:
    """Creates, edits and deletes quizzes and keeps question indices contiguous."""

    def __init__(
        self,
        store: DocumentStore,
        code_generator: QuizCodeGenerator | None = None,
        allow_legacy_options: bool = False,
    ) -> None:
        self._store = store
        self._codes = code_generator or QuizCodeGenerator()
        self._allow_legacy_options = allow_legacy_options

    # --- Quizzes ---

    def create_quiz(self, settings: QuizSettings, creator: Identity) -> Quiz:
        """Create a draft quiz with a fresh code."""
        return self.create_quiz_with_questions(settings, [], creator)

    def create_quiz_with_questions(
        self,
        settings: QuizSettings,
        questions: list[QuestionDraft],
        creator: Identity,
    ) -> Quiz:
        """Create a draft quiz and all of its questions in one transaction."""
        title = self._validate_title(settings.title)
        time_mode = self._validate_time_mode(settings.time_mode)
        time_per_question, total_time = self._validate_time_settings(
            time_mode, settings.time_per_question, settings.total_time
        )
        prepared = [self._prepare_question(draft, index, "") for index, draft in enumerate(questions)]

        with self._store.transaction() as txn:
            code = self._codes.unique_code(lambda candidate: self._code_in_use(txn, candidate))
            quiz = Quiz(
                id=self._store.new_id(),
                code=code,
                title=title,
                time_mode=time_mode,
                time_per_question=time_per_question,
                total_time=total_time,
                total_questions=len(prepared),
                created_by=creator.uid,
                creator_email=creator.normalized_email,
            )
            document = quiz.to_document()
            document["createdAt"] = SERVER_TIMESTAMP
            txn.set(quiz_path(quiz.id), document)
            for question in prepared:
                txn.create(questions_path(quiz.id), question.to_document())
        return self.get_quiz(quiz.id)

    def get_quiz(self, quiz_id: str) -> Quiz:
        data = self._store.get(quiz_path(quiz_id))
        if data is None:
            raise NotFoundError(f"Quiz {quiz_id} not found.")
        return Quiz.from_document(quiz_id, data)

    def get_quiz_by_code(self, code: str) -> Quiz | None:
        """Look a quiz up by its share code, preferring one that has not ended."""
        wanted = normalize_code(code)
        matches = [
            Quiz.from_document(snap.id, snap.data)
            for snap in self._store.list(QUIZZES, where=lambda data: data.get("quizCode") == wanted)
        ]
        if not matches:
            return None
        matches.sort(key=lambda quiz: quiz.status is QuizStatus.ENDED)
        return matches[0]

    def list_quizzes(self) -> list[Quiz]:
        """Return every quiz, newest first."""
        quizzes = [Quiz.from_document(snap.id, snap.data) for snap in self._store.list(QUIZZES)]
        return _newest_first(quizzes)

    def list_quizzes_for_admin(self, identity: Identity) -> list[Quiz]:
        """Return quizzes the admin created or that were shared with them."""
        email = identity.normalized_email
        return [
            quiz
            for quiz in self.list_quizzes()
            if quiz.created_by == identity.uid or (email and email in quiz.shared_with)
        ]

    def list_registered_quizzes(self, email: str) -> list[Quiz]:
        """Return quizzes whose allow-list contains ``email``."""
        wanted = normalize_email(email)
        return [quiz for quiz in self.list_quizzes() if wanted in quiz.allowed_participants]

    def update_quiz(
        self,
        quiz_id: str,
        title: str | None = None,
        time_per_question: int | None = None,
        total_time: int | None = None,
    ) -> Quiz:
        updates: dict[str, object] = {}
        if title is not None:
            updates["title"] = self._validate_title(title)
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            if time_per_question is not None or total_time is not None:
                if quiz.status is QuizStatus.LIVE:
                    raise IllegalTransitionError("Time settings cannot change while a quiz is live.")
                if time_per_question is not None:
                    updates["timePerQuestion"] = self._check_range(
                        "timePerQuestion",
                        time_per_question,
                        MIN_TIME_PER_QUESTION_SECONDS,
                        MAX_TIME_PER_QUESTION_SECONDS,
                    )
                if total_time is not None:
                    updates["totalTime"] = self._check_range(
                        "totalTime", total_time, MIN_TOTAL_TIME_SECONDS, MAX_TOTAL_TIME_SECONDS
                    )
            if updates:
                txn.update(quiz_path(quiz_id), updates)
        return self.get_quiz(quiz_id)

    def delete_quiz(self, quiz_id: str) -> None:
        """Delete the quiz together with its questions, participants and responses."""
        with self._store.transaction() as txn:
            read_quiz(txn, quiz_id)
            for collection in QUIZ_CHILD_COLLECTIONS:
                txn.delete_collection(f"{quiz_path(quiz_id)}/{collection}")
            txn.delete(quiz_path(quiz_id))

    def share_quiz(self, quiz_id: str, admin_email: str) -> Quiz:
        email = self._validate_email(admin_email)
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            if email not in quiz.shared_with:
                txn.update(quiz_path(quiz_id), {"sharedWith": [*quiz.shared_with, email]})
        return self.get_quiz(quiz_id)

    def unshare_quiz(self, quiz_id: str, admin_email: str) -> Quiz:
        email = normalize_email(admin_email)
        with self._store.transaction() as txn:
            quiz = read_quiz(txn, quiz_id)
            remaining = [entry for entry in quiz.shared_with if entry != email]
            if remaining != quiz.shared_with:
                txn.update(quiz_path(quiz_id), {"sharedWith": remaining})
        return self.get_quiz(quiz_id)

    # --- Questions ---

    def get_questions(self, quiz_id: str) -> list[Question]:
        """Return the quiz's questions ordered by index."""
        self.get_quiz(quiz_id)
        return [
            Question.from_document(snap.id, snap.data)
            for snap in self._store.list(questions_path(quiz_id), order_by="index")
        ]

    def get_question_at_index(self, quiz_id: str, index: int) -> Question:
        with self._store.transaction() as txn:
            read_quiz(txn, quiz_id)
            return read_question_at(txn, quiz_id, index)

    def add_question(self, quiz_id: str, draft: QuestionDraft) -> Question:
        with self._store.transaction() as txn:
            quiz = self._editable_quiz(txn, quiz_id)
            index = len(txn.list(questions_path(quiz_id)))
            question = self._prepare_question(draft, index, "")
            question.id = txn.create(questions_path(quiz_id), question.to_document())
            txn.update(quiz_path(quiz.id), {"totalQuestions": index + 1})
        return question

    def update_question(self, quiz_id: str, question_id: str, draft: QuestionDraft) -> Question:
        with self._store.transaction() as txn:
            self._editable_quiz(txn, quiz_id)
            existing = txn.get(question_path(quiz_id, question_id))
            if existing is None:
                raise NotFoundError(f"Question {question_id} not found in quiz {quiz_id}.")
            # Preserve the original position
            question = self._prepare_question(draft, int(existing["index"]), question_id)
            txn.set(question_path(quiz_id, question_id), question.to_document())
        return question

    def delete_question(self, quiz_id: str, question_id: str) -> None:
        """Delete a question and re-compact the indices of those after it."""
        with self._store.transaction() as txn:
            self._editable_quiz(txn, quiz_id)
            if txn.get(question_path(quiz_id, question_id)) is None:
                raise NotFoundError(f"Question {question_id} not found in quiz {quiz_id}.")
            txn.delete(question_path(quiz_id, question_id))
            remaining = txn.list(questions_path(quiz_id), order_by="index")
            for new_index, snapshot in enumerate(remaining):
                if snapshot.data.get("index") != new_index:
                    txn.update(snapshot.path, {"index": new_index})
            txn.update(quiz_path(quiz_id), {"totalQuestions": len(remaining)})

    # --- Helpers ---

    @staticmethod
    def _editable_quiz(txn: Transaction, quiz_id: str) -> Quiz:
        quiz = read_quiz(txn, quiz_id)
        if quiz.status is not QuizStatus.DRAFT:
            raise IllegalTransitionError(
                f"Questions can only be changed while the quiz is a draft (status is {quiz.status.value})."
            )
        return quiz

    @staticmethod
    def _code_in_use(txn: Transaction, code: str) -> bool:
        return bool(
            txn.list(
                QUIZZES,
                where=lambda data: data.get("quizCode") == code
                and data.get("status") != QuizStatus.ENDED.value,
            )
        )

    def _prepare_question(self, draft: QuestionDraft, index: int, question_id: str) -> Question:
        """Validate and normalize a question before storage."""
        text = (draft.text or "").strip()
        if len(text) < MIN_QUESTION_TEXT_LENGTH:
            raise ValidationError(
                f"Question text must be at least {MIN_QUESTION_TEXT_LENGTH} characters."
            )
        options = self._validate_options(draft.options)

        correct = draft.correct_answer
        if not _is_int(correct) or not 0 <= correct < len(options):
            raise ValidationError(f"Correct answer must be an option index between 0 and {len(options) - 1}.")
        if not options[correct]:
            raise ValidationError("Correct answer must point at a non-empty option.")

        option_images = draft.option_images
        if option_images is None:
            option_images = [""] * len(options)
        elif len(option_images) != len(options) or not all(isinstance(i, str) for i in option_images):
            raise ValidationError(f"Option images must be a list of {len(options)} strings.")

        if not isinstance(draft.image_url or "", str):
            raise ValidationError("Image URL must be a string.")

        return Question(
            id=question_id,
            index=index,
            text=text,
            options=options,
            correct_answer=correct,
            image_url=draft.image_url or "",
            option_images=list(option_images),
        )

    def _validate_options(self, options: list[str]) -> list[str]:
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise ValidationError("Options must be a list of strings.")
        cleaned = [option.strip() for option in options]
        if self._allow_legacy_options:
            if sum(1 for option in cleaned if option) < LEGACY_MIN_OPTION_COUNT:
                raise ValidationError(f"At least {LEGACY_MIN_OPTION_COUNT} options are required.")
            return cleaned
        if len(cleaned) != OPTION_COUNT:
            raise ValidationError(f"Each question must have exactly {OPTION_COUNT} options.")
        if any(not option for option in cleaned):
            raise ValidationError("Option text cannot be empty.")
        return cleaned

    @staticmethod
    def _validate_title(title: str) -> str:
        cleaned = (title or "").strip()
        if len(cleaned) < MIN_TITLE_LENGTH:
            raise ValidationError(f"Quiz title must be at least {MIN_TITLE_LENGTH} characters.")
        return cleaned

    @staticmethod
    def _validate_time_mode(time_mode: TimeMode | str) -> TimeMode:
        try:
            return TimeMode(time_mode)
        except ValueError as exc:
            raise ValidationError(f"Unknown time mode: {time_mode!r}") from exc

    @classmethod
    def _validate_time_settings(
        cls,
        time_mode: TimeMode,
        time_per_question: int | None,
        total_time: int | None,
    ) -> tuple[int, int]:
        if time_mode is TimeMode.PER_QUESTION and time_per_question is None:
            raise ValidationError("timePerQuestion is required for per-question mode.")
        if time_mode is TimeMode.OVERALL and total_time is None:
            raise ValidationError("totalTime is required for overall mode.")
        per_question = DEFAULT_TIME_PER_QUESTION_SECONDS
        if time_per_question is not None:
            per_question = cls._check_range(
                "timePerQuestion",
                time_per_question,
                MIN_TIME_PER_QUESTION_SECONDS,
                MAX_TIME_PER_QUESTION_SECONDS,
            )
        total = DEFAULT_TOTAL_TIME_SECONDS
        if total_time is not None:
            total = cls._check_range("totalTime", total_time, MIN_TOTAL_TIME_SECONDS, MAX_TOTAL_TIME_SECONDS)
        return per_question, total

    @staticmethod
    def _check_range(name: str, value: int, minimum: int, maximum: int) -> int:
        if not _is_int(value):
            raise ValidationError(f"{name} must be an integer number of seconds.")
        if not minimum <= value <= maximum:
            raise ValidationError(f"{name} must be between {minimum} and {maximum} seconds.")
        return value

    @staticmethod
    def _validate_email(email: str) -> str:
        normalized = normalize_email(email or "")
        if "@" not in normalized:
            raise ValidationError(f"Not an email address: {email!r}")
        return normalized


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _newest_first(quizzes: list[Quiz]) -> list[Quiz]:
    return sorted(
        quizzes,
        key=lambda quiz: quiz.created_at.timestamp() if quiz.created_at else 0.0,
        reverse=True,
    )
