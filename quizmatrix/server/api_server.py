"""FastAPI server that exposes admin and participant endpoints."""

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

from quizmatrix.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from quizmatrix.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quizmatrix.core.errors import (
    AccessDeniedError,
    AlreadyAnsweredError,
    IllegalTransitionError,
    NotFoundError,
    QuizError,
    StoreError,
    ValidationError,
)
from quizmatrix.core.models import (
    Identity,
    Participant,
    Question,
    QuestionDraft,
    Quiz,
    QuizSettings,
    QuizStatus,
)
from quizmatrix.core.quiz_manager import QuizManager
from quizmatrix.core.services.scoreboard import QuestionStats, ScoreboardRow
from quizmatrix.core.timestamps import to_iso

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[QuizError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    IllegalTransitionError: 409,
    AlreadyAnsweredError: 409,
    AccessDeniedError: 403,
    StoreError: 503,
}


class _DocumentPayload(BaseModel):
    """Accepts the camelCase document field names as well as snake_case."""

    model_config = ConfigDict(populate_by_name=True)


class QuestionPayload(_DocumentPayload):
    text: str
    options: list[str]
    correct_answer: int = Field(alias="correctAnswer")
    image_url: str = Field(default="", alias="imageUrl")
    option_images: list[str] | None = Field(default=None, alias="optionImages")

    def to_draft(self) -> QuestionDraft:
        return QuestionDraft(
            text=self.text,
            options=list(self.options),
            correct_answer=self.correct_answer,
            image_url=self.image_url,
            option_images=self.option_images,
        )


class QuizPayload(_DocumentPayload):
    """Payload schema for creating a quiz, optionally with its questions."""

    title: str
    time_mode: str = Field(default="perQuestion", alias="timeMode")
    time_per_question: int | None = Field(default=None, alias="timePerQuestion")
    total_time: int | None = Field(default=None, alias="totalTime")
    questions: list[QuestionPayload] = Field(default_factory=list)


class QuizUpdatePayload(_DocumentPayload):
    title: str | None = None
    time_per_question: int | None = Field(default=None, alias="timePerQuestion")
    total_time: int | None = Field(default=None, alias="totalTime")


class AdvancePayload(_DocumentPayload):
    """Only advance if the quiz is still on this question (-1 in the waiting room)."""

    expected_index: int = Field(alias="expectedIndex")


class AnswerPayload(_DocumentPayload):
    """Payload schema for submitted answers; ``None`` (or -1) records a no-answer."""

    question_index: int = Field(alias="questionIndex")
    selected_option: int | None = Field(default=None, alias="selectedOption")
    time_taken: float | None = Field(default=None, alias="timeTaken")


class EmailListPayload(BaseModel):
    emails: list[str]


class EmailPayload(BaseModel):
    email: str


class RestrictionPayload(BaseModel):
    restricted: bool


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


def _get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_email: str = Header(default=""),
    x_user_name: str = Header(default=""),
) -> Identity:
    """Caller identity as forwarded by the authenticating proxy."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header.")
    return Identity(uid=x_user_id, email=x_user_email, display_name=x_user_name)


def _status_for(exc: QuizError) -> int:
    for klass in type(exc).__mro__:
        if klass in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[klass]
    return 400


def _serialize_quiz(quiz: Quiz) -> dict[str, object]:
    document = quiz.to_document()
    for key in ("questionStartTime", "quizStartTime", "createdAt"):
        document[key] = to_iso(document[key])
    return {"id": quiz.id, **document}


def _serialize_question(question: Question, reveal_answer: bool = True) -> dict[str, object]:
    document = question.to_document()
    if not reveal_answer:
        document.pop("correctAnswer")
    return {"id": question.id, **document}


def _serialize_participant(participant: Participant) -> dict[str, object]:
    document = participant.to_document()
    document["joinedAt"] = to_iso(participant.joined_at)
    return document


def _serialize_row(row: ScoreboardRow) -> dict[str, object]:
    return {
        "rank": row.rank,
        "uid": row.uid,
        "displayName": row.display_name,
        "email": row.email,
        "score": row.score,
        "answeredCount": row.answered_count,
    }


def _serialize_stats(stats: QuestionStats) -> dict[str, object]:
    return {
        "questionIndex": stats.question_index,
        "optionCounts": stats.option_counts,
        "noAnswerCount": stats.no_answer_count,
        "responseCount": stats.response_count,
        "correctCount": stats.correct_count,
        "correctPercentage": stats.correct_percentage,
    }


def create_api_app(quiz_manager: QuizManager) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager."""
    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
    )
    quiz_manager_dep = _get_quiz_manager_dependency(quiz_manager)

    @app.exception_handler(QuizError)
    async def handle_quiz_error(request: Request, exc: QuizError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": exc.code})

    # --- Quizzes ---

    @app.post("/quizzes", status_code=201)
    def create_quiz(
        payload: QuizPayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        if not manager.is_admin(identity):
            raise AccessDeniedError("Only admins can create quizzes.")
        settings = QuizSettings(
            title=payload.title,
            time_mode=payload.time_mode,
            time_per_question=payload.time_per_question,
            total_time=payload.total_time,
        )
        drafts = [question.to_draft() for question in payload.questions]
        quiz = manager.create_quiz_with_questions(settings, drafts, identity)
        return _serialize_quiz(quiz)

    @app.get("/quizzes")
    def list_quizzes(
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        """Admins see the quizzes they manage; everyone else the ones they are registered for."""
        if not manager.is_admin(identity):
            quizzes = manager.list_registered_quizzes(identity.email)
            return {"quizzes": [_serialize_quiz(quiz) for quiz in quizzes]}
        return {
            "quizzes": [
                {**_serialize_quiz(quiz), "isShared": quiz.created_by != identity.uid}
                for quiz in manager.list_quizzes_for_admin(identity)
            ]
        }

    @app.get("/quizzes/by-code/{code}")
    def get_quiz_by_code(code: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        quiz = manager.get_quiz_by_code(code)
        if quiz is None:
            raise NotFoundError(f"No quiz with code {code!r}.")
        return _serialize_quiz(quiz)

    @app.get("/quizzes/{quiz_id}")
    def get_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        state = manager.describe_quiz_state(quiz_id)
        return {
            **_serialize_quiz(state.quiz),
            "serverTime": to_iso(state.server_time),
            "remainingSeconds": state.remaining_seconds,
        }

    @app.patch("/quizzes/{quiz_id}")
    def update_quiz(
        quiz_id: str,
        payload: QuizUpdatePayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        quiz = manager.update_quiz(quiz_id, payload.title, payload.time_per_question, payload.total_time)
        return _serialize_quiz(quiz)

    @app.delete("/quizzes/{quiz_id}", status_code=204)
    def delete_quiz(
        quiz_id: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> None:
        manager.authorize_admin(quiz_id, identity)
        manager.delete_quiz(quiz_id)

    # --- Questions ---

    @app.get("/quizzes/{quiz_id}/questions")
    def list_questions(
        quiz_id: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        quiz = manager.get_quiz(quiz_id)
        is_manager = manager.admin_directory.can_manage(quiz, identity)
        reveal = is_manager or quiz.status is QuizStatus.ENDED
        questions = manager.get_questions(quiz_id)
        return {"questions": [_serialize_question(question, reveal) for question in questions]}

    @app.post("/quizzes/{quiz_id}/questions", status_code=201)
    def add_question(
        quiz_id: str,
        payload: QuestionPayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_question(manager.add_question(quiz_id, payload.to_draft()))

    @app.put("/quizzes/{quiz_id}/questions/{question_id}")
    def update_question(
        quiz_id: str,
        question_id: str,
        payload: QuestionPayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_question(manager.update_question(quiz_id, question_id, payload.to_draft()))

    @app.delete("/quizzes/{quiz_id}/questions/{question_id}", status_code=204)
    def delete_question(
        quiz_id: str,
        question_id: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> None:
        manager.authorize_admin(quiz_id, identity)
        manager.delete_question(quiz_id, question_id)

    # --- Lifecycle ---

    @app.post("/quizzes/{quiz_id}/start")
    def start_quiz(
        quiz_id: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.start_quiz(quiz_id))

    @app.post("/quizzes/{quiz_id}/advance")
    def advance(
        quiz_id: str,
        payload: AdvancePayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.advance(quiz_id, payload.expected_index))

    @app.post("/quizzes/{quiz_id}/start-self-paced")
    def start_self_paced(
        quiz_id: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.start_self_paced(quiz_id))

    @app.post("/quizzes/{quiz_id}/end")
    def end_quiz(
        quiz_id: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.end_quiz(quiz_id))

    @app.post("/quizzes/{quiz_id}/restart")
    def restart_quiz(
        quiz_id: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.restart_quiz(quiz_id))

    @app.post("/quizzes/{quiz_id}/tick")
    def tick(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        """Called by any countdown observer once its timer reaches zero."""
        return _serialize_quiz(manager.expire_if_due(quiz_id))

    # --- Participation ---

    @app.post("/quizzes/{quiz_id}/join", status_code=201)
    def join(
        quiz_id: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return _serialize_participant(manager.join(quiz_id, identity))

    @app.post("/quizzes/{quiz_id}/answers", status_code=201)
    def submit_answer(
        quiz_id: str,
        payload: AnswerPayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        selected = payload.selected_option
        if selected is not None and selected < 0:
            selected = None
        if payload.time_taken is None:
            points = manager.submit_answer_now(quiz_id, identity, payload.question_index, selected)
        else:
            points = manager.submit_answer(
                quiz_id, identity, payload.question_index, selected, payload.time_taken
            )
        return {"questionIndex": payload.question_index, "points": points}

    @app.get("/quizzes/{quiz_id}/answered/{question_index}")
    def has_answered(
        quiz_id: str,
        question_index: int,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return {"answered": manager.has_answered(quiz_id, identity.uid, question_index)}

    # --- Results ---

    @app.get("/quizzes/{quiz_id}/leaderboard")
    def leaderboard(
        quiz_id: str,
        limit: int | None = None,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        rows = manager.get_leaderboard(quiz_id, limit)
        return {"leaderboard": [_serialize_row(row) for row in rows]}

    @app.get("/quizzes/{quiz_id}/questions/{question_index}/stats")
    def question_stats(
        quiz_id: str,
        question_index: int,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_stats(manager.get_question_stats(quiz_id, question_index))

    # --- Access & sharing ---

    @app.post("/quizzes/{quiz_id}/allowed")
    def add_allowed(
        quiz_id: str,
        payload: EmailListPayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        added = manager.add_allowed(quiz_id, payload.emails)
        return {"added": added, "quiz": _serialize_quiz(manager.get_quiz(quiz_id))}

    @app.delete("/quizzes/{quiz_id}/allowed")
    def remove_allowed(
        quiz_id: str,
        email: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.remove_allowed(quiz_id, email))

    @app.put("/quizzes/{quiz_id}/restriction")
    def set_restriction(
        quiz_id: str,
        payload: RestrictionPayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.set_restricted(quiz_id, payload.restricted))

    @app.post("/quizzes/{quiz_id}/shared")
    def share_quiz(
        quiz_id: str,
        payload: EmailPayload,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.share_quiz(quiz_id, payload.email))

    @app.delete("/quizzes/{quiz_id}/shared")
    def unshare_quiz(
        quiz_id: str,
        email: str,
        identity: Identity = Depends(_get_identity),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        manager.authorize_admin(quiz_id, identity)
        return _serialize_quiz(manager.unshare_quiz(quiz_id, email))

    return app


def run_api_server(
    quiz_manager: QuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = "info",
) -> None:
    """Serve the API in the foreground until interrupted."""
    app = create_api_app(quiz_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=log_level.lower())
    server = uvicorn.Server(config)
    server.run()
