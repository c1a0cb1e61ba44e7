"""Application entry point for the QuizMatrix server."""

from __future__ import annotations

import socket

from quizmatrix.constants.about import APP_NAME, APP_VERSION
from quizmatrix.core.clock import SystemClock
from quizmatrix.core.quiz_manager import QuizManager
from quizmatrix.core.services.admin_directory import AdminDirectory
from quizmatrix.core.store import DocumentStore
from quizmatrix.server.api_server import run_api_server
from quizmatrix.utils.logging_config import configure_logging
from quizmatrix.utils.settings import load_settings


def _determine_participant_url(port: int) -> str:
    """Best-effort determination of the local IP for the participant-facing URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Initialize logging, build the quiz core and serve the API."""
    settings = load_settings()
    logger = configure_logging(settings.log_level)
    logger.info("Starting %s %s", APP_NAME, APP_VERSION)

    admins = AdminDirectory(settings.master_admin_email, settings.admin_email_list)
    if not settings.master_admin_email:
        logger.warning("No master admin configured; set QUIZMATRIX_MASTER_ADMIN_EMAIL")
    quiz_manager = QuizManager(
        store=DocumentStore(SystemClock()),
        admin_directory=admins,
        allow_legacy_options=settings.allow_legacy_options,
    )
    logger.info("Participant API available at %s", _determine_participant_url(settings.port))
    run_api_server(quiz_manager, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
