"""Runtime settings read from the environment (or a local ``.env`` file)."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from quizmatrix.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT


class QuizMatrixSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="QUIZMATRIX_",
        extra="ignore",
    )

    host: str = Field(default=DEFAULT_HOST)
    port: int = Field(default=DEFAULT_PORT)
    log_level: str = Field(default="INFO")
    master_admin_email: str = Field(default="")
    # Comma separated so it reads naturally from a plain env var.
    admin_emails: str = Field(default="")
    allow_legacy_options: bool = Field(default=False)

    @property
    def admin_email_list(self) -> list[str]:
        return [email.strip() for email in self.admin_emails.split(",") if email.strip()]


def load_settings() -> QuizMatrixSettings:
    return QuizMatrixSettings()
