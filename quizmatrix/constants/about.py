"""Static metadata describing QuizMatrix."""

APP_NAME = "QuizMatrix"
APP_VERSION = "0.1.0"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "QuizMatrix is a live-quiz backend: admins author quizzes and control pacing, "
    "participants join with a six-character code and answer against the clock."
)
