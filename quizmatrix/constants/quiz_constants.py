"""Quiz-related constants shared across core and server layers."""

BASE_SCORE: int = 100
MAX_SPEED_BONUS: int = 50

MIN_TIME_PER_QUESTION_SECONDS: int = 10
MAX_TIME_PER_QUESTION_SECONDS: int = 120
DEFAULT_TIME_PER_QUESTION_SECONDS: int = 30

MIN_TOTAL_TIME_SECONDS: int = 60
MAX_TOTAL_TIME_SECONDS: int = 3600
DEFAULT_TOTAL_TIME_SECONDS: int = 300

MIN_TITLE_LENGTH: int = 3
MIN_QUESTION_TEXT_LENGTH: int = 5
OPTION_COUNT: int = 4
LEGACY_MIN_OPTION_COUNT: int = 2

QUIZ_CODE_LENGTH: int = 6
QUIZ_CODE_ALPHABET: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
QUIZ_CODE_MAX_ATTEMPTS: int = 20

# Submitted when the countdown expired before the participant picked an option.
NO_ANSWER: int = -1
