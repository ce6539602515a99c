import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./interview_questions.db")

CORS_ORIGINS = _get_list(
    os.getenv("CORS_ORIGINS"),
    ["http://localhost:3000", "http://localhost:5173"],
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(60 * 24 * 7)))

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

UPVOTE_RETRY_LIMIT = int(os.getenv("UPVOTE_RETRY_LIMIT", "5"))

RATE_LIMIT_ENABLED = _get_bool(os.getenv("RATE_LIMIT_ENABLED"), default=True)
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))
RATE_LIMIT_GENERAL_MAX = int(os.getenv("RATE_LIMIT_GENERAL_MAX", "100"))
RATE_LIMIT_AUTH_MAX = int(os.getenv("RATE_LIMIT_AUTH_MAX", "5"))
RATE_LIMIT_STRICT_MAX = int(os.getenv("RATE_LIMIT_STRICT_MAX", "10"))


def is_development() -> bool:
    return APP_ENV.lower() == "development"


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DEFAULT_PAGE_SIZE < 1 or MAX_PAGE_SIZE < DEFAULT_PAGE_SIZE:
        raise RuntimeError("Page size settings are inconsistent.")
    if UPVOTE_RETRY_LIMIT < 1:
        raise RuntimeError("UPVOTE_RETRY_LIMIT must be at least 1.")
