import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cajpro.db")

SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "7"))
SESSION_TOKEN_BYTES = int(os.getenv("SESSION_TOKEN_BYTES", "32"))
SESSION_CLEANUP_ON_STARTUP = _get_bool(os.getenv("SESSION_CLEANUP_ON_STARTUP"), default=True)
SESSION_CLEANUP_INTERVAL_MINUTES = int(os.getenv("SESSION_CLEANUP_INTERVAL_MINUTES", "60"))

PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "8"))
# bcrypt only looks at the first 72 bytes of its input
PASSWORD_MAX_BYTES = 72
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "cajpro_auth_token")
COOKIE_SECURE = _get_bool(os.getenv("COOKIE_SECURE"), default=APP_ENV.lower() == "production")
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:3000"])


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and not COOKIE_SECURE:
        raise RuntimeError("COOKIE_SECURE must be enabled in production.")
    if BCRYPT_ROUNDS < 4 or BCRYPT_ROUNDS > 31:
        raise RuntimeError("BCRYPT_ROUNDS must be between 4 and 31.")
    if SESSION_TTL_DAYS < 1:
        raise RuntimeError("SESSION_TTL_DAYS must be at least 1.")
