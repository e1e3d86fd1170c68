import secrets
from datetime import datetime, timedelta

from cajpro.core import config


def generate_session_token() -> str:
    """Fixed-length random hex token (two characters per byte)."""
    return secrets.token_hex(config.SESSION_TOKEN_BYTES)


def session_expiry(issued_at: datetime) -> datetime:
    return issued_at + timedelta(days=config.SESSION_TTL_DAYS)


def session_max_age_seconds() -> int:
    return int(timedelta(days=config.SESSION_TTL_DAYS).total_seconds())
