import bcrypt

from cajpro.auth.errors import WeakPassword
from cajpro.core import config

_dummy_hash: bytes | None = None


def check_password_policy(password: str) -> None:
    if password is None or len(password) < config.PASSWORD_MIN_LENGTH:
        raise WeakPassword(f'Password must be at least {config.PASSWORD_MIN_LENGTH} characters long.')
    if len(password.encode('utf-8')) > config.PASSWORD_MAX_BYTES:
        raise WeakPassword(f'Password must be at most {config.PASSWORD_MAX_BYTES} bytes long.')


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison of ``password`` against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash or over-long input
        return False


def burn_verification(password: str) -> None:
    """Spend one bcrypt verification for logins that have no user to check.

    Keeps "unknown email" as slow as "wrong password".
    """
    global _dummy_hash

    if _dummy_hash is None:
        _dummy_hash = bcrypt.hashpw(b'cajpro-dummy-password', bcrypt.gensalt(config.BCRYPT_ROUNDS))
    try:
        bcrypt.checkpw(password.encode('utf-8'), _dummy_hash)
    except ValueError:
        pass
