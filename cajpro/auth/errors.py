"""Errors raised by the session authentication service.

Messages are safe to show to end users; internal detail only goes to the log.
"""


class AuthError(Exception):
    default_message = 'Authentication failed.'

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class DuplicateEmail(AuthError):
    default_message = 'This email is already registered.'


class WeakPassword(AuthError):
    default_message = 'Password does not meet the password policy.'


class InvalidEmail(AuthError):
    default_message = 'A valid email address is required.'


class InvalidCredentials(AuthError):
    # Unknown user and wrong password share this exact message.
    default_message = 'Invalid email or password.'


class StoreUnavailable(AuthError):
    default_message = 'Service temporarily unavailable. Please try again.'
