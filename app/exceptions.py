"""
Domain errors raised by the authentication flows

Each error carries the HTTP status and the message that is safe to show to
the caller. The handlers registered in main.py translate them to responses.
"""


class AuthError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400

    def __init__(self, message: str, headers: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.headers = headers


class Unauthorized(AuthError):
    """Bad, expired or mismatched credential."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class NotFound(AuthError):
    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class BadRequest(AuthError):
    status_code = 400

    def __init__(self, message: str = "Bad request"):
        super().__init__(message)


class EmailDeliveryError(Exception):
    """Raised when the email provider could not deliver a message."""
    pass
