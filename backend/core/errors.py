"""
Signing Error Taxonomy
======================
Every failure the signing core reports to a caller derives from
``SigningError``. The HTTP layer maps ``status_code`` straight onto the
response; anything that is not a ``SigningError`` becomes a generic 500.
"""

from typing import Optional


class SigningError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code: int = 500
    default_message: str = "Signing request failed"

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(SigningError):
    """Missing or malformed request fields. Nothing was mutated."""

    status_code = 400
    default_message = "Invalid request"


class AuthError(SigningError):
    """Invalid, expired or wrong-role capability token."""

    status_code = 403
    default_message = "Wrong link"


class NotFound(SigningError):
    """Agreement or document absent."""

    status_code = 404
    default_message = "Not found"


class Conflict(SigningError):
    """A signing precondition was violated."""

    status_code = 409
    default_message = "Signing precondition failed"


class BadRequest(SigningError):
    """Request names something the agreement does not have configured."""

    status_code = 400
    default_message = "Bad request"


class ConfigurationError(SigningError):
    """Template unregistered, template file missing or anchor missing."""

    status_code = 500
    default_message = "Signing configuration error"


class TransientIOError(SigningError):
    """Mail or archival failure. Logged, never the operation's outcome."""

    status_code = 502
    default_message = "Upstream I/O failed"
