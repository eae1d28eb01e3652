"""
Exception types shared across Dealbook.

The calculation core never raises in lenient numeric mode; everything
here belongs to the form, session and record store boundaries.
"""


class DealbookError(Exception):
    """Base class for all Dealbook errors."""


class DealValidationError(DealbookError):
    """Malformed form input (e.g. non-positive USDT amount)."""

    def __init__(self, message: str, errors: list = None):
        super().__init__(message)
        self.errors = errors or []


class AuthorizationError(DealbookError):
    """Missing or expired session. The UI should send the user to login."""


class RemoteOperationError(DealbookError):
    """A record store call failed. Shown to the user, not retried for writes."""


class DealNotFoundError(DealbookError):
    """The deal does not exist or belongs to another user."""


class InvalidNumberError(DealbookError, ValueError):
    """Raised by strict numeric parsing for missing or non-finite input."""
