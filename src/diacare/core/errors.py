"""Error taxonomy shared by every store and service.

* ``ValidationError``: malformed or out-of-range input, raised before any write.
* ``DuplicateEmailError``: registration (or email change) conflicts with an existing account.
* ``NotFoundError``: operation on an id that does not exist for the caller.
* ``AuthenticationError``: an operation needs a session and there is none.
  Internal only: ``login`` never raises it; a failed login returns ``None``.
* ``StorageError``: the underlying database failed; the operation was rolled back.
"""

from __future__ import annotations


class DiaCareError(Exception):
    """Base class for all service errors."""


class ValidationError(DiaCareError):
    """Raised when input fails validation. ``field`` names the offending input."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidTransitionError(ValidationError):
    """Raised when a reminder status change is not allowed for today's occurrence."""


class DuplicateEmailError(DiaCareError):
    """Raised when an email address is already registered."""


class NotFoundError(DiaCareError):
    """Raised when an entity does not exist (or is not owned by the caller)."""


class AuthenticationError(DiaCareError):
    """Raised when an operation requires a logged-in user."""


class StorageError(DiaCareError):
    """Raised when database operations fail."""


class EncryptionError(StorageError):
    """Raised when encryption/decryption fails."""
