"""Error hierarchy for the dashboard engine."""

from __future__ import annotations


class BookDashError(Exception):
    """Base for all bookdash errors."""


class BookApiError(BookDashError):
    """The remote book endpoint failed or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class TransientFetchError(BookDashError):
    """A collection read failed after the retry budget was spent."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.message = message
        self.attempts = attempts


class MutationError(BookDashError):
    """A create, update or delete was rejected or never reached the server."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(BookDashError):
    """Invalid input that must be fixed before it can be written."""


class FormValidationError(ValidationError):
    def __init__(self, errors: dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


class SubmissionInProgress(BookDashError):
    """A second submit was attempted while a mutation is still running."""


class DraftLocked(BookDashError):
    """A submitting or closed draft cannot be edited."""
