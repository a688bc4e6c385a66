"""Validation rules and draft state for the add/edit book form."""

from __future__ import annotations

import math
from datetime import date
from typing import Any, Callable

import structlog

from .errors import DraftLocked, FormValidationError, SubmissionInProgress
from .models import FIELD_NAMES, Book, BookInput, BookStatus
from .mutations import MutationPipeline, MutationResult

log = structlog.get_logger()

MIN_YEAR = 1000
STATUSES = tuple(s.value for s in BookStatus)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def validate_title(value: Any) -> str | None:
    text = _text(value)
    if not text:
        return "Title is required"
    if len(text) > 100:
        return "Title must be less than 100 characters"
    return None


def validate_author(value: Any) -> str | None:
    text = _text(value)
    if not text:
        return "Author is required"
    if len(text) < 2:
        return "Author must be at least 2 characters"
    if len(text) > 50:
        return "Author must be less than 50 characters"
    return None


def validate_genre(value: Any) -> str | None:
    if not _text(value):
        return "Genre is required"
    return None


def parse_year(value: Any) -> float | None:
    """Read a year from form input; None when it is not a number at all."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(_text(value).strip())
    except ValueError:
        return None


def validate_published_year(value: Any, current_year: int) -> str | None:
    if value is None or _text(value).strip() == "":
        return "Published year is required"
    year = parse_year(value)
    if year is None or not math.isfinite(year):
        return "Published year must be a number"
    if year != int(year):
        return "Year must be a whole number"
    if year < MIN_YEAR:
        return "Year must be after 1000"
    if year > current_year:
        return f"Year cannot be later than {current_year}"
    return None


def validate_status(value: Any) -> str | None:
    text = _text(value)
    if not text:
        return "Status is required"
    if text not in STATUSES:
        return "Status must be Available or Issued"
    return None


def validate_field(name: str, value: Any, current_year: int) -> str | None:
    if name == "title":
        return validate_title(value)
    if name == "author":
        return validate_author(value)
    if name == "genre":
        return validate_genre(value)
    if name == "publishedYear":
        return validate_published_year(value, current_year)
    if name == "status":
        return validate_status(value)
    raise KeyError(f"Unknown form field: {name}")


def validate_form(values: dict[str, Any], current_year: int) -> dict[str, str]:
    """Return field -> message for every invalid field (empty when valid)."""
    errors = {}
    for name in FIELD_NAMES:
        message = validate_field(name, values.get(name), current_year)
        if message:
            errors[name] = message
    return errors


def to_input(values: dict[str, Any]) -> BookInput:
    """Build the write payload from validated form values."""
    return BookInput(
        title=_text(values["title"]),
        author=_text(values["author"]),
        genre=_text(values["genre"]),
        published_year=int(parse_year(values["publishedYear"])),
        status=_text(values["status"]),
    )


class Draft:
    """Staged form input for one add or edit action.

    Fields move from untouched to touched on change or blur; only touched
    fields show their errors. submit() touches everything first, so an
    invalid form never reaches the pipeline.
    """

    def __init__(
        self,
        values: dict[str, Any],
        book_id: str | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.fields: dict[str, Any] = {name: values.get(name, "") for name in FIELD_NAMES}
        self.book_id = book_id
        self.touched: set[str] = set()
        self.submitting = False
        self.closed = False
        self.target_missing = False
        self._today = today
        self.errors: dict[str, str] = self._validate()

    @classmethod
    def for_create(cls, today: Callable[[], date] = date.today) -> Draft:
        return cls({"status": BookStatus.AVAILABLE.value}, today=today)

    @classmethod
    def for_edit(cls, book: Book, today: Callable[[], date] = date.today) -> Draft:
        return cls(
            {
                "title": book.title,
                "author": book.author,
                "genre": book.genre,
                "publishedYear": book.published_year or "",
                "status": book.status or BookStatus.AVAILABLE.value,
            },
            book_id=book.id,
            today=today,
        )

    @property
    def mode(self) -> str:
        return "create" if self.book_id is None else "edit"

    @property
    def current_year(self) -> int:
        return self._today().year

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def visible_errors(self) -> dict[str, str]:
        return {k: v for k, v in self.errors.items() if k in self.touched}

    def _validate(self) -> dict[str, str]:
        return validate_form(self.fields, self.current_year)

    def _ensure_editable(self) -> None:
        if self.closed:
            raise DraftLocked("Draft is closed")
        if self.submitting:
            raise DraftLocked("Draft is being submitted")

    def change(self, name: str, value: Any) -> str | None:
        """Set a field and return its error, if any."""
        if name not in self.fields:
            raise KeyError(f"Unknown form field: {name}")
        self._ensure_editable()
        self.fields[name] = value
        self.touched.add(name)
        self.errors = self._validate()
        return self.errors.get(name)

    def blur(self, name: str) -> str | None:
        if name not in self.fields:
            raise KeyError(f"Unknown form field: {name}")
        self.touched.add(name)
        return self.errors.get(name)

    async def submit(self, pipeline: MutationPipeline) -> MutationResult:
        if self.submitting:
            raise SubmissionInProgress("A save is already running for this draft")
        self._ensure_editable()
        self.touched.update(FIELD_NAMES)
        self.errors = self._validate()
        if self.errors:
            log.debug("draft_invalid", mode=self.mode, fields=sorted(self.errors))
            raise FormValidationError(dict(self.errors))

        payload = to_input(self.fields)
        self.submitting = True
        try:
            if self.book_id is None:
                result = await pipeline.create(payload)
            else:
                result = await pipeline.update(self.book_id, payload)
        finally:
            self.submitting = False
        if result.ok:
            self.closed = True
        return result
