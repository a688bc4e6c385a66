"""Tests for form validation rules and draft submission."""

import asyncio
from datetime import date

import pytest

from bookdash.core import forms
from bookdash.core.errors import (
    DraftLocked,
    FormValidationError,
    MutationError,
    SubmissionInProgress,
)
from bookdash.core.forms import Draft, validate_form
from bookdash.core.models import Book, BookInput
from bookdash.core.mutations import MutationFailure, MutationSuccess

VALID = {
    "title": "Dune",
    "author": "Frank Herbert",
    "genre": "Science Fiction",
    "publishedYear": "1965",
    "status": "Available",
}


class RecordingPipeline:
    """Stands in for MutationPipeline and records what it was asked to do."""

    def __init__(self, ok=True, gate=None):
        self.ok = ok
        self.gate = gate
        self.calls = []

    async def _result(self, kind, book_id):
        if self.gate is not None:
            await self.gate.wait()
        if self.ok:
            return MutationSuccess(kind=kind, book_id=book_id or "new")
        return MutationFailure(kind=kind, error=MutationError("Failed to add book"))

    async def create(self, payload):
        self.calls.append(("create", None, payload))
        return await self._result("create", None)

    async def update(self, book_id, payload):
        self.calls.append(("update", book_id, payload))
        return await self._result("update", book_id)


def _draft(today, **values):
    return Draft({**VALID, **values}, today=today)


class TestRules:
    @pytest.mark.parametrize(
        "field, value, message",
        [
            ("title", "", "Title is required"),
            ("title", "x" * 101, "Title must be less than 100 characters"),
            ("author", "", "Author is required"),
            ("author", "A", "Author must be at least 2 characters"),
            ("author", "x" * 51, "Author must be less than 50 characters"),
            ("genre", "", "Genre is required"),
            ("publishedYear", "", "Published year is required"),
            ("publishedYear", None, "Published year is required"),
            ("publishedYear", "nineteen", "Published year must be a number"),
            ("publishedYear", "1965.5", "Year must be a whole number"),
            ("publishedYear", 999, "Year must be after 1000"),
            ("publishedYear", "3000", "Year cannot be later than 2024"),
            ("status", "", "Status is required"),
            ("status", "Lost", "Status must be Available or Issued"),
        ],
    )
    def test_field_messages(self, field, value, message):
        errors = validate_form({**VALID, field: value}, current_year=2024)
        assert errors == {field: message}

    def test_boundaries_are_inclusive(self):
        values = {**VALID, "title": "x" * 100, "author": "Al",
                  "publishedYear": 1000}
        assert validate_form(values, current_year=2024) == {}
        assert validate_form({**VALID, "author": "x" * 50, "publishedYear": "2024"}, 2024) == {}

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            forms.validate_field("isbn", "123", 2024)

    def test_payload_coerces_year(self):
        payload = forms.to_input({**VALID, "publishedYear": " 1965 "})
        assert payload == BookInput("Dune", "Frank Herbert", "Science Fiction", 1965, "Available")
        assert isinstance(payload.published_year, int)


class TestDraft:
    def test_create_draft_defaults(self, today):
        draft = Draft.for_create(today=today)
        assert draft.mode == "create"
        assert draft.fields["status"] == "Available"
        assert not draft.is_valid
        # Nothing touched yet, so nothing shown.
        assert draft.visible_errors == {}

    def test_edit_draft_starts_from_book(self, today):
        book = Book("7", "Emma", "Jane Austen", "Romance", 1815, "Issued")
        draft = Draft.for_edit(book, today=today)
        assert draft.mode == "edit"
        assert draft.book_id == "7"
        assert draft.fields["publishedYear"] == 1815
        assert draft.is_valid

    def test_errors_show_once_touched(self, today):
        draft = Draft.for_create(today=today)
        assert draft.blur("title") == "Title is required"
        assert draft.visible_errors == {"title": "Title is required"}
        assert draft.change("title", "Dune") is None
        assert "title" not in draft.visible_errors

    def test_future_year_blocks_submission(self, today):
        pipeline = RecordingPipeline()
        draft = _draft(today, publishedYear=3000)
        with pytest.raises(FormValidationError) as exc:
            asyncio.run(draft.submit(pipeline))
        assert exc.value.errors == {"publishedYear": "Year cannot be later than 2024"}
        assert pipeline.calls == []
        assert draft.touched == set(VALID)
        assert not draft.submitting

    def test_current_year_follows_clock(self):
        draft = _draft(lambda: date(3001, 1, 1), publishedYear=3000)
        assert draft.is_valid

    def test_valid_submit_creates_and_closes(self, today):
        pipeline = RecordingPipeline()
        draft = _draft(today)
        result = asyncio.run(draft.submit(pipeline))
        assert result.ok
        kind, book_id, payload = pipeline.calls[0]
        assert (kind, book_id) == ("create", None)
        assert payload.published_year == 1965
        assert draft.closed
        with pytest.raises(DraftLocked):
            draft.change("title", "Other")

    def test_edit_submit_updates(self, today):
        book = Book("7", "Emma", "Jane Austen", "Romance", 1815, "Issued")
        pipeline = RecordingPipeline()
        asyncio.run(Draft.for_edit(book, today=today).submit(pipeline))
        assert pipeline.calls[0][:2] == ("update", "7")

    def test_failed_submit_leaves_draft_editable(self, today):
        pipeline = RecordingPipeline(ok=False)
        draft = _draft(today)
        result = asyncio.run(draft.submit(pipeline))
        assert not result.ok
        assert not draft.closed
        assert not draft.submitting
        draft.change("title", "Dune (retry)")
        assert asyncio.run(draft.submit(RecordingPipeline())).ok

    def test_no_second_submit_while_in_flight(self, today):
        async def main():
            gate = asyncio.Event()
            pipeline = RecordingPipeline(gate=gate)
            draft = _draft(today)
            first = asyncio.ensure_future(draft.submit(pipeline))
            await asyncio.sleep(0)
            assert draft.submitting
            with pytest.raises(SubmissionInProgress):
                await draft.submit(pipeline)
            with pytest.raises(DraftLocked):
                draft.change("title", "Changed")
            gate.set()
            await first
            return pipeline

        pipeline = asyncio.run(main())
        assert len(pipeline.calls) == 1
