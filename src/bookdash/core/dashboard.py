"""One user's dashboard: cached books, filters, and the open add/edit/delete action."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable

import structlog

from . import filters as f
from .api import BookApi
from .cache import CacheEntry, QueryCache
from .errors import SubmissionInProgress
from .filters import FilterState
from .forms import Draft
from .models import BOOKS_KEY, Book
from .mutations import MutationPipeline, MutationResult, NotificationCenter
from .view import PAGE_SIZE, DashboardView, ViewMemo

log = structlog.get_logger()

OTHER_GENRE = "Other"


class DeleteConfirmation:
    """A pending "are you sure?" for deleting one book."""

    def __init__(self, book: Book) -> None:
        self.book = book
        self.submitting = False
        self.closed = False

    async def confirm(self, pipeline: MutationPipeline) -> MutationResult:
        if self.submitting:
            raise SubmissionInProgress("Delete already running")
        self.submitting = True
        try:
            result = await pipeline.delete(self.book.id)
        finally:
            self.submitting = False
        if result.ok:
            self.closed = True
        return result


@dataclass(frozen=True)
class DashboardState:
    entry: CacheEntry
    filters: FilterState
    view: DashboardView

    @property
    def is_loading(self) -> bool:
        return self.entry.data is None and self.entry.error is None

    @property
    def is_error(self) -> bool:
        return self.entry.error is not None


class Dashboard:
    def __init__(
        self,
        api: BookApi,
        cache: QueryCache | None = None,
        notifications: NotificationCenter | None = None,
        page_size: int = PAGE_SIZE,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.api = api
        self.cache = cache if cache is not None else QueryCache()
        self.cache.define(BOOKS_KEY, api.list_books)
        self.notifications = notifications or NotificationCenter()
        self.cache.on_failure(BOOKS_KEY, self._fetch_failed)
        self.pipeline = MutationPipeline(api, self.cache, self.notifications)
        self.filters = FilterState()
        self.draft: Draft | None = None
        self.pending_delete: DeleteConfirmation | None = None
        self._today = today
        self._view = ViewMemo(page_size)

    # -- reading -----------------------------------------------------------

    def state(self) -> DashboardState:
        entry = self.cache.read(BOOKS_KEY)
        self._reconcile(entry)
        view = self._view(entry.data, self.filters)
        if view.total_pages and self.filters.current_page > view.total_pages:
            # A refetch shrank the result set under the active page.
            self.filters = f.set_page(self.filters, view.total_pages, view.total_pages)
            view = self._view(entry.data, self.filters)
        return DashboardState(entry=entry, filters=self.filters, view=view)

    async def load(self) -> DashboardState:
        await self.cache.ensure(BOOKS_KEY)
        return self.state()

    async def retry(self) -> DashboardState:
        await self.cache.refetch(BOOKS_KEY)
        return await self.load()

    def watch(self, callback: Callable[[CacheEntry], None]) -> Callable[[], None]:
        """Subscribe a renderer; while watched, writes refetch immediately."""
        return self.cache.subscribe(BOOKS_KEY, callback)

    def books(self) -> tuple[Book, ...]:
        return self.cache.peek(BOOKS_KEY).data or ()

    def find(self, book_id: str) -> Book | None:
        for book in self.books():
            if book.id == book_id:
                return book
        return None

    def genre_options(self) -> list[str]:
        genres = list(self.state().view.available_genres)
        if OTHER_GENRE not in genres:
            genres.append(OTHER_GENRE)
        return genres

    # -- filters -----------------------------------------------------------

    def set_search_term(self, term: str) -> FilterState:
        self.filters = f.set_search_term(self.filters, term)
        return self.filters

    def set_genre(self, genre: str | None) -> FilterState:
        self.filters = f.set_genre(self.filters, genre)
        return self.filters

    def set_status(self, status: str | None) -> FilterState:
        self.filters = f.set_status(self.filters, status)
        return self.filters

    def set_page(self, page: int) -> FilterState:
        total_pages = self._view(self.books(), self.filters).total_pages
        self.filters = f.set_page(self.filters, page, total_pages)
        return self.filters

    def clear_filters(self) -> FilterState:
        self.filters = f.clear_filters(self.filters)
        return self.filters

    # -- add / edit --------------------------------------------------------

    def open_create(self) -> Draft:
        self.pending_delete = None
        self.draft = Draft.for_create(today=self._today)
        return self.draft

    def open_edit(self, book: Book) -> Draft:
        self.pending_delete = None
        self.draft = Draft.for_edit(book, today=self._today)
        return self.draft

    def close_draft(self) -> None:
        self.draft = None

    async def submit_draft(self) -> MutationResult:
        draft = self.draft
        if draft is None:
            raise LookupError("No draft is open")
        result = await draft.submit(self.pipeline)
        if draft.closed and self.draft is draft:
            self.draft = None
        return result

    # -- delete ------------------------------------------------------------

    def ask_delete(self, book: Book) -> DeleteConfirmation:
        self.draft = None
        self.pending_delete = DeleteConfirmation(book)
        return self.pending_delete

    def cancel_delete(self) -> None:
        self.pending_delete = None

    async def confirm_delete(self) -> MutationResult:
        pending = self.pending_delete
        if pending is None:
            raise LookupError("No delete is pending")
        result = await pending.confirm(self.pipeline)
        if pending.closed and self.pending_delete is pending:
            self.pending_delete = None
        return result

    # -- convergence -------------------------------------------------------

    def _fetch_failed(self, key: str, message: str) -> None:
        self.notifications.error(message)

    def _reconcile(self, entry: CacheEntry) -> None:
        if entry.data is None or entry.is_fetching:
            return
        ids = {book.id for book in entry.data}
        pending = self.pending_delete
        if pending is not None and not pending.submitting and pending.book.id not in ids:
            log.info("delete_target_gone", book_id=pending.book.id)
            self.pending_delete = None
        draft = self.draft
        if draft is None or draft.book_id is None:
            return
        missing = draft.book_id not in ids
        if missing and not draft.target_missing:
            log.info("edit_target_gone", book_id=draft.book_id)
        draft.target_missing = missing
