"""Derive the rendered page of books from cached data and filter state."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from .filters import FilterState
from .models import Book

PAGE_SIZE = 10


@dataclass(frozen=True)
class DashboardView:
    page_items: tuple[Book, ...]
    total_pages: int
    total_count: int
    available_genres: tuple[str, ...]
    available_statuses: tuple[str, ...]
    current_page: int = 1
    page_size: int = PAGE_SIZE


def matches(book: Book, filters: FilterState) -> bool:
    term = filters.search_term.lower()
    if term and term not in book.title.lower() and term not in book.author.lower():
        return False
    if filters.selected_genre and book.genre != filters.selected_genre:
        return False
    if filters.selected_status and book.status != filters.selected_status:
        return False
    return True


def compute(
    books: Sequence[Book] | None,
    filters: FilterState,
    page_size: int = PAGE_SIZE,
) -> DashboardView:
    """Filter, count and slice `books` for the current page.

    Pages past the end come back empty; callers decide whether to clamp.
    Genre and status options come from the unfiltered collection so the
    selectors never lose the value currently picked.
    """
    books = books or ()
    found = [book for book in books if matches(book, filters)]
    start = (filters.current_page - 1) * page_size
    return DashboardView(
        page_items=tuple(found[start : start + page_size]),
        total_pages=math.ceil(len(found) / page_size),
        total_count=len(found),
        available_genres=tuple(sorted({book.genre for book in books})),
        available_statuses=tuple(sorted({book.status for book in books})),
        current_page=filters.current_page,
        page_size=page_size,
    )


class ViewMemo:
    """Reuse the last view while the data tuple and filters are unchanged."""

    def __init__(self, page_size: int = PAGE_SIZE) -> None:
        self.page_size = page_size
        self._books: Sequence[Book] | None = None
        self._filters: FilterState | None = None
        self._view: DashboardView | None = None
        self.computations = 0

    def __call__(self, books: Sequence[Book] | None, filters: FilterState) -> DashboardView:
        # Cache data is replaced wholesale on refetch, so identity is enough.
        if self._view is not None and books is self._books and filters == self._filters:
            return self._view
        self._view = compute(books, filters, self.page_size)
        self._books = books
        self._filters = filters
        self.computations += 1
        return self._view
