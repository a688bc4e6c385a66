"""Search, filter and page state as an immutable value with pure reducers.

Changing the search term, genre or status always sends the user back to
page 1, even when the new value equals the old one. Only set_page moves
between pages, and it clamps into the range that exists.
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class FilterState:
    search_term: str = ""
    selected_genre: str | None = None
    selected_status: str | None = None
    current_page: int = 1

    @property
    def is_filtered(self) -> bool:
        return bool(self.search_term or self.selected_genre or self.selected_status)


def _optional(value: str | None) -> str | None:
    return value or None


def set_search_term(state: FilterState, term: str | None) -> FilterState:
    return replace(state, search_term=term or "", current_page=1)


def set_genre(state: FilterState, genre: str | None) -> FilterState:
    return replace(state, selected_genre=_optional(genre), current_page=1)


def set_status(state: FilterState, status: str | None) -> FilterState:
    return replace(state, selected_status=_optional(status), current_page=1)


def set_page(state: FilterState, page: int, total_pages: int) -> FilterState:
    page = min(max(int(page), 1), max(total_pages, 1))
    return replace(state, current_page=page)


def clear_filters(state: FilterState | None = None) -> FilterState:
    return FilterState()
