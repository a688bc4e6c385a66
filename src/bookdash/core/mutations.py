"""Write path: create, update and delete with notify-then-invalidate."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol, Union

import structlog

from .api import BookApi
from .cache import QueryCache
from .errors import BookApiError, MutationError
from .models import BOOKS_KEY, Book, BookInput

log = structlog.get_logger()

MAX_NOTIFICATIONS = 50

_SUCCESS_MESSAGES = {
    "create": "Book added successfully!",
    "update": "Book updated successfully!",
    "delete": "Book deleted successfully!",
}
_FAILURE_MESSAGES = {
    "create": "Failed to add book",
    "update": "Failed to update book",
    "delete": "Failed to delete book",
}


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


@dataclass(frozen=True)
class Notification:
    level: str
    message: str
    created_at: float = field(default_factory=time.time)


class NotificationCenter:
    """Toast-style notifications, kept until the shell drains them."""

    def __init__(self, maxlen: int = MAX_NOTIFICATIONS) -> None:
        self._queue: deque[Notification] = deque(maxlen=maxlen)

    def _push(self, level: str, message: str) -> None:
        self._queue.append(Notification(level=level, message=message))
        log.info("notification", level=level, message=message)

    def success(self, message: str) -> None:
        self._push("success", message)

    def error(self, message: str) -> None:
        self._push("error", message)

    def pending(self) -> list[Notification]:
        return list(self._queue)

    def drain(self) -> list[Notification]:
        items = list(self._queue)
        self._queue.clear()
        return items


@dataclass(frozen=True)
class MutationSuccess:
    kind: str
    book_id: str
    book: Book | None = None
    ok: bool = True


@dataclass(frozen=True)
class MutationFailure:
    kind: str
    error: MutationError
    book_id: str | None = None
    ok: bool = False

    @property
    def message(self) -> str:
        return self.error.message


MutationResult = Union[MutationSuccess, MutationFailure]


def _missing_fields(payload: BookInput) -> list[str]:
    missing = [
        name
        for name in ("title", "author", "genre", "status")
        if not getattr(payload, name)
    ]
    if payload.published_year in (None, ""):
        missing.append("publishedYear")
    return missing


class MutationPipeline:
    """Run one write against the remote store and report the outcome.

    Writes are never retried. On success the collection key is invalidated
    exactly once; on failure the cache is left alone.
    """

    def __init__(
        self,
        api: BookApi,
        cache: QueryCache,
        notifier: Notifier,
        collection_key: str = BOOKS_KEY,
    ) -> None:
        self.api = api
        self.cache = cache
        self.notifier = notifier
        self.collection_key = collection_key

    async def _run(
        self,
        kind: str,
        book_id: str | None,
        call: Callable[[], Awaitable[object]],
    ) -> MutationResult:
        try:
            outcome = await call()
        except BookApiError as e:
            error = MutationError(e.message or _FAILURE_MESSAGES[kind], e.status_code)
            return self._fail(kind, error, book_id)

        book = outcome if isinstance(outcome, Book) else None
        resolved_id = book.id if book is not None else book_id
        log.info("mutation_succeeded", kind=kind, book_id=resolved_id)
        self.notifier.success(_SUCCESS_MESSAGES[kind])
        self.cache.invalidate(self.collection_key)
        return MutationSuccess(kind=kind, book_id=resolved_id, book=book)

    def _fail(
        self, kind: str, error: MutationError, book_id: str | None
    ) -> MutationFailure:
        log.warning(
            "mutation_failed",
            kind=kind,
            book_id=book_id,
            status=error.status_code,
            error=error.message,
        )
        self.notifier.error(error.message)
        return MutationFailure(kind=kind, error=error, book_id=book_id)

    def _check(self, kind: str, payload: BookInput, book_id: str | None):
        missing = _missing_fields(payload)
        if missing:
            error = MutationError(
                f"{_FAILURE_MESSAGES[kind]}: missing {', '.join(missing)}"
            )
            return self._fail(kind, error, book_id)
        return None

    async def create(self, payload: BookInput) -> MutationResult:
        rejected = self._check("create", payload, None)
        if rejected:
            return rejected
        return await self._run("create", None, lambda: self.api.create_book(payload))

    async def update(self, book_id: str, payload: BookInput) -> MutationResult:
        rejected = self._check("update", payload, book_id)
        if rejected:
            return rejected
        return await self._run(
            "update", book_id, lambda: self.api.update_book(book_id, payload)
        )

    async def delete(self, book_id: str) -> MutationResult:
        if not book_id:
            return self._fail("delete", MutationError("Failed to delete book: missing id"), None)
        return await self._run("delete", book_id, lambda: self.api.delete_book(book_id))
