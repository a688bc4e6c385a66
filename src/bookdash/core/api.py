"""Async client for the remote book CRUD endpoint."""

from __future__ import annotations

import os

import httpx
import structlog

from .errors import BookApiError
from .models import Book, BookInput

log = structlog.get_logger()

DEFAULT_BASE_URL = "http://localhost:3001"
REQUEST_TIMEOUT = 10


class BookApi:
    """List, create, update and delete books on the remote store.

    Every failure, whether a non-2xx status, a transport error or an
    unreadable body, is raised as BookApiError with a user-facing message.
    """

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if base_url is None:
            base_url = os.environ.get("BOOKS_API_URL", DEFAULT_BASE_URL)
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            transport=self._transport,
            timeout=REQUEST_TIMEOUT,
        )

    async def _send(
        self, method: str, path: str, failure: str, **kwargs: object
    ) -> httpx.Response:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
                resp.raise_for_status()
                return resp
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.warning("books_api_status", method=method, path=path, status=status)
            raise BookApiError(failure, status_code=status) from e
        except httpx.HTTPError as e:
            log.warning("books_api_error", method=method, path=path, error=str(e))
            raise BookApiError(failure) from e

    @staticmethod
    def _json(resp: httpx.Response, failure: str) -> object:
        try:
            return resp.json()
        except ValueError as e:
            log.warning("books_api_bad_body", url=str(resp.url))
            raise BookApiError(failure, status_code=resp.status_code) from e

    def _book(self, resp: httpx.Response, failure: str) -> Book:
        data = self._json(resp, failure)
        if not isinstance(data, dict):
            raise BookApiError(failure, status_code=resp.status_code)
        return Book.from_json(data)

    async def list_books(self) -> tuple[Book, ...]:
        failure = "Failed to fetch books"
        resp = await self._send("GET", "/books", failure)
        data = self._json(resp, failure)
        if not isinstance(data, list):
            raise BookApiError(failure, status_code=resp.status_code)
        books = tuple(Book.from_json(item) for item in data if isinstance(item, dict))
        log.debug("books_listed", count=len(books))
        return books

    async def create_book(self, payload: BookInput) -> Book:
        failure = "Failed to add book"
        resp = await self._send("POST", "/books", failure, json=payload.to_json())
        return self._book(resp, failure)

    async def update_book(self, book_id: str, payload: BookInput) -> Book:
        failure = "Failed to update book"
        resp = await self._send(
            "PUT", f"/books/{book_id}", failure, json=payload.to_json()
        )
        return self._book(resp, failure)

    async def delete_book(self, book_id: str) -> str:
        """Delete a book and return its id (the endpoint's body is ignored)."""
        await self._send("DELETE", f"/books/{book_id}", "Failed to delete book")
        return book_id
