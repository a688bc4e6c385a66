"""Shared fixtures: an in-memory books endpoint behind httpx.MockTransport."""

import json
from datetime import date

import httpx
import pytest

from bookdash.core.api import BookApi

BASE_URL = "http://books.test"
GENRES = ["Fantasy", "Science Fiction", "Mystery"]


def make_books(count):
    return [
        {
            "id": str(i),
            "title": f"Book {i}",
            "author": f"Author {i}",
            "genre": GENRES[i % len(GENRES)],
            "publishedYear": 1950 + i,
            "status": "Available" if i % 2 else "Issued",
        }
        for i in range(1, count + 1)
    ]


class FakeBookServer:
    """Mimics the remote /books CRUD endpoint and records every request."""

    def __init__(self, books=None):
        self.books = {b["id"]: dict(b) for b in (books or [])}
        self.calls = []
        self._failures = {}
        self._next_id = len(self.books) + 100

    def fail(self, method, *statuses):
        """Answer the next requests of `method` with the given status codes."""
        self._failures.setdefault(method, []).extend(statuses)

    def count(self, method, path=None):
        return sum(1 for m, p in self.calls if m == method and (path is None or p == path))

    def handler(self, request):
        method = request.method
        path = request.url.path
        self.calls.append((method, path))

        queued = self._failures.get(method)
        if queued:
            return httpx.Response(queued.pop(0), json={"error": "boom"})

        if path == "/books":
            if method == "GET":
                return httpx.Response(200, json=list(self.books.values()))
            if method == "POST":
                self._next_id += 1
                book = {**_json(request), "id": str(self._next_id)}
                self.books[book["id"]] = book
                return httpx.Response(201, json=book)

        if path.startswith("/books/"):
            book_id = path.rsplit("/", 1)[-1]
            if book_id not in self.books:
                return httpx.Response(404, json={})
            if method == "PUT":
                book = {**_json(request), "id": book_id}
                self.books[book_id] = book
                return httpx.Response(200, json=book)
            if method == "DELETE":
                del self.books[book_id]
                return httpx.Response(200, json={})

        return httpx.Response(405)

    def api(self):
        return BookApi(BASE_URL, transport=httpx.MockTransport(self.handler))


def _json(request):
    return json.loads(request.content)


@pytest.fixture
def server():
    return FakeBookServer(make_books(3))


@pytest.fixture
def api(server):
    return server.api()


@pytest.fixture
def today():
    return lambda: date(2024, 6, 1)
