"""Data models for the book catalog."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

BOOKS_KEY = "books"

FIELD_NAMES = ("title", "author", "genre", "publishedYear", "status")


class BookStatus(str, Enum):
    AVAILABLE = "Available"
    ISSUED = "Issued"


@dataclass(frozen=True)
class BookInput:
    """Write payload for create and update (everything but the id)."""

    title: str
    author: str
    genre: str
    published_year: int
    status: str = BookStatus.AVAILABLE.value

    def to_json(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "publishedYear": self.published_year,
            "status": self.status,
        }


def _text(value) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class Book:
    id: str
    title: str
    author: str
    genre: str
    published_year: int
    status: str

    @classmethod
    def from_json(cls, data: dict) -> Book:
        # Text fields are coerced to str so a numeric title still searches.
        return cls(
            id=str(data.get("id", "")),
            title=_text(data.get("title")),
            author=_text(data.get("author")),
            genre=_text(data.get("genre")),
            published_year=data.get("publishedYear") or 0,
            status=_text(data.get("status")),
        )

    def to_json(self) -> dict:
        return {"id": self.id, **self.to_input().to_json()}

    def to_input(self) -> BookInput:
        return BookInput(
            title=self.title,
            author=self.author,
            genre=self.genre,
            published_year=self.published_year,
            status=self.status,
        )
