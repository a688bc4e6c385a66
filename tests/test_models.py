"""Tests for the book wire format."""

from bookdash.core.models import Book, BookInput


def test_from_json_normalizes_id_and_keeps_unknown_status():
    book = Book.from_json({"id": 7, "title": "Emma", "author": "Jane Austen",
                           "genre": "Romance", "publishedYear": 1815, "status": "Lost"})
    assert book.id == "7"
    assert book.status == "Lost"


def test_from_json_tolerates_missing_fields():
    book = Book.from_json({"id": "x", "title": None})
    assert book.title == ""
    assert book.published_year == 0


def test_to_json_uses_wire_names():
    book = Book("1", "Dune", "Frank Herbert", "Science Fiction", 1965, "Available")
    assert book.to_json() == {
        "id": "1",
        "title": "Dune",
        "author": "Frank Herbert",
        "genre": "Science Fiction",
        "publishedYear": 1965,
        "status": "Available",
    }
    assert "id" not in book.to_input().to_json()


def test_input_defaults_to_available():
    assert BookInput("T", "Au", "G", 2000).status == "Available"


def test_from_json_coerces_text_fields():
    book = Book.from_json({"id": 1, "title": 1984, "author": "George Orwell",
                           "genre": 7, "publishedYear": 1949, "status": "Issued"})
    assert book.title == "1984"
    assert book.genre == "7"
