"""Shared fixtures: a small, varied book collection and a library file."""

import json
from datetime import date, datetime

import pytest

from bookview.models import Book, Library, MagicShelf, ReadStatus, Shelf
from bookview.repository import BookRepository
from bookview.rules.tree import Group, Rule, dumps


def make_book(book_id, title, **fields):
    """Build a Book with only the fields a test cares about."""
    return Book(id=book_id, title=title, **fields)


@pytest.fixture
def sample_books():
    """
    Six books across two libraries.

    1-3 are the Dune series (library 1), 4 is Foundation (library 2),
    5 is a standalone (library 2), 6 is sparsely populated (library 1).
    Books 1 and 4 are on shelf 1.
    """
    return [
        make_book(
            1, "Dune",
            authors=("Frank Herbert",),
            categories=("Science Fiction", "Classics"),
            publisher="Chilton",
            series_name="Dune",
            series_number=1.0,
            series_total=6,
            published_date=date(1965, 8, 1),
            language="en",
            page_count=612,
            file_type="epub",
            file_size_kb=2048,
            read_status=ReadStatus.READ,
            personal_rating=9,
            amazon_rating=4.6,
            goodreads_rating=4.3,
            metadata_match_score=0.92,
            library_id=1,
            shelf_ids=frozenset({1}),
            added_on=datetime(2024, 1, 10),
            date_finished=date(2024, 3, 1),
        ),
        make_book(
            2, "Dune Messiah",
            authors=("Frank Herbert",),
            categories=("Science Fiction",),
            series_name="Dune",
            series_number=2.0,
            series_total=6,
            published_date=date(1969, 10, 15),
            language="en",
            page_count=256,
            file_type="epub",
            file_size_kb=800,
            read_status=ReadStatus.READING,
            amazon_rating=4.2,
            library_id=1,
            added_on=datetime(2024, 1, 12),
        ),
        make_book(
            3, "Children of Dune",
            authors=("Frank Herbert",),
            categories=("Science Fiction",),
            series_name="Dune",
            series_number=3.0,
            language="en",
            page_count=444,
            file_type="pdf",
            read_status=ReadStatus.UNREAD,
            amazon_rating=4.3,
            library_id=1,
            added_on=datetime(2024, 1, 11),
        ),
        make_book(
            4, "Foundation",
            authors=("Isaac Asimov",),
            categories=("Science Fiction",),
            series_name="Foundation",
            series_number=1.0,
            published_date=date(1951, 6, 1),
            language="en",
            page_count=255,
            file_type="epub",
            read_status=ReadStatus.READ,
            personal_rating=8,
            amazon_rating=4.5,
            library_id=2,
            shelf_ids=frozenset({1}),
            added_on=datetime(2024, 2, 1),
        ),
        make_book(
            5, "The Hobbit",
            authors=("J.R.R. Tolkien",),
            categories=("Fantasy",),
            publisher="Allen & Unwin",
            published_date=date(1937, 9, 21),
            language="en",
            page_count=310,
            file_type="pdf",
            read_status=ReadStatus.READ,
            amazon_rating=3.8,
            library_id=2,
            added_on=datetime(2023, 12, 1),
        ),
        make_book(
            6, "Neuromancer",
            authors=("William Gibson",),
            categories=("Cyberpunk", "Science Fiction"),
            library_id=1,
        ),
    ]


def read_shelf_tree():
    return Group(join="and", rules=(Rule("readStatus", "equals", "READ"),))


@pytest.fixture
def repository(sample_books):
    """Repository over the sample books, with one valid and one broken magic shelf."""
    return BookRepository(
        books=sample_books,
        libraries=[Library(1, "Fiction"), Library(2, "Classics")],
        shelves=[Shelf(1, "Favorites")],
        magic_shelves=[
            MagicShelf(1, "Finished", dumps(read_shelf_tree())),
            MagicShelf(2, "Broken", '{"type": "group", "rules": [{"value": "x"}'),
        ],
    )


@pytest.fixture
def library_file(tmp_path, repository):
    """The sample repository written to a JSON library file."""
    path = tmp_path / "library.json"
    path.write_text(json.dumps(repository.to_dict(), indent=2))
    return path
