"""Tests for series collapsing."""

from bookview.models import Book
from bookview.series import collapse_series, series_counts, series_key


def ids(books):
    return [b.id for b in books]


class TestCollapseSeries:

    def test_first_book_per_series_in_current_order(self, sample_books):
        reordered = [sample_books[i] for i in (2, 4, 0, 3, 1, 5)]
        assert ids(collapse_series(reordered)) == [3, 5, 4, 6]

    def test_non_series_books_pass_through(self):
        books = [Book(1, "A"), Book(2, "B", series_name="  "), Book(3, "C")]
        assert ids(collapse_series(books)) == [1, 2, 3]

    def test_series_names_are_normalized(self):
        books = [Book(1, "A", series_name="Dune"), Book(2, "B", series_name=" dune ")]
        assert ids(collapse_series(books)) == [1]

    def test_force_expand_keeps_every_volume(self, sample_books):
        assert collapse_series(sample_books, force_expand=True) == sample_books

    def test_preference_off_keeps_every_volume(self, sample_books):
        assert collapse_series(sample_books, collapsed=False) == sample_books

    def test_idempotent(self, sample_books):
        once = collapse_series(sample_books)
        assert collapse_series(once) == once


class TestSeriesCounts:

    def test_counts_per_series(self, sample_books):
        assert series_counts(sample_books) == {"Dune": 3, "Foundation": 1}

    def test_key(self):
        assert series_key(Book(1, "A", series_name=" The Expanse ")) == "the expanse"
        assert series_key(Book(1, "A")) is None
