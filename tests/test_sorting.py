"""
Tests for the sort engine and sort preference resolution.
"""

import pytest

from bookview.models import Book
from bookview.sorting import (
    DEFAULT_SORT,
    SORT_KEYS,
    SORT_OPTIONS,
    SortDirection,
    SortOption,
    SortPreference,
    ViewPreferences,
    apply_sort,
    find_option,
    resolve_sort,
)


def ids(books):
    return [b.id for b in books]


def option(field, direction=SortDirection.ASCENDING):
    return find_option(field).with_direction(direction)


class TestCatalog:

    def test_every_option_has_a_key(self):
        assert {o.field for o in SORT_OPTIONS} == set(SORT_KEYS)

    def test_default_is_added_on_descending(self):
        assert DEFAULT_SORT.field == "addedOn"
        assert DEFAULT_SORT.descending

    def test_find_option(self):
        assert find_option("title").label == "Title"
        assert find_option("colour") is None

    @pytest.mark.parametrize("text,expected", [
        ("asc", SortDirection.ASCENDING),
        ("DESC", SortDirection.DESCENDING),
        ("descending", SortDirection.DESCENDING),
        (None, None),
        ("sideways", None),
    ])
    def test_direction_parse(self, text, expected):
        assert SortDirection.parse(text) == expected


class TestApplySort:

    def test_title_ascending(self, sample_books):
        result = apply_sort(sample_books, option("title"))
        assert ids(result) == [3, 1, 2, 4, 6, 5]

    def test_added_on_descending_puts_missing_last(self, sample_books):
        result = apply_sort(sample_books, DEFAULT_SORT)
        assert ids(result) == [4, 2, 3, 1, 5, 6]

    def test_missing_values_last_in_both_directions(self, sample_books):
        asc = apply_sort(sample_books, option("pageCount"))
        desc = apply_sort(sample_books, option("pageCount", SortDirection.DESCENDING))
        assert ids(asc)[-1] == 6
        assert ids(desc)[-1] == 6
        assert ids(desc)[:5] == [1, 3, 5, 2, 4]

    def test_ties_broken_by_id_in_both_directions(self):
        books = [Book(3, "Same"), Book(1, "Same"), Book(2, "Same")]
        assert ids(apply_sort(books, option("title"))) == [1, 2, 3]
        assert ids(apply_sort(books, option("title", SortDirection.DESCENDING))) == [1, 2, 3]

    def test_stable_across_repeated_sorts(self, sample_books):
        once = apply_sort(sample_books, option("readStatus"))
        assert apply_sort(once, option("readStatus")) == once
        assert apply_sort(list(reversed(sample_books)), option("readStatus")) == once

    def test_read_status_stored_as_plain_string(self):
        books = [Book(1, "A", read_status="finished"), Book(2, "B", read_status="read"), Book(3, "C", read_status="UNREAD")]
        assert ids(apply_sort(books, option("readStatus"))) == [3, 2, 1]

    def test_title_series_groups_volumes(self, sample_books):
        result = apply_sort(sample_books, option("titleSeries"))
        assert ids(result) == [1, 2, 3, 4, 6, 5]

    def test_author_series(self, sample_books):
        result = apply_sort(sample_books, option("authorSeries"))
        assert ids(result) == [1, 2, 3, 4, 5, 6]

    def test_unknown_field_orders_by_id(self, sample_books):
        result = apply_sort(list(reversed(sample_books)), SortOption("colour", "Colour"))
        assert ids(result) == [1, 2, 3, 4, 5, 6]

    def test_input_is_not_mutated(self, sample_books):
        before = list(sample_books)
        apply_sort(sample_books, option("title"))
        assert sample_books == before


class TestResolveSort:

    @pytest.fixture
    def preferences(self):
        prefs = ViewPreferences(global_preference=SortPreference("title", SortDirection.ASCENDING))
        prefs.set_override("magic_shelf", 1, SortPreference("pageCount", SortDirection.DESCENDING))
        return prefs

    def test_entity_preference_wins(self, preferences):
        result = resolve_sort(preferences, "MAGIC_SHELF", 1, sort_param="author")
        assert result.field == "pageCount"
        assert result.descending

    def test_global_preference_next(self, preferences):
        result = resolve_sort(preferences, "MAGIC_SHELF", 2, sort_param="author")
        assert result.field == "title"
        assert not result.descending

    def test_query_parameter_next(self):
        result = resolve_sort(ViewPreferences(), "LIBRARY", 1, sort_param="author", direction_param="desc")
        assert result.field == "author"
        assert result.descending

    def test_default_last(self):
        assert resolve_sort() == DEFAULT_SORT
        assert resolve_sort(sort_param="colour") == DEFAULT_SORT

    def test_unknown_stored_preference_is_skipped(self):
        prefs = ViewPreferences(global_preference=SortPreference("colour"))
        assert resolve_sort(prefs, sort_param="title").field == "title"

    def test_preferences_round_trip_through_dict(self, preferences):
        data = preferences.to_dict()
        assert data["global"] == {"sortKey": "title", "sortDir": "ASC"}
        assert data["overrides"][0]["entityType"] == "MAGIC_SHELF"
        assert ViewPreferences.from_dict(data) == preferences

    def test_from_empty_dict(self):
        prefs = ViewPreferences.from_dict(None)
        assert prefs.global_preference is None
        assert prefs.overrides == {}
