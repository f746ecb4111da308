"""
Tests for the in-memory book repository and library files.
"""

import json

import pytest
import yaml

from bookview.models import Book, ReadStatus
from bookview.repository import (
    BOOKS_CHANGED,
    MAGIC_SHELF_DELETED,
    MAGIC_SHELF_SAVED,
    BookRepository,
    RepositoryEvent,
)
from bookview.rules.tree import EmptyRuleGroupError, Group, Rule, loads


@pytest.fixture
def events(repository):
    received = []
    repository.subscribe(received.append)
    return received


class TestLibraryFiles:

    def test_open_json(self, library_file):
        repo = BookRepository.open(library_file)

        assert len(repo.books) == 6
        assert repo.get_library(1).name == "Fiction"
        assert repo.get_shelf(1).name == "Favorites"
        assert repo.get_magic_shelf(1).name == "Finished"
        assert repo.path == library_file

    def test_books_survive_a_round_trip(self, library_file, sample_books):
        repo = BookRepository.open(library_file)
        assert list(repo.books) == sample_books

    def test_save_yaml_and_reopen(self, tmp_path, repository, sample_books):
        path = repository.save(tmp_path / "library.yaml")

        data = yaml.safe_load(path.read_text())
        assert data["magicShelves"][0]["name"] == "Finished"

        reopened = BookRepository.open(path)
        assert list(reopened.books) == sample_books

    def test_save_without_path(self, repository):
        with pytest.raises(ValueError):
            repository.save()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BookRepository.open(tmp_path / "missing.json")

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            BookRepository.open(path)

    def test_invalid_document(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"books": [{"title": "no id"}]}))
        with pytest.raises(ValueError):
            BookRepository.open(path)

    def test_camel_case_book_entries(self):
        repo = BookRepository.from_dict({"books": [{
            "id": 7,
            "title": "Dune",
            "seriesName": "Dune",
            "seriesNumber": "1",
            "readStatus": "read",
            "publishedDate": "1965",
            "shelves": [{"id": 2}, 3],
            "addedOn": "2024-01-10T08:00:00Z",
        }]})
        book = repo.books[0]

        assert book.series_number == 1.0
        assert book.read_status == ReadStatus.READ
        assert book.published_date.year == 1965
        assert book.shelf_ids == frozenset({2, 3})
        assert book.added_on.tzinfo is None

    def test_inline_magic_shelf_group(self):
        repo = BookRepository.from_dict({"magicShelves": [{
            "id": 1,
            "name": "Read",
            "group": {"type": "group", "join": "and", "rules": [
                {"field": "readStatus", "operator": "equals", "value": "READ"},
            ]},
        }]})
        assert loads(repo.get_magic_shelf(1).filter_json).rules[0].value == "READ"


class TestBooks:

    def test_replace_books(self, repository, events):
        repository.replace_books([Book(10, "New")])
        assert [b.id for b in repository.books] == [10]
        assert events == [RepositoryEvent(BOOKS_CHANGED)]

    def test_upsert_keeps_position(self, repository, events):
        repository.upsert_book(Book(2, "Renamed"))
        assert [b.id for b in repository.books] == [1, 2, 3, 4, 5, 6]
        assert repository.get_book(2).title == "Renamed"

        repository.upsert_book(Book(99, "Appended"))
        assert repository.books[-1].id == 99
        assert events == [RepositoryEvent(BOOKS_CHANGED, 2), RepositoryEvent(BOOKS_CHANGED, 99)]

    def test_update_book(self, repository):
        updated = repository.update_book(3, read_status=ReadStatus.READ)
        assert updated.read_status == ReadStatus.READ
        assert repository.get_book(3).read_status == ReadStatus.READ

    def test_update_missing_book(self, repository):
        with pytest.raises(ValueError):
            repository.update_book(404, title="x")

    def test_remove_book(self, repository, events):
        assert repository.remove_book(1)
        assert not repository.remove_book(1)
        assert repository.get_book(1) is None
        assert events == [RepositoryEvent(BOOKS_CHANGED, 1)]

    def test_snapshot_is_unaffected_by_writes(self, repository):
        snapshot = repository.books
        repository.remove_book(1)
        assert len(snapshot) == 6


class TestMagicShelves:

    def test_save_new_shelf(self, repository, events):
        tree = Group(rules=(Rule("pageCount", "greater_than", "400"),))

        shelf = repository.save_magic_shelf("Long", tree, icon="book")

        assert shelf.id == 3
        assert loads(shelf.filter_json) == tree
        assert repository.find_magic_shelf("Long") == shelf
        assert events == [RepositoryEvent(MAGIC_SHELF_SAVED, 3)]

    def test_update_existing_shelf(self, repository):
        tree = Group(rules=(Rule("readStatus", "equals", "UNREAD"),))
        shelf = repository.save_magic_shelf("Finished", tree, shelf_id=1)
        assert shelf.id == 1
        assert loads(repository.get_magic_shelf(1).filter_json) == tree

    def test_rejects_tree_without_valid_rule(self, repository, events):
        with pytest.raises(EmptyRuleGroupError):
            repository.save_magic_shelf("Empty", Group(rules=(Group(),)))
        assert events == []

    def test_rejects_tree_with_nested_empty_group(self, repository, events):
        # Given a valid rule next to a subgroup with nothing in it
        tree = Group("and", (Rule("readStatus", "equals", "READ"), Group("and", ())))

        # When it is saved, then the empty subgroup is named and nothing is stored
        with pytest.raises(EmptyRuleGroupError, match=r"root\.rules\[1\]"):
            repository.save_magic_shelf("Read", tree)
        assert repository.find_magic_shelf("Read") is None
        assert events == []

    def test_rejects_duplicate_name(self, repository):
        tree = Group(rules=(Rule("title", "contains", "x"),))
        with pytest.raises(ValueError, match="already exists"):
            repository.save_magic_shelf("Finished", tree)

    def test_rejects_blank_name(self, repository):
        with pytest.raises(ValueError):
            repository.save_magic_shelf("  ", Group(rules=(Rule("title", "contains", "x"),)))

    def test_rejects_unknown_id(self, repository):
        tree = Group(rules=(Rule("title", "contains", "x"),))
        with pytest.raises(ValueError, match="not found"):
            repository.save_magic_shelf("New", tree, shelf_id=42)

    def test_delete(self, repository, events):
        repository.delete_magic_shelf(2)
        assert repository.get_magic_shelf(2) is None
        assert events == [RepositoryEvent(MAGIC_SHELF_DELETED, 2)]

    def test_delete_unknown(self, repository):
        with pytest.raises(ValueError, match="not found"):
            repository.delete_magic_shelf(42)


class TestSubscriptions:

    def test_unsubscribe(self, repository):
        received = []
        unsubscribe = repository.subscribe(received.append)
        unsubscribe()
        repository.replace_books([])
        assert received == []

    def test_unsubscribe_twice_is_harmless(self, repository):
        unsubscribe = repository.subscribe(lambda event: None)
        unsubscribe()
        unsubscribe()
