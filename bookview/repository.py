"""
In-memory book repository.

Holds the collection snapshot the query engine reads, plus the libraries,
shelves and magic shelves it resolves scopes against. Listeners are told
about every change so views can recompute.

Usage:
    repo = BookRepository.open(Path("library.json"))
    unsubscribe = repo.subscribe(lambda event: print(event.kind))
    books = repo.books
    repo.save()
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import json
import logging
import threading

import yaml

from .models import Book, Library, MagicShelf, Shelf
from .rules.tree import Group, dumps, require_valid_rule

logger = logging.getLogger(__name__)

BOOKS_CHANGED = 'books_changed'
MAGIC_SHELF_SAVED = 'magic_shelf_saved'
MAGIC_SHELF_DELETED = 'magic_shelf_deleted'

YAML_SUFFIXES = ('.yaml', '.yml')


@dataclass(frozen=True)
class RepositoryEvent:
    kind: str
    entity_id: Optional[int] = None


Listener = Callable[[RepositoryEvent], None]


class BookRepository:
    """
    Source of truth for books and the entities scopes refer to.

    The ``books`` snapshot is an immutable tuple replaced on every change, so
    a pipeline run holding the old snapshot is never affected by a write.
    """

    def __init__(
        self,
        books: Iterable[Book] = (),
        libraries: Iterable[Library] = (),
        shelves: Iterable[Shelf] = (),
        magic_shelves: Iterable[MagicShelf] = (),
        path: Optional[Path] = None,
    ):
        self.path = Path(path) if path else None
        self._books: Tuple[Book, ...] = tuple(books)
        self._libraries: Dict[int, Library] = {lib.id: lib for lib in libraries}
        self._shelves: Dict[int, Shelf] = {shelf.id: shelf for shelf in shelves}
        self._magic_shelves: Dict[int, MagicShelf] = {shelf.id: shelf for shelf in magic_shelves}
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    # =========================================================================
    # Loading and saving
    # =========================================================================

    @classmethod
    def open(cls, path: Path) -> 'BookRepository':
        """
        Load a library file (JSON, or YAML by suffix).

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a valid library document
        """
        path = Path(path)
        with open(path) as f:
            content = f.read()

        try:
            if path.suffix.lower() in YAML_SUFFIXES:
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValueError(f"Cannot parse library file {path}: {e}") from e

        repo = cls.from_dict(data or {}, path=path)
        logger.debug(f"Opened library file {path} ({len(repo.books)} books)")
        return repo

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Optional[Path] = None) -> 'BookRepository':
        if not isinstance(data, dict):
            raise ValueError("Library document must be a mapping")
        try:
            return cls(
                books=[Book.from_dict(b) for b in data.get('books', [])],
                libraries=[
                    Library(id=int(lib['id']), name=lib.get('name', ''), paths=tuple(lib.get('paths', [])))
                    for lib in data.get('libraries', [])
                ],
                shelves=[
                    Shelf(id=int(s['id']), name=s.get('name', ''), icon=s.get('icon'))
                    for s in data.get('shelves', [])
                ],
                magic_shelves=[_magic_shelf_from_dict(s) for s in data.get('magicShelves', [])],
                path=path,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid library document: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            'libraries': [
                {'id': lib.id, 'name': lib.name, 'paths': list(lib.paths)}
                for lib in self._libraries.values()
            ],
            'shelves': [
                {'id': s.id, 'name': s.name, 'icon': s.icon} for s in self._shelves.values()
            ],
            'magicShelves': [
                {'id': s.id, 'name': s.name, 'icon': s.icon, 'filterJson': s.filter_json}
                for s in self._magic_shelves.values()
            ],
            'books': [book.to_dict() for book in self._books],
        }

    def save(self, path: Optional[Path] = None) -> Path:
        """Write the library file back (to ``path`` or where it was opened)."""
        target = Path(path) if path else self.path
        if target is None:
            raise ValueError("No path to save the library to")

        data = self.to_dict()
        with open(target, 'w') as f:
            if target.suffix.lower() in YAML_SUFFIXES:
                yaml.dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            else:
                json.dump(data, f, indent=2)

        logger.info(f"Saved library file {target}")
        return target

    # =========================================================================
    # Change notification
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, entity_id: Optional[int] = None) -> None:
        event = RepositoryEvent(kind, entity_id)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event)

    # =========================================================================
    # Books
    # =========================================================================

    @property
    def books(self) -> Tuple[Book, ...]:
        return self._books

    def get_book(self, book_id: int) -> Optional[Book]:
        for book in self._books:
            if book.id == book_id:
                return book
        return None

    def replace_books(self, books: Iterable[Book]) -> None:
        self._books = tuple(books)
        self._emit(BOOKS_CHANGED)

    def upsert_book(self, book: Book) -> None:
        """Insert a book or replace the one with the same id, keeping position."""
        books = list(self._books)
        for index, existing in enumerate(books):
            if existing.id == book.id:
                books[index] = book
                break
        else:
            books.append(book)
        self._books = tuple(books)
        self._emit(BOOKS_CHANGED, book.id)

    def update_book(self, book_id: int, **changes) -> Book:
        """
        Replace fields of a stored book.

        Raises:
            ValueError: If the book does not exist
        """
        book = self.get_book(book_id)
        if book is None:
            raise ValueError(f"Book {book_id} not found")
        updated = replace(book, **changes)
        self.upsert_book(updated)
        return updated

    def remove_book(self, book_id: int) -> bool:
        books = tuple(b for b in self._books if b.id != book_id)
        if len(books) == len(self._books):
            return False
        self._books = books
        self._emit(BOOKS_CHANGED, book_id)
        return True

    # =========================================================================
    # Libraries and shelves
    # =========================================================================

    def get_library(self, library_id: int) -> Optional[Library]:
        return self._libraries.get(library_id)

    def get_shelf(self, shelf_id: int) -> Optional[Shelf]:
        return self._shelves.get(shelf_id)

    @property
    def libraries(self) -> List[Library]:
        return list(self._libraries.values())

    @property
    def shelves(self) -> List[Shelf]:
        return list(self._shelves.values())

    # =========================================================================
    # Magic shelves
    # =========================================================================

    @property
    def magic_shelves(self) -> List[MagicShelf]:
        return list(self._magic_shelves.values())

    def get_magic_shelf(self, shelf_id: int) -> Optional[MagicShelf]:
        return self._magic_shelves.get(shelf_id)

    def find_magic_shelf(self, name: str) -> Optional[MagicShelf]:
        for shelf in self._magic_shelves.values():
            if shelf.name == name:
                return shelf
        return None

    def save_magic_shelf(
        self,
        name: str,
        group: Group,
        icon: Optional[str] = None,
        shelf_id: Optional[int] = None,
    ) -> MagicShelf:
        """
        Create or update a magic shelf.

        Raises:
            EmptyRuleGroupError: If the tree has no valid rule
            ValueError: If the name is taken or the shelf id is unknown
        """
        require_valid_rule(group)

        if not name or not name.strip():
            raise ValueError("Magic shelf name is required")

        clash = self.find_magic_shelf(name)
        if clash is not None and clash.id != shelf_id:
            raise ValueError(f"A magic shelf named '{name}' already exists")

        if shelf_id is not None:
            if shelf_id not in self._magic_shelves:
                raise ValueError(f"Magic shelf {shelf_id} not found")
        else:
            shelf_id = max(self._magic_shelves, default=0) + 1

        shelf = MagicShelf(id=shelf_id, name=name, filter_json=dumps(group), icon=icon)
        self._magic_shelves[shelf_id] = shelf
        logger.info(f"Saved magic shelf '{name}' ({shelf_id})")
        self._emit(MAGIC_SHELF_SAVED, shelf_id)
        return shelf

    def delete_magic_shelf(self, shelf_id: int) -> None:
        """
        Delete a magic shelf.

        Raises:
            ValueError: If the shelf does not exist
        """
        if shelf_id not in self._magic_shelves:
            raise ValueError(f"Magic shelf {shelf_id} not found")
        shelf = self._magic_shelves.pop(shelf_id)
        logger.info(f"Deleted magic shelf '{shelf.name}' ({shelf_id})")
        self._emit(MAGIC_SHELF_DELETED, shelf_id)


def _magic_shelf_from_dict(data: Dict[str, Any]) -> MagicShelf:
    filter_json = data.get('filterJson', data.get('filter_json'))
    # Library files written by hand may carry the tree inline
    if filter_json is None and isinstance(data.get('group'), dict):
        filter_json = json.dumps(data['group'])
    return MagicShelf(
        id=int(data['id']),
        name=data.get('name', ''),
        filter_json=filter_json,
        icon=data.get('icon'),
    )
