"""
bookview - query engine for browsing a book collection.

Main API:
    from bookview import BookRepository, BrowserSession, Scope
    from pathlib import Path

    # Load a library file (JSON or YAML)
    repo = BookRepository.open(Path("library.json"))

    # Browse a magic shelf, narrowed by search and facets
    session = BrowserSession(repo)
    session.navigate(Scope.parse("magic:1"))
    result = session.update(
        search_term="dune",
        selections={"readStatus": ["READ"]},
    )

    for book in result.books:
        print(book.title)

    # Facet counts always cover the whole scope
    authors = result.facets["author"]
"""

from .models import Book, Library, MagicShelf, ReadStatus, Shelf
from .pipeline import BrowserSession, QueryResult, QueryState, run_query
from .repository import BookRepository
from .scope import Scope, ScopeKind, ScopeSelector

__version__ = "0.1.0"
__all__ = [
    "Book", "Library", "MagicShelf", "ReadStatus", "Shelf",
    "BrowserSession", "QueryResult", "QueryState", "run_query",
    "BookRepository",
    "Scope", "ScopeKind", "ScopeSelector",
]
