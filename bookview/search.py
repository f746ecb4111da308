"""Free-text search over the current book list."""

from typing import Callable, Dict, Iterable, List, Sequence
import logging

from .models import Book

logger = logging.getLogger(__name__)

SEARCH_FIELDS: Dict[str, Callable[[Book], Iterable[str]]] = {
    'title': lambda b: [b.title],
    'subtitle': lambda b: [b.subtitle],
    'series': lambda b: [b.series_name],
    'authors': lambda b: b.authors,
    'publisher': lambda b: [b.publisher],
    'categories': lambda b: b.categories,
    'isbn': lambda b: [b.isbn10, b.isbn13],
}

DEFAULT_SEARCH_FIELDS = ('title', 'subtitle', 'series', 'authors')


def matches_term(book: Book, term: str, fields: Sequence[str] = DEFAULT_SEARCH_FIELDS) -> bool:
    """Case-insensitive substring match of ``term`` against the given fields."""
    needle = term.strip().casefold()
    for name in fields:
        extractor = SEARCH_FIELDS.get(name)
        if extractor is None:
            continue
        for text in extractor(book):
            if text and needle in text.casefold():
                return True
    return False


def filter_books(
    books: Iterable[Book],
    term: str,
    fields: Sequence[str] = DEFAULT_SEARCH_FIELDS
) -> List[Book]:
    """
    Narrow a list by a free-text term, keeping order.

    A blank term returns the list unchanged.
    """
    books = list(books)
    if not term or not term.strip():
        return books

    unknown = [name for name in fields if name not in SEARCH_FIELDS]
    if unknown:
        logger.debug(f"Ignoring unknown search fields: {', '.join(unknown)}")

    return [book for book in books if matches_term(book, term, fields)]
