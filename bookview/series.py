"""
Series collapsing.

Shows one representative per series instead of every volume. This changes
display density only; it never decides which books are in the result.
"""

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from .models import Book


def series_key(book: Book) -> Optional[str]:
    """Normalized series name, or None for standalone books."""
    if not book.series_name or not book.series_name.strip():
        return None
    return book.series_name.strip().casefold()


def collapse_series(
    books: Iterable[Book],
    force_expand: bool = False,
    collapsed: bool = True
) -> List[Book]:
    """
    Replace each series with its first book in the current order.

    Args:
        books: Books in the active sort order
        force_expand: Keep every volume (the active filter targets series)
        collapsed: The user's series-collapse preference

    Returns:
        Books with one entry per series; standalone books are untouched
    """
    books = list(books)
    if force_expand or not collapsed:
        return books

    seen = set()
    result = []
    for book in books:
        key = series_key(book)
        if key is None:
            result.append(book)
        elif key not in seen:
            seen.add(key)
            result.append(book)
    return result


def series_counts(books: Iterable[Book]) -> Dict[str, int]:
    """Number of volumes per series (keyed by display name of first volume)."""
    counts: Dict[str, int] = OrderedDict()
    names: Dict[str, str] = {}
    for book in books:
        key = series_key(book)
        if key is None:
            continue
        name = names.setdefault(key, book.series_name.strip())
        counts[name] = counts.get(name, 0) + 1
    return dict(counts)
