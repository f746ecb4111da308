"""
Facet engine for sidebar filtering.

A facet is one filterable attribute (author, series, rating band, ...) with
the values present in the current scope and how many books carry each value.
Counts are always derived from the scope-selected books, never from the list
already narrowed by other facets or the search term.

Range attributes (ratings, file size, page count, match score) map a number
onto an ordered list of disjoint ``[min, max)`` buckets; the first bucket
containing the value wins.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union
import logging
import math

from .models import Book, ReadStatus

logger = logging.getLogger(__name__)

SORT_BY_COUNT = 'count'
SORT_ALPHABETICAL = 'alphabetical'
SORT_BY_INDEX = 'sort_index'
SORT_MODES = (SORT_BY_COUNT, SORT_ALPHABETICAL, SORT_BY_INDEX)

JOIN_AND = 'and'
JOIN_OR = 'or'


@dataclass(frozen=True)
class RangeBucket:
    """A half-open numeric range ``[min, max)``."""
    id: str
    label: str
    min: float
    max: float
    sort_index: int

    def contains(self, value: float) -> bool:
        return self.min <= value < self.max


@dataclass(frozen=True)
class FacetValue:
    """One selectable value of a facet."""
    key: str
    label: str
    sort_index: Optional[int] = None


@dataclass(frozen=True)
class FacetCount:
    value: FacetValue
    book_count: int

    @property
    def key(self) -> str:
        return self.value.key

    @property
    def label(self) -> str:
        return self.value.label


@dataclass(frozen=True)
class FacetDefinition:
    """How to read one facet's values off a book."""
    name: str
    label: str
    extractor: Callable[[Book], Iterable[FacetValue]]
    ranged: bool = False


# =============================================================================
# Buckets
# =============================================================================

INF = math.inf

RATING_RANGES = (
    RangeBucket('0to1', '0 to 1', 0, 1, 0),
    RangeBucket('1to2', '1 to 2', 1, 2, 1),
    RangeBucket('2to3', '2 to 3', 2, 3, 2),
    RangeBucket('3to4', '3 to 4', 3, 4, 3),
    RangeBucket('4to4.5', '4 to 4.5', 4, 4.5, 4),
    RangeBucket('4.5plus', '4.5+', 4.5, INF, 5),
)

# Sizes are in KB
FILE_SIZE_RANGES = (
    RangeBucket('<1mb', '< 1 MB', 0, 1024, 0),
    RangeBucket('1to10mb', '1-10 MB', 1024, 10240, 1),
    RangeBucket('10to50mb', '10-50 MB', 10240, 51200, 2),
    RangeBucket('50to100mb', '50-100 MB', 51200, 102400, 3),
    RangeBucket('100to250mb', '100-250 MB', 102400, 256000, 4),
    RangeBucket('250to500mb', '250-500 MB', 256000, 512000, 5),
    RangeBucket('500mbto1gb', '0.5-1 GB', 512000, 1048576, 6),
    RangeBucket('1to2gb', '1-2 GB', 1048576, 2097152, 7),
    RangeBucket('2to5gb', '2-5 GB', 2097152, 5242880, 8),
    RangeBucket('5plusgb', '5+ GB', 5242880, INF, 9),
)

PAGE_COUNT_RANGES = (
    RangeBucket('<50', '< 50 pages', 0, 50, 0),
    RangeBucket('50to100', '50-100 pages', 50, 100, 1),
    RangeBucket('100to200', '100-200 pages', 100, 200, 2),
    RangeBucket('200to400', '200-400 pages', 200, 400, 3),
    RangeBucket('400to600', '400-600 pages', 400, 600, 4),
    RangeBucket('600to1000', '600-1000 pages', 600, 1000, 5),
    RangeBucket('1000plus', '1000+ pages', 1000, INF, 6),
)

MATCH_SCORE_RANGES = (
    RangeBucket('0.95-1.0', 'Outstanding (95-100%)', 0.95, 1.01, 0),
    RangeBucket('0.90-0.94', 'Excellent (90-94%)', 0.90, 0.95, 1),
    RangeBucket('0.80-0.89', 'Great (80-89%)', 0.80, 0.90, 2),
    RangeBucket('0.70-0.79', 'Good (70-79%)', 0.70, 0.80, 3),
    RangeBucket('0.50-0.69', 'Fair (50-69%)', 0.50, 0.70, 4),
    RangeBucket('0.30-0.49', 'Weak (30-49%)', 0.30, 0.50, 5),
    RangeBucket('0.00-0.29', 'Poor (0-29%)', 0.00, 0.30, 6),
)


def bucket_for(buckets: Sequence[RangeBucket], value: Optional[float]) -> Optional[RangeBucket]:
    """First bucket containing ``value``, in declaration order."""
    if value is None:
        return None
    for bucket in buckets:
        if bucket.contains(value):
            return bucket
    return None


def _range_values(buckets: Sequence[RangeBucket], value: Optional[float]) -> List[FacetValue]:
    bucket = bucket_for(buckets, value)
    if bucket is None:
        return []
    return [FacetValue(bucket.id, bucket.label, bucket.sort_index)]


# =============================================================================
# Extractors
# =============================================================================


def _named(values: Iterable[Optional[str]]) -> List[FacetValue]:
    return [FacetValue(v, v) for v in values if v]


def _read_status(book: Book) -> List[FacetValue]:
    status = ReadStatus.coerce(book.read_status)
    return [FacetValue(status.value, status.label)]


def _personal_rating(book: Book) -> List[FacetValue]:
    rating = book.personal_rating
    if not rating or rating < 1 or rating > 10 or not float(rating).is_integer():
        return []
    index = int(rating)
    return [FacetValue(str(index), str(index), index - 1)]


def _published_year(book: Book) -> List[FacetValue]:
    if not book.published_date:
        return []
    year = str(book.published_date.year)
    return [FacetValue(year, year)]


def _shelf_status(book: Book) -> List[FacetValue]:
    if book.is_shelved:
        return [FacetValue('shelved', 'Shelved')]
    return [FacetValue('unshelved', 'Unshelved')]


FACETS: Dict[str, FacetDefinition] = {
    definition.name: definition for definition in (
        FacetDefinition('author', 'Author', lambda b: _named(b.authors)),
        FacetDefinition('category', 'Category', lambda b: _named(b.categories)),
        FacetDefinition('series', 'Series', lambda b: _named([b.series_name])),
        FacetDefinition('publisher', 'Publisher', lambda b: _named([b.publisher])),
        FacetDefinition('readStatus', 'Read Status', _read_status),
        FacetDefinition('personalRating', 'Personal Rating', _personal_rating, ranged=True),
        FacetDefinition('matchScore', 'Metadata Match Score',
                        lambda b: _range_values(MATCH_SCORE_RANGES, b.metadata_match_score), ranged=True),
        FacetDefinition('amazonRating', 'Amazon Rating',
                        lambda b: _range_values(RATING_RANGES, b.amazon_rating), ranged=True),
        FacetDefinition('goodreadsRating', 'Goodreads Rating',
                        lambda b: _range_values(RATING_RANGES, b.goodreads_rating), ranged=True),
        FacetDefinition('hardcoverRating', 'Hardcover Rating',
                        lambda b: _range_values(RATING_RANGES, b.hardcover_rating), ranged=True),
        FacetDefinition('shelfStatus', 'Shelf Status', _shelf_status),
        FacetDefinition('publishedDate', 'Published Year', _published_year),
        FacetDefinition('language', 'Language', lambda b: _named([b.language])),
        FacetDefinition('fileSize', 'File Size',
                        lambda b: _range_values(FILE_SIZE_RANGES, b.file_size_kb), ranged=True),
        FacetDefinition('pageCount', 'Page Count',
                        lambda b: _range_values(PAGE_COUNT_RANGES, b.page_count), ranged=True),
    )
}


# =============================================================================
# Derivation
# =============================================================================


def extract_values(book: Book, definition: FacetDefinition) -> List[FacetValue]:
    """
    Run a facet extractor for one book.

    An extractor that raises or yields something other than ``FacetValue``
    leaves the book out of this facet only.
    """
    try:
        values = list(definition.extractor(book) or [])
    except (TypeError, ValueError, AttributeError) as e:
        logger.debug(f"Facet '{definition.name}' extractor failed on book {book.id}: {e}")
        return []

    if not all(isinstance(v, FacetValue) for v in values):
        logger.debug(f"Facet '{definition.name}' returned inconsistent values for book {book.id}")
        return []
    return values


def derive_facet(
    books: Iterable[Book],
    facet: Union[str, FacetDefinition],
    sort_mode: str = SORT_BY_COUNT
) -> List[FacetCount]:
    """
    Count the values of one facet over a set of books.

    Args:
        books: Scope-selected books
        facet: Facet name or FacetDefinition
        sort_mode: 'count', 'alphabetical' or 'sort_index'; range facets
            always use their declared bucket order

    Returns:
        FacetCount list in display order
    """
    definition = FACETS.get(facet) if isinstance(facet, str) else facet
    if definition is None:
        logger.debug(f"No facet named '{facet}'")
        return []

    counts: Dict[str, int] = {}
    values: Dict[str, FacetValue] = {}
    for book in books:
        # A book counts once per value even if the extractor repeats it
        for value in {v.key: v for v in extract_values(book, definition)}.values():
            if value.key not in values:
                values[value.key] = value
                counts[value.key] = 0
            counts[value.key] += 1

    result = [FacetCount(values[key], counts[key]) for key in values]
    return sort_facet(result, SORT_BY_INDEX if definition.ranged else sort_mode)


def sort_facet(counts: List[FacetCount], sort_mode: str = SORT_BY_COUNT) -> List[FacetCount]:
    if sort_mode == SORT_BY_INDEX:
        return sorted(counts, key=lambda c: 999 if c.value.sort_index is None else c.value.sort_index)
    if sort_mode == SORT_ALPHABETICAL:
        return sorted(counts, key=lambda c: c.label.casefold())
    return sorted(counts, key=lambda c: (-c.book_count, c.label.casefold()))


def derive_facets(
    books: Sequence[Book],
    sort_mode: str = SORT_BY_COUNT,
    names: Optional[Iterable[str]] = None
) -> Dict[str, List[FacetCount]]:
    """Derive every registered facet (or the named ones) over ``books``."""
    selected = list(names) if names is not None else list(FACETS)
    return {name: derive_facet(books, name, sort_mode) for name in selected if name in FACETS}


# =============================================================================
# Application
# =============================================================================


def book_matches_facet(book: Book, definition: FacetDefinition, selected: Iterable[str]) -> bool:
    """True if any of the book's values for this facet is selected."""
    wanted = {str(v) for v in selected}
    return any(value.key in wanted for value in extract_values(book, definition))


def active_selections(selections: Optional[Mapping[str, Iterable[str]]]) -> Dict[str, frozenset]:
    """Drop empty and unknown facets from a selection mapping."""
    active = {}
    for name, values in (selections or {}).items():
        if name not in FACETS:
            logger.debug(f"Ignoring selection for unknown facet '{name}'")
            continue
        chosen = frozenset(str(v) for v in values or ())
        if chosen:
            active[name] = chosen
    return active


def apply_facets(
    books: Iterable[Book],
    selections: Optional[Mapping[str, Iterable[str]]],
    join_mode: str = JOIN_AND
) -> List[Book]:
    """
    Keep the books matching the selected facet values.

    Within one facet the selected values are OR'd. Across facets the join
    mode decides: 'and' requires every facet to match, 'or' requires any.
    With no active selection every book passes. Order is preserved.
    """
    active = active_selections(selections)
    books = list(books)
    if not active:
        return books

    combine = any if join_mode == JOIN_OR else all

    def matches(book: Book) -> bool:
        return combine(
            book_matches_facet(book, FACETS[name], chosen) for name, chosen in active.items()
        )

    return [book for book in books if matches(book)]
