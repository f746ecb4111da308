"""
Sort engine.

Holds the catalog of sort options, turns an option into a stable ordering,
and resolves which option a view starts with from stored preferences and
query parameters.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
import logging
import math

from .models import Book, ReadStatus

logger = logging.getLogger(__name__)


class SortDirection(str, Enum):
    ASCENDING = 'ASC'
    DESCENDING = 'DESC'

    @classmethod
    def parse(cls, value: Optional[str], default: 'SortDirection' = None) -> Optional['SortDirection']:
        """Accept 'asc'/'desc'/'ASC'/'DESC'/'ascending'/'descending'."""
        if not value:
            return default
        text = str(value).strip().upper()
        if text.startswith('DESC'):
            return cls.DESCENDING
        if text.startswith('ASC'):
            return cls.ASCENDING
        return default


@dataclass(frozen=True)
class SortOption:
    field: str
    label: str
    direction: SortDirection = SortDirection.ASCENDING

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESCENDING

    def with_direction(self, direction: SortDirection) -> 'SortOption':
        return replace(self, direction=direction)


def _text(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value else None


def _first_author(book: Book) -> Optional[str]:
    return book.authors[0].casefold() if book.authors else None


def _number(value: Optional[float]) -> float:
    return value if value is not None else math.inf


def _title_series(book: Book) -> Tuple[str, float, str]:
    title = (book.title or '').casefold()
    if book.series_name:
        return (book.series_name.casefold(), _number(book.series_number), title)
    return (title, -math.inf, title)


def _author_series(book: Book) -> Optional[Tuple[str, str, float, str]]:
    author = _first_author(book)
    if author is None:
        return None
    return (author, (book.series_name or '').casefold(), _number(book.series_number), (book.title or '').casefold())


_STATUS_ORDER = {status: index for index, status in enumerate(ReadStatus)}

SORT_KEYS: Dict[str, Callable[[Book], Any]] = {
    'title': lambda b: _text(b.title),
    'titleSeries': _title_series,
    'author': _first_author,
    'authorSeries': _author_series,
    'publisher': lambda b: _text(b.publisher),
    'publishedDate': lambda b: b.published_date,
    'seriesName': lambda b: _text(b.series_name),
    'seriesNumber': lambda b: b.series_number,
    'addedOn': lambda b: b.added_on,
    'lastReadTime': lambda b: b.last_read_time,
    'dateFinished': lambda b: b.date_finished,
    'personalRating': lambda b: b.personal_rating,
    'amazonRating': lambda b: b.amazon_rating,
    'amazonReviewCount': lambda b: b.amazon_review_count,
    'goodreadsRating': lambda b: b.goodreads_rating,
    'goodreadsReviewCount': lambda b: b.goodreads_review_count,
    'hardcoverRating': lambda b: b.hardcover_rating,
    'hardcoverReviewCount': lambda b: b.hardcover_review_count,
    'pageCount': lambda b: b.page_count,
    'fileSizeKb': lambda b: b.file_size_kb,
    'readStatus': lambda b: _STATUS_ORDER[ReadStatus.coerce(b.read_status)],
    'metadataScore': lambda b: b.metadata_match_score,
}

SORT_OPTIONS: Tuple[SortOption, ...] = (
    SortOption('title', 'Title'),
    SortOption('titleSeries', 'Title + Series'),
    SortOption('author', 'Author'),
    SortOption('authorSeries', 'Author + Series'),
    SortOption('publisher', 'Publisher'),
    SortOption('publishedDate', 'Published Date'),
    SortOption('seriesName', 'Series Name'),
    SortOption('seriesNumber', 'Series Number'),
    SortOption('addedOn', 'Added On'),
    SortOption('lastReadTime', 'Last Read'),
    SortOption('dateFinished', 'Date Finished'),
    SortOption('personalRating', 'Personal Rating'),
    SortOption('amazonRating', 'Amazon Rating'),
    SortOption('amazonReviewCount', 'Amazon #'),
    SortOption('goodreadsRating', 'Goodreads Rating'),
    SortOption('goodreadsReviewCount', 'Goodreads #'),
    SortOption('hardcoverRating', 'Hardcover Rating'),
    SortOption('hardcoverReviewCount', 'Hardcover #'),
    SortOption('pageCount', 'Pages'),
    SortOption('fileSizeKb', 'File Size'),
    SortOption('readStatus', 'Read Status'),
    SortOption('metadataScore', 'Metadata Score'),
)

DEFAULT_SORT = SortOption('addedOn', 'Added On', SortDirection.DESCENDING)


def find_option(field_name: Optional[str]) -> Optional[SortOption]:
    """Catalog entry for a sort field, or None."""
    for option in SORT_OPTIONS:
        if option.field == field_name:
            return option
    return None


def apply_sort(books: Iterable[Book], option: SortOption) -> List[Book]:
    """
    Sort books by an option.

    The sort is stable with ``id`` ascending as tie-break in both directions,
    and books without a value for the field come last.
    """
    key = SORT_KEYS.get(option.field)
    by_id = sorted(books, key=lambda b: b.id)
    if key is None:
        logger.warning(f"Unknown sort field '{option.field}', ordering by id")
        return by_id

    present = [b for b in by_id if key(b) is not None]
    missing = [b for b in by_id if key(b) is None]
    # reverse=True keeps equal elements in their original (id) order
    present.sort(key=key, reverse=option.descending)
    return present + missing


# =============================================================================
# Preference resolution
# =============================================================================


@dataclass(frozen=True)
class SortPreference:
    sort_key: str
    sort_dir: SortDirection = SortDirection.ASCENDING

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional['SortPreference']:
        if not data or not data.get('sortKey'):
            return None
        return cls(
            sort_key=data['sortKey'],
            sort_dir=SortDirection.parse(data.get('sortDir'), SortDirection.ASCENDING),
        )

    def to_dict(self) -> Dict[str, str]:
        return {'sortKey': self.sort_key, 'sortDir': self.sort_dir.value}


@dataclass
class ViewPreferences:
    """
    Stored sort preferences: one global and any number per entity.

    Overrides are keyed by ``(entity_type, entity_id)`` where entity_type is
    a scope kind name such as 'LIBRARY' or 'MAGIC_SHELF'.
    """
    global_preference: Optional[SortPreference] = None
    overrides: Dict[Tuple[str, int], SortPreference] = field(default_factory=dict)

    def for_entity(self, entity_type: Optional[str], entity_id: Optional[int]) -> Optional[SortPreference]:
        if entity_type is None:
            return None
        return self.overrides.get((entity_type.upper(), entity_id))

    def set_override(self, entity_type: str, entity_id: Optional[int], preference: SortPreference) -> None:
        self.overrides[(entity_type.upper(), entity_id)] = preference

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'ViewPreferences':
        data = data or {}
        overrides = {}
        for item in data.get('overrides', []) or []:
            preference = SortPreference.from_dict(item.get('preferences'))
            if preference and item.get('entityType'):
                overrides[(item['entityType'].upper(), item.get('entityId'))] = preference
        return cls(
            global_preference=SortPreference.from_dict(data.get('global')),
            overrides=overrides,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'global': self.global_preference.to_dict() if self.global_preference else None,
            'overrides': [
                {'entityType': entity_type, 'entityId': entity_id, 'preferences': pref.to_dict()}
                for (entity_type, entity_id), pref in self.overrides.items()
            ],
        }


def resolve_sort(
    preferences: Optional[ViewPreferences] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    sort_param: Optional[str] = None,
    direction_param: Optional[str] = None,
) -> SortOption:
    """
    Pick the sort a view starts with.

    Precedence: per-entity stored preference, global stored preference,
    query parameter, then ``addedOn`` descending.
    """
    preferences = preferences or ViewPreferences()

    for preference in (preferences.for_entity(entity_type, entity_id), preferences.global_preference):
        if preference is None:
            continue
        option = find_option(preference.sort_key)
        if option is not None:
            return option.with_direction(preference.sort_dir)
        logger.debug(f"Ignoring stored preference for unknown sort '{preference.sort_key}'")

    option = find_option(sort_param)
    if option is not None:
        return option.with_direction(SortDirection.parse(direction_param, SortDirection.ASCENDING))

    return DEFAULT_SORT
